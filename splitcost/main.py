from contextlib import asynccontextmanager

from fastapi import FastAPI

from splitcost.api.v1.api import api_router
from splitcost.api.v1.deps import get_ledger
from splitcost.core.config import settings
from splitcost.core.logging import setup_logging
from splitcost.db.mongo import connect_to_mongo, disconnect_from_mongo
from splitcost.realtime.hub import HubRegistry
from splitcost.services.sync_service import make_sync_provider


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    await connect_to_mongo()
    app.state.hubs = HubRegistry(sync_provider=make_sync_provider(get_ledger))
    yield
    await app.state.hubs.close()
    await disconnect_from_mongo()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan
)


@app.get("/")
async def root():
    return {"message": "Welcome to SplitCost API"}


app.include_router(api_router, prefix=settings.API_V1_STR)
