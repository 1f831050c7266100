from fastapi import APIRouter
from splitcost.api.v1.endpoints import activities, balances, expenses, membership, realtime, settlements

api_router = APIRouter()

api_router.include_router(expenses.router, prefix="/expenses", tags=["expenses"])
api_router.include_router(settlements.router, prefix="/settlements", tags=["settlements"])
api_router.include_router(balances.router, prefix="/balances", tags=["balances"])
api_router.include_router(activities.router, prefix="/activities", tags=["activities"])
api_router.include_router(membership.router, prefix="/links", tags=["membership"])
api_router.include_router(realtime.router, tags=["realtime"])
