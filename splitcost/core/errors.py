"""
Error taxonomy for the ledger engine.

Retryable store errors carry ``retryable = True`` so callers can decide
whether resubmitting the enclosing mutation makes sense.
"""


class LedgerError(Exception):
    """Base class for all ledger engine errors."""
    retryable = False


class StoreUnavailable(LedgerError):
    """The store did not answer within the caller-supplied timeout or is unreachable."""
    retryable = True


class ConflictingWrite(LedgerError):
    """A concurrent write touched the same rows; retry with a fresh read."""
    retryable = True


class ImbalancedLedger(LedgerError):
    """Net balances handed to the simplifier do not sum to zero."""


class InvalidTransition(LedgerError):
    """A state machine transition that is not allowed from the current state."""


class SessionNotFound(LedgerError):
    """Targeted send to a subject with no active session."""


class MalformedMessage(LedgerError):
    """A realtime frame that cannot be parsed."""


class ExpenseValidationError(LedgerError):
    """Expense amounts or splits are inconsistent."""


class SettlementValidationError(LedgerError):
    """A settlement with a non-positive amount or the same payer and receiver."""


class NotFound(LedgerError):
    pass


class NotAuthorized(LedgerError):
    pass
