"""Domain-specific exceptions for the order coordinator.

Routers catch these and translate them to structured HTTP responses. Losing a
claim race is not an error and has no exception here; see ``ClaimOutcome``.
"""


class DispatchError(Exception):
    """Base class for coordinator failures."""


class ValidationError(DispatchError):
    """Missing or malformed input to order creation (maps to HTTP 400)."""


class NotFoundError(DispatchError):
    """Unknown order or worker (maps to HTTP 404)."""


class InvalidStateError(DispatchError):
    """Operation attempted against an order in the wrong lifecycle stage (maps to HTTP 409)."""


class TransportError(DispatchError):
    """Messaging gateway call failed. Logged, never rolls back order state."""


class LedgerError(DispatchError):
    """External ledger call failed. Logged, never rolls back order state."""
