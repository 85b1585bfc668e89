"""Domain errors raised by the pool services.

Each error carries the HTTP status the API layer should answer with; the
handler registered in ``create_app`` renders them as ``{'error': message}``.
"""
from typing import Any, Dict, Optional


class PoolError(Exception):
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.message}
        payload.update(self.extra)
        return payload


class ValidationError(PoolError):
    """Bad input or an operation that is not valid in the current state."""


class GradingError(ValidationError):
    pass


class PayoutConfigError(PoolError):
    """A stored payout or price setting is unusable; the pool is misconfigured."""
    status_code = 500


class NotFoundError(PoolError):
    status_code = 404


class PermissionDeniedError(PoolError):
    status_code = 403


class ConflictError(PoolError):
    status_code = 409


class SquareUnavailableError(ConflictError):
    def __init__(self, square_ids, message: Optional[str] = None):
        ids = sorted(square_ids)
        super().__init__(message or 'Square no longer available', square_ids=ids)
        self.square_ids = ids


class AlreadyLaunchedError(ConflictError):
    def __init__(self, message: str = 'Tournament is already launched. Cannot randomize again.'):
        super().__init__(message)


class StaleStateError(ConflictError):
    def __init__(self, message: str = 'Game state changed since it was read; reload and retry', **extra: Any):
        super().__init__(message, **extra)


class ScoreFeedError(PoolError):
    status_code = 502
