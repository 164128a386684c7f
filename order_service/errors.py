"""Error kinds surfaced by the order service.

Every failure a caller can see is one of these. ``retryable`` tells the caller
whether sending the same request again may succeed.
"""

from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, OperationalError, SQLAlchemyError


class OrderServiceError(Exception):
    code = "OrderServiceError"
    status_code = 500
    retryable = False

    def __init__(self, message=None):
        self.message = message or self.code
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.code, "message": self.message, "retryable": self.retryable}


class NotFound(OrderServiceError):
    code = "NotFound"
    status_code = 404


class InvalidReference(OrderServiceError):
    code = "InvalidReference"
    status_code = 422


class InvalidRequest(OrderServiceError):
    code = "InvalidRequest"
    status_code = 422


class EmptyBasket(OrderServiceError):
    code = "EmptyBasket"
    status_code = 422


class InsufficientBalance(OrderServiceError):
    code = "InsufficientBalance"
    status_code = 409


class Conflict(OrderServiceError):
    code = "Conflict"
    status_code = 409
    retryable = True


class StorageUnavailable(OrderServiceError):
    code = "StorageUnavailable"
    status_code = 503
    retryable = True


# PostgreSQL SQLSTATEs and MySQL error numbers for serialization failures
_PG_CONFLICT_STATES = {"40001", "40P01"}
_MYSQL_CONFLICT_CODES = {1205, 1213}


def _is_conflict(exc):
    orig = getattr(exc, "orig", None)
    if orig is None:
        return False
    if getattr(orig, "pgcode", None) in _PG_CONFLICT_STATES:
        return True
    args = getattr(orig, "args", ())
    return bool(args) and args[0] in _MYSQL_CONFLICT_CODES


def translate_db_error(exc: SQLAlchemyError) -> OrderServiceError:
    """Map a SQLAlchemy exception to the service's error kinds."""
    if isinstance(exc, IntegrityError):
        return InvalidReference(f"Referenced record does not exist: {exc.orig}")
    if isinstance(exc, DataError):
        return InvalidRequest(f"Value rejected by the database: {exc.orig}")
    if _is_conflict(exc):
        return Conflict("Transaction conflict, retry the request")
    if isinstance(exc, (OperationalError, DBAPIError)):
        return StorageUnavailable(f"Database unavailable: {exc.orig}")
    return StorageUnavailable(str(exc))
