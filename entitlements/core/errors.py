"""
Error taxonomy for the entitlement engine.

Business-rule failures (EntitlementError subclasses) are raised inside the
library and converted into typed results at the API boundary. Infrastructure
failures surface as TransientError so callers can retry or answer 503.
"""
import asyncio
import enum
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError


class ErrorKind(str, enum.Enum):
    """Machine-readable failure kinds."""
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    PLAN_LIMIT_EXCEEDED = "plan_limit_exceeded"
    DEPENDENCY = "dependency"
    PROTECTED_MODULE = "protected_module"
    TRANSIENT = "transient"


# Response status for each kind at the HTTP boundary
HTTP_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.AUTHENTICATION: 403,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.PLAN_LIMIT_EXCEEDED: 409,
    ErrorKind.DEPENDENCY: 409,
    ErrorKind.PROTECTED_MODULE: 409,
    ErrorKind.TRANSIENT: 503,
}


class EntitlementError(Exception):
    """Base class for expected business-rule failures."""

    kind: ErrorKind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(kind={self.kind.value}, message={self.message!r})>"


class NotFoundError(EntitlementError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, identifier: Any):
        super().__init__(
            f"{entity.capitalize()} '{identifier}' not found",
            {"entity": entity, "id": identifier},
        )


class AuthenticationError(EntitlementError):
    kind = ErrorKind.AUTHENTICATION


class AuthorizationError(EntitlementError):
    kind = ErrorKind.AUTHORIZATION


class PlanLimitExceeded(EntitlementError):
    kind = ErrorKind.PLAN_LIMIT_EXCEEDED


class DependencyError(EntitlementError):
    kind = ErrorKind.DEPENDENCY


class ProtectedModuleError(EntitlementError):
    kind = ErrorKind.PROTECTED_MODULE


class TransientError(Exception):
    """Underlying store unavailable or timed out."""

    kind = ErrorKind.TRANSIENT


class CatalogError(Exception):
    """Seeded catalog data violates its own invariants."""


@asynccontextmanager
async def store_errors(operation: str):
    """
    Translate store connectivity failures into TransientError.

    Usage:
        async with store_errors("load membership"):
            result = await db.execute(stmt)
    """
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        raise TransientError(f"Store unavailable during {operation}") from e
    except DBAPIError as e:
        if e.connection_invalidated:
            raise TransientError(f"Store connection lost during {operation}") from e
        raise
    except asyncio.TimeoutError as e:
        raise TransientError(f"Store timed out during {operation}") from e
