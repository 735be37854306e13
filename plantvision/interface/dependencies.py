"""FastAPI dependencies: collaborators from app state, bearer authentication and role guards."""

import logging
from collections.abc import Awaitable, Callable

from fastapi import Depends, Request

from plantvision.core.blob_store import BlobStore
from plantvision.core.db_client import Store
from plantvision.core.errors import AuthenticationError, ForbiddenError
from plantvision.core.security import TokenService
from plantvision.domain.audit import AuditAction, ResourceType
from plantvision.domain.user import Caller, UserRole
from plantvision.services import auth_service
from plantvision.services.audit_service import AuditTrail
from plantvision.services.deps import Deps


logger = logging.getLogger(__name__)


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_audit(request: Request) -> AuditTrail:
    return request.app.state.audit


def get_blobs(request: Request) -> BlobStore | None:
    return getattr(request.app.state, "blobs", None)


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def bearer_token(request: Request) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthenticationError: If the header is missing or not a bearer credential
    """
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        msg = "Access token required"
        raise AuthenticationError(msg)
    return token.strip()


async def get_current_caller(
    request: Request,
    store: Store = Depends(get_store),
    tokens: TokenService = Depends(get_tokens),
) -> Caller:
    """Resolve the caller for this request; the user row is re-read every time."""
    caller, _ = await auth_service.resolve_caller(store=store, tokens=tokens, access_token=bearer_token(request))
    return caller


async def get_deps(
    request: Request,
    caller: Caller = Depends(get_current_caller),
    store: Store = Depends(get_store),
    audit: AuditTrail = Depends(get_audit),
    blobs: BlobStore | None = Depends(get_blobs),
) -> Deps:
    return Deps(
        store=store,
        audit=audit,
        caller=caller,
        blobs=blobs,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[Deps]]:
    """Build a dependency that admits only ``roles`` and audits every refusal."""

    async def guard(request: Request, deps: Deps = Depends(get_deps)) -> Deps:
        if deps.caller.role in roles:
            return deps

        logger.warning(
            "unauthorized_access",
            extra={"user_id": deps.caller.id, "path": request.url.path, "role": deps.caller.role},
        )
        await deps.audit_event(
            AuditAction.UNAUTHORIZED_ACCESS,
            ResourceType.ENDPOINT,
            request.url.path,
            metadata={
                "user_role": deps.caller.role,
                "required_roles": [str(role) for role in roles],
                "method": request.method,
            },
        )
        msg = f"This action requires one of the following roles: {', '.join(roles)}"
        raise ForbiddenError(msg)

    return guard


require_manager = require_roles(UserRole.MANAGER, UserRole.ADMIN)
require_admin = require_roles(UserRole.ADMIN)
