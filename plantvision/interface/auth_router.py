"""Authentication and self-service profile endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from plantvision.core.config import constants
from plantvision.core.db_client import Store
from plantvision.core.security import TokenService
from plantvision.domain.create_models import LoginRequest, RefreshRequest
from plantvision.domain.update_models import PasswordChange, ProfileUpdate
from plantvision.interface.dependencies import client_ip, get_audit, get_deps, get_store, get_tokens
from plantvision.interface.responses import ok
from plantvision.services import auth_service
from plantvision.services.audit_service import AuditTrail
from plantvision.services.deps import Deps


router = APIRouter(prefix=f"{constants.API_PREFIX}/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/login")
async def login(
    request: Request,
    credentials: LoginRequest,
    store: Store = Depends(get_store),
    audit: AuditTrail = Depends(get_audit),
    tokens: TokenService = Depends(get_tokens),
) -> dict[str, Any]:
    """Exchange username and password for an access/refresh token pair."""
    session = await auth_service.login(
        store=store,
        audit=audit,
        tokens=tokens,
        credentials=credentials,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return ok(session, message="Login successful")


@router.post("/refresh")
async def refresh(
    body: RefreshRequest,
    store: Store = Depends(get_store),
    tokens: TokenService = Depends(get_tokens),
) -> dict[str, Any]:
    return ok(await auth_service.refresh(store=store, tokens=tokens, refresh_token=body.refresh_token))


@router.post("/logout")
async def logout(deps: Deps = Depends(get_deps)) -> dict[str, Any]:
    await auth_service.logout(deps=deps)
    return ok(message="Logout successful")


@router.get("/me")
async def me(deps: Deps = Depends(get_deps)) -> dict[str, Any]:
    return ok(await auth_service.get_profile(deps=deps))


@router.put("/profile")
async def update_profile(payload: ProfileUpdate, deps: Deps = Depends(get_deps)) -> dict[str, Any]:
    return ok(await auth_service.update_profile(deps=deps, payload=payload), message="Profile updated successfully")


@router.put("/change-password")
async def change_password(payload: PasswordChange, deps: Deps = Depends(get_deps)) -> dict[str, Any]:
    await auth_service.change_password(deps=deps, payload=payload)
    return ok(message="Password changed successfully")
