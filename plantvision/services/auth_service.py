"""Identity and session service: login, token refresh, caller resolution and profile upkeep."""

import logging
from typing import Any

from plantvision.core.db_client import RecordNotFoundError, Store, utc_now
from plantvision.core.errors import AuthenticationError, InvalidInputError
from plantvision.core.logging import log_caller_event, span
from plantvision.core.security import TokenError, TokenKind, TokenService, hash_password, verify_password
from plantvision.domain.audit import AuditAction, AuditEvent, ResourceType
from plantvision.domain.create_models import LoginRequest
from plantvision.domain.update_models import PasswordChange, ProfileUpdate
from plantvision.domain.user import Caller, caller_from_record, public_user
from plantvision.services.audit_service import AuditTrail
from plantvision.services.deps import Deps, changed_values
from plantvision.services.scope_policy import combine_filters, eq


logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


async def login(
    *,
    store: Store,
    audit: AuditTrail,
    tokens: TokenService,
    credentials: LoginRequest,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    """Verify credentials and issue an access/refresh token pair.

    Inactive accounts are treated exactly like unknown usernames.

    Raises:
        AuthenticationError: If the username is unknown/inactive or the password is wrong
    """
    with span("auth_service.login"):
        user = await store.get_first_record(
            collection="users",
            filter_query=combine_filters(eq("username", credentials.username), eq("is_active", True)),
        )

        if user is None or not verify_password(credentials.password, user["password_hash"]):
            reason = "user_not_found" if user is None else "invalid_password"
            logger.warning("Login failed", extra={"username": credentials.username, "reason": reason})
            await audit.emit(
                AuditEvent(
                    user_id=user["id"] if user else None,
                    action=AuditAction.LOGIN_FAILED,
                    resource_type=ResourceType.AUTH,
                    metadata={"username": credentials.username, "reason": reason},
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
            raise AuthenticationError(INVALID_CREDENTIALS)

        update_data: dict[str, Any] = {"last_login_at": utc_now()}
        if credentials.fcm_token:
            update_data["fcm_token"] = credentials.fcm_token
        user = await store.update_record(collection="users", record_id=user["id"], data=update_data)

        logger.info("Login succeeded", extra={"user_id": user["id"]})
        await audit.emit(
            AuditEvent(
                user_id=user["id"],
                action=AuditAction.LOGIN_SUCCESS,
                resource_type=ResourceType.AUTH,
                metadata={"username": credentials.username},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        return {**tokens.issue_pair(user["id"]), "user": public_user(user)}


async def _load_active_user(store: Store, user_id: str) -> dict[str, Any]:
    try:
        user = await store.get_record(collection="users", record_id=user_id)
    except RecordNotFoundError as e:
        msg = "User not found or inactive"
        raise AuthenticationError(msg) from e
    if not user.get("is_active"):
        msg = "User not found or inactive"
        raise AuthenticationError(msg)
    return user


async def refresh(*, store: Store, tokens: TokenService, refresh_token: str) -> dict[str, Any]:
    """Exchange a refresh token for a new token pair.

    Raises:
        AuthenticationError: If the token is not a valid refresh token or the user is inactive
    """
    with span("auth_service.refresh"):
        try:
            payload = tokens.verify(refresh_token, TokenKind.REFRESH)
        except TokenError as e:
            msg = f"Invalid refresh token: {e}"
            raise AuthenticationError(msg) from e

        user = await _load_active_user(store, payload.sub)
        return tokens.issue_pair(user["id"])


async def resolve_caller(*, store: Store, tokens: TokenService, access_token: str) -> tuple[Caller, dict[str, Any]]:
    """Turn a bearer access token into the current caller, re-read from the store.

    Raises:
        AuthenticationError: If the token is invalid/expired/not an access token,
            or the user no longer exists or is inactive
    """
    try:
        payload = tokens.verify(access_token, TokenKind.ACCESS)
    except TokenError as e:
        raise AuthenticationError(str(e)) from e

    user = await _load_active_user(store, payload.sub)
    return caller_from_record(user), user


async def logout(*, deps: Deps) -> None:
    """Forget the device push token and record the logout."""
    with span("auth_service.logout"):
        await deps.store.update_record(collection="users", record_id=deps.caller.id, data={"fcm_token": None})
        await deps.audit_event(AuditAction.LOGOUT, ResourceType.AUTH, deps.caller.id)


async def get_profile(*, deps: Deps) -> dict[str, Any]:
    with span("auth_service.get_profile"):
        user = await deps.store.get_record(collection="users", record_id=deps.caller.id)
        return public_user(user)


async def update_profile(*, deps: Deps, payload: ProfileUpdate) -> dict[str, Any]:
    """Update the caller's own name, phone or preferences."""
    with span("auth_service.update_profile"):
        user = await deps.store.get_record(collection="users", record_id=deps.caller.id)
        old_values, new_values = changed_values(user, payload.changes())
        if not new_values:
            return public_user(user)

        updated = await deps.store.update_record(collection="users", record_id=deps.caller.id, data=new_values)
        await deps.audit_event(
            AuditAction.UPDATE, ResourceType.USER, deps.caller.id, old_values=old_values, new_values=new_values
        )
        return public_user(updated)


async def change_password(*, deps: Deps, payload: PasswordChange) -> None:
    """Replace the caller's password after checking the current one.

    Raises:
        InvalidInputError: If the current password is wrong or the new one is unchanged
    """
    with span("auth_service.change_password"):
        user = await deps.store.get_record(collection="users", record_id=deps.caller.id)

        # Guard: Current password must match
        if not verify_password(payload.current_password, user["password_hash"]):
            msg = "Current password is incorrect"
            raise InvalidInputError(msg)

        if payload.current_password == payload.new_password:
            msg = "New password must differ from the current password"
            raise InvalidInputError(msg)

        await deps.store.update_record(
            collection="users", record_id=deps.caller.id, data={"password_hash": hash_password(payload.new_password)}
        )
        log_caller_event(logger, "info", "Password changed", deps.caller)
        await deps.audit_event(AuditAction.PASSWORD_CHANGE, ResourceType.USER, deps.caller.id)
