"""Per-request dependencies passed into service functions."""

from dataclasses import dataclass
from typing import Any

from plantvision.core.blob_store import BlobStore
from plantvision.core.db_client import Store
from plantvision.domain.audit import AuditAction, AuditEvent, ResourceType
from plantvision.domain.user import Caller
from plantvision.services.audit_service import AuditTrail


@dataclass
class Deps:
    """Collaborators and caller identity for one request."""

    store: Store
    audit: AuditTrail
    caller: Caller
    blobs: BlobStore | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    async def audit_event(
        self,
        action: AuditAction,
        resource_type: ResourceType,
        resource_id: str | None = None,
        *,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Emit an audit entry attributed to the caller with this request's client context."""
        await self.audit.emit(
            AuditEvent(
                user_id=self.caller.id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                old_values=old_values,
                new_values=new_values,
                metadata=metadata,
                ip_address=self.ip_address,
                user_agent=self.user_agent,
            )
        )


def changed_values(before: dict[str, Any], changes: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Old and new values restricted to the fields an update actually changes."""
    old = {key: before.get(key) for key in changes if before.get(key) != changes[key]}
    new = {key: changes[key] for key in old}
    return old, new
