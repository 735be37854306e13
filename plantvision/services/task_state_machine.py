"""Task lifecycle state machine.

Transition table (who may perform each edge is enforced in ``validate_transition``):

    pending     -> in_progress, cancelled
    in_progress -> completed, cancelled
    cancelled   -> pending      (managers and admins only)
    completed   -> (none; completed tasks are immutable)
"""

import logging
from typing import Any

from plantvision.core.db_client import ConcurrentUpdateError, Store, utc_now
from plantvision.core.errors import (
    ConflictError,
    ForbiddenError,
    ImmutableTaskError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from plantvision.core.logging import span
from plantvision.domain.photo import PhotoStatus
from plantvision.domain.task import TaskStatus
from plantvision.domain.update_models import TaskStatusUpdate
from plantvision.domain.user import Caller
from plantvision.services.scope_policy import combine_filters, eq, task_scope


logger = logging.getLogger(__name__)


TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.CANCELLED},
    TaskStatus.CANCELLED: {TaskStatus.PENDING},
    TaskStatus.COMPLETED: set(),
}

# Edges workers may not take even on their own tasks
PRIVILEGED_TRANSITIONS: set[tuple[TaskStatus, TaskStatus]] = {
    (TaskStatus.CANCELLED, TaskStatus.PENDING),
}


def allowed_targets(status: TaskStatus) -> set[TaskStatus]:
    return TRANSITIONS[status]


def validate_transition(*, task_id: str, current: TaskStatus, target: TaskStatus, caller: Caller) -> None:
    """Check that ``caller`` may move a task from ``current`` to ``target``.

    Raises:
        ImmutableTaskError: If the task is already completed
        InvalidTransitionError: If the edge is not in the transition table
        ForbiddenError: If the edge is reserved for managers and admins
    """
    if current == TaskStatus.COMPLETED:
        raise ImmutableTaskError(task_id)

    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(current, target)

    if (current, target) in PRIVILEGED_TRANSITIONS and not caller.is_privileged:
        msg = f"Only managers can move tasks from {current} to {target}"
        raise ForbiddenError(msg)


def transition_side_effects(*, task: dict[str, Any], request: TaskStatusUpdate, now: str) -> dict[str, Any]:
    """Fields written alongside the new status."""
    update_data: dict[str, Any] = {"status": request.status}

    if request.status == TaskStatus.IN_PROGRESS and not task.get("started_at"):
        update_data["started_at"] = now

    if request.status == TaskStatus.COMPLETED:
        update_data["completed_at"] = now
        if request.completion_notes is not None:
            update_data["completion_notes"] = request.completion_notes
        if request.completion_photo_id is not None:
            update_data["completion_photo_id"] = request.completion_photo_id

    return update_data


async def apply_transition(
    *,
    store: Store,
    caller: Caller,
    task_id: str,
    request: TaskStatusUpdate,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Validate and apply a status change atomically.

    The scoped task lookup, the completion-photo ownership check and the
    conditional write all run in one store transaction. The write only lands
    while the task still holds the status that was validated.

    Returns:
        Tuple of (task before the change, task after the change)

    Raises:
        NotFoundError: If the task is outside the caller's scope or the completion
            photo is not the caller's
        InvalidInputError: If completion details accompany a non-completing transition
        ConflictError: If the transition is illegal or lost a concurrent race
        ForbiddenError: If the edge is reserved for managers and admins
    """
    with span("task_state_machine.apply_transition"):
        # Guard: Completion details only make sense when completing
        completing = request.status == TaskStatus.COMPLETED
        if not completing and (request.completion_notes is not None or request.completion_photo_id is not None):
            msg = "Completion notes and photo can only be supplied when completing a task"
            raise InvalidInputError(msg)

        try:
            async with store.transaction() as tx:
                task = await tx.get_first_record(
                    collection="task_details",
                    filter_query=combine_filters(eq("id", task_id), task_scope(caller)),
                )
                if task is None:
                    msg = f"Task {task_id} not found"
                    raise NotFoundError(msg)

                current = TaskStatus(task["status"])
                validate_transition(task_id=task_id, current=current, target=request.status, caller=caller)

                # Guard: Completion photo must be the completing user's own, live photo
                if completing and request.completion_photo_id:
                    photo = await tx.get_first_record(
                        collection="photos",
                        filter_query=combine_filters(
                            eq("id", request.completion_photo_id),
                            eq("user_id", caller.id),
                            f'status != "{PhotoStatus.DELETED}"',
                        ),
                    )
                    if photo is None:
                        msg = "Completion photo not found"
                        raise NotFoundError(msg)

                update_data = transition_side_effects(task=task, request=request, now=utc_now())
                await tx.update_record(
                    collection="tasks",
                    record_id=task_id,
                    data=update_data,
                    expected={"status": current},
                )
                updated = await tx.get_record(collection="task_details", record_id=task_id)
        except ConcurrentUpdateError as e:
            msg = f"Task {task_id} was modified concurrently"
            raise ConflictError(msg) from e

        logger.info(
            "Task status changed",
            extra={"task_id": task_id, "from_status": current, "to_status": request.status, "user_id": caller.id},
        )
        return task, updated
