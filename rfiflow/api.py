"""Caller-facing handlers returning ``{success, errors?, data?}`` payloads.

These sit between an outer surface (HTTP routes, the CLI) and the
executor. Request bodies are validated with pydantic; command failures are
reported in the payload, never raised.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from .constants import DEFAULT_CONFLICT_RETRIES
from .errors import PersistenceError, RfiFlowError, RfiNotFoundError
from .models import ActivityEntry, TransitionResult
from .states import Stage, Status
from .utils.retry import schedule_retry
from .workflow.executor import TransitionExecutor

logger = logging.getLogger(__name__)


class StatusChangeRequest(BaseModel):
    rfi_id: str
    target_status: Status
    actor_id: str
    extra: dict[str, Any] = Field(default_factory=dict)


class StageChangeRequest(BaseModel):
    rfi_id: str
    target_stage: Stage
    actor_id: str
    extra: dict[str, Any] = Field(default_factory=dict)


class UpdateRequest(BaseModel):
    rfi_id: str
    actor_id: str
    fields: dict[str, Any]


def _bad_request(exc: ValidationError) -> dict[str, Any]:
    errors = [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]
    return {
        "success": False,
        "error": "Invalid request",
        "errors": errors,
        "error_type": "bad_request",
    }


def _failure(exc: RfiFlowError) -> dict[str, Any]:
    return TransitionResult.failure(exc).to_response()


async def change_status(
    executor: TransitionExecutor,
    payload: dict[str, Any],
    retries: int = DEFAULT_CONFLICT_RETRIES,
) -> dict[str, Any]:
    """Apply a status change.

    ``retries`` re-runs the whole read-validate-write cycle when another
    writer moved the status in between. The default is not to retry.
    """
    try:
        request = StatusChangeRequest.model_validate(payload)
    except ValidationError as exc:
        return _bad_request(exc)

    attempt = 0
    while True:
        result = await executor.execute(
            request.rfi_id, request.target_status, request.actor_id, request.extra
        )
        if result.ok or result.error_type != "concurrent_update" or attempt >= retries:
            return result.to_response()
        logger.info(f"Retrying status change for {request.rfi_id} after conflict (attempt {attempt + 1})")
        await schedule_retry(attempt)
        attempt += 1


async def change_stage(executor: TransitionExecutor, payload: dict[str, Any]) -> dict[str, Any]:
    try:
        request = StageChangeRequest.model_validate(payload)
    except ValidationError as exc:
        return _bad_request(exc)
    result = await executor.change_stage(
        request.rfi_id, request.target_stage, request.actor_id, request.extra
    )
    return result.to_response()


async def get_transitions(executor: TransitionExecutor, rfi_id: str) -> dict[str, Any]:
    """Current status, its display metadata and the moves available from it."""
    try:
        data = await executor.available_transitions(rfi_id)
    except RfiFlowError as exc:
        return _failure(exc)
    return {"success": True, "data": data}


async def update_rfi(executor: TransitionExecutor, payload: dict[str, Any]) -> dict[str, Any]:
    try:
        request = UpdateRequest.model_validate(payload)
    except ValidationError as exc:
        return _bad_request(exc)
    result = await executor.update_fields(request.rfi_id, request.fields, request.actor_id)
    return result.to_response()


async def create_rfi(
    executor: TransitionExecutor, fields: dict[str, Any], actor_id: str
) -> dict[str, Any]:
    result = await executor.create(fields, actor_id)
    return result.to_response()


async def delete_rfi(
    executor: TransitionExecutor, rfi_id: str, actor_id: str
) -> dict[str, Any]:
    """Administrative removal of a record.

    The workflow never deletes; this is an out-of-band operation. The audit
    trail of the removed RFI is kept and the removal is written to the
    activity feed.
    """
    repository = executor.repository
    try:
        record = await repository.get_rfi(rfi_id)
        if record is None:
            raise RfiNotFoundError(rfi_id)
        await repository.delete_rfi(rfi_id)
    except RfiFlowError as exc:
        return _failure(exc)
    except Exception as exc:
        return _failure(PersistenceError(f"Failed to delete RFI: {exc}"))

    logger.warning(f"RFI {rfi_id} deleted by {actor_id}")
    await executor.activity_log.append(
        ActivityEntry(
            rfi_id=rfi_id,
            actor_id=actor_id,
            activity_type="rfi_deleted",
            message=f"RFI {record.rfi_number or rfi_id} deleted",
            details={"status": record.status.value, "subject": record.subject},
        )
    )
    return {"success": True, "data": {"id": rfi_id}}


async def clear_audit(
    executor: TransitionExecutor, actor_id: str, rfi_id: Optional[str] = None
) -> dict[str, Any]:
    try:
        count = await executor.audit_log.clear(actor_id, rfi_id)
    except RfiFlowError as exc:
        return _failure(exc)
    except Exception as exc:
        return _failure(PersistenceError(f"Failed to clear audit trail: {exc}"))
    return {"success": True, "data": {"cleared": count}}


__all__ = [
    "StageChangeRequest",
    "StatusChangeRequest",
    "UpdateRequest",
    "change_stage",
    "change_status",
    "clear_audit",
    "create_rfi",
    "delete_rfi",
    "get_transitions",
    "update_rfi",
]
