# backend/lessonbook/routes/v1/recurring_slots.py
"""
Recurring slot routes - API v1

Endpoints:
    DELETE /{slot_id}  → Cancel a recurring slot (teacher)
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.params import Path

from ...api.dependencies import CurrentUser, get_recurring_slot_service, require_teacher
from ...core.exceptions import DomainException
from ...schemas.lesson import RecurringSlotCancellationResponse, RecurringSlotResponse
from ...services.recurring_slot_service import RecurringSlotService
from .common import ERROR_RESPONSES, ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recurring-slots-v1"])


@router.delete(
    "/{slot_id}", response_model=RecurringSlotCancellationResponse, responses=ERROR_RESPONSES
)
async def cancel_recurring_slot(
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    cancel_future_lessons: bool = Query(False, alias="cancelFutureLessons"),
    reason: Optional[str] = Query(None, max_length=500),
    current_user: CurrentUser = Depends(require_teacher),
    service: RecurringSlotService = Depends(get_recurring_slot_service),
) -> RecurringSlotCancellationResponse:
    """
    Stop a weekly series. Lessons already created stay as they are unless
    ``cancelFutureLessons`` is set.
    """
    try:
        result = await asyncio.to_thread(
            service.cancel_recurring_slot,
            slot_id,
            current_user.teacher_profile_id,
            cancel_future_lessons,
            reason,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return RecurringSlotCancellationResponse(
        recurring_slot=RecurringSlotResponse.model_validate(result.slot),
        cancelled_lesson_ids=result.cancelled_lesson_ids,
    )
