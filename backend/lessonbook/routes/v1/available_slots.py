# backend/lessonbook/routes/v1/available_slots.py
"""
Open slot routes - API v1

Endpoints:
    GET /teachers/{teacher_id}/available-slots → Bookable starts in a range
"""

import asyncio
from datetime import datetime
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.params import Path

from ...api.dependencies import CurrentUser, UserRole, get_availability_resolver, get_current_user
from ...core.exceptions import DomainException, ForbiddenException
from ...schemas.availability import AvailableSlotResponse, AvailableSlotsResponse
from ...services.availability_resolver import AvailabilityResolver
from .common import ERROR_RESPONSES, ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability-v1"])


@router.get(
    "/{teacher_id}/available-slots", response_model=AvailableSlotsResponse, responses=ERROR_RESPONSES
)
async def get_available_slots(
    teacher_id: str = Path(..., description="Teacher profile ULID", pattern=ULID_PATH_PATTERN),
    start: datetime = Query(..., description="Range start, ISO-8601 with offset"),
    end: datetime = Query(..., description="Range end (exclusive), ISO-8601 with offset"),
    duration: int = Query(60, description="Lesson length in minutes"),
    current_user: CurrentUser = Depends(get_current_user),
    resolver: AvailabilityResolver = Depends(get_availability_resolver),
) -> AvailableSlotsResponse:
    """
    Open starts a lesson of ``duration`` minutes could be booked at.

    Students see only their own teacher; teachers see only themselves.
    """
    student_id = None
    if current_user.role == UserRole.STUDENT:
        student_id = current_user.student_profile_id or ""
    elif not current_user.is_admin and current_user.teacher_profile_id != teacher_id:
        handle_domain_exception(
            ForbiddenException("You can only view your own availability", code="NOT_TEACHER")
        )
    try:
        slots = await asyncio.to_thread(
            resolver.get_available_slots, teacher_id, start, end, duration, student_id
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return AvailableSlotsResponse(
        teacher_id=teacher_id,
        duration=duration,
        slots=[AvailableSlotResponse.model_validate(slot) for slot in slots],
    )
