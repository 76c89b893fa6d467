# backend/lessonbook/routes/v1/availability.py
"""
Teacher availability routes - API v1

Endpoints:
    GET    /teachers/me/availability              → Weekly windows
    PUT    /teachers/me/availability              → Replace weekly windows
    GET    /teachers/me/blocked-times             → Blocked intervals
    POST   /teachers/me/blocked-times             → Block an interval
    DELETE /teachers/me/blocked-times/{id}        → Remove a blocked interval
"""

import asyncio
from datetime import datetime
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.params import Path

from ...api.dependencies import CurrentUser, get_availability_service, require_teacher
from ...core.exceptions import DomainException
from ...schemas.availability import (
    AvailabilityWindowResponse,
    BlockedTimeCreate,
    BlockedTimeResponse,
    WeeklyAvailabilityRequest,
    WeeklyAvailabilityResponse,
)
from ...services.availability_service import AvailabilityService, WindowInput
from .common import ERROR_RESPONSES, ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability-v1"])


def _weekly_response(
    service: AvailabilityService, teacher_id: str, windows: list
) -> WeeklyAvailabilityResponse:
    teacher = service.teacher_repository.get_by_id(teacher_id)
    return WeeklyAvailabilityResponse(
        teacher_id=teacher_id,
        timezone=teacher.timezone if teacher else "",
        windows=[AvailabilityWindowResponse.model_validate(window) for window in windows],
    )


@router.get("/availability", response_model=WeeklyAvailabilityResponse)
async def get_my_availability(
    current_user: CurrentUser = Depends(require_teacher),
    service: AvailabilityService = Depends(get_availability_service),
) -> WeeklyAvailabilityResponse:
    teacher_id = current_user.teacher_profile_id
    windows = await asyncio.to_thread(service.list_availability, teacher_id)
    return _weekly_response(service, teacher_id, windows)


@router.put("/availability", response_model=WeeklyAvailabilityResponse, responses=ERROR_RESPONSES)
async def replace_my_availability(
    payload: WeeklyAvailabilityRequest,
    current_user: CurrentUser = Depends(require_teacher),
    service: AvailabilityService = Depends(get_availability_service),
) -> WeeklyAvailabilityResponse:
    """Replace the whole weekly schedule; overlapping windows on a day are rejected."""
    teacher_id = current_user.teacher_profile_id
    windows = [
        WindowInput(
            day_of_week=window.day_of_week,
            start_time=window.start_time,
            end_time=window.end_time,
            is_active=window.is_active,
        )
        for window in payload.windows
    ]
    try:
        created = await asyncio.to_thread(service.replace_weekly_availability, teacher_id, windows)
    except DomainException as exc:
        handle_domain_exception(exc)
    return _weekly_response(service, teacher_id, created)


@router.get("/blocked-times", response_model=List[BlockedTimeResponse])
async def list_my_blocked_times(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: CurrentUser = Depends(require_teacher),
    service: AvailabilityService = Depends(get_availability_service),
) -> List[BlockedTimeResponse]:
    blocked = await asyncio.to_thread(
        service.list_blocked_times, current_user.teacher_profile_id, start, end
    )
    return [BlockedTimeResponse.model_validate(item) for item in blocked]


@router.post(
    "/blocked-times",
    response_model=BlockedTimeResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_blocked_time(
    payload: BlockedTimeCreate,
    current_user: CurrentUser = Depends(require_teacher),
    service: AvailabilityService = Depends(get_availability_service),
) -> BlockedTimeResponse:
    try:
        blocked = await asyncio.to_thread(
            service.create_blocked_time,
            current_user.teacher_profile_id,
            payload.start,
            payload.end,
            payload.reason,
            payload.timezone,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return BlockedTimeResponse.model_validate(blocked)


@router.delete(
    "/blocked-times/{blocked_time_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
)
async def delete_blocked_time(
    blocked_time_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: CurrentUser = Depends(require_teacher),
    service: AvailabilityService = Depends(get_availability_service),
) -> Response:
    try:
        await asyncio.to_thread(
            service.delete_blocked_time, current_user.teacher_profile_id, blocked_time_id
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
