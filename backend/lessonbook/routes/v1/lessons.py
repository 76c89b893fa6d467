# backend/lessonbook/routes/v1/lessons.py
"""
Lesson routes - API v1

Endpoints:
    POST   /book-for-student   → Book a single or recurring lesson (teacher)
    GET    /{lesson_id}        → Lesson detail (teacher or student of the lesson)
    PUT    /{lesson_id}        → Update notes/status (teacher)
    DELETE /{lesson_id}        → Cancel a scheduled future lesson
"""

import asyncio
import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query, status
from fastapi.params import Path

from ...api.dependencies import (
    CurrentUser,
    get_booking_service,
    get_current_user,
    require_teacher,
)
from ...core.exceptions import DomainException, ForbiddenException, RepositoryException
from ...models.lesson import LessonStatus
from ...schemas.lesson import (
    BookLessonRequest,
    LessonCancellationResponse,
    LessonResponse,
    RecurringBookingResponse,
    RecurringSlotResponse,
    SingleBookingResponse,
    SkippedOccurrenceResponse,
    UpdateLessonRequest,
)
from ...services.booking_service import BookingMode, BookingService
from .common import (
    ERROR_RESPONSES,
    ULID_PATH_PATTERN,
    handle_domain_exception,
    handle_repository_exception,
)

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["lessons-v1"])


@router.post(
    "/book-for-student",
    response_model=Union[SingleBookingResponse, RecurringBookingResponse],
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def book_for_student(
    payload: BookLessonRequest,
    current_user: CurrentUser = Depends(require_teacher),
    service: BookingService = Depends(get_booking_service),
) -> Union[SingleBookingResponse, RecurringBookingResponse]:
    """Book a lesson for one of the calling teacher's students."""
    if not current_user.is_admin and payload.teacher_id != current_user.teacher_profile_id:
        handle_domain_exception(
            ForbiddenException("You can only book lessons on your own calendar", code="NOT_TEACHER")
        )
    try:
        result = await asyncio.to_thread(
            service.book_lesson,
            payload.teacher_id,
            payload.student_id,
            payload.date,
            payload.duration,
            BookingMode(payload.type),
            payload.recurring_weeks,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except RepositoryException as exc:
        handle_repository_exception(exc)

    if result.mode == BookingMode.RECURRING and result.recurring_slot is not None:
        return RecurringBookingResponse(
            recurring_slot=RecurringSlotResponse.model_validate(result.recurring_slot),
            first_lesson=LessonResponse.model_validate(result.lesson),
            lessons_created=len(result.lessons),
            skipped_occurrences=[
                SkippedOccurrenceResponse(**skipped.to_dict()) for skipped in result.skipped
            ],
        )
    return SingleBookingResponse(
        lesson=LessonResponse.model_validate(result.lesson),
        invoice_id=result.invoice.id if result.invoice else None,
        invoice_number=result.invoice.invoice_number if result.invoice else None,
    )


@router.get("/{lesson_id}", response_model=LessonResponse, responses=ERROR_RESPONSES)
async def get_lesson(
    lesson_id: str = Path(..., description="Lesson ULID", pattern=ULID_PATH_PATTERN),
    current_user: CurrentUser = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
) -> LessonResponse:
    teacher_id = None if current_user.is_admin else current_user.teacher_profile_id
    student_id = None
    if not current_user.is_admin and teacher_id is None:
        student_id = current_user.student_profile_id or ""
    try:
        lesson = await asyncio.to_thread(service.get_lesson, lesson_id, teacher_id, student_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return LessonResponse.model_validate(lesson)


@router.put("/{lesson_id}", response_model=LessonResponse, responses=ERROR_RESPONSES)
async def update_lesson(
    payload: UpdateLessonRequest,
    lesson_id: str = Path(..., description="Lesson ULID", pattern=ULID_PATH_PATTERN),
    current_user: CurrentUser = Depends(require_teacher),
    service: BookingService = Depends(get_booking_service),
) -> LessonResponse:
    """Teacher-only: set notes or move SCHEDULED to COMPLETED/CANCELLED."""
    try:
        lesson = await asyncio.to_thread(
            service.update_lesson,
            lesson_id,
            current_user.teacher_profile_id,
            payload.notes,
            LessonStatus(payload.status) if payload.status else None,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except RepositoryException as exc:
        handle_repository_exception(exc)
    return LessonResponse.model_validate(lesson)


@router.delete("/{lesson_id}", response_model=LessonCancellationResponse, responses=ERROR_RESPONSES)
async def cancel_lesson(
    lesson_id: str = Path(..., description="Lesson ULID", pattern=ULID_PATH_PATTERN),
    reason: Optional[str] = Query(None, max_length=500),
    cancel_all_recurring: bool = Query(False, alias="cancelAllRecurring"),
    current_user: CurrentUser = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
) -> LessonCancellationResponse:
    teacher_id = current_user.teacher_profile_id
    student_id = None if teacher_id else current_user.student_profile_id
    if current_user.is_admin:
        teacher_id = student_id = None
    elif teacher_id is None and student_id is None:
        handle_domain_exception(ForbiddenException("No lesson profile for this user"))
    try:
        result = await asyncio.to_thread(
            service.cancel_lesson,
            lesson_id,
            teacher_id,
            student_id,
            reason,
            cancel_all_recurring,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except RepositoryException as exc:
        handle_repository_exception(exc)
    return LessonCancellationResponse(
        lesson=LessonResponse.model_validate(result.lesson),
        cancelled_lesson_ids=result.cancelled_lesson_ids,
        recurring_slot_cancelled=result.recurring_slot_cancelled,
    )
