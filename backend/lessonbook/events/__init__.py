"""Domain events emitted after lessonbook transactions commit."""

from .lesson_events import InvoiceCreated, LessonBooked, LessonCancelled

__all__ = ["InvoiceCreated", "LessonBooked", "LessonCancelled"]
