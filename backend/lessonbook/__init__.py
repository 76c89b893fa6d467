"""lessonbook: booking, conflict and billing engine for music teachers."""

__version__ = "0.1.0"
