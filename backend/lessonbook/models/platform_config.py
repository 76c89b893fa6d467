"""Database model for runtime system settings."""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer

from ..database import Base
from .types import UTCDateTime, utc_now

SYSTEM_SETTINGS_ID = 1


class SystemSettings(Base):
    """Singleton row of admin-editable settings (id is always 1)."""

    __tablename__ = "system_settings"

    id = Column(Integer, primary_key=True, default=SYSTEM_SETTINGS_ID)
    default_invoice_due_days = Column(Integer, nullable=False, default=30)
    enable_booking_confirmations = Column(Boolean, nullable=False, default=True)
    enable_invoice_notifications = Column(Boolean, nullable=False, default=True)
    enable_reminder_emails = Column(Boolean, nullable=False, default=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint("id = 1", name="check_system_settings_singleton"),
        CheckConstraint("default_invoice_due_days >= 0", name="check_due_days_non_negative"),
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<SystemSettings due_days={self.default_invoice_due_days}>"


__all__ = ["SystemSettings", "SYSTEM_SETTINGS_ID"]
