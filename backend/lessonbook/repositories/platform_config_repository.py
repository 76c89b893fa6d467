"""Repository for the system settings singleton."""

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.platform_config import SYSTEM_SETTINGS_ID, SystemSettings
from .base_repository import BaseRepository


class SystemSettingsRepository(BaseRepository[SystemSettings]):
    def __init__(self, db: Session):
        super().__init__(db, SystemSettings)

    def get(self) -> SystemSettings:
        """
        Return the persisted settings row, or an unsaved row carrying the
        environment defaults when none has been written yet.
        """
        row = self.db.get(SystemSettings, SYSTEM_SETTINGS_ID)
        if row is not None:
            return row
        return SystemSettings(
            id=SYSTEM_SETTINGS_ID,
            default_invoice_due_days=settings.default_invoice_due_days,
            enable_booking_confirmations=True,
            enable_invoice_notifications=True,
            enable_reminder_emails=True,
        )

    def upsert(self, **values) -> SystemSettings:
        row = self.db.get(SystemSettings, SYSTEM_SETTINGS_ID)
        if row is None:
            row = self.get()
            self.db.add(row)
        for key, value in values.items():
            setattr(row, key, value)
        self.db.flush()
        return row
