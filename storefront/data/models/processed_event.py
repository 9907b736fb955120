from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, DateTime, JSON

from storefront.data.database import Base

EVENT_SUCCEEDED = "succeeded"
EVENT_FAILED = "failed"
# zapis awarii przetwarzania - widoczny dla operatora, ale Stripe moze dostarczyc ponownie
EVENT_ERRORED = "errored"

TERMINAL_STATUSES = (EVENT_SUCCEEDED, EVENT_FAILED)


class ProcessedEventModel(Base):
    __tablename__ = "processed_events"

    # id eventu Stripe (evt_...), klucz idempotencji
    id = Column(String(255), primary_key=True)
    type = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False)
    error = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
