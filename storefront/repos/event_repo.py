# storefront/repos/event_repo.py
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.processed_event import ProcessedEventModel, EVENT_ERRORED
from storefront.domain.errors import EventAlreadyRecorded
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class EventRepo:
    """
    Rejestr przetworzonych eventow Stripe (idempotencja webhooka).
    Jeden wiersz na event id - unikalnosc pilnuje klucz glowny.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str) -> ProcessedEventModel | None:
        return self.db.get(ProcessedEventModel, event_id, populate_existing=True)

    def lock(self, event_id: str) -> ProcessedEventModel | None:
        # SELECT ... FOR UPDATE na czas transakcji (sqlite ignoruje)
        return self.db.get(ProcessedEventModel, event_id, with_for_update=True, populate_existing=True)

    def record(
        self,
        event_id: str,
        event_type: str,
        status: str,
        error: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> ProcessedEventModel:
        """
        Insert albo nadpisanie wiersza errored; tylko flush, commit robi serwis.
        Wiersz terminalny (zapisany przez rownolegle dostarczenie) -> EventAlreadyRecorded.
        """
        row = self.db.get(ProcessedEventModel, event_id, with_for_update=True, populate_existing=True)
        if row is None:
            row = ProcessedEventModel(id=event_id, type=event_type, status=status, error=error, payload=payload)
            self.db.add(row)
        elif row.status != EVENT_ERRORED:
            raise EventAlreadyRecorded(event_id, row.status)
        else:
            row.status = status
            row.error = error
            row.processed_at = datetime.now(timezone.utc)
        self.db.flush()
        return row

    def record_error(
        self,
        event_id: str,
        event_type: str,
        error: str,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        """
        Zapis awarii w osobnej transakcji (po rollbacku jednostki pracy).
        Nigdy nie nadpisuje wiersza terminalnego.
        """
        try:
            row = self.db.get(ProcessedEventModel, event_id, with_for_update=True, populate_existing=True)
            if row is None:
                self.db.add(
                    ProcessedEventModel(id=event_id, type=event_type, status=EVENT_ERRORED, error=error, payload=payload)
                )
            elif row.status == EVENT_ERRORED:
                row.error = error
                row.processed_at = datetime.now(timezone.utc)
            else:
                logger.info(f"Event {event_id} already recorded as {row.status}, keeping it")
            self.db.commit()
        except IntegrityError:
            # rownolegle dostarczenie zdazylo zapisac wiersz
            self.db.rollback()
            logger.info(f"Event {event_id} recorded concurrently, error row skipped")
