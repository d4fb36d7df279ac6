import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from shiptrack.core.errors import NotFoundError
from shiptrack.schemas import Shipment
from shiptrack.security.utils import now_utc


class DraftBook:
    """Unpaid shipment drafts, kept in process memory until paid or dropped."""

    def __init__(self, ttl_seconds: int = 900):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._drafts: Dict[str, Tuple[Shipment, datetime]] = {}
        # sync routes run in the threadpool, pay runs on the event loop
        self._lock = threading.Lock()

    def put(self, draft: Shipment) -> Shipment:
        with self._lock:
            self._purge()
            self._drafts[draft.id] = (draft, now_utc())
        return draft

    def get(self, draft_id: str, user_id: str) -> Shipment:
        with self._lock:
            self._purge()
            return self._owned(draft_id, user_id)

    def take(self, draft_id: str, user_id: str) -> Shipment:
        with self._lock:
            self._purge()
            draft = self._owned(draft_id, user_id)
            self._drafts.pop(draft_id, None)
            return draft

    def discard(self, draft_id: str, user_id: str) -> Optional[Shipment]:
        try:
            return self.take(draft_id, user_id)
        except NotFoundError:
            return None

    def __len__(self):
        with self._lock:
            return len(self._drafts)

    def _owned(self, draft_id: str, user_id: str) -> Shipment:
        entry = self._drafts.get(draft_id)
        if not entry or entry[0].user_id != user_id:
            raise NotFoundError("Draft not found")
        return entry[0]

    def _purge(self):
        cutoff = now_utc() - self.ttl
        for draft_id in [k for k, (_, stamp) in self._drafts.items() if stamp < cutoff]:
            del self._drafts[draft_id]
