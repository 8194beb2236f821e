"""Example collaborators that keep everything in process memory."""
from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..models import FAILED, PENDING, SUCCESS
from ..rate_limit import RateLimiter

LOGGER = logging.getLogger(__name__)


class InMemoryRecordStore:
    """Record store that assigns ids and keeps the records in dictionaries."""

    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.contacts: Dict[str, Dict[str, Any]] = {}
        self.opportunities: Dict[str, Dict[str, Any]] = {}

    def create_contact(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        record = {"id": f"contact-{uuid.uuid4().hex[:12]}", **fields}
        with self._lock:
            self.contacts[record["id"]] = record
        return dict(record)

    def create_opportunity(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        if fields.get("contact_id") not in self.contacts:
            raise KeyError(f"Unknown contact '{fields.get('contact_id')}'")
        record = {"id": f"opp-{uuid.uuid4().hex[:12]}", **fields}
        with self._lock:
            self.opportunities[record["id"]] = record
        return dict(record)

    def get_opportunity(self, opportunity_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self.opportunities.get(opportunity_id)
        return dict(record) if record else None


class LoopbackOutreachProvider:
    """Outreach provider that "delivers" messages locally at the requested pace.

    Each submitted batch gets a background thread which marks one item per
    ``delay_ms`` as delivered. Phones listed in ``fail_phones`` are reported as
    failed instead.
    """

    name = "loopback"

    def __init__(
        self,
        record_store: Optional[InMemoryRecordStore] = None,
        *,
        fail_phones: Iterable[str] = (),
    ) -> None:
        self._record_store = record_store
        self._fail_phones = set(fail_phones)
        self._lock = threading.Lock()
        self._results: Dict[str, List[Dict[str, Any]]] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._workers: Dict[str, threading.Thread] = {}

    def submit_batch(self, opportunity_ids: Sequence[str], pipeline_id: str, delay_ms: int) -> Dict[str, Any]:
        if not opportunity_ids:
            raise ValueError("A batch needs at least one opportunity id")

        batch_id = f"batch-{uuid.uuid4().hex[:12]}"
        items = [self._pending_item(batch_id, index, opportunity_id) for index, opportunity_id in enumerate(opportunity_ids, start=1)]
        cancel_event = threading.Event()
        worker = threading.Thread(
            target=self._deliver,
            args=(batch_id, RateLimiter.from_delay_ms(delay_ms), cancel_event),
            name=f"outreach-{batch_id}",
            daemon=True,
        )
        with self._lock:
            self._results[batch_id] = items
            self._cancel_events[batch_id] = cancel_event
            self._workers[batch_id] = worker
        worker.start()
        LOGGER.info("Accepted batch %s for pipeline %s (%s items, %sms apart)", batch_id, pipeline_id, len(items), delay_ms)
        return {"success": True, "batch_id": batch_id, "processed": len(items)}

    def get_batch_results(self, batch_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            if batch_id not in self._results:
                raise KeyError(f"Unknown batch '{batch_id}'")
            return [dict(item) for item in self._results[batch_id]]

    def delete_batch(self, batch_id: str) -> None:
        with self._lock:
            cancel_event = self._cancel_events.pop(batch_id, None)
            self._results.pop(batch_id, None)
            self._workers.pop(batch_id, None)
        if cancel_event:
            cancel_event.set()

    def join(self, batch_id: str, timeout: Optional[float] = None) -> None:
        """Block until the delivery thread of ``batch_id`` finishes."""

        with self._lock:
            worker = self._workers.get(batch_id)
        if worker:
            worker.join(timeout)

    # ------------------------------------------------------------------
    def _pending_item(self, batch_id: str, index: int, opportunity_id: str) -> Dict[str, Any]:
        opportunity = self._record_store.get_opportunity(opportunity_id) if self._record_store else None
        opportunity = opportunity or {}
        return {
            "id": f"{batch_id}-{index}",
            "opportunity_id": opportunity_id,
            "opportunity_name": opportunity.get("opportunity_name", ""),
            "client_name": opportunity.get("client_name", ""),
            "client_phone": opportunity.get("client_phone_number", ""),
            "response_status": PENDING,
            "timestamp": _now(),
        }

    def _deliver(self, batch_id: str, limiter: RateLimiter, cancel_event: threading.Event) -> None:
        with self._lock:
            count = len(self._results.get(batch_id, []))
        for index in range(count):
            limiter.acquire()
            if cancel_event.is_set():
                LOGGER.debug("Delivery of batch %s stopped after deletion", batch_id)
                return
            with self._lock:
                items = self._results.get(batch_id)
                if items is None:
                    return
                item = items[index]
                item["response_status"] = FAILED if item["client_phone"] in self._fail_phones else SUCCESS
                item["timestamp"] = _now()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


__all__ = ["InMemoryRecordStore", "LoopbackOutreachProvider"]
