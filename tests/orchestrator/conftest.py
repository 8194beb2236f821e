from __future__ import annotations

import contextlib
import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import pytest

from opportunity_importer.models import Pipeline, Stage, ValidatedRecord


class FakeRecordStore:
    """Record store that numbers its records and can be told to fail or hang."""

    def __init__(
        self,
        *,
        failing_contacts: Sequence[str] = (),
        failing_opportunities: Sequence[str] = (),
        hanging: Sequence[str] = (),
    ) -> None:
        self.failing_contacts = set(failing_contacts)
        self.failing_opportunities = set(failing_opportunities)
        self.hanging = set(hanging)
        self.release = threading.Event()
        self.calls: List[tuple] = []
        self.contacts: Dict[str, Dict[str, Any]] = {}
        self.opportunities: Dict[str, Dict[str, Any]] = {}
        self._in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def create_contact(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        with self._track():
            self.calls.append(("contact", fields["name"]))
            if fields["name"] in self.hanging:
                self.release.wait(5)
            if fields["name"] in self.failing_contacts:
                raise ConnectionError("contact service unavailable")
            contact_id = f"contact-{len(self.contacts) + 1}"
            self.contacts[contact_id] = dict(fields)
            return {"id": contact_id, **fields}

    def create_opportunity(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        with self._track():
            self.calls.append(("opportunity", fields["client_name"]))
            if fields["client_name"] in self.failing_opportunities:
                raise ValueError("duplicate opportunity")
            opportunity_id = f"opp-{len(self.opportunities) + 1}"
            self.opportunities[opportunity_id] = dict(fields)
            return {"id": opportunity_id, **fields}

    @contextlib.contextmanager
    def _track(self) -> Iterator[None]:
        with self._lock:
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight -= 1


class FakeOutreachProvider:
    """Outreach provider that records every call and serves canned results."""

    def __init__(self, *, fail_submit: bool = False, fail_fetch: bool = False, fail_delete: bool = False) -> None:
        self.fail_submit = fail_submit
        self.fail_fetch = fail_fetch
        self.fail_delete = fail_delete
        self.submissions: List[Dict[str, Any]] = []
        self.deleted: List[str] = []
        self.fetches: List[str] = []
        self.results: Dict[str, List[Dict[str, Any]]] = {}
        self.responses: List[List[Dict[str, Any]]] = []

    def submit_batch(self, opportunity_ids: Sequence[str], pipeline_id: str, delay_ms: int) -> Dict[str, Any]:
        if self.fail_submit:
            raise ConnectionError("webhook unreachable")
        self.submissions.append(
            {"opportunity_ids": list(opportunity_ids), "pipeline_id": pipeline_id, "delay_ms": delay_ms}
        )
        batch_id = f"batch-{len(self.submissions)}"
        self.results[batch_id] = [
            {
                "id": f"{batch_id}-{index}",
                "opportunity_id": opportunity_id,
                "opportunity_name": f"{opportunity_id} - Opportunity",
                "client_name": opportunity_id,
                "client_phone": "5550100",
                "response_status": "pending",
                "timestamp": "2024-05-01T10:00:00+00:00",
            }
            for index, opportunity_id in enumerate(opportunity_ids, start=1)
        ]
        return {"success": True, "batch_id": batch_id}

    def get_batch_results(self, batch_id: str) -> List[Dict[str, Any]]:
        self.fetches.append(batch_id)
        if self.fail_fetch:
            raise ConnectionError("results service unavailable")
        if self.responses:
            return self.responses.pop(0)
        return [dict(item) for item in self.results.get(batch_id, [])]

    def delete_batch(self, batch_id: str) -> None:
        self.deleted.append(batch_id)
        if self.fail_delete:
            raise ConnectionError("cleanup failed")


def make_record(name: str, phone: str = "5550100123", *, errors: Optional[Sequence[str]] = None) -> ValidatedRecord:
    return ValidatedRecord(
        client_name=name,
        phone=phone,
        preferred_language="English",
        preferred_dialect="American",
        email=f"{name.lower()}@example.com",
        errors=tuple(errors or ()),
    )


@pytest.fixture()
def pipeline() -> Pipeline:
    return Pipeline(
        id="pipe-1",
        pipeline_name="Sales Pipeline",
        connector_account_id="acc-1",
        stages=(Stage("stage-new", "New Lead", opening_message=True), Stage("stage-warm", "Warm")),
    )


@pytest.fixture()
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture()
def provider() -> FakeOutreachProvider:
    return FakeOutreachProvider()


@pytest.fixture()
def store_factory():
    return FakeRecordStore


@pytest.fixture()
def provider_factory():
    return FakeOutreachProvider


@pytest.fixture(name="make_record")
def make_record_fixture():
    return make_record
