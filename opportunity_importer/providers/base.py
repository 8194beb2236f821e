"""Interfaces of the external collaborators used by the import wizard."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Protocol, Sequence


class RecordStore(Protocol):
    """Persistent store holding contacts and opportunities."""

    def create_contact(self, fields: Mapping[str, Any]) -> Mapping[str, Any]:  # pragma: no cover - runtime protocol
        """Persist a contact and return the stored record, including its ``id``."""

    def create_opportunity(self, fields: Mapping[str, Any]) -> Mapping[str, Any]:  # pragma: no cover - runtime protocol
        """Persist an opportunity and return the stored record, including its ``id``."""


class OutreachProvider(Protocol):
    """Messaging service that delivers outreach messages at a paced rate."""

    def submit_batch(
        self,
        opportunity_ids: Sequence[str],
        pipeline_id: str,
        delay_ms: int,
    ) -> Mapping[str, Any]:  # pragma: no cover - runtime protocol
        """Queue one message per opportunity and return ``{"batch_id": ...}``."""

    def get_batch_results(self, batch_id: str) -> List[Dict[str, Any]]:  # pragma: no cover - runtime protocol
        """Return the delivery outcome of every item of the batch."""

    def delete_batch(self, batch_id: str) -> None:  # pragma: no cover - runtime protocol
        """Discard the stored results of the batch."""


__all__ = ["RecordStore", "OutreachProvider"]
