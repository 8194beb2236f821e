"""Retrieval, aggregation, export and cleanup of outreach delivery results."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, List, Mapping, Optional

from ..ingestion.exporters import export_filename, export_results_csv
from ..models import FAILED, PENDING, SKIPPED, SUCCESS, OutreachResult, OutreachSummary
from ..providers.base import OutreachProvider
from ..rate_limit import CallGuard

LOGGER = logging.getLogger(__name__)


class ResultFetchError(RuntimeError):
    """Raised when the delivery results of a batch cannot be retrieved."""


def summarize(results: Iterable[OutreachResult]) -> OutreachSummary:
    """Partition results by delivery status, keeping their original order."""

    summary = OutreachSummary()
    buckets = {
        SUCCESS: summary.successful,
        FAILED: summary.failed,
        PENDING: summary.pending,
        SKIPPED: summary.skipped,
    }
    for result in results:
        bucket = buckets.get(result.response_status)
        if bucket is None:
            LOGGER.warning("Treating unknown delivery status %r as skipped", result.response_status)
            bucket = summary.skipped
        bucket.append(result)
    return summary


def _parse_results(payload: Any) -> List[OutreachResult]:
    if payload is None:
        return []
    if isinstance(payload, (str, bytes, Mapping)):
        raise TypeError(f"Expected a list of results, got {type(payload).__name__}")
    results = []
    for item in payload:
        if not isinstance(item, Mapping):
            raise TypeError(f"Expected a result mapping, got {type(item).__name__}")
        results.append(OutreachResult.from_mapping(item))
    return results


class BatchResultStore:
    """Reads the per-item outcomes of an outreach batch from the provider."""

    def __init__(
        self,
        provider: OutreachProvider,
        *,
        call_timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = provider
        self._guard = CallGuard(call_timeout, name="outreach-results")
        self._sleep = sleep
        self._clock = clock

    def fetch_results(self, batch_id: str) -> List[OutreachResult]:
        try:
            payload = self._guard.call(
                self._provider.get_batch_results,
                batch_id,
                label="Fetching outreach results",
            )
            return _parse_results(payload)
        except Exception as exc:
            LOGGER.warning("Failed to fetch outreach results for batch %s: %s", batch_id, exc)
            raise ResultFetchError("Failed to fetch outreach results") from exc

    def wait_for_completion(
        self,
        batch_id: str,
        *,
        poll_interval: float,
        max_wait: float,
    ) -> List[OutreachResult]:
        """Poll until no result is pending or ``max_wait`` seconds have passed.

        Returns the last fetched results, which may still contain pending
        items when the deadline is hit.
        """

        deadline = self._clock() + max_wait
        while True:
            results = self.fetch_results(batch_id)
            pending = sum(1 for result in results if not result.is_terminal)
            if not pending:
                return results
            remaining = deadline - self._clock()
            if remaining <= 0:
                LOGGER.warning("Stopped waiting for batch %s with %s item(s) still pending", batch_id, pending)
                return results
            LOGGER.debug("Batch %s has %s pending item(s); polling again", batch_id, pending)
            self._sleep(min(poll_interval, remaining))

    def export_csv(self, results: List[OutreachResult]) -> bytes:
        return export_results_csv(results)

    @staticmethod
    def export_filename(batch_id: str) -> str:
        return export_filename(batch_id)

    def cleanup(self, batch_id: str) -> None:
        """Ask the provider to discard the batch; failures are logged, not raised."""

        if not batch_id:
            LOGGER.warning("Missing batch id for cleanup")
            return
        try:
            self._guard.call(
                self._provider.delete_batch,
                batch_id,
                label="Deleting outreach batch",
            )
        except Exception:
            LOGGER.exception("Failed to clean up outreach results for batch %s", batch_id)
            return
        LOGGER.info("Cleaned up outreach results for batch %s", batch_id)

    def close(self) -> None:
        self._guard.close()


__all__ = ["BatchResultStore", "ResultFetchError", "summarize"]
