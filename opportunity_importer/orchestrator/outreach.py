"""Hand-off of imported opportunities to the outreach provider."""
from __future__ import annotations

import logging
import math
from typing import Mapping, Optional, Sequence

from ..models import OutreachBatch
from ..providers.base import OutreachProvider
from ..rate_limit import CallGuard, CallTimeoutError

LOGGER = logging.getLogger(__name__)


class DispatchError(RuntimeError):
    """Raised when the outreach provider does not accept a batch."""

    title = "Outreach Failed"


def messages_per_minute(delay_ms: int) -> float:
    if delay_ms <= 0:
        return math.inf
    return 60_000 / delay_ms


def estimate_duration_minutes(count: int, delay_ms: int) -> int:
    """Whole minutes needed to deliver ``count`` messages ``delay_ms`` apart."""

    return math.ceil(count * delay_ms / 60_000)


class OutreachDispatcher:
    """Submits one batch per import run; pacing is left to the provider."""

    def __init__(self, provider: OutreachProvider, *, call_timeout: Optional[float] = None) -> None:
        self._provider = provider
        self._guard = CallGuard(call_timeout, name="outreach-submit")

    def dispatch(self, opportunity_ids: Sequence[str], pipeline_id: str, delay_ms: int) -> Optional[OutreachBatch]:
        """Submit ``opportunity_ids`` as a single batch.

        Returns ``None`` without contacting the provider when there is nothing
        to send. Any provider failure surfaces as :class:`DispatchError`; the
        submission is never retried.
        """

        if not opportunity_ids:
            LOGGER.info("No opportunities to reach out to - skipping outreach")
            return None

        ids = tuple(opportunity_ids)
        LOGGER.info("Starting bulk outreach for %s opportunities (%sms apart)", len(ids), delay_ms)
        try:
            response = self._guard.call(
                self._provider.submit_batch,
                list(ids),
                pipeline_id,
                delay_ms,
                label="Submitting outreach batch",
            )
        except CallTimeoutError as exc:
            raise DispatchError(str(exc)) from exc
        except Exception as exc:
            LOGGER.exception("Outreach provider rejected the batch")
            raise DispatchError(f"Failed to start outreach messages: {exc}") from exc

        if not isinstance(response, Mapping):
            raise DispatchError(f"Failed to start outreach messages: unexpected response {response!r}")
        if response.get("success") is False or not response.get("batch_id"):
            error = response.get("error") or "Provider did not return a batch id"
            raise DispatchError(f"Failed to start outreach messages: {error}")

        batch = OutreachBatch(
            batch_id=str(response["batch_id"]),
            opportunity_ids=ids,
            delay_ms=delay_ms,
            pipeline_id=pipeline_id,
        )
        LOGGER.info("Outreach started: %s", batch.batch_id)
        return batch

    def close(self) -> None:
        self._guard.close()


__all__ = [
    "DispatchError",
    "OutreachDispatcher",
    "estimate_duration_minutes",
    "messages_per_minute",
]
