from __future__ import annotations

import math

import pytest

from opportunity_importer.orchestrator.outreach import (
    DispatchError,
    OutreachDispatcher,
    estimate_duration_minutes,
    messages_per_minute,
)


def test_empty_batch_is_not_submitted(provider) -> None:
    assert OutreachDispatcher(provider).dispatch([], "pipe-1", 5_000) is None
    assert provider.submissions == []


def test_dispatch_submits_every_id_once(provider) -> None:
    batch = OutreachDispatcher(provider).dispatch(["opp-1", "opp-2"], "pipe-1", 10_000)

    assert provider.submissions == [
        {"opportunity_ids": ["opp-1", "opp-2"], "pipeline_id": "pipe-1", "delay_ms": 10_000}
    ]
    assert batch.batch_id == "batch-1"
    assert batch.opportunity_ids == ("opp-1", "opp-2")
    assert batch.delay_ms == 10_000
    assert batch.pipeline_id == "pipe-1"


def test_provider_failure_raises_dispatch_error(provider_factory) -> None:
    provider = provider_factory(fail_submit=True)

    with pytest.raises(DispatchError, match="webhook unreachable"):
        OutreachDispatcher(provider).dispatch(["opp-1"], "pipe-1", 5_000)

    assert DispatchError.title == "Outreach Failed"


@pytest.mark.parametrize(
    "response",
    [
        {},
        {"success": True},
        {"success": False, "batch_id": "batch-9", "error": "quota exceeded"},
        None,
        "batch-9",
        ["batch-9"],
    ],
)
def test_unusable_responses_raise_dispatch_error(response) -> None:
    class Provider:
        calls = 0

        def submit_batch(self, opportunity_ids, pipeline_id, delay_ms):
            Provider.calls += 1
            return response

    with pytest.raises(DispatchError):
        OutreachDispatcher(Provider()).dispatch(["opp-1"], "pipe-1", 5_000)

    assert Provider.calls == 1


def test_rate_and_duration_estimates() -> None:
    assert messages_per_minute(10_000) == pytest.approx(6.0)
    assert messages_per_minute(5_000) == pytest.approx(12.0)
    assert messages_per_minute(0) == math.inf
    assert estimate_duration_minutes(7, 10_000) == 2
    assert estimate_duration_minutes(12, 5_000) == 1
    assert estimate_duration_minutes(0, 5_000) == 0
