"""Tests for bounded session buffers."""

from __future__ import annotations

import msgspec
import pytest

from moonbridge.protocol.structures import ChartPoint
from moonbridge.state.queues import BoundedDeque, ChartBuffer


def test_append_evicts_oldest() -> None:
    queue = BoundedDeque(max_items=2)
    assert queue.append("a") == 0
    assert queue.append("b") == 0
    assert queue.append("c") == 1

    assert queue.snapshot() == ["b", "c"]
    assert queue.dropped == 1


def test_update_limit_trims_existing_items() -> None:
    queue = BoundedDeque(max_items=5)
    queue.extend(range(5))

    queue.update_limit(3)

    assert list(queue) == [2, 3, 4]
    assert queue.dropped == 2


def test_update_limit_rejects_zero() -> None:
    queue = BoundedDeque()
    with pytest.raises(msgspec.ValidationError):
        queue.update_limit(0)


def test_unbounded_queue_never_drops() -> None:
    queue = BoundedDeque()
    assert queue.extend(range(100)) == 0
    assert len(queue) == 100


def test_chart_buffer_last() -> None:
    chart = ChartBuffer(max_items=10)
    assert chart.last is None
    assert not chart

    chart.append(ChartPoint(timestamp=1.0, values={"extruder": 20.0}))
    chart.append(ChartPoint(timestamp=2.0, values={"extruder": 21.0}))

    assert chart.last is not None
    assert chart.last.timestamp == 2.0
    assert chart[0].timestamp == 1.0
