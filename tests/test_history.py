"""Tests for history reconstruction from the bulk store calls."""

from __future__ import annotations

import copy

import pytest

from moonbridge.config.settings import RuntimeConfig
from moonbridge.const import HISTORY_TARGET_LENGTH, HISTORY_WINDOW
from moonbridge.protocol.structures import SensorSeries
from moonbridge.services.base import LoggingCollaborators
from moonbridge.services.console import ConsoleComponent
from moonbridge.services.history import (
    HistoryReconstructor,
    build_chart_window,
    normalize_sensor,
    normalize_series,
)
from moonbridge.state.context import SessionState


@pytest.fixture
def history(runtime_config: RuntimeConfig, session_state: SessionState, fake_clock) -> HistoryReconstructor:
    console = ConsoleComponent(
        runtime_config,
        session_state,
        config_provider=LoggingCollaborators(runtime_config),
        clock=fake_clock,
    )
    return HistoryReconstructor(session_state, console, clock=fake_clock)


def test_short_series_is_padded_with_first_sample() -> None:
    series = normalize_sensor("extruder", SensorSeries(temperatures=[20.0, 21.0], targets=[0.0, 200.0]), target_length=5)

    assert series.temperatures == [20.0, 20.0, 20.0, 20.0, 21.0]
    assert series.targets == [0.0, 0.0, 0.0, 0.0, 200.0]


def test_long_series_keeps_most_recent_samples() -> None:
    series = normalize_sensor("extruder", SensorSeries(temperatures=[1.0, 2.0, 3.0, 4.0]), target_length=2)
    assert series.temperatures == [3.0, 4.0]


def test_empty_series_is_zero_filled() -> None:
    series = normalize_sensor("heater_bed", SensorSeries(), target_length=3)
    assert series.temperatures == [0.0, 0.0, 0.0]


def test_sensor_targets_are_dropped() -> None:
    series = normalize_sensor(
        "temperature_probe eddy",
        SensorSeries(temperatures=[30.0], targets=[0.0]),
        target_length=2,
    )
    assert series.targets is None


def test_normalize_series_does_not_mutate_payload() -> None:
    payload = {"extruder": {"temperatures": [20.0], "targets": [0.0], "powers": [0.0]}}
    original = copy.deepcopy(payload)

    normalized = normalize_series(payload, target_length=4)

    assert payload == original
    assert normalized["extruder"].powers == [0.0, 0.0, 0.0, 0.0]


def test_chart_window_uses_most_recent_half() -> None:
    series = {"heater_bed": SensorSeries(temperatures=[float(i) for i in range(8)])}
    points = build_chart_window(series, 100.0, window_size=4)

    assert [point.values["heater_bed"] for point in points] == [4.0, 5.0, 6.0, 7.0]
    assert [point.timestamp for point in points] == [96.0, 97.0, 98.0, 99.0]


def test_temperature_store_seeds_full_window(history: HistoryReconstructor, session_state: SessionState, fake_clock) -> None:
    payload = {
        "extruder": {
            "temperatures": [200.0] * 1000,
            "targets": [210.0] * 1000,
            "powers": [0.4] * 1000,
        },
        "temperature_sensor chamber": {
            "temperatures": [35.0] * HISTORY_TARGET_LENGTH,
            "targets": [0.0] * HISTORY_TARGET_LENGTH,
        },
    }

    points = history.on_temperature_store(payload)

    assert len(points) == HISTORY_WINDOW
    assert len(session_state.series["extruder"].temperatures) == HISTORY_TARGET_LENGTH
    assert session_state.series["temperature_sensor chamber"].targets is None
    for point in points:
        assert set(point.values) == {"extruder", "extruderTarget", "extruderPower", "chamber"}
    assert points[-1].timestamp == pytest.approx(fake_clock.now - 1)
    assert len(session_state.chart) == HISTORY_WINDOW


def test_temperature_store_rejects_non_mapping(history: HistoryReconstructor) -> None:
    with pytest.raises(TypeError):
        history.on_temperature_store([1, 2, 3])


def test_gcode_store_replays_with_prefix(history: HistoryReconstructor, session_state: SessionState) -> None:
    session_state.console_receive_prefix = "> "
    payload = {
        "gcode_store": [
            {"message": "G28", "time": 1700000000.5, "type": "command"},
            {"message": "ok\nB:60", "time": 1700000001.0, "type": "response"},
            "garbage",
        ]
    }

    assert history.on_gcode_store(payload) == 2

    entries = session_state.console.snapshot()
    assert [entry.message for entry in entries] == ["> G28", "> ok<br />B:60"]
    assert entries[0].time == 1700000000


def test_thousand_samples_window_matches_padded_index() -> None:
    raw = {"extruder": {"temperatures": [float(i) for i in range(1000)]}}
    series = normalize_series(raw)
    padded = series["extruder"].temperatures

    points = build_chart_window(series, 5000.0)

    assert len(padded) == HISTORY_TARGET_LENGTH
    assert padded[:200] == [0.0] * 200
    assert len(points) == HISTORY_WINDOW
    assert points[0].values["extruder"] == padded[HISTORY_WINDOW]
    assert points[-1].values["extruder"] == 999.0
    assert "extruderTarget" not in points[0].values
