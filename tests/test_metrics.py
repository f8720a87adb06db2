"""Tests for the metrics counters."""

import json

import pytest

from postfix_aggregator.metrics import COUNTERS, Metrics


def test_counters_start_at_zero():
    m = Metrics()
    assert m.snapshot()["counters"] == dict.fromkeys(COUNTERS, 0)
    assert m.snapshot()["last_cycle"] is None


def test_normalizer_hooks():
    m = Metrics()
    m.line_read()
    m.line_read()
    m.event_queued()
    m.line_ignored()
    assert m.get("lines_read") == 2
    assert m.get("events_queued") == 1
    assert m.get("lines_ignored") == 1
    assert m.get("parse_errors") == 0


def test_cycle_succeeded_accumulates():
    m = Metrics()
    m.cycle_failed()
    m.cycle_succeeded(created=3, updated=1, resolved=1)
    m.cycle_succeeded(created=2, updated=0, resolved=0, shape_errors=2)
    assert m.get("cycles_failed") == 1
    assert m.get("cycles_succeeded") == 2
    assert m.get("documents_created") == 5
    assert m.get("documents_updated") == 1
    assert m.get("orphans_resolved") == 1
    assert m.get("shape_errors") == 2
    assert m.snapshot()["last_cycle"] is not None


def test_unknown_counter_raises():
    with pytest.raises(KeyError):
        Metrics().get("never_touched")


def test_save_writes_snapshot(tmp_path):
    path = tmp_path / "spool" / "metrics.json"
    m = Metrics(str(path))
    m.line_read()
    m.parse_error()
    m.save()
    data = json.loads(path.read_text())
    assert set(data["counters"]) == set(COUNTERS)
    assert data["counters"]["lines_read"] == 1
    assert data["counters"]["parse_errors"] == 1
    assert "uptime_seconds" in data


def test_save_without_path_is_noop(tmp_path):
    Metrics().save()
    assert list(tmp_path.iterdir()) == []
