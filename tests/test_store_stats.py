from __future__ import annotations

import threading

import pytest

from framewise.pipeline.stats import StatsTracker
from framewise.pipeline.store import TimedResultStore
from framewise.types import BoundingBox, Detection, TrackInfo


def det(label: str) -> Detection:
    return Detection(
        box=BoundingBox(0.1, 0.1, 0.2, 0.2),
        label=label,
        confidence=0.9,
        track=TrackInfo(track_id=1, color=(0, 0, 0), opacity=1.0),
    )


def test_nearest_on_empty_store_is_empty() -> None:
    store = TimedResultStore()
    assert store.nearest(3.0, 0.5) == ()
    assert store.nearest_result(3.0) is None


def test_nearest_respects_tolerance() -> None:
    store = TimedResultStore()
    store.put(9.0, [det("a")])
    store.put(10.0, [det("b")])
    store.put(11.0, [det("c")])

    assert [d.label for d in store.nearest(10.3, 0.5)] == ["b"]
    assert store.nearest(10.3, 0.2) == ()


def test_nearest_tie_prefers_smaller_timestamp() -> None:
    store = TimedResultStore()
    store.put(2.0, [det("late")])
    store.put(1.0, [det("early")])
    assert [d.label for d in store.nearest(1.5, 1.0)] == ["early"]


def test_nearest_beyond_either_end() -> None:
    store = TimedResultStore()
    store.put(1.0, [det("first")])
    store.put(5.0, [det("last")])
    assert [d.label for d in store.nearest(0.7)] == ["first"]
    assert [d.label for d in store.nearest(5.4)] == ["last"]
    assert store.nearest(6.0) == ()


def test_put_replaces_existing_key() -> None:
    store = TimedResultStore()
    store.put(1.0, [det("old")])
    store.put(1.0, [det("new"), det("newer")])
    assert len(store) == 1
    assert [d.label for d in store.get(1.0).detections] == ["new", "newer"]  # type: ignore[union-attr]


def test_clear_drops_everything() -> None:
    store = TimedResultStore()
    for t in (0.0, 0.5, 1.0):
        store.put(t, [])
    store.clear()
    assert len(store) == 0
    assert store.timestamps() == []


def test_reads_during_concurrent_writes() -> None:
    store = TimedResultStore()
    errors: list[Exception] = []
    done = threading.Event()

    def writer() -> None:
        for i in range(2000):
            store.put(i * 0.1, [det(str(i))])
        done.set()

    def reader() -> None:
        try:
            while not done.is_set():
                result = store.nearest_result(50.0, tolerance=1000.0)
                if result is not None:
                    assert result.detections
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=writer)] + [threading.Thread(target=reader) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert errors == []
    assert len(store) == 2000
    assert store.timestamps() == sorted(store.timestamps())


def test_snapshot_with_zero_total_has_zero_progress() -> None:
    stats = StatsTracker()
    snap = stats.snapshot(0, 0)
    assert snap.progress == 0.0
    assert snap.average_inference_ms == 0.0


def test_average_is_mean_of_all_samples() -> None:
    stats = StatsTracker()
    for ms in (10.0, 20.0, 60.0):
        stats.record_inference(ms)
    snap = stats.snapshot(3, 12)
    assert snap.average_inference_ms == pytest.approx(30.0)
    assert snap.progress == pytest.approx(0.25)
    assert stats.min_ms == 10.0
    assert stats.max_ms == 60.0
    assert stats.sample_count == 3


def test_reset_and_progress_override() -> None:
    stats = StatsTracker()
    stats.record_inference(5.0)
    stats.reset()
    assert stats.sample_count == 0
    assert stats.min_ms == 0.0
    assert stats.snapshot(2, 30, progress=1.0).progress == 1.0


def test_nearest_with_non_finite_timestamp_is_empty() -> None:
    store = TimedResultStore()
    store.put(1.0, [det("a")])
    assert store.nearest(float("nan"), tolerance=10.0) == ()
    assert store.nearest(float("inf"), tolerance=float("inf")) == ()
    assert store.nearest_result(float("-inf")) is None
