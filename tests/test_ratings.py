"""Tests for the staff rating aggregate."""
from __future__ import annotations

import gc
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from eclat.errors import InconsistentState
from eclat.ratings import (InMemoryRatingStore, RatingAggregator, StaffRating, mean_of, on_review_created,
                           on_review_deleted, on_review_rating_changed)


class SlowStore(InMemoryRatingStore):
    """Widens the read-modify-write window so lost updates would show up."""

    def load(self, staff_id):
        current = super().load(staff_id)
        time.sleep(0.001)
        return current


@pytest.fixture
def aggregator() -> RatingAggregator:
    return RatingAggregator(InMemoryRatingStore())


def test_first_review_sets_average() -> None:
    assert on_review_created(StaffRating(), 5) == StaffRating(5.0, 1)


def test_running_mean_matches_arithmetic_mean() -> None:
    rating = StaffRating()
    for value in (4, 5, 3):
        rating = on_review_created(rating, value)

    assert rating.count == 3
    assert rating.average == pytest.approx(4.0)


def test_rating_change_keeps_count() -> None:
    updated = on_review_rating_changed(StaffRating(4.0, 3), 3, 5)

    assert updated.count == 3
    assert updated.average == pytest.approx(14 / 3)


def test_deleting_a_rating_recomputes_mean() -> None:
    updated = on_review_deleted(StaffRating(4.0, 3), 5)

    assert updated == StaffRating(3.5, 2)


def test_deleting_last_rating_resets_to_zero() -> None:
    assert on_review_deleted(StaffRating(4.0, 1), 4) == StaffRating(0.0, 0)


def test_change_or_delete_with_no_reviews_is_inconsistent() -> None:
    with pytest.raises(InconsistentState):
        on_review_rating_changed(StaffRating(), 3, 4)
    with pytest.raises(InconsistentState):
        on_review_deleted(StaffRating(), 3)


@pytest.mark.parametrize("value", [0, 6, True, "5", None])
def test_ratings_outside_scale_are_rejected(value) -> None:
    with pytest.raises(ValueError):
        on_review_created(StaffRating(), value)


def test_formatted_rating() -> None:
    assert StaffRating().formatted == "New"
    assert StaffRating(4.0, 3).formatted == "4.0"
    assert StaffRating(14 / 3, 3).to_dict() == {"average": pytest.approx(14 / 3), "count": 3, "formatted": "4.7"}


def test_mean_of() -> None:
    assert mean_of([]) == StaffRating()
    assert mean_of([5, 4, 3, 4]) == StaffRating(4.0, 4)


def test_aggregator_applies_events_in_order(aggregator) -> None:
    for value in (4, 5, 3):
        aggregator.review_created("amelia", value)
    assert aggregator.store.load("amelia").average == pytest.approx(4.0)

    aggregator.review_rating_changed("amelia", 3, 5)
    assert aggregator.store.load("amelia").average == pytest.approx(14 / 3)

    result = aggregator.review_deleted("amelia", 5)
    assert result.count == 2
    assert result.average == pytest.approx(4.5)


def test_aggregator_keeps_staff_separate(aggregator) -> None:
    aggregator.review_created(1, 5)
    aggregator.review_created(2, 1)

    assert aggregator.store.load(1) == StaffRating(5.0, 1)
    assert aggregator.store.load(2) == StaffRating(1.0, 1)


def test_aggregator_logs_and_raises_on_inconsistent_state(aggregator, caplog) -> None:
    with caplog.at_level(logging.ERROR, logger="eclat.ratings"):
        with pytest.raises(InconsistentState):
            aggregator.review_deleted(7, 4)

    assert "inconsistent" in caplog.text
    assert aggregator.store.load(7) == StaffRating()


def test_reconcile_overwrites_drifted_aggregate(caplog) -> None:
    aggregator = RatingAggregator(InMemoryRatingStore({1: StaffRating(3.9999999, 2)}))

    with caplog.at_level(logging.WARNING, logger="eclat.ratings"):
        result = aggregator.reconcile(1, [4, 4, 4])

    assert result == StaffRating(4.0, 3)
    assert aggregator.store.load(1) == StaffRating(4.0, 3)
    assert "Reconciled staff 1" in caplog.text


def test_concurrent_reviews_lose_no_updates() -> None:
    aggregator = RatingAggregator(SlowStore())
    ratings = [(index % 5) + 1 for index in range(50)]
    start = threading.Barrier(50)

    def submit(value: int) -> None:
        start.wait()
        aggregator.review_created("amelia", value)

    with ThreadPoolExecutor(max_workers=50) as pool:
        list(pool.map(submit, ratings))

    final = aggregator.store.load("amelia")
    assert final.count == 50
    assert final.average == pytest.approx(sum(ratings) / len(ratings))


def test_concurrent_mixed_events_match_final_set() -> None:
    aggregator = RatingAggregator(SlowStore({"noah": mean_of([5] * 10)}))

    def created(value: int) -> None:
        aggregator.review_created("noah", value)

    def deleted(_: int) -> None:
        aggregator.review_deleted("noah", 5)

    with ThreadPoolExecutor(max_workers=20) as pool:
        futures = [pool.submit(created, 3) for _ in range(20)]
        futures += [pool.submit(deleted, 0) for _ in range(5)]
        for future in futures:
            future.result()

    final = aggregator.store.load("noah")
    assert final.count == 25
    assert final.average == pytest.approx((5 * 5 + 3 * 20) / 25)


def test_idle_staff_locks_are_released(aggregator) -> None:
    for staff_id in range(100):
        aggregator.review_created(staff_id, 4)
    gc.collect()

    assert len(aggregator._locks) == 0


def test_locked_section_reenters_and_excludes_other_threads(aggregator) -> None:
    finished = threading.Event()

    def other_writer() -> None:
        aggregator.review_created("amelia", 1)
        finished.set()

    with aggregator.locked("amelia"):
        aggregator.review_created("amelia", 5)
        worker = threading.Thread(target=other_writer)
        worker.start()
        assert not finished.wait(0.05)
        assert aggregator.store.load("amelia") == StaffRating(5.0, 1)

    worker.join()
    assert finished.is_set()
    assert aggregator.store.load("amelia") == StaffRating(3.0, 2)
