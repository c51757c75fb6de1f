"""Running staff rating aggregate maintained from review events."""
from __future__ import annotations

import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, Iterator, Protocol

from sqlalchemy import select

from .errors import InconsistentState

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


@dataclass(frozen=True)
class StaffRating:
    """Mean and number of a staff member's live review ratings."""

    average: float = 0.0
    count: int = 0

    @property
    def formatted(self) -> str:
        return f"{self.average:.1f}" if self.count > 0 else "New"

    def to_dict(self) -> dict[str, object]:
        return {"average": self.average, "count": self.count, "formatted": self.formatted}


def _check_rating(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not MIN_RATING <= value <= MAX_RATING:
        raise ValueError(f"rating must be between {MIN_RATING} and {MAX_RATING}, got {value!r}")
    return value


def _bounded(average: float) -> float:
    # keeps accumulated float error from leaving the rating scale
    return min(float(MAX_RATING), max(0.0, average))


def on_review_created(current: StaffRating, rating: int) -> StaffRating:
    _check_rating(rating)
    if current.count == 0:
        return StaffRating(float(rating), 1)
    total = current.average * current.count + rating
    return StaffRating(_bounded(total / (current.count + 1)), current.count + 1)


def on_review_rating_changed(current: StaffRating, old_rating: int, new_rating: int) -> StaffRating:
    _check_rating(old_rating)
    _check_rating(new_rating)
    if current.count < 1:
        raise InconsistentState("cannot change a rating when no reviews are recorded")
    total = current.average * current.count - old_rating + new_rating
    return StaffRating(_bounded(total / current.count), current.count)


def on_review_deleted(current: StaffRating, rating: int) -> StaffRating:
    _check_rating(rating)
    if current.count < 1:
        raise InconsistentState("cannot remove a rating when no reviews are recorded")
    if current.count == 1:
        return StaffRating(0.0, 0)
    total = current.average * current.count - rating
    return StaffRating(_bounded(total / (current.count - 1)), current.count - 1)


def mean_of(ratings: Iterable[int]) -> StaffRating:
    values = [_check_rating(value) for value in ratings]
    if not values:
        return StaffRating()
    return StaffRating(sum(values) / len(values), len(values))


class RatingStore(Protocol):
    def lock(self, staff_id: Hashable) -> None: ...

    def load(self, staff_id: Hashable) -> StaffRating: ...

    def save(self, staff_id: Hashable, rating: StaffRating) -> None: ...


class InMemoryRatingStore:
    """Dict-backed store, used by scripts and tests."""

    def __init__(self, initial: dict[Hashable, StaffRating] | None = None) -> None:
        self._ratings: dict[Hashable, StaffRating] = dict(initial or {})

    def lock(self, staff_id: Hashable) -> None:
        """Nothing to lock; the aggregator's in-process lock is enough."""

    def load(self, staff_id: Hashable) -> StaffRating:
        return self._ratings.get(staff_id, StaffRating())

    def save(self, staff_id: Hashable, rating: StaffRating) -> None:
        self._ratings[staff_id] = rating


class SQLAlchemyRatingStore:
    """Reads and writes ``Staff.rating_average`` / ``Staff.rating_count``.

    ``save`` commits the session, so any review row the caller has staged in
    the same session is committed together with the new aggregate.
    """

    def __init__(self, database, commit: bool = True) -> None:
        self._db = database
        self._commit = commit

    def _staff(self, staff_id: Hashable):
        from .models import Staff

        statement = (
            select(Staff)
            .where(Staff.staff_id == staff_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        staff = self._db.session.execute(statement).scalar_one_or_none()
        if staff is None:
            raise LookupError(f"staff member {staff_id} does not exist")
        return staff

    def lock(self, staff_id: Hashable) -> None:
        self._staff(staff_id)

    def load(self, staff_id: Hashable) -> StaffRating:
        staff = self._staff(staff_id)
        return StaffRating(float(staff.rating_average or 0.0), int(staff.rating_count or 0))

    def save(self, staff_id: Hashable, rating: StaffRating) -> None:
        staff = self._staff(staff_id)
        staff.rating_average = rating.average
        staff.rating_count = rating.count
        if self._commit:
            self._db.session.commit()
        else:
            self._db.session.flush()


class RatingAggregator:
    """Applies review events to a staff member's rating in O(1).

    Every event is a single read-modify-write against the store, serialised
    per staff member so concurrent reviews cannot lose updates. Callers that
    also write review rows do so inside :meth:`locked`, so the staff lock is
    always taken before any database write.
    """

    def __init__(self, store: RatingStore) -> None:
        self._store = store
        # an entry lives only while some thread holds or waits on its lock
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @property
    def store(self) -> RatingStore:
        return self._store

    def _lock_for(self, staff_id: Hashable):
        with self._locks_guard:
            lock = self._locks.get(staff_id)
            if lock is None:
                lock = self._locks[staff_id] = threading.RLock()
            return lock

    @contextmanager
    def locked(self, staff_id: Hashable) -> Iterator[None]:
        """Hold the staff member's lock, and its store row lock, for a whole unit of work.

        Events applied inside the block re-enter the same lock.
        """
        with self._lock_for(staff_id):
            self._store.lock(staff_id)
            yield

    def _apply(
        self, staff_id: Hashable, event: str, change: Callable[[StaffRating], StaffRating]
    ) -> StaffRating:
        with self._lock_for(staff_id):
            current = self._store.load(staff_id)
            try:
                updated = change(current)
            except InconsistentState:
                logger.error(
                    "Rating aggregate for staff %s is inconsistent on %s (average=%s, count=%s)",
                    staff_id,
                    event,
                    current.average,
                    current.count,
                )
                raise
            self._store.save(staff_id, updated)

        logger.debug("Staff %s rating after %s: %.3f over %d", staff_id, event, updated.average, updated.count)
        return updated

    def review_created(self, staff_id: Hashable, rating: int) -> StaffRating:
        return self._apply(staff_id, "created", lambda current: on_review_created(current, rating))

    def review_rating_changed(self, staff_id: Hashable, old_rating: int, new_rating: int) -> StaffRating:
        return self._apply(
            staff_id,
            "changed",
            lambda current: on_review_rating_changed(current, old_rating, new_rating),
        )

    def review_deleted(self, staff_id: Hashable, rating: int) -> StaffRating:
        return self._apply(staff_id, "deleted", lambda current: on_review_deleted(current, rating))

    def reconcile(self, staff_id: Hashable, ratings: Iterable[int]) -> StaffRating:
        """Overwrite the aggregate with the exact mean of ``ratings``.

        A maintenance operation for clearing float drift; not used when
        reviews are written.
        """
        exact = mean_of(ratings)
        with self._lock_for(staff_id):
            previous = self._store.load(staff_id)
            self._store.save(staff_id, exact)
        if previous.count != exact.count:
            logger.warning(
                "Reconciled staff %s rating count from %d to %d", staff_id, previous.count, exact.count
            )
        return exact
