from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
import logging
from threading import Lock, RLock

logger = logging.getLogger(__name__)


def slot_token(day: str, start_time: str) -> str:
    return f"{day}-{start_time}"


class RoomOccupancyTracker:
    """Room -> occupied ``day-start`` slots for one generation pass.

    Check-and-reserve is atomic under one lock. Whole passes on a shared
    tracker are serialised through :meth:`generation_pass`.
    """

    def __init__(self, rooms: Iterable[str] = ()) -> None:
        self._usage: dict[str, set[str]] = defaultdict(set)
        self._lock = RLock()
        self._pass_lock = Lock()
        self._journal: list[tuple[str, str]] | None = None
        for room in rooms:
            self._usage[room]

    def is_free(self, room: str, day: str, start_time: str) -> bool:
        with self._lock:
            return slot_token(day, start_time) not in self._usage.get(room, ())

    def reserve(self, room: str, day: str, start_time: str) -> None:
        with self._lock:
            self._add(room, slot_token(day, start_time))

    def try_reserve(self, room: str, day: str, start_time: str) -> bool:
        token = slot_token(day, start_time)
        with self._lock:
            if token in self._usage.get(room, ()):
                return False
            self._add(room, token)
            return True

    def release(self, room: str, day: str, start_time: str) -> None:
        with self._lock:
            self._usage.get(room, set()).discard(slot_token(day, start_time))

    def reset(self) -> None:
        with self._lock:
            for slots in self._usage.values():
                slots.clear()
            if self._journal is not None:
                self._journal.clear()

    def occupied_slots(self) -> dict[str, set[str]]:
        with self._lock:
            return {room: set(slots) for room, slots in self._usage.items() if slots}

    def reserved_count(self) -> int:
        with self._lock:
            return sum(len(slots) for slots in self._usage.values())

    @contextmanager
    def generation_pass(self) -> Iterator["RoomOccupancyTracker"]:
        """Hold the tracker for one full generation run.

        The tracker is reset on entry. If the run raises, every reservation
        made during it is released before the error propagates.
        """
        with self._pass_lock:
            self.reset()
            with self._lock:
                self._journal = []
            try:
                yield self
            except BaseException:
                with self._lock:
                    journal = self._journal or []
                    for room, token in journal:
                        self._usage.get(room, set()).discard(token)
                    logger.warning("Generation pass aborted; released %s reservation(s)", len(journal))
                raise
            finally:
                with self._lock:
                    self._journal = None

    def _add(self, room: str, token: str) -> None:
        slots = self._usage[room]
        if token in slots:
            return
        slots.add(token)
        if self._journal is not None:
            self._journal.append((room, token))


@dataclass(frozen=True)
class OccupiedSlot:
    """A room slot held by a section of another level's latest schedule."""

    room: str
    day: str
    start_time: str
    end_time: str
    level: int
    course_code: str

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.room, self.day, self.start_time)
