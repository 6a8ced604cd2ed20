import threading

import pytest

from timetabler.services.occupancy import OccupiedSlot, RoomOccupancyTracker, slot_token


def test_reserve_is_idempotent_and_visible():
    tracker = RoomOccupancyTracker(["A101"])
    assert tracker.is_free("A101", "Monday", "09:00")

    tracker.reserve("A101", "Monday", "09:00")
    tracker.reserve("A101", "Monday", "09:00")

    assert not tracker.is_free("A101", "Monday", "09:00")
    assert tracker.is_free("A101", "Monday", "10:00")
    assert tracker.reserved_count() == 1
    assert tracker.occupied_slots() == {"A101": {slot_token("Monday", "09:00")}}


def test_try_reserve_only_succeeds_once():
    tracker = RoomOccupancyTracker()
    assert tracker.try_reserve("A101", "Tuesday", "08:00") is True
    assert tracker.try_reserve("A101", "Tuesday", "08:00") is False
    assert tracker.try_reserve("A102", "Tuesday", "08:00") is True


def test_release_and_reset():
    tracker = RoomOccupancyTracker()
    tracker.reserve("A101", "Monday", "09:00")
    tracker.reserve("A102", "Monday", "09:00")

    tracker.release("A101", "Monday", "09:00")
    assert tracker.is_free("A101", "Monday", "09:00")

    tracker.reset()
    assert tracker.reserved_count() == 0
    assert tracker.occupied_slots() == {}


def test_generation_pass_resets_stale_reservations():
    tracker = RoomOccupancyTracker()
    tracker.reserve("A101", "Monday", "09:00")

    with tracker.generation_pass():
        assert tracker.is_free("A101", "Monday", "09:00")
        tracker.reserve("A102", "Monday", "10:00")

    assert not tracker.is_free("A102", "Monday", "10:00")


def test_generation_pass_rolls_back_on_error():
    tracker = RoomOccupancyTracker()

    with pytest.raises(RuntimeError):
        with tracker.generation_pass():
            tracker.reserve("A101", "Monday", "09:00")
            assert tracker.try_reserve("A102", "Monday", "09:00")
            raise RuntimeError("cancelled")

    assert tracker.reserved_count() == 0


def test_concurrent_try_reserve_has_single_winner():
    tracker = RoomOccupancyTracker()
    barrier = threading.Barrier(8)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        won = tracker.try_reserve("A101", "Wednesday", "13:00")
        with lock:
            results.append(won)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
    assert results.count(False) == 7


def test_generation_passes_are_serialised():
    tracker = RoomOccupancyTracker()
    entered = threading.Event()
    release = threading.Event()
    order = []

    def first():
        with tracker.generation_pass():
            order.append("first-start")
            entered.set()
            release.wait(timeout=5)
            order.append("first-end")

    def second():
        entered.wait(timeout=5)
        with tracker.generation_pass():
            order.append("second")

    t1 = threading.Thread(target=first)
    t2 = threading.Thread(target=second)
    t1.start()
    t2.start()
    entered.wait(timeout=5)
    release.set()
    t1.join()
    t2.join()

    assert order == ["first-start", "first-end", "second"]


def test_occupied_slot_key():
    slot = OccupiedSlot(room="A101", day="Monday", start_time="09:00", end_time="10:00", level=1, course_code="CS101")
    assert slot.key == ("A101", "Monday", "09:00")
