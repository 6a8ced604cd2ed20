from timetabler.core.exceptions import (
    AppError,
    InputError,
    PersistenceError,
    ResourceNotFoundError,
    SchedulerError,
)


def test_scheduler_error_structure():
    err = SchedulerError(message="Test error", details={"foo": "bar"})
    assert err.status_code == 400
    assert err.message == "Test error"
    assert err.details == {"foo": "bar"}
    assert isinstance(err, AppError)


def test_app_error_defaults():
    err = AppError("Generic error")
    assert err.status_code == 500
    assert err.details == {}


def test_input_error_carries_level():
    err = InputError("No rooms available for generation", level=3, details={"rooms": 0})
    assert isinstance(err, SchedulerError)
    assert err.status_code == 400
    assert err.details == {"rooms": 0, "level": 3}


def test_persistence_error_keeps_storage_error():
    err = PersistenceError("Failed to create schedule version", storage_error="disk full", details={"level": 1})
    assert err.status_code == 500
    assert err.details == {"level": 1, "storage_error": "disk full"}


def test_not_found_message():
    err = ResourceNotFoundError("Schedule version", "abc")
    assert err.status_code == 404
    assert err.message == "Schedule version with id abc not found"
