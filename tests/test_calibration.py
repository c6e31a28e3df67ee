import pytest

from room_detector.calibration import CalibrationController
from room_detector.errors import CalibrationStateError, PersistenceError
from room_detector.models import DEFAULT_LOCATIONS
from room_detector.storage import FingerprintStore, MemoryKeyValueStore


def make_controller(backend=None):
    store = FingerprintStore(backend or MemoryKeyValueStore())
    return CalibrationController(store), store


def test_capture_while_idle_is_rejected():
    controller, store = make_controller()
    with pytest.raises(CalibrationStateError):
        controller.capture_location({"AP1": -40})
    assert len(store) == 0


@pytest.mark.parametrize("name", ["", "   "])
def test_start_requires_room_name(name):
    controller, _ = make_controller()
    with pytest.raises(CalibrationStateError):
        controller.start_calibration(name)
    assert not controller.is_calibrating


def test_each_capture_advances_one_location_until_idle():
    controller, store = make_controller()
    assert controller.start_calibration("Office") == "corner1"

    returned = []
    for i in range(len(DEFAULT_LOCATIONS)):
        assert controller.location_index == i
        assert controller.current_location == DEFAULT_LOCATIONS[i]
        returned.append(controller.capture_location({"AP1": -40}))

    assert returned == ["corner2", "corner3", "corner4", "center", None]
    assert not controller.is_calibrating
    assert controller.target_room is None
    assert [fp.location for fp in store.fingerprints] == list(DEFAULT_LOCATIONS)


def test_recapture_same_location_replaces():
    controller, store = make_controller()
    controller.start_calibration("Office")
    controller.capture_location({"AP1": -40})
    size = len(store)

    # restart the session so the next capture lands on corner1 again
    controller.start_calibration("Office")
    controller.capture_location({"AP1": -45})

    assert len(store) == size
    assert store.fingerprints_for("Office")[0].signals == {"AP1": -45}


def test_start_while_calibrating_overwrites_session():
    controller, _ = make_controller()
    controller.start_calibration("Office")
    controller.capture_location({"AP1": -40})
    controller.start_calibration("Kitchen")

    progress = controller.progress()
    assert progress.room == "Kitchen"
    assert progress.location == "corner1"
    assert progress.step == 0


def test_persistence_failure_does_not_advance():
    class Failing(MemoryKeyValueStore):
        def set_string_list(self, key, values):
            raise PersistenceError("read-only")

    controller, store = make_controller(Failing())
    controller.start_calibration("Office")
    with pytest.raises(PersistenceError):
        controller.capture_location({"AP1": -40})

    assert controller.current_location == "corner1"
    assert store.rooms() == ["Office"]


def test_custom_locations_and_cancel():
    store = FingerprintStore(MemoryKeyValueStore())
    controller = CalibrationController(store, ["door", "window"])
    controller.start_calibration("Hall")
    assert controller.capture_location({}) == "window"
    controller.cancel()

    assert controller.progress().active is False
    assert [fp.location for fp in store.fingerprints] == ["door"]
