import pytest

from checklist.identification import UNKNOWN, IdentificationBridge
from checklist.models import Status


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_exact_match_marks_there_and_highlights(make_store) -> None:
    store = make_store(["Wendy", "Cam"], {"Wendy": Status.NOT_THERE})
    clock = FakeClock()
    bridge = IdentificationBridge(store, highlight_seconds=3, clock=clock)

    match = bridge.resolve_identification("Wendy")

    assert match is not None
    assert match.item.name == "Wendy"
    assert match.item.status is Status.THERE
    assert store.find_by_name("Wendy").status is Status.THERE
    assert match.highlight_until == 1003.0
    assert bridge.highlighted_ids() == {match.item.item_id}


def test_highlight_expires(make_store) -> None:
    store = make_store(["Wendy"])
    clock = FakeClock()
    bridge = IdentificationBridge(store, highlight_seconds=3, clock=clock)
    bridge.resolve_identification("Wendy")

    clock.now += 2.9
    assert len(bridge.highlighted_ids()) == 1
    clock.now += 0.2
    assert bridge.highlighted_ids() == set()


@pytest.mark.parametrize("name", ["Nobody", "wendy", " Wendy", UNKNOWN, "", None])
def test_unmatched_names_change_nothing(make_store, persistence, name) -> None:
    store = make_store(["Wendy", "Cam"])
    snapshot = store.all()
    saved = list(persistence.data["test_checklist"])
    bridge = IdentificationBridge(store)

    assert bridge.resolve_identification(name) is None

    assert store.all() == snapshot
    assert persistence.data["test_checklist"] == saved
    assert bridge.highlighted_ids() == set()


def test_identify_photo_passes_all_names_to_recognizer(make_store) -> None:
    store = make_store(["Wendy", "Cam"])
    seen = {}

    def recognizer(image_bytes, names, mime_type):
        seen.update(image=image_bytes, names=list(names), mime=mime_type)
        return "Cam"

    bridge = IdentificationBridge(store, recognizer)
    match = bridge.identify_photo(b"\xff\xd8jpeg", "image/png")

    assert seen == {"image": b"\xff\xd8jpeg", "names": ["Wendy", "Cam"], "mime": "image/png"}
    assert match.item.name == "Cam"
    assert store.find_by_name("Cam").status is Status.THERE


def test_recognizer_error_propagates_without_mutation(make_store) -> None:
    store = make_store(["Wendy"])
    snapshot = store.all()

    class Boom(Exception):
        pass

    def recognizer(image_bytes, names, mime_type):
        raise Boom("no key")

    bridge = IdentificationBridge(store, recognizer)
    with pytest.raises(Boom):
        bridge.identify_photo(b"img")

    assert store.all() == snapshot


def test_identify_photo_without_recognizer(make_store) -> None:
    bridge = IdentificationBridge(make_store(["Wendy"]))
    with pytest.raises(RuntimeError):
        bridge.identify_photo(b"img")


def test_expired_highlights_are_dropped_on_next_identification(make_store) -> None:
    store = make_store(["Wendy", "Cam"])
    clock = FakeClock()
    bridge = IdentificationBridge(store, highlight_seconds=3, clock=clock)
    wendy = bridge.resolve_identification("Wendy")

    clock.now += 10
    cam = bridge.resolve_identification("Cam")

    assert wendy.item.item_id not in bridge._highlights
    assert set(bridge._highlights) == {cam.item.item_id}
