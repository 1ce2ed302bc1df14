from strata.core.notifications import NotificationCenter
from strata.core.store import StateStore
from strata.models.state import SessionState


def _center(scheduler):
    store = StateStore(SessionState())
    return store, NotificationCenter(store, scheduler)


def test_same_id_replaces_in_place(scheduler):
    store, center = _center(scheduler)
    center.notify("first", id="a")
    center.notify("other", id="b")
    center.notify("updated", id="a", progress=50)

    notifications = store.get().notifications
    assert [n.id for n in notifications] == ["a", "b"]
    assert notifications[0].message == "updated"
    assert notifications[0].progress == 50


def test_duration_schedules_removal(scheduler):
    store, center = _center(scheduler)
    notification_id = center.notify("done", type="success", duration=3)

    scheduler.advance(2.9)
    assert center.get(notification_id) is not None
    scheduler.advance(0.2)
    assert center.get(notification_id) is None


def test_replacement_cancels_earlier_dismissal(scheduler):
    store, center = _center(scheduler)
    center.notify("short", id="x", duration=1)
    center.notify("persistent", id="x")

    scheduler.advance(5)
    assert center.get("x").message == "persistent"


def test_generated_ids_are_unique(scheduler):
    _, center = _center(scheduler)
    ids = {center.notify(f"n{i}") for i in range(20)}
    assert len(ids) == 20


def test_remove_unknown_id_is_noop(scheduler):
    store, center = _center(scheduler)
    center.remove("missing")
    assert store.get().notifications == ()
