from extensions import db
from models import Notification
from utils.notifications import dispatch, event_key, notify

from conftest import received_events


def _notify(app, user_id, event_id, title="Heads up", **kwargs):
    with app.app_context():
        return notify(user_id, event_id, title, "Something happened", **kwargs).to_dict()


def test_event_key_is_lowercase_and_skips_none():
    assert event_key("Report", "ABC", "status", "Resolved") == "report:abc:status:resolved"
    assert event_key("ai", None, "job") == "ai:job"


def test_notify_is_idempotent_per_event(app, citizen):
    first = _notify(app, citizen.id, "report:1:status:resolved")
    second = _notify(app, citizen.id, "report:1:status:resolved", title="Different title")

    assert first["id"] == second["id"]
    assert second["title"] == "Heads up"
    with app.app_context():
        assert Notification.query.filter_by(user_id=citizen.id).count() == 1


def test_dispatch_reports_whether_a_record_was_created(app, citizen):
    with app.app_context():
        first, created = dispatch(citizen.id, "system:welcome", "Welcome", "Thanks for joining")
        again, created_again = dispatch(citizen.id, "system:welcome", "Welcome", "Thanks for joining")

        assert created is True
        assert created_again is False
        assert again.id == first.id


def test_same_event_for_different_users_is_stored_twice(app, citizen, moderator):
    _notify(app, citizen.id, "collection:s1:2026-10-19")
    _notify(app, moderator.id, "collection:s1:2026-10-19")

    with app.app_context():
        assert Notification.query.count() == 2


def test_offline_user_notification_stays_undelivered(app, citizen):
    stored = _notify(app, citizen.id, "system:offline")
    assert stored["deliveredAt"] is None


def test_online_user_receives_push_and_delivery_is_stamped(app, citizen, socket_client):
    sio = socket_client(citizen)
    sio.get_received()

    stored = _notify(app, citizen.id, "system:online", type="system", priority="high")

    assert stored["deliveredAt"] is not None
    pushed = received_events(sio, "notification")
    assert [n["id"] for n in pushed] == [stored["id"]]
    assert pushed[0]["priority"] == "high"


def test_duplicate_event_is_not_pushed_twice(app, citizen, socket_client):
    sio = socket_client(citizen)
    _notify(app, citizen.id, "system:once")
    _notify(app, citizen.id, "system:once")

    assert len(received_events(sio, "notification")) == 1


def test_inbox_lists_newest_first_with_unread_count(app, client, citizen):
    older = _notify(app, citizen.id, "system:a")
    newer = _notify(app, citizen.id, "system:b")

    body = client.get("/api/notifications", headers=citizen.headers).get_json()

    assert [n["id"] for n in body["notifications"]] == [newer["id"], older["id"]]
    assert body["unreadCount"] == 2


def test_mark_read_and_unread_filter(app, client, citizen):
    first = _notify(app, citizen.id, "system:a")
    second = _notify(app, citizen.id, "system:b")

    response = client.patch(f"/api/notifications/{first['id']}/read", headers=citizen.headers)
    assert response.status_code == 200
    assert response.get_json()["notification"]["read"] is True

    unread = client.get("/api/notifications?unreadOnly=true", headers=citizen.headers).get_json()
    assert [n["id"] for n in unread["notifications"]] == [second["id"]]
    count = client.get("/api/notifications/unread-count", headers=citizen.headers).get_json()
    assert count["unreadCount"] == 1


def test_cannot_read_another_users_notification(app, client, citizen, moderator):
    foreign = _notify(app, moderator.id, "system:private")

    response = client.patch(f"/api/notifications/{foreign['id']}/read", headers=citizen.headers)

    assert response.status_code == 404
    with app.app_context():
        assert db.session.get(Notification, foreign["id"]).read is False


def test_read_all_marks_only_own_notifications(app, client, citizen, moderator):
    _notify(app, citizen.id, "system:a")
    _notify(app, citizen.id, "system:b")
    _notify(app, moderator.id, "system:c")

    body = client.patch("/api/notifications/read-all", headers=citizen.headers).get_json()

    assert body["updated"] == 2
    with app.app_context():
        assert Notification.query.filter_by(user_id=moderator.id, read=False).count() == 1


def test_inbox_requires_login(client):
    assert client.get("/api/notifications").status_code == 401
