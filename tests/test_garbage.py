from datetime import date

from extensions import db
from models import WEEKDAYS, GarbageSchedule, Notification
from utils.collection_reminders import run_collection_reminders

from conftest import make_schedule, received_events, weekly_plan

MONDAY = date(2026, 10, 19)


def _schedule_payload(**overrides):
    payload = {
        "area": "Bandra West",
        "ward": "H-West",
        "zone": "Zone 3",
        "location": {"coordinates": [72.8296, 19.0596], "address": "Hill Road"},
        "schedule": weekly_plan("monday", "thursday"),
        "vehicles": [{"vehicleNumber": "MH-01-AB-1234", "vehicleType": "compactor"}],
        "contactPerson": {"name": "Ward Office", "phone": "022-2640-0000"},
    }
    payload.update(overrides)
    return payload


def test_next_collection_counts_today_when_enabled(app):
    schedule_id = make_schedule(app, days=("monday",))
    with app.app_context():
        schedule = db.session.get(GarbageSchedule, schedule_id)
        assert schedule.next_collection(MONDAY)["date"] == "2026-10-19"
        assert schedule.next_collection(date(2026, 10, 20))["date"] == "2026-10-26"


def test_next_collection_ignores_disabled_days(app):
    schedule_id = make_schedule(app, days=())
    with app.app_context():
        schedule = db.session.get(GarbageSchedule, schedule_id)
        schedule.schedule = {"monday": {"enabled": False, "slots": [{"startTime": "06:00", "endTime": "07:00"}]}}
        assert schedule.next_collection(MONDAY) is None


def test_moderator_creates_schedule(client, moderator):
    response = client.post("/api/garbage/schedule", json=_schedule_payload(), headers=moderator.headers)

    assert response.status_code == 201
    schedule = response.get_json()["schedule"]
    assert schedule["area"] == "Bandra West"
    assert schedule["location"]["coordinates"] == [72.8296, 19.0596]
    assert schedule["schedule"]["monday"]["slots"][0]["wasteType"] == "organic"
    assert schedule["schedule"]["tuesday"] == {"enabled": False, "slots": []}
    assert schedule["vehicles"][0]["status"] == "active"
    assert schedule["updatedBy"] == moderator.id


def test_citizen_cannot_create_schedule(client, citizen):
    response = client.post("/api/garbage/schedule", json=_schedule_payload(), headers=citizen.headers)
    assert response.status_code == 403


def test_schedule_validation_errors(client, admin):
    payload = _schedule_payload(area="", schedule={"funday": {"enabled": True}}, vehicles=[{"vehicleType": "bus"}])

    response = client.post("/api/garbage/schedule", json=payload, headers=admin.headers)

    assert response.status_code == 400
    assert {"area", "schedule", "vehicles"} <= set(response.get_json()["errors"])


def test_unknown_waste_type_is_rejected(client, admin):
    plan = weekly_plan("monday", slots=[{"startTime": "06:00 AM", "endTime": "07:00 AM", "wasteType": "glitter"}])

    response = client.post("/api/garbage/schedule", json=_schedule_payload(schedule=plan), headers=admin.headers)

    assert response.status_code == 400
    assert "schedule" in response.get_json()["errors"]


def test_update_merges_fields_and_broadcasts(app, client, moderator, socket_client):
    schedule_id = make_schedule(app, area="Powai")
    listener = socket_client()
    listener.get_received()

    response = client.put(
        f"/api/garbage/schedule/{schedule_id}",
        json={"specialInstructions": "Segregate wet and dry waste."},
        headers=moderator.headers,
    )

    assert response.status_code == 200
    schedule = response.get_json()["schedule"]
    assert schedule["area"] == "Powai"
    assert schedule["specialInstructions"] == "Segregate wet and dry waste."
    assert schedule["schedule"]["monday"]["enabled"] is True
    events = received_events(listener, "scheduleUpdated")
    assert events == [
        {"scheduleId": schedule_id, "area": "Powai", "message": "Garbage collection schedule has been updated"}
    ]


def test_update_unknown_schedule_is_404(client, admin):
    response = client.put("/api/garbage/schedule/missing", json={"area": "X"}, headers=admin.headers)
    assert response.status_code == 404


def test_delete_is_admin_only(app, client, moderator, admin):
    schedule_id = make_schedule(app)

    assert client.delete(f"/api/garbage/schedule/{schedule_id}", headers=moderator.headers).status_code == 403
    assert client.delete(f"/api/garbage/schedule/{schedule_id}", headers=admin.headers).status_code == 200
    with app.app_context():
        assert db.session.get(GarbageSchedule, schedule_id) is None


def test_search_by_area_and_radius(app, client):
    near = make_schedule(app, area="Andheri West", longitude=72.8361, latitude=19.1364)
    make_schedule(app, area="Connaught Place", ward="NDMC", zone="Central", longitude=77.2167, latitude=28.6315)

    by_area = client.get("/api/garbage/schedule?area=andheri").get_json()
    assert [s["id"] for s in by_area["schedules"]] == [near]

    by_point = client.get("/api/garbage/schedule?lat=19.1360&lng=72.8365&radius=3").get_json()
    assert [s["id"] for s in by_point["schedules"]] == [near]


def test_inactive_schedules_are_hidden(app, client):
    make_schedule(app, area="Hidden", is_active=False)

    assert client.get("/api/garbage/schedule").get_json()["count"] == 0
    assert client.get("/api/garbage/locations").get_json()["locations"]["areas"] == []


def test_locations_are_distinct_and_sorted(app, client):
    make_schedule(app, area="Worli", ward="G-South", zone="Zone 2")
    make_schedule(app, area="Andheri West", ward="K-West", zone="Zone 3")
    make_schedule(app, area="Andheri West", ward="K-West", zone="Zone 3")

    locations = client.get("/api/garbage/locations").get_json()["locations"]

    assert locations == {
        "areas": ["Andheri West", "Worli"],
        "wards": ["G-South", "K-West"],
        "zones": ["Zone 2", "Zone 3"],
    }


def test_today_lists_schedules_enabled_today(app, client):
    every_day = make_schedule(app, area="Daily", days=WEEKDAYS)
    make_schedule(app, area="Never", days=())

    body = client.get("/api/garbage/today").get_json()

    assert body["day"] in WEEKDAYS
    assert [s["id"] for s in body["schedules"]] == [every_day]
    assert body["schedules"][0]["todaySlots"][0]["startTime"] == "06:00 AM"


def test_detail_shows_subscription_state(app, client, citizen, moderator):
    schedule_id = make_schedule(app)
    client.post(f"/api/garbage/schedule/{schedule_id}/subscribe", json={}, headers=citizen.headers)

    as_citizen = client.get(f"/api/garbage/schedule/{schedule_id}", headers=citizen.headers).get_json()["schedule"]
    as_staff = client.get(f"/api/garbage/schedule/{schedule_id}", headers=moderator.headers).get_json()["schedule"]
    anonymous = client.get(f"/api/garbage/schedule/{schedule_id}").get_json()["schedule"]

    assert as_citizen["isSubscribed"] is True
    assert "subscribers" not in as_citizen
    assert as_staff["isSubscribed"] is False
    assert as_staff["subscribers"][0]["userId"] == citizen.id
    assert as_staff["subscribers"][0]["notificationPreference"] == "push"
    assert "isSubscribed" not in anonymous


def test_double_subscribe_is_rejected(app, client, citizen):
    schedule_id = make_schedule(app)
    url = f"/api/garbage/schedule/{schedule_id}/subscribe"

    assert client.post(url, json={"notificationPreference": "sms"}, headers=citizen.headers).status_code == 200
    response = client.post(url, json={}, headers=citizen.headers)

    assert response.status_code == 400
    assert response.get_json()["message"] == "Already subscribed to this schedule"


def test_unsubscribe_removes_subscription(app, client, citizen):
    schedule_id = make_schedule(app)
    url = f"/api/garbage/schedule/{schedule_id}/subscribe"
    client.post(url, json={}, headers=citizen.headers)

    assert client.delete(url, headers=citizen.headers).status_code == 200
    detail = client.get(f"/api/garbage/schedule/{schedule_id}", headers=citizen.headers).get_json()["schedule"]
    assert detail["isSubscribed"] is False
    assert detail["subscriberCount"] == 0


def test_subscribe_requires_login(app, client):
    schedule_id = make_schedule(app)
    assert client.post(f"/api/garbage/schedule/{schedule_id}/subscribe", json={}).status_code == 401


def test_mark_collection_keeps_running_average(app, client, moderator):
    schedule_id = make_schedule(app)
    url = f"/api/garbage/schedule/{schedule_id}/mark-collection"

    client.post(url, json={"status": "completed", "delay": 10}, headers=moderator.headers)
    client.post(url, json={"status": "missed"}, headers=moderator.headers)
    stats = client.post(url, json={"status": "completed", "delay": 20}, headers=moderator.headers).get_json()[
        "statistics"
    ]

    assert stats["totalCollections"] == 2
    assert stats["missedCollections"] == 1
    assert stats["averageDelay"] == 15
    assert stats["lastCollectionDate"] is not None
    assert stats["nextCollectionDate"] is not None


def test_mark_collection_rejects_unknown_outcome(app, client, moderator):
    schedule_id = make_schedule(app)

    response = client.post(
        f"/api/garbage/schedule/{schedule_id}/mark-collection", json={"status": "late"}, headers=moderator.headers
    )

    assert response.status_code == 400
    assert "status" in response.get_json()["errors"]


def test_reminders_notify_each_subscriber_once_per_day(app, client, citizen, make_account):
    neighbour = make_account("user")
    monday_id = make_schedule(app, area="Monday Area", days=("monday",))
    tuesday_id = make_schedule(app, area="Tuesday Area", days=("tuesday",))
    for account in (citizen, neighbour):
        client.post(f"/api/garbage/schedule/{monday_id}/subscribe", json={}, headers=account.headers)
    client.post(f"/api/garbage/schedule/{tuesday_id}/subscribe", json={}, headers=citizen.headers)

    first = run_collection_reminders(app, today=MONDAY)
    second = run_collection_reminders(app, today=MONDAY)

    assert first == {"day": "monday", "schedules": 1, "sent": 2, "skipped": 0, "failed": 0}
    assert second == {"day": "monday", "schedules": 1, "sent": 0, "skipped": 2, "failed": 0}
    with app.app_context():
        reminders = Notification.query.filter_by(type="collection_reminder").all()
        assert sorted(n.user_id for n in reminders) == sorted([citizen.id, neighbour.id])
        assert {n.event_id for n in reminders} == {f"collection:{monday_id}:2026-10-19"}
        assert "Monday Area" in reminders[0].message
