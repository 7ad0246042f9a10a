from dataclasses import dataclass

import pytest

from app import create_app
from extensions import db, socketio
from models import GarbageSchedule, Report, User
from utils.security import issue_access_token


@dataclass
class Account:
    id: str
    email: str
    token: str

    @property
    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"}


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else str(payload))
        self.headers = {"Content-Type": "application/json"}

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


@pytest.fixture
def app():
    app = create_app("testing")
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_account(app):
    counter = {"n": 0}

    def _make(role="user", name=None, points=0):
        counter["n"] += 1
        email = f"{role}{counter['n']}@example.in"
        with app.app_context():
            user = User(name=name or f"{role.title()} {counter['n']}", email=email, role=role, points=points)
            user.set_password("Password123")
            db.session.add(user)
            db.session.commit()
            return Account(id=user.id, email=email, token=issue_access_token(user))

    return _make


@pytest.fixture
def citizen(make_account):
    return make_account("user", name="Asha Citizen")


@pytest.fixture
def moderator(make_account):
    return make_account("moderator", name="Meera Moderator")


@pytest.fixture
def admin(make_account):
    return make_account("admin", name="Arjun Admin")


@pytest.fixture
def report_payload():
    return {
        "category": "waste",
        "title": "Overflowing bin",
        "description": "Garbage bin near the bus stop has not been cleared for days.",
        "location": {"coordinates": [77.21, 28.61], "address": "Connaught Place, New Delhi"},
    }


@pytest.fixture
def create_report(client, report_payload):
    def _create(account, **overrides):
        payload = dict(report_payload, **overrides)
        response = client.post("/api/reports", json=payload, headers=account.headers)
        assert response.status_code == 201, response.get_json()
        return response.get_json()["report"]

    return _create


@pytest.fixture
def socket_client(app):
    clients = []

    def _connect(account=None):
        auth = {"token": account.token} if account else None
        sio_client = socketio.test_client(app, auth=auth)
        clients.append(sio_client)
        return sio_client

    yield _connect
    for sio_client in clients:
        if sio_client.is_connected():
            sio_client.disconnect()


def received_events(sio_client, name):
    return [packet["args"][0] for packet in sio_client.get_received() if packet["name"] == name]


def fetch_report(app, report_id):
    with app.app_context():
        report = db.session.get(Report, report_id)
        return report.to_dict(include_comments=True) if report else None


def fetch_user(app, user_id):
    with app.app_context():
        return db.session.get(User, user_id).to_dict()


def weekly_plan(*days, slots=None):
    slots = slots or [{"startTime": "06:00 AM", "endTime": "08:00 AM", "wasteType": "organic"}]
    return {day: {"enabled": True, "slots": slots} for day in days}


def make_schedule(app, area="Andheri West", ward="K-West", zone="Zone 3", days=("monday",), **extra):
    with app.app_context():
        schedule = GarbageSchedule(
            area=area,
            ward=ward,
            zone=zone,
            longitude=extra.pop("longitude", 72.8361),
            latitude=extra.pop("latitude", 19.1364),
            schedule=weekly_plan(*days),
            **extra,
        )
        db.session.add(schedule)
        db.session.commit()
        return schedule.id
