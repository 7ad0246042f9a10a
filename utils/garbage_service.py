"""Garbage collection schedules: validation, lookup, subscriptions, and collection tracking."""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy import or_
from wtforms import BooleanField, Form
from wtforms.validators import DataRequired, Length, ValidationError

from extensions import db
from models import (
    COLLECTION_OUTCOMES,
    SUBSCRIPTION_PREFERENCES,
    WASTE_TYPES,
    WEEKDAYS,
    GarbageSchedule,
    ScheduleSubscription,
    User,
)
from utils.geo import within_radius
from utils.realtime import broadcast
from utils.validation import JSONField, JSONStringField, PayloadValidationError, strip_text, validate_json

VEHICLE_TYPES = ("compactor", "tipper", "mini-truck", "e-rickshaw")
VEHICLE_STATUSES = ("active", "inactive", "maintenance")
MAX_SCHEDULE_RESULTS = 20
MAX_TODAY_RESULTS = 50


class ScheduleValidationError(PayloadValidationError):
    pass


class ScheduleNotFoundError(Exception):
    pass


class SubscriptionError(Exception):
    pass


def _normalize_week(raw) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError("Schedule must map weekdays to collection plans.")
    unknown = set(raw) - set(WEEKDAYS)
    if unknown:
        raise ValidationError(f"Unknown weekday(s): {', '.join(sorted(unknown))}.")
    week = {}
    for day in WEEKDAYS:
        plan = raw.get(day) or {}
        if not isinstance(plan, dict):
            raise ValidationError(f"{day.title()} must be an object.")
        slots = []
        for slot in plan.get("slots") or []:
            if not isinstance(slot, dict):
                raise ValidationError(f"{day.title()} slots must be objects.")
            start, end = slot.get("startTime"), slot.get("endTime")
            if not isinstance(start, str) or not isinstance(end, str) or not start.strip() or not end.strip():
                raise ValidationError(f"{day.title()} slots need startTime and endTime.")
            waste_type = slot.get("wasteType") or "mixed"
            if waste_type not in WASTE_TYPES:
                raise ValidationError(f"Unsupported waste type '{waste_type}'.")
            slots.append({"startTime": start.strip(), "endTime": end.strip(), "wasteType": waste_type})
        week[day] = {"enabled": bool(plan.get("enabled")), "slots": slots}
    return week


def _normalize_vehicles(raw) -> list:
    if not isinstance(raw, list):
        raise ValidationError("Vehicles must be a list.")
    vehicles = []
    for item in raw:
        if not isinstance(item, dict) or not str(item.get("vehicleNumber") or "").strip():
            raise ValidationError("Each vehicle needs a vehicleNumber.")
        vehicle_type = item.get("vehicleType") or "compactor"
        status = item.get("status") or "active"
        if vehicle_type not in VEHICLE_TYPES:
            raise ValidationError(f"Unsupported vehicle type '{vehicle_type}'.")
        if status not in VEHICLE_STATUSES:
            raise ValidationError(f"Unsupported vehicle status '{status}'.")
        vehicles.append(
            {
                "vehicleNumber": str(item["vehicleNumber"]).strip(),
                "vehicleType": vehicle_type,
                "capacity": item.get("capacity"),
                "driverName": item.get("driverName"),
                "driverContact": item.get("driverContact"),
                "status": status,
            }
        )
    return vehicles


class ScheduleForm(Form):
    area = JSONStringField("Area", filters=[strip_text], validators=[DataRequired(), Length(max=200)])
    ward = JSONStringField("Ward", filters=[strip_text], validators=[DataRequired(), Length(max=120)])
    zone = JSONStringField("Zone", filters=[strip_text], validators=[DataRequired(), Length(max=120)])
    location = JSONField("Location", default=dict)
    schedule = JSONField("Schedule", default=dict)
    vehicles = JSONField("Vehicles", default=list)
    route = JSONField("Route", default=dict)
    contactPerson = JSONField("Contact person", default=dict)
    specialInstructions = JSONStringField("Special instructions", validators=[Length(max=1000)])
    isActive = BooleanField("Active", default=True)

    def validate_location(self, field):
        value = field.data or {}
        if not isinstance(value, dict):
            raise ValidationError("Location must be an object.")
        coordinates = value.get("coordinates", [0, 0])
        if (
            not isinstance(coordinates, (list, tuple))
            or len(coordinates) != 2
            or any(isinstance(c, bool) or not isinstance(c, (int, float)) for c in coordinates)
        ):
            raise ValidationError("Coordinates must be [longitude, latitude].")
        lng, lat = coordinates
        if not (-180 <= lng <= 180 and -90 <= lat <= 90):
            raise ValidationError("Coordinates out of range.")

    def validate_schedule(self, field):
        field.data = _normalize_week(field.data or {})

    def validate_vehicles(self, field):
        field.data = _normalize_vehicles(field.data or [])

    def validate_route(self, field):
        if not isinstance(field.data or {}, dict):
            raise ValidationError("Route must be an object.")

    def validate_contactPerson(self, field):
        if not isinstance(field.data or {}, dict):
            raise ValidationError("Contact person must be an object.")


def _apply_form(schedule: GarbageSchedule, form: ScheduleForm, editor: User) -> None:
    location = form.location.data or {}
    lng, lat = location.get("coordinates", [0, 0])
    schedule.area = form.area.data
    schedule.ward = form.ward.data
    schedule.zone = form.zone.data
    schedule.longitude = float(lng)
    schedule.latitude = float(lat)
    schedule.address = (location.get("address") or "").strip() or None
    schedule.schedule = form.schedule.data
    schedule.vehicles = form.vehicles.data
    schedule.route = form.route.data or None
    schedule.contact_person = form.contactPerson.data or None
    schedule.special_instructions = form.specialInstructions.data or None
    schedule.is_active = bool(form.isActive.data)
    schedule.updated_by = editor.id
    schedule.last_updated = datetime.utcnow()


def _form_snapshot(schedule: GarbageSchedule) -> dict:
    return {
        "area": schedule.area,
        "ward": schedule.ward,
        "zone": schedule.zone,
        "location": {"coordinates": [schedule.longitude, schedule.latitude], "address": schedule.address or ""},
        "schedule": schedule.schedule or {},
        "vehicles": schedule.vehicles or [],
        "route": schedule.route or {},
        "contactPerson": schedule.contact_person or {},
        "specialInstructions": schedule.special_instructions,
        "isActive": schedule.is_active,
    }


def get_schedule_or_raise(schedule_id: str) -> GarbageSchedule:
    schedule = db.session.get(GarbageSchedule, str(schedule_id))
    if schedule is None:
        raise ScheduleNotFoundError(schedule_id)
    return schedule


def create_schedule(payload: dict, editor: User) -> GarbageSchedule:
    form = validate_json(ScheduleForm, payload, ScheduleValidationError)
    schedule = GarbageSchedule()
    _apply_form(schedule, form, editor)
    nxt = schedule.next_collection()
    schedule.next_collection_date = date.fromisoformat(nxt["date"]) if nxt else None
    db.session.add(schedule)
    db.session.commit()
    current_app.logger.info("Garbage schedule created", extra={"schedule_id": schedule.id, "area": schedule.area})
    return schedule


def update_schedule(schedule_id: str, payload: dict, editor: User) -> GarbageSchedule:
    schedule = get_schedule_or_raise(schedule_id)
    if not isinstance(payload, dict):
        raise ScheduleValidationError({"body": ["Expected a JSON object."]})
    merged = _form_snapshot(schedule)
    merged.update({k: v for k, v in payload.items() if k in merged})
    form = validate_json(ScheduleForm, merged, ScheduleValidationError)
    _apply_form(schedule, form, editor)
    nxt = schedule.next_collection()
    schedule.next_collection_date = date.fromisoformat(nxt["date"]) if nxt else None
    db.session.commit()
    current_app.logger.info("Garbage schedule updated", extra={"schedule_id": schedule.id, "editor_id": editor.id})
    broadcast(
        "scheduleUpdated",
        {"scheduleId": schedule.id, "area": schedule.area, "message": "Garbage collection schedule has been updated"},
    )
    return schedule


def delete_schedule(schedule_id: str) -> None:
    schedule = get_schedule_or_raise(schedule_id)
    db.session.delete(schedule)
    db.session.commit()
    current_app.logger.info("Garbage schedule deleted", extra={"schedule_id": schedule_id})


def find_schedules(
    area: Optional[str] = None,
    ward: Optional[str] = None,
    zone: Optional[str] = None,
    point: Optional[tuple[float, float]] = None,
    radius_km: float = 5,
) -> List[GarbageSchedule]:
    query = GarbageSchedule.query.filter(GarbageSchedule.is_active.is_(True))
    if area:
        pattern = f"%{area}%"
        query = query.filter(
            or_(
                GarbageSchedule.area.ilike(pattern),
                GarbageSchedule.ward.ilike(pattern),
                GarbageSchedule.zone.ilike(pattern),
            )
        )
    if ward:
        query = query.filter(GarbageSchedule.ward.ilike(f"%{ward}%"))
    if zone:
        query = query.filter(GarbageSchedule.zone.ilike(f"%{zone}%"))
    if point:
        return within_radius(query.all(), point[0], point[1], radius_km)[:MAX_SCHEDULE_RESULTS]
    return query.order_by(GarbageSchedule.area.asc()).limit(MAX_SCHEDULE_RESULTS).all()


def todays_schedules(today: Optional[date] = None) -> tuple[str, List[GarbageSchedule]]:
    today = today or datetime.utcnow().date()
    day = WEEKDAYS[today.weekday()]
    active = GarbageSchedule.query.filter(GarbageSchedule.is_active.is_(True)).order_by(GarbageSchedule.area.asc()).all()
    return day, [s for s in active if s.is_enabled_on(day)][:MAX_TODAY_RESULTS]


def unique_locations() -> dict:
    def _distinct(column):
        rows = db.session.query(column).filter(GarbageSchedule.is_active.is_(True)).distinct().all()
        return sorted(value for (value,) in rows if value)

    return {
        "areas": _distinct(GarbageSchedule.area),
        "wards": _distinct(GarbageSchedule.ward),
        "zones": _distinct(GarbageSchedule.zone),
    }


def subscribe(schedule_id: str, user: User, preference: Optional[str] = None) -> ScheduleSubscription:
    schedule = get_schedule_or_raise(schedule_id)
    preference = preference or "push"
    if preference not in SUBSCRIPTION_PREFERENCES:
        raise ScheduleValidationError({"notificationPreference": ["Not a valid choice."]})
    if schedule.is_subscribed(user.id):
        raise SubscriptionError("Already subscribed to this schedule")
    subscription = ScheduleSubscription(schedule_id=schedule.id, user_id=user.id, notification_preference=preference)
    db.session.add(subscription)
    db.session.commit()
    current_app.logger.info("Schedule subscription added", extra={"schedule_id": schedule.id, "user_id": user.id})
    return subscription


def unsubscribe(schedule_id: str, user: User) -> bool:
    schedule = get_schedule_or_raise(schedule_id)
    removed = ScheduleSubscription.query.filter_by(schedule_id=schedule.id, user_id=user.id).delete()
    db.session.commit()
    return bool(removed)


def mark_collection(schedule_id: str, outcome: str, delay=0, today: Optional[date] = None) -> GarbageSchedule:
    """Record a completed or missed collection and refresh the running statistics."""
    schedule = get_schedule_or_raise(schedule_id)
    if outcome not in COLLECTION_OUTCOMES:
        raise ScheduleValidationError({"status": ["Status must be 'completed' or 'missed'."]})
    if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
        raise ScheduleValidationError({"delay": ["Delay must be a non-negative number of minutes."]})

    if outcome == "completed":
        schedule.total_collections = (schedule.total_collections or 0) + 1
        schedule.last_collection_date = datetime.utcnow()
        total_delay = (schedule.average_delay or 0) * (schedule.total_collections - 1) + delay
        schedule.average_delay = round(total_delay / schedule.total_collections)
    else:
        schedule.missed_collections = (schedule.missed_collections or 0) + 1

    nxt = schedule.next_collection(today)
    if nxt:
        schedule.next_collection_date = date.fromisoformat(nxt["date"])
    db.session.commit()
    current_app.logger.info(
        "Collection marked",
        extra={"schedule_id": schedule.id, "outcome": outcome, "delay": delay},
    )
    return schedule
