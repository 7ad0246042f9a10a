"""Garbage collection schedule endpoints."""
from flask import Blueprint, jsonify, request
from flask_login import login_required

from utils.decorators import admin_required, staff_required
from utils.garbage_service import (
    ScheduleNotFoundError,
    ScheduleValidationError,
    SubscriptionError,
    create_schedule,
    delete_schedule,
    find_schedules,
    get_schedule_or_raise,
    mark_collection,
    subscribe,
    todays_schedules,
    unique_locations,
    unsubscribe,
    update_schedule,
)
from utils.geo import parse_point
from utils.http import actor, json_body, json_error

garbage_bp = Blueprint("garbage", __name__)


@garbage_bp.errorhandler(ScheduleNotFoundError)
def _schedule_missing(_error):
    return json_error("Schedule not found", 404)


@garbage_bp.errorhandler(ScheduleValidationError)
def _schedule_invalid(error):
    return json_error(error.message, 400, error.errors)


def _radius_km() -> float:
    try:
        radius = float(request.args.get("radius", 5))
    except (TypeError, ValueError):
        radius = 5.0
    return min(max(radius, 0.1), 50.0)


@garbage_bp.route("/schedule", methods=["GET"])
def list_schedules():
    schedules = find_schedules(
        area=(request.args.get("area") or "").strip() or None,
        ward=(request.args.get("ward") or "").strip() or None,
        zone=(request.args.get("zone") or "").strip() or None,
        point=parse_point(request.args.get("lat"), request.args.get("lng")),
        radius_km=_radius_km(),
    )
    return jsonify({"success": True, "count": len(schedules), "schedules": [s.to_dict() for s in schedules]})


@garbage_bp.route("/schedule/<schedule_id>", methods=["GET"])
def schedule_detail(schedule_id):
    schedule = get_schedule_or_raise(schedule_id)
    current = actor()
    payload = schedule.to_dict(include_subscribers=bool(current and current.is_staff))
    if current:
        payload["isSubscribed"] = schedule.is_subscribed(current.id)
    return jsonify({"success": True, "schedule": payload})


@garbage_bp.route("/today", methods=["GET"])
def today():
    day, schedules = todays_schedules()
    payload = []
    for schedule in schedules:
        entry = schedule.to_dict()
        entry["todaySlots"] = schedule.day_slots(day)
        payload.append(entry)
    return jsonify({"success": True, "day": day, "count": len(payload), "schedules": payload})


@garbage_bp.route("/locations", methods=["GET"])
def locations():
    return jsonify({"success": True, "locations": unique_locations()})


@garbage_bp.route("/schedule", methods=["POST"])
@staff_required
def create():
    schedule = create_schedule(json_body(), actor())
    return jsonify({"success": True, "schedule": schedule.to_dict(), "message": "Garbage schedule created successfully"}), 201


@garbage_bp.route("/schedule/<schedule_id>", methods=["PUT"])
@staff_required
def update(schedule_id):
    schedule = update_schedule(schedule_id, json_body(), actor())
    return jsonify({"success": True, "schedule": schedule.to_dict(), "message": "Schedule updated successfully"})


@garbage_bp.route("/schedule/<schedule_id>", methods=["DELETE"])
@admin_required
def delete(schedule_id):
    delete_schedule(schedule_id)
    return jsonify({"success": True, "message": "Schedule deleted successfully"})


@garbage_bp.route("/schedule/<schedule_id>/subscribe", methods=["POST"])
@login_required
def subscribe_view(schedule_id):
    try:
        subscribe(schedule_id, actor(), json_body().get("notificationPreference"))
    except SubscriptionError as exc:
        return json_error(str(exc), 400)
    return jsonify({"success": True, "message": "Successfully subscribed to schedule notifications"})


@garbage_bp.route("/schedule/<schedule_id>/subscribe", methods=["DELETE"])
@login_required
def unsubscribe_view(schedule_id):
    unsubscribe(schedule_id, actor())
    return jsonify({"success": True, "message": "Successfully unsubscribed from schedule notifications"})


@garbage_bp.route("/schedule/<schedule_id>/mark-collection", methods=["POST"])
@staff_required
def mark(schedule_id):
    payload = json_body()
    schedule = mark_collection(schedule_id, payload.get("status"), payload.get("delay", 0))
    return jsonify({"success": True, "message": "Collection status updated", "statistics": schedule.statistics})
