"""Notification inbox endpoints backing the client's REST poll."""
from flask import Blueprint, jsonify, request
from flask_login import login_required

from utils.http import actor, int_arg, json_error
from utils.notifications import mark_all_read, mark_read, notifications_for_user, unread_count

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("", methods=["GET"])
@login_required
def inbox():
    user = actor()
    unread_only = (request.args.get("unreadOnly") or "").lower() in {"1", "true", "yes"}
    items = notifications_for_user(user.id, unread_only=unread_only, limit=int_arg("limit", 50, maximum=200))
    return jsonify(
        {
            "success": True,
            "notifications": [n.to_dict() for n in items],
            "unreadCount": unread_count(user.id),
        }
    )


@notifications_bp.route("/unread-count", methods=["GET"])
@login_required
def unread():
    return jsonify({"success": True, "unreadCount": unread_count(actor().id)})


@notifications_bp.route("/read-all", methods=["PATCH"])
@login_required
def read_all():
    updated = mark_all_read(actor().id)
    return jsonify({"success": True, "updated": updated})


@notifications_bp.route("/<int:notification_id>/read", methods=["PATCH"])
@login_required
def read_one(notification_id):
    notification = mark_read(notification_id, actor().id)
    if notification is None:
        return json_error("Notification not found", 404)
    return jsonify({"success": True, "notification": notification.to_dict()})
