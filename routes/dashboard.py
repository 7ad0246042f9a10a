"""Public dashboard feeds and the signed-in citizen's progress view."""
from flask import Blueprint, jsonify, request
from flask_login import login_required

from utils.analytics import heatmap_points, public_stats, recent_activity, user_dashboard
from utils.gamification import LEADERBOARD_ORDERING, leaderboard
from utils.http import actor, int_arg

dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/user", methods=["GET"])
@login_required
def user_view():
    return jsonify({"success": True, "data": user_dashboard(actor())})


@dashboard_bp.route("/stats", methods=["GET"])
def stats():
    return jsonify({"success": True, "stats": public_stats()})


@dashboard_bp.route("/leaderboard", methods=["GET"])
def leaderboard_view():
    kind = request.args.get("type", "points")
    if kind not in LEADERBOARD_ORDERING:
        kind = "points"
    limit = int_arg("limit", 10, maximum=100)
    return jsonify({"success": True, "type": kind, "leaderboard": leaderboard(kind, limit)})


@dashboard_bp.route("/activity", methods=["GET"])
def activity():
    return jsonify({"success": True, "activity": recent_activity(int_arg("limit", 20, maximum=100))})


@dashboard_bp.route("/heatmap", methods=["GET"])
def heatmap():
    return jsonify({"success": True, "heatmapData": heatmap_points()})
