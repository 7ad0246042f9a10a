"""Moderator and admin console endpoints."""
import math

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_

from extensions import db
from models import REPORT_CATEGORIES, REPORT_SEVERITIES, REPORT_STATUSES, USER_ROLES, Report, User
from utils.analytics import admin_statistics
from utils.decorators import admin_required, record_audit, staff_required
from utils.gamification import achievements
from utils.http import actor, int_arg, json_body, json_error
from utils.report_service import (
    ReportNotFoundError,
    ReportPermissionError,
    ReportTransitionError,
    ReportValidationError,
    bulk_update_reports,
    delete_report,
    update_report_status,
    with_list_loaders,
)

admin_bp = Blueprint("admin", __name__)

REPORT_SORT_COLUMNS = {
    "createdAt": Report.created_at,
    "updatedAt": Report.updated_at,
    "severity": Report.severity,
    "status": Report.status,
    "priority": Report.priority,
    "views": Report.views,
}


@admin_bp.route("/statistics", methods=["GET"])
@staff_required
def statistics():
    return jsonify({"success": True, "statistics": admin_statistics()})


@admin_bp.route("/reports", methods=["GET"])
@staff_required
def all_reports():
    page = int_arg("page", 1)
    limit = int_arg("limit", current_app.config["ADMIN_REPORTS_PER_PAGE"], maximum=100)
    query = Report.query

    status = request.args.get("status")
    category = request.args.get("category")
    severity = request.args.get("severity")
    search = (request.args.get("search") or "").strip()
    if status in REPORT_STATUSES:
        query = query.filter(Report.status == status)
    if category in REPORT_CATEGORIES:
        query = query.filter(Report.category == category)
    if severity in REPORT_SEVERITIES:
        query = query.filter(Report.severity == severity)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(Report.title.ilike(pattern), Report.description.ilike(pattern), Report.address.ilike(pattern))
        )

    column = REPORT_SORT_COLUMNS.get(request.args.get("sortBy"), Report.created_at)
    ordering = column.asc() if request.args.get("order") == "asc" else column.desc()
    total = query.count()
    reports = with_list_loaders(query).order_by(ordering).offset((page - 1) * limit).limit(limit).all()
    return jsonify(
        {
            "success": True,
            "reports": [r.to_dict() for r in reports],
            "totalPages": math.ceil(total / limit) if total else 0,
            "currentPage": page,
            "totalReports": total,
        }
    )


@admin_bp.route("/reports/bulk-update", methods=["PUT"])
@staff_required
def bulk_update():
    payload = json_body()
    try:
        result = bulk_update_reports(payload.get("reportIds"), payload.get("status"), actor())
    except ReportValidationError as exc:
        return json_error(exc.message, 400, exc.errors)
    except ReportPermissionError as exc:
        return json_error(str(exc), 403)
    return jsonify({"success": True, "message": f"{result['modifiedCount']} reports updated successfully", **result})


@admin_bp.route("/reports/<report_id>", methods=["PUT"])
@staff_required
def update_report(report_id):
    payload = json_body()
    existing = db.session.get(Report, report_id)
    if existing is None:
        return json_error("Report not found", 404)
    try:
        report, changed = update_report_status(
            report_id,
            payload.get("status") or existing.status,
            actor(),
            remarks=payload.get("remarks"),
            priority=payload.get("priority"),
        )
    except ReportValidationError as exc:
        return json_error(exc.message, 400, exc.errors)
    except ReportTransitionError as exc:
        return json_error(str(exc), 400)
    except ReportNotFoundError:
        return json_error("Report not found", 404)
    except ReportPermissionError as exc:
        return json_error(str(exc), 403)
    return jsonify({"success": True, "changed": changed, "report": report.to_dict(), "message": "Report updated successfully"})


@admin_bp.route("/reports/<report_id>", methods=["DELETE"])
@admin_required
def remove_report(report_id):
    try:
        delete_report(report_id, actor())
    except ReportNotFoundError:
        return json_error("Report not found", 404)
    except ReportPermissionError as exc:
        return json_error(str(exc), 403)
    return jsonify({"success": True, "message": "Report deleted successfully"})


@admin_bp.route("/users", methods=["GET"])
@admin_required
def all_users():
    page = int_arg("page", 1)
    limit = int_arg("limit", current_app.config["ADMIN_REPORTS_PER_PAGE"], maximum=100)
    query = User.query
    search = (request.args.get("search") or "").strip()
    role = request.args.get("role")
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    if role in USER_ROLES:
        query = query.filter(User.role == role)

    total = query.count()
    users = query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    payload = []
    for user in users:
        resolved = Report.query.filter_by(user_id=user.id, status="resolved").count()
        entry = user.to_dict()
        entry["achievements"] = achievements(user.reports_submitted, resolved, user.points)
        payload.append(entry)
    return jsonify(
        {
            "success": True,
            "users": payload,
            "totalPages": math.ceil(total / limit) if total else 0,
            "currentPage": page,
            "totalUsers": total,
        }
    )


@admin_bp.route("/users/<user_id>/role", methods=["PUT"])
@admin_required
def update_user_role(user_id):
    role = json_body().get("role")
    if role not in USER_ROLES:
        return json_error("Invalid role", 400, {"role": ["Not a valid choice."]})
    user = db.session.get(User, user_id)
    if not user:
        return json_error("User not found", 404)

    previous = user.role
    user.role = role
    record_audit("ROLE_CHANGED", actor(), f"user:{user.id}:{previous}->{role}")
    db.session.commit()
    current_app.logger.info("User role updated", extra={"user_id": user.id, "from": previous, "to": role})
    return jsonify(
        {
            "success": True,
            "user": {"id": user.id, "name": user.name, "email": user.email, "role": user.role},
            "message": "User role updated successfully",
        }
    )
