"""Hygiene report endpoints: submission, browsing, moderation, votes, and comments."""
import math

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import REPORT_CATEGORIES, REPORT_SEVERITIES, REPORT_STATUSES, Report
from utils.decorators import admin_required, staff_required
from utils.geo import parse_point, within_radius
from utils.http import actor, int_arg, json_body, json_error
from utils.report_service import (
    ReportNotFoundError,
    ReportPermissionError,
    ReportTransitionError,
    ReportValidationError,
    add_comment,
    bulk_update_reports,
    create_report,
    delete_report,
    get_report_or_raise,
    record_view,
    toggle_upvote,
    with_list_loaders,
    update_report_status,
)

reports_bp = Blueprint("reports", __name__)


def _filtered_query():
    query = Report.query
    category = request.args.get("category")
    status = request.args.get("status")
    severity = request.args.get("severity")
    if category in REPORT_CATEGORIES:
        query = query.filter(Report.category == category)
    if status in REPORT_STATUSES:
        query = query.filter(Report.status == status)
    if severity in REPORT_SEVERITIES:
        query = query.filter(Report.severity == severity)
    return query


def _service_error(exc: Exception):
    if isinstance(exc, ReportValidationError):
        return json_error(exc.message, 400, exc.errors)
    if isinstance(exc, ReportTransitionError):
        return json_error(str(exc), 400)
    if isinstance(exc, ReportNotFoundError):
        return json_error("Report not found", 404)
    if isinstance(exc, ReportPermissionError):
        return json_error(str(exc), 403)
    raise exc


@reports_bp.route("", methods=["GET"])
def list_reports():
    page = int_arg("page", 1)
    limit = int_arg("limit", current_app.config["REPORTS_PER_PAGE"], maximum=100)
    query = with_list_loaders(_filtered_query()).order_by(Report.created_at.desc())

    point = parse_point(request.args.get("lat"), request.args.get("lng"))
    if point:
        radius_m = int_arg("radius", 5000, maximum=100_000)
        matches = within_radius(query.all(), point[0], point[1], radius_m / 1000)
        total = len(matches)
        reports = matches[(page - 1) * limit : page * limit]
    else:
        total = query.count()
        reports = query.offset((page - 1) * limit).limit(limit).all()

    return jsonify(
        {
            "success": True,
            "reports": [r.to_dict() for r in reports],
            "totalPages": math.ceil(total / limit) if total else 0,
            "currentPage": page,
            "totalReports": total,
        }
    )


@reports_bp.route("", methods=["POST"])
@login_required
def submit_report():
    try:
        report = create_report(json_body(), actor())
    except ReportValidationError as exc:
        return _service_error(exc)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Report creation failed")
        return json_error("Failed to create report", 500)
    return jsonify({"success": True, "report": report.to_dict()}), 201


@reports_bp.route("/my-reports", methods=["GET"])
@login_required
def my_reports():
    query = with_list_loaders(Report.query.filter_by(user_id=actor().id))
    reports = query.order_by(Report.created_at.desc()).all()
    return jsonify({"success": True, "reports": [r.to_dict() for r in reports]})


@reports_bp.route("/bulk", methods=["POST"])
@staff_required
def bulk_update():
    payload = json_body()
    try:
        result = bulk_update_reports(payload.get("reportIds"), payload.get("status"), actor())
    except (ReportValidationError, ReportPermissionError) as exc:
        return _service_error(exc)
    return jsonify({"success": True, "message": f"{result['modifiedCount']} reports updated successfully", **result})


@reports_bp.route("/<report_id>", methods=["GET"])
def get_report(report_id):
    try:
        report = get_report_or_raise(report_id)
    except ReportNotFoundError as exc:
        return _service_error(exc)
    record_view(report)
    return jsonify({"success": True, "report": report.to_dict(include_comments=True)})


@reports_bp.route("/<report_id>", methods=["PATCH"])
@reports_bp.route("/<report_id>/status", methods=["PUT"])
@staff_required
def update_status(report_id):
    payload = json_body()
    try:
        report, changed = update_report_status(
            report_id,
            payload.get("status"),
            actor(),
            remarks=payload.get("remarks"),
            priority=payload.get("priority"),
        )
    except (ReportValidationError, ReportTransitionError, ReportNotFoundError, ReportPermissionError) as exc:
        return _service_error(exc)
    except SQLAlchemyError:
        db.session.rollback()
        return json_error("Failed to update report status", 500)
    return jsonify({"success": True, "changed": changed, "report": report.to_dict(include_comments=True)})


@reports_bp.route("/<report_id>", methods=["DELETE"])
@admin_required
def remove_report(report_id):
    try:
        delete_report(report_id, actor())
    except (ReportNotFoundError, ReportPermissionError) as exc:
        return _service_error(exc)
    return jsonify({"success": True, "message": "Report deleted successfully"})


@reports_bp.route("/<report_id>/upvote", methods=["POST"])
@login_required
def upvote(report_id):
    try:
        report = get_report_or_raise(report_id)
    except ReportNotFoundError as exc:
        return _service_error(exc)
    return jsonify({"success": True, **toggle_upvote(report, actor())})


@reports_bp.route("/<report_id>/comment", methods=["POST"])
@login_required
def comment(report_id):
    try:
        report = get_report_or_raise(report_id)
        add_comment(report, actor(), json_body())
    except (ReportNotFoundError, ReportValidationError) as exc:
        return _service_error(exc)
    db.session.refresh(report)
    return jsonify({"success": True, "comments": [c.to_dict() for c in report.comments]}), 201
