"""Report lifecycle: creation, status workflow, bulk moderation, votes, and comments."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload
from wtforms import Form, SelectField
from wtforms.validators import DataRequired, Length, ValidationError

from extensions import db
from models import (
    REPORT_CATEGORIES,
    REPORT_SEVERITIES,
    REPORT_STATUSES,
    Report,
    ReportComment,
    ReportStatusHistory,
    ReportVote,
    User,
)
from utils.decorators import record_audit
from utils.gamification import award_points
from utils.notifications import event_key, notify
from utils.realtime import broadcast, emit_to_admins, emit_to_user
from utils.validation import JSONField, JSONStringField, PayloadValidationError, strip_text, validate_json

MAX_IMAGES_PER_REPORT = 5


class ReportValidationError(PayloadValidationError):
    """Report payload failed field validation."""


class ReportNotFoundError(Exception):
    pass


class ReportPermissionError(Exception):
    pass


class ReportTransitionError(Exception):
    """Requested status change is not allowed from the report's current status."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot move report from {current} to {requested}")
        self.current = current
        self.requested = requested


def _choices(values: Iterable[str]) -> list[tuple[str, str]]:
    return [(v, v) for v in values]


class ReportForm(Form):
    category = SelectField("Category", choices=_choices(REPORT_CATEGORIES), validators=[DataRequired()])
    title = JSONStringField("Title", filters=[strip_text], validators=[DataRequired(), Length(max=200)])
    description = JSONStringField("Description", filters=[strip_text], validators=[DataRequired(), Length(max=2000)])
    severity = SelectField("Severity", choices=_choices(REPORT_SEVERITIES), default="medium")
    location = JSONField("Location")
    images = JSONField("Images", default=list)

    def validate_location(self, field):
        value = field.data
        if not isinstance(value, dict):
            raise ValidationError("Location with coordinates is required.")
        coordinates = value.get("coordinates")
        if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
            raise ValidationError("Coordinates must be [longitude, latitude].")
        if any(isinstance(c, bool) or not isinstance(c, (int, float)) for c in coordinates):
            raise ValidationError("Coordinates must be numbers.")
        lng, lat = coordinates
        if not -180 <= lng <= 180:
            raise ValidationError("Longitude must be between -180 and 180.")
        if not -90 <= lat <= 90:
            raise ValidationError("Latitude must be between -90 and 90.")
        for key, limit in (("address", 500), ("landmark", 255)):
            text = value.get(key)
            if text is not None and (not isinstance(text, str) or len(text) > limit):
                raise ValidationError(f"{key.title()} must be text up to {limit} characters.")

    def validate_images(self, field):
        value = field.data or []
        if not isinstance(value, list) or len(value) > MAX_IMAGES_PER_REPORT:
            raise ValidationError(f"Provide at most {MAX_IMAGES_PER_REPORT} images.")
        for item in value:
            url = item.get("url") if isinstance(item, dict) else item
            if not isinstance(url, str) or not url.strip():
                raise ValidationError("Each image must be a URL string.")


class CommentForm(Form):
    text = JSONStringField("Comment", filters=[strip_text], validators=[DataRequired(), Length(max=1000)])


def with_list_loaders(query):
    """Eager-load the owner and votes ``Report.to_dict`` reads, one query per relation."""
    return query.options(selectinload(Report.user), selectinload(Report.votes))


def get_report_or_raise(report_id: str) -> Report:
    report = db.session.get(Report, str(report_id))
    if report is None:
        raise ReportNotFoundError(report_id)
    return report


def _normalize_images(images) -> list[dict]:
    stamp = datetime.utcnow().isoformat()
    normalized = []
    for item in images or []:
        url = item.get("url") if isinstance(item, dict) else item
        normalized.append({"url": url.strip(), "uploadedAt": stamp})
    return normalized


def create_report(payload: dict, user: User) -> Report:
    form = validate_json(ReportForm, payload, ReportValidationError)
    location = form.location.data
    lng, lat = location["coordinates"]

    report = Report(
        user_id=user.id,
        category=form.category.data,
        title=form.title.data,
        description=form.description.data,
        severity=form.severity.data or "medium",
        status="pending",
        longitude=float(lng),
        latitude=float(lat),
        address=(location.get("address") or "").strip(),
        landmark=(location.get("landmark") or "").strip(),
        images=_normalize_images(form.images.data),
    )
    db.session.add(report)
    db.session.flush()
    db.session.add(ReportStatusHistory(report_id=report.id, previous_status=None, new_status="pending", changed_by=user.id))

    user.reports_submitted = (user.reports_submitted or 0) + 1
    leveled_up = award_points(user, current_app.config["POINTS_REPORT_SUBMITTED"], "report_submitted")
    db.session.commit()

    current_app.logger.info(
        "Report created",
        extra={"report_id": report.id, "user_id": user.id, "category": report.category, "severity": report.severity},
    )
    if leveled_up:
        notify_level_up(user)
    broadcast("newReport", report.to_dict())
    return report


def notify_level_up(user: User) -> None:
    notify(
        user.id,
        event_key("level", user.id, user.level),
        "Level Up!",
        f"Congratulations! You've reached level {user.level}",
        type="level_up",
        priority="high",
        data={"level": user.level, "points": user.points},
    )


def _ensure_staff(actor: Optional[User]) -> None:
    if actor is None or not getattr(actor, "is_authenticated", False):
        raise ReportPermissionError("Authentication required")
    if not actor.is_staff:
        raise ReportPermissionError("Moderator or admin role required")


def _validate_status(new_status: str) -> None:
    if new_status not in REPORT_STATUSES:
        raise ReportValidationError({"status": ["Not a valid choice."]})


def _apply_status(report: Report, new_status: str, actor: User, remarks: Optional[str] = None) -> bool:
    """Mutate ``report`` for a status change. Returns False when the status is unchanged."""
    if report.status == new_status:
        return False
    if not report.can_transition_to(new_status):
        raise ReportTransitionError(report.status, new_status)

    previous = report.status
    report.status = new_status
    report.updated_at = datetime.utcnow()
    db.session.add(
        ReportStatusHistory(
            report_id=report.id,
            previous_status=previous,
            new_status=new_status,
            remarks=str(remarks)[:500] if remarks else None,
            changed_by=actor.id,
        )
    )
    if new_status == "resolved":
        report.resolved_at = datetime.utcnow()
        report.verified_by = actor.id
    return True


def _after_status_change(report: Report, previous: str, owner_leveled_up: bool) -> bool:
    """Notify the owner and push ``reportUpdated`` for a committed status change.

    Returns False when the owner's notification could not be stored; the status
    change itself stays committed either way.
    """
    owner = report.user
    payload = report.to_dict()
    notified = True
    try:
        notify(
            report.user_id,
            event_key("report", report.id, "status", report.status),
            "Report Status Updated",
            f'Your report "{report.title}" has been marked as {report.status}',
            type="report_update",
            priority="high" if report.status == "resolved" else "medium",
            data={"reportId": report.id, "oldStatus": previous, "newStatus": report.status},
            link=f"/reports/{report.id}",
        )
        if owner_leveled_up and owner is not None:
            notify_level_up(owner)
    except SQLAlchemyError:
        db.session.rollback()
        notified = False
        current_app.logger.exception("Status change notification failed", extra={"report_id": payload["id"]})
    emit_to_user(payload["userId"], "reportUpdated", payload)
    emit_to_admins("reportUpdated", payload)
    return notified


def _commit_status_change(report: Report, new_status: str, actor: User, remarks: Optional[str]) -> tuple[bool, str, bool]:
    previous = report.status
    changed = _apply_status(report, new_status, actor, remarks)
    leveled_up = False
    if changed and new_status == "resolved" and report.user is not None:
        leveled_up = award_points(report.user, current_app.config["POINTS_REPORT_RESOLVED"], "report_resolved")
    db.session.commit()
    return changed, previous, leveled_up


def update_report_status(
    report_id: str,
    new_status: str,
    actor: Optional[User],
    remarks: Optional[str] = None,
    priority: Optional[int] = None,
) -> tuple[Report, bool]:
    """Move a report through the workflow on behalf of a moderator or admin.

    Returns the report and whether its status actually changed. An unchanged
    status is a no-op (priority may still be updated); an illegal move raises
    ``ReportTransitionError`` without touching the row.
    """
    _ensure_staff(actor)
    _validate_status(new_status)
    report = get_report_or_raise(report_id)

    if priority is not None:
        if isinstance(priority, bool) or not isinstance(priority, int) or not 0 <= priority <= 10:
            raise ReportValidationError({"priority": ["Priority must be an integer between 0 and 10."]})

    try:
        if priority is not None:
            report.priority = priority
        changed, previous, leveled_up = _commit_status_change(report, new_status, actor, remarks)
    except ReportTransitionError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Report status update failed", extra={"report_id": report_id})
        raise

    if changed:
        current_app.logger.info(
            "Report status changed",
            extra={"report_id": report.id, "from": previous, "to": new_status, "actor_id": actor.id},
        )
        _after_status_change(report, previous, leveled_up)
    return report, changed


def bulk_update_reports(report_ids: List[str], new_status: str, actor: Optional[User]) -> dict:
    """Apply the single-report workflow to each id, committing one report at a time."""
    _ensure_staff(actor)
    _validate_status(new_status)
    if not isinstance(report_ids, list) or not report_ids:
        raise ReportValidationError({"reportIds": ["Report IDs are required."]})
    max_ids = current_app.config.get("BULK_UPDATE_MAX_IDS", 200)
    if len(report_ids) > max_ids:
        raise ReportValidationError({"reportIds": [f"At most {max_ids} reports per request."]})

    updated: list[str] = []
    skipped: list[dict] = []
    warnings: list[dict] = []
    seen: set[str] = set()
    for raw_id in report_ids:
        report_id = str(raw_id)
        if report_id in seen:
            continue
        seen.add(report_id)

        report = db.session.get(Report, report_id)
        if report is None:
            skipped.append({"id": report_id, "reason": "not_found"})
            continue
        try:
            changed, previous, leveled_up = _commit_status_change(report, new_status, actor, "Bulk update")
        except ReportTransitionError as exc:
            db.session.rollback()
            skipped.append({"id": report_id, "reason": "invalid_transition", "message": str(exc)})
            continue
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Bulk update failed for report", extra={"report_id": report_id})
            skipped.append({"id": report_id, "reason": "error"})
            continue

        if not changed:
            skipped.append({"id": report_id, "reason": "unchanged"})
            continue
        updated.append(report_id)
        if not _after_status_change(report, previous, leveled_up):
            warnings.append({"id": report_id, "reason": "notification_failed"})

    current_app.logger.info(
        "Bulk report update",
        extra={
            "actor_id": actor.id,
            "status": new_status,
            "updated": len(updated),
            "skipped": len(skipped),
            "warnings": len(warnings),
        },
    )
    return {"updated": updated, "skipped": skipped, "warnings": warnings, "modifiedCount": len(updated)}


def delete_report(report_id: str, actor: Optional[User]) -> None:
    if actor is None or not getattr(actor, "is_authenticated", False) or not actor.is_admin:
        raise ReportPermissionError("Admin role required")
    report = get_report_or_raise(report_id)
    db.session.delete(report)
    record_audit("REPORT_DELETED", actor, f"report:{report_id}")
    db.session.commit()
    current_app.logger.info("Report deleted", extra={"report_id": report_id, "actor_id": actor.id})


def record_view(report: Report) -> Report:
    report.views = (report.views or 0) + 1
    db.session.commit()
    return report


def toggle_upvote(report: Report, user: User) -> dict:
    vote = ReportVote.query.filter_by(report_id=report.id, user_id=user.id).first()
    if vote:
        db.session.delete(vote)
        upvoted = False
    else:
        db.session.add(ReportVote(report_id=report.id, user_id=user.id))
        upvoted = True
    db.session.commit()
    db.session.refresh(report)
    return {"upvoted": upvoted, "upvotes": len(report.votes)}


def add_comment(report: Report, user: User, payload: dict) -> ReportComment:
    form = validate_json(CommentForm, payload, ReportValidationError)
    comment = ReportComment(report_id=report.id, user_id=user.id, text=form.text.data)
    db.session.add(comment)
    leveled_up = award_points(user, current_app.config["POINTS_COMMENT_POSTED"], "comment_posted")
    db.session.commit()
    current_app.logger.info("Comment added", extra={"report_id": report.id, "user_id": user.id})
    if leveled_up:
        notify_level_up(user)
    return comment
