"""Aggregations behind the public, citizen, and admin dashboards."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, func

from extensions import db
from models import Report, User
from utils.gamification import achievements, level_progress, user_rank
from utils.report_service import with_list_loaders

HEATMAP_INTENSITY = {"critical": 1.0, "high": 0.75, "medium": 0.5, "low": 0.25}
OPEN_STATUSES = ("pending", "in-progress")


def _status_counts(base_query) -> Dict[str, int]:
    rows = base_query.with_entities(Report.status, func.count(Report.id)).group_by(Report.status).all()
    counts = dict(rows)
    return {
        "total": sum(counts.values()),
        "pending": counts.get("pending", 0),
        "inProgress": counts.get("in-progress", 0),
        "resolved": counts.get("resolved", 0),
        "rejected": counts.get("rejected", 0),
    }


def average_resolution_hours(user_id: Optional[str] = None) -> float:
    query = Report.query.filter(Report.status == "resolved", Report.resolved_at.isnot(None))
    if user_id:
        query = query.filter(Report.user_id == user_id)
    resolved = query.with_entities(Report.created_at, Report.resolved_at).all()
    if not resolved:
        return 0.0
    total_seconds = sum((resolved_at - created_at).total_seconds() for created_at, resolved_at in resolved)
    return round(total_seconds / len(resolved) / 3600, 2)


def _resolution_rate(resolved: int, total: int) -> float:
    return round(resolved / total * 100, 1) if total else 0.0


def _grouped(column) -> List[Dict]:
    rows = db.session.query(column, func.count(Report.id)).group_by(column).order_by(func.count(Report.id).desc()).all()
    return [{"_id": key, "count": count} for key, count in rows]


def _daily_counts(days: int, now: Optional[datetime] = None) -> List[Dict]:
    now = now or datetime.utcnow()
    start = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)
    created = db.session.query(Report.created_at).filter(Report.created_at >= start).all()
    buckets: Dict[str, int] = {}
    for offset in range(days):
        buckets[(start + timedelta(days=offset)).date().isoformat()] = 0
    for (created_at,) in created:
        key = created_at.date().isoformat()
        if key in buckets:
            buckets[key] += 1
    return [{"date": key, "count": count} for key, count in buckets.items()]


def public_stats() -> Dict:
    counts = _status_counts(Report.query)
    return {
        "totalReports": counts["total"],
        "resolvedReports": counts["resolved"],
        "pendingReports": counts["pending"],
        "inProgressReports": counts["inProgress"],
        "totalUsers": User.query.count(),
        "avgResolutionTime": average_resolution_hours(),
        "resolutionRate": _resolution_rate(counts["resolved"], counts["total"]),
        "categoryStats": _grouped(Report.category),
        "severityStats": _grouped(Report.severity),
        "reportsOverTime": [entry for entry in _daily_counts(30) if entry["count"]],
    }


def heatmap_points() -> List[Dict]:
    reports = (
        Report.query.filter(Report.status.in_(OPEN_STATUSES))
        .with_entities(Report.latitude, Report.longitude, Report.severity)
        .all()
    )
    return [
        {"lat": lat, "lng": lng, "intensity": HEATMAP_INTENSITY.get(severity, 0.25)}
        for lat, lng, severity in reports
    ]


def recent_activity(limit: int = 20) -> List[Dict]:
    reports = Report.query.order_by(Report.created_at.desc()).limit(limit).all()
    return [
        {
            "id": r.id,
            "title": r.title,
            "category": r.category,
            "status": r.status,
            "createdAt": r.created_at.isoformat(),
            "location": {"coordinates": r.coordinates, "address": r.address or ""},
            "user": r.user.public_payload() if r.user else None,
        }
        for r in reports
    ]


def user_dashboard(user: User) -> Dict:
    counts = _status_counts(Report.query.filter(Report.user_id == user.id))
    recent = (
        with_list_loaders(Report.query.filter_by(user_id=user.id))
        .order_by(Report.created_at.desc())
        .limit(10)
        .all()
    )
    return {
        "stats": {
            "totalReports": counts["total"],
            "resolvedReports": counts["resolved"],
            "pendingReports": counts["pending"],
            "inProgressReports": counts["inProgress"],
            "averageResponseTime": round(average_resolution_hours(user.id), 1),
            "userPoints": user.points,
            "userLevel": user.level,
            "userRank": user_rank(user),
            "levelProgress": level_progress(user.points),
        },
        "achievements": achievements(counts["total"], counts["resolved"], user.points),
        "recentReports": [r.to_dict() for r in recent],
    }


def admin_statistics(now: Optional[datetime] = None) -> Dict:
    now = now or datetime.utcnow()
    counts = _status_counts(Report.query)
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    last_month = now - timedelta(days=30)

    by_category = (
        db.session.query(
            Report.category,
            func.count(Report.id),
            func.sum(case((Report.status == "pending", 1), else_=0)),
            func.sum(case((Report.status == "in-progress", 1), else_=0)),
            func.sum(case((Report.status == "resolved", 1), else_=0)),
        )
        .group_by(Report.category)
        .order_by(func.count(Report.id).desc())
        .all()
    )

    critical = (
        with_list_loaders(Report.query.filter(Report.severity == "critical", Report.status.in_(OPEN_STATUSES)))
        .order_by(Report.created_at.desc())
        .limit(10)
        .all()
    )

    top_reporters = (
        db.session.query(User, func.count(Report.id).label("report_count"))
        .join(Report, Report.user_id == User.id)
        .group_by(User.id)
        .order_by(func.count(Report.id).desc())
        .limit(5)
        .all()
    )

    return {
        "overview": {
            "totalReports": counts["total"],
            "pendingReports": counts["pending"],
            "inProgressReports": counts["inProgress"],
            "resolvedReports": counts["resolved"],
            "totalUsers": User.query.count(),
            "activeUsers": User.query.filter(User.last_login_at >= last_month).count(),
            "newReportsToday": Report.query.filter(Report.created_at >= today_start).count(),
            "avgResolutionTime": average_resolution_hours(),
            "resolutionRate": _resolution_rate(counts["resolved"], counts["total"]),
        },
        "reportsByCategory": [
            {
                "_id": category,
                "count": total,
                "pending": int(pending or 0),
                "inProgress": int(in_progress or 0),
                "resolved": int(resolved or 0),
            }
            for category, total, pending, in_progress, resolved in by_category
        ],
        "reportsBySeverity": _grouped(Report.severity),
        "criticalReports": [r.to_dict() for r in critical],
        "topReporters": [
            dict(user.public_payload(), email=user.email, reportCount=report_count)
            for user, report_count in top_reporters
        ],
        "trend": _daily_counts(7, now),
    }
