"""Points, levels, achievements, and leaderboard ranking for citizen reporters."""
from __future__ import annotations

from typing import List

from flask import current_app
from sqlalchemy import func

from extensions import db
from models import Report, User

POINTS_PER_LEVEL = 10

# (name, description, metric, threshold)
ACHIEVEMENT_RULES: tuple[tuple[str, str, str, int], ...] = (
    ("Beginner", "Earned your first 10 points", "points", 10),
    ("Contributor", "Earned 50 points", "points", 50),
    ("Expert", "Earned 100 points", "points", 100),
    ("Reporter", "Submitted 5 reports", "reports", 5),
    ("Problem Solver", "Had 3 reports resolved", "resolved", 3),
)

LEADERBOARD_ORDERING = {
    "points": (User.points.desc(), User.created_at.asc()),
    "reports": (User.reports_submitted.desc(), User.points.desc()),
    "level": (User.level.desc(), User.points.desc()),
}


def level_for_points(points: int) -> int:
    return max(1, int(points or 0) // POINTS_PER_LEVEL)


def level_progress(points: int) -> dict:
    points = int(points or 0)
    level = level_for_points(points)
    next_threshold = (level + 1) * POINTS_PER_LEVEL
    return {
        "level": level,
        "points": points,
        "nextLevelAt": next_threshold,
        "pointsToNextLevel": max(0, next_threshold - points),
    }


def award_points(user: User, points: int, reason: str) -> bool:
    """Add points to ``user`` and recompute the level. Returns True on a level increase.

    Does not commit; the caller owns the transaction.
    """
    if points < 0:
        raise ValueError("Points awarded must be non-negative")
    previous_level = user.level or 1
    user.points = (user.points or 0) + points
    user.level = level_for_points(user.points)
    current_app.logger.info(
        "Points awarded",
        extra={"user_id": user.id, "points": points, "reason": reason, "total": user.points, "level": user.level},
    )
    return user.level > previous_level


def achievements(total_reports: int, resolved_reports: int, points: int) -> List[dict]:
    metrics = {"points": points or 0, "reports": total_reports or 0, "resolved": resolved_reports or 0}
    return [
        {"name": name, "description": description, "earned": True}
        for name, description, metric, threshold in ACHIEVEMENT_RULES
        if metrics[metric] >= threshold
    ]


def user_rank(user: User) -> int:
    ahead = User.query.filter(User.is_active.is_(True), User.points > (user.points or 0)).count()
    return ahead + 1


def leaderboard(kind: str = "points", limit: int = 10) -> List[dict]:
    ordering = LEADERBOARD_ORDERING.get(kind, LEADERBOARD_ORDERING["points"])
    users = User.query.filter(User.is_active.is_(True)).order_by(*ordering).limit(limit).all()
    user_ids = [u.id for u in users]
    resolved_counts = {}
    if user_ids:
        rows = (
            db.session.query(Report.user_id, func.count(Report.id))
            .filter(Report.user_id.in_(user_ids), Report.status == "resolved")
            .group_by(Report.user_id)
            .all()
        )
        resolved_counts = dict(rows)

    board = []
    for position, user in enumerate(users, start=1):
        entry = user.public_payload()
        entry.update(
            {
                "rank": position,
                "reportsSubmitted": user.reports_submitted,
                "resolvedReports": resolved_counts.get(user.id, 0),
            }
        )
        board.append(entry)
    return board
