"""Reminder agent notifying subscribers of schedules collecting today."""
from datetime import date, datetime
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from utils.garbage_service import todays_schedules
from utils.notifications import dispatch, event_key


def _slot_summary(slots) -> str:
    parts = [f"{slot.get('startTime')} - {slot.get('endTime')} ({slot.get('wasteType', 'mixed')})" for slot in slots]
    return ", ".join(parts) if parts else "scheduled hours"


def run_collection_reminders(app, today: Optional[date] = None) -> dict:
    """Send one reminder per subscriber, schedule, and day. Safe to run repeatedly.

    ``sent`` counts reminders stored in this run; ``skipped`` counts subscribers
    already reminded earlier the same day.
    """
    with app.app_context():
        today = today or datetime.utcnow().date()
        day, schedules = todays_schedules(today)
        sent = skipped = failed = 0
        for schedule in schedules:
            slots = schedule.day_slots(day)
            message = f"Garbage collection in {schedule.area} today: {_slot_summary(slots)}."
            for subscription in schedule.subscribers:
                try:
                    _, created = dispatch(
                        subscription.user_id,
                        event_key("collection", schedule.id, today.isoformat()),
                        "Garbage Collection Today",
                        message,
                        type="collection_reminder",
                        priority="medium",
                        data={"scheduleId": schedule.id, "day": day, "slots": slots},
                        link="/garbage-schedule",
                    )
                except SQLAlchemyError:
                    db.session.rollback()
                    failed += 1
                    current_app.logger.exception(
                        "Collection reminder failed",
                        extra={"schedule_id": schedule.id, "user_id": subscription.user_id},
                    )
                    continue
                if created:
                    sent += 1
                else:
                    skipped += 1
        summary = {"day": day, "schedules": len(schedules), "sent": sent, "skipped": skipped, "failed": failed}
        current_app.logger.info("Collection reminder cycle complete", extra=summary)
        return summary
