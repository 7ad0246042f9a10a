"""Core data models for citizens, hygiene reports, collection schedules, and notifications."""
import uuid
from datetime import date, datetime, timedelta

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


def _iso(value) -> str | None:
	return value.isoformat() if value else None


USER_ROLES: tuple[str, ...] = (
	"user",
	"moderator",
	"admin",
)

STAFF_ROLES: tuple[str, ...] = (
	"moderator",
	"admin",
)

REPORT_CATEGORIES: tuple[str, ...] = (
	"waste",
	"toilet",
	"restaurant",
	"water",
	"beach",
	"street",
	"park",
	"other",
)

REPORT_SEVERITIES: tuple[str, ...] = (
	"low",
	"medium",
	"high",
	"critical",
)

REPORT_STATUSES: tuple[str, ...] = (
	"pending",
	"in-progress",
	"resolved",
	"rejected",
)

# Forward-only workflow; resolved and rejected are terminal.
REPORT_TRANSITIONS: dict[str, tuple[str, ...]] = {
	"pending": ("in-progress", "resolved", "rejected"),
	"in-progress": ("resolved",),
	"resolved": (),
	"rejected": (),
}

NOTIFICATION_PRIORITIES: tuple[str, ...] = (
	"low",
	"medium",
	"high",
)

# Index matches datetime.weekday().
WEEKDAYS: tuple[str, ...] = (
	"monday",
	"tuesday",
	"wednesday",
	"thursday",
	"friday",
	"saturday",
	"sunday",
)

WASTE_TYPES: tuple[str, ...] = (
	"mixed",
	"organic",
	"recyclable",
	"hazardous",
	"e-waste",
	"construction",
)

SUBSCRIPTION_PREFERENCES: tuple[str, ...] = (
	"sms",
	"email",
	"push",
	"all",
)

COLLECTION_OUTCOMES: tuple[str, ...] = (
	"completed",
	"missed",
)


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	name = db.Column(db.String(150), nullable=False)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role = db.Column(db.String(20), nullable=False, default="user", index=True)
	points = db.Column(db.Integer, nullable=False, default=0, index=True)
	level = db.Column(db.Integer, nullable=False, default=1)
	reports_submitted = db.Column(db.Integer, nullable=False, default=0)
	dark_mode = db.Column(db.Boolean, nullable=False, default=False)
	phone = db.Column(db.String(30), nullable=True)
	street = db.Column(db.String(255), nullable=True)
	city = db.Column(db.String(120), nullable=True)
	state = db.Column(db.String(120), nullable=True)
	pincode = db.Column(db.String(12), nullable=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint("role IN ('user','moderator','admin')", name="ck_user_role_valid"),
		db.CheckConstraint("points >= 0", name="ck_user_points_non_negative"),
	)

	reports = db.relationship("Report", back_populates="user", lazy="dynamic", foreign_keys="Report.user_id")
	notifications = db.relationship("Notification", back_populates="user", lazy="dynamic")
	audit_logs = db.relationship("AuditLog", back_populates="user", lazy="dynamic")

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_admin(self) -> bool:
		return self.role == "admin"

	@property
	def is_staff(self) -> bool:
		return self.role in STAFF_ROLES

	@property
	def active(self) -> bool:  # Flask-Login compatibility alias
		return self.is_active

	def public_payload(self) -> dict:
		return {
			"id": self.id,
			"name": self.name,
			"points": self.points,
			"level": self.level,
		}

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"name": self.name,
			"email": self.email,
			"role": self.role,
			"points": self.points,
			"level": self.level,
			"reportsSubmitted": self.reports_submitted,
			"darkMode": self.dark_mode,
			"phone": self.phone,
			"address": {
				"street": self.street,
				"city": self.city,
				"state": self.state,
				"pincode": self.pincode,
			},
			"createdAt": _iso(self.created_at),
			"lastLoginAt": _iso(self.last_login_at),
		}


class AuditLog(db.Model):
	__tablename__ = "audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	action_type = db.Column(db.String(50), nullable=False)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	context_entity = db.Column(db.String(120), nullable=True)
	timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="audit_logs")


class Report(db.Model):
	__tablename__ = "reports"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	category = db.Column(db.String(20), nullable=False, index=True)
	title = db.Column(db.String(200), nullable=False)
	description = db.Column(db.Text, nullable=False)
	severity = db.Column(db.String(20), nullable=False, default="medium", index=True)
	status = db.Column(db.String(20), nullable=False, default="pending", index=True)
	longitude = db.Column(db.Float, nullable=False)
	latitude = db.Column(db.Float, nullable=False)
	address = db.Column(db.String(500), nullable=True)
	landmark = db.Column(db.String(255), nullable=True)
	images = db.Column(db.JSON, nullable=False, default=list)
	priority = db.Column(db.Integer, nullable=False, default=0)
	views = db.Column(db.Integer, nullable=False, default=0)
	verified_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(
		db.DateTime,
		default=datetime.utcnow,
		onupdate=datetime.utcnow,
		nullable=False,
		index=True,
	)
	resolved_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint(
			"category IN ('waste','toilet','restaurant','water','beach','street','park','other')",
			name="ck_report_category_valid",
		),
		db.CheckConstraint(
			"severity IN ('low','medium','high','critical')",
			name="ck_report_severity_valid",
		),
		db.CheckConstraint(
			"status IN ('pending','in-progress','resolved','rejected')",
			name="ck_report_status_valid",
		),
		db.Index("ix_reports_status_created", "status", "created_at"),
	)

	user = db.relationship("User", back_populates="reports", foreign_keys=[user_id])
	verifier = db.relationship("User", foreign_keys=[verified_by])
	status_history = db.relationship(
		"ReportStatusHistory",
		back_populates="report",
		order_by="ReportStatusHistory.id",
		cascade="all, delete-orphan",
	)
	comments = db.relationship(
		"ReportComment",
		back_populates="report",
		order_by="ReportComment.created_at",
		cascade="all, delete-orphan",
	)
	votes = db.relationship("ReportVote", back_populates="report", cascade="all, delete-orphan")

	@property
	def coordinates(self) -> list[float]:
		return [self.longitude, self.latitude]

	def can_transition_to(self, new_status: str) -> bool:
		return new_status in REPORT_TRANSITIONS.get(self.status, ())

	def to_dict(self, include_comments: bool = False) -> dict:
		payload = {
			"id": self.id,
			"userId": self.user_id,
			"user": self.user.public_payload() if self.user else None,
			"category": self.category,
			"title": self.title,
			"description": self.description,
			"severity": self.severity,
			"status": self.status,
			"location": {
				"type": "Point",
				"coordinates": self.coordinates,
				"address": self.address or "",
				"landmark": self.landmark or "",
			},
			"images": list(self.images or []),
			"priority": self.priority,
			"views": self.views,
			"upvotes": len(self.votes),
			"verifiedBy": self.verified_by,
			"createdAt": _iso(self.created_at),
			"updatedAt": _iso(self.updated_at),
			"resolvedAt": _iso(self.resolved_at),
		}
		if include_comments:
			payload["comments"] = [comment.to_dict() for comment in self.comments]
			payload["statusHistory"] = [entry.to_dict() for entry in self.status_history]
		return payload


class ReportStatusHistory(db.Model):
	__tablename__ = "report_status_history"

	id = db.Column(db.Integer, primary_key=True)
	report_id = db.Column(db.String(36), db.ForeignKey("reports.id"), nullable=False, index=True)
	previous_status = db.Column(db.String(20), nullable=True)
	new_status = db.Column(db.String(20), nullable=False, index=True)
	remarks = db.Column(db.String(500), nullable=True)
	changed_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	changed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(
			"new_status IN ('pending','in-progress','resolved','rejected')",
			name="ck_report_status_history_valid",
		),
	)

	report = db.relationship("Report", back_populates="status_history")
	actor = db.relationship("User")

	def to_dict(self) -> dict:
		return {
			"previousStatus": self.previous_status,
			"newStatus": self.new_status,
			"remarks": self.remarks,
			"changedBy": self.changed_by,
			"changedAt": _iso(self.changed_at),
		}


class ReportComment(db.Model):
	__tablename__ = "report_comments"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	report_id = db.Column(db.String(36), db.ForeignKey("reports.id"), nullable=False, index=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	text = db.Column(db.String(1000), nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	report = db.relationship("Report", back_populates="comments")
	user = db.relationship("User")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"userId": self.user_id,
			"user": self.user.public_payload() if self.user else None,
			"text": self.text,
			"createdAt": _iso(self.created_at),
		}


class ReportVote(db.Model):
	__tablename__ = "report_votes"

	id = db.Column(db.Integer, primary_key=True)
	report_id = db.Column(db.String(36), db.ForeignKey("reports.id"), nullable=False, index=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (db.UniqueConstraint("report_id", "user_id", name="uq_report_vote_user"),)

	report = db.relationship("Report", back_populates="votes")


class GarbageSchedule(db.Model):
	__tablename__ = "garbage_schedules"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	area = db.Column(db.String(200), nullable=False, index=True)
	ward = db.Column(db.String(120), nullable=False, index=True)
	zone = db.Column(db.String(120), nullable=False, index=True)
	longitude = db.Column(db.Float, nullable=False, default=0.0)
	latitude = db.Column(db.Float, nullable=False, default=0.0)
	address = db.Column(db.String(500), nullable=True)
	# {"monday": {"enabled": bool, "slots": [{"startTime", "endTime", "wasteType"}]}, ...}
	schedule = db.Column(db.JSON, nullable=False, default=dict)
	vehicles = db.Column(db.JSON, nullable=False, default=list)
	route = db.Column(db.JSON, nullable=True)
	special_instructions = db.Column(db.String(1000), nullable=True)
	contact_person = db.Column(db.JSON, nullable=True)
	is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
	updated_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	total_collections = db.Column(db.Integer, nullable=False, default=0)
	missed_collections = db.Column(db.Integer, nullable=False, default=0)
	average_delay = db.Column(db.Integer, nullable=True)
	last_collection_date = db.Column(db.DateTime, nullable=True)
	next_collection_date = db.Column(db.Date, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	last_updated = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	subscribers = db.relationship(
		"ScheduleSubscription",
		back_populates="schedule",
		order_by="ScheduleSubscription.subscribed_at",
		cascade="all, delete-orphan",
	)
	editor = db.relationship("User")

	def day_plan(self, day: str) -> dict:
		return (self.schedule or {}).get(day) or {}

	def day_slots(self, day: str) -> list:
		return list(self.day_plan(day).get("slots") or [])

	def is_enabled_on(self, day: str) -> bool:
		return bool(self.day_plan(day).get("enabled"))

	def next_collection(self, today: date | None = None) -> dict | None:
		"""Return the first enabled day with slots, starting today and looking one week ahead."""
		today = today or datetime.utcnow().date()
		for offset in range(7):
			target = today + timedelta(days=offset)
			day = WEEKDAYS[target.weekday()]
			slots = self.day_slots(day)
			if self.is_enabled_on(day) and slots:
				return {"day": day, "slots": slots, "date": target.isoformat()}
		return None

	def is_subscribed(self, user_id: str) -> bool:
		return any(sub.user_id == user_id for sub in self.subscribers)

	@property
	def statistics(self) -> dict:
		return {
			"totalCollections": self.total_collections,
			"missedCollections": self.missed_collections,
			"averageDelay": self.average_delay,
			"lastCollectionDate": _iso(self.last_collection_date),
			"nextCollectionDate": _iso(self.next_collection_date),
		}

	def to_dict(self, today: date | None = None, include_subscribers: bool = False) -> dict:
		payload = {
			"id": self.id,
			"area": self.area,
			"ward": self.ward,
			"zone": self.zone,
			"location": {
				"type": "Point",
				"coordinates": [self.longitude, self.latitude],
				"address": self.address or "",
			},
			"schedule": self.schedule or {},
			"vehicles": list(self.vehicles or []),
			"route": self.route or {},
			"specialInstructions": self.special_instructions,
			"contactPerson": self.contact_person or {},
			"isActive": self.is_active,
			"subscriberCount": len(self.subscribers),
			"statistics": self.statistics,
			"nextCollection": self.next_collection(today),
			"updatedBy": self.updated_by,
			"lastUpdated": _iso(self.last_updated),
			"createdAt": _iso(self.created_at),
		}
		if include_subscribers:
			payload["subscribers"] = [sub.to_dict() for sub in self.subscribers]
		return payload


class ScheduleSubscription(db.Model):
	__tablename__ = "schedule_subscriptions"

	id = db.Column(db.Integer, primary_key=True)
	schedule_id = db.Column(db.String(36), db.ForeignKey("garbage_schedules.id"), nullable=False, index=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	notification_preference = db.Column(db.String(10), nullable=False, default="push")
	subscribed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.UniqueConstraint("schedule_id", "user_id", name="uq_schedule_subscriber"),
		db.CheckConstraint(
			"notification_preference IN ('sms','email','push','all')",
			name="ck_subscription_preference",
		),
	)

	schedule = db.relationship("GarbageSchedule", back_populates="subscribers")
	user = db.relationship("User")

	def to_dict(self) -> dict:
		return {
			"userId": self.user_id,
			"notificationPreference": self.notification_preference,
			"subscribedAt": _iso(self.subscribed_at),
		}


class Notification(db.Model):
	__tablename__ = "notifications"

	id = db.Column(db.Integer, primary_key=True, autoincrement=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	event_id = db.Column(db.String(150), nullable=False)
	type = db.Column(db.String(40), nullable=False, default="system", index=True)
	title = db.Column(db.String(200), nullable=False)
	message = db.Column(db.String(1000), nullable=False)
	data = db.Column(db.JSON, nullable=True)
	link = db.Column(db.String(255), nullable=True)
	priority = db.Column(db.String(10), nullable=False, default="medium")
	read = db.Column(db.Boolean, nullable=False, default=False, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	delivered_at = db.Column(db.DateTime, nullable=True)
	read_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.UniqueConstraint("user_id", "event_id", name="uq_notification_user_event"),
		db.CheckConstraint("priority IN ('low','medium','high')", name="ck_notification_priority"),
		db.Index("ix_notifications_user_read", "user_id", "read"),
	)

	user = db.relationship("User", back_populates="notifications")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"eventId": self.event_id,
			"userId": self.user_id,
			"type": self.type,
			"title": self.title,
			"message": self.message,
			"data": self.data or {},
			"link": self.link,
			"priority": self.priority,
			"read": self.read,
			"createdAt": _iso(self.created_at),
			"deliveredAt": _iso(self.delivered_at),
		}
