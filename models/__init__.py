"""Core data models for accounts, billboard reports, the points ledger and rewards."""
import uuid
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db
from utils.scoring import calculate_user_level, get_user_rank


def generate_uuid() -> str:
	return str(uuid.uuid4())


USER_ROLES: tuple[str, ...] = (
	"Citizen",
	"Official",
)

REPORT_SEVERITIES: tuple[str, ...] = (
	"low",
	"medium",
	"high",
	"critical",
)

REPORT_STATUSES: tuple[str, ...] = (
	"pending",
	"verified",
	"resolved",
	"rejected",
)

# resolved and rejected are terminal.
REPORT_TRANSITIONS: dict[str, tuple[str, ...]] = {
	"pending": ("verified", "resolved", "rejected"),
	"verified": ("resolved", "rejected"),
	"resolved": (),
	"rejected": (),
}

SURVEY_STATUSES: tuple[str, ...] = (
	"in_progress",
	"completed",
	"aborted",
)


class Role(db.Model):
	__tablename__ = "roles"

	id = db.Column(db.Integer, primary_key=True)
	name = db.Column(db.String(50), unique=True, nullable=False, index=True)
	description = db.Column(db.String(255), nullable=True)

	users = db.relationship("User", back_populates="role", lazy="dynamic")

	@staticmethod
	def get_or_create(name: str, description: str = ""):
		role = Role.query.filter_by(name=name).first()
		if role:
			return role
		role = Role(name=name, description=description)
		db.session.add(role)
		db.session.commit()
		return role


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	full_name = db.Column(db.String(150), nullable=False)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	phone = db.Column(db.String(32), nullable=True)
	city = db.Column(db.String(120), nullable=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False)
	points = db.Column(db.Integer, nullable=False, default=0)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint("points >= 0", name="points_non_negative"),
	)

	role = db.relationship("Role", back_populates="users")
	audit_logs = db.relationship("AuditLog", back_populates="user", lazy="dynamic")
	reports = db.relationship("Report", back_populates="user", lazy="dynamic")
	point_transactions = db.relationship("PointTransaction", back_populates="user", lazy="dynamic")
	achievement_progress = db.relationship("AchievementProgress", back_populates="user", lazy="dynamic")
	redemptions = db.relationship("RewardRedemption", back_populates="user", lazy="dynamic")
	image_scans = db.relationship("ImageScan", back_populates="user", lazy="dynamic")
	drone_surveys = db.relationship("DroneSurvey", back_populates="operator", lazy="dynamic")

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_official(self) -> bool:
		return bool(self.role and self.role.name.lower() == "official")

	@property
	def user_type(self) -> str:
		return "official" if self.is_official else "citizen"

	@property
	def level(self) -> int:
		return calculate_user_level(self.points or 0)

	@property
	def rank(self) -> str:
		return get_user_rank(self.points or 0)

	@property
	def active(self) -> bool:  # Flask-Login compatibility alias
		return self.is_active

	def profile_payload(self) -> dict:
		return {
			"id": self.id,
			"full_name": self.full_name,
			"email": self.email,
			"phone": self.phone,
			"city": self.city,
			"user_type": self.user_type,
			"points": self.points or 0,
			"level": self.level,
			"rank": self.rank,
			"created_at": self.created_at.isoformat() if self.created_at else None,
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


class PointTransaction(db.Model):
	"""Append-only ledger; User.points is the running sum of these deltas."""

	__tablename__ = "point_transactions"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	delta = db.Column(db.Integer, nullable=False)
	balance_after = db.Column(db.Integer, nullable=False)
	reason = db.Column(db.String(64), nullable=False, index=True)
	report_id = db.Column(db.String(36), db.ForeignKey("reports.id"), nullable=True, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="point_transactions")

	def to_dict(self) -> dict:
		return {
			"delta": self.delta,
			"balance_after": self.balance_after,
			"reason": self.reason,
			"report_id": self.report_id,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}


class Report(db.Model):
	__tablename__ = "reports"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	location = db.Column(db.String(255), nullable=False)
	location_key = db.Column(db.String(255), nullable=False, index=True)
	latitude = db.Column(db.Float, nullable=False)
	longitude = db.Column(db.Float, nullable=False)
	image_url = db.Column(db.String(500), nullable=False)
	image_hash = db.Column(db.String(128), nullable=True, index=True)
	exif_metadata = db.Column(db.JSON, nullable=True)
	evidence_flags = db.Column(db.JSON, nullable=False, default=list)
	violations = db.Column(db.JSON, nullable=False, default=list)
	severity = db.Column(db.String(10), nullable=False, default="medium", index=True)
	status = db.Column(db.String(10), nullable=False, default="pending", index=True)
	points_earned = db.Column(db.Integer, nullable=False, default=0)
	first_time_location = db.Column(db.Boolean, nullable=False, default=False)
	ai_analysis = db.Column(db.JSON, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(
		db.DateTime,
		default=datetime.utcnow,
		onupdate=datetime.utcnow,
		nullable=False,
		index=True,
	)

	__table_args__ = (
		db.CheckConstraint(
			"severity IN ('low','medium','high','critical')",
			name="severity_valid",
		),
		db.CheckConstraint(
			"status IN ('pending','verified','resolved','rejected')",
			name="status_valid",
		),
		db.Index("ix_reports_user_location", "user_id", "location_key"),
	)

	user = db.relationship("User", back_populates="reports")
	status_history = db.relationship(
		"ReportStatusHistory",
		back_populates="report",
		order_by="ReportStatusHistory.changed_at",
		cascade="all, delete-orphan",
	)

	@property
	def immutable_fields(self) -> set[str]:
		return {"user_id", "points_earned", "created_at"}

	@property
	def is_terminal(self) -> bool:
		return not REPORT_TRANSITIONS.get(self.status)

	def to_dict(self, include_owner: bool = False) -> dict:
		payload = {
			"id": self.id,
			"user_id": self.user_id,
			"location": self.location,
			"coordinates": {"lat": self.latitude, "lng": self.longitude},
			"image_url": self.image_url,
			"violations": list(self.violations or []),
			"severity": self.severity,
			"status": self.status,
			"points_earned": self.points_earned,
			"first_time_location": self.first_time_location,
			"ai_analysis": self.ai_analysis,
			"evidence_flags": list(self.evidence_flags or []),
			"created_at": self.created_at.isoformat() if self.created_at else None,
			"updated_at": self.updated_at.isoformat() if self.updated_at else None,
		}
		if include_owner and self.user:
			payload["owner"] = {"full_name": self.user.full_name, "email": self.user.email}
		return payload


class ReportStatusHistory(db.Model):
	__tablename__ = "report_status_history"

	id = db.Column(db.Integer, primary_key=True)
	report_id = db.Column(db.String(36), db.ForeignKey("reports.id"), nullable=False, index=True)
	previous_status = db.Column(db.String(10), nullable=True)
	new_status = db.Column(db.String(10), nullable=False, index=True)
	remarks = db.Column(db.String(500), nullable=True)
	changed_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	changed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(
			"new_status IN ('pending','verified','resolved','rejected')",
			name="new_status_valid",
		),
	)

	report = db.relationship("Report", back_populates="status_history")
	actor = db.relationship("User")

	def to_dict(self) -> dict:
		return {
			"previous_status": self.previous_status,
			"new_status": self.new_status,
			"remarks": self.remarks,
			"changed_by": self.changed_by,
			"changed_at": self.changed_at.isoformat() if self.changed_at else None,
		}


class AchievementProgress(db.Model):
	"""Per-account earned state joined against the read-only achievement catalog."""

	__tablename__ = "achievement_progress"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	achievement_id = db.Column(db.String(64), nullable=False, index=True)
	earned_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
	)

	user = db.relationship("User", back_populates="achievement_progress")


class RewardRedemption(db.Model):
	__tablename__ = "reward_redemptions"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	reward_id = db.Column(db.String(64), nullable=False, index=True)
	points_spent = db.Column(db.Integer, nullable=False)
	balance_after = db.Column(db.Integer, nullable=False)
	certificate_path = db.Column(db.String(500), nullable=True)
	redeemed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="redemptions")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"reward_id": self.reward_id,
			"points_spent": self.points_spent,
			"balance_after": self.balance_after,
			"has_certificate": bool(self.certificate_path),
			"redeemed_at": self.redeemed_at.isoformat() if self.redeemed_at else None,
		}


class ImageScan(db.Model):
	__tablename__ = "image_scans"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	analyzer = db.Column(db.String(30), nullable=False)
	latitude = db.Column(db.Float, nullable=True)
	longitude = db.Column(db.Float, nullable=True)
	image_hash = db.Column(db.String(128), nullable=True, index=True)
	result = db.Column(db.JSON, nullable=True)
	points_awarded = db.Column(db.Integer, nullable=False, default=0)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="image_scans")


class DroneSurvey(db.Model):
	__tablename__ = "drone_surveys"

	id = db.Column(db.Integer, primary_key=True)
	mission_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
	operator_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	center_lat = db.Column(db.Float, nullable=False)
	center_lng = db.Column(db.Float, nullable=False)
	radius_km = db.Column(db.Float, nullable=False)
	altitude_m = db.Column(db.Float, nullable=False)
	status = db.Column(db.String(20), nullable=False, default="in_progress", index=True)
	results = db.Column(db.JSON, nullable=True)
	started_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	completed_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint(
			"status IN ('in_progress','completed','aborted')",
			name="status_valid",
		),
	)

	operator = db.relationship("User", back_populates="drone_surveys")

	def to_dict(self) -> dict:
		return {
			"mission_id": self.mission_id,
			"operator_id": self.operator_id,
			"area": {
				"center": {"lat": self.center_lat, "lng": self.center_lng},
				"radius": self.radius_km,
				"altitude": self.altitude_m,
			},
			"status": self.status,
			"results": self.results,
			"started_at": self.started_at.isoformat() if self.started_at else None,
			"completed_at": self.completed_at.isoformat() if self.completed_at else None,
		}
