"""Authentication and profile blueprint."""
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from wtforms import BooleanField, PasswordField, SelectField, StringField
from wtforms.validators import DataRequired, Email, Length, Optional, ValidationError

from extensions import db
from models import Role, User
from utils.decorators import log_action
from utils.points import earned_progress
from utils.scoring import get_progress_to_next_level
from utils.security import clean_text, password_meets_policy

auth_bp = Blueprint("auth", __name__)


USER_TYPE_ROLES: dict[str, str] = {
    "citizen": "Citizen",
    "official": "Official",
}

ROLE_DESCRIPTIONS: dict[str, str] = {
    "Citizen": "Citizens reporting billboard violations",
    "Official": "Municipal officials reviewing reports and flying surveys",
}

READ_ONLY_PROFILE_FIELDS = {"points", "level", "rank", "email", "user_type", "role"}


class RegistrationForm(FlaskForm):
    full_name = StringField("Full Name", validators=[DataRequired(), Length(max=150)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    phone = StringField("Phone", validators=[Optional(), Length(max=32)])
    city = StringField("City", validators=[Optional(), Length(max=120)])
    user_type = SelectField(
        "User Type",
        choices=[(key, key.title()) for key in USER_TYPE_ROLES],
        validators=[DataRequired()],
        default="citizen",
    )
    password = PasswordField("Password", validators=[DataRequired(), Length(min=12)])

    def validate_email(self, field):
        if User.query.filter_by(email=field.data.lower().strip()).first():
            raise ValidationError("An account with this email already exists.")


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])
    remember_me = BooleanField("Remember me")


class ProfileForm(FlaskForm):
    full_name = StringField("Full Name", validators=[Optional(), Length(min=1, max=150)])
    phone = StringField("Phone", validators=[Optional(), Length(max=32)])
    city = StringField("City", validators=[Optional(), Length(max=120)])


def _form_errors(form: FlaskForm):
    return jsonify({"success": False, "errors": form.errors}), 400


def _profile_response(user: User) -> dict:
    payload = user.profile_payload()
    payload["progress"] = get_progress_to_next_level(user.points or 0)
    payload["achievements_earned"] = len(earned_progress(user))
    return payload


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@auth_bp.route("/register", methods=["POST"])
def register():
    if current_user.is_authenticated:
        return jsonify({"success": False, "message": "Already signed in."}), 400

    form = RegistrationForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    password_ok, reason = password_meets_policy(form.password.data)
    if not password_ok:
        return jsonify({"success": False, "errors": {"password": [reason]}}), 400

    try:
        role_name = USER_TYPE_ROLES[form.user_type.data]
        role = Role.get_or_create(role_name, description=ROLE_DESCRIPTIONS.get(role_name, ""))
        user = User(
            full_name=clean_text(form.full_name.data, 150),
            email=form.email.data.lower().strip(),
            phone=clean_text(form.phone.data, 32) or None,
            city=clean_text(form.city.data, 120) or None,
            role=role,
            points=0,
            is_active=True,
        )
        user.set_password(form.password.data)
        db.session.add(user)
        db.session.flush()
        log_action("REGISTER", user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"success": False, "message": "Unable to register with the provided details."}), 409

    current_app.logger.info("Account registered", extra={"user_id": user.id, "user_type": user.user_type})
    login_user(user, remember=True, duration=timedelta(days=30))
    return jsonify({"success": True, "user": _profile_response(user)}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    if current_user.is_authenticated:
        return jsonify({"success": True, "user": _profile_response(current_user)})

    form = LoginForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    user = User.query.filter_by(email=form.email.data.lower().strip()).first()
    if not user or not user.check_password(form.password.data):
        log_action("LOGIN_FAILED", user)
        db.session.commit()
        return jsonify({"success": False, "message": "Invalid credentials provided."}), 401

    if not user.is_active:
        return jsonify({"success": False, "message": "Your account is inactive. Please contact support."}), 403

    login_user(user, remember=bool(form.remember_me.data), duration=timedelta(days=30))
    session.permanent = True
    user.last_login_at = datetime.utcnow()
    log_action("LOGIN", user)
    db.session.commit()
    return jsonify({"success": True, "user": _profile_response(user)})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    user = current_user._get_current_object()
    session.clear()
    logout_user()
    log_action("LOGOUT", user)
    db.session.commit()
    return jsonify({"success": True})


@auth_bp.route("/profile", methods=["GET"])
@login_required
def profile():
    return jsonify(_profile_response(current_user))


@auth_bp.route("/profile", methods=["PATCH"])
@login_required
def update_profile():
    payload = request.get_json(silent=True) or request.form
    blocked = sorted(READ_ONLY_PROFILE_FIELDS.intersection(payload.keys()))
    if blocked:
        return jsonify({"success": False, "message": f"Fields are not editable: {', '.join(blocked)}"}), 400

    form = ProfileForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    user = current_user
    if "full_name" in payload:
        full_name = clean_text(form.full_name.data, 150)
        if not full_name:
            return jsonify({"success": False, "errors": {"full_name": ["Full name cannot be empty."]}}), 400
        user.full_name = full_name
    if "phone" in payload:
        user.phone = clean_text(form.phone.data, 32) or None
    if "city" in payload:
        user.city = clean_text(form.city.data, 120) or None

    try:
        log_action("PROFILE_UPDATE", user)
        db.session.commit()
    except SQLAlchemyError:
        current_app.logger.exception("Database error while updating profile")
        db.session.rollback()
        return jsonify({"success": False, "message": "Unable to update profile right now."}), 500
    return jsonify({"success": True, "user": _profile_response(user)})
