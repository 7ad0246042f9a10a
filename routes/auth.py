"""Authentication blueprint issuing bearer tokens for the SPA and socket clients."""
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required
from sqlalchemy.exc import IntegrityError
from wtforms import BooleanField, Form
from wtforms.validators import DataRequired, Email, Length, ValidationError

from extensions import db
from models import User
from utils.decorators import record_audit
from utils.http import actor, json_body, json_error
from utils.security import issue_access_token, password_meets_policy, reset_attempts, track_attempt
from utils.validation import JSONField, JSONStringField, PayloadValidationError, strip_text, validate_json

auth_bp = Blueprint("auth", __name__)

ADDRESS_KEYS = ("street", "city", "state", "pincode")


class RegistrationForm(Form):
    name = JSONStringField("Name", filters=[strip_text], validators=[DataRequired(), Length(max=150)])
    email = JSONStringField("Email", filters=[strip_text], validators=[DataRequired(), Email(), Length(max=255)])
    password = JSONStringField("Password", validators=[DataRequired(), Length(min=8, max=128)])
    phone = JSONStringField("Phone", filters=[strip_text], validators=[Length(max=30)])

    def validate_email(self, field):
        if User.query.filter_by(email=field.data.lower()).first():
            raise ValidationError("Email is already registered.")

    def validate_password(self, field):
        ok, reason = password_meets_policy(field.data or "")
        if not ok:
            raise ValidationError(reason)


class LoginForm(Form):
    email = JSONStringField("Email", filters=[strip_text], validators=[DataRequired(), Email(), Length(max=255)])
    password = JSONStringField("Password", validators=[DataRequired()])


class ProfileForm(Form):
    name = JSONStringField("Name", filters=[strip_text], validators=[Length(max=150)])
    phone = JSONStringField("Phone", filters=[strip_text], validators=[Length(max=30)])
    address = JSONField("Address")
    darkMode = BooleanField("Dark mode")

    def validate_name(self, field):
        if field.data is not None and not field.data:
            raise ValidationError("Name cannot be empty.")

    def validate_address(self, field):
        if field.data is None:
            return
        if not isinstance(field.data, dict):
            raise ValidationError("Address must be an object.")
        for key in ADDRESS_KEYS:
            value = field.data.get(key)
            if value is not None and (not isinstance(value, str) or len(value) > 255):
                raise ValidationError(f"{key} must be text.")


def _token_response(user: User, status: int = 200):
    return jsonify({"success": True, "token": issue_access_token(user), "user": user.to_dict()}), status


@auth_bp.route("/register", methods=["POST"])
def register():
    try:
        form = validate_json(RegistrationForm, json_body())
    except PayloadValidationError as exc:
        return json_error(exc.message, 400, exc.errors)

    user = User(
        name=form.name.data,
        email=form.email.data.lower(),
        phone=form.phone.data or None,
        role="user",
        is_active=True,
    )
    user.set_password(form.password.data)
    try:
        db.session.add(user)
        db.session.flush()
        record_audit("REGISTER", user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return json_error("Unable to register with the provided details.", 400)

    current_app.logger.info("User registered", extra={"user_id": user.id})
    return _token_response(user, 201)


@auth_bp.route("/login", methods=["POST"])
def login():
    try:
        form = validate_json(LoginForm, json_body())
    except PayloadValidationError as exc:
        return json_error(exc.message, 400, exc.errors)

    email = form.email.data.lower()
    attempt_key = f"login:{request.remote_addr}:{email}"
    if not track_attempt(
        attempt_key,
        limit=current_app.config["LOGIN_MAX_ATTEMPTS"],
        window=current_app.config["LOGIN_ATTEMPT_WINDOW"],
    ):
        current_app.logger.warning("Login rate limit hit", extra={"email": email})
        return json_error("Too many login attempts. Please try again later.", 429)

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(form.password.data):
        record_audit("LOGIN_FAILED", user, email)
        db.session.commit()
        return json_error("Invalid credentials provided.", 401)
    if not user.is_active:
        return json_error("Your account is inactive. Please contact support.", 403)

    reset_attempts(attempt_key)
    user.last_login_at = datetime.utcnow()
    record_audit("LOGIN", user)
    db.session.commit()
    return _token_response(user)


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"success": True, "user": actor().to_dict()})


@auth_bp.route("/me", methods=["PUT"])
@login_required
def update_me():
    payload = json_body()
    try:
        form = validate_json(ProfileForm, payload)
    except PayloadValidationError as exc:
        return json_error(exc.message, 400, exc.errors)

    user = actor()
    if "name" in payload and form.name.data:
        user.name = form.name.data
    if "phone" in payload:
        user.phone = form.phone.data or None
    if "darkMode" in payload:
        user.dark_mode = bool(form.darkMode.data)
    if isinstance(form.address.data, dict):
        for key in ADDRESS_KEYS:
            if key in form.address.data:
                setattr(user, key, (form.address.data.get(key) or "").strip() or None)
    db.session.commit()
    current_app.logger.info("Profile updated", extra={"user_id": user.id})
    return jsonify({"success": True, "user": user.to_dict()})
