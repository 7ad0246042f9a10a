"""Small request/response helpers shared by the API blueprints."""
from flask import jsonify, request
from flask_login import current_user


def json_error(message: str, status: int, errors=None, key: str = "message"):
    body = {"success": False, key: message}
    if errors:
        body["errors"] = errors
    return jsonify(body), status


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def int_arg(name: str, default: int, minimum: int = 1, maximum: int | None = None) -> int:
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def actor():
    """Concrete user object behind ``current_user`` (or None when anonymous)."""
    if not current_user or not current_user.is_authenticated:
        return None
    return current_user._get_current_object()
