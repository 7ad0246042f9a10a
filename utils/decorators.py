"""Role checks for staff-only endpoints and the audit trail they write."""
from functools import wraps

from flask import abort, current_app, has_request_context, request
from flask_login import current_user, login_required

from extensions import db
from models import STAFF_ROLES, AuditLog


def record_audit(action: str, user=None, context: str | None = None) -> AuditLog:
    """Stage an audit row for ``action``; the caller commits."""
    in_request = has_request_context()
    entry = AuditLog(
        user_id=user.id if user is not None else None,
        action_type=action,
        ip_address=request.remote_addr if in_request else None,
        user_agent=(request.headers.get("User-Agent", "unknown") if in_request else "cli")[:255],
        context_entity=context[:120] if context else None,
    )
    db.session.add(entry)
    return entry


def roles_required(*roles):
    """Require a signed-in user whose role is one of ``roles``.

    Anonymous callers get Flask-Login's 401; signed-in users with another role
    get a 403 and an ``UNAUTHORIZED_ACCESS`` audit entry.
    """
    allowed = {r.lower() for r in roles}

    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def wrapped(*args, **kwargs):
            if (current_user.role or "").lower() in allowed:
                return view_func(*args, **kwargs)

            current_app.logger.warning(
                "Role check denied",
                extra={"user_id": current_user.id, "role": current_user.role, "required": sorted(allowed)},
            )
            record_audit("UNAUTHORIZED_ACCESS", current_user, request.path)
            db.session.commit()
            abort(403)

        return wrapped

    return decorator


staff_required = roles_required(*STAFF_ROLES)
admin_required = roles_required("admin")
