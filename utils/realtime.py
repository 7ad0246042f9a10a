"""Socket.IO rooms, connection presence, and event emission helpers."""
from __future__ import annotations

import threading
from typing import Dict, Optional, Set

from flask import current_app, request
from flask_socketio import join_room, leave_room

from extensions import db, socketio
from models import User
from utils.security import TokenError, bearer_token_from_header, decode_access_token

ADMINS_ROOM = "admins"


def user_room(user_id) -> str:
    return f"user_{user_id}"


class PresenceRegistry:
    """Process-local map of user id to the socket ids currently connected for it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sids: Dict[str, Set[str]] = {}
        self._owners: Dict[str, str] = {}

    def _discard(self, user_id: str, sid: str) -> None:
        sids = self._sids.get(user_id)
        if sids is not None:
            sids.discard(sid)
            if not sids:
                self._sids.pop(user_id, None)

    def add(self, user_id: str, sid: str) -> Optional[str]:
        """Bind ``sid`` to ``user_id`` and return the user it was bound to before, if any."""
        with self._lock:
            previous = self._owners.get(sid)
            if previous is not None and previous != user_id:
                self._discard(previous, sid)
            self._sids.setdefault(user_id, set()).add(sid)
            self._owners[sid] = user_id
            return previous

    def remove(self, sid: str) -> Optional[str]:
        with self._lock:
            user_id = self._owners.pop(sid, None)
            if user_id is not None:
                self._discard(user_id, sid)
            return user_id

    def is_online(self, user_id) -> bool:
        with self._lock:
            return bool(self._sids.get(str(user_id)))

    def online_count(self) -> int:
        with self._lock:
            return len(self._sids)

    def clear(self) -> None:
        with self._lock:
            self._sids.clear()
            self._owners.clear()


presence = PresenceRegistry()


def _user_from_token(token: Optional[str]) -> Optional[User]:
    if not token:
        return None
    try:
        claims = decode_access_token(token)
    except TokenError as exc:
        current_app.logger.info("Socket token rejected", extra={"reason": str(exc)})
        return None
    user = db.session.get(User, str(claims.get("sub")))
    if not user or not user.is_active:
        return None
    return user


def _attach(user: User) -> list[str]:
    previous = presence.add(user.id, request.sid)
    if previous is not None and previous != user.id:
        # Socket re-authenticated as someone else.
        leave_room(user_room(previous))
        if not user.is_staff:
            leave_room(ADMINS_ROOM)
        current_app.logger.info("Socket switched user", extra={"user_id": user.id, "previous_user_id": previous})

    rooms = [user_room(user.id)]
    join_room(rooms[0])
    if user.is_staff:
        join_room(ADMINS_ROOM)
        rooms.append(ADMINS_ROOM)
    current_app.logger.info("Socket joined rooms", extra={"user_id": user.id, "rooms": rooms})
    return rooms


@socketio.on("connect")
def handle_connect(auth=None):
    token = auth.get("token") if isinstance(auth, dict) else None
    token = token or bearer_token_from_header(request.headers.get("Authorization"))
    user = _user_from_token(token)
    if user is None:
        # Anonymous sockets still receive public broadcasts such as newReport.
        return True
    _attach(user)
    return True


@socketio.on("authenticate")
def handle_authenticate(data=None):
    """Late authentication for sockets opened before the user signed in."""
    token = data.get("token") if isinstance(data, dict) else None
    user = _user_from_token(token)
    if user is None:
        return {"success": False, "message": "Invalid token"}
    rooms = _attach(user)
    return {"success": True, "rooms": rooms}


@socketio.on("disconnect")
def handle_disconnect(reason=None):
    user_id = presence.remove(request.sid)
    if user_id:
        current_app.logger.info("Socket disconnected", extra={"user_id": user_id, "reason": str(reason)})


def _emit(event: str, payload: dict, room: Optional[str] = None) -> None:
    try:
        if room:
            socketio.emit(event, payload, to=room)
        else:
            socketio.emit(event, payload)
    except Exception:  # noqa: BLE001
        # Events are fire-and-forget; state is recoverable through the REST endpoints.
        current_app.logger.exception("Socket emit failed", extra={"event": event, "room": room})


def broadcast(event: str, payload: dict) -> None:
    _emit(event, payload)


def emit_to_user(user_id, event: str, payload: dict) -> None:
    _emit(event, payload, room=user_room(user_id))


def emit_to_admins(event: str, payload: dict) -> None:
    _emit(event, payload, room=ADMINS_ROOM)
