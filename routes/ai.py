"""AI analysis proxy: forensic image checks, voice transcript analysis, and the report chatbot."""
import uuid

from flask import Blueprint, current_app, jsonify, request

from utils.ai_client import (
    AIServiceError,
    AIServiceTimeout,
    analyze_image,
    analyze_transcript,
    chatbot_chat,
    chatbot_greeting,
    chatbot_reset,
    linguistic_fallback,
)
from utils.http import actor, json_body, json_error
from utils.image_utils import ImageValidationError, validate_image_file
from utils.notifications import event_key, notify
from utils.realtime import emit_to_user
from utils.sanitizer import SanitizationError, sanitize_ai_output, sanitize_chat_message, sanitize_transcript

ai_bp = Blueprint("ai", __name__)

ANALYSIS_TITLES = {
    "forensic": "Image analysis complete",
    "linguistic": "Voice report analysis complete",
}


def _job_started(kind: str) -> str | None:
    user = actor()
    if user is None:
        return None
    job_id = uuid.uuid4().hex
    emit_to_user(user.id, "ai:started", {"jobId": job_id, "type": kind})
    return job_id


def _job_completed(kind: str, job_id: str | None, result: dict) -> None:
    user = actor()
    if user is None or job_id is None:
        return
    emit_to_user(user.id, "ai:completed", {"jobId": job_id, "type": kind, "result": result})
    notify(
        user.id,
        event_key("ai", kind, job_id),
        ANALYSIS_TITLES[kind],
        "Your AI analysis finished. Review the suggestions before submitting your report.",
        type="ai_analysis",
        priority="low",
        data={"jobId": job_id, "type": kind, "fallback": bool(result.get("fallback"))},
    )


def _job_failed(kind: str, job_id: str | None, message: str) -> None:
    user = actor()
    if user is None or job_id is None:
        return
    emit_to_user(user.id, "ai:failed", {"jobId": job_id, "type": kind, "error": message})


@ai_bp.route("/forensic/analyze", methods=["POST"])
def forensic_analyze():
    upload = request.files.get("image")
    if upload is None:
        return json_error("No image file provided", 400, key="error")
    try:
        image = validate_image_file(upload, max_bytes=current_app.config["MAX_IMAGE_UPLOAD_BYTES"])
    except ImageValidationError as exc:
        return json_error(str(exc), 400, key="error")

    job_id = _job_started("forensic")
    try:
        result = sanitize_ai_output(analyze_image(image))
    except AIServiceError:
        current_app.logger.exception("Forensic analysis failed", extra={"image_hash": image["image_hash"]})
        _job_failed("forensic", job_id, "Image analysis failed")
        return json_error("Image analysis failed", 500, key="error")

    result.setdefault("imageHash", image["image_hash"])
    _job_completed("forensic", job_id, result)
    return jsonify(result)


@ai_bp.route("/linguistic/analyze", methods=["POST"])
def linguistic_analyze():
    try:
        transcript = sanitize_transcript(
            json_body().get("transcript"), current_app.config["AI_MAX_TRANSCRIPT_CHARS"]
        )
    except SanitizationError as exc:
        return json_error(str(exc), 400, key="error")

    job_id = _job_started("linguistic")
    try:
        result = sanitize_ai_output(analyze_transcript(transcript))
    except AIServiceTimeout:
        current_app.logger.warning("Linguistic analysis timed out; returning fallback", extra={"chars": len(transcript)})
        result = linguistic_fallback(transcript)
    except AIServiceError:
        current_app.logger.exception("Linguistic analysis failed")
        _job_failed("linguistic", job_id, "Linguistic analysis failed")
        return json_error("Linguistic analysis failed", 500, key="error")

    _job_completed("linguistic", job_id, result)
    return jsonify(result)


@ai_bp.route("/chatbot/greeting", methods=["GET"])
def greeting():
    return jsonify(chatbot_greeting())


@ai_bp.route("/chatbot/chat", methods=["POST"])
def chat():
    payload = json_body()
    session_id = payload.get("sessionId")
    if not session_id or not payload.get("message"):
        return json_error("sessionId and message are required", 400, key="error")
    try:
        message = sanitize_chat_message(payload.get("message"), current_app.config["AI_MAX_CHAT_CHARS"])
    except SanitizationError as exc:
        return json_error(str(exc), 400, key="error")
    try:
        response = chatbot_chat(str(session_id)[:100], message)
    except AIServiceError:
        current_app.logger.exception("Chatbot request failed", extra={"session_id": str(session_id)[:100]})
        return json_error("Chatbot unavailable", 500, key="error")
    return jsonify(sanitize_ai_output(response))


@ai_bp.route("/chatbot/reset", methods=["POST"])
def reset():
    session_id = json_body().get("sessionId")
    if not session_id:
        return json_error("sessionId is required", 400, key="error")
    try:
        response = chatbot_reset(str(session_id)[:100])
    except AIServiceError:
        current_app.logger.exception("Chatbot reset failed")
        return json_error("Chatbot unavailable", 500, key="error")
    return jsonify(response)
