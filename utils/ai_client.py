"""HTTP client for the external AI analysis service (forensics, linguistics, chatbot)."""
from typing import Any, Dict, Optional

import requests
from flask import current_app

CHATBOT_GREETING = {
    "success": True,
    "message": (
        "Hello! I'm SwachhBot.\n\nI'm here to help you report hygiene issues quickly. "
        "Just describe the problem in your own words, and I'll guide you through the process.\n\n"
        "What issue would you like to report today?"
    ),
    "extractedData": {},
    "currentStep": "greeting",
    "isComplete": False,
    "suggestions": ["Dirty public toilet", "Garbage accumulation", "Unhygienic restaurant", "Other issue"],
    "requiresInput": True,
}


class AIServiceError(Exception):
    """Raised when the AI service is unreachable or returns an unusable response."""


class AIServiceTimeout(AIServiceError):
    pass


def _url(path: str) -> str:
    return f"{current_app.config['AI_SERVICE_URL'].rstrip('/')}/{path.lstrip('/')}"


def _request(method: str, path: str, *, timeout: Optional[float] = None, **kwargs) -> Dict[str, Any]:
    url = _url(path)
    timeout = timeout or current_app.config["AI_SERVICE_TIMEOUT"]
    try:
        response = requests.request(method, url, timeout=timeout, **kwargs)
    except requests.Timeout as exc:
        raise AIServiceTimeout(f"AI service timed out after {timeout}s") from exc
    except requests.RequestException as exc:
        raise AIServiceError(f"AI service request failed: {exc}") from exc

    try:
        body = response.json()
    except ValueError:
        body = None

    if response.status_code != 200:
        current_app.logger.error(
            "AI service returned error status",
            extra={"status": response.status_code, "path": path, "raw_text_snippet": (response.text or "")[:500]},
        )
        message = body.get("error") if isinstance(body, dict) else None
        raise AIServiceError(message or f"AI service returned {response.status_code}")
    if not isinstance(body, dict):
        raise AIServiceError("AI service response not JSON-decodable")
    return body


def analyze_image(image: Dict[str, Any]) -> Dict[str, Any]:
    files = {"image": (image["file_name"], image["bytes"], image["mime_type"])}
    data = {"imageHash": image["image_hash"]}
    return _request("POST", "/forensic/analyze", files=files, data=data)


def analyze_transcript(transcript: str) -> Dict[str, Any]:
    timeout = current_app.config["AI_LINGUISTIC_TIMEOUT"]
    return _request("POST", "/linguistic/analyze", json={"transcript": transcript}, timeout=timeout)


def linguistic_fallback(transcript: str) -> Dict[str, Any]:
    """Degraded result used when linguistic analysis does not finish in time."""
    return {
        "success": True,
        "fallback": True,
        "translatedText": transcript,
        "summary": transcript[:200],
        "detectedLanguage": "Unknown",
        "sentiment": "Neutral",
        "urgency": "Medium",
        "location": None,
    }


def chatbot_greeting() -> Dict[str, Any]:
    return dict(CHATBOT_GREETING)


def chatbot_chat(session_id: str, message: str) -> Dict[str, Any]:
    return _request("POST", "/chatbot/chat", json={"sessionId": session_id, "message": message})


def chatbot_reset(session_id: str) -> Dict[str, Any]:
    _request("POST", "/chatbot/reset", json={"sessionId": session_id})
    return {"success": True, "message": "Session reset successfully", "greeting": chatbot_greeting()}
