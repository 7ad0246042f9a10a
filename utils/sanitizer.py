"""Cleaning of text sent to, and returned from, the AI service."""
import re
from typing import Any

import bleach

# Phrases used to hijack model instructions.
INJECTION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"system[:\s]*you are",
        r"ignore (previous|all) (instructions?|prompts?)",
        r"disregard (previous|all) (instructions?|prompts?)",
        r"forget (everything|all) (before|previous)",
        r"you are now",
        r"act as",
        r"pretend (you are|to be)",
        r"roleplay as",
        r"new instructions?:",
        r"updated instructions?:",
        r"override (instructions?|system)",
        r"---",
        r"###",
        r"```",
        r"javascript:",
        r"onerror\s*=",
        r"onclick\s*=",
    )
]
_DANGEROUS_BLOCKS = re.compile(r"<(script|iframe|style)[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)


class SanitizationError(ValueError):
    pass


def strip_markup(value: str) -> str:
    value = _DANGEROUS_BLOCKS.sub("", value)
    return bleach.clean(value, tags=[], attributes={}, strip=True)


def sanitize_ai_input(value: Any, max_length: int = 5000) -> str:
    if not isinstance(value, str) or not value:
        return ""
    cleaned = strip_markup(value)
    for pattern in INJECTION_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:max_length]


def sanitize_transcript(transcript: Any, max_length: int = 5000) -> str:
    if not isinstance(transcript, str) or not transcript.strip():
        raise SanitizationError("Transcript is required")
    cleaned = sanitize_ai_input(transcript, max_length)
    if len(cleaned) < 5:
        raise SanitizationError("Transcript too short after sanitization")
    return cleaned


def sanitize_chat_message(message: Any, max_length: int = 1000) -> str:
    if not isinstance(message, str) or not message.strip():
        raise SanitizationError("Message is required")
    cleaned = sanitize_ai_input(message, max_length)
    if not cleaned:
        raise SanitizationError("Message cannot be empty after sanitization")
    return cleaned


def sanitize_ai_output(output: Any) -> Any:
    """Recursively strip markup and script vectors from strings in an AI response."""
    if isinstance(output, str):
        cleaned = strip_markup(output)
        cleaned = re.sub(r"javascript:", "", cleaned, flags=re.IGNORECASE)
        return cleaned.replace("&amp;", "&")
    if isinstance(output, dict):
        return {key: sanitize_ai_output(value) for key, value in output.items()}
    if isinstance(output, list):
        return [sanitize_ai_output(item) for item in output]
    return output
