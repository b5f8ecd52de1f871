# security.py
"""
Input hygiene for the planner.

Interests and children's preferences are typed by the user and copied into the
generation prompt, so they are cleaned and screened for prompt-injection
attempts before any model sees them.
"""
from __future__ import annotations

import base64
import logging
import re
from typing import List, Optional

from fastapi import HTTPException, Request

log = logging.getLogger("security")

MAX_INTERESTS = 20
MAX_INTEREST_LENGTH = 50
MAX_PREFERENCES_LENGTH = 300
MAX_REQUEST_BYTES = 1024 * 50

# Phrases that try to steer the model instead of describing a child or an interest
PROMPT_INJECTION_PATTERNS = [
    r'\b(ignore|forget|disregard)\s+(all\s+|the\s+)?(previous|above|prior|your)\s+(instructions?|prompts?|rules?)\b',
    r'\b(act|behave|pretend|roleplay)\s+as\s+(a|an|the)?\s*\w+',
    r'\b(you\s+are\s+now|from\s+now\s+on\s+you)\b',
    r'\bsystem\s+prompt\b',
    r'^\s*(system|assistant)\s*:',
    r'\b(jailbreak|bypass\s+(the\s+)?(rules|filters?)|developer\s+mode)\b',
    r'```',
    r'\b(respond|reply|answer|output)\s+(only\s+)?(with|in)\s+(json|markdown|code)\b',
    r'\\u[0-9a-fA-F]{4}',
    r'&#\d+;',
]

COMPILED_PATTERNS = [re.compile(p, re.IGNORECASE | re.MULTILINE) for p in PROMPT_INJECTION_PATTERNS]

_B64_RE = re.compile(r'[A-Za-z0-9+/]{24,}={0,2}')
_MARKUP_RE = re.compile(r'[<>]')
_CONTROL_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


def sanitize_input(text: str, max_length: int) -> str:
    """Trim, strip markup brackets and control characters, collapse whitespace."""
    cleaned = _CONTROL_RE.sub('', _MARKUP_RE.sub('', text.strip()))
    cleaned = re.sub(r'\s+', ' ', cleaned).strip()
    return cleaned[:max_length]


def detect_prompt_injection(text: str) -> tuple[bool, List[str]]:
    matched = [PROMPT_INJECTION_PATTERNS[i] for i, p in enumerate(COMPILED_PATTERNS) if p.search(text)]
    for chunk in _B64_RE.findall(text):
        try:
            decoded = base64.b64decode(chunk + '==', validate=False).decode('utf-8', errors='ignore')
        except ValueError:
            continue
        if any(p.search(decoded) for p in COMPILED_PATTERNS):
            matched.append("encoded_payload")
            break
    return bool(matched), matched


def screen_free_text(text: Optional[str], *, field: str, max_length: int = MAX_PREFERENCES_LENGTH) -> Optional[str]:
    """
    Clean a free-text field. Suspicious text is dropped (None) rather than
    failing the whole submission.
    """
    if text is None:
        return None
    clean = sanitize_input(text, max_length)
    if not clean:
        return None
    is_suspicious, patterns = detect_prompt_injection(clean)
    if is_suspicious:
        log.warning("Suspicious free text dropped", extra={"field": field, "patterns": patterns})
        return None
    return clean


def validate_interests(interests: List[str]) -> List[str]:
    if not interests:
        return []
    if len(interests) > MAX_INTERESTS:
        raise ValueError(f"Too many interests. Maximum {MAX_INTERESTS} allowed.")

    out: List[str] = []
    for interest in interests:
        if not isinstance(interest, str):
            continue
        clean = screen_free_text(interest, field="interests", max_length=MAX_INTEREST_LENGTH)
        if clean and clean not in out:
            out.append(clean)
    return out


def validate_request_size(request: Request, max_size: int = MAX_REQUEST_BYTES) -> None:
    content_length = request.headers.get("content-length")
    if not content_length:
        return
    try:
        size = int(content_length)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid Content-Length header.")
    if size > max_size:
        log.warning("Request size too large", extra={"size": size, "max_size": max_size})
        raise HTTPException(status_code=413, detail=f"Request too large. Maximum {max_size} bytes allowed.")


def security_headers_middleware():
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
        return response

    return add_security_headers
