"""Secret redaction for text that leaves the process (logs, audit, stored errors)."""

import re

_URL_CREDENTIALS = re.compile(r"([a-zA-Z0-9+.-]+://)([^:/@\s]+):([^/@\s]+)@")
_KEY_VALUE_SECRET = re.compile(
    r"(?i)\b(password|passwd|pwd|token|secret|api_key|credential)([ \t]*[=:][ \t]*)[^\s,;]+"
)


def redact_secrets(text: str) -> str:
    """Mask credentials embedded in connection URIs and key=value pairs."""
    if not text:
        return text
    redacted = _URL_CREDENTIALS.sub(r"\1<user>:<password>@", text)
    return _KEY_VALUE_SECRET.sub(r"\1\2<redacted>", redacted)


def bounded_error_message(exc: BaseException, limit: int = 500) -> str:
    """Return a redacted, length-bounded description of an exception."""
    message = redact_secrets(str(exc) or exc.__class__.__name__)
    if len(message) > limit:
        return message[:limit]
    return message
