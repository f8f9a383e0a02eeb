"""Mask e-mail addresses, phone numbers and IPv4 addresses in outbound text."""

from __future__ import annotations

import re

_EMAIL = re.compile(r"([a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,})", re.IGNORECASE)
_PHONE = re.compile(r"(\+\d{1,2}\s)?\(?\d{3}\)?[\s.-]\d{3}[\s.-]\d{4}")
_IPV4 = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")


class PiiRedactor:
    def redact(self, text: str | None) -> str:
        if not text or not text.strip():
            return text or ""
        out = _EMAIL.sub("[REDACTED_EMAIL]", text)
        out = _PHONE.sub("[REDACTED_PHONE]", out)
        return _IPV4.sub("[REDACTED_IP]", out)
