"""Indicator types, classification and normalization.

An indicator is a typed value of investigative interest. Every value that
enters the orchestrator is normalized first so that equivalent spellings
(defanged, upper-cased, zero-padded IPv6, ...) share one cache key.
Normalization is idempotent.
"""

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit, urlunsplit

from cont3xt.exceptions import ValidationError


class IndicatorType(str, Enum):
    """Types of indicators that integrations can be queried for."""

    IP = "ip"
    DOMAIN = "domain"
    EMAIL = "email"
    HASH = "hash"
    URL = "url"
    PHONE = "phone"
    TEXT = "text"


@dataclass(frozen=True)
class Indicator:
    """A normalized, typed indicator."""

    itype: IndicatorType
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"itype": self.itype.value, "value": self.value}


MAX_INDICATOR_LENGTH = 2048

PATTERNS = {
    IndicatorType.EMAIL: re.compile(r"^[a-z0-9._%+-]+@(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,}$"),
    IndicatorType.URL: re.compile(r"^[a-z][a-z0-9+.-]*://[^\s/?#]+(?:[/?#]\S*)?$"),
    IndicatorType.HASH: re.compile(r"^(?:[0-9a-f]{32}|[0-9a-f]{40}|[0-9a-f]{64}|[0-9a-f]{128})$"),
    IndicatorType.DOMAIN: re.compile(r"^(?:[a-z0-9_](?:[a-z0-9_-]{0,61}[a-z0-9])?\.)+[a-z][a-z0-9-]{0,62}$"),
    IndicatorType.PHONE: re.compile(r"^\+?[0-9][0-9\s().-]{5,}[0-9]$"),
}

# Order matters: the first type whose rule accepts the value wins
CLASSIFY_ORDER = (
    IndicatorType.IP,
    IndicatorType.EMAIL,
    IndicatorType.URL,
    IndicatorType.HASH,
    IndicatorType.DOMAIN,
    IndicatorType.PHONE,
)

_REFANG_RULES = (
    (re.compile(r"\[\.\]"), "."),
    (re.compile(r"\[dot\]", re.IGNORECASE), "."),
    (re.compile(r"\(\.\)"), "."),
    (re.compile(r"\[:\]"), ":"),
    (re.compile(r"^hxxp", re.IGNORECASE), "http"),
    (re.compile(r"\[at\]", re.IGNORECASE), "@"),
    (re.compile(r"\[@\]"), "@"),
    (re.compile(r"\(at\)", re.IGNORECASE), "@"),
)


def refang(value: str) -> str:
    """Convert defanged indicators back to normal form.

    Handles ``[.]``, ``(.)``, ``[dot]``, ``hxxp``, ``[at]`` and friends.
    Rules are reapplied until nothing changes, so nested forms such as
    ``[[.]]`` refang fully.
    """
    previous = None
    while value != previous:
        previous = value
        for pattern, replacement in _REFANG_RULES:
            value = pattern.sub(replacement, value)
    return value


def parse_indicator_type(type_str: str) -> IndicatorType:
    """Parse an indicator type string to the enum."""
    aliases = {
        "ipv4": IndicatorType.IP,
        "ipv6": IndicatorType.IP,
        "md5": IndicatorType.HASH,
        "sha1": IndicatorType.HASH,
        "sha256": IndicatorType.HASH,
        "sha512": IndicatorType.HASH,
        "hostname": IndicatorType.DOMAIN,
    }
    normalized = type_str.strip().lower()
    if normalized in aliases:
        return aliases[normalized]
    try:
        return IndicatorType(normalized)
    except ValueError:
        raise ValidationError(f"Unknown indicator type: {type_str}") from None


def _normalize_ip(value: str) -> str | None:
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def _normalize_url(value: str) -> str | None:
    if not PATTERNS[IndicatorType.URL].match(value.lower()):
        return None
    parts = urlsplit(value)
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, parts.fragment)
    )


def _normalize_phone(value: str) -> str | None:
    if not PATTERNS[IndicatorType.PHONE].match(value):
        return None
    digits = re.sub(r"\D", "", value)
    if not 7 <= len(digits) <= 15:
        return None
    return f"+{digits}" if value.startswith("+") else digits


def _normalize_as(value: str, itype: IndicatorType) -> str | None:
    """Return the normalized value, or None if it is not a valid ``itype``."""
    if itype == IndicatorType.IP:
        return _normalize_ip(value)

    if itype == IndicatorType.URL:
        return _normalize_url(value)

    if itype == IndicatorType.PHONE:
        return _normalize_phone(value)

    if itype == IndicatorType.TEXT:
        collapsed = " ".join(value.split())
        return collapsed or None

    lowered = value.lower()
    if itype == IndicatorType.DOMAIN:
        lowered = lowered.rstrip(".")
        if lowered.replace(".", "").isdigit():
            return None
    if PATTERNS[itype].match(lowered):
        return lowered
    return None


def classify(value: str) -> IndicatorType:
    """Guess the type of a raw (already refanged) indicator value."""
    for itype in CLASSIFY_ORDER:
        if _normalize_as(value, itype) is not None:
            return itype
    return IndicatorType.TEXT


def normalize(value: str, itype: IndicatorType | str | None = None) -> Indicator:
    """Validate and normalize a raw indicator.

    Args:
        value: Raw indicator as typed by the analyst
        itype: Declared type; classified from the value when omitted

    Returns:
        Normalized Indicator

    Raises:
        ValidationError: If the value is empty, too long, or does not match
            the declared type.
    """
    if not isinstance(value, str):
        raise ValidationError("Indicator must be a string")

    raw = refang(value.strip())
    if not raw:
        raise ValidationError("Indicator must not be empty")
    if len(raw) > MAX_INDICATOR_LENGTH:
        raise ValidationError(f"Indicator longer than {MAX_INDICATOR_LENGTH} characters")

    if itype is None:
        itype = classify(raw)
    elif not isinstance(itype, IndicatorType):
        itype = parse_indicator_type(itype)

    normalized = _normalize_as(raw, itype)
    if normalized is None:
        raise ValidationError(f"'{value}' is not a valid {itype.value} indicator")

    return Indicator(itype=itype, value=normalized)
