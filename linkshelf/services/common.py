import re
from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from dateutil import parser as dt_parser

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,30}$")
MIN_PASSWORD_LENGTH = 6


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (
        value.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def utcnow_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def parse_timestamp(value) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif value:
        try:
            parsed = dt_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_valid_url(url) -> bool:
    if not isinstance(url, str) or not url.strip():
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in {"http", "https"} and bool(parsed.hostname)


def normalize_url(url: str) -> str:
    if not url:
        return ""
    parsed = urlparse(url.strip())
    scheme = (parsed.scheme or "https").lower()
    netloc = parsed.netloc.lower()
    path = parsed.path.rstrip("/") or "/"
    query_items = sorted(parse_qsl(parsed.query, keep_blank_values=True))
    normalized_query = urlencode(query_items)
    return urlunparse((scheme, netloc, path, "", normalized_query, ""))


def domain_from_url(url: str) -> str:
    try:
        host = urlparse(url.strip()).hostname or ""
    except ValueError:
        host = ""
    if not host:
        return "unknown"
    return host.removeprefix("www.")


def title_from_url(url: str) -> str:
    domain = domain_from_url(url)
    if domain == "unknown":
        return "Untitled Link"
    return domain[:1].upper() + domain[1:]


def is_valid_username(username) -> bool:
    return isinstance(username, str) and bool(USERNAME_PATTERN.match(username))


def is_valid_password(password) -> bool:
    return isinstance(password, str) and len(password) >= MIN_PASSWORD_LENGTH


def to_flag(value, default=0) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return 1 if value else 0
    return 1 if str(value).strip().lower() in {"1", "true", "yes", "on"} else 0


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_newest_first(links: list[dict]) -> list[dict]:
    def key(link: dict):
        when = parse_timestamp(link.get("timestamp") or link.get("dateAdded")) or _EPOCH
        return when, str(link.get("id") or "").zfill(20)

    return sorted(links, key=key, reverse=True)
