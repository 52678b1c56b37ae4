from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from email.utils import parsedate_to_datetime
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

from .log import get_logger
from .timezones import DEFAULT_POLICY, ZonePolicy, resolve_zone

logger = get_logger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
FUTURE_TOLERANCE = timedelta(minutes=10)
DEVIATION_WARNING = timedelta(minutes=180)
DISPLAY_FORMAT = "%H:%M %d/%m"

MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")

_RFC_DISPLAY_RE = re.compile(
    r"(\d{1,2})\s+(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+(\d{4})\s+(\d{1,2}):(\d{2})",
    re.IGNORECASE,
)
_ISO_DISPLAY_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})[T\s]+(\d{1,2}):(\d{2})")
_DMY_DISPLAY_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\s+(\d{1,2}):(\d{2})")
_ZERO_OFFSET_RE = re.compile(r"[+-]00:?00\s*$")

Strategy = Callable[[str, tzinfo], datetime | None]


@lru_cache(maxsize=32)
def get_zone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_time_zone", zone=name)
        return timezone.utc


def to_epoch_ms(value: datetime) -> int:
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value: int | float) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


def _with_zone(value: datetime, zone: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=zone)
    return value


def _parse_rfc2822(value: str, zone: tzinfo) -> datetime | None:
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None
    if parsed is None:
        return None
    # email.utils reads -0000 as "zone unknown" and returns a naive value
    if parsed.tzinfo is None and _ZERO_OFFSET_RE.search(value):
        return parsed.replace(tzinfo=timezone.utc)
    return _with_zone(parsed, zone)


_HTTP_FORMATS = (
    "%a, %d %b %Y %H:%M:%S GMT",
    "%A, %d-%b-%y %H:%M:%S GMT",
    "%a %b %d %H:%M:%S %Y",
)


def _parse_http_date(value: str, zone: tzinfo) -> datetime | None:
    for fmt in _HTTP_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def _parse_iso8601(value: str, zone: tzinfo) -> datetime | None:
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError):
        return None
    return _with_zone(parsed, zone)


def _parse_gmt_pattern(value: str, zone: tzinfo) -> datetime | None:
    match = re.fullmatch(r"(\w{3}, \d{1,2} \w{3} \d{4} \d{2}:\d{2}:\d{2}) GMT", value)
    if not match:
        return None
    try:
        parsed = datetime.strptime(match.group(1), "%a, %d %b %Y %H:%M:%S")
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def _parse_day_month_year(value: str, zone: tzinfo) -> datetime | None:
    try:
        parsed = datetime.strptime(value, "%d/%m/%Y %H:%M:%S")
    except ValueError:
        return None
    return parsed.replace(tzinfo=zone)


def _parse_generic(value: str, zone: tzinfo) -> datetime | None:
    try:
        parsed = date_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return None
    return _with_zone(parsed, zone)


DATE_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("rfc2822", _parse_rfc2822),
    ("http-date", _parse_http_date),
    ("iso8601", _parse_iso8601),
    ("gmt-pattern", _parse_gmt_pattern),
    ("dmy", _parse_day_month_year),
    ("generic", _parse_generic),
)


def normalized_variants(value: str) -> list[str]:
    stripped = value.strip()
    collapsed = " ".join(stripped.split())
    spaced = re.sub(r"\s*,\s*", ", ", collapsed)
    variants: list[str] = []
    for variant in (stripped, collapsed, spaced):
        if variant and variant not in variants:
            variants.append(variant)
    return variants


def _is_valid(value: datetime | None) -> bool:
    if value is None or value.tzinfo is None:
        return False
    try:
        value.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return False
    return 1970 <= value.year <= 9999


def run_strategies(
    value: str,
    zone: tzinfo,
    strategies: Sequence[tuple[str, Strategy]] = DATE_STRATEGIES,
) -> tuple[str, datetime] | None:
    variants = normalized_variants(value)
    for name, strategy in strategies:
        for variant in variants:
            parsed = strategy(variant, zone)
            if _is_valid(parsed):
                return name, parsed
    return None


def extract_display_time(raw_date: str | None) -> str | None:
    """Read ``HH:mm dd/MM`` straight from the raw string, skipping zone math."""
    if not raw_date:
        return None
    match = _RFC_DISPLAY_RE.search(raw_date)
    if match:
        day, month_name, _, hours, minutes = match.groups()
        month = MONTHS.index(month_name[:3].lower()) + 1
        return f"{int(hours):02d}:{minutes} {int(day):02d}/{month:02d}"
    match = _ISO_DISPLAY_RE.search(raw_date)
    if match:
        _, month, day, hours, minutes = match.groups()
        return f"{int(hours):02d}:{minutes} {day}/{month}"
    match = _DMY_DISPLAY_RE.search(raw_date)
    if match:
        day, month, _, hours, minutes = match.groups()
        return f"{int(hours):02d}:{minutes} {int(day):02d}/{int(month):02d}"
    return None


def format_display_time(timestamp_ms: int | float, zone: str | tzinfo) -> str:
    if isinstance(zone, str):
        zone = get_zone(zone)
    return from_epoch_ms(timestamp_ms).astimezone(zone).strftime(DISPLAY_FORMAT)


@dataclass(frozen=True, slots=True)
class ParsedDate:
    timestamp_utc: int
    zone: str | None
    explicit: bool
    strategy: str
    display_time: str
    clamped: bool = False

    @property
    def parse_strategy(self) -> str:
        return "explicit" if self.explicit else "inferred"

    @property
    def utc(self) -> datetime:
        return from_epoch_ms(self.timestamp_utc)


def parse_date(
    raw_date: str | None,
    zone_hint: str | None = None,
    explicit: bool = False,
    *,
    now: datetime | None = None,
    fallback_zone: str = DEFAULT_POLICY.fallback_zone,
    display_source: str | None = None,
    future_tolerance: timedelta = FUTURE_TOLERANCE,
    deviation_warning: timedelta = DEVIATION_WARNING,
    strategies: Sequence[tuple[str, Strategy]] = DATE_STRATEGIES,
) -> ParsedDate | None:
    if not raw_date or not raw_date.strip():
        return None

    fallback = get_zone(fallback_zone)
    result = run_strategies(raw_date, fallback, strategies)
    if result is None:
        return None
    strategy, parsed = result

    resolution_zone = zone_hint or fallback_zone
    if zone_hint and not explicit:
        parsed = parsed.replace(tzinfo=get_zone(zone_hint))

    timestamp = to_epoch_ms(parsed)

    clamped = False
    current = now or datetime.now(timezone.utc)
    limit = current + future_tolerance
    if not explicit and parsed > limit:
        logger.info(
            "future_date_clamped",
            raw_date=raw_date,
            zone=resolution_zone,
            parsed=parsed.isoformat(),
        )
        timestamp = to_epoch_ms(limit) - 1
        clamped = True

    naive_utc = run_strategies(raw_date, timezone.utc, strategies)
    if naive_utc is not None:
        deviation = abs(to_epoch_ms(naive_utc[1]) - timestamp)
        if deviation >= deviation_warning // timedelta(milliseconds=1):
            logger.warning(
                "date_deviation",
                raw_date=raw_date,
                zone=resolution_zone,
                deviation_minutes=round(deviation / 60000),
            )

    display = extract_display_time(display_source or raw_date)
    if display is None:
        display = format_display_time(timestamp, resolution_zone)

    return ParsedDate(
        timestamp_utc=timestamp,
        zone=zone_hint if not explicit else None,
        explicit=explicit,
        strategy=strategy,
        display_time=display,
        clamped=clamped,
    )


def resolve_timestamp(
    raw_date: str | None,
    link: str | None = None,
    source_name: str | None = None,
    *,
    policy: ZonePolicy = DEFAULT_POLICY,
    now: datetime | None = None,
    future_tolerance: timedelta = FUTURE_TOLERANCE,
    deviation_warning: timedelta = DEVIATION_WARNING,
) -> ParsedDate | None:
    if not raw_date:
        return None
    resolution = resolve_zone(raw_date, link, source_name, policy)
    return parse_date(
        resolution.value,
        resolution.zone_hint,
        resolution.explicit,
        now=now,
        fallback_zone=policy.fallback_zone,
        display_source=raw_date,
        future_tolerance=future_tolerance,
        deviation_warning=deviation_warning,
    )

