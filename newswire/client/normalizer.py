from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from dateutil import parser as date_parser

from ..dates import extract_display_time, format_display_time, get_zone, to_epoch_ms
from ..log import get_logger
from ..models.news import NewsItem
from ..services.aggregator import dedupe_items, find_order_violation
from ..timezones import DEFAULT_POLICY, ISRAEL_ZONE, ZonePolicy

logger = get_logger(__name__)

ONE_DAY = timedelta(days=1)
HOUR_MS = 60 * 60 * 1000
STANDARD_OFFSET_HOURS = 2
SUMMER_OFFSET_HOURS = 3


def _finite(value: float | None) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


def parse_pub_date_ms(value: str | None) -> float:
    if not value:
        return math.nan
    try:
        parsed = date_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return math.nan
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return to_epoch_ms(parsed)


def canonical_timestamp(item: NewsItem) -> float:
    if _finite(item.timestamp_utc):
        return item.timestamp_utc
    if _finite(item.timestamp):
        return item.timestamp
    return parse_pub_date_ms(item.pub_date)


def israel_offset_hours(timestamp_ms: float, zone: str = ISRAEL_ZONE) -> int:
    try:
        instant = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
        offset = instant.astimezone(get_zone(zone)).utcoffset()
    except (OverflowError, OSError, ValueError) as exc:
        logger.warning("timezone_offset_lookup_failed", error=str(exc))
        return STANDARD_OFFSET_HOURS
    if offset is not None and offset >= timedelta(hours=SUMMER_OFFSET_HOURS):
        return SUMMER_OFFSET_HOURS
    return STANDARD_OFFSET_HOURS


def apply_timezone_fix(
    timestamp_ms: float, source: str | None, policy: ZonePolicy = DEFAULT_POLICY
) -> float:
    if not _finite(timestamp_ms) or not policy.is_known_liar(source):
        return timestamp_ms
    return timestamp_ms - israel_offset_hours(timestamp_ms) * HOUR_MS


def needs_client_fix(item: NewsItem, policy: ZonePolicy = DEFAULT_POLICY) -> bool:
    # a parse_strategy means the server ran the resolver already
    return item.parse_strategy is None and policy.is_known_liar(item.source)


def prepare_news_items(
    items: Iterable[NewsItem],
    *,
    now: datetime | None = None,
    policy: ZonePolicy = DEFAULT_POLICY,
) -> list[NewsItem]:
    current = now or datetime.now(timezone.utc)
    cutoff = to_epoch_ms(current - ONE_DAY)

    normalized: list[NewsItem] = []
    for item in items:
        timestamp = canonical_timestamp(item)
        if needs_client_fix(item, policy):
            timestamp = apply_timezone_fix(timestamp, item.source, policy)
        if not _finite(timestamp) or timestamp < cutoff:
            continue
        normalized.append(item.model_copy(update={"timestamp": int(timestamp)}))

    prepared = dedupe_items(normalized)
    prepared.sort(key=lambda item: item.timestamp, reverse=True)

    violation = find_order_violation(prepared)
    if violation is not None:
        logger.warning(
            "feed_order_violation",
            previous=violation[0].link,
            current=violation[1].link,
        )
    return prepared


def normalized_display_time(
    item: NewsItem,
    policy: ZonePolicy = DEFAULT_POLICY,
    zone: str = ISRAEL_ZONE,
) -> str:
    server_value = (item.display_time or "").strip()
    if server_value and not policy.is_known_liar(item.source):
        return server_value

    if _finite(item.timestamp):
        return format_display_time(item.timestamp, zone)

    extracted = extract_display_time(item.pub_date)
    if extracted:
        return extracted

    for candidate in (parse_pub_date_ms(item.pub_date), canonical_timestamp(item)):
        if _finite(candidate):
            return format_display_time(candidate, zone)
    return ""


def describe_pub_date(item: NewsItem) -> str:
    if not item.pub_date:
        return "תאריך מקורי לא סופק"
    zone = f" ({item.source_time_zone})" if item.source_time_zone else ""
    if item.parse_strategy == "explicit":
        strategy = "זוהה מתאריך המקור"
    elif item.parse_strategy == "inferred":
        strategy = "הוסק לפי מקור"
    else:
        strategy = "מידע חלקי"
    return f"pubDate{zone} • {strategy}: {item.pub_date}"
