from datetime import datetime, timedelta, timezone

from structlog.testing import capture_logs

from newswire.client.normalizer import (
    apply_timezone_fix,
    canonical_timestamp,
    describe_pub_date,
    israel_offset_hours,
    normalized_display_time,
    prepare_news_items,
)
from newswire.dates import to_epoch_ms
from newswire.models import NewsItem

NOW = datetime(2025, 11, 12, 20, 0, tzinfo=timezone.utc)
HOUR_MS = 60 * 60 * 1000


def utc_ms(*args: int) -> int:
    return to_epoch_ms(datetime(*args, tzinfo=timezone.utc))


def news(**fields) -> NewsItem:
    fields.setdefault("title", "כותרת")
    fields.setdefault("link", "https://www.ynet.co.il/1")
    fields.setdefault("source", "ynet")
    return NewsItem(**fields)


def test_canonical_timestamp_preference() -> None:
    assert canonical_timestamp(news(timestamp_utc=3, timestamp=2, pub_date="x")) == 3
    assert canonical_timestamp(news(timestamp=2, pub_date="x")) == 2
    assert canonical_timestamp(
        news(pub_date="Wed, 12 Nov 2025 18:05:00 GMT")
    ) == utc_ms(2025, 11, 12, 18, 5)


def test_israel_offset_hours_follows_dst() -> None:
    assert israel_offset_hours(utc_ms(2025, 11, 12, 12, 0)) == 2
    assert israel_offset_hours(utc_ms(2025, 7, 12, 12, 0)) == 3


def test_timezone_fix_only_touches_known_liars() -> None:
    winter = utc_ms(2025, 11, 12, 18, 5)
    summer = utc_ms(2025, 7, 12, 18, 5)

    assert apply_timezone_fix(winter, "ישראל היום") == winter - 2 * HOUR_MS
    assert apply_timezone_fix(summer, "מעריב") == summer - 3 * HOUR_MS
    assert apply_timezone_fix(winter, "ynet") == winter


def test_legacy_payload_from_known_liar_is_corrected() -> None:
    legacy = news(
        source="ישראל היום",
        link="https://www.israelhayom.co.il/1",
        pub_date="2025-11-12T18:05:00.000Z",
        timestamp=utc_ms(2025, 11, 12, 18, 5),
    )
    resolved = news(
        source="ישראל היום",
        link="https://www.israelhayom.co.il/2",
        timestamp=utc_ms(2025, 11, 12, 16, 5),
        timestamp_utc=utc_ms(2025, 11, 12, 16, 5),
        parse_strategy="inferred",
    )

    prepared = prepare_news_items([legacy, resolved], now=NOW)

    assert [item.timestamp for item in prepared] == [
        utc_ms(2025, 11, 12, 16, 5),
        utc_ms(2025, 11, 12, 16, 5),
    ]


def test_prepare_dedupes_filters_and_sorts() -> None:
    recent = utc_ms(2025, 11, 12, 19, 0)
    items = [
        news(link="https://a/1", timestamp_utc=recent - HOUR_MS),
        news(link="https://a/2", timestamp_utc=recent),
        news(link="https://a/2", timestamp_utc=recent, title="duplicate"),
        news(link="https://a/2", timestamp_utc=recent - 2 * HOUR_MS),
        news(link="https://a/3", timestamp_utc=to_epoch_ms(NOW - timedelta(days=2))),
        news(link="https://a/4", pub_date="garbage"),
    ]

    prepared = prepare_news_items(items, now=NOW)

    assert [(item.link, item.timestamp) for item in prepared] == [
        ("https://a/2", recent),
        ("https://a/1", recent - HOUR_MS),
        ("https://a/2", recent - 2 * HOUR_MS),
    ]
    assert prepared[0].title == "כותרת"


def test_prepare_does_not_log_for_sorted_output() -> None:
    with capture_logs() as logs:
        prepare_news_items([news(timestamp_utc=utc_ms(2025, 11, 12, 19, 0))], now=NOW)

    assert not [entry for entry in logs if entry["event"] == "feed_order_violation"]


def test_display_time_prefers_server_value() -> None:
    item = news(timestamp=utc_ms(2025, 11, 12, 18, 5), display_time=" 20:05 12/11 ")
    assert normalized_display_time(item) == "20:05 12/11"


def test_display_time_for_known_liar_uses_resolved_timestamp() -> None:
    item = news(
        source="וואלה",
        timestamp=utc_ms(2025, 11, 12, 16, 5),
        display_time="16:05 12/11",
        pub_date="Wed, 12 Nov 2025 18:05:00 GMT",
    )
    assert normalized_display_time(item) == "18:05 12/11"


def test_display_time_falls_back_to_pub_date() -> None:
    assert normalized_display_time(news(pub_date="13/11/2025 09:30:00")) == "09:30 13/11"
    assert normalized_display_time(news(pub_date="")) == ""


def test_describe_pub_date() -> None:
    item = news(
        pub_date="Wed, 12 Nov 2025 18:05:00 GMT",
        source_time_zone="Asia/Jerusalem",
        parse_strategy="inferred",
    )
    assert describe_pub_date(item) == (
        "pubDate (Asia/Jerusalem) • הוסק לפי מקור: Wed, 12 Nov 2025 18:05:00 GMT"
    )
    assert describe_pub_date(news()) == "תאריך מקורי לא סופק"
