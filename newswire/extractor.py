from __future__ import annotations

import re
from collections.abc import Iterator, Mapping, Sequence
from functools import lru_cache

from bs4 import BeautifulSoup

from .models.news import RawFeedRecord

XML_ENTITIES: Mapping[str, str] = {
    "&quot;": '"',
    "&apos;": "'",
    "&#39;": "'",
    "&lt;": "<",
    "&gt;": ">",
    "&nbsp;": " ",
    "&amp;": "&",
}

RSS_TITLE_TAGS: tuple[str, ...] = ("title",)
RSS_LINK_TAGS: tuple[str, ...] = ("link", "feedburner:origLink", "guid")
RSS_DATE_TAGS: tuple[str, ...] = (
    "pubDate",
    "dc:date",
    "published",
    "updated",
    "a10:updated",
)
ATOM_TITLE_TAGS: tuple[str, ...] = ("title",)
ATOM_DATE_TAGS: tuple[str, ...] = ("published", "updated", "issued", "modified")
SITEMAP_TITLE_TAGS: tuple[str, ...] = ("news:title", "title")
SITEMAP_LINK_TAGS: tuple[str, ...] = ("loc",)
SITEMAP_DATE_TAGS: tuple[str, ...] = ("news:publication_date", "lastmod")

_CDATA_RE = re.compile(r"<!\[CDATA\[([\s\S]*?)\]\]>")
_NUMERIC_ENTITY_RE = re.compile(r"&#(x[0-9a-fA-F]+|\d+);")
_INLINE_TAG_RE = re.compile(r"</?[a-zA-Z][^>]*>")
_ATOM_LINK_RE = re.compile(r"<link\b([^>]*)/?>", re.IGNORECASE)
_ATTRIBUTE_RE = re.compile(r"([\w:-]+)\s*=\s*(?:\"([^\"]*)\"|'([^']*)')")
_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


@lru_cache(maxsize=64)
def _block_pattern(tag: str) -> re.Pattern[str]:
    return re.compile(
        rf"<{re.escape(tag)}(?:\s[^>]*)?>([\s\S]*?)</{re.escape(tag)}>",
        re.IGNORECASE,
    )


@lru_cache(maxsize=64)
def _field_pattern(tag: str) -> re.Pattern[str]:
    # self-closing variants (e.g. Atom style <link href=".."/>) carry no text
    return re.compile(
        rf"<{re.escape(tag)}(?:\s[^>]*?)?(?<!/)>([\s\S]*?)</{re.escape(tag)}\s*>",
        re.IGNORECASE,
    )


def strip_cdata(value: str) -> str:
    return _CDATA_RE.sub(r"\1", value)


def extract_tag(content: str, tags: Sequence[str]) -> str | None:
    for tag in tags:
        match = _field_pattern(tag).search(content)
        if match:
            return strip_cdata(match.group(1)).strip()
    return None


def _decode_numeric(match: re.Match[str]) -> str:
    code = match.group(1)
    try:
        value = int(code[1:], 16) if code[0] in "xX" else int(code)
        return chr(value)
    except (ValueError, OverflowError):
        return match.group(0)


def decode_entities(
    value: str, entities: Mapping[str, str] = XML_ENTITIES, passes: int = 2
) -> str:
    for _ in range(passes):
        decoded = value
        for entity, replacement in entities.items():
            decoded = decoded.replace(entity, replacement)
        decoded = _NUMERIC_ENTITY_RE.sub(_decode_numeric, decoded)
        if decoded == value:
            break
        value = decoded
    return value


def clean_title(value: str, entities: Mapping[str, str] = XML_ENTITIES) -> str:
    title = decode_entities(strip_cdata(value), entities).strip()
    if _INLINE_TAG_RE.search(title):
        title = BeautifulSoup(title, "lxml").get_text(" ", strip=True)
    return " ".join(title.split())


def _first_url(content: str, tags: Sequence[str]) -> str | None:
    for tag in tags:
        value = extract_tag(content, (tag,))
        if value:
            value = decode_entities(value)
            if _URL_RE.match(value):
                return value
    return None


def _atom_link(content: str) -> str | None:
    fallback: str | None = None
    for match in _ATOM_LINK_RE.finditer(content):
        attributes = {
            name.lower(): double if double else single
            for name, double, single in _ATTRIBUTE_RE.findall(match.group(1))
        }
        href = attributes.get("href")
        if not href:
            continue
        href = decode_entities(href.strip())
        if attributes.get("rel", "").lower() == "alternate":
            return href
        if fallback is None:
            fallback = href
    if fallback:
        return fallback
    # some hand-rolled "Atom" feeds use an RSS style text link
    return _first_url(content, ("link",))


def _record(
    title: str | None,
    link: str | None,
    raw_date: str | None,
    entities: Mapping[str, str],
) -> RawFeedRecord | None:
    if not title or not link:
        return None
    title = clean_title(title, entities)
    if not title:
        return None
    return RawFeedRecord(title=title, link=link, raw_date=raw_date or None)


def iter_rss_items(
    document: str, entities: Mapping[str, str] = XML_ENTITIES
) -> Iterator[RawFeedRecord]:
    for match in _block_pattern("item").finditer(document):
        content = match.group(1)
        record = _record(
            extract_tag(content, RSS_TITLE_TAGS),
            _first_url(content, RSS_LINK_TAGS),
            extract_tag(content, RSS_DATE_TAGS),
            entities,
        )
        if record is not None:
            yield record


def iter_atom_entries(
    document: str, entities: Mapping[str, str] = XML_ENTITIES
) -> Iterator[RawFeedRecord]:
    for match in _block_pattern("entry").finditer(document):
        content = match.group(1)
        record = _record(
            extract_tag(content, ATOM_TITLE_TAGS),
            _atom_link(content),
            extract_tag(content, ATOM_DATE_TAGS),
            entities,
        )
        if record is not None:
            yield record


def iter_sitemap_urls(
    document: str, entities: Mapping[str, str] = XML_ENTITIES
) -> Iterator[RawFeedRecord]:
    for match in _block_pattern("url").finditer(document):
        content = match.group(1)
        record = _record(
            extract_tag(content, SITEMAP_TITLE_TAGS),
            _first_url(content, SITEMAP_LINK_TAGS),
            extract_tag(content, SITEMAP_DATE_TAGS),
            entities,
        )
        if record is not None:
            yield record


def iter_records(
    document: str, entities: Mapping[str, str] = XML_ENTITIES
) -> Iterator[RawFeedRecord]:
    yield from iter_rss_items(document, entities)
    yield from iter_atom_entries(document, entities)
    yield from iter_sitemap_urls(document, entities)
