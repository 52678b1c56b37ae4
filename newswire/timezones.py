from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import urlparse

ISRAEL_ZONE = "Asia/Jerusalem"

KNOWN_LIAR_SOURCES: tuple[str, ...] = ("ישראל היום", "וואלה", "מעריב")

ZONE_ABBREVIATIONS: Mapping[str, str] = {
    "IDT": ISRAEL_ZONE,
    "IST": ISRAEL_ZONE,
    "IDST": ISRAEL_ZONE,
    "AST": ISRAEL_ZONE,
    "EET": "Europe/Athens",
    "EEST": "Europe/Athens",
}

ISRAELI_DOMAINS: tuple[str, ...] = (
    "ynet.co.il",
    "walla.co.il",
    "maariv.co.il",
    "israelhayom.co.il",
    "haaretz.co.il",
    "themarker.com",
    "inn.co.il",
    "mako.co.il",
    "n12.co.il",
    "kan.org.il",
    "globes.co.il",
    "calcalist.co.il",
    "srugim.co.il",
    "kikar.co.il",
    "bhol.co.il",
    "0404.co.il",
    "news1.co.il",
    "davar1.co.il",
    "ice.co.il",
    "jpost.com",
    "timesofisrael.com",
    "i24news.tv",
)

ISRAELI_SOURCE_FRAGMENTS: tuple[str, ...] = (
    "ynet",
    "וואלה",
    "מעריב",
    "ישראל היום",
    "הארץ",
    "דה מרקר",
    "ערוץ 7",
    "כאן",
    "חדשות 12",
    "N12",
    "גלובס",
    "כלכליסט",
    "סרוגים",
    "כיכר השבת",
    "בחדרי חרדים",
    "Haaretz",
    "Times of Israel",
    "Jerusalem Post",
    "i24",
)

_TIME = r"\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?"
EXPLICIT_ZONE_RE = re.compile(
    rf"\b(?:GMT|UTC)\b|{_TIME}(?:Z\b|\s*[+-]\d{{2}}:?\d{{2}}\b)", re.IGNORECASE
)
_LIAR_MARKER_RE = re.compile(
    r"\s*(?:\b(?:GMT|UTC)\b(?:\s*[+-]0{2}:?0{2})?|(?<=\d)Z\b|(?<=\d)\s*[+-]0{2}:?0{2}\b)",
    re.IGNORECASE,
)
_ABBREVIATION_RE = re.compile(r"\b([A-Z]{2,5})\b")


@dataclass(frozen=True, slots=True)
class ZonePolicy:
    known_liars: tuple[str, ...] = KNOWN_LIAR_SOURCES
    abbreviations: Mapping[str, str] = field(
        default_factory=lambda: dict(ZONE_ABBREVIATIONS)
    )
    domains: tuple[str, ...] = ISRAELI_DOMAINS
    source_fragments: tuple[str, ...] = ISRAELI_SOURCE_FRAGMENTS
    inferred_zone: str = ISRAEL_ZONE
    fallback_zone: str = ISRAEL_ZONE

    def is_known_liar(self, source_name: str | None) -> bool:
        name = (source_name or "").strip()
        return bool(name) and any(liar in name for liar in self.known_liars)

    def matches_domain(self, link: str | None) -> bool:
        try:
            host = (urlparse(link or "").hostname or "").lower()
        except ValueError:
            return False
        return bool(host) and any(
            host == domain or host.endswith("." + domain) for domain in self.domains
        )

    def matches_source_name(self, source_name: str | None) -> bool:
        name = (source_name or "").casefold()
        return bool(name) and any(
            fragment.casefold() in name for fragment in self.source_fragments
        )


DEFAULT_POLICY = ZonePolicy()


@dataclass(frozen=True, slots=True)
class ZoneResolution:
    explicit: bool
    zone_hint: str | None
    value: str
    abbreviation: str | None = None
    forced: bool = False


def has_explicit_zone(value: str) -> bool:
    return EXPLICIT_ZONE_RE.search(value) is not None


def strip_zone_marker(value: str) -> str:
    return " ".join(_LIAR_MARKER_RE.sub("", value).split())


def find_abbreviation(
    value: str, abbreviations: Mapping[str, str]
) -> tuple[str, str] | None:
    for match in _ABBREVIATION_RE.finditer(value):
        token = match.group(1)
        zone = abbreviations.get(token)
        if zone:
            return token, zone
    return None


def resolve_zone(
    raw_date: str,
    link: str | None = None,
    source_name: str | None = None,
    policy: ZonePolicy = DEFAULT_POLICY,
) -> ZoneResolution:
    """Known liar, explicit marker, abbreviation, outlet match, then fallback."""
    value = " ".join((raw_date or "").split())

    if policy.is_known_liar(source_name):
        return ZoneResolution(
            explicit=False,
            zone_hint=policy.inferred_zone,
            value=strip_zone_marker(value),
            forced=True,
        )

    if has_explicit_zone(value):
        return ZoneResolution(explicit=True, zone_hint=None, value=value)

    found = find_abbreviation(value, policy.abbreviations)
    if found:
        token, zone = found
        stripped = " ".join(re.sub(rf"\b{token}\b", " ", value).split())
        return ZoneResolution(
            explicit=False, zone_hint=zone, value=stripped, abbreviation=token
        )

    if policy.matches_domain(link) or policy.matches_source_name(source_name):
        return ZoneResolution(explicit=False, zone_hint=policy.inferred_zone, value=value)

    return ZoneResolution(explicit=False, zone_hint=policy.fallback_zone, value=value)
