"""
Page visit analytics.

``PageVisitProducer.record(request)`` runs a request through a chain of
filters and buffers a visit only for traffic that looks like a real browser.
Filters run cheapest first:

    1. analytics disabled
    2. no User-Agent
    3. ``X-Client-Mode: passive`` (internal requests)
    4. first path segment in ``excluded_paths``
    5. pluggable :class:`RequestFilter`
    6. User-Agent shorter/longer than the configured bounds
    7. suspicious User-Agent patterns (HTTP libraries, test tools)
    8. known bot User-Agents
    9. :class:`VisitClassifier` says ``definitely_bot`` or ``probably_bot``
   10. missing Accept-Language
   11. Accept missing or ``*/*``

A visit that passes is throttled per ip, path and minute: the throttle key
is held in the cache for ``throttle_seconds`` and a second visit inside that
window is not buffered.

The client IP is used for hashing only and never leaves the process.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlsplit

from sorane.core.cache import CacheBackend
from sorane.core.enums import TelemetryType
from sorane.core.hashing import compute_hash
from sorane.core.logging import get_internal_logger
from sorane.core.sanitize import filter_fields, sanitize_for_serialization
from sorane.core.settings import WebsiteAnalyticsConfig
from sorane.core.timestamps import to_iso8601
from sorane.producers.base import Producer
from sorane.producers.request import RequestInfo, session_id_hash, user_agent_hash

logger = get_internal_logger(__name__)

SUSPICIOUS_USER_AGENT_PATTERNS: tuple[str, ...] = (
    "suspicious", "fake", "test", "localhost", "postman",
    "curl/", "wget/", "python-requests", "empty",
    "clearly-fake", "not-a-browser", "unknown",
    "Go-http-client", "libwww-perl", "Apache-HttpClient",
    "node-fetch", "axios/", "okhttp", "java/", "ruby/",
    "perl/", "scrapy", "requests/", "http_request",
)

KNOWN_BOT_USER_AGENTS: tuple[str, ...] = (
    "SaaSHub",
    "InternetMeasurement",
    "ALittle Client",
    "Applebot",
    "Baiduspider",
    "BingPreview",
    "bingbot",
    "Googlebot",
    "Bytespider",
    "CCBot",
    "ChatGPT-User",
    "Claude-Web",
    "ClaudeBot",
    "DataForSeoBot",
    "DotBot",
    "Facebot",
    "facebookexternalhit",
    "GPTBot",
    "ia_archiver",
    "ImagesiftBot",
    "LinkedInBot",
    "MJ12bot",
    "PetalBot",
    "Pinterestbot",
    "SemrushBot",
    "Slackbot",
    "Slurp",
    "TelegramBot",
    "Twitterbot",
    "WhatsApp",
    "YandexBot",
    "Amazon CloudFront",
    "HeadlessChrome",
    "Puppeteer",
    "Playwright",
    "PhantomJS",
    "Electron",
    "Cypress",
    "nightwatch",
    "ZoominfoBot",
    "ahrefsbot",
    "DuckDuckBot",
    "Screaming Frog",
    "serpstatbot",
    "MojeekBot",
)

BOT_CLASSIFICATIONS = frozenset({"definitely_bot", "probably_bot"})
UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")


# ── Extension points ─────────────────────────────────────────────────────


@runtime_checkable
class RequestFilter(Protocol):
    """Host-supplied filter; return ``True`` to skip the request."""

    def should_skip(self, request: RequestInfo) -> bool:
        ...


@dataclass
class Classification:
    score: int
    classification: str
    reasons: list[str] = field(default_factory=list)


@runtime_checkable
class VisitClassifier(Protocol):
    def classify(self, request: RequestInfo) -> Classification:
        ...


class HumanProbabilityScorer:
    """Heuristic human/bot score in ``[0, 100]``.

    Starts at 50 and adjusts for User-Agent shape, referrer, typical browser
    headers and request frequency per IP. Classification thresholds:
    ``>=70`` likely_human, ``>=50`` possibly_human, ``>=30`` probably_bot,
    below that definitely_bot.
    """

    SUSPICIOUS_TERMS = (
        "suspicious", "fake", "test", "localhost", "postman",
        "curl/", "wget/", "python-requests", "empty", "ruby",
        "clearly-fake", "not-a-browser", "unknown", "bot", "crawler",
        "spider", "http-client", "java/", "php/", "scripting", "headless",
        "phantom", "selenium", "webdriver", "automation",
    )
    COMMON_REFERRERS = (
        "google.com", "bing.com", "yahoo.com", "facebook.com",
        "twitter.com", "instagram.com", "linkedin.com", "youtube.com",
    )
    BROWSER_STRUCTURE = re.compile(
        r"(?:Mozilla|AppleWebKit|Chrome|Safari|Firefox|Edge|MSIE|Trident).*"
        r"(?:Windows NT|Macintosh|Linux|Android|iPhone|iPad).*"
        r"(?:Chrome|Safari|Firefox|Edge|MSIE)"
    )
    FREQUENCY_LIMIT = 10

    def __init__(self, cache: CacheBackend | None = None, *, key_prefix: str = "sorane"):
        self.cache = cache
        self.key_prefix = key_prefix

    @staticmethod
    def classify_score(score: int) -> str:
        if score >= 70:
            return "likely_human"
        if score >= 50:
            return "possibly_human"
        if score >= 30:
            return "probably_bot"
        return "definitely_bot"

    def classify(self, request: RequestInfo) -> Classification:
        reasons: list[str] = []
        score = 50
        score = self._score_user_agent(request, score, reasons)
        score = self._score_referrer(request, score, reasons)
        score = self._score_headers(request, score, reasons)
        score = self._score_frequency(request, score, reasons)
        score = max(0, min(100, score))
        return Classification(score=score, classification=self.classify_score(score), reasons=reasons)

    def _score_user_agent(self, request: RequestInfo, score: int, reasons: list[str]) -> int:
        ua = request.user_agent
        if not ua:
            reasons.append("Missing user agent")
            return score - 40

        if len(ua) < 30:
            reasons.append("User agent suspiciously short")
            score -= 10
        elif len(ua) > 500:
            reasons.append("User agent suspiciously long")
            score -= 5
        else:
            reasons.append("User agent has reasonable length")
            score += 10

        lowered = ua.lower()
        for term in self.SUSPICIOUS_TERMS:
            if term in lowered:
                reasons.append(f"User agent contains suspicious term: {term}")
                score -= 30
                break

        if self.BROWSER_STRUCTURE.search(ua):
            reasons.append("User agent has typical browser structure")
            score += 15
        else:
            reasons.append("User agent lacks typical browser structure")
            score -= 25
        return score

    def _score_referrer(self, request: RequestInfo, score: int, reasons: list[str]) -> int:
        referrer = request.referer
        if not referrer:
            return score

        reasons.append("Request includes a referrer")
        score += 15
        parts = urlsplit(referrer)
        if parts.scheme and parts.netloc:
            reasons.append("Referrer is a valid URL")
            score += 10
        lowered = referrer.lower()
        for domain in self.COMMON_REFERRERS:
            if domain in lowered:
                reasons.append(f"Referrer is from common source ({domain})")
                score += 5
                break
        return score

    def _score_headers(self, request: RequestInfo, score: int, reasons: list[str]) -> int:
        found = sum(1 for h in ("accept", "accept-language", "accept-encoding") if request.header(h))
        if found >= 2:
            reasons.append("Request contains typical browser headers")
            score += 15
        if request.header("cookie"):
            reasons.append("Request includes cookies")
            score += 10
        if request.header("dnt"):
            reasons.append("Request includes DNT header typical of browsers")
            score += 5
        return score

    def _score_frequency(self, request: RequestInfo, score: int, reasons: list[str]) -> int:
        if self.cache is None or not request.ip:
            return score
        key = f"{self.key_prefix}:request_frequency:{request.ip}"
        count = int(self.cache.get(key) or 0)
        if count > self.FREQUENCY_LIMIT:
            reasons.append("High request frequency detected")
            score -= 25
        self.cache.set(key, count + 1, ttl_seconds=60)
        return score


# ── User agent parsing ───────────────────────────────────────────────────

_TABLET = re.compile(r"(ipad|tablet|playbook|silk)", re.IGNORECASE)
_MOBILE = re.compile(
    r"(android|iphone|ipod|blackberry|iemobile|opera mini|opera mobi|webos|mobile safari|samsung.+mobile)",
    re.IGNORECASE,
)
_CONSOLE = re.compile(r"(nintendo|playstation|xbox)", re.IGNORECASE)

_BROWSERS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("Edge", re.compile(r"Edge?/", re.IGNORECASE)),
    ("Opera", re.compile(r"(Opera|OPR)/", re.IGNORECASE)),
    ("Samsung", re.compile(r"SamsungBrowser/", re.IGNORECASE)),
    ("Firefox", re.compile(r"Firefox/", re.IGNORECASE)),
    ("Chrome", re.compile(r"Chrome/", re.IGNORECASE)),
    ("Safari", re.compile(r"Version/.*Safari", re.IGNORECASE)),
    ("IE", re.compile(r"(MSIE |Trident/.*rv:)", re.IGNORECASE)),
    ("UCBrowser", re.compile(r"UCBrowser/", re.IGNORECASE)),
)


def detect_device_type(user_agent: str | None) -> str | None:
    if not user_agent:
        return None
    ua = user_agent.lower()
    if _TABLET.search(ua) or ("android" in ua and "mobile" not in ua):
        return "tablet"
    if _MOBILE.search(ua) or ("mobile" in ua and "ipad" not in ua):
        return "mobile"
    if _CONSOLE.search(ua):
        return "console"
    return "desktop"


def detect_browser(user_agent: str | None) -> str | None:
    if not user_agent:
        return None
    for name, pattern in _BROWSERS:
        if pattern.search(user_agent):
            return name
    return "Other"


def _contains_any(text: str, needles: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(n.lower() in lowered for n in needles)


class PageVisitProducer(Producer):
    """Producer for the ``page_visits`` stream."""

    telemetry_type = TelemetryType.PAGE_VISITS
    allowed_fields = frozenset({
        "url",
        "path",
        "timestamp",
        "referrer",
        "country_code",
        "device_type",
        "browser_name",
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_content",
        "utm_term",
        "session_id_hash",
        "user_agent_hash",
        "human_probability_score",
        "human_probability_reasons",
    })

    def __init__(
        self,
        *args: Any,
        cache: CacheBackend,
        request_filter: RequestFilter | None = None,
        classifier: VisitClassifier | None = None,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.cache = cache
        self.request_filter = request_filter
        self.classifier = classifier or HumanProbabilityScorer(
            cache, key_prefix=self.settings.batch.key_prefix
        )

    @property
    def config(self) -> WebsiteAnalyticsConfig:
        return self.settings.page_visits

    def shape(self, data: Mapping[str, Any]) -> dict[str, Any]:
        allowed = self.allowed_fields
        if self.config.preserve_user_agent:
            allowed = allowed | {"user_agent"}
        return sanitize_for_serialization(filter_fields(data, allowed))

    def skip_reason(self, request: RequestInfo) -> str | None:
        """Name of the first filter that rejects ``request``, or ``None``."""
        config = self.config
        if not self.enabled:
            return "disabled"

        ua = request.user_agent
        if not ua:
            return "missing_user_agent"
        if request.header("x-client-mode") == "passive":
            return "passive_client"

        first_segment = request.path.lstrip("/").split("/")[0]
        if first_segment in config.excluded_paths:
            return "excluded_path"
        if self.request_filter is not None and self.request_filter.should_skip(request):
            return "request_filter"

        if len(ua) < config.user_agent_min_length or len(ua) > config.user_agent_max_length:
            return "user_agent_length"
        if _contains_any(ua, SUSPICIOUS_USER_AGENT_PATTERNS):
            return "suspicious_user_agent"
        if _contains_any(ua, KNOWN_BOT_USER_AGENTS):
            return "known_bot"
        return None

    def collect(self, request: RequestInfo) -> dict[str, Any]:
        """Visit fields for ``request`` (before classification and allow-list)."""
        ua = request.user_agent
        query = request.query
        data: dict[str, Any] = {
            "url": request.url,
            "path": request.path,
            "user_agent": ua,
            "user_agent_hash": user_agent_hash(request),
            "referrer": request.referer,
            "device_type": detect_device_type(ua),
            "browser_name": detect_browser(ua),
            "country_code": None,
            "session_id_hash": session_id_hash(request, self._clock),
            "timestamp": to_iso8601(self._clock()),
        }
        for name in UTM_FIELDS:
            data[name] = query.get(name)
        return data

    def throttle_key(self, request: RequestInfo) -> str:
        minute = self._clock().strftime("%Y-%m-%d-%H-%M")
        return f"{self.settings.batch.key_prefix}:visit:" + compute_hash(request.ip or "", request.path, minute)

    def record(self, request: RequestInfo) -> bool:
        """Buffer a visit for ``request`` if it passes every filter. Never raises."""
        try:
            reason = self.skip_reason(request)
            if reason is not None:
                logger.debug("page_visits.skipped", reason=reason, path=request.path)
                return False

            verdict = self.classifier.classify(request)
            if verdict.classification in BOT_CLASSIFICATIONS:
                logger.debug("page_visits.skipped", reason=verdict.classification, path=request.path)
                return False

            if not request.header("accept-language"):
                return False
            accept = request.header("accept")
            if not accept or accept == "*/*":
                return False

            data = self.collect(request)
            data["human_probability_score"] = verdict.score
            data["human_probability_reasons"] = verdict.reasons

            throttle = self.config.throttle_seconds
            if throttle > 0 and not self.cache.add(self.throttle_key(request), True, ttl_seconds=throttle):
                logger.debug("page_visits.throttled", path=request.path)
                return False
        except Exception as e:  # noqa: BLE001
            logger.warning("page_visits.record_failed", error=str(e))
            return False
        return self.submit(data)


__all__ = [
    "PageVisitProducer",
    "RequestFilter",
    "VisitClassifier",
    "Classification",
    "HumanProbabilityScorer",
    "detect_device_type",
    "detect_browser",
]
