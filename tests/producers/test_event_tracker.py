"""Tests for ``EventTracker`` and event name validation."""

from __future__ import annotations

import pytest

from sorane.core.errors import InvalidEventNameError
from sorane.core.hashing import compute_hash
from sorane.producers.events import EventTracker, ensure_valid_event_name, validate_event_name
from sorane.producers.request import RequestInfo

BROWSER_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@pytest.fixture
def tracker(buffer, settings, clock):
    return EventTracker(buffer, settings, clock=clock)


def _events(buffer) -> list[dict]:
    return [item.data for item in buffer.take("events", 100)]


class TestEventNames:
    @pytest.mark.parametrize("name", ["sale", "checkout_started", "step_2_done", "a" * 50])
    def test_valid(self, name):
        assert validate_event_name(name) is True
        ensure_valid_event_name(name)

    @pytest.mark.parametrize(
        "name",
        ["ab", "a" * 51, "Checkout", "2fa_enabled", "_private", "add-to-cart", "page view", "café"],
    )
    def test_invalid(self, name):
        assert validate_event_name(name) is False
        with pytest.raises(InvalidEventNameError):
            ensure_valid_event_name(name)

    def test_non_string(self):
        assert validate_event_name(None) is False
        with pytest.raises(InvalidEventNameError, match="must be a string"):
            ensure_valid_event_name(123)


class TestTrack:
    def test_event_shape(self, tracker, buffer, clock):
        assert tracker.track("checkout_started", {"cart_value": 42}, user_id=7) is True

        [event] = _events(buffer)
        assert event["event_name"] == "checkout_started"
        assert event["properties"] == {"cart_value": 42}
        assert event["user"] == {"id": 7}
        assert event["timestamp"] == "2025-01-15T12:00:00+00:00"
        assert event["url"] is None
        assert event["user_agent_hash"] is None

    def test_invalid_name_raises_and_buffers_nothing(self, tracker, buffer):
        with pytest.raises(InvalidEventNameError):
            tracker.track("Bad Name")
        assert buffer.count("events") == 0

    def test_custom_unsafe_skips_validation(self, tracker, buffer):
        assert tracker.custom_unsafe("Legacy-Event", {"a": 1}) is True
        assert _events(buffer)[0]["event_name"] == "Legacy-Event"

    def test_custom_validates(self, tracker):
        with pytest.raises(InvalidEventNameError):
            tracker.custom("Legacy-Event")

    def test_request_enrichment(self, tracker, buffer, clock):
        request = RequestInfo(
            url="https://shop.example.test/cart?ref=mail",
            headers={"User-Agent": BROWSER_UA},
            ip="203.0.113.7",
        )
        tracker.track("cart_viewed", request=request)

        [event] = _events(buffer)
        assert event["url"] == "https://shop.example.test/cart?ref=mail"
        assert event["user_agent_hash"] == compute_hash(BROWSER_UA)
        assert event["session_id_hash"] == compute_hash("203.0.113.7", BROWSER_UA[:100], "2025-01-15")

    def test_session_hash_rotates_daily(self, tracker, buffer, clock):
        request = RequestInfo(url="https://x.test/", headers={"User-Agent": BROWSER_UA}, ip="203.0.113.7")
        tracker.track("page_view", request=request)
        clock.advance(86400)
        tracker.track("page_view", request=request)
        first, second = _events(buffer)
        assert first["session_id_hash"] != second["session_id_hash"]
        assert first["user_agent_hash"] == second["user_agent_hash"]

    def test_properties_are_sanitized(self, tracker, buffer):
        tracker.track("search", {"callback": print, "terms": ("mug", "cup")})
        assert _events(buffer)[0]["properties"] == {"callback": "[Callable]", "terms": ["mug", "cup"]}

    def test_disabled_returns_false_without_validating(self, buffer, settings_factory, clock):
        tracker = EventTracker(buffer, settings_factory(events={"enabled": False}), clock=clock)
        assert tracker.track("Bad Name") is False

    def test_client_disabled(self, buffer, settings_factory, clock):
        tracker = EventTracker(buffer, settings_factory(enabled=False), clock=clock)
        assert tracker.track("sale") is False


class TestHelpers:
    def test_product_added_to_cart(self, tracker, buffer):
        tracker.product_added_to_cart("sku-1", "Mug", 12.5, quantity=2, category="kitchen")
        [event] = _events(buffer)
        assert event["event_name"] == EventTracker.PRODUCT_ADDED_TO_CART
        assert event["properties"] == {
            "product_id": "sku-1",
            "product_name": "Mug",
            "price": 12.5,
            "quantity": 2,
            "total_value": 25.0,
            "category": "kitchen",
        }

    def test_product_added_without_category(self, tracker, buffer):
        tracker.product_added_to_cart("sku-1", "Mug", 10.0)
        assert "category" not in _events(buffer)[0]["properties"]

    def test_sale(self, tracker, buffer):
        tracker.sale("order-9", 25.0, products=[{"id": "sku-1"}, {"id": "sku-2"}], user_id=3)
        [event] = _events(buffer)
        assert event["event_name"] == "sale"
        assert event["properties"]["currency"] == "USD"
        assert event["properties"]["product_count"] == 2
        assert event["user"] == {"id": 3}

    def test_user_events(self, tracker, buffer):
        tracker.user_registered(5, {"plan": "pro"})
        tracker.user_logged_in(5)
        registered, logged_in = _events(buffer)
        assert registered["event_name"] == "user_registered"
        assert registered["properties"] == {"plan": "pro"}
        assert logged_in["event_name"] == "user_logged_in"
        assert logged_in["user"] == {"id": 5}

    def test_page_view(self, tracker, buffer):
        tracker.page_view("Pricing")
        assert _events(buffer)[0]["properties"] == {"page_name": "Pricing"}
