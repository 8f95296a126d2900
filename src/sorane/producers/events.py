"""
Custom event tracking.

Event names are snake_case identifiers: 3 to 50 characters, starting with a
lowercase letter, then lowercase letters, digits or underscores. ``track``
validates by default and raises :class:`InvalidEventNameError` for a bad
name; this is the one producer error that reaches the caller, since a
typo'd event name is a programming error rather than a runtime failure.

Standard names are provided as constants on :class:`EventTracker` together
with helpers that build their conventional properties::

    sorane.events.product_added_to_cart("sku-1", "Mug", 12.5, quantity=2)
    sorane.events.sale("order-9", 25.0, products=[{"id": "sku-1"}])
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from sorane.core.enums import TelemetryType
from sorane.core.errors import InvalidEventNameError
from sorane.core.logging import get_internal_logger
from sorane.core.sanitize import sanitize_for_serialization
from sorane.core.timestamps import to_iso8601
from sorane.producers.base import Producer
from sorane.producers.request import RequestInfo, session_id_hash, user_agent_hash

logger = get_internal_logger(__name__)

EVENT_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
EVENT_NAME_MIN_LENGTH = 3
EVENT_NAME_MAX_LENGTH = 50


def validate_event_name(name: str) -> bool:
    if not isinstance(name, str):
        return False
    if not EVENT_NAME_MIN_LENGTH <= len(name) <= EVENT_NAME_MAX_LENGTH:
        return False
    return EVENT_NAME_PATTERN.match(name) is not None


def ensure_valid_event_name(name: str) -> None:
    """Raise :class:`InvalidEventNameError` unless ``name`` is a valid event name."""
    if not isinstance(name, str):
        raise InvalidEventNameError(name, "must be a string")
    if not EVENT_NAME_MIN_LENGTH <= len(name) <= EVENT_NAME_MAX_LENGTH:
        raise InvalidEventNameError(
            name, f"must be {EVENT_NAME_MIN_LENGTH}-{EVENT_NAME_MAX_LENGTH} characters"
        )
    if EVENT_NAME_PATTERN.match(name) is None:
        raise InvalidEventNameError(
            name,
            "must be snake_case, start with a letter and contain only "
            "lowercase letters, digits and underscores",
        )


class EventTracker(Producer):
    """Producer for the ``events`` stream."""

    telemetry_type = TelemetryType.EVENTS
    allowed_fields = frozenset({
        "event_name",
        "properties",
        "user",
        "timestamp",
        "url",
        "user_agent_hash",
        "session_id_hash",
    })

    # ── Standard event names ────────────────────────────────────────────
    PRODUCT_ADDED_TO_CART = "product_added_to_cart"
    PRODUCT_REMOVED_FROM_CART = "product_removed_from_cart"
    CART_VIEWED = "cart_viewed"
    CHECKOUT_STARTED = "checkout_started"
    CHECKOUT_COMPLETED = "checkout_completed"
    SALE = "sale"
    USER_REGISTERED = "user_registered"
    USER_LOGGED_IN = "user_logged_in"
    USER_LOGGED_OUT = "user_logged_out"
    PAGE_VIEW = "page_view"
    SEARCH = "search"
    NEWSLETTER_SIGNUP = "newsletter_signup"
    CONTACT_FORM_SUBMITTED = "contact_form_submitted"

    def track(
        self,
        event_name: str,
        properties: Mapping[str, Any] | None = None,
        user_id: int | str | None = None,
        *,
        validate: bool = True,
        request: RequestInfo | None = None,
    ) -> bool:
        """Buffer one event.

        Raises:
            InvalidEventNameError: ``validate`` is set and the name is invalid.
        """
        if not self.enabled:
            return False
        if validate:
            ensure_valid_event_name(event_name)

        try:
            data = {
                "event_name": event_name,
                "properties": sanitize_for_serialization(dict(properties or {})),
                "user": {"id": user_id} if user_id is not None else None,
                "timestamp": to_iso8601(self._clock()),
                "url": request.url if request else None,
                "user_agent_hash": user_agent_hash(request),
                "session_id_hash": session_id_hash(request, self._clock),
            }
        except Exception as e:  # noqa: BLE001
            logger.warning("events.track_failed", event_name=str(event_name), error=str(e))
            return False
        return self.submit(data)

    # ── Helpers ─────────────────────────────────────────────────────────

    def custom(self, event_name: str, properties: Mapping[str, Any] | None = None,
               user_id: int | str | None = None, **kwargs: Any) -> bool:
        return self.track(event_name, properties, user_id, validate=True, **kwargs)

    def custom_unsafe(self, event_name: str, properties: Mapping[str, Any] | None = None,
                      user_id: int | str | None = None, **kwargs: Any) -> bool:
        """Track without name validation."""
        return self.track(event_name, properties, user_id, validate=False, **kwargs)

    def product_added_to_cart(
        self,
        product_id: str,
        product_name: str,
        price: float,
        quantity: int = 1,
        category: str | None = None,
        additional_properties: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> bool:
        properties: dict[str, Any] = {
            "product_id": product_id,
            "product_name": product_name,
            "price": price,
            "quantity": quantity,
            "total_value": price * quantity,
            **dict(additional_properties or {}),
        }
        if category:
            properties["category"] = category
        return self.track(self.PRODUCT_ADDED_TO_CART, properties, **kwargs)

    def sale(
        self,
        order_id: str,
        total_amount: float,
        products: Sequence[Any] = (),
        currency: str = "USD",
        additional_properties: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> bool:
        properties = {
            "order_id": order_id,
            "total_amount": total_amount,
            "currency": currency,
            "products": list(products),
            "product_count": len(products),
            **dict(additional_properties or {}),
        }
        return self.track(self.SALE, properties, **kwargs)

    def user_registered(self, user_id: int | str | None = None,
                        additional_properties: Mapping[str, Any] | None = None, **kwargs: Any) -> bool:
        return self.track(self.USER_REGISTERED, additional_properties, user_id, **kwargs)

    def user_logged_in(self, user_id: int | str | None = None,
                       additional_properties: Mapping[str, Any] | None = None, **kwargs: Any) -> bool:
        return self.track(self.USER_LOGGED_IN, additional_properties, user_id, **kwargs)

    def page_view(self, page_name: str,
                  additional_properties: Mapping[str, Any] | None = None, **kwargs: Any) -> bool:
        properties = {"page_name": page_name, **dict(additional_properties or {})}
        return self.track(self.PAGE_VIEW, properties, **kwargs)


__all__ = [
    "EventTracker",
    "EVENT_NAME_PATTERN",
    "validate_event_name",
    "ensure_valid_event_name",
]
