"""
Telemetry producers.

One producer per telemetry type. Each shapes items to its allow-list and
appends them to the buffer; none of them send anything over the network.

    ErrorReporter            → errors
    EventTracker             → events
    LogProducer              → logs          (SoraneLogHandler for stdlib logging)
    PageVisitProducer        → page_visits
    JavaScriptErrorProducer  → javascript_errors

Tags:
    producers, telemetry, sorane
"""

from sorane.producers.base import Producer
from sorane.producers.errors import ErrorReporter
from sorane.producers.events import EventTracker, ensure_valid_event_name, validate_event_name
from sorane.producers.javascript_errors import (
    IntakeResult,
    JavaScriptErrorPayload,
    JavaScriptErrorProducer,
)
from sorane.producers.logs import LogProducer, SoraneLogHandler
from sorane.producers.page_visits import (
    HumanProbabilityScorer,
    PageVisitProducer,
    RequestFilter,
    VisitClassifier,
)
from sorane.producers.request import RequestInfo

__all__ = [
    "Producer",
    "ErrorReporter",
    "EventTracker",
    "validate_event_name",
    "ensure_valid_event_name",
    "LogProducer",
    "SoraneLogHandler",
    "PageVisitProducer",
    "RequestFilter",
    "VisitClassifier",
    "HumanProbabilityScorer",
    "JavaScriptErrorProducer",
    "JavaScriptErrorPayload",
    "IntakeResult",
    "RequestInfo",
]
