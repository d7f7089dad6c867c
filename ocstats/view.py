"""Views over measures, their runtime state, and exporter registration."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Optional

from ocstats.aggregation import Aggregation
from ocstats.collector import Collector, Row, encode_with_keys
from ocstats.measures import Measure
from ocstats.tags import Key, TagMap

MAX_NAME_LENGTH = 255


class ViewRegistrationError(ValueError):
    """Raised when a view cannot be registered."""


class NegativeBucketBoundsError(ViewRegistrationError):
    """Raised when a distribution has negative bucket bounds."""

    def __init__(self, message: str = "negative bucket bounds not supported") -> None:
        super().__init__(message)


def check_view_name(name: str) -> None:
    """Raise ViewRegistrationError if name is too long or not printable ASCII."""
    if len(name.encode("utf-8")) > MAX_NAME_LENGTH:
        raise ViewRegistrationError(f"view name cannot be larger than {MAX_NAME_LENGTH}")
    if not all(" " <= ch <= "~" for ch in name):
        raise ViewRegistrationError("view name needs to be an ASCII string")


@dataclass
class View:
    """An aggregation of a measure, broken down by tag keys."""

    name: str = ""
    description: str = ""
    tag_keys: list[Key] = field(default_factory=list)
    measure: Optional[Measure] = None
    aggregation: Optional[Aggregation] = None

    def with_name(self, name: str) -> "View":
        """Return a copy of this view under a new name."""
        return replace(self, name=name)

    def same(self, other: Optional["View"]) -> bool:
        """Return True if other aggregates the same measure in the same way."""
        if other is self:
            return True
        if other is None:
            return False
        return (
            self.aggregation == other.aggregation
            and self.measure is not None
            and other.measure is not None
            and self.measure.name == other.measure.name
        )

    def canonicalize(self) -> None:
        """Fill in defaults, validate, and sort tag keys and bucket bounds in place."""
        if self.measure is None:
            raise ViewRegistrationError(f"cannot register view {self.name!r}: measure not set")
        if self.aggregation is None:
            raise ViewRegistrationError(
                f"cannot register view {self.name!r}: aggregation not set"
            )
        if not self.name:
            self.name = self.measure.name
        if not self.description:
            self.description = self.measure.description
        check_view_name(self.name)
        self.tag_keys = sorted(self.tag_keys, key=lambda key: key.name)
        buckets = sorted(self.aggregation.buckets)
        if any(bound < 0 for bound in buckets):
            raise NegativeBucketBoundsError()
        self.aggregation.buckets = [bound for bound in buckets if bound > 0]


class ViewState:
    """Runtime state of a registered view: subscription and collected data."""

    def __init__(self, view: View) -> None:
        if view.aggregation is None:
            raise ViewRegistrationError(
                f"cannot register view {view.name!r}: aggregation not set"
            )
        self.view = view
        self.collector = Collector(view.aggregation)
        self._subscribed = False

    def subscribe(self) -> None:
        self._subscribed = True

    def unsubscribe(self) -> None:
        self._subscribed = False

    def is_subscribed(self) -> bool:
        """Return True if the view is collecting data."""
        return self._subscribed

    def clear_rows(self) -> None:
        self.collector.clear_rows()

    def collected_rows(self) -> list[Row]:
        return self.collector.collected_rows(self.view.tag_keys)

    def add_sample(
        self,
        tag_map: Optional[TagMap],
        value: float,
        attachments: Optional[Mapping[str, Any]],
        timestamp: Optional[datetime],
    ) -> None:
        """Record value under the view's tag keys; ignored unless subscribed."""
        if not self._subscribed:
            return
        signature = encode_with_keys(tag_map, self.view.tag_keys)
        self.collector.add_sample(signature, value, attachments, timestamp)


@dataclass
class ViewData:
    """Rows collected for one view over a period."""

    view: View
    start: datetime
    end: datetime
    rows: list[Row]


class Exporter(ABC):
    """Receives collected view data."""

    @abstractmethod
    def export_view(self, data: ViewData) -> None:
        """Handle one batch of view data; should return quickly."""


_exporters_lock = threading.Lock()
_exporters: dict[Exporter, None] = {}


def register_exporter(exporter: Exporter) -> None:
    """Add an exporter that will receive all reported view data."""
    with _exporters_lock:
        _exporters[exporter] = None


def unregister_exporter(exporter: Exporter) -> None:
    """Remove a previously registered exporter."""
    with _exporters_lock:
        _exporters.pop(exporter, None)


def registered_exporters() -> list[Exporter]:
    """Return a snapshot of the registered exporters."""
    with _exporters_lock:
        return list(_exporters)