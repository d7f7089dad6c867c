"""Measures, measurements and the process-wide measure registry."""

from __future__ import annotations

import operator
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

from ocstats.tags import TagMap

UNIT_NONE = "1"
UNIT_DIMENSIONLESS = "1"
UNIT_BYTES = "By"
UNIT_MILLISECONDS = "ms"


class _Descriptor:
    """Shared state for all measures registered under one name."""

    __slots__ = ("name", "description", "unit", "subscribed")

    def __init__(self, name: str, description: str, unit: str) -> None:
        self.name = name
        self.description = description
        self.unit = unit
        self.subscribed = False


_lock = threading.Lock()
_descriptors: dict[str, _Descriptor] = {}


def _register(name: str, description: str, unit: str) -> _Descriptor:
    with _lock:
        stored = _descriptors.get(name)
        if stored is None:
            stored = _Descriptor(name, description, unit)
            _descriptors[name] = stored
        return stored


class Measure:
    """A named numeric quantity to be recorded.

    Measures with the same name share a name, description, unit and
    subscription state; the first registration fixes the description and unit.
    """

    def __init__(self, name: str, description: str = "", unit: str = "") -> None:
        self._desc = _register(name, description, unit)

    @property
    def name(self) -> str:
        return self._desc.name

    @property
    def description(self) -> str:
        return self._desc.description

    @property
    def unit(self) -> str:
        return self._desc.unit

    def is_subscribed(self) -> bool:
        """Return True once any view has subscribed to this measure's name."""
        return self._desc.subscribed

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, unit={self.unit!r})"


@dataclass(frozen=True)
class Measurement:
    """A value recorded against a measure."""

    value: float
    measure: Measure


class Int64Measure(Measure):
    """A measure of integer values."""

    def m(self, value: int) -> Measurement:
        """Create a measurement of an integer value."""
        return Measurement(float(operator.index(value)), self)


class Float64Measure(Measure):
    """A measure of floating-point values."""

    def m(self, value: float) -> Measurement:
        """Create a measurement of a floating-point value."""
        return Measurement(float(value), self)


def int64(name: str, description: str, unit: str) -> Int64Measure:
    """Create or look up an integer measure by name."""
    return Int64Measure(name, description, unit)


def float64(name: str, description: str, unit: str) -> Float64Measure:
    """Create or look up a floating-point measure by name."""
    return Float64Measure(name, description, unit)


def subscribe(name: str) -> None:
    """Mark the measure registered under name as subscribed to by a view."""
    with _lock:
        descriptor = _descriptors.get(name)
        if descriptor is None:
            raise KeyError(f"measure {name!r} is not registered")
        descriptor.subscribed = True


Recorder = Callable[[Optional[TagMap], Sequence[Measurement], Mapping[str, Any]], None]


class _RecorderSlot:
    """Holds the installed recorder behind a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._recorder: Optional[Recorder] = None

    def replace(self, recorder: Optional[Recorder]) -> Optional[Recorder]:
        with self._lock:
            previous = self._recorder
            self._recorder = recorder
            return previous

    def current(self) -> Optional[Recorder]:
        with self._lock:
            return self._recorder


_recorder_slot = _RecorderSlot()


def set_recorder(recorder: Optional[Recorder]) -> Optional[Recorder]:
    """Install the function that receives every recorded batch of measurements.

    Returns the recorder that was installed before. Passing None removes it.
    """
    if recorder is not None and not callable(recorder):
        raise TypeError(f"recorder must be callable, not {type(recorder).__name__}")
    return _recorder_slot.replace(recorder)


def get_recorder() -> Optional[Recorder]:
    """Return the installed recorder, if any."""
    return _recorder_slot.current()