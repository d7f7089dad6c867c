"""The worker that owns registered views, routes recordings and reports to exporters."""

from __future__ import annotations

import threading
import time
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from ocstats.collector import Row
from ocstats.measures import Measurement, set_recorder, subscribe
from ocstats.tags import TagMap
from ocstats.view import (
    View,
    ViewData,
    ViewRegistrationError,
    ViewState,
    registered_exporters,
)

DEFAULT_REPORTING_PERIOD = 10.0


class Worker:
    """Holds registered views, aggregates recorded measurements and reports them.

    All operations are synchronous and guarded by one lock; a background thread,
    started with start(), reports collected data to exporters periodically.
    """

    def __init__(self, reporting_period: float = DEFAULT_REPORTING_PERIOD) -> None:
        self._lock = threading.RLock()
        self._views: dict[str, ViewState] = {}
        self._measures: dict[str, dict[ViewState, None]] = {}
        self._start_times: dict[ViewState, datetime] = {}
        self._period = reporting_period if reporting_period > 0 else DEFAULT_REPORTING_PERIOD
        self._wake = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def reporting_period(self) -> float:
        """Seconds between periodic reports."""
        return self._period

    def find(self, name: str) -> Optional[View]:
        """Return the registered view called name, or None."""
        with self._lock:
            state = self._views.get(name)
            return None if state is None else state.view

    def register(self, *args: View) -> None:
        """Start collecting data for the given views.

        Every view is validated first; the first invalid one aborts the whole
        call. Conflicts with already registered views are collected and raised
        together after the others have been registered.
        """
        with self._lock:
            for view in args:
                if view is None:
                    raise ViewRegistrationError("cannot register view: view is None")
                view.canonicalize()
            errors = []
            for view in args:
                try:
                    state = self._try_register(view)
                except ViewRegistrationError as exc:
                    errors.append(f"{view.name}: {exc}")
                    continue
                subscribe(view.measure.name)
                state.subscribe()
            if errors:
                raise ViewRegistrationError("\n".join(errors))

    def _try_register(self, view: View) -> ViewState:
        candidate = ViewState(view)
        existing = self._views.get(view.name)
        if existing is not None:
            if not existing.view.same(candidate.view):
                raise ViewRegistrationError(
                    f"cannot register view {view.name!r}; "
                    "a different view with the same name is already registered"
                )
            return existing
        self._views[view.name] = candidate
        self._measures.setdefault(view.measure.name, {})[candidate] = None
        return candidate

    def unregister(self, *args: View) -> None:
        """Stop collecting data for the given views, reporting pending data first."""
        with self._lock:
            for name in [view.name for view in args]:
                state = self._views.get(name)
                if state is None:
                    continue
                self._report_view(state, datetime.now())
                state.unsubscribe()
                state.clear_rows()
                del self._views[name]
                self._start_times.pop(state, None)
                refs = self._measures.get(state.view.measure.name)
                if refs is not None:
                    refs.pop(state, None)

    def retrieve_data(self, name: str) -> list[Row]:
        """Return a snapshot of the rows collected for the view called name."""
        with self._lock:
            state = self._views.get(name)
            if state is None:
                raise LookupError(f"cannot retrieve data; view {name!r} is not registered")
            if not state.is_subscribed():
                raise LookupError(
                    f"cannot retrieve data; view {name!r} has no subscriptions "
                    "or collection is not forcibly started"
                )
            return state.collected_rows()

    def record(
        self,
        tag_map: Optional[TagMap],
        measurements: Sequence[Measurement],
        attachments: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Add each measurement to every view over its measure."""
        with self._lock:
            for measurement in measurements:
                if measurement is None:
                    continue
                refs = self._measures.get(measurement.measure.name, {})
                for state in refs:
                    state.add_sample(tag_map, measurement.value, attachments, datetime.now())

    def set_reporting_period(self, seconds: float) -> None:
        """Set the interval between reports; zero or less restores the default."""
        with self._lock:
            self._period = seconds if seconds > 0 else DEFAULT_REPORTING_PERIOD
        self._wake.set()

    def report_usage(self, now: Optional[datetime] = None) -> None:
        """Send the data of every subscribed view to the registered exporters."""
        now = now or datetime.now()
        with self._lock:
            for state in list(self._views.values()):
                self._report_view(state, now)

    def _report_view(self, state: ViewState, now: datetime) -> None:
        if not state.is_subscribed():
            return
        rows = state.collected_rows()
        start = self._start_times.setdefault(state, now)
        data = ViewData(view=state.view, start=start, end=datetime.now(), rows=rows)
        for exporter in registered_exporters():
            exporter.export_view(data)

    def start(self) -> None:
        """Start periodic reporting in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopped.clear()
        self._wake.clear()
        self._thread = threading.Thread(target=self._run, name="ocstats-worker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop periodic reporting and wait for the background thread to end."""
        self._stopped.set()
        self._wake.set()
        thread = self._thread
        if thread is not None:
            thread.join()
        self._thread = None

    def _run(self) -> None:
        deadline = time.monotonic() + self._period
        while not self._stopped.is_set():
            remaining = max(0.0, deadline - time.monotonic())
            if self._wake.wait(remaining):
                self._wake.clear()
                deadline = time.monotonic() + self._period
                continue
            if self._stopped.is_set():
                break
            self.report_usage(datetime.now())
            deadline = time.monotonic() + self._period


_default_worker = Worker()
_default_worker.start()


def _record(
    tag_map: Optional[TagMap],
    measurements: Sequence[Measurement],
    attachments: Mapping[str, Any],
) -> None:
    _default_worker.record(tag_map, measurements, attachments)


set_recorder(_record)


def find(name: str) -> Optional[View]:
    """Return the view registered under name in the default worker, or None."""
    return _default_worker.find(name)


def register(*args: View) -> None:
    """Register views with the default worker."""
    _default_worker.register(*args)


def unregister(*args: View) -> None:
    """Unregister views from the default worker."""
    _default_worker.unregister(*args)


def retrieve_data(name: str) -> list[Row]:
    """Return the rows collected by the default worker for a view."""
    return _default_worker.retrieve_data(name)


def set_reporting_period(seconds: float) -> None:
    """Set the reporting interval of the default worker."""
    _default_worker.set_reporting_period(seconds)


def reset_default_worker() -> Worker:
    """Stop the default worker and replace it with a fresh, running one."""
    global _default_worker
    _default_worker.stop()
    _default_worker = Worker()
    _default_worker.start()
    return _default_worker