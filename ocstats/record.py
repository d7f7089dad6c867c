"""Recording measurements against the current tags."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from ocstats.measures import Measurement, get_recorder
from ocstats.tags import Mutator, TagMap, from_context, new_map

_CURRENT = object()


def record(*args: Measurement) -> None:
    """Record measurements tagged with the current tag map."""
    record_with_options(measurements=args)


def record_with_tags(mutators: Iterable[Mutator], *args: Measurement) -> None:
    """Record measurements tagged with the current tags changed by mutators.

    The current tag map itself is left unchanged.
    """
    record_with_options(measurements=args, mutators=mutators)


def record_with_options(
    measurements: Iterable[Measurement] = (),
    mutators: Iterable[Mutator] = (),
    attachments: Optional[Mapping[str, Any]] = None,
    tags: object = _CURRENT,
) -> None:
    """Record measurements with optional tag mutators and exemplar attachments.

    tags gives the base tag map; by default the current one is used. Nothing
    happens unless some measurement's measure is subscribed to by a view.
    """
    batch = [m for m in measurements if m is not None]
    if not batch:
        return
    recorder = get_recorder()
    if recorder is None:
        return
    if not any(m.measure.is_subscribed() for m in batch):
        return
    tag_map = from_context() if tags is _CURRENT else tags
    if tag_map is not None and not isinstance(tag_map, TagMap):
        raise TypeError("tags must be a TagMap or None")
    mutators = list(mutators)
    if mutators:
        tag_map = new_map(*mutators, base=tag_map)
    recorder(tag_map, batch, dict(attachments or {}))