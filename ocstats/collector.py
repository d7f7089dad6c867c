"""Per-view collection of aggregates keyed by tag values."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from ocstats.aggregation import Aggregation, AggregationData
from ocstats.tags import Key, Tag, TagMap

Signature = tuple[Optional[str], ...]


def encode_with_keys(tag_map: Optional[TagMap], keys: Sequence[Key]) -> Signature:
    """Return the values of keys in tag_map, in key order; None marks an absent key."""
    if tag_map is None:
        return tuple(None for _ in keys)
    return tuple(tag_map.value(key) for key in keys)


def decode_tags(signature: Signature, keys: Sequence[Key]) -> list[Tag]:
    """Turn a signature back into tags, leaving out absent keys, sorted by key name."""
    tags = [
        Tag(key, value)
        for key, value in zip(keys, signature, strict=True)
        if value is not None
    ]
    tags.sort(key=lambda tag: tag.key.name)
    return tags


@dataclass
class Row:
    """The aggregate collected for one combination of tag values."""

    tags: list[Tag]
    data: AggregationData

    def equal(self, other: "Row") -> bool:
        """Return True if both rows have the same tags, in order, and equal data."""
        if other is self:
            return True
        return list(self.tags) == list(other.tags) and self.data.equal(other.data)

    def __str__(self) -> str:
        body = "".join(f"{{{tag.key.name} {tag.value}}}" for tag in self.tags)
        return "{ { " + body + " }" + repr(self.data) + " }"


@dataclass
class Collector:
    """Aggregates samples separately for each tag signature."""

    aggregation: Aggregation
    signatures: dict[Signature, AggregationData] = field(default_factory=dict)

    def add_sample(
        self,
        signature: Signature,
        value: float,
        attachments: Optional[Mapping[str, Any]],
        timestamp: Optional[datetime],
    ) -> None:
        """Fold value into the aggregate for signature, creating it if needed."""
        aggregator = self.signatures.get(signature)
        if aggregator is None:
            aggregator = self.aggregation.new_data()
            self.signatures[signature] = aggregator
        aggregator.add_sample(value, attachments, timestamp)

    def collected_rows(self, keys: Sequence[Key]) -> list[Row]:
        """Return a snapshot of the collected rows."""
        return [
            Row(decode_tags(signature, keys), aggregator.clone())
            for signature, aggregator in self.signatures.items()
        ]

    def clear_rows(self) -> None:
        """Drop all collected data."""
        self.signatures = {}