"""Aggregation methods for views and the data they accumulate."""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Callable, ClassVar, Mapping, Optional

EPSILON = 1e-9

_SMALLEST_NONZERO_FLOAT = 5e-324


class AggType(IntEnum):
    """The kind of aggregation applied by a view."""

    NONE = 0
    COUNT = 1
    SUM = 2
    DISTRIBUTION = 3
    LAST_VALUE = 4

    def __str__(self) -> str:
        return _AGG_TYPE_NAMES[self]


_AGG_TYPE_NAMES = {
    AggType.NONE: "None",
    AggType.COUNT: "Count",
    AggType.SUM: "Sum",
    AggType.DISTRIBUTION: "Distribution",
    AggType.LAST_VALUE: "LastValue",
}


@dataclass(frozen=True)
class Exemplar:
    """A sample value kept as an example for a distribution bucket."""

    value: float
    timestamp: Optional[datetime]
    attachments: Mapping[str, Any]


class AggregationData(ABC):
    """Aggregated value for one set of tag values."""

    @abstractmethod
    def add_sample(
        self,
        value: float,
        attachments: Optional[Mapping[str, Any]],
        timestamp: Optional[datetime],
    ) -> None:
        """Fold one recorded value into the aggregate."""

    @abstractmethod
    def clone(self) -> "AggregationData":
        """Return an independent copy."""

    @abstractmethod
    def equal(self, other: object) -> bool:
        """Return True if other holds the same aggregate, within tolerance."""


@dataclass
class CountData(AggregationData):
    """Number of values recorded."""

    value: int = 0

    def add_sample(self, value, attachments, timestamp) -> None:
        self.value += 1

    def clone(self) -> "CountData":
        return CountData(self.value)

    def equal(self, other: object) -> bool:
        return isinstance(other, CountData) and self.value == other.value


@dataclass
class SumData(AggregationData):
    """Sum of the values recorded."""

    value: float = 0.0

    def add_sample(self, value, attachments, timestamp) -> None:
        self.value += value

    def clone(self) -> "SumData":
        return SumData(self.value)

    def equal(self, other: object) -> bool:
        if not isinstance(other, SumData):
            return False
        return (self.value - other.value) ** 2 < EPSILON


@dataclass
class LastValueData(AggregationData):
    """The most recently recorded value."""

    value: float = 0.0

    def add_sample(self, value, attachments, timestamp) -> None:
        self.value = value

    def clone(self) -> "LastValueData":
        return LastValueData(self.value)

    def equal(self, other: object) -> bool:
        return isinstance(other, LastValueData) and self.value == other.value


@dataclass
class DistributionData(AggregationData):
    """Histogram and summary statistics of the values recorded.

    A distribution with N bounds has N + 1 buckets.
    """

    bounds: list[float] = field(default_factory=list)
    count: int = 0
    min: float = sys.float_info.max
    max: float = _SMALLEST_NONZERO_FLOAT
    mean: float = 0.0
    sum_of_squared_dev: float = 0.0
    count_per_bucket: Optional[list[int]] = None
    exemplars_per_bucket: Optional[list[Optional[Exemplar]]] = None

    def __post_init__(self) -> None:
        buckets = len(self.bounds) + 1
        if self.count_per_bucket is None:
            self.count_per_bucket = [0] * buckets
        if self.exemplars_per_bucket is None:
            self.exemplars_per_bucket = [None] * buckets

    def sum(self) -> float:
        """Sum of all values recorded."""
        return self.mean * self.count

    def variance(self) -> float:
        """Sample variance of the values recorded."""
        if self.count <= 1:
            return 0.0
        return self.sum_of_squared_dev / (self.count - 1)

    def add_sample(self, value, attachments, timestamp) -> None:
        if value < self.min:
            self.min = value
        if value > self.max:
            self.max = value
        self.count += 1
        self._add_to_bucket(value, attachments, timestamp)

        if self.count == 1:
            self.mean = value
            return
        old_mean = self.mean
        self.mean = self.mean + (value - self.mean) / self.count
        self.sum_of_squared_dev += (value - old_mean) * (value - self.mean)

    def _add_to_bucket(self, value, attachments, timestamp) -> None:
        index = next(
            (i for i, bound in enumerate(self.bounds) if value < bound),
            len(self.bounds),
        )
        self.count_per_bucket[index] += 1
        if attachments:
            self.exemplars_per_bucket[index] = Exemplar(value, timestamp, attachments)

    def clone(self) -> "DistributionData":
        return DistributionData(
            bounds=self.bounds,
            count=self.count,
            min=self.min,
            max=self.max,
            mean=self.mean,
            sum_of_squared_dev=self.sum_of_squared_dev,
            count_per_bucket=list(self.count_per_bucket),
            exemplars_per_bucket=list(self.exemplars_per_bucket),
        )

    def equal(self, other: object) -> bool:
        if not isinstance(other, DistributionData):
            return False
        if self.count_per_bucket != other.count_per_bucket:
            return False
        return (
            self.count == other.count
            and self.min == other.min
            and self.max == other.max
            and (self.mean - other.mean) ** 2 < EPSILON
            and (self.variance() - other.variance()) ** 2 < EPSILON
        )


@dataclass(eq=True)
class Aggregation:
    """How a view aggregates the values it collects."""

    type: AggType
    buckets: list[float] = field(default_factory=list)

    _count: ClassVar[Optional["Aggregation"]] = None
    _sum: ClassVar[Optional["Aggregation"]] = None

    @classmethod
    def count(cls) -> "Aggregation":
        """Aggregation that counts recorded values."""
        if cls._count is None:
            cls._count = cls(AggType.COUNT)
        return cls._count

    @classmethod
    def sum(cls) -> "Aggregation":
        """Aggregation that sums recorded values."""
        if cls._sum is None:
            cls._sum = cls(AggType.SUM)
        return cls._sum

    @classmethod
    def distribution(cls, *args: float) -> "Aggregation":
        """Histogram aggregation with the given bucket bounds."""
        return cls(AggType.DISTRIBUTION, [float(b) for b in args])

    @classmethod
    def last_value(cls) -> "Aggregation":
        """Aggregation that keeps only the last recorded value."""
        return cls(AggType.LAST_VALUE)

    def new_data(self) -> AggregationData:
        """Return an empty aggregate for this aggregation."""
        factory = _FACTORIES.get(self.type)
        if factory is None:
            raise ValueError(f"unsupported aggregation type: {self.type}")
        return factory(self)


_FACTORIES: dict[AggType, Callable[[Aggregation], AggregationData]] = {
    AggType.COUNT: lambda agg: CountData(),
    AggType.SUM: lambda agg: SumData(),
    AggType.DISTRIBUTION: lambda agg: DistributionData(bounds=agg.buckets),
    AggType.LAST_VALUE: lambda agg: LastValueData(),
}