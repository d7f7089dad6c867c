from datetime import datetime, timedelta

import pytest

from ocstats.aggregation import (
    AggType,
    Aggregation,
    CountData,
    DistributionData,
    Exemplar,
    LastValueData,
    SumData,
)


def _sample_distribution():
    dist = DistributionData(bounds=[1, 2, 3, 4])
    dist.count = 7
    dist.max = 11
    dist.min = 1
    dist.count_per_bucket = [0, 2, 3, 2]
    dist.mean = 4
    dist.sum_of_squared_dev = 1.2
    return dist


@pytest.mark.parametrize(
    "src",
    [CountData(5), _sample_distribution(), SumData(65.7)],
    ids=["count data", "distribution data", "sum data"],
)
def test_data_clone(src):
    got = src.clone()
    assert got == src
    assert got is not src


def test_distribution_clone_is_deep():
    dist = _sample_distribution()
    copy = dist.clone()
    copy.count_per_bucket[0] = 99
    assert dist.count_per_bucket == [0, 2, 3, 2]


def test_distribution_add_sample():
    dd = DistributionData(bounds=[1, 2])
    attachments1 = {"key1": "value1"}
    t1 = datetime(2020, 1, 1)
    dd.add_sample(0.5, attachments1, t1)

    e1 = Exemplar(0.5, t1, attachments1)
    assert dd.count == 1
    assert dd.count_per_bucket == [1, 0, 0]
    assert dd.exemplars_per_bucket == [e1, None, None]
    assert dd.max == 0.5
    assert dd.min == 0.5
    assert dd.mean == 0.5

    attachments2 = {"key2": "value2"}
    t2 = t1 + timedelta(microseconds=1)
    dd.add_sample(0.7, attachments2, t2)
    e2 = Exemplar(0.7, t2, attachments2)
    assert dd.count == 2
    assert dd.count_per_bucket == [2, 0, 0]
    assert dd.exemplars_per_bucket == [e2, None, None]
    assert dd.max == 0.7
    assert dd.min == 0.5
    assert dd.mean == 0.6

    attachments3 = {"key3": "value3"}
    t3 = t2 + timedelta(microseconds=1)
    dd.add_sample(1.2, attachments3, t3)
    e3 = Exemplar(1.2, t3, attachments3)
    assert dd.count == 3
    assert dd.count_per_bucket == [2, 1, 0]
    assert dd.exemplars_per_bucket == [e2, e3, None]
    assert dd.max == 1.2
    assert dd.min == 0.5
    assert dd.mean == 0.7999999999999999


def test_distribution_without_attachments_keeps_no_exemplar():
    dd = DistributionData(bounds=[2])
    dd.add_sample(1, None, None)
    dd.add_sample(5, {}, None)
    assert dd.exemplars_per_bucket == [None, None]
    assert dd.count_per_bucket == [1, 1]
    assert dd.mean == 3
    assert dd.sum_of_squared_dev == 8
    assert dd.sum() == 6
    assert dd.variance() == 8


def test_distribution_variance_of_single_sample_is_zero():
    dd = DistributionData(bounds=[])
    dd.add_sample(4, None, None)
    assert dd.count_per_bucket == [1]
    assert dd.variance() == 0


def test_distribution_equal_ignores_exemplars_and_tolerates_rounding():
    a = DistributionData(bounds=[2])
    b = DistributionData(bounds=[2])
    a.add_sample(1, {"k": "v"}, None)
    b.add_sample(1, None, None)
    assert a.equal(b)
    b.add_sample(5, None, None)
    assert not a.equal(b)
    assert not a.equal(CountData(1))


def test_count_data():
    data = CountData()
    for v in (3.0, -1.0, 10.0):
        data.add_sample(v, None, None)
    assert data.value == 3
    assert data.equal(CountData(3))
    assert not data.equal(SumData(3))


def test_sum_data_equal_within_epsilon():
    data = SumData()
    data.add_sample(5, None, None)
    data.add_sample(2.2, None, None)
    assert data.value == pytest.approx(7.2)
    assert data.equal(SumData(7.2 + 1e-6))
    assert not data.equal(SumData(7.3))


def test_last_value_data():
    data = LastValueData()
    data.add_sample(1.5, None, None)
    data.add_sample(5.4, None, None)
    assert data.value == 5.4
    assert data.equal(LastValueData(5.4))
    assert not data.equal(LastValueData(1.5))


def test_count_and_sum_are_shared():
    assert Aggregation.count() is Aggregation.count()
    assert Aggregation.sum() is Aggregation.sum()
    assert Aggregation.count().type is AggType.COUNT
    assert Aggregation.sum().type is AggType.SUM


@pytest.mark.parametrize(
    "agg, data_type",
    [
        (Aggregation.count(), CountData),
        (Aggregation.sum(), SumData),
        (Aggregation.last_value(), LastValueData),
        (Aggregation.distribution(1, 2), DistributionData),
    ],
)
def test_new_data_type(agg, data_type):
    data = agg.new_data()
    assert type(data) is data_type


def test_new_data_returns_fresh_instances():
    agg = Aggregation.count()
    first = agg.new_data()
    first.add_sample(1, None, None)
    assert agg.new_data().value == 0


def test_distribution_buckets():
    agg = Aggregation.distribution(5, 10)
    assert agg.type is AggType.DISTRIBUTION
    assert agg.buckets == [5.0, 10.0]
    data = agg.new_data()
    assert data.count_per_bucket == [0, 0, 0]
    data.add_sample(12, None, None)
    assert data.count_per_bucket == [0, 0, 1]


def test_new_data_rejects_none_type():
    with pytest.raises(ValueError):
        Aggregation(AggType.NONE).new_data()


@pytest.mark.parametrize(
    "agg_type, name",
    [
        (AggType.NONE, "None"),
        (AggType.COUNT, "Count"),
        (AggType.SUM, "Sum"),
        (AggType.DISTRIBUTION, "Distribution"),
        (AggType.LAST_VALUE, "LastValue"),
    ],
)
def test_agg_type_names(agg_type, name):
    assert str(agg_type) == name