# ocstats

`ocstats` records numeric measurements from a running program, breaks them
down by tags, and aggregates them into views. You can read the views back or
pass them to exporters.

## Concepts

- **Tags** (`ocstats.tags`): key/value pairs held in a `TagMap`.
  - `new_key(name)` makes a `Key`. The name must be printable ASCII and at
    most 255 characters. Any other name raises `InvalidKeyNameError`.
  - A value may be at most 255 bytes of UTF-8. A longer value raises
    `InvalidValueError` when the mutator is applied.
  - The mutators are `insert`, `update`, `upsert` and `delete`. Each of them
    takes optional metadata such as `with_ttl(TTL.NO_PROPAGATION)`.
  - `new_map(*mutators, base=...)` builds a new map from a base map. By
    default the base is the current map.
  - `use_tags(tag_map)` is a context manager that makes a map current.
    `from_context()` returns the current map. `do(tag_map, fn)` calls `fn`
    with `tag_map` installed as the current map.
- **Tag codec** (`ocstats.tag_codec`): `encode(tag_map)` and `decode(data)`
  convert a tag map to and from bytes.
  - Only tags whose TTL is `TTL.UNLIMITED_PROPAGATION` are encoded.
  - `decode_each(data, handler)` calls `handler(key, value)` for each tag.
  - Malformed input raises `TagDecodeError` or one of the tag validation
    errors.
- **Measures** (`ocstats.measures`): `int64(name, description, unit)` and
  `float64(name, description, unit)` create measures. Measures are
  registered by name, and the first registration under a name fixes its
  description and unit. A measure's `m(value)` returns a `Measurement`.
  Unit constants: `UNIT_DIMENSIONLESS`, `UNIT_BYTES`, `UNIT_MILLISECONDS`.
- **Aggregations** (`ocstats.aggregation`): there are four, each with its
  own data class.

  | Aggregation | Data class |
  | --- | --- |
  | `Aggregation.count()` | `CountData` |
  | `Aggregation.sum()` | `SumData` |
  | `Aggregation.distribution(*bounds)` | `DistributionData` |
  | `Aggregation.last_value()` | `LastValueData` |

  - `DistributionData` holds `count`, `min`, `max`, `mean`,
    `sum_of_squared_dev`, `count_per_bucket` and `exemplars_per_bucket`.
  - When a sample is recorded with attachments, it is kept as that bucket's
    `Exemplar`.
- **Views** (`ocstats.view`): a `View` ties a measure to an aggregation and
  a list of tag keys. Each distinct combination of tag values gets its own
  `Row`.
  - Registering a view fills in its name and description from the measure
    when they are empty.
  - It also sorts the tag keys and the bucket bounds.
  - It drops bounds of zero. Negative bounds raise
    `NegativeBucketBoundsError`.
- **Worker** (`ocstats.worker`): holds the registered views and takes in
  recorded measurements.
  - A background thread reports to exporters every reporting period. The
    default period is 10 seconds.
  - Importing the module starts a default worker. It also installs the
    recorder that `ocstats.record` uses.
  - The module-level functions act on that default worker:
    - `register`
    - `unregister`
    - `find`
    - `retrieve_data`
    - `set_reporting_period`
    - `reset_default_worker`
- **Recording** (`ocstats.record`): three functions record measurements.
  - `record(*measurements)`
  - `record_with_tags(mutators, *measurements)`
  - `record_with_options(measurements, mutators, attachments, tags)`

## Example

```python
from ocstats import measures, record, tags, worker
from ocstats.aggregation import Aggregation
from ocstats.view import View

latency = measures.float64("example.com/latency", "request latency", "ms")
method = tags.new_key("method")

worker.register(
    View(
        name="example.com/views/latency",
        measure=latency,
        aggregation=Aggregation.distribution(10, 50, 100),
        tag_keys=[method],
    )
)

with tags.use_tags(tags.new_map(tags.insert(method, "GET"))):
    record.record(latency.m(42.0))

for row in worker.retrieve_data("example.com/views/latency"):
    print(row.tags, row.data.count, row.data.count_per_bucket)
```

Recording does nothing until `ocstats.worker` has been imported. It also does
nothing unless a registered view has subscribed to the measure of at least
one of the measurements. Until then recording stays cheap.

## Exporting

To export collected data:

1. Write a subclass of `ocstats.view.Exporter` that implements
   `export_view(data)`. `data` is a `ViewData` with `view`, `start`, `end`
   and `rows`.
2. Pass an instance to `ocstats.view.register_exporter`.

`ocstats.worker.set_reporting_period(seconds)` changes how often data is
reported. A value of zero or less restores the default. When a view is
unregistered, its pending data is reported before it is removed.

## What it does not do

`ocstats` keeps all data in the process. It ships no exporters: it does not
send data to any monitoring backend, and it does not convert views to any
other metric format. `tags.do` only installs the tag map for the call. It
does not attach profiler labels.

## Running the tests

```
pip install -e .[test]
pytest
```