"""Tagged stats recording: tags and their codec, measures, aggregations, views and the reporting worker."""

__version__ = "0.1.0"

__all__ = [
    "aggregation",
    "collector",
    "measures",
    "record",
    "tag_codec",
    "tags",
    "view",
    "worker",
]