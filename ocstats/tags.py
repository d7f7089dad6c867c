"""Tag keys, tag maps and their mutators, with context-local propagation."""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterator, Mapping, Optional, TypeVar

MAX_KEY_LENGTH = 255
_VALID_MIN = 0x20
_VALID_MAX = 0x7E

_INVALID_KEY_MESSAGE = (
    "invalid key name: only ASCII characters accepted; max length must be 255 characters"
)
_INVALID_VALUE_MESSAGE = "invalid value: max length must be 255 UTF-8 characters"

T = TypeVar("T")


class InvalidKeyNameError(ValueError):
    """Raised when a tag key name is empty, too long or not printable ASCII."""

    def __init__(self, message: str = _INVALID_KEY_MESSAGE) -> None:
        super().__init__(message)


class InvalidValueError(ValueError):
    """Raised when a tag value is longer than 255 bytes of UTF-8."""

    def __init__(self, message: str = _INVALID_VALUE_MESSAGE) -> None:
        super().__init__(message)


def _is_printable_ascii(text: str) -> bool:
    return all(_VALID_MIN <= ord(ch) <= _VALID_MAX for ch in text)


def check_key_name(name: str) -> bool:
    """Return True if name is a valid tag key name."""
    if not name or len(name.encode("utf-8")) > MAX_KEY_LENGTH:
        return False
    return _is_printable_ascii(name)


def check_value(value: str) -> bool:
    """Return True if value is a valid tag value."""
    return len(value.encode("utf-8")) <= MAX_KEY_LENGTH


@dataclass(frozen=True, order=True)
class Key:
    """A tag key, identified by its name."""

    name: str


def new_key(name: str) -> Key:
    """Create a key, raising InvalidKeyNameError for an invalid name."""
    if not check_key_name(name):
        raise InvalidKeyNameError()
    return Key(name)


class TTL(Enum):
    """How many hops a tag may propagate."""

    NO_PROPAGATION = 0
    UNLIMITED_PROPAGATION = -1


@dataclass(frozen=True)
class _Metadata:
    ttl: TTL = TTL.NO_PROPAGATION


Metadata = Callable[[_Metadata], _Metadata]


def with_ttl(ttl: TTL) -> Metadata:
    """Metadata option that sets the TTL of a tag."""

    def apply(meta: _Metadata) -> _Metadata:
        return replace(meta, ttl=ttl)

    return apply


def _create_metadata(options: tuple) -> _Metadata:
    if not options:
        return _Metadata(ttl=TTL.UNLIMITED_PROPAGATION)
    meta = _Metadata()
    for option in options:
        if option is not None:
            meta = option(meta)
    return meta


@dataclass(frozen=True)
class Tag:
    """A key and value pair."""

    key: Key
    value: str


@dataclass(frozen=True)
class _Entry:
    value: str
    meta: _Metadata


class TagMap:
    """A set of tags, each with a value and propagation metadata."""

    def __init__(
        self,
        tags: Optional[Mapping[Key, str]] = None,
        ttl: TTL = TTL.UNLIMITED_PROPAGATION,
    ) -> None:
        self._entries: dict[Key, _Entry] = {}
        for key, value in (tags or {}).items():
            self._entries[key] = _Entry(value, _Metadata(ttl=ttl))

    def value(self, key: Key) -> Optional[str]:
        """Return the value for key, or None if it is absent."""
        entry = self._entries.get(key)
        return None if entry is None else entry.value

    def ttl(self, key: Key) -> Optional[TTL]:
        """Return the TTL for key, or None if it is absent."""
        entry = self._entries.get(key)
        return None if entry is None else entry.meta.ttl

    def items(self) -> Iterator[tuple[Key, str]]:
        """Yield (key, value) pairs ordered by key name."""
        for key in sorted(self._entries):
            yield key, self._entries[key].value

    def __iter__(self) -> Iterator[Key]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TagMap):
            return NotImplemented
        return self._entries == other._entries

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        body = "".join(f"{{{key.name} {value}}}" for key, value in self.items())
        return "{ " + body + " }"

    def __repr__(self) -> str:
        return f"TagMap({str(self)})"

    def _insert(self, key: Key, value: str, meta: _Metadata) -> None:
        self._entries.setdefault(key, _Entry(value, meta))

    def _update(self, key: Key, value: str, meta: _Metadata) -> None:
        if key in self._entries:
            self._entries[key] = _Entry(value, meta)

    def _upsert(self, key: Key, value: str, meta: _Metadata) -> None:
        self._entries[key] = _Entry(value, meta)

    def _delete(self, key: Key) -> None:
        self._entries.pop(key, None)


@dataclass(frozen=True)
class Mutator:
    """A change applied to a tag map."""

    fn: Callable[[TagMap], TagMap]

    def mutate(self, tag_map: TagMap) -> TagMap:
        """Apply the change to tag_map and return it."""
        return self.fn(tag_map)


def _value_mutator(
    key: Key, value: str, options: tuple, action: Callable[[TagMap, Key, str, _Metadata], None]
) -> Mutator:
    def apply(tag_map: TagMap) -> TagMap:
        if not check_value(value):
            raise InvalidValueError()
        action(tag_map, key, value, _create_metadata(options))
        return tag_map

    return Mutator(apply)


def insert(key: Key, value: str, *args: Metadata) -> Mutator:
    """Mutator that sets key to value only if key is absent."""
    return _value_mutator(key, value, args, TagMap._insert)


def update(key: Key, value: str, *args: Metadata) -> Mutator:
    """Mutator that sets key to value only if key is present."""
    return _value_mutator(key, value, args, TagMap._update)


def upsert(key: Key, value: str, *args: Metadata) -> Mutator:
    """Mutator that sets key to value whether or not key is present."""
    return _value_mutator(key, value, args, TagMap._upsert)


def delete(key: Key) -> Mutator:
    """Mutator that removes key."""

    def apply(tag_map: TagMap) -> TagMap:
        tag_map._delete(key)
        return tag_map

    return Mutator(apply)


_current_tags: contextvars.ContextVar[Optional[TagMap]] = contextvars.ContextVar(
    "ocstats_current_tags", default=None
)

_FROM_CONTEXT = object()


def from_context() -> Optional[TagMap]:
    """Return the tag map of the current context, if any."""
    return _current_tags.get()


@contextmanager
def use_tags(tag_map: Optional[TagMap]) -> Iterator[Optional[TagMap]]:
    """Make tag_map the current tag map for the duration of the block."""
    token = _current_tags.set(tag_map)
    try:
        yield tag_map
    finally:
        _current_tags.reset(token)


def new_map(*args: Mutator, base: object = _FROM_CONTEXT) -> TagMap:
    """Build a new tag map from base (the current one by default) and mutators.

    Raises on the first invalid tag; no partial map is returned.
    """
    origin = from_context() if base is _FROM_CONTEXT else base
    result = TagMap()
    if origin is not None:
        if not isinstance(origin, TagMap):
            raise TypeError("base must be a TagMap or None")
        for key, entry in origin._entries.items():
            if not check_key_name(key.name):
                raise InvalidKeyNameError(f"key:{key.name!r}: {_INVALID_KEY_MESSAGE}")
            if not check_value(entry.value):
                raise InvalidValueError(
                    f"key:{key.name!r} value:{entry.value!r}: {_INVALID_VALUE_MESSAGE}"
                )
            result._insert(key, entry.value, entry.meta)
    for mutator in args:
        result = mutator.mutate(result)
    return result


def do(tag_map: Optional[TagMap], fn: Callable[[], T]) -> T:
    """Call fn with tag_map installed as the current tag map."""
    with use_tags(tag_map):
        return fn()