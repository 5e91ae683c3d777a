"""Core data types shared by queriers, merge strategies and failure strategies."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from operator import itemgetter
from typing import Self


class Labels:
    """An immutable set of label name/value pairs, kept sorted by name."""

    __slots__ = ("_pairs",)

    def __init__(self, pairs: Iterable[tuple[str, str]] | Mapping[str, str] = ()) -> None:
        items = pairs.items() if isinstance(pairs, Mapping) else pairs
        self._pairs: tuple[tuple[str, str], ...] = tuple(
            sorted(((str(name), str(value)) for name, value in items), key=itemgetter(0))
        )

    @classmethod
    def from_strings(cls, *args: str) -> Self:
        """Build labels from alternating names and values."""
        if len(args) % 2:
            raise ValueError("labels need an even number of strings")
        return cls(zip(args[::2], args[1::2]))

    def get(self, name: str) -> str:
        """Return the value of a label, or an empty string when it is absent."""
        return next((value for label, value in self._pairs if label == name), "")

    def to_dict(self) -> dict[str, str]:
        return dict(self._pairs)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Labels):
            return NotImplemented
        return self._pairs == other._pairs

    def __hash__(self) -> int:
        return hash(self._pairs)

    def __repr__(self) -> str:
        inner = ", ".join(f"{name}={value!r}" for name, value in self._pairs)
        return f"Labels({{{inner}}})"


def compare_labels(a: Labels, b: Labels) -> int:
    """Order two label sets pair by pair, then by length; returns -1, 0 or 1."""
    for (a_name, a_value), (b_name, b_value) in zip(a, b):
        if a_name != b_name:
            return -1 if a_name < b_name else 1
        if a_value != b_value:
            return -1 if a_value < b_value else 1
    return (len(a) > len(b)) - (len(a) < len(b))


class MatchType(enum.Enum):
    EQUAL = "="
    NOT_EQUAL = "!="
    REGEX = "=~"
    NOT_REGEX = "!~"


_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
}


def _escape_char(ch: str) -> str:
    if ch in _ESCAPES:
        return _ESCAPES[ch]
    if ch.isprintable():
        return ch
    code = ord(ch)
    if code < 0x80:
        return f"\\x{code:02x}"
    if code < 0x10000:
        return f"\\u{code:04x}"
    return f"\\U{code:08x}"


def _quote(text: str) -> str:
    return '"' + "".join(_escape_char(ch) for ch in text) + '"'


@dataclass(frozen=True)
class Matcher:
    """A label matcher such as ``job="api"`` or ``path=~"/v1/.*"``."""

    type: MatchType
    name: str
    value: str

    def __str__(self) -> str:
        return f"{self.name}{self.type.value}{_quote(self.value)}"


@dataclass(frozen=True)
class SamplePair:
    """A single datapoint: a millisecond timestamp and its value."""

    timestamp: int
    value: float


@dataclass
class Series:
    labels: Labels = field(default_factory=Labels)
    datapoints: list[SamplePair] = field(default_factory=list)


class Annotations(dict):
    """Warnings keyed by their message; two sets are equal when their messages are."""

    def add(self, error: Exception | None) -> Self:
        if error is not None:
            self[str(error)] = error
        return self

    def merge(self, other: Mapping[str, Exception] | None) -> Self:
        if other:
            self.update(other)
        return self

    def as_strings(self) -> list[str]:
        return list(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return self.keys() == other.keys()

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    __hash__ = None  # type: ignore[assignment]


@dataclass
class SeriesSet:
    """The outcome of a select: series, warnings and an optional error."""

    series: list[Series] = field(default_factory=list)
    annotations: Annotations = field(default_factory=Annotations)
    error: Exception | None = None

    def __iter__(self) -> Iterator[Series]:
        return iter(self.series)

    def __len__(self) -> int:
        return len(self.series)

    def warnings(self) -> Annotations:
        return self.annotations


@dataclass(frozen=True)
class SelectHints:
    """Time range (milliseconds) and step (milliseconds) of a select."""

    start: int = 0
    end: int = 0
    step: int = 0


class Querier(ABC):
    """Something that answers series and label queries.

    Label queries return ``(values, annotations)`` and raise on failure.
    """

    @abstractmethod
    def select(
        self, sort_series: bool, hints: SelectHints, matchers: Sequence[Matcher]
    ) -> SeriesSet: ...

    @abstractmethod
    def label_values(
        self, name: str, hints: object, matchers: Sequence[Matcher]
    ) -> tuple[list[str], Annotations]: ...

    @abstractmethod
    def label_names(
        self, hints: object, matchers: Sequence[Matcher]
    ) -> tuple[list[str], Annotations]: ...

    def close(self) -> None:
        """Release held resources; there are none by default."""

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()