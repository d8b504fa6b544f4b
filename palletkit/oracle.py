"""Oracle that collects values from authorised operators and combines them."""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Hashable, Protocol


@dataclass(frozen=True, order=True)
class TimestampedValue:
    """A fed value together with the moment it was fed."""

    value: Any
    timestamp: Any


class OracleErrorKind(enum.Enum):
    """Reasons a feed can be refused."""

    NO_PERMISSION = "sender does not have permission"
    ALREADY_FEEDED = "feeder has already fed in this block"


class OracleError(Exception):
    """Raised when a feed is refused; the state is left unchanged."""

    def __init__(self, kind: OracleErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind


@dataclass(frozen=True)
class NewFeedData:
    """Event recorded when an operator feeds values."""

    who: Hashable
    values: tuple[tuple[Any, Any], ...]


class CombineData(Protocol):
    """Strategy turning raw operator values into one combined value."""

    def combine_data(
        self,
        key: Any,
        values: list[TimestampedValue],
        prev_value: TimestampedValue | None,
        now: Any,
    ) -> TimestampedValue | None: ...


@dataclass(frozen=True)
class DefaultCombineData:
    """Median of the unexpired values, or the previous value if too few remain."""

    minimum_count: int
    expires_in: Any

    def combine_data(
        self,
        key: Any,
        values: Iterable[TimestampedValue],
        prev_value: TimestampedValue | None,
        now: Any,
    ) -> TimestampedValue | None:
        fresh = [v for v in values if v.timestamp + self.expires_in > now]
        if len(fresh) < self.minimum_count:
            return prev_value
        fresh.sort(key=lambda v: v.value)
        return fresh[len(fresh) // 2]


class Oracle:
    """Collects values per operator and key, and serves combined values."""

    def __init__(
        self,
        root_operator: Hashable,
        clock: Callable[[], Any],
        combine: CombineData,
        members: Iterable[Hashable] = (),
        on_new_data: Callable[[Hashable, Any, Any], None] | None = None,
    ) -> None:
        self.root_operator = root_operator
        self.clock = clock
        self.combine = combine
        self.on_new_data = on_new_data
        self.events: list[NewFeedData] = []
        self._members: list[Hashable] = sorted(set(members))
        self._raw_values: dict[Hashable, dict[Any, TimestampedValue]] = {}
        self._is_updated: set[Any] = set()
        self._values: dict[Any, TimestampedValue] = {}
        self._has_dispatched: set[Hashable] = set()

    # Feeding

    def feed_values(self, who: Hashable, values: Iterable[tuple[Any, Any]]) -> None:
        """Record `values` as (key, value) pairs fed by operator `who`."""
        values = tuple((key, value) for key, value in values)
        if who not in self._members and who != self.root_operator:
            raise OracleError(OracleErrorKind.NO_PERMISSION)
        if who in self._has_dispatched:
            raise OracleError(OracleErrorKind.ALREADY_FEEDED)
        self._has_dispatched.add(who)

        now = self.clock()
        raw = self._raw_values.setdefault(who, {})
        for key, value in values:
            raw[key] = TimestampedValue(value, now)
            self._is_updated.discard(key)
            if self.on_new_data is not None:
                self.on_new_data(who, key, value)
        self.events.append(NewFeedData(who, values))

    def feed_values_as_root(self, values: Iterable[tuple[Any, Any]]) -> None:
        """Feed `values` on behalf of the root operator account."""
        self.feed_values(self.root_operator, values)

    def feed_value(self, who: Hashable, key: Any, value: Any) -> None:
        """Feed a single value."""
        self.feed_values(who, [(key, value)])

    # Storage views

    def raw_values(self, who: Hashable, key: Any) -> TimestampedValue | None:
        """The value `who` last fed for `key`."""
        return self._raw_values.get(who, {}).get(key)

    def is_updated(self, key: Any) -> bool:
        """Whether the stored combined value for `key` is up to date."""
        return key in self._is_updated

    def values(self, key: Any) -> TimestampedValue | None:
        """The stored combined value for `key`, which may be stale."""
        return self._values.get(key)

    def members(self) -> tuple[Hashable, ...]:
        """The current operators, sorted."""
        return tuple(self._members)

    # Reading

    def read_raw_values(self, key: Any) -> list[TimestampedValue]:
        """Raw values for `key` from every member, then from the root operator."""
        feeders = [*self._members, self.root_operator]
        found = (self.raw_values(who, key) for who in feeders)
        return [value for value in found if value is not None]

    def _combined(self, key: Any) -> TimestampedValue | None:
        return self.combine.combine_data(
            key, self.read_raw_values(key), self.values(key), self.clock()
        )

    def get(self, key: Any) -> TimestampedValue | None:
        """The fresh combined value, storing it if it had to be recomputed."""
        if self.is_updated(key):
            return self._values.get(key)
        combined = self._combined(key)
        if combined is None:
            return None
        self._values[key] = combined
        self._is_updated.add(key)
        return combined

    def get_value(self, key: Any) -> Any | None:
        """The bare combined value for `key`, as `get` computes it."""
        timestamped = self.get(key)
        return None if timestamped is None else timestamped.value

    def get_no_op(self, key: Any) -> TimestampedValue | None:
        """The fresh combined value without changing any stored state."""
        if self.is_updated(key):
            return self.values(key)
        return self._combined(key)

    def get_all_values(self) -> list[tuple[Any, TimestampedValue | None]]:
        """Every key that has a stored combined value, with its fresh value."""
        return [(key, self.get_no_op(key)) for key in list(self._values)]

    # Block and membership hooks

    def on_finalize(self) -> None:
        """End the block: every operator may feed again."""
        self._has_dispatched.clear()

    def initialize_members(self, members: Sequence[Hashable]) -> None:
        """Set the initial operators; refuses if operators are already set."""
        if not members:
            return
        if self._members:
            raise RuntimeError("Members are already initialized!")
        self._members = sorted(set(members))

    def change_members_sorted(
        self,
        incoming: Sequence[Hashable],
        outgoing: Sequence[Hashable],
        new: Sequence[Hashable],
    ) -> None:
        """Replace the operators with `new`, dropping data fed by `outgoing`."""
        for removed in outgoing:
            self._raw_values.pop(removed, None)
        self._members = sorted(set(new))
        self._is_updated.clear()