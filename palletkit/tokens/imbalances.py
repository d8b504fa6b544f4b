"""Imbalance tokens that square up total issuance once they are settled."""

from __future__ import annotations

from collections.abc import Hashable
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from palletkit.tokens.ledger import Tokens

_I = TypeVar("_I", bound="_Imbalance")


class _Imbalance:
    """Funds created or destroyed without an equal and opposite entry yet."""

    _direction = 0

    def __init__(self, tokens: "Tokens", currency_id: Hashable, amount: int = 0) -> None:
        if amount < 0:
            raise ValueError(f"imbalance amount cannot be negative: {amount}")
        self.tokens = tokens
        self.currency_id = currency_id
        self._amount = amount
        self._live = True

    @classmethod
    def zero(cls: type[_I], tokens: "Tokens", currency_id: Hashable) -> _I:
        """An imbalance of nothing."""
        return cls(tokens, currency_id, 0)

    def __repr__(self) -> str:
        state = "" if self._live else ", consumed"
        return f"{type(self).__name__}({self.currency_id!r}, {self._amount}{state})"

    def _check_live(self) -> None:
        if not self._live:
            raise RuntimeError(f"{type(self).__name__} has already been consumed")

    def _check_compatible(self, other: "_Imbalance", expected: type) -> None:
        if not isinstance(other, expected):
            raise TypeError(f"expected {expected.__name__}, got {type(other).__name__}")
        if other.tokens is not self.tokens or other.currency_id != self.currency_id:
            raise ValueError("imbalances belong to different ledgers or currencies")
        other._check_live()

    def _opposite_type(self) -> type["_Imbalance"]:
        raise NotImplementedError

    def _forget(self) -> None:
        self._live = False

    def peek(self) -> int:
        """The amount this imbalance stands for."""
        self._check_live()
        return self._amount

    def drop_zero(self) -> bool:
        """Consume the imbalance if it is zero; return whether it was consumed."""
        self._check_live()
        if self._amount == 0:
            self._forget()
            return True
        return False

    def split(self: _I, amount: int) -> tuple[_I, _I]:
        """Consume this imbalance into one of at most `amount` and the remainder."""
        self._check_live()
        first = min(self._amount, max(amount, 0))
        second = self._amount - first
        self._forget()
        cls = type(self)
        return cls(self.tokens, self.currency_id, first), cls(self.tokens, self.currency_id, second)

    def merge(self: _I, other: _I) -> _I:
        """Absorb `other` into this imbalance and return this one."""
        self.subsume(other)
        return self

    def subsume(self, other: "_Imbalance") -> None:
        """Absorb `other` into this imbalance, consuming `other`."""
        self._check_live()
        self._check_compatible(other, type(self))
        self._amount = min(self._amount + other._amount, self.tokens.max_balance)
        other._forget()

    def offset(self, other: "_Imbalance") -> "_Imbalance | None":
        """Cancel against an opposite imbalance; return what is left, if anything."""
        self._check_live()
        opposite = self._opposite_type()
        self._check_compatible(other, opposite)
        a, b = self._amount, other._amount
        self._forget()
        other._forget()
        if a > b:
            return type(self)(self.tokens, self.currency_id, a - b)
        if b > a:
            return opposite(self.tokens, self.currency_id, b - a)
        return None

    def settle(self) -> None:
        """Square up total issuance with this imbalance; later calls do nothing."""
        if not self._live:
            return
        self._forget()
        self.tokens.adjust_total_issuance(self.currency_id, self._direction * self._amount)

    def __enter__(self: _I) -> _I:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.settle()


class PositiveImbalance(_Imbalance):
    """Funds created without an opposite entry; settling raises total issuance."""

    _direction = 1

    def __init__(self, tokens: "Tokens", currency_id: Hashable, amount: int = 0) -> None:
        super().__init__(tokens, currency_id, amount)

    @classmethod
    def zero(cls, tokens: "Tokens", currency_id: Hashable) -> "PositiveImbalance":
        return cls(tokens, currency_id, 0)

    def _opposite_type(self) -> type[_Imbalance]:
        return NegativeImbalance

    def peek(self) -> int:
        return super().peek()

    def drop_zero(self) -> bool:
        return super().drop_zero()

    def split(self, amount: int) -> tuple["PositiveImbalance", "PositiveImbalance"]:
        return super().split(amount)

    def merge(self, other: "PositiveImbalance") -> "PositiveImbalance":
        return super().merge(other)

    def subsume(self, other: "PositiveImbalance") -> None:
        super().subsume(other)

    def offset(self, other: "NegativeImbalance") -> _Imbalance | None:
        return super().offset(other)

    def settle(self) -> None:
        super().settle()

    def __enter__(self) -> "PositiveImbalance":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.settle()


class NegativeImbalance(_Imbalance):
    """Funds destroyed without an opposite entry; settling lowers total issuance."""

    _direction = -1

    def __init__(self, tokens: "Tokens", currency_id: Hashable, amount: int = 0) -> None:
        super().__init__(tokens, currency_id, amount)

    @classmethod
    def zero(cls, tokens: "Tokens", currency_id: Hashable) -> "NegativeImbalance":
        return cls(tokens, currency_id, 0)

    def _opposite_type(self) -> type[_Imbalance]:
        return PositiveImbalance

    def peek(self) -> int:
        return super().peek()

    def drop_zero(self) -> bool:
        return super().drop_zero()

    def split(self, amount: int) -> tuple["NegativeImbalance", "NegativeImbalance"]:
        return super().split(amount)

    def merge(self, other: "NegativeImbalance") -> "NegativeImbalance":
        return super().merge(other)

    def subsume(self, other: "NegativeImbalance") -> None:
        super().subsume(other)

    def offset(self, other: "PositiveImbalance") -> _Imbalance | None:
        return super().offset(other)

    def settle(self) -> None:
        super().settle()

    def __enter__(self) -> "NegativeImbalance":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.settle()