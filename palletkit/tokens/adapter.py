"""Single-currency view over the multi-currency ledger, trading in imbalances."""

from __future__ import annotations

from collections.abc import Hashable

from palletkit.tokens.imbalances import NegativeImbalance, PositiveImbalance
from palletkit.tokens.ledger import BalanceStatus, Tokens, TokensError, TokensErrorKind


def _require_amount(value: int) -> None:
    if value < 0:
        raise ValueError(f"amount cannot be negative: {value}")


class CurrencyAdapter:
    """Presents one currency of a `Tokens` ledger as a stand-alone currency."""

    def __init__(self, tokens: Tokens, currency_id: Hashable) -> None:
        self.tokens = tokens
        self.currency_id = currency_id

    def _positive(self, amount: int = 0) -> PositiveImbalance:
        return PositiveImbalance(self.tokens, self.currency_id, amount)

    def _negative(self, amount: int = 0) -> NegativeImbalance:
        return NegativeImbalance(self.tokens, self.currency_id, amount)

    # Queries

    def total_balance(self, who: Hashable) -> int:
        """Free plus reserved balance of `who`."""
        return self.tokens.total_balance(self.currency_id, who)

    def can_slash(self, who: Hashable, value: int) -> bool:
        """Whether `value` can be slashed from the free balance of `who`."""
        return self.tokens.can_slash(self.currency_id, who, value)

    def total_issuance(self) -> int:
        """Total amount of the currency in existence."""
        return self.tokens.total_issuance(self.currency_id)

    def minimum_balance(self) -> int:
        """The existential deposit of the currency."""
        return self.tokens.minimum_balance(self.currency_id)

    def free_balance(self, who: Hashable) -> int:
        """Free balance of `who`."""
        return self.tokens.free_balance(self.currency_id, who)

    def reserved_balance(self, who: Hashable) -> int:
        """Reserved balance of `who`."""
        return self.tokens.reserved_balance(self.currency_id, who)

    # Issuance

    def burn(self, amount: int) -> PositiveImbalance:
        """Lower total issuance by up to `amount`; settling the result restores it."""
        _require_amount(amount)
        if amount == 0:
            return self._positive()
        amount = min(amount, self.total_issuance())
        self.tokens.adjust_total_issuance(self.currency_id, -amount)
        return self._positive(amount)

    def issue(self, amount: int) -> NegativeImbalance:
        """Raise total issuance by up to `amount`; settling the result lowers it again."""
        _require_amount(amount)
        if amount == 0:
            return self._negative()
        amount = min(amount, self.tokens.max_balance - self.total_issuance())
        self.tokens.adjust_total_issuance(self.currency_id, amount)
        return self._negative(amount)

    # Free balance

    def ensure_can_withdraw(self, who: Hashable, amount: int) -> None:
        """Raise unless `amount` can leave the free balance of `who`."""
        self.tokens.ensure_can_withdraw(self.currency_id, who, amount)

    def transfer(self, source: Hashable, dest: Hashable, value: int) -> None:
        """Move free balance from `source` to `dest`."""
        self.tokens.transfer(self.currency_id, source, dest, value)

    def slash(self, who: Hashable, value: int) -> tuple[NegativeImbalance, int]:
        """Slash free, then reserved balance; return the imbalance and the unslashed part."""
        _require_amount(value)
        if value == 0:
            return self._negative(), value

        account = self.tokens.account(who, self.currency_id)
        free_slashed = min(account.free, value)
        remaining = value - free_slashed
        if free_slashed:
            self.tokens.set_free_balance(self.currency_id, who, account.free - free_slashed)
        if remaining:
            reserved_slashed = min(account.reserved, remaining)
            remaining -= reserved_slashed
            self.tokens.set_reserved_balance(
                self.currency_id, who, account.reserved - reserved_slashed
            )
            return self._negative(free_slashed + reserved_slashed), remaining
        return self._negative(value), remaining

    def deposit_into_existing(self, who: Hashable, value: int) -> PositiveImbalance:
        """Add `value` to the free balance of `who`; issuance follows on settling."""
        _require_amount(value)
        if value == 0:
            return self._positive()
        new_total = self.free_balance(who) + value
        if new_total > self.tokens.max_balance:
            raise TokensError(TokensErrorKind.TOTAL_ISSUANCE_OVERFLOW)
        self.tokens.set_free_balance(self.currency_id, who, new_total)
        return self._positive(value)

    def deposit_creating(self, who: Hashable, value: int) -> PositiveImbalance:
        """Like `deposit_into_existing`, but a failure yields a zero imbalance."""
        try:
            return self.deposit_into_existing(who, value)
        except TokensError:
            return self._positive()

    def withdraw(self, who: Hashable, value: int) -> NegativeImbalance:
        """Take `value` from the free balance of `who`; issuance follows on settling."""
        _require_amount(value)
        if value == 0:
            return self._negative()
        self.tokens.ensure_can_withdraw(self.currency_id, who, value)
        self.tokens.set_free_balance(self.currency_id, who, self.free_balance(who) - value)
        return self._negative(value)

    def make_free_balance_be(
        self, who: Hashable, value: int
    ) -> PositiveImbalance | NegativeImbalance:
        """Set the free balance of `who` to `value` and return the resulting imbalance.

        A new account that would end up below the existential deposit is left
        alone, and a zero positive imbalance is returned.
        """
        _require_amount(value)
        account = self.tokens.account(who, self.currency_id)
        existed = self.tokens.has_account(who, self.currency_id)
        if value + account.reserved < self.minimum_balance() and not existed:
            return self._positive()
        if account.free <= value:
            imbalance: PositiveImbalance | NegativeImbalance = self._positive(value - account.free)
        else:
            imbalance = self._negative(account.free - value)
        self.tokens.set_free_balance(self.currency_id, who, value)
        return imbalance

    # Reserves

    def can_reserve(self, who: Hashable, value: int) -> bool:
        """Whether `value` could be moved from free to reserved balance."""
        return self.tokens.can_reserve(self.currency_id, who, value)

    def slash_reserved(self, who: Hashable, value: int) -> tuple[NegativeImbalance, int]:
        """Slash reserved balance; return a zero imbalance and the unslashed part."""
        remaining = self.tokens.slash_reserved(self.currency_id, who, value)
        return self._negative(), remaining

    def reserve(self, who: Hashable, value: int) -> None:
        """Move `value` from free to reserved balance."""
        self.tokens.reserve(self.currency_id, who, value)

    def unreserve(self, who: Hashable, value: int) -> int:
        """Move reserved back to free balance; return the part that could not be moved."""
        return self.tokens.unreserve(self.currency_id, who, value)

    def repatriate_reserved(
        self, slashed: Hashable, beneficiary: Hashable, value: int, status: BalanceStatus
    ) -> int:
        """Move reserved funds of `slashed` to `beneficiary`; return what could not be moved."""
        return self.tokens.repatriate_reserved(
            self.currency_id, slashed, beneficiary, value, status
        )

    # Locks

    def set_lock(self, lock_id: Hashable, who: Hashable, amount: int) -> None:
        """Set or replace the lock `lock_id` on `who`."""
        self.tokens.set_lock(lock_id, self.currency_id, who, amount)

    def extend_lock(self, lock_id: Hashable, who: Hashable, amount: int) -> None:
        """Raise the lock `lock_id` on `who` to at least `amount`."""
        self.tokens.extend_lock(lock_id, self.currency_id, who, amount)

    def remove_lock(self, lock_id: Hashable, who: Hashable) -> None:
        """Drop the lock `lock_id` on `who`."""
        self.tokens.remove_lock(lock_id, self.currency_id, who)