"""Multi-currency fungible token ledger with reserves, locks and dust handling."""

from __future__ import annotations

import copy
import enum
import logging
from collections.abc import Callable, Hashable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, TypeVar, Union

logger = logging.getLogger(__name__)

U64_MAX = 2**64 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1

MODULE_ACCOUNT_PREFIX = b"modl"
ACCOUNT_ID_LENGTH = 32
PALLET_ID_LENGTH = 8

R = TypeVar("R")


def module_account_id(pallet_id: bytes) -> bytes:
    """The 32-byte account id owned by the module with the 8-byte `pallet_id`."""
    pallet_id = bytes(pallet_id)
    if len(pallet_id) != PALLET_ID_LENGTH:
        raise ValueError(f"pallet id must be {PALLET_ID_LENGTH} bytes, got {len(pallet_id)}")
    return (MODULE_ACCOUNT_PREFIX + pallet_id).ljust(ACCOUNT_ID_LENGTH, b"\0")


def is_module_account_id(account_id: Any) -> bool:
    """Whether `account_id` is an account owned by a module."""
    if not isinstance(account_id, (bytes, bytearray, memoryview)):
        return False
    return bytes(account_id).startswith(MODULE_ACCOUNT_PREFIX)


class TokensErrorKind(enum.Enum):
    """Reasons a ledger operation can be refused."""

    BALANCE_TOO_LOW = "the balance is too low"
    BALANCE_OVERFLOW = "this operation would cause the balance to overflow"
    TOTAL_ISSUANCE_OVERFLOW = "this operation would cause total issuance to overflow"
    AMOUNT_INTO_BALANCE_FAILED = "cannot convert amount into balance"
    LIQUIDITY_RESTRICTIONS = "failed because of liquidity restrictions due to locking"
    STILL_HAS_ACTIVE_RESERVED = "account still has active reserved balance"


class TokensError(Exception):
    """Raised when a ledger operation fails; the state is left unchanged."""

    def __init__(self, kind: TokensErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind


class BalanceStatus(enum.Enum):
    """Where repatriated reserved funds end up on the beneficiary."""

    FREE = "free"
    RESERVED = "reserved"


@dataclass(frozen=True)
class BalanceLock:
    """A lock keeping the free balance from dropping below `amount`."""

    id: Hashable
    amount: int


@dataclass
class AccountData:
    """Balances held by one account in one currency."""

    free: int = 0
    reserved: int = 0
    frozen: int = 0

    @property
    def total(self) -> int:
        """Free plus reserved balance, ignoring any frozen part."""
        return self.free + self.reserved


@dataclass(frozen=True)
class Transferred:
    """Event recorded when a signed transfer succeeds."""

    currency_id: Hashable
    source: Hashable
    dest: Hashable
    amount: int


@dataclass(frozen=True)
class DustLost:
    """Event recorded when an account below the existential deposit is cleaned up."""

    who: Hashable
    currency_id: Hashable
    amount: int


class TransferDust:
    """Dust handler moving leftover balance to a fixed account."""

    def __init__(self, dest: Hashable) -> None:
        self.dest = dest

    def __call__(self, tokens: "Tokens", who: Hashable, currency_id: Hashable, amount: int) -> None:
        try:
            tokens.transfer(currency_id, who, self.dest, amount)
        except TokensError:
            # Leftover dust can still be recycled later.
            pass


class BurnDust:
    """Dust handler destroying leftover balance."""

    def __call__(self, tokens: "Tokens", who: Hashable, currency_id: Hashable, amount: int) -> None:
        try:
            tokens.withdraw(currency_id, who, amount)
        except TokensError:
            pass


DustHandler = Callable[["Tokens", Hashable, Hashable, int], None]
ExistentialDeposits = Union[Mapping[Hashable, int], Callable[[Hashable], int], None]


def _require_balance(value: int) -> None:
    if value < 0:
        raise ValueError(f"balance cannot be negative: {value}")


class Tokens:
    """In-memory multi-currency ledger of free, reserved and locked balances."""

    def __init__(
        self,
        existential_deposits: ExistentialDeposits = None,
        on_dust: DustHandler | None = None,
        max_balance: int = U64_MAX,
        min_amount: int = I64_MIN,
        max_amount: int = I64_MAX,
    ) -> None:
        if existential_deposits is None:
            self._existential_deposit: Callable[[Hashable], int] = lambda _currency: 0
        elif isinstance(existential_deposits, Mapping):
            deposits = dict(existential_deposits)
            self._existential_deposit = lambda currency: deposits.get(currency, 0)
        else:
            self._existential_deposit = existential_deposits
        self.on_dust: DustHandler = on_dust if on_dust is not None else BurnDust()
        self.max_balance = max_balance
        self.min_amount = min_amount
        self.max_amount = max_amount
        self.events: list[Transferred | DustLost] = []
        self._total_issuance: dict[Hashable, int] = {}
        self._accounts: dict[tuple[Hashable, Hashable], AccountData] = {}
        self._locks: dict[tuple[Hashable, Hashable], list[BalanceLock]] = {}
        self._providers: dict[Hashable, int] = {}
        self._consumers: dict[Hashable, int] = {}

    @classmethod
    def from_genesis(
        cls,
        endowed_accounts: Iterable[tuple[Hashable, Hashable, int]],
        existential_deposits: ExistentialDeposits = None,
        on_dust: DustHandler | None = None,
    ) -> "Tokens":
        """Build a ledger holding (account, currency, balance) endowments."""
        entries = list(endowed_accounts)
        if len({(who, currency) for who, currency, _ in entries}) != len(entries):
            raise ValueError("duplicate endowed accounts in genesis.")
        ledger = cls(existential_deposits, on_dust)
        for who, currency_id, balance in entries:
            if balance < ledger.minimum_balance(currency_id):
                raise ValueError(
                    "the balance of any account should always be more than existential deposit."
                )
            ledger.set_free_balance(currency_id, who, balance)
            issuance = ledger.total_issuance(currency_id) + balance
            if issuance > ledger.max_balance:
                raise ValueError("total issuance cannot overflow when building genesis")
            ledger._total_issuance[currency_id] = issuance
        return ledger

    # Views

    def minimum_balance(self, currency_id: Hashable) -> int:
        """The existential deposit of `currency_id`."""
        return self._existential_deposit(currency_id)

    def total_issuance(self, currency_id: Hashable) -> int:
        """Total amount of `currency_id` in existence."""
        return self._total_issuance.get(currency_id, 0)

    def account(self, who: Hashable, currency_id: Hashable) -> AccountData:
        """A copy of the balances of `who` in `currency_id`."""
        stored = self._accounts.get((who, currency_id))
        return replace(stored) if stored is not None else AccountData()

    def has_account(self, who: Hashable, currency_id: Hashable) -> bool:
        """Whether `who` has a stored account for `currency_id`."""
        return (who, currency_id) in self._accounts

    def locks(self, who: Hashable, currency_id: Hashable) -> list[BalanceLock]:
        """The locks on `who` in `currency_id`."""
        return list(self._locks.get((who, currency_id), ()))

    def providers(self, who: Hashable) -> int:
        """How many account entries keep `who` alive."""
        return self._providers.get(who, 0)

    def consumers(self, who: Hashable) -> int:
        """How many lock sets depend on `who`."""
        return self._consumers.get(who, 0)

    def total_balance(self, currency_id: Hashable, who: Hashable) -> int:
        return self.account(who, currency_id).total

    def free_balance(self, currency_id: Hashable, who: Hashable) -> int:
        return self.account(who, currency_id).free

    def reserved_balance(self, currency_id: Hashable, who: Hashable) -> int:
        return self.account(who, currency_id).reserved

    # Low-level mutation

    def _mutate_account(
        self,
        who: Hashable,
        currency_id: Hashable,
        fn: Callable[[AccountData, bool], R],
    ) -> R:
        key = (who, currency_id)
        stored = self._accounts.get(key)
        existed = stored is not None
        account = replace(stored) if existed else AccountData()
        result = fn(account, existed)

        dust = None
        total = account.total
        if total == 0:
            self._accounts.pop(key, None)
            exists = False
        else:
            if total < self.minimum_balance(currency_id) and not is_module_account_id(who):
                dust = total
            self._accounts[key] = account
            exists = True

        if existed and not exists:
            self._dec_providers(who)
        elif exists and not existed:
            self._inc_providers(who)

        if dust is not None:
            self.on_dust(self, who, currency_id, dust)
            self.events.append(DustLost(who, currency_id, dust))
        return result

    def _inc_providers(self, who: Hashable) -> None:
        self._providers[who] = self.providers(who) + 1

    def _dec_providers(self, who: Hashable) -> bool:
        providers = max(self.providers(who), 1)
        if providers == 1 and self.consumers(who) > 0:
            return False
        if providers == 1:
            self._providers.pop(who, None)
            self._consumers.pop(who, None)
        else:
            self._providers[who] = providers - 1
        return True

    def _inc_consumers(self, who: Hashable) -> bool:
        if self.providers(who) == 0:
            return False
        self._consumers[who] = self.consumers(who) + 1
        return True

    def _dec_consumers(self, who: Hashable) -> None:
        consumers = self.consumers(who)
        if consumers > 1:
            self._consumers[who] = consumers - 1
        else:
            self._consumers.pop(who, None)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        saved = (
            copy.deepcopy(self._accounts),
            copy.deepcopy(self._locks),
            dict(self._total_issuance),
            dict(self._providers),
            dict(self._consumers),
            list(self.events),
        )
        try:
            yield
        except BaseException:
            (
                self._accounts,
                self._locks,
                self._total_issuance,
                self._providers,
                self._consumers,
                self.events,
            ) = saved
            raise

    def set_free_balance(self, currency_id: Hashable, who: Hashable, amount: int) -> None:
        """Set the free balance; total issuance is left for the caller to keep."""

        def apply(account: AccountData, _existed: bool) -> None:
            account.free = amount

        self._mutate_account(who, currency_id, apply)

    def set_reserved_balance(self, currency_id: Hashable, who: Hashable, amount: int) -> None:
        """Set the reserved balance; total issuance is left for the caller to keep."""

        def apply(account: AccountData, _existed: bool) -> None:
            account.reserved = amount

        self._mutate_account(who, currency_id, apply)

    def adjust_total_issuance(self, currency_id: Hashable, delta: int) -> int:
        """Add `delta` to the total issuance, saturating at the bounds; return the new value."""
        issuance = min(max(self.total_issuance(currency_id) + delta, 0), self.max_balance)
        if issuance:
            self._total_issuance[currency_id] = issuance
        else:
            self._total_issuance.pop(currency_id, None)
        return issuance

    # Multi-currency operations

    def ensure_can_withdraw(self, currency_id: Hashable, who: Hashable, amount: int) -> None:
        """Raise unless `amount` can leave the free balance of `who`."""
        _require_balance(amount)
        if amount == 0:
            return
        new_balance = self.free_balance(currency_id, who) - amount
        if new_balance < 0:
            raise TokensError(TokensErrorKind.BALANCE_TOO_LOW)
        if new_balance < self.account(who, currency_id).frozen:
            raise TokensError(TokensErrorKind.LIQUIDITY_RESTRICTIONS)

    def transfer(self, currency_id: Hashable, from_: Hashable, to: Hashable, amount: int) -> None:
        """Move free balance from `from_` to `to`."""
        _require_balance(amount)
        if amount == 0 or from_ == to:
            return
        self.ensure_can_withdraw(currency_id, from_, amount)
        from_balance = self.free_balance(currency_id, from_)
        to_balance = self.free_balance(currency_id, to) + amount
        if to_balance > self.max_balance:
            raise TokensError(TokensErrorKind.BALANCE_OVERFLOW)
        self.set_free_balance(currency_id, from_, from_balance - amount)
        self.set_free_balance(currency_id, to, to_balance)

    def transfer_signed(
        self, sender: Hashable, dest: Hashable, currency_id: Hashable, amount: int
    ) -> None:
        """A transfer requested by `sender`, recorded as a `Transferred` event."""
        self.transfer(currency_id, sender, dest, amount)
        self.events.append(Transferred(currency_id, sender, dest, amount))

    def transfer_all(self, sender: Hashable, dest: Hashable, currency_id: Hashable) -> None:
        """Transfer the whole free balance of `sender` to `dest`."""
        balance = self.free_balance(currency_id, sender)
        self.transfer(currency_id, sender, dest, balance)
        self.events.append(Transferred(currency_id, sender, dest, balance))

    def deposit(self, currency_id: Hashable, who: Hashable, amount: int) -> None:
        """Create `amount` new funds in the free balance of `who`."""
        _require_balance(amount)
        if amount == 0:
            return
        issuance = self.total_issuance(currency_id) + amount
        if issuance > self.max_balance:
            raise TokensError(TokensErrorKind.TOTAL_ISSUANCE_OVERFLOW)
        self._total_issuance[currency_id] = issuance
        self.set_free_balance(currency_id, who, self.free_balance(currency_id, who) + amount)

    def withdraw(self, currency_id: Hashable, who: Hashable, amount: int) -> None:
        """Destroy `amount` from the free balance of `who`."""
        _require_balance(amount)
        if amount == 0:
            return
        self.ensure_can_withdraw(currency_id, who, amount)
        self.adjust_total_issuance(currency_id, -amount)
        self.set_free_balance(currency_id, who, self.free_balance(currency_id, who) - amount)

    def can_slash(self, currency_id: Hashable, who: Hashable, value: int) -> bool:
        """Whether `value` can be slashed from the free balance alone."""
        if value == 0:
            return True
        return self.free_balance(currency_id, who) >= value

    def slash(self, currency_id: Hashable, who: Hashable, amount: int) -> int:
        """Slash free, then reserved balance; return the part that could not be slashed."""
        _require_balance(amount)
        if amount == 0:
            return amount
        account = self.account(who, currency_id)
        free_slashed = min(account.free, amount)
        remaining = amount - free_slashed
        if free_slashed:
            self.set_free_balance(currency_id, who, account.free - free_slashed)
        if remaining:
            reserved_slashed = min(account.reserved, remaining)
            remaining -= reserved_slashed
            self.set_reserved_balance(currency_id, who, account.reserved - reserved_slashed)
        self.adjust_total_issuance(currency_id, -(amount - remaining))
        return remaining

    def update_balance(self, currency_id: Hashable, who: Hashable, by_amount: int) -> None:
        """Deposit a positive `by_amount` or withdraw the magnitude of a negative one."""
        if by_amount == 0:
            return
        if not self.min_amount <= by_amount <= self.max_amount:
            raise ValueError(f"amount out of range: {by_amount}")
        magnitude = self.max_amount if by_amount == self.min_amount else abs(by_amount)
        if magnitude > self.max_balance:
            raise TokensError(TokensErrorKind.AMOUNT_INTO_BALANCE_FAILED)
        if by_amount > 0:
            self.deposit(currency_id, who, magnitude)
        else:
            self.withdraw(currency_id, who, magnitude)

    # Locks

    def _update_locks(
        self, currency_id: Hashable, who: Hashable, locks: list[BalanceLock]
    ) -> None:
        frozen = max((lock.amount for lock in locks), default=0)

        def apply(account: AccountData, _existed: bool) -> None:
            account.frozen = frozen

        self._mutate_account(who, currency_id, apply)

        key = (who, currency_id)
        existed = key in self._locks
        if not locks:
            self._locks.pop(key, None)
            if existed:
                self._dec_consumers(who)
        else:
            self._locks[key] = list(locks)
            if not existed and not self._inc_consumers(who):
                logger.warning(
                    "Attempt to introduce lock consumer reference, yet no providers. "
                    "This is unexpected but should be safe."
                )

    def set_lock(self, lock_id: Hashable, currency_id: Hashable, who: Hashable, amount: int) -> None:
        """Set or replace the lock `lock_id`; a zero amount is a no-op."""
        _require_balance(amount)
        if amount == 0:
            return
        new_lock = BalanceLock(lock_id, amount)
        placed = False
        locks: list[BalanceLock] = []
        for lock in self.locks(who, currency_id):
            if lock.id != lock_id:
                locks.append(lock)
            elif not placed:
                locks.append(new_lock)
                placed = True
        if not placed:
            locks.append(new_lock)
        self._update_locks(currency_id, who, locks)

    def extend_lock(
        self, lock_id: Hashable, currency_id: Hashable, who: Hashable, amount: int
    ) -> None:
        """Raise the lock `lock_id` to at least `amount`, creating it if absent."""
        _require_balance(amount)
        if amount == 0:
            return
        placed = False
        locks: list[BalanceLock] = []
        for lock in self.locks(who, currency_id):
            if lock.id != lock_id:
                locks.append(lock)
            elif not placed:
                locks.append(BalanceLock(lock.id, max(lock.amount, amount)))
                placed = True
        if not placed:
            locks.append(BalanceLock(lock_id, amount))
        self._update_locks(currency_id, who, locks)

    def remove_lock(self, lock_id: Hashable, currency_id: Hashable, who: Hashable) -> None:
        """Drop the lock `lock_id`."""
        locks = [lock for lock in self.locks(who, currency_id) if lock.id != lock_id]
        self._update_locks(currency_id, who, locks)

    # Reserves

    def can_reserve(self, currency_id: Hashable, who: Hashable, value: int) -> bool:
        """Whether `value` could be moved from free to reserved balance."""
        if value == 0:
            return True
        try:
            self.ensure_can_withdraw(currency_id, who, value)
        except TokensError:
            return False
        return True

    def slash_reserved(self, currency_id: Hashable, who: Hashable, value: int) -> int:
        """Slash reserved balance; return the part that could not be slashed."""
        _require_balance(value)
        if value == 0:
            return value
        reserved = self.reserved_balance(currency_id, who)
        actual = min(reserved, value)
        self.set_reserved_balance(currency_id, who, reserved - actual)
        self.adjust_total_issuance(currency_id, -actual)
        return value - actual

    def reserve(self, currency_id: Hashable, who: Hashable, value: int) -> None:
        """Move `value` from the free to the reserved balance of `who`."""
        _require_balance(value)
        if value == 0:
            return
        self.ensure_can_withdraw(currency_id, who, value)
        account = self.account(who, currency_id)
        self.set_free_balance(currency_id, who, account.free - value)
        self.set_reserved_balance(currency_id, who, account.reserved + value)

    def unreserve(self, currency_id: Hashable, who: Hashable, value: int) -> int:
        """Move reserved back to free balance; return the part that could not be moved."""
        _require_balance(value)
        if value == 0:
            return value
        account = self.account(who, currency_id)
        actual = min(account.reserved, value)
        self.set_reserved_balance(currency_id, who, account.reserved - actual)
        self.set_free_balance(currency_id, who, account.free + actual)
        return value - actual

    def repatriate_reserved(
        self,
        currency_id: Hashable,
        slashed: Hashable,
        beneficiary: Hashable,
        value: int,
        status: BalanceStatus,
    ) -> int:
        """Move reserved funds of `slashed` to `beneficiary`; return what could not be moved."""
        _require_balance(value)
        if value == 0:
            return value
        if slashed == beneficiary:
            if status is BalanceStatus.FREE:
                return self.unreserve(currency_id, slashed, value)
            return max(value - self.reserved_balance(currency_id, slashed), 0)

        from_account = self.account(slashed, currency_id)
        to_account = self.account(beneficiary, currency_id)
        actual = min(from_account.reserved, value)
        if status is BalanceStatus.FREE:
            self.set_free_balance(currency_id, beneficiary, to_account.free + actual)
        else:
            self.set_reserved_balance(currency_id, beneficiary, to_account.reserved + actual)
        self.set_reserved_balance(currency_id, slashed, from_account.reserved - actual)
        return value - actual

    # Accounts

    def merge_account(self, source: Hashable, dest: Hashable) -> None:
        """Move every free balance of `source` to `dest`; all or nothing."""
        holdings = [
            (currency_id, replace(data))
            for (who, currency_id), data in self._accounts.items()
            if who == source
        ]
        with self._transaction():
            for currency_id, data in holdings:
                if data.reserved != 0:
                    raise TokensError(TokensErrorKind.STILL_HAS_ACTIVE_RESERVED)
                self.transfer(currency_id, source, dest, data.free)