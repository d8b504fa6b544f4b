"""Reward pools that share accumulated rewards out in proportion to shares."""

from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass, replace

U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1
_FIXED_ONE = 10**18


@dataclass
class PoolInfo:
    """Totals of one reward pool."""

    total_shares: int = 0
    total_rewards: int = 0
    total_withdrawn_rewards: int = 0


def _proportion(numerator: int, denominator: int) -> int:
    """An 18-decimal fixed-point ratio, or zero when it cannot be formed."""
    if denominator == 0:
        return 0
    inner = numerator * _FIXED_ONE // denominator
    return inner if inner <= U128_MAX else 0


Payout = Callable[[Hashable, Hashable, int], None]


class RewardPools:
    """In-memory reward pools keyed by pool id, paying out through `payout`."""

    def __init__(
        self,
        payout: Payout | None = None,
        max_share: int = U64_MAX,
        max_balance: int = U64_MAX,
    ) -> None:
        self.payout = payout
        self.max_share = max_share
        self.max_balance = max_balance
        self.pools: dict[Hashable, PoolInfo] = {}
        self.shares: dict[tuple[Hashable, Hashable], tuple[int, int]] = {}

    def _mul_int(self, proportion: int, value: int) -> int:
        return min(proportion * value // _FIXED_ONE, self.max_balance)

    def _add_balance(self, a: int, b: int) -> int:
        return min(a + b, self.max_balance)

    def _add_share(self, a: int, b: int) -> int:
        return min(a + b, self.max_share)

    def _store_pool(self, pool_id: Hashable, info: PoolInfo) -> None:
        if info == PoolInfo():
            self.pools.pop(pool_id, None)
        else:
            self.pools[pool_id] = info

    def _store_share(self, pool_id: Hashable, who: Hashable, share: int, withdrawn: int) -> None:
        if share == 0 and withdrawn == 0:
            self.shares.pop((pool_id, who), None)
        else:
            self.shares[(pool_id, who)] = (share, withdrawn)

    def pool(self, pool_id: Hashable) -> PoolInfo:
        """A copy of the pool totals; an unknown pool is all zeros."""
        stored = self.pools.get(pool_id)
        return replace(stored) if stored is not None else PoolInfo()

    def share_and_withdrawn_reward(self, pool_id: Hashable, who: Hashable) -> tuple[int, int]:
        """The share of `who` in the pool and the rewards counted as withdrawn."""
        return self.shares.get((pool_id, who), (0, 0))

    def accumulate_reward(self, pool_id: Hashable, reward_increment: int) -> None:
        """Add rewards to the pool."""
        if reward_increment == 0:
            return
        info = self.pool(pool_id)
        info.total_rewards = self._add_balance(info.total_rewards, reward_increment)
        self._store_pool(pool_id, info)

    def add_share(self, who: Hashable, pool_id: Hashable, add_amount: int) -> None:
        """Give `who` more shares, inflating rewards so existing holders keep theirs."""
        if add_amount == 0:
            return
        info = self.pool(pool_id)
        proportion = _proportion(add_amount, info.total_shares)
        inflation = self._mul_int(proportion, info.total_rewards)

        info.total_shares = self._add_share(info.total_shares, add_amount)
        info.total_rewards = self._add_balance(info.total_rewards, inflation)
        info.total_withdrawn_rewards = self._add_balance(info.total_withdrawn_rewards, inflation)
        self._store_pool(pool_id, info)

        share, withdrawn = self.share_and_withdrawn_reward(pool_id, who)
        self._store_share(
            pool_id,
            who,
            self._add_share(share, add_amount),
            self._add_balance(withdrawn, inflation),
        )

    def remove_share(self, who: Hashable, pool_id: Hashable, remove_amount: int) -> None:
        """Claim pending rewards, then take up to `remove_amount` shares from `who`."""
        if remove_amount == 0:
            return
        self.claim_rewards(who, pool_id)

        share, withdrawn = self.share_and_withdrawn_reward(pool_id, who)
        remove_amount = min(remove_amount, share)
        if remove_amount == 0:
            return

        info = self.pool(pool_id)
        proportion = _proportion(remove_amount, share)
        to_remove = self._mul_int(proportion, withdrawn)
        info.total_shares = max(info.total_shares - remove_amount, 0)
        info.total_rewards = max(info.total_rewards - to_remove, 0)
        info.total_withdrawn_rewards = max(info.total_withdrawn_rewards - to_remove, 0)
        self._store_pool(pool_id, info)

        self._store_share(
            pool_id, who, max(share - remove_amount, 0), max(withdrawn - to_remove, 0)
        )

    def set_share(self, who: Hashable, pool_id: Hashable, new_share: int) -> None:
        """Add or remove shares so that `who` holds `new_share`."""
        share, _ = self.share_and_withdrawn_reward(pool_id, who)
        if new_share > share:
            self.add_share(who, pool_id, new_share - share)
        else:
            self.remove_share(who, pool_id, share - new_share)

    def claim_rewards(self, who: Hashable, pool_id: Hashable) -> None:
        """Pay `who` the rewards its share has earned and not yet withdrawn."""
        share, withdrawn = self.share_and_withdrawn_reward(pool_id, who)
        if share == 0:
            return
        info = self.pool(pool_id)
        proportion = _proportion(share, info.total_shares)
        earned = max(self._mul_int(proportion, info.total_rewards) - withdrawn, 0)
        available = max(info.total_rewards - info.total_withdrawn_rewards, 0)
        reward = min(earned, available)
        if reward == 0:
            return

        info.total_withdrawn_rewards = self._add_balance(info.total_withdrawn_rewards, reward)
        self._store_pool(pool_id, info)
        self._store_share(pool_id, who, share, self._add_balance(withdrawn, reward))
        if self.payout is not None:
            self.payout(who, pool_id, reward)