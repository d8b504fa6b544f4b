# palletkit

In-memory bookkeeping components for simulations, tests and small services. There
are no dependencies beyond the standard library.

| Module | What it holds |
| --- | --- |
| `palletkit.tokens.ledger` | `Tokens`, a multi-currency ledger of free, reserved and frozen balances |
| `palletkit.tokens.adapter` | `CurrencyAdapter`, a view of one currency of a `Tokens` ledger |
| `palletkit.tokens.imbalances` | `PositiveImbalance` and `NegativeImbalance`, which settle total issuance |
| `palletkit.nft` | `NonFungibleTokens`, classes of non-fungible tokens |
| `palletkit.rewards` | `RewardPools`, share-based reward pools |
| `palletkit.oracle` | `Oracle`, which collects operator feeds, and `DefaultCombineData` |
| `palletkit.oracle_rpc` | `OracleRpc`, query methods over an oracle client |

Each failing operation raises an exception and leaves the state as it was. The
exceptions are `TokensError`, `NftError` and `OracleError`, and each one carries a
`kind` enum (`TokensErrorKind`, `NftErrorKind`, `OracleErrorKind`) that names the
failure. Bad arguments, such as negative balances, raise `ValueError`.

## Installation

```
pip install palletkit
```

## Tokens

```python
from palletkit.tokens.ledger import Tokens, BurnDust, BalanceStatus
from palletkit.tokens.adapter import CurrencyAdapter

DOT = 1
tokens = Tokens.from_genesis(
    [("alice", DOT, 100), ("bob", DOT, 100)],
    existential_deposits={DOT: 2},
    on_dust=BurnDust(),
)
tokens.transfer(DOT, "alice", "bob", 50)
assert tokens.free_balance(DOT, "bob") == 150

tokens.reserve(DOT, "bob", 30)
assert tokens.repatriate_reserved(DOT, "bob", "alice", 40, BalanceStatus.FREE) == 10

tokens.set_lock(b"staking ", DOT, "alice", 60)   # free balance may not drop below 60
```

`Tokens` also provides these operations:

- `deposit`, `withdraw`, `slash` and `update_balance` (a signed amount).
- `reserve`, `unreserve` and `slash_reserved`.
- `set_lock`, `extend_lock` and `remove_lock`.
- `merge_account`, which is all or nothing.
- `transfer_signed` and `transfer_all`, which record `Transferred` events in `tokens.events`.

An account whose non-zero total falls below the currency's existential deposit is
handed to the dust handler, and a `DustLost` event is recorded. The built-in
handlers are `BurnDust()` and `TransferDust(dest)`. Accounts made with
`module_account_id(pallet_id)` never count as dust.

## Currency adapter and imbalances

`CurrencyAdapter(tokens, currency_id)` presents a single currency. Its `burn`,
`issue`, `slash`, `withdraw`, `deposit_into_existing`, `deposit_creating` and
`make_free_balance_be` methods return imbalance objects. When an imbalance is
settled, it adjusts total issuance. You settle it with `settle()` or by leaving a
`with` block:

```python
dot = CurrencyAdapter(tokens, DOT)
with dot.issue(20):
    assert dot.total_issuance() == 220
assert dot.total_issuance() == 200
```

Imbalances support `peek`, `split`, `merge`, `subsume`, `offset` and `drop_zero`.
An imbalance that has been consumed raises `RuntimeError` when it is used again.

## Non-fungible tokens

```python
from palletkit.nft import NonFungibleTokens

nft = NonFungibleTokens()
class_id = nft.create_class("alice", b"art")
token_id = nft.mint("bob", class_id, b"piece")
nft.transfer("bob", "alice", (class_id, token_id))
assert nft.is_owner("alice", (class_id, token_id))
nft.burn("alice", (class_id, token_id))
nft.destroy_class("alice", class_id)
```

## Reward pools

`RewardPools(payout)` calls `payout(who, pool_id, amount)` whenever rewards are
claimed. It provides these methods:

- `accumulate_reward` and `claim_rewards`.
- `add_share`, `remove_share` and `set_share`.
- `pool` and `share_and_withdrawn_reward`.

## Oracle

```python
from palletkit.oracle import Oracle, DefaultCombineData

oracle = Oracle(
    root_operator=4,
    clock=lambda: 12345,
    combine=DefaultCombineData(minimum_count=3, expires_in=600),
    members=[1, 2, 3],
)
oracle.feed_values(1, [(50, 1300)])
oracle.feed_values(2, [(50, 1000)])
oracle.feed_values(3, [(50, 1200)])
assert oracle.get(50).value == 1200   # median of the fresh values
oracle.on_finalize()                  # operators may feed again
```

Each operator may feed once between calls to `on_finalize`. `get` stores the value
it combines. `get_no_op` and `get_all_values` do not change the stored state.

`change_members_sorted` replaces the operators. It also drops the values that the
outgoing operators fed.

`OracleRpc(client)` answers `get_value` and `get_all_values` through a client
object. The client must provide `best_hash`, `get_value(at, provider_id, key)` and
`get_all_values(at, provider_id)`. If the client fails, `OracleRpc` raises
`OracleRpcError`, and its `to_dict()` method gives a JSON-RPC error object.

## What it does not do

- All state is held in memory. Nothing is persisted.
- `OracleRpc` is a set of plain methods. It does not listen on a network or parse
  JSON-RPC requests.
- There is no command-line interface.

## Running the tests

```
pip install -e .[test]
pytest
```