import pytest

from palletkit.tokens.ledger import (
    AccountData,
    BalanceLock,
    BalanceStatus,
    BurnDust,
    DustLost,
    Tokens,
    TokensError,
    TokensErrorKind,
    TransferDust,
    Transferred,
    is_module_account_id,
    module_account_id,
)

DOT = 1
BTC = 2
ETH = 3
ALICE = bytes(32)
BOB = bytes([1]) * 32
TREASURY_ACCOUNT = bytes([2]) * 32
ID_1 = b"1       "
ID_2 = b"2       "
EXISTENTIAL_DEPOSITS = {BTC: 1, DOT: 2}
DUST_ACCOUNT = module_account_id(b"orml/dst")
U64_MAX = 2**64 - 1


def build(*endowed):
    return Tokens.from_genesis(endowed, EXISTENTIAL_DEPOSITS, TransferDust(DUST_ACCOUNT))


@pytest.fixture
def funded():
    return build((ALICE, DOT, 100), (BOB, DOT, 100))


def expect_error(kind, fn, *args):
    with pytest.raises(TokensError) as info:
        fn(*args)
    assert info.value.kind is kind


def test_minimum_balance():
    ledger = build()
    assert ledger.minimum_balance(BTC) == 1
    assert ledger.minimum_balance(DOT) == 2
    assert ledger.minimum_balance(ETH) == 0


def test_is_module_account_id():
    assert is_module_account_id(ALICE) is False
    assert is_module_account_id(BOB) is False
    assert is_module_account_id(TREASURY_ACCOUNT) is False
    assert is_module_account_id(DUST_ACCOUNT) is True
    assert is_module_account_id(42) is False


def test_module_account_id_layout():
    account = module_account_id(b"orml/dst")
    assert len(account) == 32
    assert account.startswith(b"modlorml/dst")
    assert account[12:] == bytes(20)
    with pytest.raises(ValueError):
        module_account_id(b"short")


def test_remove_dust():
    ledger = build()
    ledger.deposit(DOT, ALICE, 100)
    assert ledger.total_issuance(DOT) == 100
    assert ledger.has_account(ALICE, DOT)
    assert ledger.free_balance(DOT, ALICE) == 100
    assert ledger.providers(ALICE) == 1
    assert not ledger.has_account(DUST_ACCOUNT, DOT)
    assert ledger.free_balance(DOT, DUST_ACCOUNT) == 0
    assert ledger.providers(DUST_ACCOUNT) == 0

    ledger.withdraw(DOT, ALICE, 98)
    assert ledger.total_issuance(DOT) == 2
    assert ledger.has_account(ALICE, DOT)
    assert ledger.free_balance(DOT, ALICE) == 2
    assert ledger.providers(ALICE) == 1
    assert not ledger.has_account(DUST_ACCOUNT, DOT)

    ledger.withdraw(DOT, ALICE, 1)
    assert ledger.total_issuance(DOT) == 1
    assert not ledger.has_account(ALICE, DOT)
    assert ledger.free_balance(DOT, ALICE) == 0
    assert ledger.providers(ALICE) == 0

    assert ledger.has_account(DUST_ACCOUNT, DOT)
    assert ledger.free_balance(DOT, DUST_ACCOUNT) == 1
    assert ledger.providers(DUST_ACCOUNT) == 1
    assert DustLost(ALICE, DOT, 1) in ledger.events


def test_burn_dust_destroys_leftover():
    ledger = Tokens(EXISTENTIAL_DEPOSITS, BurnDust())
    ledger.deposit(DOT, ALICE, 3)
    ledger.withdraw(DOT, ALICE, 2)
    assert ledger.total_issuance(DOT) == 0
    assert not ledger.has_account(ALICE, DOT)
    assert ledger.events == [DustLost(ALICE, DOT, 1)]


def test_set_lock(funded):
    funded.set_lock(ID_1, DOT, ALICE, 10)
    assert funded.account(ALICE, DOT).frozen == 10
    assert len(funded.locks(ALICE, DOT)) == 1
    funded.set_lock(ID_1, DOT, ALICE, 50)
    assert funded.account(ALICE, DOT).frozen == 50
    assert len(funded.locks(ALICE, DOT)) == 1
    funded.set_lock(ID_2, DOT, ALICE, 60)
    assert funded.account(ALICE, DOT).frozen == 60
    assert len(funded.locks(ALICE, DOT)) == 2


def test_extend_lock(funded):
    funded.set_lock(ID_1, DOT, ALICE, 10)
    assert len(funded.locks(ALICE, DOT)) == 1
    assert funded.account(ALICE, DOT).frozen == 10
    funded.extend_lock(ID_1, DOT, ALICE, 20)
    assert len(funded.locks(ALICE, DOT)) == 1
    assert funded.account(ALICE, DOT).frozen == 20
    funded.extend_lock(ID_2, DOT, ALICE, 10)
    funded.extend_lock(ID_1, DOT, ALICE, 20)
    assert len(funded.locks(ALICE, DOT)) == 2
    assert BalanceLock(ID_1, 20) in funded.locks(ALICE, DOT)


def test_remove_lock(funded):
    funded.set_lock(ID_1, DOT, ALICE, 10)
    funded.set_lock(ID_2, DOT, ALICE, 20)
    assert len(funded.locks(ALICE, DOT)) == 2
    funded.remove_lock(ID_2, DOT, ALICE)
    assert funded.locks(ALICE, DOT) == [BalanceLock(ID_1, 10)]
    assert funded.account(ALICE, DOT).frozen == 10


def test_locks_count_as_consumers(funded):
    funded.set_lock(ID_1, DOT, ALICE, 10)
    assert funded.consumers(ALICE) == 1
    funded.remove_lock(ID_1, DOT, ALICE)
    assert funded.consumers(ALICE) == 0
    assert funded.locks(ALICE, DOT) == []


def test_frozen_can_limit_liquidity(funded):
    funded.set_lock(ID_1, DOT, ALICE, 90)
    expect_error(TokensErrorKind.LIQUIDITY_RESTRICTIONS, funded.transfer, DOT, ALICE, BOB, 11)
    assert funded.free_balance(DOT, ALICE) == 100
    funded.set_lock(ID_1, DOT, ALICE, 10)
    funded.transfer(DOT, ALICE, BOB, 11)
    assert funded.free_balance(DOT, ALICE) == 89


def test_can_reserve(funded):
    assert funded.can_reserve(DOT, ALICE, 0) is True
    assert funded.can_reserve(DOT, ALICE, 101) is False
    assert funded.can_reserve(DOT, ALICE, 100) is True


def test_reserve(funded):
    expect_error(TokensErrorKind.BALANCE_TOO_LOW, funded.reserve, DOT, ALICE, 101)
    funded.reserve(DOT, ALICE, 0)
    assert funded.free_balance(DOT, ALICE) == 100
    assert funded.reserved_balance(DOT, ALICE) == 0
    assert funded.total_balance(DOT, ALICE) == 100
    funded.reserve(DOT, ALICE, 50)
    assert funded.free_balance(DOT, ALICE) == 50
    assert funded.reserved_balance(DOT, ALICE) == 50
    assert funded.total_balance(DOT, ALICE) == 100


def test_unreserve(funded):
    assert funded.free_balance(DOT, ALICE) == 100
    assert funded.reserved_balance(DOT, ALICE) == 0
    assert funded.unreserve(DOT, ALICE, 0) == 0
    assert funded.unreserve(DOT, ALICE, 50) == 50
    funded.reserve(DOT, ALICE, 30)
    assert funded.free_balance(DOT, ALICE) == 70
    assert funded.reserved_balance(DOT, ALICE) == 30
    assert funded.unreserve(DOT, ALICE, 15) == 0
    assert funded.free_balance(DOT, ALICE) == 85
    assert funded.reserved_balance(DOT, ALICE) == 15
    assert funded.unreserve(DOT, ALICE, 30) == 15
    assert funded.free_balance(DOT, ALICE) == 100
    assert funded.reserved_balance(DOT, ALICE) == 0


def test_slash_reserved(funded):
    funded.reserve(DOT, ALICE, 50)
    assert funded.free_balance(DOT, ALICE) == 50
    assert funded.reserved_balance(DOT, ALICE) == 50
    assert funded.total_issuance(DOT) == 200
    assert funded.slash_reserved(DOT, ALICE, 0) == 0
    assert funded.free_balance(DOT, ALICE) == 50
    assert funded.reserved_balance(DOT, ALICE) == 50
    assert funded.total_issuance(DOT) == 200
    assert funded.slash_reserved(DOT, ALICE, 100) == 50
    assert funded.free_balance(DOT, ALICE) == 50
    assert funded.reserved_balance(DOT, ALICE) == 0
    assert funded.total_issuance(DOT) == 150


def test_repatriate_reserved(funded):
    assert funded.repatriate_reserved(DOT, ALICE, ALICE, 0, BalanceStatus.FREE) == 0
    assert funded.repatriate_reserved(DOT, ALICE, ALICE, 50, BalanceStatus.FREE) == 50
    assert funded.free_balance(DOT, ALICE) == 100
    assert funded.reserved_balance(DOT, ALICE) == 0

    funded.reserve(DOT, BOB, 50)
    assert funded.free_balance(DOT, BOB) == 50
    assert funded.reserved_balance(DOT, BOB) == 50
    assert funded.repatriate_reserved(DOT, BOB, BOB, 60, BalanceStatus.RESERVED) == 10
    assert funded.free_balance(DOT, BOB) == 50
    assert funded.reserved_balance(DOT, BOB) == 50

    assert funded.repatriate_reserved(DOT, BOB, ALICE, 30, BalanceStatus.RESERVED) == 0
    assert funded.free_balance(DOT, ALICE) == 100
    assert funded.reserved_balance(DOT, ALICE) == 30
    assert funded.free_balance(DOT, BOB) == 50
    assert funded.reserved_balance(DOT, BOB) == 20

    assert funded.repatriate_reserved(DOT, BOB, ALICE, 30, BalanceStatus.FREE) == 10
    assert funded.free_balance(DOT, ALICE) == 120
    assert funded.reserved_balance(DOT, ALICE) == 30
    assert funded.free_balance(DOT, BOB) == 50
    assert funded.reserved_balance(DOT, BOB) == 0


def test_slash_draws_reserved(funded):
    funded.reserve(DOT, ALICE, 50)
    assert funded.total_issuance(DOT) == 200
    assert funded.slash(DOT, ALICE, 80) == 0
    assert funded.free_balance(DOT, ALICE) == 0
    assert funded.reserved_balance(DOT, ALICE) == 20
    assert funded.total_issuance(DOT) == 120
    assert funded.slash(DOT, ALICE, 50) == 30
    assert funded.free_balance(DOT, ALICE) == 0
    assert funded.reserved_balance(DOT, ALICE) == 0
    assert funded.total_issuance(DOT) == 100


def test_genesis_issuance(funded):
    assert funded.free_balance(DOT, ALICE) == 100
    assert funded.free_balance(DOT, BOB) == 100
    assert funded.total_issuance(DOT) == 200
    assert funded.account(ALICE, DOT) == AccountData(free=100)


def test_genesis_rejects_duplicates_and_dust():
    with pytest.raises(ValueError):
        build((ALICE, DOT, 100), (ALICE, DOT, 50))
    with pytest.raises(ValueError):
        build((ALICE, DOT, 1))


def test_transfer_signed(funded):
    funded.transfer_signed(ALICE, BOB, DOT, 50)
    assert funded.free_balance(DOT, ALICE) == 50
    assert funded.free_balance(DOT, BOB) == 150
    assert funded.total_issuance(DOT) == 200
    assert Transferred(DOT, ALICE, BOB, 50) in funded.events

    events_before = list(funded.events)
    expect_error(TokensErrorKind.BALANCE_TOO_LOW, funded.transfer_signed, ALICE, BOB, DOT, 60)
    assert funded.events == events_before
    assert funded.free_balance(DOT, ALICE) == 50


def test_transfer_all(funded):
    funded.transfer_all(ALICE, BOB, DOT)
    assert funded.free_balance(DOT, ALICE) == 0
    assert funded.free_balance(DOT, BOB) == 200
    assert Transferred(DOT, ALICE, BOB, 100) in funded.events


def test_deposit(funded):
    funded.deposit(DOT, ALICE, 100)
    assert funded.free_balance(DOT, ALICE) == 200
    assert funded.total_issuance(DOT) == 300
    expect_error(TokensErrorKind.TOTAL_ISSUANCE_OVERFLOW, funded.deposit, DOT, ALICE, U64_MAX)
    assert funded.free_balance(DOT, ALICE) == 200
    assert funded.total_issuance(DOT) == 300


def test_withdraw(funded):
    funded.withdraw(DOT, ALICE, 50)
    assert funded.free_balance(DOT, ALICE) == 50
    assert funded.total_issuance(DOT) == 150
    expect_error(TokensErrorKind.BALANCE_TOO_LOW, funded.withdraw, DOT, ALICE, 60)
    assert funded.total_issuance(DOT) == 150


def test_slash(funded):
    assert funded.slash(DOT, ALICE, 50) == 0
    assert funded.free_balance(DOT, ALICE) == 50
    assert funded.total_issuance(DOT) == 150
    assert funded.slash(DOT, ALICE, 51) == 1
    assert funded.free_balance(DOT, ALICE) == 0
    assert funded.total_issuance(DOT) == 100


def test_update_balance(funded):
    funded.update_balance(DOT, ALICE, 50)
    assert funded.free_balance(DOT, ALICE) == 150
    assert funded.total_issuance(DOT) == 250
    funded.update_balance(DOT, BOB, -50)
    assert funded.free_balance(DOT, BOB) == 50
    assert funded.total_issuance(DOT) == 200
    expect_error(TokensErrorKind.BALANCE_TOO_LOW, funded.update_balance, DOT, BOB, -60)
    assert funded.free_balance(DOT, BOB) == 50


def test_ensure_can_withdraw(funded):
    expect_error(TokensErrorKind.BALANCE_TOO_LOW, funded.ensure_can_withdraw, DOT, ALICE, 101)
    funded.ensure_can_withdraw(DOT, ALICE, 1)
    assert funded.free_balance(DOT, ALICE) == 100


def test_no_op_if_amount_is_zero():
    ledger = build()
    ledger.ensure_can_withdraw(DOT, ALICE, 0)
    ledger.transfer_signed(ALICE, BOB, DOT, 0)
    ledger.transfer_signed(ALICE, ALICE, DOT, 0)
    ledger.deposit(DOT, ALICE, 0)
    ledger.withdraw(DOT, ALICE, 0)
    assert ledger.slash(DOT, ALICE, 0) == 0
    assert ledger.slash(DOT, ALICE, 1) == 1
    ledger.update_balance(DOT, ALICE, 0)
    assert ledger.free_balance(DOT, ALICE) == 0
    assert ledger.total_issuance(DOT) == 0
    assert not ledger.has_account(ALICE, DOT)


def test_merge_account():
    ledger = build((ALICE, DOT, 100), (ALICE, BTC, 200))
    assert ledger.free_balance(DOT, ALICE) == 100
    assert ledger.free_balance(BTC, ALICE) == 200
    assert ledger.free_balance(DOT, BOB) == 0

    ledger.reserve(DOT, ALICE, 1)
    expect_error(TokensErrorKind.STILL_HAS_ACTIVE_RESERVED, ledger.merge_account, ALICE, BOB)
    assert ledger.free_balance(BTC, ALICE) == 200
    assert ledger.free_balance(BTC, BOB) == 0
    ledger.unreserve(DOT, ALICE, 1)

    ledger.merge_account(ALICE, BOB)
    assert ledger.free_balance(DOT, ALICE) == 0
    assert ledger.free_balance(BTC, ALICE) == 0
    assert ledger.free_balance(DOT, BOB) == 100
    assert ledger.free_balance(BTC, BOB) == 200


def test_adjust_total_issuance_saturates(funded):
    assert funded.adjust_total_issuance(DOT, -500) == 0
    assert funded.total_issuance(DOT) == 0
    assert funded.adjust_total_issuance(DOT, U64_MAX + 10) == U64_MAX