import pytest
from core.exceptions import InsufficientBalance, LedgerError, TransferRejected
from core.ledger import CODE_DEPOSIT_GAS, CREATE_GAS, TX_BASE_GAS, Ledger

SENDER = "0x1111111111111111111111111111111111111111"
ALICE = "0x2222222222222222222222222222222222222222"
BOB = "0x3333333333333333333333333333333333333333"


class Stub:
    def __init__(self, ledger, address):
        self.address = address


def test_genesis_addresses_are_normalized():
    ledger = Ledger(chain_id=1, gas_price=1, genesis={"0xabcdefabcdefabcdefabcdefabcdefabcdefabcd": 5})

    assert ledger.balance_of("0xABCDEFABCDEFABCDEFABCDEFABCDEFABCDEFABCD") == 5


def test_atomic_commit_applies_changes_and_mines_block(ledger):
    committed = []
    with ledger.atomic() as pending:
        pending.transfer(SENDER, ALICE, 10)
        pending.on_commit(lambda: committed.append(ledger.balance_of(ALICE)))
        assert pending.balance_of(ALICE) == 10
        assert ledger.balance_of(ALICE) == 0

    assert ledger.balance_of(ALICE) == 10
    assert ledger.block.number == 1
    assert committed == [10]


def test_atomic_exception_discards_changes(ledger):
    committed = []
    with pytest.raises(RuntimeError):
        with ledger.atomic() as pending:
            pending.transfer(SENDER, ALICE, 10)
            pending.on_commit(lambda: committed.append(True))
            raise RuntimeError("abort")

    assert ledger.balance_of(ALICE) == 0
    assert ledger.balance_of(SENDER) == 10**18
    assert ledger.block.number == 0
    assert committed == []


def test_nested_atomic_joins_outer(ledger):
    with ledger.atomic() as outer:
        outer.transfer(SENDER, ALICE, 1)
        with ledger.atomic() as inner:
            assert inner is outer
            inner.transfer(SENDER, BOB, 2)

    assert (ledger.balance_of(ALICE), ledger.balance_of(BOB)) == (1, 2)
    assert ledger.block.number == 1


def test_transfer_requires_staged_balance(ledger):
    with pytest.raises(InsufficientBalance):
        with ledger.atomic() as pending:
            pending.transfer(SENDER, ALICE, 10**18)
            pending.transfer(ALICE, BOB, 10**18 + 1)


def test_rejected_transfer_unwinds_only_itself(ledger):
    ledger.set_receiver(BOB, lambda pending, sender, amount: amount < 5)

    with ledger.atomic() as pending:
        pending.transfer(SENDER, ALICE, 3)
        with pytest.raises(TransferRejected):
            pending.transfer(SENDER, BOB, 7)
        pending.transfer(SENDER, BOB, 4)

    assert ledger.balance_of(ALICE) == 3
    assert ledger.balance_of(BOB) == 4
    assert ledger.balance_of(SENDER) == 10**18 - 7


def test_receive_hook_skipped_without_notify(ledger):
    ledger.set_receiver(BOB, lambda pending, sender, amount: False)

    with ledger.atomic() as pending:
        pending.transfer(SENDER, BOB, 1, notify=False)

    assert ledger.balance_of(BOB) == 1


def test_send_value(ledger):
    receipt = ledger.send_value(SENDER, ALICE, 42)

    assert receipt.block_number == 1
    assert receipt.transaction_hash.startswith("0x")
    assert ledger.balance_of(ALICE) == 42
    assert ledger.nonce_of(SENDER) == 1


def test_create_charges_gas_and_registers_code(ledger):
    gas = ledger.estimate_create_gas(100)
    assert gas == TX_BASE_GAS + CREATE_GAS + CODE_DEPOSIT_GAS * 100

    first = ledger.create(SENDER, Stub, gas_limit=gas, code_size=100)
    second = ledger.create(SENDER, Stub, gas_limit=gas, code_size=100)

    assert first.contract_address != second.contract_address
    assert first.transaction_hash != second.transaction_hash
    assert first.gas_used == gas
    assert ledger.has_code(first.contract_address)
    assert ledger.get_code(second.contract_address).address == second.contract_address
    assert ledger.balance_of(SENDER) == 10**18 - 2 * gas * ledger.gas_price
    assert ledger.nonce_of(SENDER) == 2


def test_create_out_of_gas(ledger):
    with pytest.raises(LedgerError):
        ledger.create(SENDER, Stub, gas_limit=TX_BASE_GAS, code_size=10)


def test_create_without_funds(ledger):
    with pytest.raises(InsufficientBalance):
        ledger.create(ALICE, Stub, gas_limit=10**6)

    assert ledger.nonce_of(ALICE) == 0
    assert ledger.block.number == 0
