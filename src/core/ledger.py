"""
In-process value ledger used as the execution environment of the component.

Every state change goes through ``Ledger.atomic()``: balance deltas, nonces and
code are staged on a ``PendingChanges`` journal and only applied, together with
a newly mined block, when the block exits without an exception.
"""
import time
from contextlib import contextmanager
from dataclasses import dataclass

from loguru import logger

from core.exceptions import InsufficientBalance, LedgerError, TransferRejected
from core.utils import derive_address, derive_hash, to_address

TX_BASE_GAS = 21_000
CREATE_GAS = 32_000
CODE_DEPOSIT_GAS = 200


@dataclass(frozen=True)
class Block:
    number: int
    timestamp: int


@dataclass(frozen=True)
class Receipt:
    transaction_hash: str
    block_number: int
    gas_used: int
    contract_address: str | None = None


class PendingChanges:
    """Staged effects of one atomic call."""

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger
        self.deltas: dict[str, int] = {}
        self.nonces: dict[str, int] = {}
        self.code: dict[str, object] = {}
        self.callbacks: list = []

    @property
    def block_number(self) -> int:
        """Number of the block this call lands in once committed."""
        return self._ledger.block.number + 1

    def balance_of(self, address: str) -> int:
        address = to_address(address)
        return self._ledger.balance_of(address) + self.deltas.get(address, 0)

    def increment_nonce(self, address: str) -> int:
        address = to_address(address)
        nonce = self.nonces.get(address, self._ledger.nonce_of(address))
        self.nonces[address] = nonce + 1
        return nonce

    def debit(self, address: str, amount: int):
        address = to_address(address)
        if amount < 0:
            raise LedgerError(f"Negative amount: {amount}")
        available = self.balance_of(address)
        if available < amount:
            raise InsufficientBalance(f"{address} holds {available}, needs {amount}")
        self.deltas[address] = self.deltas.get(address, 0) - amount

    def credit(self, address: str, amount: int):
        address = to_address(address)
        if amount < 0:
            raise LedgerError(f"Negative amount: {amount}")
        self.deltas[address] = self.deltas.get(address, 0) + amount

    def transfer(self, sender: str, recipient: str, amount: int, notify: bool = True):
        """
        Move value between accounts.

        :param sender: Account the value leaves
        :param recipient: Account the value arrives at
        :param amount: Value in wei
        :param notify: Run the recipient's receive hook, if it has one
        """
        sender, recipient = to_address(sender), to_address(recipient)
        snapshot = (dict(self.deltas), dict(self.nonces), dict(self.code), len(self.callbacks))
        self.debit(sender, amount)
        self.credit(recipient, amount)

        hook = self._ledger.receiver_of(recipient) if notify else None
        if hook is None:
            return
        try:
            accepted = hook(self, sender, amount)
        except Exception as exc:
            self._restore(snapshot)
            raise TransferRejected(f"{recipient} failed while receiving: {exc}") from exc
        if not accepted:
            self._restore(snapshot)
            raise TransferRejected(f"{recipient} declined {amount}")

    def set_code(self, address: str, contract):
        self.code[to_address(address)] = contract

    def on_commit(self, callback):
        self.callbacks.append(callback)

    def _restore(self, snapshot):
        deltas, nonces, code, callback_count = snapshot
        self.deltas, self.nonces, self.code = deltas, nonces, code
        del self.callbacks[callback_count:]


class Ledger:
    def __init__(self, chain_id: int, gas_price: int, genesis: dict[str, int] | None = None, clock=time.time):
        self.chain_id = chain_id
        self.gas_price = gas_price
        self._clock = clock
        self._balances: dict[str, int] = {}
        self._nonces: dict[str, int] = {}
        self._code: dict[str, object] = {}
        self._receivers: dict[str, object] = {}
        self._pending: PendingChanges | None = None
        self.block = Block(number=0, timestamp=int(clock()))

        for address, amount in (genesis or {}).items():
            self._balances[to_address(address)] = int(amount)

    def balance_of(self, address: str) -> int:
        return self._balances.get(to_address(address), 0)

    def nonce_of(self, address: str) -> int:
        return self._nonces.get(to_address(address), 0)

    def get_code(self, address: str):
        return self._code.get(to_address(address))

    def has_code(self, address: str) -> bool:
        return self.get_code(address) is not None

    def set_receiver(self, address: str, hook):
        """Register ``hook(pending, sender, amount) -> bool`` for value sent to ``address``."""
        self._receivers[to_address(address)] = hook

    def receiver_of(self, address: str):
        return self._receivers.get(to_address(address))

    @contextmanager
    def atomic(self):
        """
        Stage every change made inside the block and apply them all on exit.

        An exception discards the staged changes and propagates. Nested blocks join
        the outermost one.
        """
        if self._pending is not None:
            yield self._pending
            return

        pending = PendingChanges(self)
        self._pending = pending
        try:
            yield pending
        except Exception as exc:
            logger.debug(f"Discarding staged changes: {exc}")
            raise
        finally:
            self._pending = None
        self._commit(pending)

    def _commit(self, pending: PendingChanges):
        for address, delta in pending.deltas.items():
            self._balances[address] = self._balances.get(address, 0) + delta
        self._nonces.update(pending.nonces)
        self._code.update(pending.code)
        self.block = Block(
            number=self.block.number + 1,
            timestamp=max(self.block.timestamp, int(self._clock())),
        )
        for callback in pending.callbacks:
            callback()

    def send_value(self, sender: str, recipient: str, amount: int) -> Receipt:
        """Plain value transfer in its own atomic call; value calls are not metered."""
        sender, recipient = to_address(sender), to_address(recipient)
        with self.atomic() as pending:
            nonce = pending.increment_nonce(sender)
            pending.transfer(sender, recipient, amount)
            block_number = pending.block_number
        transaction_hash = derive_hash(b"call", bytes.fromhex(sender[2:]), nonce.to_bytes(32, "big"))
        return Receipt(transaction_hash=transaction_hash, block_number=block_number, gas_used=0)

    def estimate_create_gas(self, code_size: int) -> int:
        return TX_BASE_GAS + CREATE_GAS + CODE_DEPOSIT_GAS * code_size

    def create(self, deployer: str, factory, gas_limit: int, code_size: int = 0, gas_price: int | None = None) -> Receipt:
        """
        Create a component owned by a new account.

        :param deployer: Account paying for the creation
        :param factory: ``factory(ledger, address)`` building the component
        :param gas_limit: Maximum gas the creation may use
        :param code_size: Size of the component's code, drives the gas used
        :param gas_price: Price per gas unit, defaults to the ledger's

        :return: The receipt carrying the new component's address
        """
        deployer = to_address(deployer)
        gas_price = self.gas_price if gas_price is None else gas_price
        gas_used = self.estimate_create_gas(code_size)
        if gas_used > gas_limit:
            raise LedgerError(f"Out of gas: needs {gas_used}, limit {gas_limit}")

        with self.atomic() as pending:
            if pending.balance_of(deployer) < gas_limit * gas_price:
                raise InsufficientBalance(f"{deployer} cannot pay for {gas_limit} gas at {gas_price}")
            nonce = pending.increment_nonce(deployer)
            seed = (bytes.fromhex(deployer[2:]), nonce.to_bytes(32, "big"))
            address = derive_address(*seed)
            pending.debit(deployer, gas_used * gas_price)
            pending.set_code(address, factory(self, address))
            block_number = pending.block_number

        return Receipt(
            transaction_hash=derive_hash(b"create", *seed),
            block_number=block_number,
            gas_used=gas_used,
            contract_address=address,
        )
