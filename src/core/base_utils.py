"""
BaseUtils: batch disbursement and read-only helpers for a designated network.

A disbursement runs inside one ``Ledger.atomic()`` call. The supplied value is
reserved from the caller first, each transfer is staged in order, and audit
events reach the subscribed sinks only once the whole batch has committed.
"""
from dataclasses import dataclass, field

from loguru import logger

from core.audit import BATCH_TRANSFER, DEPOSIT, AuditEvent, AuditSink, AuditTrail
from core.exceptions import (
    ArithmeticOverflow,
    InsufficientBalance,
    InsufficientFunds,
    InvalidRecipient,
    LedgerError,
    LengthMismatch,
    TransferFailed,
    WrongNetwork,
)
from core.ledger import Ledger
from core.utils import UINT256_MAX, checked_mul, checked_sum, is_null_address, to_address


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    chain_id: int
    bridge_address: str
    rpc_url: str

    def __post_init__(self):
        object.__setattr__(self, "bridge_address", to_address(self.bridge_address))

    @classmethod
    def from_settings(cls, settings) -> "NetworkConfig":
        return cls(
            name=settings.network_name,
            chain_id=settings.chain_id,
            bridge_address=settings.bridge_address,
            rpc_url=settings.rpc_url,
        )


@dataclass(frozen=True)
class NetworkInfo:
    chain_id: int
    bridge: str
    block_number: int
    timestamp: int


@dataclass(frozen=True)
class TransferRequest:
    recipients: tuple = field(default_factory=tuple)
    amounts: tuple = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "recipients", tuple(self.recipients))
        object.__setattr__(self, "amounts", tuple(self.amounts))
        for amount in self.amounts:
            if not isinstance(amount, int) or amount < 0:
                raise ValueError(f"Amounts must be unsigned integers, got {amount!r}")

    @classmethod
    def from_pairs(cls, pairs) -> "TransferRequest":
        pairs = list(pairs)
        return cls(recipients=[r for r, _ in pairs], amounts=[a for _, a in pairs])

    def pairs(self):
        return zip(self.recipients, self.amounts, strict=True)


@dataclass(frozen=True)
class DisbursementContext:
    sender: str
    supplied_value: int
    chain_id: int

    def __post_init__(self):
        if not isinstance(self.supplied_value, int) or self.supplied_value < 0:
            raise ValueError(f"Supplied value must be an unsigned integer, got {self.supplied_value!r}")


class BaseUtils:
    CONTRACT_NAME = "BaseUtils"
    CODE_SIZE = 2_048

    def __init__(self, ledger: Ledger, address: str, network: NetworkConfig, sinks=()):
        self.ledger = ledger
        self.address = to_address(address)
        self.network = network
        self.audit_trail = AuditTrail()
        self._sinks: list[AuditSink] = [self.audit_trail, *sinks]
        ledger.set_receiver(self.address, self._on_receive)

    @classmethod
    def factory(cls, network: NetworkConfig, sinks=()):
        """Return a ``Ledger.create`` factory building this component."""
        def build(ledger, address):
            return cls(ledger, address, network, sinks=sinks)

        return build

    def subscribe(self, sink: AuditSink):
        self._sinks.append(sink)

    def context(self, sender: str, supplied_value: int) -> DisbursementContext:
        return DisbursementContext(sender=sender, supplied_value=supplied_value, chain_id=self.ledger.chain_id)

    def batch_transfer(self, request: TransferRequest, context: DisbursementContext) -> tuple[AuditEvent, ...]:
        """
        Send ``amounts[i]`` to ``recipients[i]`` for every ``i``, all or nothing.

        :param request: Recipients and amounts, in transfer order
        :param context: Caller, attached value and chain identity of the call

        :return: The audit events of the committed transfers, in input order
        """
        for chain_id in (context.chain_id, self.ledger.chain_id):
            if chain_id != self.network.chain_id:
                raise WrongNetwork(f"Expected chain {self.network.chain_id}, running on {chain_id}")
        if len(request.recipients) != len(request.amounts):
            raise LengthMismatch(
                f"{len(request.recipients)} recipients but {len(request.amounts)} amounts"
            )
        if context.supplied_value > UINT256_MAX:
            raise ArithmeticOverflow(f"Supplied value {context.supplied_value} does not fit in uint256")
        total = checked_sum(request.amounts)
        if total > context.supplied_value:
            raise InsufficientFunds(f"Batch needs {total}, only {context.supplied_value} supplied")
        try:
            sender = to_address(context.sender)
        except ValueError as exc:
            raise TransferFailed(f"Caller is not an address: {exc}") from exc

        events = []
        with self.ledger.atomic() as pending:
            try:
                pending.transfer(sender, self.address, context.supplied_value, notify=False)
            except InsufficientBalance as exc:
                raise InsufficientFunds(f"Caller cannot supply {context.supplied_value}: {exc}") from exc

            for index, (recipient, amount) in enumerate(request.pairs()):
                try:
                    recipient = to_address(recipient)
                except ValueError as exc:
                    raise InvalidRecipient(f"Recipient {index} is not an address: {exc}") from exc
                if is_null_address(recipient):
                    raise InvalidRecipient(f"Recipient {index} is the null address")
                try:
                    pending.transfer(self.address, recipient, amount)
                except LedgerError as exc:
                    raise TransferFailed(f"Transfer {index} of {amount} to {recipient} failed: {exc}") from exc
                events.append(AuditEvent(recipient, BATCH_TRANSFER, amount, pending.block_number))

            pending.on_commit(lambda: self._publish(events))

        logger.info(f"Disbursed {total} wei to {len(events)} recipients from {sender}")
        return tuple(events)

    def calculate_gas_cost(self, gas_used: int, gas_price: int) -> int:
        if gas_used < 0 or gas_price < 0:
            raise ValueError("Gas used and gas price must be unsigned")
        return checked_mul(gas_used, gas_price)

    def get_balance(self) -> int:
        return self.ledger.balance_of(self.address)

    def get_network_info(self) -> NetworkInfo:
        block = self.ledger.block
        return NetworkInfo(
            chain_id=self.network.chain_id,
            bridge=self.network.bridge_address,
            block_number=block.number,
            timestamp=block.timestamp,
        )

    def _on_receive(self, pending, sender: str, amount: int) -> bool:
        event = AuditEvent(to_address(sender), DEPOSIT, amount, pending.block_number)
        pending.on_commit(lambda: self._publish([event]))
        return True

    def _publish(self, events):
        # Runs after commit; a failing sink must not turn a committed call into an error.
        for sink in self._sinks:
            try:
                sink.publish(events)
            except Exception:
                logger.exception(f"Audit sink {sink!r} failed to publish {len(events)} events")
