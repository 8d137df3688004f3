from decimal import Decimal

from eth_utils import from_wei, is_hex_address, keccak, to_checksum_address
from loguru import logger

from core.exceptions import ArithmeticOverflow

UINT256_MAX = 2**256 - 1
NULL_ADDRESS = "0x0000000000000000000000000000000000000000"


def to_address(value: str) -> str:
    """
    Validate an account address and return its checksummed form.

    :param value: A 20 byte hex address, with or without checksum casing

    :return: The EIP-55 checksummed address
    """
    if not isinstance(value, str) or not is_hex_address(value):
        raise ValueError(f"Invalid address: {value!r}")
    return to_checksum_address(value)


def is_null_address(address: str | None) -> bool:
    if address is None:
        return True
    return to_address(address) == NULL_ADDRESS


def checked_add(a: int, b: int) -> int:
    result = a + b
    if result > UINT256_MAX:
        raise ArithmeticOverflow(f"{a} + {b} overflows uint256")
    return result


def checked_mul(a: int, b: int) -> int:
    result = a * b
    if result > UINT256_MAX:
        raise ArithmeticOverflow(f"{a} * {b} overflows uint256")
    return result


def checked_sum(amounts) -> int:
    """
    Sum unsigned amounts, failing instead of wrapping.

    :param amounts: Iterable of non-negative integers

    :return: The total, guaranteed to fit in uint256
    """
    total = 0
    for amount in amounts:
        if amount > UINT256_MAX:
            raise ArithmeticOverflow(f"Amount {amount} does not fit in uint256")
        total = checked_add(total, amount)
    return total


def format_ether(amount_in_wei: int) -> str:
    return format(Decimal(from_wei(amount_in_wei, "ether")).normalize(), "f")


def derive_address(*parts: bytes) -> str:
    """Derive a deterministic checksummed address from the keccak of the parts."""
    return to_checksum_address(keccak(b"".join(parts))[-20:])


def derive_hash(*parts: bytes) -> str:
    return "0x" + keccak(b"".join(parts)).hex()


def log_receipt(receipt):
    logger.info(f"Transaction included in block: {receipt.block_number}")
    logger.info(f"Transaction hash: {receipt.transaction_hash}")
    logger.info(f"Gas used: {receipt.gas_used}")
    if receipt.contract_address:
        logger.info(f"Contract created at: {receipt.contract_address}")
