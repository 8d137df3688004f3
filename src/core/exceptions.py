class BaseUtilsError(Exception):
    """Base class for every error raised by the core package."""

    code = "BaseUtilsError"


class DisbursementError(BaseUtilsError):
    """A disbursement aborted; nothing it staged was committed."""

    code = "DisbursementError"


class WrongNetwork(DisbursementError):
    code = "WrongNetwork"


class LengthMismatch(DisbursementError):
    code = "LengthMismatch"


class InsufficientFunds(DisbursementError):
    code = "InsufficientFunds"


class InvalidRecipient(DisbursementError):
    code = "InvalidRecipient"


class TransferFailed(DisbursementError):
    code = "TransferFailed"


class ArithmeticOverflow(DisbursementError):
    code = "ArithmeticOverflow"


class LedgerError(BaseUtilsError):
    code = "LedgerError"


class InsufficientBalance(LedgerError):
    code = "InsufficientBalance"


class TransferRejected(LedgerError):
    """The receiving account declined the value."""

    code = "TransferRejected"


class DeploymentError(BaseUtilsError):
    code = "DeploymentError"
