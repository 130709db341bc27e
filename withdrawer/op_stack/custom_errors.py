from typing import Optional

from hexbytes import HexBytes


class OPStackError(Exception):
    """Base Exception for OP Stack withdrawal operations."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error
        # set by `Withdrawer` to the step that failed
        self.stage: Optional[str] = None


# CONFIGURATION


class ConfigError(OPStackError):
    """Raised for invalid user input, before any chain interaction"""

    pass


class InvalidNetworkError(ConfigError):
    """Raised when an unknown network or an incomplete custom network is specified"""

    pass


class SignerError(ConfigError):
    """Raised when no signer, more than one signer or an unusable signer is specified"""

    pass


# CHAIN ACCESS


class ChainClientError(OPStackError):
    """Raised when an RPC call fails or returns an unexpected response"""

    pass


class ContractCallReverted(ChainClientError):
    """Raised when a read-only contract call reverts"""

    pass


class ReceiptNotFound(ChainClientError):
    """Raised when a transaction has no receipt (yet)"""

    pass


# WITHDRAWAL STATE


class WithdrawalNotFound(OPStackError):
    """Raised when the L2 withdrawal transaction has no receipt"""

    pass


class WithdrawalExecutionFailed(OPStackError):
    """Raised when the L2 withdrawal transaction reverted"""

    pass


class MalformedWithdrawal(OPStackError):
    """Raised when the L2 transaction does not carry a valid `MessagePassed` event"""

    pass


class NotProvableYet(OPStackError):
    """Raised when no finality anchor on L1 covers the withdrawal's L2 block yet"""

    def __init__(
        self,
        message: str,
        withdrawal_block: int,
        anchor_block: Optional[int] = None,
        estimated_wait: Optional[int] = None,
    ):
        super().__init__(message)
        self.withdrawal_block = withdrawal_block
        self.anchor_block = anchor_block
        self.estimated_wait = estimated_wait


class WithdrawalUnproven(OPStackError):
    """Raised when a withdrawal hash is not proven"""

    pass


class ProofNotOldEnough(OPStackError):
    """Raised when the proof has not passed the finalization period"""

    def __init__(self, message: str, finalizable_at: int):
        super().__init__(message)
        self.finalizable_at = finalizable_at


class NotFinalizable(OPStackError):
    """Raised when the portal's `checkWithdrawal` rejects the finalization"""

    def __init__(
        self, message: str, reason: str, original_error: Optional[Exception] = None
    ):
        super().__init__(message, original_error)
        self.reason = reason


class ProofInvalidatedError(OPStackError):
    """Raised when the dispute game backing an existing proof is no longer valid"""

    pass


class WithdrawalCancelled(OPStackError):
    """Raised when the run was cancelled before a transaction was sent"""

    pass


# PROOFS


class ProofGenerationFailed(OPStackError):
    """Raised when the parameters for `proveWithdrawalTransaction` cannot be built"""

    pass


class InvalidRootClaim(ProofGenerationFailed):
    """Raised when the recomputed output root differs from the anchor's root"""

    pass


# TRANSACTIONS


class TransactionError(OPStackError):
    """Base for failures of a submitted L1 transaction"""

    def __init__(
        self,
        message: str,
        tx_hash: HexBytes,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error)
        self.tx_hash = tx_hash


class TransactionReverted(TransactionError):
    """Raised when the transaction was mined with a failure status"""

    pass


class ConfirmationTimeout(TransactionError):
    """Raised when no receipt showed up before the deadline"""

    pass


class ConfirmationCancelled(TransactionError):
    """Raised when the caller cancelled the confirmation wait"""

    pass
