from enum import Enum, IntEnum
from typing import List, NamedTuple, Optional, TypedDict

from eth_typing import ChecksumAddress
from hexbytes import HexBytes


class WithdrawalParams(NamedTuple):
    nonce: int
    sender: ChecksumAddress
    target: ChecksumAddress
    value: int
    gasLimit: int
    data: bytes


class Withdrawal(NamedTuple):
    """
    A withdrawal initiated on L2, as read from its `MessagePassed` event.

    - `tx_hash`: hash of the L2 transaction that called `initiateWithdrawal`.
    - `l2_block_number`: L2 block that includes that transaction.
    - `params`: the message, passed as-is to the portal.
    - `withdrawal_hash`: fingerprint of `params`, the key of every L1 record.
    """

    tx_hash: HexBytes
    l2_block_number: int
    params: WithdrawalParams
    withdrawal_hash: HexBytes


class GameSearchResult(TypedDict):
    index: int
    metadata: bytes
    timestamp: int
    root_claim: bytes
    extra_data: bytes


class FinalityAnchor(NamedTuple):
    """
    A claim on L1 about the L2 state at `l2_block_number`: an output proposal
    of the `L2OutputOracle` or a dispute game of the `DisputeGameFactory`.
    `index` is the output index or the game index respectively.
    """

    index: int
    l2_block_number: int
    root: bytes
    timestamp: int


class OutputRootProof(TypedDict):
    """
    - `version`: 32-byte proof format version (currently
    `b'\\x00' * 32`).
    - `state_root`: 32-byte post-state root of the L2 block.
    - `message_passer_storage_root`: 32-byte storage root of the
    `L2ToL1MessagePasser` contract in that block.
    - `latest_block_hash`: 32-byte canonical block hash.
    """

    version: bytes
    state_root: bytes
    message_passer_storage_root: bytes
    latest_block_hash: bytes


class ProveParams(NamedTuple):
    withdrawal: WithdrawalParams
    anchor_index: int
    output_root_proof: OutputRootProof
    withdrawal_proof: List[bytes]


class ProofRecord(NamedTuple):
    """
    `anchor` is the output root (legacy) or the dispute game proxy address
    (fault proofs). A zero `timestamp` means the withdrawal is unproven.
    """

    anchor: bytes | ChecksumAddress
    timestamp: int
    l2_output_index: Optional[int] = None

    @property
    def is_proven(self) -> bool:
        return self.timestamp != 0


class WithdrawalStatus(Enum):
    NOT_YET_PROVABLE = "not yet provable"
    PROVABLE_UNPROVEN = "provable, not proven"
    PROOF_INVALIDATED = "proof invalidated"
    PROVEN_WAITING_TIME_LOCK = "proven, waiting for the finalization period"
    READY_TO_FINALIZE = "ready to finalize"
    FINALIZED = "finalized"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    WithdrawalStatus.NOT_YET_PROVABLE: 0,
    WithdrawalStatus.PROVABLE_UNPROVEN: 1,
    WithdrawalStatus.PROOF_INVALIDATED: 1,
    WithdrawalStatus.PROVEN_WAITING_TIME_LOCK: 2,
    WithdrawalStatus.READY_TO_FINALIZE: 3,
    WithdrawalStatus.FINALIZED: 4,
}


class WithdrawalState(NamedTuple):
    status: WithdrawalStatus
    withdrawal: Withdrawal
    detail: str
    anchor: Optional[FinalityAnchor] = None
    proof: Optional[ProofRecord] = None
    finalization_period: Optional[int] = None
    now: Optional[int] = None
    estimated_wait: Optional[int] = None


class AdvanceAction(Enum):
    NONE = "none"
    PROVED = "proved"
    FINALIZED = "finalized"


class AdvanceResult(NamedTuple):
    state: WithdrawalState
    action: AdvanceAction
    message: str
    tx_hash: Optional[HexBytes] = None


class GameStatus(IntEnum):
    """`FaultDisputeGame.status()`"""

    IN_PROGRESS = 0
    CHALLENGER_WINS = 1
    DEFENDER_WINS = 2
