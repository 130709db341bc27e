"""
Pytest configuration and shared fixtures.

Chain access is replaced by `FakeChainClient`, a `ChainClient` whose contract
calls are answered from a table keyed by function name. Contracts are real
web3.py contract objects built from the shipped ABIs; nothing ever reaches an
RPC endpoint.
"""

import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from eth_abi.abi import encode
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3

from withdrawer.op_stack.chain_client import ChainClient
from withdrawer.op_stack.custom_errors import ReceiptNotFound
from withdrawer.op_stack.messages import compute_withdrawal_hash
from withdrawer.op_stack.strategy import WithdrawalStrategy
from withdrawer.op_stack.types import (
    FinalityAnchor,
    ProofRecord,
    Withdrawal,
    WithdrawalParams,
)
from withdrawer.utils.config import L2_TO_L1_MESSAGE_PASSER, Network


SUBMITTER = to_checksum_address("0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266")
OTHER_SUBMITTER = to_checksum_address("0x70997970C51812dc3A010C7d01b50e0d17dc79C8")

WITHDRAWAL_TX_HASH = HexBytes("0x" + "ab" * 32)
WITHDRAWAL_BLOCK = 100
FINALIZATION_PERIOD = 604800

LEGACY_NETWORK = Network(
    name="test-legacy",
    l2_rpc="http://localhost:9545",
    portal_address=to_checksum_address("0x5b47E1A08Ea6d985D6649300584e6722Ec4B1383"),
    fault_proofs=False,
    l2oo_address=to_checksum_address("0xE6Dfba0953616Bacab0c9A8ecb3a9BBa77FC15c0"),
)

FAULT_PROOF_NETWORK = Network(
    name="test-fault-proofs",
    l2_rpc="http://localhost:9545",
    portal_address=to_checksum_address("0x49048044D57e1C92A77f79988d21Fa8fAF74E97e"),
    fault_proofs=True,
    dgf_address=to_checksum_address("0x43edB88C4B80fDD2AdFF2412A7BebF9dF42cB40e"),
)

MESSAGE_PASSED_TOPIC = Web3.keccak(
    text="MessagePassed(uint256,address,address,uint256,uint256,bytes,bytes32)"
)


class FakeChainClient(ChainClient):
    """
    `responses` maps a contract function name to its return value, to an
    exception to raise, or to a callable receiving the call arguments.
    `receipts` maps transaction hashes to receipts, or to a list of receipts
    (``None`` meaning "not found yet") consumed one lookup at a time.
    """

    def __init__(self, name: str = "L1") -> None:
        super().__init__(Web3(Web3.HTTPProvider("http://localhost:8545")), name)
        self.responses: Dict[str, Any] = {}
        self.receipts: Dict[bytes, Any] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.timestamp = 0
        self.nonce = 0
        self.sent: List[bytes] = []

    def call(self, function, block_identifier="latest"):
        self.calls.append((function.fn_name, tuple(function.args)))
        response = self.responses[function.fn_name]

        if isinstance(response, Exception):
            raise response

        if callable(response):
            return response(*function.args)

        return response

    def called(self, fn_name: str) -> List[tuple]:
        return [args for name, args in self.calls if name == fn_name]

    def latest_timestamp(self) -> int:
        return self.timestamp

    def get_transaction_receipt(self, tx_hash):
        receipt = self.receipts.get(bytes(tx_hash))

        if isinstance(receipt, list):
            receipt = receipt.pop(0) if len(receipt) > 1 else receipt[0]

        if isinstance(receipt, Exception):
            raise receipt

        if receipt is None:
            raise ReceiptNotFound(f"{self.name}: no receipt for {HexBytes(tx_hash).to_0x_hex()}")

        return receipt

    @property
    def chain_id(self) -> int:
        return 1

    def pending_nonce(self, address) -> int:
        return self.nonce


class FakeFunction:
    """Stands in for a bound `ContractFunction` in sender/driver tests."""

    def __init__(self, fn_name: str, *args) -> None:
        self.fn_name = fn_name
        self.args = args


class FakeStrategy(WithdrawalStrategy):
    """
    In-memory protocol variant; every read comes from an attribute so tests
    can move the withdrawal through its lifecycle.
    """

    anchor_name = "output proposal"

    def __init__(
        self,
        anchor: Optional[FinalityAnchor] = None,
        record: Optional[ProofRecord] = None,
        period: int = FINALIZATION_PERIOD,
        now: int = 0,
        finalized: bool = False,
        invalidation: Optional[str] = None,
        anchor_wait: Optional[int] = 3600,
    ) -> None:
        self.submitter = SUBMITTER
        self.anchor = anchor
        self.record = record or ProofRecord(anchor=b"\x00" * 32, timestamp=0)
        self.period = period
        self.now = now
        self.finalized = finalized
        self.invalidation = invalidation
        self.anchor_wait = anchor_wait
        self.built: List[str] = []

    def latest_anchor(self):
        return self.anchor

    def proven_withdrawal(self, withdrawal):
        return self.record

    def finalization_period(self):
        return self.period

    def estimated_anchor_wait(self):
        return self.anchor_wait

    def not_provable_message(self, withdrawal, anchor):
        return f"not provable: withdrawal block {withdrawal.l2_block_number}"

    def proof_invalidation(self, withdrawal, record):
        return self.invalidation

    def is_finalized(self, withdrawal):
        return self.finalized

    def l1_timestamp(self):
        return self.now

    def build_prove_transaction(self, withdrawal):
        self.check_provable(withdrawal)
        self.built.append("prove")
        return FakeFunction("proveWithdrawalTransaction", withdrawal.params)

    def build_finalize_transaction(self, withdrawal):
        self.check_finalizable(withdrawal)
        self.built.append("finalize")
        return FakeFunction("finalizeWithdrawalTransaction", withdrawal.params)


class FakeClock:
    """Monotonic clock advanced only by `FakeEvent.wait`."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class FakeEvent(threading.Event):
    """
    Cancellation event that advances a `FakeClock` instead of sleeping, and
    optionally sets itself after `cancel_after` waits.
    """

    def __init__(self, clock: FakeClock, cancel_after: Optional[int] = None) -> None:
        super().__init__()
        self.clock = clock
        self.cancel_after = cancel_after
        self.waits: List[float] = []

    def wait(self, timeout=None) -> bool:
        self.waits.append(timeout)
        self.clock.now += timeout or 0

        if self.cancel_after is not None and len(self.waits) >= self.cancel_after:
            self.set()

        return self.is_set()


def make_withdrawal_params(**overrides) -> WithdrawalParams:
    fields = {
        "nonce": (1 << 240) | 7,
        "sender": SUBMITTER,
        "target": SUBMITTER,
        "value": 10**15,
        "gasLimit": 21000,
        "data": b"",
    }
    fields.update(overrides)

    return WithdrawalParams(**fields)


def make_withdrawal(l2_block_number: int = WITHDRAWAL_BLOCK, **overrides) -> Withdrawal:
    params = make_withdrawal_params(**overrides)

    return Withdrawal(
        tx_hash=WITHDRAWAL_TX_HASH,
        l2_block_number=l2_block_number,
        params=params,
        withdrawal_hash=compute_withdrawal_hash(params),
    )


def make_message_passed_log(
    params: WithdrawalParams, withdrawal_hash: Optional[bytes] = None
) -> Dict[str, Any]:
    emitted_hash = withdrawal_hash or compute_withdrawal_hash(params)

    return {
        "address": L2_TO_L1_MESSAGE_PASSER,
        "topics": [
            HexBytes(MESSAGE_PASSED_TOPIC),
            HexBytes(encode(["uint256"], [params.nonce])),
            HexBytes(encode(["address"], [params.sender])),
            HexBytes(encode(["address"], [params.target])),
        ],
        "data": HexBytes(
            encode(
                ["uint256", "uint256", "bytes", "bytes32"],
                [params.value, params.gasLimit, params.data, bytes(emitted_hash)],
            )
        ),
        "blockNumber": WITHDRAWAL_BLOCK,
        "blockHash": HexBytes("0x" + "cd" * 32),
        "transactionHash": WITHDRAWAL_TX_HASH,
        "transactionIndex": 0,
        "logIndex": 0,
        "removed": False,
    }


def make_receipt(
    logs: Optional[List[Dict[str, Any]]] = None,
    status: int = 1,
    tx_hash: bytes = WITHDRAWAL_TX_HASH,
    block_number: int = WITHDRAWAL_BLOCK,
) -> Dict[str, Any]:
    return {
        "transactionHash": HexBytes(tx_hash),
        "blockNumber": block_number,
        "blockHash": HexBytes("0x" + "cd" * 32),
        "status": status,
        "logs": logs or [],
    }


def make_withdrawal_receipt(status: int = 1, **overrides) -> Dict[str, Any]:
    params = make_withdrawal_params(**overrides)

    return make_receipt([make_message_passed_log(params)], status=status)


@pytest.fixture
def withdrawal() -> Withdrawal:
    return make_withdrawal()


@pytest.fixture
def l1_client() -> FakeChainClient:
    return FakeChainClient("L1")


@pytest.fixture
def l2_client() -> FakeChainClient:
    client = FakeChainClient("L2")
    client.receipts[bytes(WITHDRAWAL_TX_HASH)] = make_withdrawal_receipt()
    return client


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def anchor_at() -> Callable[[int], FinalityAnchor]:
    def _anchor(l2_block_number: int, index: int = 3) -> FinalityAnchor:
        return FinalityAnchor(
            index=index,
            l2_block_number=l2_block_number,
            root=b"\x11" * 32,
            timestamp=1_700_000_000,
        )

    return _anchor
