"""
Withdrawal messages as emitted by the `L2ToL1MessagePasser` predeploy.
"""

from eth_abi.abi import encode
from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.logs import DISCARD
from web3.types import TxReceipt

from .custom_errors import MalformedWithdrawal
from .types import Withdrawal, WithdrawalParams


WITHDRAWAL_TYPES = ["uint256", "address", "address", "uint256", "uint256", "bytes"]


def compute_withdrawal_hash(withdrawal_params: WithdrawalParams) -> HexBytes:
    """
    `keccak256(abi.encode(nonce, sender, target, value, gasLimit, data))`,
    the key under which L1 stores proofs and finalizations of a withdrawal.
    """
    return HexBytes(Web3.keccak(encode(WITHDRAWAL_TYPES, list(withdrawal_params))))


def get_storage_slot(withdrawal_hash: bytes) -> HexBytes:
    """
    Storage slot of `sentMessages[withdrawal_hash]` in the `L2ToL1MessagePasser`.

    The mapping is the 0th storage slot of the contract, hence
    `keccak256(withdrawal_hash ++ uint256(0))`.
    """
    return HexBytes(Web3.keccak(bytes(withdrawal_hash) + (0).to_bytes(32, byteorder="big")))


def parse_withdrawal(message_passer: Contract, receipt: TxReceipt) -> Withdrawal:
    """
    Extract the withdrawal initiated by an L2 transaction from its receipt.

    The first `MessagePassed` event is used. Its `withdrawalHash` must match
    the hash recomputed from the event's fields.

    Parameters
    ----------
    message_passer : Contract
        `L2ToL1MessagePasser` contract bound to the L2 provider.

    receipt : TxReceipt
        Successful receipt of the withdrawal transaction.

    Returns
    -------
    Withdrawal
    """
    tx_hash = HexBytes(receipt["transactionHash"])

    try:
        events = message_passer.events.MessagePassed().process_receipt(
            receipt, errors=DISCARD
        )
    except (ValueError, KeyError, TypeError) as e:
        raise MalformedWithdrawal(
            f"Unable to parse `MessagePassed` from {tx_hash.to_0x_hex()}: {e}",
            original_error=e,
        ) from e

    if not events or not len(events) > 0:
        raise MalformedWithdrawal(
            f"`txn_hash` {tx_hash.to_0x_hex()} does not emit `MessagePassed` event."
        )

    args = events[0].get("args")

    try:
        params = WithdrawalParams(
            nonce=args["nonce"],
            sender=args["sender"],
            target=args["target"],
            value=args["value"],
            gasLimit=args["gasLimit"],
            data=bytes(args["data"]),
        )
        emitted_hash = HexBytes(args["withdrawalHash"])
    except (KeyError, TypeError) as e:
        raise MalformedWithdrawal(
            f"`MessagePassed` event of {tx_hash.to_0x_hex()} is incomplete: {e}",
            original_error=e,
        ) from e

    computed_hash = compute_withdrawal_hash(params)

    if computed_hash != emitted_hash:
        raise MalformedWithdrawal(
            f"`computed hash {computed_hash.to_0x_hex()} != withdrawal hash "
            f"{emitted_hash.to_0x_hex()}`. Verify if withdrawal params are correct."
        )

    return Withdrawal(
        tx_hash=tx_hash,
        l2_block_number=int(receipt["blockNumber"]),
        params=params,
        withdrawal_hash=computed_hash,
    )
