"""
Where a withdrawal stands in its lifecycle, read from L2 and L1.
"""

import logging

from hexbytes import HexBytes

from withdrawer.utils.config import ABI_L2_TO_L1_MESSAGE_PASSER, L2_TO_L1_MESSAGE_PASSER

from .chain_client import ChainClient
from .custom_errors import ReceiptNotFound, WithdrawalExecutionFailed, WithdrawalNotFound
from .messages import parse_withdrawal
from .strategy import WithdrawalStrategy, format_duration
from .types import Withdrawal, WithdrawalState, WithdrawalStatus


logger = logging.getLogger(__name__)


class WithdrawalClassifier:
    """
    Classifies a withdrawal into a `WithdrawalStatus`.

    Every call re-reads chain state; nothing is cached and nothing is written,
    so classifying twice against an unchanged chain yields the same state.

    Parameters
    ----------
    l2_client : ChainClient
        Rollup chain, used to load the withdrawal from its receipt.

    strategy : WithdrawalStrategy
        Protocol variant used for every L1 read.
    """

    def __init__(self, l2_client: ChainClient, strategy: WithdrawalStrategy) -> None:
        self.l2 = l2_client
        self.strategy = strategy
        self.message_passer = l2_client.contract(
            L2_TO_L1_MESSAGE_PASSER, ABI_L2_TO_L1_MESSAGE_PASSER
        )

    def load_withdrawal(self, tx_hash: HexBytes) -> Withdrawal:
        """
        Load the withdrawal initiated by `tx_hash` on L2.

        Raises
        ------
        WithdrawalNotFound
            The transaction has no receipt (yet).

        WithdrawalExecutionFailed
            The transaction reverted on L2.

        MalformedWithdrawal
            The receipt carries no valid `MessagePassed` event.
        """
        try:
            receipt = self.l2.get_transaction_receipt(tx_hash)
        except ReceiptNotFound as e:
            raise WithdrawalNotFound(
                f"Withdrawal transaction {tx_hash.to_0x_hex()} not found on "
                f"{self.l2.name}",
                original_error=e,
            ) from e

        if receipt.get("status") != 1:
            raise WithdrawalExecutionFailed(
                f"Withdrawal transaction {tx_hash.to_0x_hex()} failed on "
                f"{self.l2.name} (status {receipt.get('status')})"
            )

        return parse_withdrawal(self.message_passer, receipt)

    def classify(self, tx_hash: HexBytes) -> WithdrawalState:
        return self.classify_withdrawal(self.load_withdrawal(tx_hash))

    def classify_withdrawal(self, withdrawal: Withdrawal) -> WithdrawalState:
        """
        Parameters
        ----------
        withdrawal : Withdrawal
            As returned by `load_withdrawal`.

        Returns
        -------
        WithdrawalState
        """
        strategy = self.strategy
        withdrawal_hash = withdrawal.withdrawal_hash.to_0x_hex()

        if strategy.is_finalized(withdrawal):
            return WithdrawalState(
                status=WithdrawalStatus.FINALIZED,
                withdrawal=withdrawal,
                detail=f"Withdrawal {withdrawal_hash} has already been finalized",
            )

        anchor = strategy.latest_anchor()

        if anchor is None or anchor.l2_block_number < withdrawal.l2_block_number:
            return WithdrawalState(
                status=WithdrawalStatus.NOT_YET_PROVABLE,
                withdrawal=withdrawal,
                detail=strategy.not_provable_message(withdrawal, anchor),
                anchor=anchor,
                estimated_wait=strategy.estimated_anchor_wait(),
            )

        record = strategy.proven_withdrawal(withdrawal)

        if not record.is_proven:
            return WithdrawalState(
                status=WithdrawalStatus.PROVABLE_UNPROVEN,
                withdrawal=withdrawal,
                detail=(
                    f"Withdrawal {withdrawal_hash} is covered by {strategy.anchor_name} "
                    f"{anchor.index} (L2 block {anchor.l2_block_number}) and can be proven"
                ),
                anchor=anchor,
                proof=record,
            )

        invalidation = strategy.proof_invalidation(withdrawal, record)

        if invalidation is not None:
            return WithdrawalState(
                status=WithdrawalStatus.PROOF_INVALIDATED,
                withdrawal=withdrawal,
                detail=f"The proof of withdrawal {withdrawal_hash} is invalid: {invalidation}",
                anchor=anchor,
                proof=record,
            )

        period = strategy.finalization_period()
        now = strategy.l1_timestamp()
        finalizable_at = record.timestamp + period

        if now < finalizable_at:
            remaining = finalizable_at - now

            return WithdrawalState(
                status=WithdrawalStatus.PROVEN_WAITING_TIME_LOCK,
                withdrawal=withdrawal,
                detail=(
                    f"Withdrawal {withdrawal_hash} was proven at {record.timestamp}, it "
                    f"can be finalized after {finalizable_at} (in {format_duration(remaining)})"
                ),
                anchor=anchor,
                proof=record,
                finalization_period=period,
                now=now,
                estimated_wait=remaining,
            )

        return WithdrawalState(
            status=WithdrawalStatus.READY_TO_FINALIZE,
            withdrawal=withdrawal,
            detail=f"Withdrawal {withdrawal_hash} is ready to be finalized",
            anchor=anchor,
            proof=record,
            finalization_period=period,
            now=now,
            estimated_wait=0,
        )
