"""
The contract shared by both OP-Stack withdrawal protocols.

Legacy chains prove withdrawals against output proposals of a single
`L2OutputOracle` and finalize after a fixed finalization period. Fault-proof
chains prove against dispute games created by the `DisputeGameFactory` and
store proofs per submitter. Callers only ever talk to `WithdrawalStrategy`.
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

from eth_typing import ChecksumAddress
from web3.contract.contract import ContractFunction

from withdrawer.utils.config import Network

from .chain_client import ChainClient
from .custom_errors import NotProvableYet, ProofNotOldEnough, WithdrawalUnproven
from .proof_params import ProofParameterProvider
from .types import FinalityAnchor, ProofRecord, Withdrawal


logger = logging.getLogger(__name__)


def format_duration(seconds: int) -> str:
    return str(timedelta(seconds=max(int(seconds), 0)))


class WithdrawalStrategy(ABC):
    """
    Reads and writes of one protocol variant.

    Parameters
    ----------
    network : Network
        Resolved network preset (or custom override set).

    l1_client : ChainClient
        Settlement chain, where the portal and the anchors live.

    l2_client : ChainClient
        Rollup chain, where the withdrawal was initiated.

    submitter : ChecksumAddress
        Address that sends prove and finalize transactions.

    proof_provider : ProofParameterProvider, optional
        Defaults to one reading from `l2_client`.
    """

    portal_abi: str
    anchor_name: str

    def __init__(
        self,
        network: Network,
        l1_client: ChainClient,
        l2_client: ChainClient,
        submitter: ChecksumAddress,
        proof_provider: Optional[ProofParameterProvider] = None,
    ) -> None:
        self.network = network
        self.l1 = l1_client
        self.l2 = l2_client
        self.submitter = submitter
        self.proof_provider = proof_provider or ProofParameterProvider(l2_client)
        self.portal = l1_client.contract(network.portal_address, self.portal_abi)

    # READS

    @abstractmethod
    def latest_anchor(self) -> Optional[FinalityAnchor]:
        """Most recent finality anchor on L1, ``None`` if there is none yet."""

    @abstractmethod
    def proven_withdrawal(self, withdrawal: Withdrawal) -> ProofRecord:
        """Proof record of `withdrawal`; zero timestamp when unproven."""

    @abstractmethod
    def finalization_period(self) -> int:
        """Seconds that must pass between proving and finalizing."""

    @abstractmethod
    def estimated_anchor_wait(self) -> Optional[int]:
        """Rough seconds until the next anchor, ``None`` when unknown."""

    @abstractmethod
    def not_provable_message(
        self, withdrawal: Withdrawal, anchor: Optional[FinalityAnchor]
    ) -> str:
        pass

    def proof_invalidation(
        self, withdrawal: Withdrawal, record: ProofRecord
    ) -> Optional[str]:
        """Reason the anchor behind `record` can no longer be used, if any."""
        return None

    def is_finalized(self, withdrawal: Withdrawal) -> bool:
        return bool(
            self.l1.call(
                self.portal.functions.finalizedWithdrawals(withdrawal.withdrawal_hash)
            )
        )

    def l1_timestamp(self) -> int:
        return self.l1.latest_timestamp()

    # PRECONDITIONS

    def check_provable(self, withdrawal: Withdrawal) -> FinalityAnchor:
        """
        Return the anchor the withdrawal would be proven against.

        Raises
        ------
        NotProvableYet
            No anchor exists or the latest one does not reach the withdrawal's
            L2 block.
        """
        anchor = self.latest_anchor()

        if anchor is None or anchor.l2_block_number < withdrawal.l2_block_number:
            raise NotProvableYet(
                self.not_provable_message(withdrawal, anchor),
                withdrawal_block=withdrawal.l2_block_number,
                anchor_block=None if anchor is None else anchor.l2_block_number,
                estimated_wait=self.estimated_anchor_wait(),
            )

        return anchor

    def check_finalizable(self, withdrawal: Withdrawal) -> ProofRecord:
        """
        Return the proof record once its finalization period has elapsed.

        Raises
        ------
        WithdrawalUnproven
            No proof record exists for this withdrawal (and submitter).

        ProofNotOldEnough
            The latest L1 block is older than proof timestamp + period.
        """
        record = self.proven_withdrawal(withdrawal)

        if not record.is_proven:
            raise WithdrawalUnproven(
                f"Withdrawal {withdrawal.withdrawal_hash.to_0x_hex()} has not been "
                f"proven by {self.submitter}"
            )

        period = self.finalization_period()
        now = self.l1_timestamp()
        finalizable_at = record.timestamp + period

        if now < finalizable_at:
            raise ProofNotOldEnough(
                f"The finalization period hasn't elapsed yet. Proven at {record.timestamp}, "
                f"check again after timestamp: {finalizable_at} "
                f"(in {format_duration(finalizable_at - now)})",
                finalizable_at=finalizable_at,
            )

        return record

    # TRANSACTIONS

    def build_prove_transaction(self, withdrawal: Withdrawal) -> ContractFunction:
        """
        `proveWithdrawalTransaction` against the latest anchor. For fault proofs
        the anchor index is the dispute game index.
        """
        anchor = self.check_provable(withdrawal)
        params = self.proof_provider.prove_parameters(withdrawal, anchor)

        logger.debug(
            "Proving %s against %s %d (L2 block %d)",
            withdrawal.withdrawal_hash.to_0x_hex(),
            self.anchor_name,
            anchor.index,
            anchor.l2_block_number,
        )

        return self.portal.functions.proveWithdrawalTransaction(
            params.withdrawal,
            params.anchor_index,
            list(params.output_root_proof.values()),
            params.withdrawal_proof,
        )

    def build_finalize_transaction(self, withdrawal: Withdrawal) -> ContractFunction:
        """
        `finalizeWithdrawalTransaction` carrying only the message fields; the
        portal relies on its stored proof record.
        """
        self.check_finalizable(withdrawal)

        return self.portal.functions.finalizeWithdrawalTransaction(withdrawal.params)
