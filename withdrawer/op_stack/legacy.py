"""
Withdrawals on OP-Stack chains that still settle through the `L2OutputOracle`.
"""

from typing import Optional

from eth_typing import ChecksumAddress
from hexbytes import HexBytes

from withdrawer.utils.config import (
    ABI_L2_OUTPUT_ORACLE,
    ABI_OPTIMISM_PORTAL,
    Network,
)

from .chain_client import ChainClient
from .custom_errors import ContractCallReverted, InvalidNetworkError
from .proof_params import ProofParameterProvider
from .strategy import WithdrawalStrategy, format_duration
from .types import FinalityAnchor, ProofRecord, Withdrawal


class LegacyStrategy(WithdrawalStrategy):
    """
    A single proposer periodically submits output roots to the
    `L2OutputOracle`. A withdrawal is proven against the latest output and can
    be finalized `FINALIZATION_PERIOD_SECONDS` after the proof landed.

    Proofs are keyed by withdrawal hash only, so any account may finalize a
    withdrawal proven by another.
    """

    portal_abi = ABI_OPTIMISM_PORTAL
    anchor_name = "output proposal"

    def __init__(
        self,
        network: Network,
        l1_client: ChainClient,
        l2_client: ChainClient,
        submitter: ChecksumAddress,
        proof_provider: Optional[ProofParameterProvider] = None,
    ) -> None:
        if network.l2oo_address is None:
            raise InvalidNetworkError(
                f"Network `{network.name}` has no L2OutputOracle address"
            )

        super().__init__(network, l1_client, l2_client, submitter, proof_provider)

        self.oracle = l1_client.contract(network.l2oo_address, ABI_L2_OUTPUT_ORACLE)

    def _get_l2_output(self, output_index: int) -> FinalityAnchor:
        output_root, timestamp, l2_block_number = self.l1.call(
            self.oracle.functions.getL2Output(output_index)
        )

        return FinalityAnchor(
            index=output_index,
            l2_block_number=int(l2_block_number),
            root=bytes(output_root),
            timestamp=int(timestamp),
        )

    def latest_anchor(self) -> Optional[FinalityAnchor]:
        try:
            latest_index = self.l1.call(self.oracle.functions.latestOutputIndex())
        except ContractCallReverted:
            # no output has been proposed yet
            return None

        return self._get_l2_output(int(latest_index))

    def proven_withdrawal(self, withdrawal: Withdrawal) -> ProofRecord:
        output_root, timestamp, l2_output_index = self.l1.call(
            self.portal.functions.provenWithdrawals(withdrawal.withdrawal_hash)
        )

        return ProofRecord(
            anchor=bytes(output_root),
            timestamp=int(timestamp),
            l2_output_index=int(l2_output_index),
        )

    def finalization_period(self) -> int:
        return int(self.l1.call(self.oracle.functions.FINALIZATION_PERIOD_SECONDS()))

    def estimated_anchor_wait(self) -> Optional[int]:
        submission_interval = self.l1.call(self.oracle.functions.SUBMISSION_INTERVAL())
        l2_block_time = self.l1.call(self.oracle.functions.L2_BLOCK_TIME())

        return int(submission_interval) * int(l2_block_time)

    def not_provable_message(
        self, withdrawal: Withdrawal, anchor: Optional[FinalityAnchor]
    ) -> str:
        latest = "none" if anchor is None else str(anchor.l2_block_number)

        return (
            f"The latest L2 output is {latest} and is not past L2 block "
            f"{withdrawal.l2_block_number} that includes the withdrawal, no withdrawal "
            f"can be proved yet.\nPlease wait for the next proposal submission to "
            f"{self.network.l2oo_address}, which happens every "
            f"{format_duration(self.estimated_anchor_wait() or 0)}."
        )

    def proof_invalidation(
        self, withdrawal: Withdrawal, record: ProofRecord
    ) -> Optional[str]:
        """
        The portal finalizes only if the output the withdrawal was proven
        against is still stored at the same index.
        """
        if record.l2_output_index is None:
            return None

        try:
            current = self._get_l2_output(record.l2_output_index)
        except ContractCallReverted:
            return f"output proposal {record.l2_output_index} has been deleted"

        if HexBytes(current.root) != HexBytes(record.anchor):
            return (
                f"output proposal {record.l2_output_index} has been replaced since "
                "the withdrawal was proven"
            )

        return None
