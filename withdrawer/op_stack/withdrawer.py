"""
Advancing a withdrawal by one step: prove it, or finalize it.

One `Withdrawer.advance()` classifies the withdrawal and performs at most one
L1 transaction. Running it again after the finalization period completes the
withdrawal; running it after finalization is a no-op.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from eth_typing import ChecksumAddress
from hexbytes import HexBytes

from withdrawer.utils.config import PROPOSAL_POLL_INTERVAL, Network
from withdrawer.utils.polling import PollCancelled, PollTimeout, poll_until

from .chain_client import ChainClient
from .classifier import WithdrawalClassifier
from .confirmation import ConfirmationDriver
from .custom_errors import (
    NotProvableYet,
    OPStackError,
    ProofInvalidatedError,
    WithdrawalCancelled,
)
from .fault_proof import FaultProofStrategy
from .legacy import LegacyStrategy
from .strategy import WithdrawalStrategy, format_duration
from .types import (
    AdvanceAction,
    AdvanceResult,
    WithdrawalState,
    WithdrawalStatus,
)


logger = logging.getLogger(__name__)

STAGE_CLASSIFICATION = "classification"
STAGE_PROVING = "proving"
STAGE_CONFIRMING = "confirming"
STAGE_FINALIZING = "finalizing"


def create_strategy(
    network: Network,
    l1_client: ChainClient,
    l2_client: ChainClient,
    submitter: ChecksumAddress,
) -> WithdrawalStrategy:
    """Fault-proof strategy for fault-proof networks, legacy otherwise."""
    if network.fault_proofs:
        return FaultProofStrategy(network, l1_client, l2_client, submitter)

    return LegacyStrategy(network, l1_client, l2_client, submitter)


@contextmanager
def stage(name: str) -> Iterator[None]:
    """Tag any `OPStackError` escaping the block with the step it failed in."""
    try:
        yield
    except OPStackError as e:
        if e.stage is None:
            e.stage = name
        raise


class Withdrawer:
    """
    Parameters
    ----------
    classifier : WithdrawalClassifier

    strategy : WithdrawalStrategy
        Same strategy the classifier reads through.

    driver : ConfirmationDriver
        Sends and confirms the L1 transactions.

    reprove : bool
        Prove again when the existing proof has been invalidated, instead of
        failing with `ProofInvalidatedError`.

    proposal_poll_interval : float
        Seconds between two checks while waiting for an anchor.
    """

    def __init__(
        self,
        classifier: WithdrawalClassifier,
        strategy: WithdrawalStrategy,
        driver: ConfirmationDriver,
        reprove: bool = False,
        proposal_poll_interval: float = PROPOSAL_POLL_INTERVAL,
    ) -> None:
        self.classifier = classifier
        self.strategy = strategy
        self.driver = driver
        self.reprove = reprove
        self.proposal_poll_interval = proposal_poll_interval

    @property
    def cancel_event(self) -> threading.Event:
        return self.driver.cancel_event

    def _check_cancelled(self, action: str) -> None:
        if self.cancel_event.is_set():
            raise WithdrawalCancelled(f"Cancelled before the {action} transaction was sent")

    def wait_until_provable(
        self, state: WithdrawalState, timeout: float
    ) -> WithdrawalState:
        """
        Re-classify until an anchor covers the withdrawal or the timeout
        passes, and return the last classification. `state` is returned if
        no check ran.

        Raises
        ------
        WithdrawalCancelled
            If the wait was cancelled.
        """
        withdrawal = state.withdrawal
        last_state: List[WithdrawalState] = [state]

        def check() -> Optional[WithdrawalState]:
            state = self.classifier.classify_withdrawal(withdrawal)
            last_state[:] = [state]

            if state.status == WithdrawalStatus.NOT_YET_PROVABLE:
                return None

            return state

        def on_wait() -> None:
            logger.info(
                "waiting for a %s covering L2 block %d",
                self.strategy.anchor_name,
                withdrawal.l2_block_number,
            )

        try:
            return poll_until(
                check,
                interval=self.proposal_poll_interval,
                timeout=timeout,
                cancel_event=self.cancel_event,
                clock=self.driver.clock,
                on_wait=on_wait,
            )
        except PollTimeout:
            return last_state[0]
        except PollCancelled as e:
            raise WithdrawalCancelled(
                f"Cancelled while waiting for the next {self.strategy.anchor_name}", e
            )

    def advance(
        self, tx_hash: HexBytes, wait_for_proposal: Optional[float] = None
    ) -> AdvanceResult:
        """
        Perform the next legal step for the withdrawal initiated by `tx_hash`.

        Parameters
        ----------
        tx_hash : HexBytes
            L2 transaction that initiated the withdrawal.

        wait_for_proposal : float, optional
            Seconds to wait for an anchor when the withdrawal is not provable
            yet. Fails immediately when omitted.

        Returns
        -------
        AdvanceResult
            `action` is `NONE` when the withdrawal is already finalized or
            still inside its finalization period.

        Raises
        ------
        OPStackError
            With `stage` set to the step that failed.
        """
        with stage(STAGE_CLASSIFICATION):
            withdrawal = self.classifier.load_withdrawal(tx_hash)
            state = self.classifier.classify_withdrawal(withdrawal)

            if state.status == WithdrawalStatus.NOT_YET_PROVABLE and wait_for_proposal:
                state = self.wait_until_provable(state, wait_for_proposal)

            logger.info("withdrawal status: %s", state.status.value)

            if state.status == WithdrawalStatus.NOT_YET_PROVABLE:
                raise NotProvableYet(
                    state.detail,
                    withdrawal_block=withdrawal.l2_block_number,
                    anchor_block=None if state.anchor is None else state.anchor.l2_block_number,
                    estimated_wait=state.estimated_wait,
                )

        if state.status in (
            WithdrawalStatus.FINALIZED,
            WithdrawalStatus.PROVEN_WAITING_TIME_LOCK,
        ):
            return AdvanceResult(state=state, action=AdvanceAction.NONE, message=state.detail)

        if state.status == WithdrawalStatus.PROOF_INVALIDATED and not self.reprove:
            with stage(STAGE_PROVING):
                raise ProofInvalidatedError(
                    f"{state.detail}. Run again with --reprove to prove it against "
                    f"the latest {self.strategy.anchor_name}."
                )

        if state.status == WithdrawalStatus.READY_TO_FINALIZE:
            return self._finalize(state)

        return self._prove(state)

    def _prove(self, state: WithdrawalState) -> AdvanceResult:
        withdrawal = state.withdrawal

        with stage(STAGE_PROVING):
            self._check_cancelled("prove")
            prove_transaction = self.strategy.build_prove_transaction(withdrawal)
            self._check_cancelled("prove")
            tx_hash = self.driver.submit(prove_transaction, "prove")

        with stage(STAGE_CONFIRMING):
            self.driver.wait_for_confirmation(tx_hash)

        with stage(STAGE_PROVING):
            period = self.strategy.finalization_period()

        return AdvanceResult(
            state=state,
            action=AdvanceAction.PROVED,
            message=(
                f"Withdrawal {withdrawal.withdrawal_hash.to_0x_hex()} proven in "
                f"{tx_hash.to_0x_hex()}. Run again to finalize it once the "
                f"finalization period ({format_duration(period)}) has elapsed."
            ),
            tx_hash=tx_hash,
        )

    def _finalize(self, state: WithdrawalState) -> AdvanceResult:
        withdrawal = state.withdrawal

        with stage(STAGE_FINALIZING):
            self._check_cancelled("finalize")
            finalize_transaction = self.strategy.build_finalize_transaction(withdrawal)
            self._check_cancelled("finalize")
            tx_hash = self.driver.submit(finalize_transaction, "finalize")

        with stage(STAGE_CONFIRMING):
            self.driver.wait_for_confirmation(tx_hash)

        return AdvanceResult(
            state=state,
            action=AdvanceAction.FINALIZED,
            message=(
                f"Withdrawal {withdrawal.withdrawal_hash.to_0x_hex()} finalized in "
                f"{tx_hash.to_0x_hex()}"
            ),
            tx_hash=tx_hash,
        )
