"""
Withdrawals on OP-Stack chains with permissionless fault proofs
(`OptimismPortal2` + `DisputeGameFactory`).
"""

from typing import Optional

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address
from web3.contract.contract import ContractFunction

from withdrawer.utils.chain import describe_contract_error
from withdrawer.utils.config import (
    ABI_DISPUTE_GAME_FACTORY,
    ABI_FAULT_DISPUTE_GAME,
    ABI_OPTIMISM_PORTAL_2,
    Network,
)

from .chain_client import ChainClient
from .custom_errors import (
    ChainClientError,
    ContractCallReverted,
    InvalidNetworkError,
    NotFinalizable,
)
from .proof_params import ProofParameterProvider
from .strategy import WithdrawalStrategy
from .types import (
    FinalityAnchor,
    GameSearchResult,
    GameStatus,
    ProofRecord,
    Withdrawal,
)


class FaultProofStrategy(WithdrawalStrategy):
    """
    Withdrawals are proven against the latest dispute game of the respected
    game type and finalized once `proofMaturityDelaySeconds` have passed and
    the portal's `checkWithdrawal` accepts the game.

    `OptimismPortal2` stores proofs per (withdrawal hash, submitter). The
    account finalizing a withdrawal must be the one that proved it; a proof
    submitted by any other account is invisible to this strategy.
    """

    portal_abi = ABI_OPTIMISM_PORTAL_2
    anchor_name = "dispute game"

    def __init__(
        self,
        network: Network,
        l1_client: ChainClient,
        l2_client: ChainClient,
        submitter: ChecksumAddress,
        proof_provider: Optional[ProofParameterProvider] = None,
    ) -> None:
        if network.dgf_address is None:
            raise InvalidNetworkError(
                f"Network `{network.name}` has no DisputeGameFactory address"
            )

        super().__init__(network, l1_client, l2_client, submitter, proof_provider)

        self.factory = l1_client.contract(network.dgf_address, ABI_DISPUTE_GAME_FACTORY)

    def _get_game_contract(self, game_address: ChecksumAddress):
        return self.l1.contract(game_address, ABI_FAULT_DISPUTE_GAME)

    def _get_latest_game_result(self) -> Optional[GameSearchResult]:
        """
        Locate the most recent dispute game of the respected game type.

        Returns
        -------
        GameSearchResult | None
            ``None`` when the factory hasn't created a matching game yet.
        """
        game_count = self.l1.call(self.factory.functions.gameCount())

        if game_count == 0:
            return None

        respected_game_type = self.l1.call(self.portal.functions.respectedGameType())

        latest_games = self.l1.call(
            self.factory.functions.findLatestGames(
                respected_game_type,
                game_count - 1,
                1,
            )
        )

        if not latest_games or not len(latest_games) > 0:
            return None

        latest_game = latest_games[0]

        if not latest_game or not len(latest_game) == 5:
            raise ChainClientError(
                "`Game` must return a tuple of size 5. Invalid dispute game."
            )

        game_result: GameSearchResult = {
            "index": latest_game[0],
            "metadata": latest_game[1],
            "timestamp": latest_game[2],
            "root_claim": latest_game[3],
            "extra_data": latest_game[4],
        }

        return game_result

    def latest_anchor(self) -> Optional[FinalityAnchor]:
        game_result = self._get_latest_game_result()

        if game_result is None:
            return None

        # the first 32 bytes of `extraData` hold the L2 block number
        extra_data = bytes(game_result["extra_data"])
        l2_block_number = int.from_bytes(extra_data[:32], "big")

        return FinalityAnchor(
            index=int(game_result["index"]),
            l2_block_number=l2_block_number,
            root=bytes(game_result["root_claim"]),
            timestamp=int(game_result["timestamp"]),
        )

    def proven_withdrawal(self, withdrawal: Withdrawal) -> ProofRecord:
        game_address, timestamp = self.l1.call(
            self.portal.functions.provenWithdrawals(
                withdrawal.withdrawal_hash, self.submitter
            )
        )

        return ProofRecord(
            anchor=to_checksum_address(game_address),
            timestamp=int(timestamp),
        )

    def finalization_period(self) -> int:
        return int(self.l1.call(self.portal.functions.proofMaturityDelaySeconds()))

    def estimated_anchor_wait(self) -> Optional[int]:
        # games are created permissionlessly, there is no fixed cadence
        return None

    def not_provable_message(
        self, withdrawal: Withdrawal, anchor: Optional[FinalityAnchor]
    ) -> str:
        if anchor is None:
            return (
                f"No dispute game of the respected game type exists on "
                f"{self.network.dgf_address} yet, no withdrawal can be proved yet."
            )

        return (
            f"The latest dispute game covers L2 block {anchor.l2_block_number} and is "
            f"not past L2 block {withdrawal.l2_block_number} that includes the "
            "withdrawal, no withdrawal can be proved yet.\nPlease wait for the next "
            "dispute game to be created."
        )

    def proof_invalidation(
        self, withdrawal: Withdrawal, record: ProofRecord
    ) -> Optional[str]:
        """
        Mirror the game validity checks of `OptimismPortal2.checkWithdrawal`.
        A game still in progress is not invalid, only not finalizable yet.
        """
        game_address = to_checksum_address(record.anchor)
        game = self._get_game_contract(game_address)

        if self.l1.call(self.portal.functions.disputeGameBlacklist(game_address)):
            return f"dispute game {game_address} has been blacklisted"

        status = self.l1.call(game.functions.status())

        if status == GameStatus.CHALLENGER_WINS:
            return f"dispute game {game_address} resolved in favour of the challenger"

        created_at = int(self.l1.call(game.functions.createdAt()))

        if record.timestamp <= created_at:
            return (
                f"proof timestamp {record.timestamp} is not after the creation of "
                f"dispute game {game_address} ({created_at})"
            )

        game_type = self.l1.call(game.functions.gameType())
        respected_game_type = self.l1.call(self.portal.functions.respectedGameType())

        if game_type != respected_game_type:
            return (
                f"dispute game type {game_type} is no longer the respected game "
                f"type {respected_game_type}"
            )

        respected_updated_at = self.l1.call(
            self.portal.functions.respectedGameTypeUpdatedAt()
        )

        if created_at < respected_updated_at:
            return (
                f"dispute game {game_address} was created before the respected game "
                "type was last updated"
            )

        return None

    def check_withdrawal(self, withdrawal: Withdrawal) -> None:
        """
        Run the portal's own finalization predicate for this submitter.

        Raises
        ------
        NotFinalizable
            `checkWithdrawal` reverted; `reason` holds the decoded custom error
            or the revert string.
        """
        try:
            self.l1.call(
                self.portal.functions.checkWithdrawal(
                    withdrawal.withdrawal_hash, self.submitter
                )
            )
        except ContractCallReverted as e:
            reason = describe_contract_error(self.portal, e.original_error or e)

            raise NotFinalizable(
                f"Withdrawal {withdrawal.withdrawal_hash.to_0x_hex()} cannot be "
                f"finalized yet: {reason}",
                reason=reason,
                original_error=e,
            ) from e

    def build_finalize_transaction(self, withdrawal: Withdrawal) -> ContractFunction:
        self.check_finalizable(withdrawal)
        self.check_withdrawal(withdrawal)

        return self.portal.functions.finalizeWithdrawalTransaction(withdrawal.params)
