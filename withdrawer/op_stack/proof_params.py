"""
Parameters for `OptimismPortal.proveWithdrawalTransaction`.

The proof is always generated at the L2 block of the anchor the withdrawal is
proven against (the latest output proposal or the latest dispute game), which
shouldn't require archive-node data if the anchor is recent enough.
"""

import logging
from typing import List

import rlp
from rlp.exceptions import DecodingError
from eth_abi.abi import encode
from eth_typing import ChecksumAddress
from eth_utils.conversions import to_bytes
from hexbytes import HexBytes
from web3 import Web3
from web3.types import BlockData, MerkleProof

from withdrawer.utils.config import L2_TO_L1_MESSAGE_PASSER

from .chain_client import ChainClient
from .custom_errors import ChainClientError, InvalidRootClaim, ProofGenerationFailed
from .messages import get_storage_slot
from .types import FinalityAnchor, OutputRootProof, ProveParams, Withdrawal


logger = logging.getLogger(__name__)

OUTPUT_VERSION_V0 = (0).to_bytes(32, byteorder="big")


def compute_output_root(output_root_proof: OutputRootProof) -> HexBytes:
    return HexBytes(
        Web3.keccak(
            encode(
                ["bytes32", "bytes32", "bytes32", "bytes32"],
                list(output_root_proof.values()),
            )
        )
    )


def maybe_add_proof_node(key: bytes, proof: List[bytes]) -> List[bytes]:
    """
    Append the leaf when it is inlined in the last branch node of the proof.

    Nodes smaller than 32 bytes are embedded in their parent instead of being
    referenced by hash, so `eth_getProof` stops at the branch node. The portal
    expects the leaf as its own proof element.
    """
    if not proof:
        return proof

    last_node = rlp.decode(proof[-1])

    # only branch nodes (17 items) can embed the leaf
    if not isinstance(last_node, list) or len(last_node) != 17:
        return proof

    key_hex = key.hex()
    modified_proof = list(proof)

    for item in last_node:
        if not isinstance(item, list) or not item:
            continue

        # drop the node type nibble from the encoded path
        suffix = bytes(item[0]).hex()[1:]

        if not key_hex.endswith(suffix):
            continue

        modified_proof.append(rlp.encode(item))

    return modified_proof


class ProofParameterProvider:
    """
    Builds `ProveParams` for a withdrawal against a finality anchor from L2
    data (`eth_getBlockByNumber` and `eth_getProof`).

    Parameters
    ----------
    l2_client : ChainClient

    message_passer_address : ChecksumAddress, optional
        Defaults to the `L2ToL1MessagePasser` predeploy.
    """

    def __init__(
        self,
        l2_client: ChainClient,
        message_passer_address: ChecksumAddress = L2_TO_L1_MESSAGE_PASSER,
    ) -> None:
        self.l2 = l2_client
        self.message_passer_address = message_passer_address

    def _get_anchor_block(self, anchor: FinalityAnchor) -> BlockData:
        return self.l2.get_block(anchor.l2_block_number)

    def _get_proof(self, withdrawal: Withdrawal, block_number: int) -> MerkleProof:
        storage_slot = get_storage_slot(withdrawal.withdrawal_hash)

        proof = self.l2.get_proof(
            self.message_passer_address, [storage_slot], block_number
        )

        if not proof:
            raise ProofGenerationFailed(f"get_proof returned type {type(proof)}")

        return proof

    def _get_output_root_proof(
        self, block: BlockData, proof: MerkleProof
    ) -> OutputRootProof:
        state_root = block.get("stateRoot")
        block_hash = block.get("hash")
        storage_hash = proof.get("storageHash")

        if not state_root:
            raise ProofGenerationFailed("Error finding `stateRoot` in `BlockData`")

        if not block_hash:
            raise ProofGenerationFailed("Error finding `hash` in `BlockData`")

        if not storage_hash:
            raise ProofGenerationFailed("Error finding `storageHash` in `MerkleProof`")

        output_root_proof: OutputRootProof = {
            "version": OUTPUT_VERSION_V0,
            "state_root": bytes(HexBytes(state_root)),
            "message_passer_storage_root": bytes(HexBytes(storage_hash)),
            "latest_block_hash": bytes(HexBytes(block_hash)),
        }

        return output_root_proof

    def _get_withdrawal_proof(
        self, withdrawal: Withdrawal, proof: MerkleProof
    ) -> List[bytes]:
        storage_proofs = proof.get("storageProof")

        if not storage_proofs or len(storage_proofs) == 0:
            raise ProofGenerationFailed("No storage proofs returned")

        storage_proof = storage_proofs[0]
        value = storage_proof.get("value") or 0

        # web3.py returns the slot value as `HexBytes`; `b"\x00"` is still unset
        if not isinstance(value, int):
            value = int.from_bytes(HexBytes(value), byteorder="big")

        if value == 0:
            raise ProofGenerationFailed(
                f"Withdrawal {withdrawal.withdrawal_hash.to_0x_hex()} is not recorded "
                "in the `L2ToL1MessagePasser` storage at the anchor block"
            )

        withdrawal_proof = [
            to_bytes(hexstr=node) if isinstance(node, str) else bytes(node)
            for node in storage_proof["proof"]
        ]

        secure_key = Web3.keccak(get_storage_slot(withdrawal.withdrawal_hash))

        return maybe_add_proof_node(bytes(secure_key), withdrawal_proof)

    def _verify_root_claim(
        self, output_root_proof: OutputRootProof, anchor: FinalityAnchor
    ) -> None:
        computed_root = compute_output_root(output_root_proof)
        root_claim = HexBytes(anchor.root)

        if computed_root != root_claim:
            raise InvalidRootClaim(
                f"Claim doesn't match. `computed_claim: {computed_root.to_0x_hex()} "
                f"!= root_claim: {root_claim.to_0x_hex()}` at L2 block "
                f"{anchor.l2_block_number}"
            )

    def prove_parameters(
        self, withdrawal: Withdrawal, anchor: FinalityAnchor
    ) -> ProveParams:
        """
        Parameters to prove `withdrawal` against `anchor`.

        Raises
        ------
        ProofGenerationFailed
            The L2 data could not be fetched or is inconsistent; `InvalidRootClaim`
            when the recomputed output root differs from the anchor's root.
        """
        logger.debug(
            "Generating proof for %s at L2 block %d (anchor index %d)",
            withdrawal.withdrawal_hash.to_0x_hex(),
            anchor.l2_block_number,
            anchor.index,
        )

        try:
            block = self._get_anchor_block(anchor)
            proof = self._get_proof(withdrawal, anchor.l2_block_number)
            output_root_proof = self._get_output_root_proof(block, proof)
            withdrawal_proof = self._get_withdrawal_proof(withdrawal, proof)
        except ChainClientError as e:
            raise ProofGenerationFailed(
                f"Error generating withdrawal proof: {e}", original_error=e
            ) from e
        except (DecodingError, ValueError, KeyError) as e:
            raise ProofGenerationFailed(
                f"Malformed `eth_getProof` response: {e}", original_error=e
            ) from e

        self._verify_root_claim(output_root_proof, anchor)

        return ProveParams(
            withdrawal=withdrawal.params,
            anchor_index=anchor.index,
            output_root_proof=output_root_proof,
            withdrawal_proof=withdrawal_proof,
        )
