"""
Thin adapter over a web3.py connection to one chain.

Every library failure is turned into a `ChainClientError` so the rest of the
package only has to know about its own exception hierarchy. A missing receipt
is a distinguished `ReceiptNotFound`, since waiting for one is routine.
"""

from typing import Any, List, Union

from eth_typing import BlockNumber, ChecksumAddress
from hexbytes import HexBytes
from requests.exceptions import RequestException
from web3 import Web3
from web3.contract import Contract
from web3.contract.contract import ContractFunction
from web3.exceptions import (
    ContractLogicError,
    TransactionNotFound,
    Web3Exception,
)
from web3.types import BlockData, BlockIdentifier, MerkleProof, TxParams, TxReceipt

from withdrawer.utils.chain import get_abi
from withdrawer.utils.providers import get_web3

from .custom_errors import ChainClientError, ContractCallReverted, ReceiptNotFound

# errors web3.py surfaces for failed RPC requests and malformed responses
_RPC_ERRORS = (Web3Exception, RequestException, ValueError)


class ChainClient:
    """
    Read/write access to one chain (L1 or L2).

    Parameters
    ----------
    w3 : Web3
        Connected web3 instance.

    name : str
        Label used in error messages, e.g. ``"L1"``.
    """

    def __init__(self, w3: Web3, name: str) -> None:
        self.w3 = w3
        self.name = name

    @classmethod
    def from_rpc_url(cls, rpc_url: str, name: str) -> "ChainClient":
        return cls(get_web3(rpc_url), name)

    def contract(self, address: ChecksumAddress, abi_path: str) -> Contract:
        return self.w3.eth.contract(address=address, abi=get_abi(abi_path))

    @property
    def chain_id(self) -> int:
        try:
            return self.w3.eth.chain_id
        except _RPC_ERRORS as e:
            raise ChainClientError(
                f"{self.name}: error querying chain id: {e}", original_error=e
            ) from e

    def get_transaction_receipt(self, tx_hash: HexBytes) -> TxReceipt:
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound as e:
            raise ReceiptNotFound(
                f"{self.name}: no receipt for {tx_hash.to_0x_hex()}", original_error=e
            ) from e
        except _RPC_ERRORS as e:
            raise ChainClientError(
                f"{self.name}: error querying receipt of {tx_hash.to_0x_hex()}: {e}",
                original_error=e,
            ) from e

        if not receipt:
            raise ReceiptNotFound(f"{self.name}: no receipt for {tx_hash.to_0x_hex()}")

        return receipt

    def get_block(self, block_identifier: BlockIdentifier = "latest") -> BlockData:
        try:
            block = self.w3.eth.get_block(block_identifier)
        except _RPC_ERRORS as e:
            raise ChainClientError(
                f"{self.name}: error getting block {block_identifier}: {e}",
                original_error=e,
            ) from e

        if block is None:
            raise ChainClientError(f"{self.name}: block {block_identifier} not found")

        return block

    def latest_timestamp(self) -> int:
        latest_block = self.get_block("latest")
        timestamp = latest_block.get("timestamp")

        if timestamp is None:
            raise ChainClientError(f"{self.name}: can't fetch timestamp for latest block")

        return int(timestamp)

    def get_proof(
        self, address: ChecksumAddress, slots: List[HexBytes], block_number: int
    ) -> MerkleProof:
        try:
            return self.w3.eth.get_proof(
                address,
                slots,  # type: ignore[arg-type]
                BlockNumber(block_number),
            )
        except _RPC_ERRORS as e:
            raise ChainClientError(
                f"{self.name}: eth_getProof failed at block {block_number}: {e}",
                original_error=e,
            ) from e

    def call(
        self,
        function: ContractFunction,
        block_identifier: BlockIdentifier = "latest",
    ) -> Any:
        """Run a read-only contract call. Reverts raise `ContractCallReverted`."""
        try:
            return function.call(block_identifier=block_identifier)
        except ContractLogicError as e:
            raise ContractCallReverted(
                f"{self.name}: call to `{function.fn_name}` reverted: {e}",
                original_error=e,
            ) from e
        except _RPC_ERRORS as e:
            raise ChainClientError(
                f"{self.name}: call to `{function.fn_name}` failed: {e}",
                original_error=e,
            ) from e

    def pending_nonce(self, address: ChecksumAddress) -> int:
        try:
            return self.w3.eth.get_transaction_count(address, "pending")
        except _RPC_ERRORS as e:
            raise ChainClientError(
                f"{self.name}: error querying nonce: {e}", original_error=e
            ) from e

    def estimate_gas(self, function: ContractFunction, txn_params: TxParams) -> int:
        try:
            return function.estimate_gas(txn_params)
        except ContractLogicError as e:
            raise ContractCallReverted(
                f"{self.name}: gas estimation of `{function.fn_name}` reverted: {e}",
                original_error=e,
            ) from e
        except _RPC_ERRORS as e:
            raise ChainClientError(
                f"{self.name}: gas estimation of `{function.fn_name}` failed: {e}",
                original_error=e,
            ) from e

    def build_transaction(
        self, function: ContractFunction, txn_params: TxParams
    ) -> TxParams:
        try:
            return function.build_transaction(txn_params)
        except _RPC_ERRORS as e:
            raise ChainClientError(
                f"{self.name}: error building `{function.fn_name}` transaction: {e}",
                original_error=e,
            ) from e

    def send_raw_transaction(self, raw_transaction: Union[bytes, HexBytes]) -> HexBytes:
        try:
            return HexBytes(self.w3.eth.send_raw_transaction(raw_transaction))
        except _RPC_ERRORS as e:
            raise ChainClientError(
                f"{self.name}: error sending transaction: {e}", original_error=e
            ) from e

