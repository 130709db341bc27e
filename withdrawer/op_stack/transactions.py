"""
Building, signing and sending L1 transactions.
"""

import logging
from typing import Optional

from hexbytes import HexBytes
from web3.contract.contract import ContractFunction
from web3.types import TxParams

from withdrawer.utils.chain import add_gas_buffer
from withdrawer.utils.signer import Signer

from .chain_client import ChainClient


logger = logging.getLogger(__name__)


class NonceCounter:
    """
    Account nonce owned by one run. Initialised once from the pending nonce
    and incremented for every transaction handed out, so two transactions of
    the same run never share a nonce.
    """

    def __init__(self, start: int) -> None:
        if start < 0:
            raise ValueError("`start` must be non-negative")

        self._next = start

    @property
    def current(self) -> int:
        return self._next

    def next(self) -> int:
        nonce = self._next
        self._next += 1

        return nonce


class TransactionSender:
    """
    Parameters
    ----------
    client : ChainClient
        Chain the transactions are sent to (L1).

    signer : Signer

    nonce_counter : NonceCounter, optional
        Initialised from the signer's pending nonce on first use when omitted.
    """

    def __init__(
        self,
        client: ChainClient,
        signer: Signer,
        nonce_counter: Optional[NonceCounter] = None,
    ) -> None:
        self.client = client
        self.signer = signer
        self.nonce_counter = nonce_counter

    @property
    def address(self):
        return self.signer.address

    def _nonce_counter(self) -> NonceCounter:
        if self.nonce_counter is None:
            self.nonce_counter = NonceCounter(self.client.pending_nonce(self.address))

        return self.nonce_counter

    def send(self, function: ContractFunction) -> HexBytes:
        """
        Estimate, build, sign and broadcast `function`.

        Parameters
        ----------
        function : ContractFunction
            Bound contract call, e.g. `portal.functions.finalizeWithdrawalTransaction(tx)`.

        Returns
        -------
        HexBytes
            Transaction hash.
        """
        gas_estimate = self.client.estimate_gas(function, {"from": self.address})
        nonce_counter = self._nonce_counter()

        txn_params: TxParams = {
            "from": self.address,
            "nonce": nonce_counter.current,
            "chainId": self.client.chain_id,
            "gas": add_gas_buffer(gas_estimate),
        }

        txn_payload = self.client.build_transaction(function, txn_params)
        raw_transaction = self.signer.sign_transaction(txn_payload)

        tx_hash = self.client.send_raw_transaction(raw_transaction)
        # only a broadcast transaction consumes its nonce
        nonce_counter.next()

        logger.debug(
            "Sent `%s` with nonce %d and gas %d",
            function.fn_name,
            txn_params["nonce"],
            txn_params["gas"],
        )

        return tx_hash
