"""
Waiting for L1 transactions to be mined.
"""

import logging
import threading
import time
from typing import Callable, Optional

from hexbytes import HexBytes
from web3.contract.contract import ContractFunction
from web3.types import TxReceipt

from withdrawer.utils.config import CONFIRMATION_TIMEOUT, POLL_INTERVAL
from withdrawer.utils.polling import PollCancelled, PollTimeout, poll_until

from .chain_client import ChainClient
from .custom_errors import (
    ConfirmationCancelled,
    ConfirmationTimeout,
    ReceiptNotFound,
    TransactionReverted,
)
from .transactions import TransactionSender


logger = logging.getLogger(__name__)


class ConfirmationDriver:
    """
    Submits a transaction and polls for its receipt.

    A missing receipt is the normal state right after submission and only
    logs a progress line. Any other lookup failure ends the wait at once.

    Parameters
    ----------
    client : ChainClient
        Chain the transaction was sent to.

    sender : TransactionSender

    poll_interval : float
        Seconds between two receipt lookups.

    timeout : float
        Default deadline, in seconds after submission.

    cancel_event : threading.Event, optional
        Set it from another thread to abandon the wait.

    clock : Callable[[], float]
        Monotonic clock used for the deadline.
    """

    def __init__(
        self,
        client: ChainClient,
        sender: TransactionSender,
        poll_interval: float = POLL_INTERVAL,
        timeout: float = CONFIRMATION_TIMEOUT,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.sender = sender
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock

    def _check_receipt(self, tx_hash: HexBytes) -> Optional[TxReceipt]:
        try:
            receipt = self.client.get_transaction_receipt(tx_hash)
        except ReceiptNotFound:
            return None

        if receipt.get("status") != 1:
            raise TransactionReverted(
                f"Transaction {tx_hash.to_0x_hex()} reverted", tx_hash=tx_hash
            )

        return receipt

    def wait_for_confirmation(
        self, tx_hash: HexBytes, timeout: Optional[float] = None
    ) -> TxReceipt:
        """
        Poll until `tx_hash` is mined.

        Raises
        ------
        TransactionReverted
            Mined with a failure status.

        ConfirmationTimeout
            No receipt before the deadline.

        ConfirmationCancelled
            `cancel_event` was set.

        ChainClientError
            The receipt lookup failed for another reason.
        """
        timeout = self.timeout if timeout is None else timeout

        try:
            return poll_until(
                lambda: self._check_receipt(tx_hash),
                interval=self.poll_interval,
                timeout=timeout,
                cancel_event=self.cancel_event,
                clock=self.clock,
                on_wait=lambda: logger.info("waiting for tx confirmation"),
            )
        except PollTimeout as e:
            raise ConfirmationTimeout(
                f"Timed out after {timeout} seconds waiting for transaction "
                f"{tx_hash.to_0x_hex()} to confirm",
                tx_hash=tx_hash,
                original_error=e,
            ) from e
        except PollCancelled as e:
            raise ConfirmationCancelled(
                f"Cancelled while waiting for transaction {tx_hash.to_0x_hex()} "
                "to confirm",
                tx_hash=tx_hash,
                original_error=e,
            ) from e

    def submit(self, function: ContractFunction, label: str) -> HexBytes:
        tx_hash = self.sender.send(function)
        logger.info("%s transaction submitted: %s", label, tx_hash.to_0x_hex())

        return tx_hash

    def submit_and_confirm(
        self,
        function: ContractFunction,
        label: str,
        timeout: Optional[float] = None,
    ) -> TxReceipt:
        """
        Send `function` and wait until it is mined successfully.

        Parameters
        ----------
        function : ContractFunction

        label : str
            Short name for progress lines, e.g. ``"prove"``.

        timeout : float, optional
            Overrides the driver's default deadline.

        Returns
        -------
        TxReceipt
        """
        tx_hash = self.submit(function, label)

        receipt = self.wait_for_confirmation(tx_hash, timeout)
        logger.info("%s confirmed", tx_hash.to_0x_hex())

        return receipt
