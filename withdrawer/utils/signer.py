"""
Transaction signers.

A signer owns an address and turns a fully populated transaction dict into the
raw bytes that go to `eth_sendRawTransaction`. Three sources are supported:
a raw private key, a BIP-39 mnemonic with a derivation path, and a Ledger
hardware wallet.
"""

import logging
from typing import Optional, Protocol, cast

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address
from eth_utils.exceptions import ValidationError
from hexbytes import HexBytes
from web3.types import TxParams

from withdrawer.op_stack.custom_errors import SignerError

from .config import DEFAULT_HD_PATH


logger = logging.getLogger(__name__)


class Signer(Protocol):
    @property
    def address(self) -> ChecksumAddress: ...

    def sign_transaction(self, txn_payload: TxParams) -> HexBytes: ...


class LocalSigner:
    """Signs with an in-memory key (raw private key or mnemonic-derived)."""

    def __init__(self, account: LocalAccount) -> None:
        self.account = account

    @property
    def address(self) -> ChecksumAddress:
        return self.account.address

    def sign_transaction(self, txn_payload: TxParams) -> HexBytes:
        signed_txn = self.account.sign_transaction(cast(dict, txn_payload))

        return HexBytes(signed_txn.raw_transaction)


class LedgerSigner:
    """
    Signs on a connected Ledger device through `ledgereth`. The Ethereum app
    must be open and the device unlocked.
    """

    def __init__(self, hd_path: str = DEFAULT_HD_PATH) -> None:
        try:
            from ledgereth.accounts import get_account_by_path
            from ledgereth.exceptions import LedgerError
        except ImportError as e:
            raise SignerError(
                "--ledger requires the `ledger` extra: pip install op-withdrawer[ledger]",
                original_error=e,
            ) from e

        self.path = hd_path.removeprefix("m/")

        try:
            ledger_account = get_account_by_path(self.path)
        except (LedgerError, OSError) as e:
            raise SignerError(
                f"error deriving ledger account (have you unlocked?): {e}",
                original_error=e,
            ) from e

        self._address = to_checksum_address(ledger_account.address)

    @property
    def address(self) -> ChecksumAddress:
        return self._address

    def sign_transaction(self, txn_payload: TxParams) -> HexBytes:
        from ledgereth.transactions import create_transaction

        payload = cast(dict, txn_payload)

        signed = create_transaction(
            destination=payload["to"],
            amount=payload.get("value", 0),
            gas=payload["gas"],
            nonce=payload["nonce"],
            data=payload.get("data", b""),
            max_priority_fee_per_gas=payload["maxPriorityFeePerGas"],
            max_fee_per_gas=payload["maxFeePerGas"],
            chain_id=payload["chainId"],
            sender_path=self.path,
        )

        return HexBytes(signed.raw_transaction())


def create_signer(
    private_key: Optional[str] = None,
    mnemonic: Optional[str] = None,
    hd_path: str = DEFAULT_HD_PATH,
    ledger: bool = False,
) -> Signer:
    """
    Build the one signer the user asked for.

    Exactly one of `private_key`, `mnemonic` and `ledger` must be given;
    `hd_path` applies to the mnemonic and the ledger.
    """
    options = sum([bool(private_key), bool(mnemonic), bool(ledger)])

    if options != 1:
        raise SignerError(
            "One (and only one) of --private-key, --ledger, --mnemonic must be set"
        )

    if private_key:
        try:
            account: LocalAccount = Account.from_key(private_key)
        except (ValidationError, ValueError, TypeError) as e:
            raise SignerError(f"error parsing private key: {e}", original_error=e) from e

        return LocalSigner(account)

    if mnemonic:
        Account.enable_unaudited_hdwallet_features()

        try:
            account = Account.from_mnemonic(mnemonic, account_path=hd_path)
        except (ValidationError, ValueError, TypeError) as e:
            raise SignerError(
                f"error deriving key from mnemonic: {e}", original_error=e
            ) from e

        return LocalSigner(account)

    logger.debug("Using ledger signer at path %s", hd_path)

    return LedgerSigner(hd_path)
