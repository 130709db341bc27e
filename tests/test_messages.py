"""
Unit tests for withdrawal message parsing and hashing.
"""

import pytest
from eth_abi.abi import encode
from hexbytes import HexBytes
from web3 import Web3

from withdrawer.op_stack.custom_errors import MalformedWithdrawal
from withdrawer.op_stack.messages import (
    compute_withdrawal_hash,
    get_storage_slot,
    parse_withdrawal,
)
from withdrawer.utils.config import ABI_L2_TO_L1_MESSAGE_PASSER, L2_TO_L1_MESSAGE_PASSER

from conftest import (
    WITHDRAWAL_BLOCK,
    WITHDRAWAL_TX_HASH,
    FakeChainClient,
    make_message_passed_log,
    make_receipt,
    make_withdrawal_params,
)


@pytest.fixture
def message_passer():
    return FakeChainClient("L2").contract(
        L2_TO_L1_MESSAGE_PASSER, ABI_L2_TO_L1_MESSAGE_PASSER
    )


class TestWithdrawalHash:
    """Tests for the withdrawal fingerprint."""

    def test_matches_abi_encoding(self):
        """The hash is keccak over the ABI encoded message fields."""
        params = make_withdrawal_params(data=b"\x01\x02")

        expected = Web3.keccak(
            encode(
                ["uint256", "address", "address", "uint256", "uint256", "bytes"],
                [params.nonce, params.sender, params.target, params.value, params.gasLimit, params.data],
            )
        )

        assert compute_withdrawal_hash(params) == HexBytes(expected)

    def test_depends_on_every_field(self):
        """Changing a single field changes the fingerprint."""
        base = compute_withdrawal_hash(make_withdrawal_params())

        assert compute_withdrawal_hash(make_withdrawal_params(value=1)) != base
        assert compute_withdrawal_hash(make_withdrawal_params(gasLimit=1)) != base
        assert compute_withdrawal_hash(make_withdrawal_params(data=b"\x00")) != base


class TestStorageSlot:
    """Tests for the `sentMessages` storage slot."""

    def test_slot_of_mapping_zero(self):
        """Slot is keccak(hash ++ uint256(0))."""
        withdrawal_hash = compute_withdrawal_hash(make_withdrawal_params())

        expected = Web3.keccak(encode(["bytes32", "uint256"], [bytes(withdrawal_hash), 0]))

        assert get_storage_slot(withdrawal_hash) == HexBytes(expected)
        assert len(get_storage_slot(withdrawal_hash)) == 32


class TestParseWithdrawal:
    """Tests for reading a withdrawal from its L2 receipt."""

    def test_parses_message_passed(self, message_passer):
        """Fields, block number and hash come from the receipt."""
        params = make_withdrawal_params(data=b"\xde\xad")
        receipt = make_receipt([make_message_passed_log(params)])

        withdrawal = parse_withdrawal(message_passer, receipt)

        assert withdrawal.params == params
        assert withdrawal.l2_block_number == WITHDRAWAL_BLOCK
        assert withdrawal.tx_hash == WITHDRAWAL_TX_HASH
        assert withdrawal.withdrawal_hash == compute_withdrawal_hash(params)

    def test_missing_event(self, message_passer):
        """A receipt without `MessagePassed` is malformed."""
        with pytest.raises(MalformedWithdrawal, match="does not emit"):
            parse_withdrawal(message_passer, make_receipt([]))

    def test_hash_mismatch(self, message_passer):
        """An emitted hash that doesn't match the fields is rejected."""
        params = make_withdrawal_params()
        log = make_message_passed_log(params, withdrawal_hash=b"\x42" * 32)

        with pytest.raises(MalformedWithdrawal, match="computed hash"):
            parse_withdrawal(message_passer, make_receipt([log]))

    def test_unrelated_logs_are_skipped(self, message_passer):
        """Logs of other events don't hide the withdrawal."""
        params = make_withdrawal_params()
        unrelated = make_message_passed_log(params)
        unrelated["topics"] = [HexBytes(Web3.keccak(text="Transfer(address,address,uint256)"))]

        receipt = make_receipt([unrelated, make_message_passed_log(params)])

        assert parse_withdrawal(message_passer, receipt).params == params
