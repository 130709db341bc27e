"""
Unit tests for transaction sending and the run-owned nonce counter.
"""

from unittest.mock import MagicMock

import pytest
from hexbytes import HexBytes

from withdrawer.op_stack.custom_errors import ChainClientError, ContractCallReverted
from withdrawer.op_stack.transactions import NonceCounter, TransactionSender
from withdrawer.utils.chain import add_gas_buffer

from conftest import SUBMITTER, FakeFunction


@pytest.fixture
def client():
    client = MagicMock()
    client.chain_id = 1
    client.pending_nonce.return_value = 12
    client.estimate_gas.return_value = 100_000
    client.build_transaction.side_effect = lambda function, params: dict(params, to="0xportal")
    client.send_raw_transaction.return_value = HexBytes("0x" + "22" * 32)
    return client


@pytest.fixture
def signer():
    signer = MagicMock()
    signer.address = SUBMITTER
    signer.sign_transaction.return_value = HexBytes("0x02f8")
    return signer


class TestNonceCounter:
    """Tests for `NonceCounter`."""

    def test_increments(self):
        """Every nonce is handed out once, in order."""
        counter = NonceCounter(5)

        assert [counter.next(), counter.next(), counter.next()] == [5, 6, 7]
        assert counter.current == 8

    def test_rejects_negative_start(self):
        with pytest.raises(ValueError):
            NonceCounter(-1)


class TestTransactionSender:
    """Tests for `TransactionSender`."""

    def test_builds_signs_and_sends(self, client, signer):
        """The payload carries sender, nonce, chain id and buffered gas."""
        sender = TransactionSender(client, signer)

        tx_hash = sender.send(FakeFunction("proveWithdrawalTransaction"))

        assert tx_hash == HexBytes("0x" + "22" * 32)

        payload = signer.sign_transaction.call_args.args[0]
        assert payload["from"] == SUBMITTER
        assert payload["nonce"] == 12
        assert payload["chainId"] == 1
        assert payload["gas"] == add_gas_buffer(100_000)

        client.send_raw_transaction.assert_called_once_with(HexBytes("0x02f8"))

    def test_nonce_monotonic_across_transactions(self, client, signer):
        """Two transactions of one run never reuse a nonce."""
        sender = TransactionSender(client, signer)

        sender.send(FakeFunction("proveWithdrawalTransaction"))
        sender.send(FakeFunction("finalizeWithdrawalTransaction"))

        nonces = [c.args[0]["nonce"] for c in signer.sign_transaction.call_args_list]

        assert nonces == [12, 13]
        # the pending nonce is read once per run
        client.pending_nonce.assert_called_once_with(SUBMITTER)

    def test_explicit_counter(self, client, signer):
        """A given counter is used instead of the pending nonce."""
        sender = TransactionSender(client, signer, NonceCounter(40))

        sender.send(FakeFunction("finalizeWithdrawalTransaction"))

        assert signer.sign_transaction.call_args.args[0]["nonce"] == 40
        client.pending_nonce.assert_not_called()

    def test_estimation_revert_sends_nothing(self, client, signer):
        """A reverting estimate aborts before signing."""
        client.estimate_gas.side_effect = ContractCallReverted("L1: gas estimation reverted")
        sender = TransactionSender(client, signer)

        with pytest.raises(ContractCallReverted):
            sender.send(FakeFunction("finalizeWithdrawalTransaction"))

        signer.sign_transaction.assert_not_called()
        client.send_raw_transaction.assert_not_called()

    @pytest.mark.parametrize("failing_step", ["build", "sign", "send"])
    def test_failed_send_keeps_nonce(self, client, signer, failing_step):
        """A transaction that never left the node leaves no nonce gap."""
        error = ChainClientError(f"L1: {failing_step} failed")
        step = {
            "build": client.build_transaction,
            "sign": signer.sign_transaction,
            "send": client.send_raw_transaction,
        }[failing_step]
        original = step.side_effect
        step.side_effect = error
        sender = TransactionSender(client, signer)

        with pytest.raises(ChainClientError):
            sender.send(FakeFunction("proveWithdrawalTransaction"))

        step.side_effect = original
        sender.send(FakeFunction("proveWithdrawalTransaction"))

        assert signer.sign_transaction.call_args.args[0]["nonce"] == 12
        assert sender.nonce_counter.current == 13
