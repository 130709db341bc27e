"""
op-withdrawer: prove and finalize OP-Stack withdrawals on L1.

Run it once to prove a withdrawal, and again after the finalization period to
finalize it. Running it on a finalized withdrawal does nothing.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from typing import List, Optional

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from withdrawer.op_stack.chain_client import ChainClient
from withdrawer.op_stack.classifier import WithdrawalClassifier
from withdrawer.op_stack.confirmation import ConfirmationDriver
from withdrawer.op_stack.custom_errors import ConfigError, InvalidNetworkError, OPStackError
from withdrawer.op_stack.transactions import TransactionSender
from withdrawer.op_stack.types import AdvanceResult
from withdrawer.op_stack.withdrawer import Withdrawer, create_strategy
from withdrawer.utils.config import (
    CONFIRMATION_TIMEOUT,
    DEFAULT_HD_PATH,
    DEFAULT_NETWORK,
    ENV,
    NETWORKS,
    Network,
)
from withdrawer.utils.providers import get_l1_rpc_url
from withdrawer.utils.signer import Signer, create_signer


logger = logging.getLogger("withdrawer")

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="op-withdrawer",
        description="Prove and finalize OP-Stack L2 to L1 withdrawals",
    )
    parser.add_argument("--rpc", type=str, help="Ethereum L1 RPC url (default: $L1_RPC_URL)")
    parser.add_argument(
        "--network",
        type=str,
        default=DEFAULT_NETWORK,
        help=f"op-stack network to withdraw from (one of: {', '.join(NETWORKS)})",
    )
    parser.add_argument("--l2-rpc", type=str, help="Custom network L2 RPC url")
    parser.add_argument(
        "--portal-address", type=str, help="Custom network OptimismPortal address"
    )
    parser.add_argument(
        "--l2oo-address", type=str, help="Custom network L2OutputOracle address"
    )
    parser.add_argument(
        "--dgf-address", type=str, help="Custom network DisputeGameFactory address"
    )
    parser.add_argument(
        "--fault-proofs",
        action="store_true",
        help="Custom network uses fault proofs (requires --dgf-address)",
    )
    parser.add_argument(
        "--withdrawal", type=str, help="TX hash of the L2 withdrawal transaction"
    )
    parser.add_argument(
        "--private-key",
        type=str,
        help="Private key to use for signing transactions (default: $PRIVATE_KEY)",
    )
    parser.add_argument(
        "--ledger", action="store_true", help="Use ledger device for signing transactions"
    )
    parser.add_argument(
        "--mnemonic", type=str, help="Mnemonic to use for signing transactions"
    )
    parser.add_argument(
        "--hd-path",
        type=str,
        default=DEFAULT_HD_PATH,
        help="Hierarchical deterministic derivation path for mnemonic or ledger",
    )
    parser.add_argument(
        "--reprove",
        action="store_true",
        help="Prove again if the existing proof has been invalidated",
    )
    parser.add_argument(
        "--wait-for-proposal",
        type=float,
        metavar="SECONDS",
        help="Wait up to SECONDS for an L1 anchor covering the withdrawal",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=CONFIRMATION_TIMEOUT,
        metavar="SECONDS",
        help="Seconds to wait for each L1 transaction to confirm",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    return parser


def _checksum(value: str, flag: str) -> ChecksumAddress:
    try:
        return to_checksum_address(value)
    except (ValueError, TypeError) as e:
        raise InvalidNetworkError(f"Invalid {flag}: {value}", original_error=e) from e


def resolve_network(args: argparse.Namespace) -> Network:
    """
    The preset named by `--network`, replaced by a custom network as soon as
    any override flag is given.

    Raises
    ------
    InvalidNetworkError
        Unknown preset, or an incomplete or inconsistent set of overrides.
    """
    network = NETWORKS.get(args.network)

    if network is None:
        raise InvalidNetworkError(
            f"Unknown network: {args.network} (one of: {', '.join(NETWORKS)})"
        )

    overrides = [
        args.l2_rpc,
        args.portal_address,
        args.l2oo_address,
        args.dgf_address,
        args.fault_proofs,
    ]

    if not any(overrides):
        return network

    if not args.l2_rpc:
        raise InvalidNetworkError("Missing --l2-rpc flag")

    if not args.portal_address:
        raise InvalidNetworkError("Missing --portal-address flag")

    if args.fault_proofs:
        if not args.dgf_address:
            raise InvalidNetworkError("Missing --dgf-address flag")
        if args.l2oo_address:
            raise InvalidNetworkError("--l2oo-address can't be used with --fault-proofs")

        return Network(
            name="custom",
            l2_rpc=args.l2_rpc,
            portal_address=_checksum(args.portal_address, "--portal-address"),
            fault_proofs=True,
            dgf_address=_checksum(args.dgf_address, "--dgf-address"),
        )

    if not args.l2oo_address:
        raise InvalidNetworkError("Missing --l2oo-address flag")
    if args.dgf_address:
        raise InvalidNetworkError("--dgf-address requires --fault-proofs")

    return Network(
        name="custom",
        l2_rpc=args.l2_rpc,
        portal_address=_checksum(args.portal_address, "--portal-address"),
        fault_proofs=False,
        l2oo_address=_checksum(args.l2oo_address, "--l2oo-address"),
    )


def resolve_signer(args: argparse.Namespace) -> Signer:
    private_key = args.private_key

    # `.env` is only a fallback when no signer was picked on the command line
    if not private_key and not args.mnemonic and not args.ledger:
        private_key = os.getenv(ENV.PRIVATE_KEY)

    return create_signer(
        private_key=private_key,
        mnemonic=args.mnemonic,
        hd_path=args.hd_path,
        ledger=args.ledger,
    )


def parse_withdrawal_hash(value: Optional[str]) -> HexBytes:
    if not value:
        raise ConfigError("Missing --withdrawal flag")

    try:
        tx_hash = HexBytes(value)
    except (ValueError, TypeError) as e:
        raise ConfigError(f"Invalid --withdrawal: {value}", original_error=e) from e

    if len(tx_hash) != 32:
        raise ConfigError(f"Invalid --withdrawal: {value} is not a 32-byte hash")

    return tx_hash


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    # third-party loggers stay at WARNING
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def build_withdrawer(
    network: Network,
    l1_rpc_url: str,
    signer: Signer,
    args: argparse.Namespace,
    cancel_event: threading.Event,
) -> Withdrawer:
    l1_client = ChainClient.from_rpc_url(l1_rpc_url, "L1")
    l2_client = ChainClient.from_rpc_url(network.l2_rpc, "L2")

    strategy = create_strategy(network, l1_client, l2_client, signer.address)
    classifier = WithdrawalClassifier(l2_client, strategy)

    sender = TransactionSender(l1_client, signer)
    driver = ConfirmationDriver(
        l1_client, sender, timeout=args.timeout, cancel_event=cancel_event
    )

    return Withdrawer(classifier, strategy, driver, reprove=args.reprove)


def run(args: argparse.Namespace, cancel_event: threading.Event) -> AdvanceResult:
    network = resolve_network(args)
    tx_hash = parse_withdrawal_hash(args.withdrawal)

    l1_rpc_url = get_l1_rpc_url(args.rpc)
    if not l1_rpc_url:
        raise ConfigError("Missing --rpc flag")

    signer = resolve_signer(args)

    logger.info(
        "Withdrawing %s on %s from %s", tx_hash.to_0x_hex(), network.name, signer.address
    )

    withdrawer = build_withdrawer(network, l1_rpc_url, signer, args, cancel_event)

    return withdrawer.advance(tx_hash, wait_for_proposal=args.wait_for_proposal)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    cancel_event = threading.Event()

    def cancel(signum, frame):
        logger.warning("Interrupted, cancelling")
        cancel_event.set()

    previous_handler = None
    if threading.current_thread() is threading.main_thread():
        previous_handler = signal.signal(signal.SIGINT, cancel)

    try:
        result = run(args, cancel_event)
    except OPStackError as e:
        stage = e.stage or "configuration"
        console.print(f"[red]Error ({stage}):[/red] {escape(str(e))}")
        return 1
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    console.print(f"[green]{escape(result.message)}[/green]")

    return 0


if __name__ == "__main__":
    sys.exit(main())
