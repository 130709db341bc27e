import os
from enum import StrEnum
from typing import Dict, Final, NamedTuple, Optional

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address


class ENV(StrEnum):
    L1_RPC_URL = "L1_RPC_URL"
    PRIVATE_KEY = "PRIVATE_KEY"


class Network(NamedTuple):
    """
    Everything needed to reach one OP-Stack chain and its L1 contracts.

    Exactly one of `l2oo_address` (legacy output oracle) and `dgf_address`
    (dispute game factory) is set, matching `fault_proofs`.
    """

    name: str
    l2_rpc: str
    portal_address: ChecksumAddress
    fault_proofs: bool
    l2oo_address: Optional[ChecksumAddress] = None
    dgf_address: Optional[ChecksumAddress] = None


def _legacy(name: str, l2_rpc: str, portal: str, l2oo: str) -> Network:
    return Network(
        name=name,
        l2_rpc=l2_rpc,
        portal_address=to_checksum_address(portal),
        fault_proofs=False,
        l2oo_address=to_checksum_address(l2oo),
    )


def _fault_proof(name: str, l2_rpc: str, portal: str, dgf: str) -> Network:
    return Network(
        name=name,
        l2_rpc=l2_rpc,
        portal_address=to_checksum_address(portal),
        fault_proofs=True,
        dgf_address=to_checksum_address(dgf),
    )


NETWORKS: Final[Dict[str, Network]] = {
    "base-mainnet": _fault_proof(
        "base-mainnet",
        "https://mainnet.base.org",
        "0x49048044D57e1C92A77f79988d21Fa8fAF74E97e",
        "0x43edB88C4B80fDD2AdFF2412A7BebF9dF42cB40e",
    ),
    "base-sepolia": _fault_proof(
        "base-sepolia",
        "https://sepolia.base.org",
        "0x49f53e41452C74589E85cA1677426Ba426459e85",
        "0xd6E6dBf4F7EA0ac412fD8b65ED297e64BB7a06E1",
    ),
    "op-mainnet": _fault_proof(
        "op-mainnet",
        "https://mainnet.optimism.io",
        "0xbEb5Fc579115071764c7423A4f12eDde41f106Ed",
        "0xe5965Ab5962eDc7477C8520243A95517CD252fA9",
    ),
    "op-sepolia": _fault_proof(
        "op-sepolia",
        "https://sepolia.optimism.io",
        "0x16Fc5058F25648194471939df75CF27A2fdC48BC",
        "0x05F9613aDB30026FFd634f38e5C4dFd30a197Fa1",
    ),
    "base-goerli": _legacy(
        "base-goerli",
        "https://goerli.base.org",
        "0xe93c8cD0D409341205A592f8c4Ac1A5fe5585cfA",
        "0x2A35891ff30313CcFa6CE88dcf3858bb075A2298",
    ),
    "op-goerli": _legacy(
        "op-goerli",
        "https://goerli.optimism.io",
        "0x5b47E1A08Ea6d985D6649300584e6722Ec4B1383",
        "0xE6Dfba0953616Bacab0c9A8ecb3a9BBa77FC15c0",
    ),
}

DEFAULT_NETWORK = "base-mainnet"


# L2 PREDEPLOYS

L2_TO_L1_MESSAGE_PASSER: Final[ChecksumAddress] = to_checksum_address(
    "0x4200000000000000000000000000000000000016"
)


# ABI

_ABI_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "op_stack", "ABI")

ABI_OPTIMISM_PORTAL = os.path.join(_ABI_DIR, "OptimismPortal.json")
ABI_OPTIMISM_PORTAL_2 = os.path.join(_ABI_DIR, "OptimismPortal2.json")
ABI_L2_OUTPUT_ORACLE = os.path.join(_ABI_DIR, "L2OutputOracle.json")
ABI_DISPUTE_GAME_FACTORY = os.path.join(_ABI_DIR, "DisputeGameFactory.json")
ABI_FAULT_DISPUTE_GAME = os.path.join(_ABI_DIR, "FaultDisputeGame.json")
ABI_L2_TO_L1_MESSAGE_PASSER = os.path.join(_ABI_DIR, "L2ToL1MessagePasser.json")


# GAS ESTIMATE

MULTIPLIER = 1.3
BUFFER = 20_000


# CONFIRMATION

POLL_INTERVAL = 5
CONFIRMATION_TIMEOUT = 5 * 60

# interval of the optional wait for a finality anchor covering the withdrawal
PROPOSAL_POLL_INTERVAL = 60


# SIGNER

DEFAULT_HD_PATH = "m/44'/60'/0'/0/0"
