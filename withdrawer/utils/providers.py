import os
from typing import Optional

from dotenv import load_dotenv
from web3 import Web3

from .config import ENV


load_dotenv()


def get_l1_rpc_url(rpc_url: Optional[str] = None) -> Optional[str]:
    """Explicit URL first, `L1_RPC_URL` from the environment (or `.env`) second."""
    return rpc_url or os.getenv(ENV.L1_RPC_URL)


def get_web3(rpc_url: str) -> Web3:
    if not rpc_url:
        raise ValueError("RPC url must not be empty")

    w3 = Web3(Web3.HTTPProvider(rpc_url))

    return w3
