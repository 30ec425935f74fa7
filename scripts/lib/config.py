"""
Static configuration for the UNI burn monitor.

Contract addresses, burn parameters and polling defaults. The Alchemy API
key is read from the command line or the ALCHEMY_API_KEY environment
variable.
"""

import os
from typing import Dict, Optional, Tuple


# Contract that accepts the burn and releases the jar's holdings
FIREPIT_ADDRESS = "0x0D5Cd355e2aBEB8fb1552F56c965B867346d6721"

# Jar whose holdings are valued
TOKEN_JAR_ADDRESS = "0xf38521f130fccf29db1961597bc5d2b60f995f85"

# Token burned to release the jar
UNI_ADDRESS = "0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984"
BURN_QUANTITY = 4000

REFRESH_INTERVAL = 60.0  # seconds
PRICE_CHUNK_SIZE = 30

# Well-known mainnet tokens: address -> (symbol, decimals)
KNOWN_TOKENS: Dict[str, Tuple[str, int]] = {
    "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48": ("USDC", 6),
    "0xdac17f958d2ee523a2206206994597c13d831ec7": ("USDT", 6),
    "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2": ("WETH", 18),
    "0x6b175474e89094c44da98b954eedeac495271d0f": ("DAI", 18),
    "0x2260fac5e5542a773aa44fbcfedf7c193bc2c599": ("WBTC", 8),
    "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984": ("UNI", 18),
}


def get_api_key(api_key: Optional[str] = None) -> str:
    """
    Resolve the Alchemy API key.

    Args:
        api_key: Explicit key (takes precedence over the environment)

    Returns:
        The API key

    Raises:
        ValueError: If no key is configured
    """
    key = api_key or os.getenv("ALCHEMY_API_KEY")
    if not key:
        raise ValueError(
            "Alchemy API key required. "
            "Set ALCHEMY_API_KEY env var or pass --api-key."
        )
    return key
