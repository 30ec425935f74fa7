"""
Pytest configuration and shared fixtures for jar monitor tests.
"""

import pytest
from eth_abi import encode


USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
UNI = "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984"
UNI_V2_PAIR = "0xb4e16d0168e52d35cacd2c6185b44281ec28c9dc"


def encoded_string(value: str) -> str:
    """ABI-encode a string return value as eth_call hex."""
    return "0x" + encode(["string"], [value]).hex()


def encoded_uint(value: int) -> str:
    """ABI-encode a uint256 return value as eth_call hex."""
    return "0x" + encode(["uint256"], [value]).hex()


@pytest.fixture
def sample_jar_address():
    """The token jar address."""
    return "0xf38521f130fccf29db1961597bc5d2b60f995f85"


@pytest.fixture
def mock_alchemy_api_key():
    """Mock Alchemy API key for testing."""
    return "test-api-key-12345"


@pytest.fixture
def alchemy_url(mock_alchemy_api_key):
    """Ethereum mainnet JSON-RPC URL for the mock key."""
    return f"https://eth-mainnet.g.alchemy.com/v2/{mock_alchemy_api_key}"
