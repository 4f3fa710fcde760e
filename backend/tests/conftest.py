"""
Pytest Configuration for Basket Verifier Tests

Run all tests: python -m pytest tests/ -v
Run unit tests only: python -m pytest tests/ -v -m "not integration"
"""

import pytest
import sys
from contextlib import ExitStack
from pathlib import Path
from unittest.mock import AsyncMock, patch

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env")

from data_sources.chainlink_feeds import InMemoryFeedDirectory, PriceFeedRecord
from infrastructure.config import VerifierConfig
from infrastructure.errors import MetadataUnavailableError, error_tracker
from services.chainlink_resolver import ChainlinkFeedResolver
from services.token_metadata import TokenMetadataProvider
from services.uniswap_v2_pathfinder import UniswapV2PathFinder
from services.uniswap_v3_pool_finder import UniswapV3PoolFinder, V3PoolState
from services.verify_types import TokenMetadata


# =============================================================================
# FIXTURES - Shared across all test files
# =============================================================================

ADDRESSES = {
    "USDC": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
    "WETH": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    "WBTC": "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599",
    "LINK": "0x514910771AF9Ca656af840dff83E8264EcF986CA",
    "UNI": "0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984",
    "FACTORY": "0xbCa3dCabC5DEe8C209d50f3c7B132e46B217ba8a",
}

FEED_PROXIES = {
    "usdc-usd": "0x8fFfFfd4AfB6115b954Bd326cbe7B4BA576818f6",
    "btc-usd": "0xF4030086522a5bEEa4988F8cA5B36dbC97BeE88c",
    "eth-usd": "0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419",
    "link-usd": "0x2c1d072e956AFFC0D435Cb7AC38EF18d24d9127c",
}


@pytest.fixture
def test_addresses():
    """Standard test addresses for Ethereum mainnet"""
    return dict(ADDRESSES)


@pytest.fixture
def feed_proxies():
    """Chainlink proxy addresses by path key"""
    return dict(FEED_PROXIES)


@pytest.fixture
def feed_records():
    """Chainlink feed records as the ingestion job stores them"""
    return [
        (1, PriceFeedRecord(FEED_PROXIES["usdc-usd"], "usdc-usd", ("USDC", "USD"), 8)),
        (1, PriceFeedRecord(FEED_PROXIES["btc-usd"], "btc-usd", ("BTC", "USD"), 8)),
        (1, PriceFeedRecord(FEED_PROXIES["eth-usd"], "eth-usd", ("ETH", "USD"), 8)),
        (1, PriceFeedRecord(FEED_PROXIES["link-usd"], "link-usd", ("LINK", "USD"), 8)),
    ]


@pytest.fixture
def feed_directory(feed_records):
    return InMemoryFeedDirectory(feed_records)


@pytest.fixture
def verifier_config():
    """Default config; chain 1 is supported out of the box"""
    config = VerifierConfig()
    config.chains[1].rpc_url = "http://localhost:8545"
    return config


@pytest.fixture(autouse=True)
def clear_error_tracker():
    error_tracker.clear()
    yield
    error_tracker.clear()


# =============================================================================
# FAKE CHAIN - in-memory tokens, feeds, pairs and pools
# =============================================================================

class FakeChain:
    """
    Chain state served to the verifier through patched read methods.

    Reserves and balances are given in whole tokens and scaled by decimals.
    """

    def __init__(self):
        self.tokens = {}
        self.prices = {}
        self.v2_pairs = {}
        self.v3_pools = {}
        self._next_address = 0x1000

    def _new_address(self) -> str:
        self._next_address += 1
        return "0x" + f"{self._next_address:040x}"

    def add_token(self, symbol: str, decimals: int, address: str = None) -> str:
        address = address or ADDRESSES.get(symbol) or self._new_address()
        self.tokens[address.lower()] = TokenMetadata(address, symbol, decimals)
        return address

    def set_price(self, path_key: str, price: float):
        self.prices[FEED_PROXIES[path_key].lower()] = price

    def _raw(self, token: str, amount: float) -> int:
        return int(amount * 10 ** self.tokens[token.lower()].decimals)

    def add_v2_pair(self, token_a: str, token_b: str, reserve_a: float, reserve_b: float) -> str:
        pair = self._new_address()
        key = frozenset((token_a.lower(), token_b.lower()))
        self.v2_pairs[key] = (pair, {
            token_a.lower(): self._raw(token_a, reserve_a),
            token_b.lower(): self._raw(token_b, reserve_b),
        })
        return pair

    def add_v3_pool(
        self,
        token_a: str,
        token_b: str,
        fee: int,
        balance_a: float,
        balance_b: float,
        liquidity: int = 10 ** 18,
        sqrt_price_x96: int = 0,
        token0: str = None,
    ) -> str:
        pool = self._new_address()
        key = (frozenset((token_a.lower(), token_b.lower())), fee)
        token0 = token0 or min(token_a.lower(), token_b.lower())
        self.v3_pools[key] = (pool, {
            token_a.lower(): self._raw(token_a, balance_a),
            token_b.lower(): self._raw(token_b, balance_b),
        }, liquidity, sqrt_price_x96, token0.lower())
        return pool

    # Patched read methods

    async def read_metadata(self, address, chain_id):
        token = self.tokens.get(address.lower())
        if token is None:
            raise MetadataUnavailableError(address, ValueError("execution reverted"))
        return token

    async def latest_price(self, feed, chain_id):
        return self.prices.get(feed.proxy_address.lower())

    async def get_pair(self, token_a, token_b):
        entry = self.v2_pairs.get(frozenset((token_a.lower(), token_b.lower())))
        return entry[0] if entry else None

    async def get_reserves(self, pair, token_a):
        for address, reserves in self.v2_pairs.values():
            if address == pair:
                other = [t for t in reserves if t != token_a.lower()][0]
                return reserves[token_a.lower()], reserves[other]
        raise AssertionError(f"unknown pair {pair}")

    async def get_pool(self, token_a, token_b, fee):
        entry = self.v3_pools.get((frozenset((token_a.lower(), token_b.lower())), fee))
        return entry[0] if entry else None

    async def get_pool_state(self, pool, token_a, token_b):
        for address, balances, liquidity, sqrt_price, token0 in self.v3_pools.values():
            if address == pool:
                return V3PoolState(
                    balance_a=balances[token_a.lower()],
                    balance_b=balances[token_b.lower()],
                    liquidity=liquidity,
                    sqrt_price_x96=sqrt_price,
                    a_is_token0=token0 == token_a.lower(),
                )
        raise AssertionError(f"unknown pool {pool}")

    def patch_all(self, stack: ExitStack) -> dict:
        mocks = {
            "read": stack.enter_context(patch.object(
                TokenMetadataProvider, "read", new=AsyncMock(side_effect=self.read_metadata))),
            "latest_price": stack.enter_context(patch.object(
                ChainlinkFeedResolver, "get_latest_price", new=AsyncMock(side_effect=self.latest_price))),
            "get_pair": stack.enter_context(patch.object(
                UniswapV2PathFinder, "get_pair", new=AsyncMock(side_effect=self.get_pair))),
            "get_reserves": stack.enter_context(patch.object(
                UniswapV2PathFinder, "get_reserves", new=AsyncMock(side_effect=self.get_reserves))),
            "get_pool": stack.enter_context(patch.object(
                UniswapV3PoolFinder, "get_pool", new=AsyncMock(side_effect=self.get_pool))),
            "get_pool_state": stack.enter_context(patch.object(
                UniswapV3PoolFinder, "get_pool_state", new=AsyncMock(side_effect=self.get_pool_state))),
        }
        return mocks


@pytest.fixture
def fake_chain():
    """FakeChain with USDC, WETH and WBTC registered and every chain read patched"""
    chain = FakeChain()
    chain.add_token("USDC", 6)
    chain.add_token("WETH", 18)
    chain.add_token("WBTC", 8)
    chain.set_price("usdc-usd", 1.0)
    chain.set_price("eth-usd", 2000.0)
    chain.set_price("btc-usd", 60000.0)
    with ExitStack() as stack:
        chain.mocks = chain.patch_all(stack)
        yield chain


# =============================================================================
# MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (use real RPC endpoints)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
