"""
Uniswap V3 Pool Finder Tests
Fee-tier scan, balance valuation and slot0 spot pricing

Run: python -m pytest tests/test_uniswap_v3_pool_finder.py -v
"""

import math

import pytest
from unittest.mock import AsyncMock, MagicMock

from infrastructure.config import ZERO_ADDRESS
from services.uniswap_v3_pool_finder import (
    Q96,
    UniswapV3PoolFinder,
    V3PoolState,
    pool_liquidity_usd,
    spot_price_a_in_b,
)

# USDC is token0 of USDC/WETH; 2000 USDC per WETH -> 5e8 raw WETH per raw USDC
SQRT_PRICE_2000 = int(math.sqrt(5e8) * Q96)


@pytest.fixture
def finder(verifier_config):
    return UniswapV3PoolFinder(MagicMock(), verifier_config.chains[1], min_liquidity_usd=1000.0)


# =============================================================================
# TEST: Spot price
# =============================================================================

class TestSpotPrice:

    def test_token0_side(self):
        state = V3PoolState(0, 0, 1, SQRT_PRICE_2000, a_is_token0=True)
        # 1 USDC buys 0.0005 WETH
        assert spot_price_a_in_b(state, 6, 18) == pytest.approx(0.0005, rel=1e-6)

    def test_token1_side(self):
        state = V3PoolState(0, 0, 1, SQRT_PRICE_2000, a_is_token0=False)
        # 1 WETH buys 2000 USDC
        assert spot_price_a_in_b(state, 18, 6) == pytest.approx(2000, rel=1e-6)

    def test_uninitialized_pool(self):
        assert spot_price_a_in_b(V3PoolState(0, 0, 0, 0, True), 6, 18) is None


class TestPoolValuation:

    def test_missing_side_derived_from_spot(self):
        state = V3PoolState(1_000 * 10 ** 6, 5 * 10 ** 17, 1, SQRT_PRICE_2000, a_is_token0=True)

        usd = pool_liquidity_usd(state, 6, 18, 1.0, None)

        assert usd == pytest.approx(2_000, rel=1e-6)

    def test_no_prices_is_zero(self):
        state = V3PoolState(1_000 * 10 ** 6, 5 * 10 ** 17, 1, SQRT_PRICE_2000, a_is_token0=True)
        assert pool_liquidity_usd(state, 6, 18, None, None) == 0.0


# =============================================================================
# TEST: Fee-tier scan
# =============================================================================

class TestFindBestPool:

    @pytest.mark.asyncio
    async def test_deepest_qualifying_tier_wins(self, finder, fake_chain, test_addresses):
        fake_chain.add_v3_pool(test_addresses["USDC"], test_addresses["WETH"], 500, 1_000_000, 500, sqrt_price_x96=SQRT_PRICE_2000)
        fake_chain.add_v3_pool(test_addresses["USDC"], test_addresses["WETH"], 3000, 100_000, 50, sqrt_price_x96=SQRT_PRICE_2000)

        result = await finder.find_best_pool(test_addresses["USDC"], test_addresses["WETH"], 6, 18, 1.0, 2000.0)

        assert result.exists
        assert result.is_direct_pool
        assert result.fee_tier == 500
        assert result.liquidity_usd == pytest.approx(2_000_000, rel=1e-6)
        print(f"✅ USDC/WETH best tier: {result.fee_tier} (${result.liquidity_usd:,.0f})")

    @pytest.mark.asyncio
    async def test_dex_only_prices_wrapped_native_from_deepest_pool(self, finder, fake_chain, test_addresses):
        fake_chain.add_v3_pool(
            test_addresses["USDC"], test_addresses["WETH"], 500, 1_000_000, 500,
            liquidity=10 ** 20, sqrt_price_x96=SQRT_PRICE_2000,
        )
        # Thin pool at a stale price; must not drive the WETH price
        fake_chain.add_v3_pool(
            test_addresses["USDC"], test_addresses["WETH"], 10000, 10, 1,
            liquidity=10 ** 10, sqrt_price_x96=int(math.sqrt(1e9) * Q96),
        )

        result = await finder.find_best_pool(test_addresses["USDC"], test_addresses["WETH"], 6, 18)

        assert result.exists
        assert result.fee_tier == 500
        assert await finder.dex_price(finder.chain.native_asset) == pytest.approx(2000, rel=1e-6)

    @pytest.mark.asyncio
    async def test_below_threshold_reports_best_candidate(self, finder, fake_chain, test_addresses):
        fake_chain.add_v3_pool(test_addresses["USDC"], test_addresses["WETH"], 3000, 300, 0.15, sqrt_price_x96=SQRT_PRICE_2000)

        result = await finder.find_best_pool(test_addresses["USDC"], test_addresses["WETH"], 6, 18, 1.0, 2000.0)

        assert not result.exists
        assert result.candidate_found
        assert result.best_candidate_usd == pytest.approx(600, rel=1e-6)

    @pytest.mark.asyncio
    async def test_no_pool_on_any_tier(self, finder, fake_chain, test_addresses):
        result = await finder.find_best_pool(test_addresses["USDC"], test_addresses["WBTC"], 6, 8, 1.0, 60_000.0)

        assert not result.exists
        assert not result.candidate_found
        assert fake_chain.mocks["get_pool"].await_count == 4

    @pytest.mark.asyncio
    async def test_equal_depth_prefers_lower_fee(self, finder, fake_chain, test_addresses):
        for fee in (3000, 500):
            fake_chain.add_v3_pool(test_addresses["USDC"], test_addresses["WETH"], fee, 10_000, 5, sqrt_price_x96=SQRT_PRICE_2000)

        result = await finder.find_best_pool(test_addresses["USDC"], test_addresses["WETH"], 6, 18, 1.0, 2000.0)

        assert result.fee_tier == 500


# =============================================================================
# TEST: Chain reads (mocked reader)
# =============================================================================

class TestPoolReads:

    POOL = "0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640"

    @pytest.mark.asyncio
    async def test_zero_address_means_no_pool(self, finder, test_addresses):
        finder.reader.call = AsyncMock(return_value=ZERO_ADDRESS)

        assert await finder.get_pool(test_addresses["USDC"], test_addresses["WETH"], 500) is None

    @pytest.mark.asyncio
    async def test_pool_address_returned(self, finder, test_addresses):
        finder.reader.call = AsyncMock(return_value=self.POOL)

        assert await finder.get_pool(test_addresses["USDC"], test_addresses["WETH"], 500) == self.POOL

    @pytest.mark.asyncio
    async def test_state_oriented_when_token_a_is_token1(self, finder, test_addresses):
        slot0 = (SQRT_PRICE_2000, 0, 0, 1, 1, 0, True)
        # token0, liquidity, slot0, balanceOf(token_a), balanceOf(token_b)
        finder.reader.call = AsyncMock(side_effect=[
            test_addresses["USDC"], 10 ** 18, slot0, 1_000 * 10 ** 18, 2_000_000 * 10 ** 6,
        ])

        state = await finder.get_pool_state(self.POOL, test_addresses["WETH"], test_addresses["USDC"])

        assert state.a_is_token0 is False
        assert state.balance_a == 1_000 * 10 ** 18
        assert state.balance_b == 2_000_000 * 10 ** 6
        assert state.sqrt_price_x96 == SQRT_PRICE_2000
        # 1 WETH buys 2000 USDC
        assert spot_price_a_in_b(state, 18, 6) == pytest.approx(2000, rel=1e-6)

    @pytest.mark.asyncio
    async def test_state_oriented_when_token_a_is_token0(self, finder, test_addresses):
        slot0 = (SQRT_PRICE_2000, 0, 0, 1, 1, 0, True)
        finder.reader.call = AsyncMock(side_effect=[
            test_addresses["USDC"].lower(), 10 ** 18, slot0, 2_000_000 * 10 ** 6, 1_000 * 10 ** 18,
        ])

        state = await finder.get_pool_state(self.POOL, test_addresses["USDC"], test_addresses["WETH"])

        assert state.a_is_token0 is True
        assert state.liquidity == 10 ** 18
        assert pool_liquidity_usd(state, 6, 18, 1.0, None) == pytest.approx(4_000_000, rel=1e-6)
