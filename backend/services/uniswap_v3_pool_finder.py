"""
Uniswap V3 Pool Finder
Checks the direct pool for a token pair on every configured fee tier and
values each pool by the token balances it holds.

Only direct pools are considered. A side without a known price is priced
from the pool's own slot0 spot price against the priced side.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from infrastructure.config import ZERO_ADDRESS, ChainConfig, IntermediateAsset
from infrastructure.rpc import ChainReader, checksum
from services.verify_types import V3PoolResult

logger = logging.getLogger("UniswapV3PoolFinder")

Q96 = 2 ** 96

V3_FACTORY_ABI = [
    {"inputs": [
        {"name": "tokenA", "type": "address"},
        {"name": "tokenB", "type": "address"},
        {"name": "fee", "type": "uint24"},
    ],
     "name": "getPool", "outputs": [{"name": "pool", "type": "address"}],
     "stateMutability": "view", "type": "function"},
]

V3_POOL_ABI = [
    {"inputs": [], "name": "liquidity", "outputs": [{"type": "uint128"}],
     "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "slot0",
     "outputs": [
         {"name": "sqrtPriceX96", "type": "uint160"},
         {"name": "tick", "type": "int24"},
         {"name": "observationIndex", "type": "uint16"},
         {"name": "observationCardinality", "type": "uint16"},
         {"name": "observationCardinalityNext", "type": "uint16"},
         {"name": "feeProtocol", "type": "uint8"},
         {"name": "unlocked", "type": "bool"},
     ],
     "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "token0", "outputs": [{"type": "address"}],
     "stateMutability": "view", "type": "function"},
]

ERC20_BALANCE_ABI = [
    {"inputs": [{"name": "account", "type": "address"}], "name": "balanceOf",
     "outputs": [{"type": "uint256"}], "stateMutability": "view", "type": "function"},
]


@dataclass(frozen=True)
class V3PoolState:
    """Balances and spot state of one pool, oriented to (token_a, token_b)"""
    balance_a: int
    balance_b: int
    liquidity: int
    sqrt_price_x96: int
    a_is_token0: bool


def spot_price_a_in_b(state: V3PoolState, decimals_a: int, decimals_b: int) -> Optional[float]:
    """How many token_b one token_a buys at the pool's current price."""
    if state.sqrt_price_x96 <= 0:
        return None
    raw = (state.sqrt_price_x96 / Q96) ** 2  # token1 per token0, raw units
    if state.a_is_token0:
        return raw * 10 ** (decimals_a - decimals_b)
    if raw == 0:
        return None
    return (1 / raw) * 10 ** (decimals_a - decimals_b)


def pool_liquidity_usd(
    state: V3PoolState,
    decimals_a: int,
    decimals_b: int,
    price_a: Optional[float],
    price_b: Optional[float],
) -> float:
    """USD value of both balances held by a pool."""
    amount_a = state.balance_a / 10 ** decimals_a
    amount_b = state.balance_b / 10 ** decimals_b

    if not (price_a and price_b):
        spot = spot_price_a_in_b(state, decimals_a, decimals_b)
        if spot:
            if price_a and not price_b:
                price_b = price_a / spot
            elif price_b and not price_a:
                price_a = price_b * spot

    return amount_a * (price_a or 0.0) + amount_b * (price_b or 0.0)


class UniswapV3PoolFinder:
    """Request-scoped V3 direct-pool search on one chain."""

    def __init__(
        self,
        reader: ChainReader,
        chain: ChainConfig,
        min_liquidity_usd: float,
        fee_tiers: Sequence[int] = (100, 500, 3000, 10000),
    ):
        self.reader = reader
        self.chain = chain
        self.min_liquidity_usd = min_liquidity_usd
        self.fee_tiers = tuple(fee_tiers)
        self._dex_prices: Dict[str, Optional[float]] = {}

    # ============================================
    # CHAIN READS
    # ============================================

    async def get_pool(self, token_a: str, token_b: str, fee: int) -> Optional[str]:
        factory = self.reader.contract(self.chain.chain_id, self.chain.uniswap_v3_factory, V3_FACTORY_ABI)
        pool = await self.reader.call(
            self.chain.chain_id,
            factory.functions.getPool(checksum(token_a), checksum(token_b), fee),
            "v3.getPool",
        )
        if not pool or pool.lower() == ZERO_ADDRESS:
            return None
        return pool

    async def get_pool_state(self, pool_address: str, token_a: str, token_b: str) -> V3PoolState:
        chain_id = self.chain.chain_id
        pool = self.reader.contract(chain_id, pool_address, V3_POOL_ABI)
        token0 = await self.reader.call(chain_id, pool.functions.token0(), "v3.token0")
        liquidity = await self.reader.call(chain_id, pool.functions.liquidity(), "v3.liquidity")
        slot0 = await self.reader.call(chain_id, pool.functions.slot0(), "v3.slot0")

        erc20_a = self.reader.contract(chain_id, token_a, ERC20_BALANCE_ABI)
        erc20_b = self.reader.contract(chain_id, token_b, ERC20_BALANCE_ABI)
        balance_a = await self.reader.call(chain_id, erc20_a.functions.balanceOf(checksum(pool_address)), "balanceOf")
        balance_b = await self.reader.call(chain_id, erc20_b.functions.balanceOf(checksum(pool_address)), "balanceOf")

        return V3PoolState(
            balance_a=int(balance_a),
            balance_b=int(balance_b),
            liquidity=int(liquidity),
            sqrt_price_x96=int(slot0[0]),
            a_is_token0=token0.lower() == token_a.lower(),
        )

    # ============================================
    # PRICING
    # ============================================

    async def dex_price(self, asset: IntermediateAsset) -> Optional[float]:
        """USD price of a canonical intermediate from its deepest V3 pool against the stable."""
        addr = asset.address.lower()
        if addr in self._dex_prices:
            return self._dex_prices[addr]

        price: Optional[float] = None
        stable = self.chain.stable_asset
        if asset.is_stable:
            price = 1.0
        elif stable is not None:
            deepest: Optional[V3PoolState] = None
            for fee in self.fee_tiers:
                pool = await self.get_pool(asset.address, stable.address, fee)
                if pool is None:
                    continue
                state = await self.get_pool_state(pool, asset.address, stable.address)
                if deepest is None or state.liquidity > deepest.liquidity:
                    deepest = state
            if deepest is not None:
                price = spot_price_a_in_b(deepest, asset.decimals, stable.decimals)
            if price is None:
                logger.warning(f"No V3 {asset.symbol}/{stable.symbol} pool to price {asset.symbol} on {self.chain.name}")

        self._dex_prices[addr] = price
        return price

    async def _price_of(self, token: str, price: Optional[float]) -> Optional[float]:
        if price:
            return price
        asset = self.chain.intermediate_for(token)
        if asset is not None:
            return await self.dex_price(asset)
        return None

    # ============================================
    # POOL SEARCH
    # ============================================

    async def find_best_pool(
        self,
        token_a: str,
        token_b: str,
        decimals_a: int,
        decimals_b: int,
        price_a: Optional[float] = None,
        price_b: Optional[float] = None,
    ) -> V3PoolResult:
        price_a = await self._price_of(token_a, price_a)
        price_b = await self._price_of(token_b, price_b)

        candidates: list = []
        for fee in self.fee_tiers:
            pool = await self.get_pool(token_a, token_b, fee)
            if pool is None:
                continue
            state = await self.get_pool_state(pool, token_a, token_b)
            liquidity = pool_liquidity_usd(state, decimals_a, decimals_b, price_a, price_b)
            logger.debug(f"[V3] {token_a}/{token_b} fee={fee} pool={pool} liquidity=${liquidity:,.2f}")
            candidates.append((fee, pool, liquidity))

        if not candidates:
            return V3PoolResult(exists=False)

        # max() keeps the first of equal values, so ties go to the lower fee tier
        fee, pool, liquidity = max(candidates, key=lambda c: c[2])
        if liquidity >= self.min_liquidity_usd:
            return V3PoolResult(
                exists=True,
                fee_tier=fee,
                liquidity_usd=liquidity,
                is_direct_pool=True,
                candidate_found=True,
                best_candidate_usd=liquidity,
            )

        logger.debug(f"[V3] {token_a}/{token_b}: deepest pool ${liquidity:,.2f} below threshold")
        return V3PoolResult(exists=False, candidate_found=True, best_candidate_usd=liquidity)
