"""
Uniswap V2 Path Finder
Searches the direct pair and bounded routes through the chain's canonical
intermediate assets, and values each route's depth in USD.

Route valuation:
- Each hop is valued from the pair reserves and whichever side has a price
- A route is only as deep as its weakest hop
- Among routes meeting the threshold: fewest hops first, then deepest

Prices come from the caller (feed prices) for the two endpoints. Canonical
intermediates are priced from the DEX itself: the stable asset is pinned at
1 USD and the wrapped native asset is priced from its pair against it.
"""

import itertools
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from infrastructure.config import ZERO_ADDRESS, ChainConfig, IntermediateAsset
from infrastructure.rpc import ChainReader, checksum
from services.verify_types import V2RouteResult

logger = logging.getLogger("UniswapV2PathFinder")

V2_FACTORY_ABI = [
    {"inputs": [{"name": "tokenA", "type": "address"}, {"name": "tokenB", "type": "address"}],
     "name": "getPair", "outputs": [{"name": "pair", "type": "address"}],
     "stateMutability": "view", "type": "function"},
]

V2_PAIR_ABI = [
    {"inputs": [], "name": "getReserves",
     "outputs": [
         {"name": "reserve0", "type": "uint112"},
         {"name": "reserve1", "type": "uint112"},
         {"name": "blockTimestampLast", "type": "uint32"},
     ],
     "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "token0", "outputs": [{"type": "address"}],
     "stateMutability": "view", "type": "function"},
]


def pair_liquidity_usd(
    amount_x: float,
    amount_y: float,
    price_x: Optional[float],
    price_y: Optional[float],
) -> float:
    """USD depth of a constant-product pair from normalized reserves."""
    if price_x and price_y:
        return amount_x * price_x + amount_y * price_y
    # Both sides hold equal value at the spot price
    if price_x:
        return 2 * amount_x * price_x
    if price_y:
        return 2 * amount_y * price_y
    return 0.0


class UniswapV2PathFinder:
    """Request-scoped V2 route search on one chain."""

    def __init__(
        self,
        reader: ChainReader,
        chain: ChainConfig,
        min_liquidity_usd: float,
        max_intermediate_hops: int = 1,
    ):
        self.reader = reader
        self.chain = chain
        self.min_liquidity_usd = min_liquidity_usd
        self.max_intermediate_hops = max_intermediate_hops
        self._pairs: Dict[Tuple[str, str], Optional[str]] = {}
        self._dex_prices: Dict[str, Optional[float]] = {}

    # ============================================
    # CHAIN READS
    # ============================================

    async def get_pair(self, token_a: str, token_b: str) -> Optional[str]:
        """Pair address for two tokens, or None."""
        key = tuple(sorted((token_a.lower(), token_b.lower())))
        if key in self._pairs:
            return self._pairs[key]

        factory = self.reader.contract(self.chain.chain_id, self.chain.uniswap_v2_factory, V2_FACTORY_ABI)
        pair = await self.reader.call(
            self.chain.chain_id,
            factory.functions.getPair(checksum(token_a), checksum(token_b)),
            "v2.getPair",
        )
        if not pair or pair.lower() == ZERO_ADDRESS:
            pair = None
        self._pairs[key] = pair
        return pair

    async def get_reserves(self, pair_address: str, token_a: str) -> Tuple[int, int]:
        """(reserve of token_a, reserve of the other token)."""
        pair = self.reader.contract(self.chain.chain_id, pair_address, V2_PAIR_ABI)
        reserve0, reserve1, _ts = await self.reader.call(
            self.chain.chain_id, pair.functions.getReserves(), "v2.getReserves"
        )
        token0 = await self.reader.call(self.chain.chain_id, pair.functions.token0(), "v2.token0")
        if token0.lower() == token_a.lower():
            return int(reserve0), int(reserve1)
        return int(reserve1), int(reserve0)

    # ============================================
    # PRICING
    # ============================================

    async def dex_price(self, asset: IntermediateAsset) -> Optional[float]:
        """USD price of a canonical intermediate, from V2 reserves."""
        addr = asset.address.lower()
        if addr in self._dex_prices:
            return self._dex_prices[addr]

        price: Optional[float] = None
        stable = self.chain.stable_asset
        if asset.is_stable:
            price = 1.0
        elif stable is not None:
            pair = await self.get_pair(asset.address, stable.address)
            if pair:
                reserve_asset, reserve_stable = await self.get_reserves(pair, asset.address)
                if reserve_asset > 0:
                    price = (reserve_stable / 10 ** stable.decimals) / (reserve_asset / 10 ** asset.decimals)
            if price is None:
                logger.warning(f"No V2 {asset.symbol}/{stable.symbol} pair to price {asset.symbol} on {self.chain.name}")

        self._dex_prices[addr] = price
        return price

    async def _price_of(self, token: str, known: Dict[str, float]) -> Optional[float]:
        if token.lower() in known:
            return known[token.lower()]
        asset = self.chain.intermediate_for(token)
        if asset is not None:
            return await self.dex_price(asset)
        return None

    # ============================================
    # ROUTE SEARCH
    # ============================================

    def candidate_routes(self, token_a: str, token_b: str) -> List[Tuple[str, ...]]:
        """Direct route first, then routes through 1..N distinct intermediates."""
        a, b = checksum(token_a), checksum(token_b)
        mids = [
            checksum(asset.address) for asset in self.chain.intermediates
            if asset.address.lower() not in (a.lower(), b.lower())
        ]
        routes: List[Tuple[str, ...]] = [(a, b)]
        for k in range(1, self.max_intermediate_hops + 1):
            for combo in itertools.permutations(mids, k):
                routes.append((a, *combo, b))
        return routes

    async def route_liquidity(
        self,
        route: Sequence[str],
        decimals: Dict[str, int],
        known: Dict[str, float],
    ) -> Optional[float]:
        """Weakest-hop USD depth, or None if any hop has no pair."""
        weakest: Optional[float] = None
        for x, y in zip(route, route[1:]):
            pair = await self.get_pair(x, y)
            if pair is None:
                return None
            reserve_x, reserve_y = await self.get_reserves(pair, x)
            amount_x = reserve_x / 10 ** decimals[x.lower()]
            amount_y = reserve_y / 10 ** decimals[y.lower()]
            hop_usd = pair_liquidity_usd(
                amount_x, amount_y,
                await self._price_of(x, known),
                await self._price_of(y, known),
            )
            logger.debug(f"[V2] hop {x}->{y} pair={pair} liquidity=${hop_usd:,.2f}")
            weakest = hop_usd if weakest is None else min(weakest, hop_usd)
        return weakest

    async def find_route(
        self,
        token_a: str,
        token_b: str,
        decimals_a: int,
        decimals_b: int,
        price_a: Optional[float] = None,
        price_b: Optional[float] = None,
    ) -> V2RouteResult:
        decimals = {asset.address.lower(): asset.decimals for asset in self.chain.intermediates}
        decimals[token_a.lower()] = decimals_a
        decimals[token_b.lower()] = decimals_b

        known: Dict[str, float] = {}
        if price_a:
            known[token_a.lower()] = price_a
        if price_b:
            known[token_b.lower()] = price_b

        candidates: List[Tuple[Tuple[str, ...], float]] = []
        for route in self.candidate_routes(token_a, token_b):
            liquidity = await self.route_liquidity(route, decimals, known)
            if liquidity is not None:
                candidates.append((route, liquidity))

        if not candidates:
            return V2RouteResult(exists=False)

        qualifying = [c for c in candidates if c[1] >= self.min_liquidity_usd]
        if qualifying:
            hops, liquidity = min(qualifying, key=lambda c: (len(c[0]), -c[1]))
            return V2RouteResult(
                exists=True,
                hops=hops,
                liquidity_usd=liquidity,
                candidate_found=True,
                best_candidate_usd=liquidity,
            )

        _, deepest = max(candidates, key=lambda c: c[1])
        logger.debug(f"[V2] {token_a}->{token_b}: deepest route ${deepest:,.2f} below threshold")
        return V2RouteResult(exists=False, candidate_found=True, best_candidate_usd=deepest)
