"""
Mode Arbiter
Per-token pricing-mode discovery, basket-wide mode selection and the final
per-mode resolution of each component.

Phases:
1. discover_modes()      - which modes a single target token supports
2. select_common_mode()  - first mode in priority order common to all tokens
3. resolve_with_mode()   - re-derive the route/pool under the chosen mode
"""

import logging
from typing import Iterable, Optional, Tuple

from infrastructure.config import ChainConfig
from infrastructure.errors import ChainReadError, ErrorCode, MetadataUnavailableError
from services.chainlink_resolver import ChainlinkFeedResolver
from services.path_encoder import encode_v2, encode_v3
from services.token_metadata import TokenMetadataProvider
from services.uniswap_v2_pathfinder import UniswapV2PathFinder
from services.uniswap_v3_pool_finder import UniswapV3PoolFinder
from services.verify_types import (
    MODE_PRIORITY,
    ComponentVerification,
    Err,
    Ok,
    PhaseResult,
    PricingMode,
    TokenCandidates,
    TokenMetadata,
    VerifyFailure,
)

logger = logging.getLogger("ModeArbiter")


def select_common_mode(mode_sets: Iterable[frozenset]) -> Optional[PricingMode]:
    """First mode in priority order present in every set, or None."""
    common = set(MODE_PRIORITY)
    for modes in mode_sets:
        common &= set(modes)
    for mode in MODE_PRIORITY:
        if mode in common:
            return mode
    return None


class ModeArbiter:
    """Resolves basket components against one chain for one request."""

    def __init__(
        self,
        chain: ChainConfig,
        metadata_provider: TokenMetadataProvider,
        feed_resolver: ChainlinkFeedResolver,
        v2_finder: UniswapV2PathFinder,
        v3_finder: UniswapV3PoolFinder,
        min_liquidity_usd: float,
    ):
        self.chain = chain
        self.metadata_provider = metadata_provider
        self.feed_resolver = feed_resolver
        self.v2_finder = v2_finder
        self.v3_finder = v3_finder
        self.min_liquidity_usd = min_liquidity_usd

    # ============================================
    # PHASE 1: CANDIDATE DISCOVERY
    # ============================================

    async def discover_modes(
        self,
        target: str,
        deposit: TokenMetadata,
        deposit_price: Optional[float],
    ) -> PhaseResult:
        chain_id = self.chain.chain_id
        try:
            metadata = await self.metadata_provider.read(target, chain_id)
        except MetadataUnavailableError as e:
            return Err(VerifyFailure(
                reason=ErrorCode.INVALID_INPUT,
                message=e.message,
                token=target,
                token_address=target,
            ))

        try:
            modes, probes = await self._probe_modes(metadata, deposit, deposit_price)
        except ChainReadError as e:
            logger.warning(f"Chain read failed while probing {metadata.symbol}: {e.message}")
            return Err(VerifyFailure(
                reason=ErrorCode.NO_POOL_FOUND,
                message=f"Pool discovery failed for {metadata.symbol}: {e.message}",
                token=metadata.symbol,
                symbol=metadata.symbol,
                token_address=metadata.address,
            ))

        if modes:
            logger.info(f"{metadata.symbol}: supported modes {sorted(m.value for m in modes)}")
            return Ok(TokenCandidates(metadata=metadata, modes=frozenset(modes)))

        shallow = [p.best_candidate_usd or 0.0 for p in probes if p.candidate_found]
        if shallow:
            found = max(shallow)
            return Err(VerifyFailure(
                reason=ErrorCode.INSUFFICIENT_LIQUIDITY,
                message=(
                    f"Insufficient liquidity for {metadata.symbol}: "
                    f"found ${found:,.2f}, required ${self.min_liquidity_usd:,.2f}"
                ),
                token=metadata.symbol,
                symbol=metadata.symbol,
                token_address=metadata.address,
                required_usd=self.min_liquidity_usd,
                found_usd=found,
            ))

        return Err(VerifyFailure(
            reason=ErrorCode.NO_POOL_FOUND,
            message=f"No V2 route or V3 pool found between {deposit.symbol} and {metadata.symbol}",
            token=metadata.symbol,
            symbol=metadata.symbol,
            token_address=metadata.address,
        ))

    async def _probe_modes(
        self,
        metadata: TokenMetadata,
        deposit: TokenMetadata,
        deposit_price: Optional[float],
    ) -> Tuple[set, list]:
        """Run every feed-gated and DEX-only probe. Returns (modes, probe results)."""
        chain_id = self.chain.chain_id
        modes = set()
        probes = []

        feed, price = await self.feed_resolver.resolve_price(metadata.symbol, chain_id)
        if feed is not None and price is not None:
            v2 = await self.v2_finder.find_route(
                deposit.address, metadata.address, deposit.decimals, metadata.decimals,
                deposit_price, price,
            )
            v3 = await self.v3_finder.find_best_pool(
                deposit.address, metadata.address, deposit.decimals, metadata.decimals,
                deposit_price, price,
            )
            probes += [v2, v3]
            if v2.exists:
                modes.add(PricingMode.V2_PLUS_FEED)
            if v3.exists:
                modes.add(PricingMode.V3_PLUS_FEED)
        else:
            logger.debug(f"No usable feed for {metadata.symbol} on chain {chain_id}, DEX-only modes")

        v2_dex = await self.v2_finder.find_route(
            deposit.address, metadata.address, deposit.decimals, metadata.decimals,
        )
        v3_dex = await self.v3_finder.find_best_pool(
            deposit.address, metadata.address, deposit.decimals, metadata.decimals,
        )
        probes += [v2_dex, v3_dex]
        if v2_dex.exists:
            modes.add(PricingMode.V2_PLUS_V2)
        if v3_dex.exists:
            modes.add(PricingMode.V3_PLUS_V3)

        return modes, probes

    # ============================================
    # PHASE 3: FINAL RESOLUTION
    # ============================================

    def _mode_unavailable(self, metadata: TokenMetadata, mode: PricingMode, found: Optional[float] = None):
        return Err(VerifyFailure(
            reason=ErrorCode.INSUFFICIENT_LIQUIDITY,
            message=f"{metadata.symbol} cannot be resolved with pricing mode {mode.value}",
            token=metadata.symbol,
            symbol=metadata.symbol,
            token_address=metadata.address,
            required_usd=self.min_liquidity_usd,
            found_usd=found,
        ))

    async def resolve_with_mode(
        self,
        candidates: TokenCandidates,
        mode: PricingMode,
        deposit: TokenMetadata,
        deposit_price: Optional[float],
    ) -> PhaseResult:
        metadata = candidates.metadata
        try:
            return await self._resolve(metadata, mode, deposit, deposit_price)
        except ChainReadError as e:
            logger.warning(f"Chain read failed while resolving {metadata.symbol} with {mode.value}: {e.message}")
            return Err(VerifyFailure(
                reason=ErrorCode.INSUFFICIENT_LIQUIDITY,
                message=f"{metadata.symbol} could not be resolved with pricing mode {mode.value}: {e.message}",
                token=metadata.symbol,
                symbol=metadata.symbol,
                token_address=metadata.address,
                required_usd=self.min_liquidity_usd,
            ))

    async def _resolve(
        self,
        metadata: TokenMetadata,
        mode: PricingMode,
        deposit: TokenMetadata,
        deposit_price: Optional[float],
    ) -> PhaseResult:
        chain_id = self.chain.chain_id

        feed = None
        price_a = price_b = None
        if mode.uses_feed:
            feed, price_b = await self.feed_resolver.resolve_price(metadata.symbol, chain_id)
            if feed is None or price_b is None:
                return self._mode_unavailable(metadata, mode)
            price_a = deposit_price

        if mode.uses_v2:
            route = await self.v2_finder.find_route(
                deposit.address, metadata.address, deposit.decimals, metadata.decimals,
                price_a, price_b,
            )
            if not route.exists:
                return self._mode_unavailable(metadata, mode, route.best_candidate_usd)
            deposit_path, withdraw_path = encode_v2(route.hops)
            liquidity = route.liquidity_usd
        else:
            pool = await self.v3_finder.find_best_pool(
                deposit.address, metadata.address, deposit.decimals, metadata.decimals,
                price_a, price_b,
            )
            if not pool.exists:
                return self._mode_unavailable(metadata, mode, pool.best_candidate_usd)
            deposit_path, withdraw_path = encode_v3(deposit.address, metadata.address, pool.fee_tier)
            liquidity = pool.liquidity_usd

        return Ok(ComponentVerification(
            token_symbol=metadata.symbol,
            token_address=metadata.address,
            decimals=metadata.decimals,
            pricing_mode=mode,
            feed_address=feed.proxy_address if feed is not None else None,
            deposit_path=deposit_path,
            withdraw_path=withdraw_path,
            liquidity_usd=liquidity,
        ))
