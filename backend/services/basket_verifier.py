"""
Basket Verifier
Checks that every component of a proposed fund basket can be priced and
swapped from/to the deposit token, under one pricing mode shared by the
whole basket.

Pipeline (one cooperative task per request, components in input order):
- Validate the request before touching the chain
- Phase 1: discover the supported pricing modes of each target token
- Phase 2: pick the first mode common to every token (priority order)
- Phase 3: re-resolve each token under that mode and encode its paths
- Append a placeholder entry when the deposit token is itself a component

The first failure ends the request; the result is never partial.
"""

import logging
from typing import Any, Iterable, List, Optional, Union

from pydantic import ValidationError

from data_sources.chainlink_feeds import FeedDirectory, SQLiteFeedDirectory
from infrastructure.config import ChainConfig, VerifierConfig, get_config
from infrastructure.errors import (
    ErrorCode,
    MetadataUnavailableError,
    VerifierError,
    describe_exception,
    error_tracker,
)
from infrastructure.rpc import ChainReader
from services.chainlink_resolver import ChainlinkFeedResolver
from services.mode_arbiter import ModeArbiter, select_common_mode
from services.path_encoder import placeholder_paths
from services.token_metadata import TokenMetadataProvider
from services.uniswap_v2_pathfinder import UniswapV2PathFinder
from services.uniswap_v3_pool_finder import UniswapV3PoolFinder
from services.verify_types import (
    BasketComponent,
    ComponentVerification,
    Err,
    Ok,
    PhaseResult,
    VerifyFailure,
    VerifyRequest,
    VerifyResult,
    VerifySuccess,
)

logger = logging.getLogger("BasketVerifier")

PLACEHOLDER_LIQUIDITY_USD = -1.0


def _invalid(message: str, token: str = "") -> Err:
    return Err(VerifyFailure(reason=ErrorCode.INVALID_INPUT, message=message, token=token))


class BasketVerifier:
    """
    Basket verification entry point.

    Usage:
        verifier = BasketVerifier()
        result = await verifier.verify(1, USDC, [{"token": WBTC, "weight": 100}])
        if result.ok:
            print(result.pricing_mode, result.to_dict())
    """

    def __init__(
        self,
        config: Optional[VerifierConfig] = None,
        reader: Optional[ChainReader] = None,
        feed_directory: Optional[FeedDirectory] = None,
    ):
        self.config = config or get_config()
        self.reader = reader or ChainReader(self.config)
        self.feed_directory = feed_directory or SQLiteFeedDirectory(self.config.feed_store.sqlite_path)

        resolution = self.config.resolution
        self.metadata_provider = TokenMetadataProvider(self.reader)
        self.feed_resolver = ChainlinkFeedResolver(self.feed_directory, self.reader, resolution.wrap_prefix)

    def build_arbiter(self, chain: ChainConfig) -> ModeArbiter:
        """Fresh arbiter and finders for one request."""
        resolution = self.config.resolution
        return ModeArbiter(
            chain=chain,
            metadata_provider=self.metadata_provider,
            feed_resolver=self.feed_resolver,
            v2_finder=UniswapV2PathFinder(
                self.reader, chain, resolution.min_liquidity_usd, resolution.max_intermediate_hops
            ),
            v3_finder=UniswapV3PoolFinder(
                self.reader, chain, resolution.min_liquidity_usd, resolution.v3_fee_tiers
            ),
            min_liquidity_usd=resolution.min_liquidity_usd,
        )

    # ============================================
    # VALIDATION
    # ============================================

    def validate(
        self,
        chain_id: int,
        deposit_token: str,
        components: Iterable[Union[BasketComponent, dict]],
    ) -> PhaseResult:
        """Request checks that need no chain read. Ok((request, chain)) or Err."""
        try:
            request = VerifyRequest(
                chain_id=chain_id,
                deposit_token=deposit_token,
                components=list(components or []),
            )
        except ValidationError as e:
            first = e.errors()[0]
            return _invalid(f"Invalid request: {first.get('msg', str(e))}")

        if not request.components:
            return _invalid("At least one component is required")

        seen = set()
        for component in request.components:
            key = component.token.lower()
            if key in seen:
                return _invalid(f"Duplicate component token: {component.token}", component.token)
            seen.add(key)

        total = request.total_weight
        if round(abs(total - 100), 9) > self.config.resolution.weight_tolerance:
            return _invalid(f"Component weights must sum to 100, got {total:g}")

        chain = self.config.get_chain(request.chain_id)
        if chain is None:
            return _invalid(f"Unsupported chainId: {request.chain_id}")

        return Ok((request, chain))

    # ============================================
    # VERIFY
    # ============================================

    async def verify(
        self,
        chain_id: int,
        deposit_token: str,
        components: Iterable[Union[BasketComponent, dict]],
    ) -> VerifyResult:
        """Verify a basket. Never raises: every outcome is a VerifyResult."""
        logger.info(f"Verifying basket on chain {chain_id} (deposit {deposit_token})")
        try:
            outcome = await self._run(chain_id, deposit_token, components)
        except VerifierError as e:
            logger.error(f"Verification aborted: {e.message}")
            outcome = Err(VerifyFailure(
                reason=e.code,
                message=e.message,
                token=str(e.details.get("token", "")),
            ))
            error_tracker.track(e.code, e.message, error=e)
        except Exception as e:
            logger.error(f"Unexpected error during verification: {e}", exc_info=True)
            outcome = Err(VerifyFailure(reason=ErrorCode.INTERNAL_ERROR, message=describe_exception(e)))
            error_tracker.track(ErrorCode.INTERNAL_ERROR, describe_exception(e), error=e)
        else:
            if isinstance(outcome, Err):
                failure = outcome.failure
                error_tracker.track(failure.reason, failure.message, token=failure.token)

        if isinstance(outcome, Err):
            logger.info(f"Basket rejected: {outcome.failure.reason.value} {outcome.failure.token} - {outcome.failure.message}")
            return outcome.failure

        logger.info(f"Basket verified with mode {outcome.value.pricing_mode.value} ({len(outcome.value.components)} components)")
        return outcome.value

    async def _run(self, chain_id: int, deposit_token: str, components: Any) -> PhaseResult:
        validated = self.validate(chain_id, deposit_token, components)
        if isinstance(validated, Err):
            return validated
        request, chain = validated.value

        try:
            deposit = await self.metadata_provider.read(request.deposit_token, chain.chain_id)
        except MetadataUnavailableError as e:
            return _invalid(e.message, request.deposit_token)

        deposit_feed, deposit_price = await self.feed_resolver.resolve_price(deposit.symbol, chain.chain_id)
        if deposit_price is None:
            logger.debug(f"No feed price for deposit token {deposit.symbol}")

        targets = [c for c in request.components if c.token.lower() != deposit.address.lower()]
        includes_deposit = len(targets) < len(request.components)
        arbiter = self.build_arbiter(chain)

        # Phase 1
        candidates = []
        for component in targets:
            discovered = await arbiter.discover_modes(component.token, deposit, deposit_price)
            if isinstance(discovered, Err):
                return discovered
            candidates.append(discovered.value)

        # Phase 2
        mode = select_common_mode(c.modes for c in candidates)
        if mode is None:
            return Err(VerifyFailure(
                reason=ErrorCode.NO_POOL_FOUND,
                message="No common pricing mode supported by all basket components",
                token="",
            ))
        logger.info(f"Common pricing mode: {mode.value}")

        # Phase 3
        verified: List[ComponentVerification] = []
        for token_candidates in candidates:
            resolved = await arbiter.resolve_with_mode(token_candidates, mode, deposit, deposit_price)
            if isinstance(resolved, Err):
                return resolved
            verified.append(resolved.value)

        if includes_deposit:
            if deposit_feed is None:
                return Err(VerifyFailure(
                    reason=ErrorCode.NO_POOL_FOUND,
                    message=f"No Chainlink feed found for deposit token {deposit.symbol}",
                    token=deposit.symbol,
                    symbol=deposit.symbol,
                    token_address=deposit.address,
                ))
            deposit_path, withdraw_path = placeholder_paths(mode)
            verified.append(ComponentVerification(
                token_symbol=deposit.symbol,
                token_address=deposit.address,
                decimals=deposit.decimals,
                pricing_mode=mode,
                feed_address=deposit_feed.proxy_address,
                deposit_path=deposit_path,
                withdraw_path=withdraw_path,
                liquidity_usd=PLACEHOLDER_LIQUIDITY_USD,
            ))

        return Ok(VerifySuccess(
            factory_address=chain.factory_address,
            pricing_mode=mode,
            components=tuple(verified),
        ))


# Global instance
_verifier: Optional[BasketVerifier] = None


def get_basket_verifier() -> BasketVerifier:
    """Get or create global BasketVerifier instance."""
    global _verifier
    if _verifier is None:
        _verifier = BasketVerifier()
    return _verifier


# ============================================
# CLI TEST
# ============================================

if __name__ == "__main__":
    import asyncio
    import json

    async def test():
        print("=" * 60)
        print("Basket Verifier Test")
        print("=" * 60)

        verifier = get_basket_verifier()
        usdc = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
        wbtc = "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599"

        result = await verifier.verify(1, usdc, [{"token": wbtc, "weight": 100}])
        print(json.dumps(result.to_dict(), indent=2))
        print(f"\n  Errors tracked: {error_tracker.get_stats()['error_counts']}")

    asyncio.run(test())
