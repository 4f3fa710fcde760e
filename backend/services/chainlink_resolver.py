"""
Chainlink Feed Resolver
Finds the {symbol}-usd feed for a token and reads its latest answer

Lookup rules:
- Symbol is lowercased and keyed as "{symbol}-usd" on one chain id
- Records without a proxy address or marked "deprecated" never match
- resolve_with_fallback() retries once without the wrap prefix ("WBTC" -> "BTC")

Failures are never raised: a missing feed or unreadable price is "no feed".
"""

import logging
from typing import Optional

from data_sources.chainlink_feeds import FeedDirectory, PriceFeedRecord, feed_path_key
from infrastructure.errors import ChainReadError
from infrastructure.rpc import ChainReader

logger = logging.getLogger("ChainlinkResolver")

AGGREGATOR_V3_ABI = [
    {"inputs": [], "name": "latestRoundData",
     "outputs": [
         {"name": "roundId", "type": "uint80"},
         {"name": "answer", "type": "int256"},
         {"name": "startedAt", "type": "uint256"},
         {"name": "updatedAt", "type": "uint256"},
         {"name": "answeredInRound", "type": "uint80"},
     ],
     "stateMutability": "view", "type": "function"},
]


class ChainlinkFeedResolver:

    def __init__(self, directory: FeedDirectory, reader: ChainReader, wrap_prefix: str = "W"):
        self.directory = directory
        self.reader = reader
        self.wrap_prefix = wrap_prefix

    async def resolve_feed(self, symbol: str, chain_id: int) -> Optional[PriceFeedRecord]:
        """Feed for TOKEN/USD on one chain, or None."""
        if not symbol:
            return None
        path_key = feed_path_key(symbol)
        try:
            record = await self.directory.lookup(chain_id, path_key)
        except Exception as e:
            logger.warning(f"Feed lookup failed for {path_key} on chain {chain_id}: {e}")
            return None

        if record is None or not record.is_usable:
            return None
        return record

    async def resolve_with_fallback(self, symbol: str, chain_id: int) -> Optional[PriceFeedRecord]:
        feed = await self.resolve_feed(symbol, chain_id)
        if feed is None and self.wrap_prefix and symbol.startswith(self.wrap_prefix):
            unwrapped = symbol[len(self.wrap_prefix):]
            feed = await self.resolve_feed(unwrapped, chain_id)
            if feed is not None:
                logger.debug(f"Feed for {symbol} resolved via {unwrapped}: {feed.path_key}")
        return feed

    async def get_latest_price(self, feed: PriceFeedRecord, chain_id: int) -> Optional[float]:
        """Latest answer rescaled by the feed decimals. None when unreadable or non-positive."""
        try:
            aggregator = self.reader.contract(chain_id, feed.proxy_address, AGGREGATOR_V3_ABI)
            round_data = await self.reader.call(
                chain_id, aggregator.functions.latestRoundData(), "latestRoundData"
            )
        except (ChainReadError, ValueError) as e:
            logger.warning(f"Error fetching Chainlink price from {feed.proxy_address}: {e}")
            return None

        answer = int(round_data[1])
        if answer <= 0:
            logger.warning(f"Non-positive answer from {feed.proxy_address} ({feed.path_key}): {answer}")
            return None
        return answer / (10 ** feed.decimals)

    async def resolve_price(self, symbol: str, chain_id: int):
        """(feed, price) for a symbol with wrap fallback; either may be None."""
        feed = await self.resolve_with_fallback(symbol, chain_id)
        if feed is None:
            return None, None
        return feed, await self.get_latest_price(feed, chain_id)
