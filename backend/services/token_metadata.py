"""
Token Metadata Provider
Reads ERC-20 symbol and decimals from chain state
"""

import asyncio
import logging

from infrastructure.errors import ChainReadError, MetadataUnavailableError
from infrastructure.rpc import ChainReader, checksum
from services.verify_types import TokenMetadata

logger = logging.getLogger("TokenMetadata")

ERC20_METADATA_ABI = [
    {"inputs": [], "name": "decimals", "outputs": [{"type": "uint8"}],
     "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "symbol", "outputs": [{"type": "string"}],
     "stateMutability": "view", "type": "function"},
]


class TokenMetadataProvider:
    """Fresh per-request snapshot of a token's symbol and decimals. No caching."""

    def __init__(self, reader: ChainReader):
        self.reader = reader

    async def read(self, address: str, chain_id: int) -> TokenMetadata:
        try:
            token = self.reader.contract(chain_id, address, ERC20_METADATA_ABI)
            symbol, decimals = await asyncio.gather(
                self.reader.call(chain_id, token.functions.symbol(), "symbol"),
                self.reader.call(chain_id, token.functions.decimals(), "decimals"),
            )
        except (ChainReadError, ValueError) as e:
            logger.debug(f"Metadata read failed for {address} on chain {chain_id}: {e}")
            raise MetadataUnavailableError(address, e) from e

        return TokenMetadata(address=checksum(address), symbol=str(symbol), decimals=int(decimals))
