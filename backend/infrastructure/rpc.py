# infrastructure/rpc.py
"""
Centralized RPC access for the basket verifier.
One Web3 HTTP client per chain id; blocking contract calls run in the
default executor so a verification stays a single cooperative task.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from eth_abi.exceptions import DecodingError
from web3 import Web3
from web3.exceptions import ContractLogicError, BadFunctionCallOutput

from .config import VerifierConfig, get_config
from .errors import ChainReadError, ContractRevertedError, UnsupportedChainError, retry

logger = logging.getLogger("ChainReader")


def checksum(address: str) -> str:
    return Web3.to_checksum_address(address)


def get_web3(rpc_url: str, timeout: int = 15) -> Web3:
    """Get a Web3 instance for an RPC endpoint."""
    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))


class ChainReader:
    """
    Read-only contract access across the configured chains.

    Usage:
        reader = ChainReader()
        pair = reader.contract(1, factory_address, V2_FACTORY_ABI)
        address = await reader.call(1, pair.functions.getPair(a, b), "getPair")
    """

    def __init__(self, config: Optional[VerifierConfig] = None):
        self.config = config or get_config()
        self._clients: Dict[int, Web3] = {}

        rpc = self.config.rpc
        self._call_with_retry = retry(
            max_attempts=max(rpc.max_attempts, 1),
            delay=rpc.retry_delay,
            backoff=rpc.retry_backoff,
            exceptions=(ChainReadError,),
            no_retry=(ContractRevertedError,),
        )(self._call_once)

    def web3(self, chain_id: int) -> Web3:
        """Get cached Web3 instance for a chain (lazy initialization)."""
        if chain_id not in self._clients:
            chain = self.config.get_chain(chain_id)
            if chain is None:
                raise UnsupportedChainError(chain_id)
            self._clients[chain_id] = get_web3(chain.rpc_url, self.config.rpc.request_timeout)
            logger.debug(f"Web3 client created for chain {chain_id} ({chain.name})")
        return self._clients[chain_id]

    def contract(self, chain_id: int, address: str, abi: List[Dict]):
        return self.web3(chain_id).eth.contract(address=checksum(address), abi=abi)

    async def call(self, chain_id: int, fn: Any, label: str = "") -> Any:
        """Execute a contract function call off the event loop."""
        return await self._call_with_retry(chain_id, fn, label)

    async def _call_once(self, chain_id: int, fn: Any, label: str) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn.call)
        except (ContractLogicError, BadFunctionCallOutput) as e:
            raise ContractRevertedError(chain_id, f"{label or 'call'} reverted: {e}", label)
        except (DecodingError, UnicodeDecodeError) as e:
            # Return data that does not match the ABI, e.g. a bytes32 symbol()
            raise ContractRevertedError(chain_id, f"{label or 'call'} returned undecodable data: {e}", label)
        except Exception as e:
            raise ChainReadError(chain_id, f"{label or 'call'} failed: {e}", label)
