"""
Basket Verifier Services
Token metadata, price feeds, Uniswap route discovery and basket resolution
"""

from .verify_types import (
    PricingMode,
    MODE_PRIORITY,
    BasketComponent,
    VerifyRequest,
    TokenMetadata,
    V2RouteResult,
    V3PoolResult,
    V2SwapPath,
    V3SwapPath,
    ComponentVerification,
    VerifySuccess,
    VerifyFailure,
)
from .token_metadata import TokenMetadataProvider
from .chainlink_resolver import ChainlinkFeedResolver
from .uniswap_v2_pathfinder import UniswapV2PathFinder
from .uniswap_v3_pool_finder import UniswapV3PoolFinder
from .path_encoder import encode_v2, encode_v3, encode_v3_packed_path, placeholder_paths
from .mode_arbiter import ModeArbiter, select_common_mode
from .basket_verifier import BasketVerifier, get_basket_verifier

__all__ = [
    # Types
    "PricingMode",
    "MODE_PRIORITY",
    "BasketComponent",
    "VerifyRequest",
    "TokenMetadata",
    "V2RouteResult",
    "V3PoolResult",
    "V2SwapPath",
    "V3SwapPath",
    "ComponentVerification",
    "VerifySuccess",
    "VerifyFailure",

    # Collaborators
    "TokenMetadataProvider",
    "ChainlinkFeedResolver",

    # Route discovery
    "UniswapV2PathFinder",
    "UniswapV3PoolFinder",

    # Path encoding
    "encode_v2",
    "encode_v3",
    "encode_v3_packed_path",
    "placeholder_paths",

    # Resolution (MAIN ENTRY POINT)
    "ModeArbiter",
    "select_common_mode",
    "BasketVerifier",
    "get_basket_verifier",
]
