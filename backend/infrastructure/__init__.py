"""
Basket Verifier Infrastructure Module
Configuration, error taxonomy and chain access
"""

from .errors import (
    VerifierError,
    UnsupportedChainError,
    ChainReadError,
    ContractRevertedError,
    MetadataUnavailableError,
    ErrorCode,
    ErrorTracker,
    error_tracker,
    retry,
)

from .config import (
    VerifierConfig,
    ChainConfig,
    IntermediateAsset,
    ResolutionConfig,
    Environment,
    ZERO_ADDRESS,
    config,
    get_config,
    reload_config,
)

from .rpc import (
    ChainReader,
    checksum,
    get_web3,
)

__all__ = [
    # Errors
    "VerifierError",
    "UnsupportedChainError",
    "ChainReadError",
    "ContractRevertedError",
    "MetadataUnavailableError",
    "ErrorCode",
    "ErrorTracker",
    "error_tracker",
    "retry",

    # Config
    "VerifierConfig",
    "ChainConfig",
    "IntermediateAsset",
    "ResolutionConfig",
    "Environment",
    "ZERO_ADDRESS",
    "config",
    "get_config",
    "reload_config",

    # RPC
    "ChainReader",
    "checksum",
    "get_web3",
]
