"""
Configuration Management for the Basket Verifier
Environment-based configuration for chains, resolution thresholds and RPC access

Features:
- Environment-based config (dev/staging/prod)
- Per-chain contract addresses and canonical intermediate assets
- Resolution thresholds (minimum liquidity, wrap prefix, fee tiers)
- Dynamic reload
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("Config")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass(frozen=True)
class IntermediateAsset:
    """Canonical asset a route may hop through"""
    symbol: str
    address: str
    decimals: int
    is_stable: bool = False


@dataclass
class ChainConfig:
    """Per-chain contracts and routing assets"""
    chain_id: int
    name: str
    rpc_url: str = ""

    # Fund factory the verified basket is created on
    factory_address: str = ZERO_ADDRESS

    # Uniswap deployments
    uniswap_v2_factory: str = ZERO_ADDRESS
    uniswap_v3_factory: str = ZERO_ADDRESS

    # Stable asset first, wrapped native second
    intermediates: List[IntermediateAsset] = field(default_factory=list)

    @property
    def is_supported(self) -> bool:
        return bool(self.rpc_url) and self.factory_address.lower() != ZERO_ADDRESS

    @property
    def stable_asset(self) -> Optional[IntermediateAsset]:
        for asset in self.intermediates:
            if asset.is_stable:
                return asset
        return None

    @property
    def native_asset(self) -> Optional[IntermediateAsset]:
        for asset in self.intermediates:
            if not asset.is_stable:
                return asset
        return None

    def intermediate_for(self, address: str) -> Optional[IntermediateAsset]:
        for asset in self.intermediates:
            if asset.address.lower() == address.lower():
                return asset
        return None


def _default_chains() -> Dict[int, ChainConfig]:
    return {
        1: ChainConfig(
            chain_id=1,
            name="ethereum",
            rpc_url="https://ethereum-rpc.publicnode.com",
            factory_address="0xbCa3dCabC5DEe8C209d50f3c7B132e46B217ba8a",
            uniswap_v2_factory="0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f",
            uniswap_v3_factory="0x1F98431c8aD98523631AE4a59f267346ea31F984",
            intermediates=[
                IntermediateAsset("USDC", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6, is_stable=True),
                IntermediateAsset("WETH", "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", 18),
            ],
        ),
        56: ChainConfig(
            chain_id=56,
            name="bsc",
            rpc_url="https://bsc-rpc.publicnode.com",
            # No fund factory deployed by default; set FACTORY_ADDRESS_56 to enable
            factory_address=ZERO_ADDRESS,
            uniswap_v2_factory="0x8909Dc15e40173Ff4699343b6eB8132c65e18eC6",
            uniswap_v3_factory="0xdB1d10011AD0Ff90774D0C6Bb92e5C5c8b4461F7",
            intermediates=[
                IntermediateAsset("USDC", "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d", 18, is_stable=True),
                IntermediateAsset("WBNB", "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c", 18),
            ],
        ),
    }


@dataclass
class ResolutionConfig:
    """Thresholds used while resolving basket components"""
    min_liquidity_usd: float = 1000.0
    wrap_prefix: str = "W"
    v3_fee_tiers: Tuple[int, ...] = (100, 500, 3000, 10000)  # 0.01%, 0.05%, 0.3%, 1%
    max_intermediate_hops: int = 1
    weight_tolerance: float = 0.01


@dataclass
class RpcConfig:
    """RPC adapter settings"""
    request_timeout: int = 15
    max_attempts: int = 3
    retry_delay: float = 0.5
    retry_backoff: float = 2.0


@dataclass
class FeedStoreConfig:
    """Persisted Chainlink feed directory"""
    sqlite_path: str = "chainlink_feeds.db"


@dataclass
class MonitoringConfig:
    """Monitoring configuration"""
    log_level: str = "INFO"


@dataclass
class VerifierConfig:
    """Main application configuration"""
    environment: Environment = Environment.DEVELOPMENT

    chains: Dict[int, ChainConfig] = field(default_factory=_default_chains)
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    rpc: RpcConfig = field(default_factory=RpcConfig)
    feed_store: FeedStoreConfig = field(default_factory=FeedStoreConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def get_chain(self, chain_id: int) -> Optional[ChainConfig]:
        """Supported chain config, or None"""
        chain = self.chains.get(chain_id)
        if chain is None or not chain.is_supported:
            return None
        return chain

    @classmethod
    def from_env(cls) -> "VerifierConfig":
        """Create configuration from environment variables"""
        env = os.environ.get("VERIFIER_ENV", "development").lower()

        config = cls(
            environment=Environment(env) if env in [e.value for e in Environment] else Environment.DEVELOPMENT,
        )

        for chain_id, chain in config.chains.items():
            chain.rpc_url = os.environ.get(f"RPC_URL_{chain_id}", chain.rpc_url)
            chain.factory_address = os.environ.get(f"FACTORY_ADDRESS_{chain_id}", chain.factory_address)

        config.resolution = ResolutionConfig(
            min_liquidity_usd=float(os.environ.get("MIN_LIQUIDITY_USD", "1000")),
            wrap_prefix=os.environ.get("WRAP_PREFIX", "W"),
            max_intermediate_hops=int(os.environ.get("MAX_INTERMEDIATE_HOPS", "1")),
        )

        config.rpc = RpcConfig(
            request_timeout=int(os.environ.get("RPC_TIMEOUT", "15")),
            max_attempts=int(os.environ.get("RPC_MAX_ATTEMPTS", "3")),
        )

        config.feed_store = FeedStoreConfig(
            sqlite_path=os.environ.get("FEED_DB_PATH", "chainlink_feeds.db"),
        )

        config.monitoring = MonitoringConfig(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )

        if config.environment == Environment.PRODUCTION:
            config.monitoring.log_level = os.environ.get("LOG_LEVEL", "WARNING")

        return config

    def to_dict(self) -> Dict:
        """Convert to dictionary (hiding RPC credentials)"""
        def sanitize(obj: Any, key: str = ""):
            if isinstance(obj, dict):
                return {k: sanitize(v, str(k)) for k, v in obj.items()}
            elif hasattr(obj, '__dataclass_fields__'):
                return {k: sanitize(getattr(obj, k), k) for k in obj.__dataclass_fields__}
            elif isinstance(obj, (list, tuple)):
                return [sanitize(v) for v in obj]
            elif isinstance(obj, Enum):
                return obj.value
            elif key == "rpc_url" and obj and "://" in obj:
                # API keys usually live in the path
                scheme, rest = obj.split("://", 1)
                return f"{scheme}://{rest.split('/', 1)[0]}"
            else:
                return obj

        return sanitize(self)


def configure_logging(level: str):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))


# ============================================
# GLOBAL INSTANCES
# ============================================

config = VerifierConfig.from_env()
configure_logging(config.monitoring.log_level)

logger.info(f"Configuration loaded for environment: {config.environment.value}")


def get_config() -> VerifierConfig:
    """Get the global configuration"""
    return config


def reload_config() -> VerifierConfig:
    """Reload configuration from environment"""
    global config
    config = VerifierConfig.from_env()
    logger.info("Configuration reloaded")
    return config
