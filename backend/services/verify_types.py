"""
Basket Verification Types
Request models, discovery results, swap paths and the verify result variants
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel, Field, field_validator
from web3 import Web3

from infrastructure.errors import ErrorCode


# ============================================
# PRICING MODES
# ============================================

class PricingMode(str, Enum):
    V2_PLUS_FEED = "V2_PLUS_FEED"
    V3_PLUS_FEED = "V3_PLUS_FEED"
    V2_PLUS_V2 = "V2_PLUS_V2"
    V3_PLUS_V3 = "V3_PLUS_V3"

    @property
    def uses_feed(self) -> bool:
        return self in (PricingMode.V2_PLUS_FEED, PricingMode.V3_PLUS_FEED)

    @property
    def uses_v2(self) -> bool:
        return self in (PricingMode.V2_PLUS_FEED, PricingMode.V2_PLUS_V2)


# Order of preference when picking the basket-wide mode
MODE_PRIORITY: Tuple[PricingMode, ...] = (
    PricingMode.V2_PLUS_FEED,
    PricingMode.V3_PLUS_FEED,
    PricingMode.V2_PLUS_V2,
    PricingMode.V3_PLUS_V3,
)


# ============================================
# REQUEST MODELS
# ============================================

class BasketComponent(BaseModel):
    token: str = Field(..., min_length=1, description="Target token address")
    weight: float = Field(..., ge=0, le=100, description="Percentage weight")

    @field_validator("token")
    @classmethod
    def token_is_address(cls, value: str) -> str:
        if not Web3.is_address(value):
            raise ValueError(f"Invalid token address: {value}")
        return value


class VerifyRequest(BaseModel):
    chain_id: int = Field(..., description="EVM chain id")
    deposit_token: str = Field(..., min_length=1, description="Deposit token address")
    components: List[BasketComponent] = Field(default_factory=list)

    @field_validator("deposit_token")
    @classmethod
    def deposit_is_address(cls, value: str) -> str:
        if not Web3.is_address(value):
            raise ValueError(f"Invalid deposit token address: {value}")
        return value

    @property
    def total_weight(self) -> float:
        return sum(c.weight for c in self.components)


# ============================================
# DISCOVERY RESULTS
# ============================================

@dataclass(frozen=True)
class TokenMetadata:
    address: str
    symbol: str
    decimals: int


@dataclass(frozen=True)
class V2RouteResult:
    """Best Uniswap V2 route between two tokens.

    ``exists`` is only true for a route meeting the liquidity threshold.
    ``best_candidate_usd`` keeps the deepest route that was found but fell
    short, so callers can tell "too shallow" from "no pool at all".
    """
    exists: bool
    hops: Tuple[str, ...] = ()
    liquidity_usd: Optional[float] = None
    candidate_found: bool = False
    best_candidate_usd: Optional[float] = None

    @property
    def hop_count(self) -> int:
        return max(len(self.hops) - 1, 0)


@dataclass(frozen=True)
class V3PoolResult:
    """Best direct Uniswap V3 pool across fee tiers."""
    exists: bool
    fee_tier: Optional[int] = None
    liquidity_usd: Optional[float] = None
    is_direct_pool: bool = True
    candidate_found: bool = False
    best_candidate_usd: Optional[float] = None


# ============================================
# SWAP PATHS
# ============================================

@dataclass(frozen=True)
class V2SwapPath:
    encoded: str
    addresses: Tuple[str, ...]

    type = "V2"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "encoded": self.encoded, "path": list(self.addresses)}


@dataclass(frozen=True)
class V3SwapPath:
    encoded: str
    token0: str
    token1: str
    fee_tier: int

    type = "V3"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "encoded": self.encoded,
            "token0": self.token0,
            "token1": self.token1,
            "fee": self.fee_tier,
        }


SwapPath = Union[V2SwapPath, V3SwapPath]


# ============================================
# PHASE RESULTS
# ============================================

T = TypeVar("T")


@dataclass(frozen=True)
class VerifyFailure:
    """Error variant of a verification"""
    reason: ErrorCode
    message: str
    token: str = ""
    symbol: Optional[str] = None
    token_address: Optional[str] = None
    required_usd: Optional[float] = None
    found_usd: Optional[float] = None

    status = "ERROR"

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        details: Dict[str, Any] = {"token": self.token, "message": self.message}
        if self.symbol is not None:
            details["symbol"] = self.symbol
        if self.token_address is not None:
            details["tokenAddress"] = self.token_address
        if self.required_usd is not None:
            details["requiredUSD"] = self.required_usd
        if self.found_usd is not None:
            details["foundUSD"] = self.found_usd
        return {"status": self.status, "reason": self.reason.value, "details": details}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    failure: VerifyFailure


PhaseResult = Union[Ok[T], Err]


@dataclass(frozen=True)
class TokenCandidates:
    """Phase 1 output for one target token"""
    metadata: TokenMetadata
    modes: frozenset


@dataclass(frozen=True)
class ComponentVerification:
    token_symbol: str
    token_address: str
    decimals: int
    pricing_mode: PricingMode
    feed_address: Optional[str]
    deposit_path: SwapPath
    withdraw_path: SwapPath
    liquidity_usd: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token_symbol,
            "tokenAddress": self.token_address,
            "symbol": self.token_symbol,
            "decimals": self.decimals,
            "pricingMode": self.pricing_mode.value,
            "feed": self.feed_address,
            "depositPath": self.deposit_path.to_dict(),
            "withdrawPath": self.withdraw_path.to_dict(),
            "liquidityUSD": self.liquidity_usd,
        }


@dataclass(frozen=True)
class VerifySuccess:
    """Success variant of a verification"""
    factory_address: str
    pricing_mode: PricingMode
    components: Tuple[ComponentVerification, ...] = field(default_factory=tuple)

    status = "OK"
    ready_for_creation = True

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "readyForCreation": self.ready_for_creation,
            "factoryAddress": self.factory_address,
            "components": [c.to_dict() for c in self.components],
        }


VerifyResult = Union[VerifySuccess, VerifyFailure]
