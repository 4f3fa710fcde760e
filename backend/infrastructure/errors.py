"""
Error Handling for the Basket Verifier
Error taxonomy, collaborator exceptions and failure tracking

Features:
- Reason codes shared by every verification failure
- Custom exception classes for collaborator seams (metadata, chain reads)
- Error tracking and aggregation per reason code
- Retry logic for the RPC adapter (transport errors only)
"""

import asyncio
import logging
import traceback
from datetime import datetime
from typing import Any, Callable, Dict, Optional, TypeVar
from functools import wraps
from enum import Enum

logger = logging.getLogger("ErrorHandler")


# ============================================
# ERROR CODES
# ============================================

class ErrorCode(str, Enum):
    # Request errors
    INVALID_INPUT = "INVALID_INPUT"

    # Resolution errors
    NO_POOL_FOUND = "NO_POOL_FOUND"
    INSUFFICIENT_LIQUIDITY = "INSUFFICIENT_LIQUIDITY"

    # Unexpected
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================
# CUSTOM EXCEPTIONS
# ============================================

class VerifierError(Exception):
    """Base exception for the basket verifier"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Dict = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


class UnsupportedChainError(VerifierError):
    """Chain id has no RPC endpoint or factory configured"""
    def __init__(self, chain_id: int):
        super().__init__(
            f"Unsupported chainId: {chain_id}",
            ErrorCode.INVALID_INPUT,
            {"chain_id": chain_id}
        )
        self.chain_id = chain_id


class ChainReadError(VerifierError):
    """On-chain read failed (transport or node error)"""
    def __init__(self, chain_id: int, message: str, label: str = None):
        details = {"chain_id": chain_id}
        if label:
            details["call"] = label
        super().__init__(message, ErrorCode.INTERNAL_ERROR, details)
        self.chain_id = chain_id


class ContractRevertedError(ChainReadError):
    """Contract call reverted (missing contract, wrong interface, ...)"""
    pass


class MetadataUnavailableError(VerifierError):
    """ERC-20 symbol/decimals could not be read"""
    def __init__(self, token_address: str, original_error: Exception = None):
        details = {"token": token_address}
        if original_error:
            details["original_error"] = str(original_error)
        super().__init__(
            f"Failed to fetch token metadata for {token_address}",
            ErrorCode.INVALID_INPUT,
            details
        )
        self.token_address = token_address


# ============================================
# ERROR TRACKING
# ============================================

class ErrorTracker:
    """Tracks and aggregates verification failures for monitoring"""

    def __init__(self, max_errors: int = 1000):
        self.errors: list = []
        self.max_errors = max_errors
        self.error_counts: Dict[str, int] = {}

    def track(self, code: ErrorCode, message: str, token: str = None, error: Exception = None):
        """Track a failed verification"""
        self.error_counts[code.value] = self.error_counts.get(code.value, 0) + 1

        error_info = {
            "code": code.value,
            "message": message,
            "token": token,
            "timestamp": datetime.now().isoformat(),
            "traceback": None,
        }
        if error is not None and not isinstance(error, VerifierError):
            error_info["traceback"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        self.errors.append(error_info)

        # Trim if too many
        if len(self.errors) > self.max_errors:
            self.errors = self.errors[-self.max_errors:]

        if code == ErrorCode.INTERNAL_ERROR:
            logger.error(f"Error tracked: {code.value} - {message[:200]}")

    def get_stats(self) -> Dict:
        """Get error statistics"""
        return {
            "total_errors": len(self.errors),
            "error_counts": dict(self.error_counts),
            "recent_errors": self.errors[-10:],
            "timestamp": datetime.now().isoformat()
        }

    def clear(self):
        """Clear error history"""
        self.errors.clear()
        self.error_counts.clear()


# Global error tracker
error_tracker = ErrorTracker()


# ============================================
# RETRY LOGIC
# ============================================

T = TypeVar('T')


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
    no_retry: tuple = ()
):
    """
    Decorator for automatic retry with exponential backoff.

    Exceptions listed in ``no_retry`` are re-raised immediately even when
    they also match ``exceptions``.

    Usage:
        @retry(max_attempts=3, delay=1.0)
        async def fetch_data():
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception: Optional[BaseException] = None
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except no_retry:
                    raise
                except exceptions as e:
                    last_exception = e

                    if attempt < max_attempts - 1:
                        logger.warning(f"Retry {attempt + 1}/{max_attempts} for {func.__name__}: {e}")
                        await asyncio.sleep(current_delay)
                        current_delay *= backoff
                    else:
                        logger.error(f"All retries failed for {func.__name__}: {e}")

            raise last_exception

        return wrapper
    return decorator


def describe_exception(error: Any) -> str:
    """Short human-readable form of an exception for error messages"""
    if isinstance(error, VerifierError):
        return error.message
    text = str(error)
    return text if text else type(error).__name__
