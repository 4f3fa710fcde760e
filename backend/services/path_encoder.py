"""
Path Encoder
Serializes discovered routes into the deposit/withdraw swap paths

- V2: abi.encode(address[] depositPath, address[] withdrawPath), the same
  bytes on both legs; the withdraw address list mirrors the deposit list
- V3: abi.encode(bytes packedPath, uint24 fee) per leg, where the packed path
  is token(20) | fee(3) | token(20); the withdraw leg swaps the tokens
"""

from typing import List, Sequence, Tuple

from eth_abi import encode

from infrastructure.config import ZERO_ADDRESS
from infrastructure.rpc import checksum
from services.verify_types import PricingMode, SwapPath, V2SwapPath, V3SwapPath


def encode_v3_packed_path(tokens: Sequence[str], fees: Sequence[int]) -> bytes:
    if len(tokens) != len(fees) + 1:
        raise ValueError("len(tokens) must be len(fees)+1")
    out = b""
    for i in range(len(fees)):
        out += bytes.fromhex(tokens[i][2:])
        out += int(fees[i]).to_bytes(3, byteorder="big", signed=False)
    out += bytes.fromhex(tokens[-1][2:])
    return out


def encode_v2(hops: Sequence[str]) -> Tuple[V2SwapPath, V2SwapPath]:
    """(deposit, withdraw) paths for a V2 route given deposit -> target."""
    if len(hops) < 2:
        raise ValueError("V2 route needs at least two tokens")
    deposit: List[str] = [checksum(a) for a in hops]
    withdraw = list(reversed(deposit))
    encoded = "0x" + encode(["address[]", "address[]"], [deposit, withdraw]).hex()
    return (
        V2SwapPath(encoded=encoded, addresses=tuple(deposit)),
        V2SwapPath(encoded=encoded, addresses=tuple(withdraw)),
    )


def _v3_leg(token_in: str, token_out: str, fee: int) -> V3SwapPath:
    packed = encode_v3_packed_path([token_in, token_out], [fee])
    encoded = "0x" + encode(["bytes", "uint24"], [packed, int(fee)]).hex()
    return V3SwapPath(encoded=encoded, token0=token_in, token1=token_out, fee_tier=int(fee))


def encode_v3(token_in: str, token_out: str, fee: int) -> Tuple[V3SwapPath, V3SwapPath]:
    """(deposit, withdraw) paths for a direct V3 pool at one fee tier."""
    token_in, token_out = checksum(token_in), checksum(token_out)
    return _v3_leg(token_in, token_out, fee), _v3_leg(token_out, token_in, fee)


def placeholder_paths(mode: PricingMode) -> Tuple[SwapPath, SwapPath]:
    """Zero-address paths shaped for the chosen mode (deposit token as component)."""
    if mode.uses_v2:
        return encode_v2([ZERO_ADDRESS, ZERO_ADDRESS])
    return encode_v3(ZERO_ADDRESS, ZERO_ADDRESS, 0)
