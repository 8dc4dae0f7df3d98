"""Token models and base-unit conversion.

Every monetary amount in ghostspeak is an integer count of *base units*,
the indivisible denomination of a token. The token's ``decimals`` field
scales base units for display: 1 SOL = 10**9 base units, 1 USDC = 10**6.

Conversion is exact decimal arithmetic. No floats in finance.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from ghostspeak.errors import ValidationError


class PaymentToken(str, enum.Enum):
    """Tokens accepted for escrow payments and staking."""
    SOL = "SOL"
    USDC = "USDC"
    USDT = "USDT"
    GHOST = "GHOST"


@dataclass(frozen=True)
class TokenMetadata:
    """Mint address and decimal precision of a token on one network."""
    symbol: PaymentToken
    mint: str
    decimals: int

    @property
    def unit(self) -> int:
        """Base units per whole token."""
        return 10 ** self.decimals


def to_base_units(tokens: Decimal | int | str, metadata: TokenMetadata) -> int:
    """Convert a whole-token quantity to base units.

    Raises ValidationError if the quantity carries more fractional digits
    than the token's precision allows.
    """
    quantity = Decimal(str(tokens))
    scaled = quantity * metadata.unit
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"{quantity} {metadata.symbol.value} exceeds "
            f"{metadata.decimals}-decimal precision"
        )
    return int(scaled)


def from_base_units(amount: int, metadata: TokenMetadata) -> Decimal:
    """Convert base units to an exact whole-token Decimal."""
    return Decimal(amount) / Decimal(metadata.unit)


def format_amount(amount: int, metadata: TokenMetadata) -> str:
    """Render base units with the token's full precision, e.g. '1.500000 USDC'."""
    quantum = Decimal(1).scaleb(-metadata.decimals)
    value = from_base_units(amount, metadata).quantize(quantum)
    return f"{value} {metadata.symbol.value}"


def parse_amount(text: str, metadata: TokenMetadata) -> int:
    """Parse a human-readable token quantity into base units.

    Accepts an optional trailing symbol ('2.5 SOL'). Rejects malformed,
    non-positive and over-precise quantities.
    """
    raw = text.strip()
    suffix = " " + metadata.symbol.value
    if raw.upper().endswith(suffix):
        raw = raw[: -len(suffix)].strip()
    try:
        quantity = Decimal(raw)
    except InvalidOperation:
        raise ValidationError(f"Invalid amount format: {text!r}") from None
    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError(f"Amount must be positive, got {text!r}")
    return to_base_units(quantity, metadata)
