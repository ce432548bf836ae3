"""Fixed-point amounts, lending errors and the records returned by calculations."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Tuple, Union

FRACTIONAL_BITS = 60
_SCALE = 1 << FRACTIONAL_BITS
_FRACTION_MASK = _SCALE - 1
_MAX_BITS = (1 << 128) - 1
_DISPLAY_DIGITS = 18

U64_MAX = (1 << 64) - 1
I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1


class LendingErrorCode(enum.Enum):
    """Reasons a lending operation can fail."""

    MATH_OVERFLOW = "math operation overflow"
    INVALID_OBLIGATION_COLLATERAL = "invalid obligation collateral"
    INVALID_OBLIGATION_LIQUIDITY = "invalid obligation liquidity"
    OBLIGATION_DEPOSITS_EMPTY = "obligation deposits are empty"
    OBLIGATION_BORROWS_EMPTY = "obligation borrows are empty"
    OBLIGATION_RESERVE_LIMIT = "obligation reserve limit exceeded"
    NEGATIVE_INTEREST_RATE = "interest rate is negative"
    INSUFFICIENT_LIQUIDITY = "insufficient liquidity available"
    BORROW_TOO_LARGE = "borrow amount too large"
    BORROW_TOO_SMALL = "borrow amount too small to receive liquidity after fees"
    INVALID_ELEVATION_GROUP = "invalid elevation group"
    INVALID_ELEVATION_GROUP_CONFIG = "invalid elevation group configuration"
    LIQUIDATION_BORROW_FACTOR_PRIORITY = "debt reserve is not the highest borrow factor reserve"
    LIQUIDATION_LOWEST_LTV_PRIORITY = "collateral reserve is not the lowest LTV reserve"
    OBLIGATION_HEALTHY = "obligation is healthy and cannot be liquidated"
    INVALID_ORACLE_CONFIG = "invalid oracle configuration"
    INVALID_TWAP_CONFIG = "invalid TWAP configuration"
    INVALID_PYTH_PRICE_ACCOUNT = "invalid Pyth price account"
    INVALID_SWITCHBOARD_ACCOUNT = "invalid Switchboard account"
    INVALID_SCOPE_PRICE_ACCOUNT = "invalid Scope price account"


class LendingError(Exception):
    """A lending operation was rejected."""

    def __init__(self, code: LendingErrorCode, message: Optional[str] = None) -> None:
        self.code = code
        super().__init__(message or code.value)


def _overflow() -> LendingError:
    return LendingError(LendingErrorCode.MATH_OVERFLOW)


class Fixed:
    """Unsigned 128-bit fixed-point number with 60 fractional bits."""

    __slots__ = ("_bits",)

    ONE: "Fixed"
    ZERO: "Fixed"

    def __init__(self, bits: int = 0) -> None:
        if not 0 <= bits <= _MAX_BITS:
            raise _overflow()
        self._bits = bits

    @classmethod
    def from_bits(cls, bits: int) -> "Fixed":
        return cls(bits)

    @classmethod
    def from_int(cls, value: int) -> "Fixed":
        return cls(value << FRACTIONAL_BITS) if value >= 0 else cls(-1)

    @classmethod
    def from_percent(cls, pct: int) -> "Fixed":
        return cls.from_int(pct) / 100

    @classmethod
    def from_bps(cls, bps: int) -> "Fixed":
        return cls.from_int(bps) / 10_000

    def to_bits(self) -> int:
        return self._bits

    def to_floor(self) -> int:
        return self._bits >> FRACTIONAL_BITS

    def to_ceil(self) -> int:
        return (self._bits + _FRACTION_MASK) >> FRACTIONAL_BITS

    def to_round(self) -> int:
        return (self._bits + (_SCALE >> 1)) >> FRACTIONAL_BITS

    def to_bps(self) -> int:
        return (self * 10_000).to_round()

    def to_percent(self) -> int:
        return (self * 100).to_round()

    def saturating_sub(self, other: Union["Fixed", int]) -> "Fixed":
        other = _coerce(other)
        return Fixed(max(self._bits - other._bits, 0))

    def checked_sub(self, other: Union["Fixed", int]) -> Optional["Fixed"]:
        other = _coerce(other)
        if other._bits > self._bits:
            return None
        return Fixed(self._bits - other._bits)

    def __add__(self, other: object) -> "Fixed":
        if not isinstance(other, (Fixed, int)) or isinstance(other, bool):
            return NotImplemented
        return Fixed(self._bits + _coerce(other)._bits)

    __radd__ = __add__

    def __sub__(self, other: object) -> "Fixed":
        if not isinstance(other, (Fixed, int)) or isinstance(other, bool):
            return NotImplemented
        result = self.checked_sub(other)
        if result is None:
            raise _overflow()
        return result

    def __rsub__(self, other: object) -> "Fixed":
        if not isinstance(other, int) or isinstance(other, bool):
            return NotImplemented
        return Fixed.from_int(other) - self

    def __mul__(self, other: object) -> "Fixed":
        if isinstance(other, Fixed):
            return Fixed((self._bits * other._bits) >> FRACTIONAL_BITS)
        if isinstance(other, int) and not isinstance(other, bool):
            if other < 0:
                raise _overflow()
            return Fixed(self._bits * other)
        return NotImplemented

    __rmul__ = __mul__

    def __truediv__(self, other: object) -> "Fixed":
        if isinstance(other, Fixed):
            if other._bits == 0:
                raise ZeroDivisionError("division by a zero fixed-point value")
            return Fixed((self._bits << FRACTIONAL_BITS) // other._bits)
        if isinstance(other, int) and not isinstance(other, bool):
            if other == 0:
                raise ZeroDivisionError("division of a fixed-point value by zero")
            if other < 0:
                raise _overflow()
            return Fixed(self._bits // other)
        return NotImplemented

    def __rtruediv__(self, other: object) -> "Fixed":
        if not isinstance(other, int) or isinstance(other, bool):
            return NotImplemented
        return Fixed.from_int(other) / self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fixed):
            return NotImplemented
        return self._bits == other._bits

    def __hash__(self) -> int:
        return hash(("Fixed", self._bits))

    def _compare_bits(self, other: object) -> Optional[int]:
        if isinstance(other, Fixed):
            return other._bits
        if isinstance(other, int) and not isinstance(other, bool):
            return other << FRACTIONAL_BITS
        return None

    def __lt__(self, other: object) -> bool:
        bits = self._compare_bits(other)
        return NotImplemented if bits is None else self._bits < bits

    def __le__(self, other: object) -> bool:
        bits = self._compare_bits(other)
        return NotImplemented if bits is None else self._bits <= bits

    def __gt__(self, other: object) -> bool:
        bits = self._compare_bits(other)
        return NotImplemented if bits is None else self._bits > bits

    def __ge__(self, other: object) -> bool:
        bits = self._compare_bits(other)
        return NotImplemented if bits is None else self._bits >= bits

    def __bool__(self) -> bool:
        return self._bits != 0

    def __str__(self) -> str:
        whole = self._bits >> FRACTIONAL_BITS
        frac = ((self._bits & _FRACTION_MASK) * 10**_DISPLAY_DIGITS) >> FRACTIONAL_BITS
        if frac == 0:
            return str(whole)
        digits = str(frac).rjust(_DISPLAY_DIGITS, "0").rstrip("0")
        return f"{whole}.{digits}"

    def __repr__(self) -> str:
        return f"Fixed({self})"


def _coerce(value: Union[Fixed, int]) -> Fixed:
    if isinstance(value, Fixed):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Fixed.from_int(value)
    raise TypeError(f"cannot use {type(value).__name__} as a fixed-point value")


Fixed.ONE = Fixed(_SCALE)
Fixed.ZERO = Fixed(0)


@dataclass(frozen=True)
class CalculateBorrowResult:
    borrow_amount: Fixed
    receive_amount: int
    borrow_fee: int
    referrer_fee: int


@dataclass(frozen=True)
class CalculateRepayResult:
    settle_amount: Fixed
    repay_amount: int


@dataclass(frozen=True)
class CalculateLiquidationResult:
    settle_amount: Fixed
    repay_amount: int
    withdraw_amount: int
    liquidation_bonus_rate: Fixed


@dataclass(frozen=True)
class LiquidateObligationResult:
    settle_amount: Fixed
    repay_amount: int
    withdraw_amount: int
    withdraw_collateral_amount: int
    liquidation_bonus_rate: Fixed


@dataclass(frozen=True)
class LiquidateAndRedeemResult:
    repay_amount: int
    withdraw_amount: int
    withdraw_collateral_amount: int
    total_withdraw_liquidity_amount: Optional[Tuple[int, int]] = None


@dataclass(frozen=True)
class LiquidationParams:
    user_ltv: Fixed
    liquidation_bonus_rate: Fixed


class LendingActionKind(enum.Enum):
    ADDITIVE = "additive"
    SUBTRACTIVE = "subtractive"
    SUBTRACTIVE_SIGNED = "subtractive_signed"


@dataclass(frozen=True)
class LendingAction:
    """A change to an amount: added, subtracted, or subtracted as a signed value."""

    kind: LendingActionKind
    amount: int

    def __post_init__(self) -> None:
        if self.kind is LendingActionKind.SUBTRACTIVE_SIGNED:
            low, high = I64_MIN, I64_MAX
        else:
            low, high = 0, U64_MAX
        if not low <= self.amount <= high:
            raise ValueError(f"amount {self.amount} out of range for {self.kind.value}")