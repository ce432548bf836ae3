"""Obligations: a user's deposits and borrows in one lending market."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from lendcore.last_update import LastUpdate
from lendcore.lending_market import ELEVATION_GROUP_NONE
from lendcore.liquidity import AssetTier
from lendcore.token_info import DEFAULT_PUBKEY, PUBKEY_LEN
from lendcore.types import U64_MAX, Fixed, LendingError, LendingErrorCode

MAX_DEPOSITS = 8
MAX_BORROWS = 5
ASSET_TIER_NONE = 0xFF

_U8_MAX = 0xFF
_U128_MAX = (1 << 128) - 1
_U256_MAX = (1 << 256) - 1
_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def _overflow() -> LendingError:
    return LendingError(LendingErrorCode.MATH_OVERFLOW)


def _check_key(key: bytes, name: str) -> bytes:
    key = bytes(key)
    if len(key) != PUBKEY_LEN:
        raise ValueError(f"{name} must be {PUBKEY_LEN} bytes, got {len(key)}")
    return key


def _check_uint(value: int, maximum: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer")
    if not 0 <= value <= maximum:
        raise ValueError(f"{name} out of range: {value}")
    return value


def _base58(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    encoded = ""
    while number:
        number, remainder = divmod(number, 58)
        encoded = _BASE58_ALPHABET[remainder] + encoded
    leading_zeros = len(data) - len(data.lstrip(b"\0"))
    return "1" * leading_zeros + encoded


class WithdrawResult(enum.Enum):
    FULL = "full"
    PARTIAL = "partial"


@dataclass
class ObligationCollateral:
    """Collateral deposited into an obligation from one reserve."""

    deposit_reserve: bytes = DEFAULT_PUBKEY
    deposited_amount: int = 0
    market_value_sf: int = 0
    borrowed_amount_against_this_collateral_in_elevation_group: int = 0

    def __post_init__(self) -> None:
        self.deposit_reserve = _check_key(self.deposit_reserve, "deposit_reserve")
        _check_uint(self.deposited_amount, U64_MAX, "deposited_amount")
        _check_uint(self.market_value_sf, _U128_MAX, "market_value_sf")

    def deposit(self, collateral_amount: int) -> None:
        new_amount = self.deposited_amount + _check_uint(
            collateral_amount, U64_MAX, "collateral_amount"
        )
        if new_amount > U64_MAX:
            raise _overflow()
        self.deposited_amount = new_amount

    def withdraw(self, collateral_amount: int) -> None:
        new_amount = self.deposited_amount - _check_uint(
            collateral_amount, U64_MAX, "collateral_amount"
        )
        if new_amount < 0:
            raise _overflow()
        self.deposited_amount = new_amount


@dataclass
class ObligationLiquidity:
    """Liquidity borrowed by an obligation from one reserve."""

    borrow_reserve: bytes = DEFAULT_PUBKEY
    cumulative_borrow_rate_bsf: int = 0
    borrowed_amount_sf: int = 0
    market_value_sf: int = 0
    borrow_factor_adjusted_market_value_sf: int = 0
    borrowed_amount_outside_elevation_groups: int = 0

    def __post_init__(self) -> None:
        self.borrow_reserve = _check_key(self.borrow_reserve, "borrow_reserve")
        _check_uint(self.cumulative_borrow_rate_bsf, _U256_MAX, "cumulative_borrow_rate_bsf")
        _check_uint(self.borrowed_amount_sf, _U128_MAX, "borrowed_amount_sf")

    def repay(self, settle_amount: Fixed) -> None:
        self.borrowed_amount_sf = (
            Fixed.from_bits(self.borrowed_amount_sf) - settle_amount
        ).to_bits()

    def borrow(self, borrow_amount: Fixed) -> None:
        self.borrowed_amount_sf = (
            Fixed.from_bits(self.borrowed_amount_sf) + borrow_amount
        ).to_bits()

    def accrue_interest(self, new_cumulative_borrow_rate_bits: int) -> None:
        """Scale the debt by the growth of the reserve's cumulative borrow rate."""
        former = self.cumulative_borrow_rate_bsf
        new = _check_uint(new_cumulative_borrow_rate_bits, _U256_MAX, "cumulative borrow rate")
        if new < former:
            raise LendingError(
                LendingErrorCode.NEGATIVE_INTEREST_RATE, "Interest rate cannot be negative"
            )
        if new == former:
            return
        borrowed = self.borrowed_amount_sf * new // former
        if borrowed > _U128_MAX:
            raise _overflow()
        self.borrowed_amount_sf = borrowed
        self.cumulative_borrow_rate_bsf = new


def _empty_deposits() -> List[ObligationCollateral]:
    return [ObligationCollateral() for _ in range(MAX_DEPOSITS)]


def _empty_borrows() -> List[ObligationLiquidity]:
    return [ObligationLiquidity() for _ in range(MAX_BORROWS)]


@dataclass
class Obligation:
    """A user's position in a market: up to 8 deposits and 5 borrows."""

    tag: int = 0
    last_update: LastUpdate = field(default_factory=LastUpdate)
    lending_market: bytes = DEFAULT_PUBKEY
    owner: bytes = DEFAULT_PUBKEY
    deposits: List[ObligationCollateral] = field(default_factory=_empty_deposits)
    lowest_reserve_deposit_liquidation_ltv: int = 0
    deposited_value_sf: int = 0
    borrows: List[ObligationLiquidity] = field(default_factory=_empty_borrows)
    borrow_factor_adjusted_debt_value_sf: int = 0
    borrowed_assets_market_value_sf: int = 0
    allowed_borrow_value_sf: int = 0
    unhealthy_borrow_value_sf: int = 0
    deposits_asset_tiers: List[int] = field(default_factory=lambda: [ASSET_TIER_NONE] * MAX_DEPOSITS)
    borrows_asset_tiers: List[int] = field(default_factory=lambda: [ASSET_TIER_NONE] * MAX_BORROWS)
    elevation_group: int = ELEVATION_GROUP_NONE
    num_of_obsolete_reserves: int = 0
    has_debt: int = 0
    referrer: bytes = DEFAULT_PUBKEY
    borrowing_disabled: int = 0
    highest_borrow_factor_pct: int = 0

    def __post_init__(self) -> None:
        self.lending_market = _check_key(self.lending_market, "lending_market")
        self.owner = _check_key(self.owner, "owner")
        self.referrer = _check_key(self.referrer, "referrer")
        self.deposits = list(self.deposits)
        self.borrows = list(self.borrows)
        if len(self.deposits) != MAX_DEPOSITS:
            raise ValueError(f"an obligation holds exactly {MAX_DEPOSITS} deposit slots")
        if len(self.borrows) != MAX_BORROWS:
            raise ValueError(f"an obligation holds exactly {MAX_BORROWS} borrow slots")
        self.deposits_asset_tiers = list(self.deposits_asset_tiers)
        self.borrows_asset_tiers = list(self.borrows_asset_tiers)
        if len(self.deposits_asset_tiers) != MAX_DEPOSITS:
            raise ValueError("deposits_asset_tiers must match the deposit slots")
        if len(self.borrows_asset_tiers) != MAX_BORROWS:
            raise ValueError("borrows_asset_tiers must match the borrow slots")
        for tier in self.deposits_asset_tiers + self.borrows_asset_tiers:
            _check_uint(tier, _U8_MAX, "asset tier")
        _check_uint(self.elevation_group, _U8_MAX, "elevation_group")

    @classmethod
    def create(
        cls,
        current_slot: int,
        lending_market: bytes,
        owner: bytes,
        tag: int = 0,
        referrer: bytes = DEFAULT_PUBKEY,
    ) -> "Obligation":
        """A fresh, empty obligation last updated at the given slot."""
        return cls(
            tag=tag,
            last_update=LastUpdate(current_slot),
            lending_market=lending_market,
            owner=owner,
            referrer=referrer,
        )

    def loan_to_value(self) -> Fixed:
        return Fixed.from_bits(self.borrow_factor_adjusted_debt_value_sf) / Fixed.from_bits(
            self.deposited_value_sf
        )

    def no_bf_loan_to_value(self) -> Fixed:
        return Fixed.from_bits(self.borrowed_assets_market_value_sf) / Fixed.from_bits(
            self.deposited_value_sf
        )

    def unhealthy_loan_to_value(self) -> Fixed:
        return Fixed.from_bits(self.unhealthy_borrow_value_sf) / Fixed.from_bits(
            self.deposited_value_sf
        )

    def repay(self, settle_amount: Fixed, liquidity_index: int) -> None:
        """Settle debt in one borrow slot, clearing the slot when fully repaid."""
        liquidity = self.borrows[liquidity_index]
        if settle_amount == Fixed.from_bits(liquidity.borrowed_amount_sf):
            self.borrows[liquidity_index] = ObligationLiquidity()
            self.borrows_asset_tiers[liquidity_index] = ASSET_TIER_NONE
        else:
            liquidity.repay(settle_amount)

    def withdraw(self, withdraw_amount: int, collateral_index: int) -> WithdrawResult:
        """Take collateral out of one deposit slot, clearing it when emptied."""
        collateral = self.deposits[collateral_index]
        if withdraw_amount == collateral.deposited_amount:
            self.deposits[collateral_index] = ObligationCollateral()
            self.deposits_asset_tiers[collateral_index] = ASSET_TIER_NONE
            return WithdrawResult.FULL
        collateral.withdraw(withdraw_amount)
        return WithdrawResult.PARTIAL

    def max_withdraw_value(self, withdraw_collateral_ltv_pct: int) -> Fixed:
        """Largest collateral value that can leave without breaking the borrow limit."""
        allowed = Fixed.from_bits(self.allowed_borrow_value_sf)
        debt = Fixed.from_bits(self.borrow_factor_adjusted_debt_value_sf)
        if allowed <= debt:
            return Fixed.ZERO
        if withdraw_collateral_ltv_pct == 0:
            return Fixed.from_bits(self.deposited_value_sf)
        return allowed.saturating_sub(debt) * 100 / withdraw_collateral_ltv_pct

    def remaining_borrow_value(self) -> Fixed:
        return Fixed.from_bits(
            max(self.allowed_borrow_value_sf - self.borrow_factor_adjusted_debt_value_sf, 0)
        )

    def find_collateral_in_deposits(self, deposit_reserve: bytes) -> ObligationCollateral:
        return self.deposits[self.position_of_collateral_in_deposits(deposit_reserve)]

    def find_or_add_collateral_to_deposits(
        self,
        deposit_reserve: bytes,
        asset_tier: AssetTier,
        init_function: Optional[Callable[[ObligationCollateral], None]] = None,
    ) -> ObligationCollateral:
        """The deposit for a reserve, taking a free slot for it if there is none yet."""
        deposit_reserve = _check_key(deposit_reserve, "deposit_reserve")
        for collateral in self.deposits:
            if collateral.deposit_reserve == deposit_reserve:
                return collateral
        for index, collateral in enumerate(self.deposits):
            if collateral.deposit_reserve == DEFAULT_PUBKEY:
                new_collateral = ObligationCollateral(deposit_reserve=deposit_reserve)
                previous_tier = self.deposits_asset_tiers[index]
                self.deposits[index] = new_collateral
                self.deposits_asset_tiers[index] = int(asset_tier)
                if init_function is not None:
                    try:
                        init_function(new_collateral)
                    except Exception:
                        self.deposits[index] = collateral
                        self.deposits_asset_tiers[index] = previous_tier
                        raise
                return new_collateral
        raise LendingError(
            LendingErrorCode.OBLIGATION_RESERVE_LIMIT, "Obligation has no empty deposits"
        )

    def position_of_collateral_in_deposits(self, deposit_reserve: bytes) -> int:
        if self.deposits_empty():
            raise LendingError(
                LendingErrorCode.OBLIGATION_DEPOSITS_EMPTY, "Obligation has no deposits"
            )
        for index, collateral in enumerate(self.deposits):
            if collateral.deposit_reserve == deposit_reserve:
                return index
        raise LendingError(LendingErrorCode.INVALID_OBLIGATION_COLLATERAL)

    def find_liquidity_in_borrows(self, borrow_reserve: bytes) -> Tuple[ObligationLiquidity, int]:
        if self.borrows_empty():
            raise LendingError(
                LendingErrorCode.OBLIGATION_BORROWS_EMPTY, "Obligation has no borrows"
            )
        index = self._liquidity_index(borrow_reserve)
        if index is None:
            raise LendingError(LendingErrorCode.INVALID_OBLIGATION_LIQUIDITY)
        return self.borrows[index], index

    def find_or_add_liquidity_to_borrows(
        self,
        borrow_reserve: bytes,
        cumulative_borrow_rate_bits: int,
        asset_tier: AssetTier,
    ) -> Tuple[ObligationLiquidity, int]:
        """The borrow for a reserve and its slot, taking a free slot if needed."""
        borrow_reserve = _check_key(borrow_reserve, "borrow_reserve")
        index = self._liquidity_index(borrow_reserve)
        if index is not None:
            return self.borrows[index], index
        for index, liquidity in enumerate(self.borrows):
            if liquidity.borrow_reserve == DEFAULT_PUBKEY:
                new_liquidity = ObligationLiquidity(
                    borrow_reserve=borrow_reserve,
                    cumulative_borrow_rate_bsf=cumulative_borrow_rate_bits,
                )
                self.borrows[index] = new_liquidity
                self.borrows_asset_tiers[index] = int(asset_tier)
                return new_liquidity, index
        raise LendingError(
            LendingErrorCode.OBLIGATION_RESERVE_LIMIT, "Obligation has no empty borrows"
        )

    def _liquidity_index(self, borrow_reserve: bytes) -> Optional[int]:
        return next(
            (i for i, l in enumerate(self.borrows) if l.borrow_reserve == borrow_reserve),
            None,
        )

    def deposits_empty(self) -> bool:
        return all(c.deposit_reserve == DEFAULT_PUBKEY for c in self.deposits)

    def borrows_empty(self) -> bool:
        return all(l.borrow_reserve == DEFAULT_PUBKEY for l in self.borrows)

    def deposits_count(self) -> int:
        return sum(1 for c in self.deposits if c.deposit_reserve != DEFAULT_PUBKEY)

    def borrows_count(self) -> int:
        return sum(1 for l in self.borrows if l.borrow_reserve != DEFAULT_PUBKEY)

    def get_deposit_asset_tiers(self) -> List[AssetTier]:
        return [
            AssetTier(tier)
            for collateral, tier in zip(self.deposits, self.deposits_asset_tiers)
            if collateral.deposit_reserve != DEFAULT_PUBKEY and collateral.deposited_amount > 0
        ]

    def get_borrows_asset_tiers(self) -> List[AssetTier]:
        return [
            AssetTier(tier)
            for liquidity, tier in zip(self.borrows, self.borrows_asset_tiers)
            if liquidity.borrow_reserve != DEFAULT_PUBKEY and liquidity.borrowed_amount_sf > 0
        ]

    def get_borrowed_amount_if_single_token(self) -> Optional[int]:
        """Whole tokens owed, rounded up, when at most one reserve is borrowed."""
        if self.borrows_count() > 1:
            return None
        return Fixed.from_bits(sum(l.borrowed_amount_sf for l in self.borrows)).to_ceil()

    def has_referrer(self) -> bool:
        return self.referrer != DEFAULT_PUBKEY

    def update_has_debt(self) -> None:
        self.has_debt = 0 if self.borrows_empty() else 1

    def __str__(self) -> str:
        ltv = self.loan_to_value().to_percent() if self.deposited_value_sf > 0 else 0
        lines = [
            "Obligation summary, collateral value "
            f"${Fixed.from_bits(self.deposited_value_sf)}, "
            "liquidity risk adjusted value "
            f"${Fixed.from_bits(self.borrow_factor_adjusted_debt_value_sf)}, "
            "liquidity risk unadjusted value "
            f"${Fixed.from_bits(self.borrowed_assets_market_value_sf)} ltv {ltv}%"
        ]
        for collateral in self.deposits:
            if collateral.deposit_reserve != DEFAULT_PUBKEY:
                lines.append(
                    f"  Collateral reserve: {_base58(collateral.deposit_reserve)}, "
                    f"value: ${Fixed.from_bits(collateral.market_value_sf)}, "
                    f"lamports: {collateral.deposited_amount}"
                )
        for liquidity in self.borrows:
            if liquidity.borrow_reserve != DEFAULT_PUBKEY:
                lines.append(
                    f"  Borrowed reserve  : {_base58(liquidity.borrow_reserve)}, "
                    f"value: ${Fixed.from_bits(liquidity.market_value_sf)}, "
                    f"lamports: {Fixed.from_bits(liquidity.borrowed_amount_sf).to_floor()}"
                )
        return "\n".join(lines)