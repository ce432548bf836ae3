"""Reserves: one lendable token with its configuration, balances and fee rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from lendcore.last_update import LastUpdate
from lendcore.lending_market import PROGRAM_VERSION
from lendcore.liquidity import (
    AssetTier,
    CollateralExchangeRate,
    FeeCalculation,
    ReserveCollateral,
    ReserveFarmKind,
    ReserveFees,
    ReserveLiquidity,
    ReserveStatus,
    WithdrawalCaps,
)
from lendcore.referral import ReferrerTokenState
from lendcore.token_info import DEFAULT_PUBKEY, PUBKEY_LEN, TokenInfo
from lendcore.types import (
    CalculateBorrowResult,
    CalculateRepayResult,
    Fixed,
    LendingError,
    LendingErrorCode,
    U64_MAX,
)

_U8_MAX = 0xFF
_U16_MAX = 0xFFFF
_ELEVATION_GROUPS_LEN = 20
_ELEVATION_GROUP_LIMITS_LEN = 32


def _overflow(message: str | None = None) -> LendingError:
    return LendingError(LendingErrorCode.MATH_OVERFLOW, message)


def _check_uint(value: int, maximum: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer")
    if not 0 <= value <= maximum:
        raise ValueError(f"{name} out of range: {value}")
    return value


def _check_key(key: bytes, name: str) -> bytes:
    key = bytes(key)
    if len(key) != PUBKEY_LEN:
        raise ValueError(f"{name} must be {PUBKEY_LEN} bytes, got {len(key)}")
    return key


def _check_uints(values, count: int, maximum: int, name: str) -> list:
    items = list(values)
    if len(items) != count:
        raise ValueError(f"{name} must hold {count} entries, got {len(items)}")
    for item in items:
        _check_uint(item, maximum, name)
    return items


@dataclass
class ReserveConfig:
    """Risk parameters, fees, limits and oracle settings of a reserve."""

    status: int = 0
    asset_tier: int = 0
    host_fixed_interest_rate_bps: int = 0
    protocol_take_rate_pct: int = 0
    protocol_liquidation_fee_pct: int = 0
    loan_to_value_pct: int = 0
    liquidation_threshold_pct: int = 0
    min_liquidation_bonus_bps: int = 0
    max_liquidation_bonus_bps: int = 0
    bad_debt_liquidation_bonus_bps: int = 0
    deleveraging_margin_call_period_secs: int = 0
    deleveraging_threshold_slots_per_bps: int = 0
    fees: ReserveFees = field(default_factory=ReserveFees)
    borrow_factor_pct: int = 0
    deposit_limit: int = 0
    borrow_limit: int = 0
    token_info: TokenInfo = field(default_factory=TokenInfo)
    deposit_withdrawal_cap: WithdrawalCaps = field(default_factory=WithdrawalCaps)
    debt_withdrawal_cap: WithdrawalCaps = field(default_factory=WithdrawalCaps)
    elevation_groups: List[int] = field(default_factory=lambda: [0] * _ELEVATION_GROUPS_LEN)
    disable_usage_as_coll_outside_emode: int = 0
    utilization_limit_block_borrowing_above: int = 0
    borrow_limit_outside_elevation_group: int = 0
    borrow_limit_against_this_collateral_in_elevation_group: List[int] = field(
        default_factory=lambda: [0] * _ELEVATION_GROUP_LIMITS_LEN
    )

    def __post_init__(self) -> None:
        for name in (
            "status",
            "asset_tier",
            "protocol_take_rate_pct",
            "protocol_liquidation_fee_pct",
            "loan_to_value_pct",
            "liquidation_threshold_pct",
            "disable_usage_as_coll_outside_emode",
            "utilization_limit_block_borrowing_above",
        ):
            _check_uint(getattr(self, name), _U8_MAX, name)
        for name in (
            "host_fixed_interest_rate_bps",
            "min_liquidation_bonus_bps",
            "max_liquidation_bonus_bps",
            "bad_debt_liquidation_bonus_bps",
        ):
            _check_uint(getattr(self, name), _U16_MAX, name)
        for name in (
            "deleveraging_margin_call_period_secs",
            "deleveraging_threshold_slots_per_bps",
            "borrow_factor_pct",
            "deposit_limit",
            "borrow_limit",
            "borrow_limit_outside_elevation_group",
        ):
            _check_uint(getattr(self, name), U64_MAX, name)
        self.elevation_groups = _check_uints(
            self.elevation_groups, _ELEVATION_GROUPS_LEN, _U8_MAX, "elevation_groups"
        )
        self.borrow_limit_against_this_collateral_in_elevation_group = _check_uints(
            self.borrow_limit_against_this_collateral_in_elevation_group,
            _ELEVATION_GROUP_LIMITS_LEN,
            U64_MAX,
            "borrow_limit_against_this_collateral_in_elevation_group",
        )

    def get_asset_tier(self) -> AssetTier:
        return AssetTier(self.asset_tier)

    def get_borrow_factor(self) -> Fixed:
        """The borrow factor, never below one."""
        return max(Fixed.ONE, Fixed.from_percent(self.borrow_factor_pct))

    def get_status(self) -> ReserveStatus:
        return ReserveStatus(self.status)


@dataclass
class Reserve:
    """A lendable token of a market with its liquidity, collateral and config."""

    version: int = 0
    last_update: LastUpdate = field(default_factory=LastUpdate)
    lending_market: bytes = DEFAULT_PUBKEY
    farm_collateral: bytes = DEFAULT_PUBKEY
    farm_debt: bytes = DEFAULT_PUBKEY
    liquidity: ReserveLiquidity = field(default_factory=ReserveLiquidity)
    collateral: ReserveCollateral = field(default_factory=ReserveCollateral)
    config: ReserveConfig = field(default_factory=ReserveConfig)
    borrowed_amount_outside_elevation_group: int = 0
    borrowed_amounts_against_this_reserve_in_elevation_groups: List[int] = field(
        default_factory=lambda: [0] * _ELEVATION_GROUP_LIMITS_LEN
    )

    def __post_init__(self) -> None:
        self.lending_market = _check_key(self.lending_market, "lending_market")
        self.farm_collateral = _check_key(self.farm_collateral, "farm_collateral")
        self.farm_debt = _check_key(self.farm_debt, "farm_debt")
        self.borrowed_amounts_against_this_reserve_in_elevation_groups = _check_uints(
            self.borrowed_amounts_against_this_reserve_in_elevation_groups,
            _ELEVATION_GROUP_LIMITS_LEN,
            U64_MAX,
            "borrowed_amounts_against_this_reserve_in_elevation_groups",
        )

    @classmethod
    def create(
        cls,
        current_slot: int,
        lending_market: bytes,
        liquidity: ReserveLiquidity,
        collateral: ReserveCollateral,
        config: ReserveConfig,
    ) -> "Reserve":
        """A fresh reserve at the current program version."""
        return cls(
            version=PROGRAM_VERSION,
            last_update=LastUpdate(current_slot),
            lending_market=lending_market,
            liquidity=liquidity,
            collateral=collateral,
            config=config,
        )

    def borrow_factor(self, is_in_elevation_group: bool) -> Fixed:
        if is_in_elevation_group:
            return Fixed.ONE
        return self.config.get_borrow_factor()

    def get_farm(self, mode: ReserveFarmKind) -> bytes:
        if mode is ReserveFarmKind.COLLATERAL:
            return self.farm_collateral
        return self.farm_debt

    def add_farm(self, farm_state: bytes, mode: ReserveFarmKind) -> None:
        farm_state = _check_key(farm_state, "farm_state")
        if mode is ReserveFarmKind.COLLATERAL:
            self.farm_collateral = farm_state
        else:
            self.farm_debt = farm_state

    def token_symbol(self) -> str:
        return self.config.token_info.symbol()

    def deposit_liquidity(self, liquidity_amount: int) -> int:
        """Add liquidity and mint collateral for it; returns the collateral minted."""
        collateral_amount = self.collateral_exchange_rate().liquidity_to_collateral(
            liquidity_amount
        )
        self.liquidity.deposit(liquidity_amount)
        self.collateral.mint(collateral_amount)
        return collateral_amount

    def redeem_collateral(self, collateral_amount: int) -> int:
        """Burn collateral and release its liquidity; returns the liquidity released."""
        liquidity_amount = self.collateral_exchange_rate().collateral_to_liquidity(
            collateral_amount
        )
        self.collateral.burn(collateral_amount)
        self.liquidity.withdraw(liquidity_amount)
        return liquidity_amount

    def collateral_exchange_rate(self) -> CollateralExchangeRate:
        return self.collateral.exchange_rate(self.liquidity.total_supply())

    def accrue_interest(
        self, current_slot: int, referral_fee_bps: int, current_borrow_rate: Fixed
    ) -> None:
        """Compound interest at the given yearly borrow rate since the last update."""
        slots_elapsed = self.last_update.slots_elapsed(current_slot)
        if slots_elapsed > 0:
            self.liquidity.compound_interest(
                current_borrow_rate,
                Fixed.from_bps(self.config.host_fixed_interest_rate_bps),
                slots_elapsed,
                Fixed.from_percent(self.config.protocol_take_rate_pct),
                Fixed.from_bps(_check_uint(referral_fee_bps, _U16_MAX, "referral_fee_bps")),
            )

    def update_deposit_limit_crossed_slot(self, current_slot: int) -> None:
        if self.deposit_limit_crossed():
            if self.liquidity.deposit_limit_crossed_slot == 0:
                self.liquidity.deposit_limit_crossed_slot = current_slot
        else:
            self.liquidity.deposit_limit_crossed_slot = 0

    def update_borrow_limit_crossed_slot(self, current_slot: int) -> None:
        if self.borrow_limit_crossed():
            if self.liquidity.borrow_limit_crossed_slot == 0:
                self.liquidity.borrow_limit_crossed_slot = current_slot
        else:
            self.liquidity.borrow_limit_crossed_slot = 0

    def calculate_borrow(
        self,
        amount_to_borrow: int,
        max_borrow_factor_adjusted_debt_value: Fixed,
        remaining_reserve_borrow: Fixed,
        referral_fee_bps: int,
        is_in_elevation_group: bool,
        has_referrer: bool,
    ) -> CalculateBorrowResult:
        """Amounts and fees of a borrow; the largest possible one for the maximum u64."""
        decimals = 10 ** self.liquidity.mint_decimals
        if decimals > U64_MAX:
            raise _overflow()
        market_price = self.liquidity.market_price()
        borrow_factor = self.borrow_factor(is_in_elevation_group)

        if amount_to_borrow == U64_MAX:
            borrow_amount_f = min(
                max_borrow_factor_adjusted_debt_value * decimals / market_price / borrow_factor,
                remaining_reserve_borrow,
                Fixed.from_int(self.liquidity.available_amount),
            )
            borrow_fee, referrer_fee = self.config.fees.calculate_borrow_fees(
                borrow_amount_f, FeeCalculation.INCLUSIVE, referral_fee_bps, has_referrer
            )
            receive_amount = borrow_amount_f.to_floor() - borrow_fee - referrer_fee
            if receive_amount < 0:
                raise _overflow()
            return CalculateBorrowResult(borrow_amount_f, receive_amount, borrow_fee, referrer_fee)

        receive_amount = _check_uint(amount_to_borrow, U64_MAX, "amount_to_borrow")
        borrow_amount_f = Fixed.from_int(receive_amount)
        borrow_fee, referrer_fee = self.config.fees.calculate_borrow_fees(
            borrow_amount_f, FeeCalculation.EXCLUSIVE, referral_fee_bps, has_referrer
        )
        borrow_amount_f = borrow_amount_f + Fixed.from_int(borrow_fee + referrer_fee)
        debt_value = borrow_amount_f * market_price / decimals * borrow_factor
        if debt_value > max_borrow_factor_adjusted_debt_value:
            raise LendingError(
                LendingErrorCode.BORROW_TOO_LARGE,
                "Borrow value cannot exceed maximum borrow value, "
                f"borrow_factor_adjusted_debt_value: {debt_value}, "
                f"max_borrow_factor_adjusted_debt_value: {max_borrow_factor_adjusted_debt_value}",
            )
        return CalculateBorrowResult(borrow_amount_f, receive_amount, borrow_fee, referrer_fee)

    def calculate_repay(self, amount_to_repay: int, borrowed_amount: Fixed) -> CalculateRepayResult:
        """What a repayment settles; the maximum u64 settles the whole debt."""
        if amount_to_repay == U64_MAX:
            settle_amount = borrowed_amount
        else:
            settle_amount = min(
                Fixed.from_int(_check_uint(amount_to_repay, U64_MAX, "amount_to_repay")),
                borrowed_amount,
            )
        return CalculateRepayResult(settle_amount, settle_amount.to_ceil())

    def calculate_redeem_fees(self) -> int:
        return min(
            self.liquidity.available_amount,
            Fixed.from_bits(self.liquidity.accumulated_protocol_fees_sf).to_floor(),
        )

    def deposit_limit_crossed(self) -> bool:
        return self.liquidity.total_supply() > Fixed.from_int(self.config.deposit_limit)

    def borrow_limit_crossed(self) -> bool:
        return self.liquidity.total_borrow() > Fixed.from_int(self.config.borrow_limit)

    def get_withdraw_referrer_fees(self, referrer_token_state: ReferrerTokenState) -> int:
        """Referral fees that can be paid out now to this referrer."""
        available_unclaimed_sf = min(
            referrer_token_state.amount_unclaimed_sf,
            self.liquidity.accumulated_referrer_fees_sf,
        )
        available_unclaimed = Fixed.from_bits(available_unclaimed_sf).to_floor()
        return min(available_unclaimed, self.liquidity.available_amount)


__all__: Tuple[str, ...] = ("Reserve", "ReserveConfig")