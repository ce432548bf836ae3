"""Liquidation: eligibility, bonus, amounts to repay and withdraw, protocol fees."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from lendcore.lending_market import ELEVATION_GROUP_NONE, LendingMarket
from lendcore.obligation import Obligation, ObligationCollateral, ObligationLiquidity
from lendcore.reserve import Reserve, ReserveConfig
from lendcore.types import (
    FRACTIONAL_BITS,
    CalculateLiquidationResult,
    Fixed,
    LendingError,
    LendingErrorCode,
    LiquidationParams,
)

logger = logging.getLogger(__name__)

DUST_LAMPORT_THRESHOLD = 1
NO_EMODE_BONUS_CAP = 0xFFFF

# 0.99 as a fixed-point value, rounded to nearest.
_NEAR_BAD_DEBT_LTV = Fixed.from_bits(((99 << FRACTIONAL_BITS) + 50) // 100)


def max_liquidatable_borrowed_amount(
    obligation: Obligation,
    liquidation_max_debt_close_factor_pct: int,
    market_max_liquidatable_debt_value_at_once: int,
    liquidity: ObligationLiquidity,
    user_ltv: Fixed,
    insolvency_risk_ltv_pct: int,
) -> Fixed:
    """Largest amount of one borrow that a single liquidation may repay."""
    debt_for_liquidity_mv = Fixed.from_bits(liquidity.market_value_sf)
    total_debt_mv = Fixed.from_bits(obligation.borrowed_assets_market_value_sf)

    if user_ltv > Fixed.from_percent(insolvency_risk_ltv_pct):
        close_factor = Fixed.ONE
    else:
        close_factor = Fixed.from_percent(liquidation_max_debt_close_factor_pct)

    max_liquidatable_mv = min(
        total_debt_mv * close_factor,
        debt_for_liquidity_mv,
        Fixed.from_int(market_max_liquidatable_debt_value_at_once),
    )
    max_liquidation_ratio = max_liquidatable_mv / debt_for_liquidity_mv
    return Fixed.from_bits(liquidity.borrowed_amount_sf) * max_liquidation_ratio


def calculate_liquidation(
    collateral_reserve: Reserve,
    debt_reserve: Reserve,
    debt_amount_to_liquidate: int,
    lending_market: LendingMarket,
    obligation: Obligation,
    liquidity: ObligationLiquidity,
    collateral: ObligationCollateral,
    is_debt_reserve_highest_borrow_factor: bool,
    is_collateral_reserve_lowest_liquidation_ltv: bool,
    max_allowed_ltv_override_pct: Optional[int] = None,
) -> CalculateLiquidationResult:
    """Amounts settled, repaid and withdrawn when liquidating one borrow against one deposit."""
    if obligation.deposited_value_sf == 0:
        raise LendingError(
            LendingErrorCode.INVALID_OBLIGATION_COLLATERAL,
            "Deposited value backing a loan cannot be 0",
        )

    params = get_liquidation_params(
        lending_market,
        collateral_reserve,
        debt_reserve,
        obligation,
        is_debt_reserve_highest_borrow_factor,
        is_collateral_reserve_lowest_liquidation_ltv,
        max_allowed_ltv_override_pct,
    )
    liquidation_bonus_rate = params.liquidation_bonus_rate
    bonus_rate = liquidation_bonus_rate + Fixed.ONE

    borrowed_amount = Fixed.from_bits(liquidity.borrowed_amount_sf)
    borrowed_value = Fixed.from_bits(liquidity.market_value_sf)
    requested = min(Fixed.from_int(debt_amount_to_liquidate), borrowed_amount)

    is_below_threshold = borrowed_value < Fixed.from_int(
        lending_market.min_full_liquidation_value_threshold
    )
    if is_below_threshold:
        debt_liquidation_amount = borrowed_amount
    else:
        debt_liquidation_amount = min(
            max_liquidatable_borrowed_amount(
                obligation,
                lending_market.liquidation_max_debt_close_factor_pct,
                lending_market.max_liquidatable_debt_market_value_at_once,
                liquidity,
                params.user_ltv,
                lending_market.insolvency_risk_unhealthy_ltv_pct,
            ),
            requested,
        )

    liquidation_ratio = debt_liquidation_amount / borrowed_amount
    total_value_with_bonus = borrowed_value * liquidation_ratio * bonus_rate

    settle_amount, repay_amount, withdraw_amount = calculate_liquidation_amounts(
        total_value_with_bonus, collateral, debt_liquidation_amount, is_below_threshold
    )
    logger.debug(
        "Obligation is liquidated with liquidation bonus: %s bps, liquidation amount (rounded): %s",
        liquidation_bonus_rate.to_bps(),
        settle_amount.to_round(),
    )
    return CalculateLiquidationResult(
        settle_amount,
        repay_amount,
        withdraw_amount,
        liquidation_bonus_rate,
    )


def get_liquidation_params(
    lending_market: LendingMarket,
    collateral_reserve: Reserve,
    debt_reserve: Reserve,
    obligation: Obligation,
    is_debt_reserve_highest_borrow_factor: bool,
    is_collateral_reserve_lowest_liquidation_ltv: bool,
    max_allowed_ltv_override_pct: Optional[int] = None,
) -> LiquidationParams:
    """Liquidation parameters of an unhealthy obligation; raises when it cannot be liquidated."""
    params = check_liquidate_obligation(
        lending_market, collateral_reserve, debt_reserve, obligation, max_allowed_ltv_override_pct
    )
    if params is None:
        raise LendingError(
            LendingErrorCode.OBLIGATION_HEALTHY,
            f"Obligation is healthy and cannot be liquidated, LTV: {obligation.loan_to_value()}",
        )
    if not is_debt_reserve_highest_borrow_factor:
        raise LendingError(
            LendingErrorCode.LIQUIDATION_BORROW_FACTOR_PRIORITY,
            "Debt reserve is not the highest borrow factor reserve, "
            "obligation cannot be liquidated",
        )
    if not is_collateral_reserve_lowest_liquidation_ltv:
        raise LendingError(
            LendingErrorCode.LIQUIDATION_LOWEST_LTV_PRIORITY,
            "Collateral reserve is not the lowest LTV reserve, obligation cannot be liquidated",
        )
    logger.debug(
        "Obligation is eligible for liquidation with liquidation bonus: %sbps",
        params.liquidation_bonus_rate.to_bps(),
    )
    return params


def check_liquidate_obligation(
    lending_market: LendingMarket,
    collateral_reserve: Reserve,
    debt_reserve: Reserve,
    obligation: Obligation,
    max_allowed_ltv_override_pct: Optional[int] = None,
) -> Optional[LiquidationParams]:
    """Parameters for liquidating the obligation, or None when its LTV is below the limit."""
    user_ltv = obligation.loan_to_value()
    user_no_bf_ltv = obligation.no_bf_loan_to_value()
    max_allowed_ltv_user = obligation.unhealthy_loan_to_value()
    if max_allowed_ltv_override_pct is None:
        max_allowed_ltv = max_allowed_ltv_user
    else:
        max_allowed_ltv = Fixed.from_percent(max_allowed_ltv_override_pct)

    if user_ltv < max_allowed_ltv:
        return None

    logger.debug(
        "Obligation is eligible for liquidation, LTV: %s/%s, max_allowed_ltv_user %s, "
        "max_allowed_ltv_override %s%%",
        user_ltv,
        max_allowed_ltv,
        max_allowed_ltv_user,
        max_allowed_ltv_override_pct,
    )
    emode_cap = emode_max_liquidation_bonus(
        lending_market, collateral_reserve.config, debt_reserve.config, obligation
    )
    return LiquidationParams(
        user_ltv=user_ltv,
        liquidation_bonus_rate=calculate_liquidation_bonus(
            collateral_reserve.config,
            debt_reserve.config,
            max_allowed_ltv,
            user_ltv,
            user_no_bf_ltv,
            emode_cap,
        ),
    )


def emode_max_liquidation_bonus(
    lending_market: LendingMarket,
    collateral_config: ReserveConfig,
    debt_config: ReserveConfig,
    obligation: Obligation,
) -> int:
    """Bonus cap in bps set by the obligation's elevation group, or 0xFFFF for none."""
    group_id = obligation.elevation_group
    if (
        group_id == ELEVATION_GROUP_NONE
        or group_id not in collateral_config.elevation_groups
        or group_id not in debt_config.elevation_groups
    ):
        return NO_EMODE_BONUS_CAP

    group = lending_market.get_elevation_group(group_id)
    cap = group.max_liquidation_bonus_bps
    if (
        cap > collateral_config.max_liquidation_bonus_bps
        or cap > debt_config.max_liquidation_bonus_bps
        or cap == 0
    ):
        return NO_EMODE_BONUS_CAP
    return cap


def calculate_liquidation_amounts(
    total_liquidation_value_including_bonus: Fixed,
    collateral: ObligationCollateral,
    debt_liquidation_amount: Fixed,
    is_below_min_full_liquidation_value_threshold: bool,
) -> Tuple[Fixed, int, int]:
    """(settle amount, repay amount, collateral to withdraw) for a liquidation value."""
    collateral_value = Fixed.from_bits(collateral.market_value_sf)

    if total_liquidation_value_including_bonus > collateral_value:
        repay_ratio = collateral_value / total_liquidation_value_including_bonus
        if is_below_min_full_liquidation_value_threshold:
            settle_amount = debt_liquidation_amount
        else:
            settle_amount = debt_liquidation_amount * repay_ratio
        return settle_amount, settle_amount.to_ceil(), collateral.deposited_amount

    if total_liquidation_value_including_bonus == collateral_value:
        settle_amount = debt_liquidation_amount
        return settle_amount, settle_amount.to_ceil(), collateral.deposited_amount

    settle_amount = debt_liquidation_amount
    withdraw_pct = total_liquidation_value_including_bonus / collateral_value
    withdraw_amount_f = Fixed.from_int(collateral.deposited_amount) * withdraw_pct
    if is_below_min_full_liquidation_value_threshold and withdraw_amount_f < Fixed.from_int(
        DUST_LAMPORT_THRESHOLD
    ):
        withdraw_amount = DUST_LAMPORT_THRESHOLD
    else:
        withdraw_amount = withdraw_amount_f.to_floor()
    return settle_amount, settle_amount.to_ceil(), withdraw_amount


def calculate_liquidation_bonus(
    collateral_config: ReserveConfig,
    debt_config: ReserveConfig,
    max_allowed_ltv: Fixed,
    user_ltv: Fixed,
    user_no_bf_ltv: Fixed,
    emode_max_liquidation_bonus_bps: int,
) -> Fixed:
    """Bonus rate paid to the liquidator, bounded by the reserves and by bad debt."""
    bad_debt_ltv = Fixed.ONE

    if user_no_bf_ltv >= _NEAR_BAD_DEBT_LTV:
        bad_debt_bonus = Fixed.from_bps(
            min(
                collateral_config.bad_debt_liquidation_bonus_bps,
                debt_config.bad_debt_liquidation_bonus_bps,
            )
        )
        if user_no_bf_ltv < bad_debt_ltv:
            return max(bad_debt_bonus, bad_debt_ltv - user_no_bf_ltv)
        return bad_debt_bonus

    unhealthy_factor = user_ltv - max_allowed_ltv

    max_bonus_bps = min(
        max(collateral_config.max_liquidation_bonus_bps, debt_config.max_liquidation_bonus_bps),
        emode_max_liquidation_bonus_bps,
    )
    max_bonus = Fixed.from_bps(max_bonus_bps)
    min_reserve_bonus = Fixed.from_bps(
        max(collateral_config.min_liquidation_bonus_bps, debt_config.min_liquidation_bonus_bps)
    )
    collared_bonus = min(max(min_reserve_bonus, unhealthy_factor), max_bonus)
    return min(collared_bonus, bad_debt_ltv - user_no_bf_ltv)


def calculate_protocol_liquidation_fee(
    amount_liquidated: int, liquidation_bonus: Fixed, protocol_liquidation_fee_pct: int
) -> int:
    """Protocol's share of the liquidation bonus, rounded up and at least 1."""
    fee_rate = Fixed.from_percent(protocol_liquidation_fee_pct)
    amount = Fixed.from_int(amount_liquidated)
    bonus_rate = liquidation_bonus + Fixed.ONE
    bonus = amount - amount / bonus_rate
    protocol_fee = (bonus * fee_rate).to_ceil()
    return max(protocol_fee, 1)