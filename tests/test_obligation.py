import pytest

from lendcore.liquidity import AssetTier
from lendcore.obligation import (
    ASSET_TIER_NONE,
    MAX_BORROWS,
    MAX_DEPOSITS,
    Obligation,
    ObligationCollateral,
    ObligationLiquidity,
    WithdrawResult,
)
from lendcore.types import U64_MAX, Fixed, LendingError, LendingErrorCode

MARKET = bytes([1]) * 32
OWNER = bytes([2]) * 32
RESERVE_A = bytes([3]) * 32
RESERVE_B = bytes([4]) * 32


def _fresh() -> Obligation:
    return Obligation.create(10, MARKET, OWNER)


def test_create_sets_fields_and_empty_slots():
    obligation = Obligation.create(42, MARKET, OWNER, tag=7)
    assert obligation.last_update.slot == 42
    assert obligation.last_update.stale
    assert obligation.tag == 7
    assert obligation.owner == OWNER
    assert obligation.deposits_empty()
    assert obligation.borrows_empty()
    assert obligation.deposits_asset_tiers == [ASSET_TIER_NONE] * MAX_DEPOSITS
    assert obligation.borrows_asset_tiers == [ASSET_TIER_NONE] * MAX_BORROWS
    assert not obligation.has_referrer()


def test_referrer_detected():
    obligation = Obligation.create(1, MARKET, OWNER, referrer=RESERVE_B)
    assert obligation.has_referrer()


def test_collateral_deposit_and_withdraw_checks():
    collateral = ObligationCollateral(deposit_reserve=RESERVE_A)
    collateral.deposit(100)
    collateral.withdraw(40)
    assert collateral.deposited_amount == 60
    with pytest.raises(LendingError) as info:
        collateral.withdraw(61)
    assert info.value.code is LendingErrorCode.MATH_OVERFLOW
    collateral.deposited_amount = U64_MAX
    with pytest.raises(LendingError):
        collateral.deposit(1)


def test_find_or_add_collateral_reuses_slot():
    obligation = _fresh()
    first = obligation.find_or_add_collateral_to_deposits(
        RESERVE_A, AssetTier.ISOLATED_COLLATERAL, lambda c: c.deposit(5)
    )
    again = obligation.find_or_add_collateral_to_deposits(RESERVE_A, AssetTier.REGULAR)
    assert first is again
    assert first.deposited_amount == 5
    assert obligation.deposits_count() == 1
    assert obligation.deposits_asset_tiers[0] == AssetTier.ISOLATED_COLLATERAL
    assert obligation.get_deposit_asset_tiers() == [AssetTier.ISOLATED_COLLATERAL]
    assert obligation.find_collateral_in_deposits(RESERVE_A) is first


def test_find_or_add_collateral_rolls_back_on_init_failure():
    obligation = _fresh()

    def failing(collateral):
        raise LendingError(LendingErrorCode.MATH_OVERFLOW)

    with pytest.raises(LendingError):
        obligation.find_or_add_collateral_to_deposits(RESERVE_A, AssetTier.REGULAR, failing)
    assert obligation.deposits_empty()
    assert obligation.deposits_asset_tiers[0] == ASSET_TIER_NONE


def test_deposit_slots_limit():
    obligation = _fresh()
    for i in range(MAX_DEPOSITS):
        obligation.find_or_add_collateral_to_deposits(bytes([10 + i]) * 32, AssetTier.REGULAR)
    with pytest.raises(LendingError) as info:
        obligation.find_or_add_collateral_to_deposits(bytes([99]) * 32, AssetTier.REGULAR)
    assert info.value.code is LendingErrorCode.OBLIGATION_RESERVE_LIMIT


def test_position_errors():
    obligation = _fresh()
    with pytest.raises(LendingError) as info:
        obligation.position_of_collateral_in_deposits(RESERVE_A)
    assert info.value.code is LendingErrorCode.OBLIGATION_DEPOSITS_EMPTY
    obligation.find_or_add_collateral_to_deposits(RESERVE_A, AssetTier.REGULAR)
    assert obligation.position_of_collateral_in_deposits(RESERVE_A) == 0
    with pytest.raises(LendingError) as info:
        obligation.find_collateral_in_deposits(RESERVE_B)
    assert info.value.code is LendingErrorCode.INVALID_OBLIGATION_COLLATERAL


def test_borrow_lookup_and_errors():
    obligation = _fresh()
    with pytest.raises(LendingError) as info:
        obligation.find_liquidity_in_borrows(RESERVE_A)
    assert info.value.code is LendingErrorCode.OBLIGATION_BORROWS_EMPTY
    liquidity, index = obligation.find_or_add_liquidity_to_borrows(
        RESERVE_A, Fixed.ONE.to_bits(), AssetTier.ISOLATED_DEBT
    )
    assert index == 0
    assert liquidity.cumulative_borrow_rate_bsf == Fixed.ONE.to_bits()
    found, found_index = obligation.find_liquidity_in_borrows(RESERVE_A)
    assert found is liquidity and found_index == 0
    with pytest.raises(LendingError) as info:
        obligation.find_liquidity_in_borrows(RESERVE_B)
    assert info.value.code is LendingErrorCode.INVALID_OBLIGATION_LIQUIDITY


def test_borrow_slots_limit():
    obligation = _fresh()
    for i in range(MAX_BORROWS):
        obligation.find_or_add_liquidity_to_borrows(bytes([20 + i]) * 32, 1, AssetTier.REGULAR)
    with pytest.raises(LendingError) as info:
        obligation.find_or_add_liquidity_to_borrows(bytes([99]) * 32, 1, AssetTier.REGULAR)
    assert info.value.code is LendingErrorCode.OBLIGATION_RESERVE_LIMIT
    assert obligation.borrows_count() == MAX_BORROWS


def test_repay_partial_then_full_clears_slot():
    obligation = _fresh()
    liquidity, index = obligation.find_or_add_liquidity_to_borrows(
        RESERVE_A, Fixed.ONE.to_bits(), AssetTier.REGULAR
    )
    liquidity.borrow(Fixed.from_int(10))
    obligation.update_has_debt()
    assert obligation.has_debt == 1
    assert obligation.get_borrows_asset_tiers() == [AssetTier.REGULAR]
    obligation.repay(Fixed.from_int(4), index)
    assert liquidity.borrowed_amount_sf == Fixed.from_int(6).to_bits()
    obligation.repay(Fixed.from_int(6), index)
    assert obligation.borrows_empty()
    assert obligation.borrows_asset_tiers[index] == ASSET_TIER_NONE
    obligation.update_has_debt()
    assert obligation.has_debt == 0


def test_liquidity_repay_more_than_owed_fails():
    liquidity = ObligationLiquidity(borrow_reserve=RESERVE_A)
    liquidity.borrow(Fixed.from_int(1))
    with pytest.raises(LendingError):
        liquidity.repay(Fixed.from_int(2))


def test_withdraw_partial_and_full():
    obligation = _fresh()
    obligation.find_or_add_collateral_to_deposits(
        RESERVE_A, AssetTier.REGULAR, lambda c: c.deposit(100)
    )
    assert obligation.withdraw(30, 0) is WithdrawResult.PARTIAL
    assert obligation.deposits[0].deposited_amount == 70
    assert obligation.withdraw(70, 0) is WithdrawResult.FULL
    assert obligation.deposits_empty()
    assert obligation.deposits_asset_tiers[0] == ASSET_TIER_NONE


def test_accrue_interest_scales_debt():
    liquidity = ObligationLiquidity(
        borrow_reserve=RESERVE_A, cumulative_borrow_rate_bsf=Fixed.ONE.to_bits()
    )
    liquidity.borrow(Fixed.from_int(50))
    liquidity.accrue_interest((Fixed.ONE * 2).to_bits())
    assert liquidity.borrowed_amount_sf == Fixed.from_int(100).to_bits()
    assert liquidity.cumulative_borrow_rate_bsf == (Fixed.ONE * 2).to_bits()
    unchanged = liquidity.borrowed_amount_sf
    liquidity.accrue_interest((Fixed.ONE * 2).to_bits())
    assert liquidity.borrowed_amount_sf == unchanged


def test_accrue_interest_rejects_negative_rate():
    liquidity = ObligationLiquidity(
        borrow_reserve=RESERVE_A, cumulative_borrow_rate_bsf=(Fixed.ONE * 2).to_bits()
    )
    with pytest.raises(LendingError) as info:
        liquidity.accrue_interest(Fixed.ONE.to_bits())
    assert info.value.code is LendingErrorCode.NEGATIVE_INTEREST_RATE


def test_loan_to_value_ratios():
    obligation = _fresh()
    obligation.deposited_value_sf = Fixed.from_int(100).to_bits()
    obligation.borrow_factor_adjusted_debt_value_sf = Fixed.from_int(50).to_bits()
    obligation.borrowed_assets_market_value_sf = Fixed.from_int(25).to_bits()
    obligation.unhealthy_borrow_value_sf = Fixed.from_int(100).to_bits()
    assert obligation.loan_to_value() == Fixed.ONE / 2
    assert obligation.no_bf_loan_to_value() == Fixed.ONE / 4
    assert obligation.unhealthy_loan_to_value() == Fixed.ONE


def test_max_withdraw_value_cases():
    obligation = _fresh()
    obligation.deposited_value_sf = Fixed.from_int(1000).to_bits()
    obligation.allowed_borrow_value_sf = Fixed.from_int(50).to_bits()
    obligation.borrow_factor_adjusted_debt_value_sf = Fixed.from_int(50).to_bits()
    assert obligation.max_withdraw_value(50) == Fixed.ZERO
    obligation.borrow_factor_adjusted_debt_value_sf = Fixed.from_int(30).to_bits()
    assert obligation.max_withdraw_value(0) == Fixed.from_int(1000)
    assert obligation.max_withdraw_value(100) == Fixed.from_int(20)
    assert obligation.remaining_borrow_value() == Fixed.from_int(20)


def test_remaining_borrow_value_saturates():
    obligation = _fresh()
    obligation.allowed_borrow_value_sf = Fixed.from_int(10).to_bits()
    obligation.borrow_factor_adjusted_debt_value_sf = Fixed.from_int(20).to_bits()
    assert obligation.remaining_borrow_value() == Fixed.ZERO


def test_borrowed_amount_if_single_token():
    obligation = _fresh()
    liquidity, _ = obligation.find_or_add_liquidity_to_borrows(RESERVE_A, 1, AssetTier.REGULAR)
    liquidity.borrow(Fixed.from_int(5))
    assert obligation.get_borrowed_amount_if_single_token() == 5
    obligation.find_or_add_liquidity_to_borrows(RESERVE_B, 1, AssetTier.REGULAR)
    assert obligation.get_borrowed_amount_if_single_token() is None


def test_display_lists_positions():
    obligation = _fresh()
    obligation.find_or_add_collateral_to_deposits(
        RESERVE_A, AssetTier.REGULAR, lambda c: c.deposit(7)
    )
    text = str(obligation)
    lines = text.split("\n")
    assert lines[0].endswith("ltv 0%")
    assert len(lines) == 2
    assert lines[1].endswith("lamports: 7")


def test_invalid_slot_count_rejected():
    with pytest.raises(ValueError):
        Obligation(deposits=[ObligationCollateral()])
    with pytest.raises(ValueError):
        Obligation(owner=b"short")