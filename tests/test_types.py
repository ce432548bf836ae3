import dataclasses

import pytest

from lendcore.types import (
    FRACTIONAL_BITS,
    U64_MAX,
    CalculateRepayResult,
    Fixed,
    LendingAction,
    LendingActionKind,
    LendingError,
    LendingErrorCode,
)


@pytest.mark.parametrize("value", [0, 1, 42, U64_MAX])
def test_from_int_round_trip(value):
    f = Fixed.from_int(value)
    assert f.to_floor() == value
    assert f.to_ceil() == value
    assert f.to_round() == value


def test_one_bits_follow_format():
    assert Fixed.ONE.to_bits() == 1 << FRACTIONAL_BITS
    assert Fixed.from_bits(Fixed.ONE.to_bits()) == Fixed.ONE


def test_percent_halves_sum_to_one():
    half = Fixed.from_percent(50)
    assert half + half == Fixed.ONE
    assert Fixed.from_percent(100) == Fixed.ONE
    assert Fixed.from_bps(10_000) == Fixed.ONE


@pytest.mark.parametrize("bps", [1, 250, 9999])
def test_bps_round_trip(bps):
    assert Fixed.from_bps(bps).to_bps() == bps


@pytest.mark.parametrize("pct", [0, 37, 100, 150])
def test_percent_round_trip(pct):
    assert Fixed.from_percent(pct).to_percent() == pct


def test_floor_ceil_round_of_half():
    x = Fixed.from_int(3) + Fixed.ONE / 2
    assert x.to_floor() == 3
    assert x.to_ceil() == x.to_floor() + 1
    assert x.to_round() == x.to_ceil()
    quarter = Fixed.from_int(3) + Fixed.ONE / 4
    assert quarter.to_round() == 3


def test_multiply_then_divide_round_trip():
    a = Fixed.from_int(7)
    b = Fixed.from_int(9)
    assert a * b / b == a
    assert (a * 9) / 9 == a


def test_subtraction_underflow_raises():
    with pytest.raises(LendingError) as info:
        Fixed.from_int(2) - Fixed.from_int(5)
    assert info.value.code is LendingErrorCode.MATH_OVERFLOW


def test_saturating_and_checked_sub():
    small = Fixed.from_int(2)
    big = Fixed.from_int(5)
    assert small.saturating_sub(big) == Fixed.ZERO
    assert small.checked_sub(big) is None
    assert big.checked_sub(small) == big - small
    assert big.checked_sub(small) + small == big


def test_from_bits_out_of_range():
    with pytest.raises(LendingError) as info:
        Fixed.from_bits(1 << 128)
    assert info.value.code is LendingErrorCode.MATH_OVERFLOW


def test_compare_with_int():
    five = Fixed.from_int(5)
    assert five > 4
    assert five < 6
    assert five >= 5
    assert five <= 5


def test_division_by_zero():
    with pytest.raises(ZeroDivisionError):
        Fixed.from_int(1) / Fixed.from_int(0)
    with pytest.raises(ZeroDivisionError):
        Fixed.from_int(1) / 0


def test_str_of_fraction():
    assert str(Fixed.from_int(3) + Fixed.ONE / 2) == "3.5"
    assert str(Fixed.from_int(12)) == "12"


def test_result_records_are_frozen():
    result = CalculateRepayResult(settle_amount=Fixed.ONE, repay_amount=1)
    assert result == CalculateRepayResult(Fixed.ONE, 1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.repay_amount = 2


def test_lending_action_ranges():
    assert LendingAction(LendingActionKind.SUBTRACTIVE_SIGNED, -5).amount == -5
    with pytest.raises(ValueError):
        LendingAction(LendingActionKind.ADDITIVE, -1)
    with pytest.raises(ValueError):
        LendingAction(LendingActionKind.SUBTRACTIVE, U64_MAX + 1)


def test_lending_error_carries_code():
    err = LendingError(LendingErrorCode.BORROW_TOO_LARGE)
    assert err.code is LendingErrorCode.BORROW_TOO_LARGE
    assert str(err) == LendingErrorCode.BORROW_TOO_LARGE.value