import struct

import pytest

from lendcore.lending_market import (
    CLOSE_TO_INSOLVENCY_RISKY_LTV,
    ELEVATION_GROUP_SIZE,
    LIQUIDATION_CLOSE_FACTOR,
    MAX_ELEVATION_GROUPS,
    PROGRAM_VERSION,
    ElevationGroup,
    LendingMarket,
)
from lendcore.types import Fixed, LendingError, LendingErrorCode

OWNER = bytes(range(1, 33))
DEBT_RESERVE = bytes([7] * 32)


def test_elevation_group_defaults():
    group = ElevationGroup()
    assert group.max_reserves_as_collateral == 255
    assert group.new_loans_disabled() is True
    assert group.debt_reserve == bytes(32)


def test_elevation_group_allows_loans():
    assert ElevationGroup(id=1, allow_new_loans=1).new_loans_disabled() is False


def test_elevation_group_index():
    assert ElevationGroup(id=5).get_index() == 4


def test_elevation_group_index_of_none_raises():
    with pytest.raises(ValueError):
        ElevationGroup(id=0).get_index()


def test_elevation_group_rejects_out_of_range():
    with pytest.raises(ValueError):
        ElevationGroup(id=256)
    with pytest.raises(ValueError):
        ElevationGroup(debt_reserve=b"short")


def test_elevation_group_bytes_layout():
    group = ElevationGroup(
        max_liquidation_bonus_bps=300,
        id=3,
        ltv_pct=80,
        liquidation_threshold_pct=85,
        allow_new_loans=1,
        max_reserves_as_collateral=4,
        debt_reserve=DEBT_RESERVE,
    )
    data = group.to_bytes()
    assert len(data) == 72
    assert ELEVATION_GROUP_SIZE == len(data)
    fields = struct.unpack("<HBBBBBB32s", data[:40])
    assert fields == (300, 3, 80, 85, 1, 4, 0, DEBT_RESERVE)
    assert data[40:] == bytes(32)


def test_market_defaults():
    market = LendingMarket()
    assert len(market.elevation_groups) == MAX_ELEVATION_GROUPS
    assert all(group == ElevationGroup() for group in market.elevation_groups)
    assert market.liquidation_max_debt_close_factor_pct == LIQUIDATION_CLOSE_FACTOR
    assert market.insolvency_risk_unhealthy_ltv_pct == CLOSE_TO_INSOLVENCY_RISKY_LTV
    assert market.is_borrowing_disabled() is False


def test_market_min_net_value_is_small_positive():
    value = Fixed.from_bits(LendingMarket().min_net_value_in_obligation_sf)
    assert Fixed.ZERO < value < Fixed.ONE


def test_create_sets_owner_and_version():
    market = LendingMarket.create(254, OWNER, b"USD")
    assert market.version == PROGRAM_VERSION
    assert market.bump_seed == 254
    assert market.lending_market_owner == OWNER
    assert market.quote_currency == b"USD".ljust(32, b"\0")
    assert market.lending_market_owner_cached == bytes(32)


def test_create_rejects_large_bump():
    with pytest.raises(ValueError):
        LendingMarket.create(256, OWNER, b"USD")


def test_get_elevation_group_none():
    assert LendingMarket().get_elevation_group(0) is None


def test_set_and_get_elevation_group():
    market = LendingMarket()
    group = ElevationGroup(id=32, ltv_pct=90, debt_reserve=DEBT_RESERVE)
    market.set_elevation_group(group)
    assert market.get_elevation_group(32) is group
    assert market.elevation_groups[31] is group
    assert market.get_elevation_group(1) == ElevationGroup()


def test_get_elevation_group_out_of_range():
    with pytest.raises(LendingError) as info:
        LendingMarket().get_elevation_group(33)
    assert info.value.code is LendingErrorCode.INVALID_ELEVATION_GROUP


def test_set_elevation_group_none_rejected():
    with pytest.raises(LendingError) as info:
        LendingMarket().set_elevation_group(ElevationGroup(id=0))
    assert info.value.code is LendingErrorCode.INVALID_ELEVATION_GROUP_CONFIG


def test_set_elevation_group_beyond_slots_rejected():
    with pytest.raises(LendingError) as info:
        LendingMarket().set_elevation_group(ElevationGroup(id=40))
    assert info.value.code is LendingErrorCode.INVALID_ELEVATION_GROUP_CONFIG


def test_borrowing_disabled_flag():
    assert LendingMarket(borrow_disabled=1).is_borrowing_disabled() is True


def test_market_rejects_wrong_group_count():
    with pytest.raises(ValueError):
        LendingMarket(elevation_groups=[ElevationGroup()])


def test_market_rejects_long_name():
    with pytest.raises(ValueError):
        LendingMarket(name=b"x" * 33)