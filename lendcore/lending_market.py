"""Lending market settings and its elevation groups."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import List, Optional

from lendcore.token_info import DEFAULT_PUBKEY, PUBKEY_LEN
from lendcore.types import Fixed, LendingError, LendingErrorCode

ELEVATION_GROUP_NONE = 0
MAX_ELEVATION_GROUPS = 32
PROGRAM_VERSION = 1

LIQUIDATION_CLOSE_FACTOR = 20
CLOSE_TO_INSOLVENCY_RISKY_LTV = 95
MAX_LIQUIDATABLE_VALUE_AT_ONCE = 500_000
GLOBAL_ALLOWED_BORROW_VALUE = 45_000_000
GLOBAL_UNHEALTHY_BORROW_VALUE = 50_000_000
LIQUIDATION_CLOSE_VALUE = 2
MIN_NET_VALUE_IN_OBLIGATION = Fixed.ONE / 1_000_000

_NAME_LEN = 32
_U8_MAX = 0xFF
_U16_MAX = 0xFFFF
_U64_MAX = (1 << 64) - 1
_U128_MAX = (1 << 128) - 1

# max bonus (u16), id, ltv, threshold, allow new loans, max reserves, padding byte,
# debt reserve key, then four u64 words of padding.
_ELEVATION_GROUP_LAYOUT = struct.Struct("<HBBBBBB32s32x")
ELEVATION_GROUP_SIZE = _ELEVATION_GROUP_LAYOUT.size


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


def _fixed_field(value: bytes, name: str) -> bytes:
    value = bytes(value)
    if len(value) > _NAME_LEN:
        raise ValueError(f"{name} must be at most {_NAME_LEN} bytes")
    return value.ljust(_NAME_LEN, b"\0")


@dataclass
class ElevationGroup:
    """A set of reserves that lend to each other on better terms."""

    max_liquidation_bonus_bps: int = 0
    id: int = 0
    ltv_pct: int = 0
    liquidation_threshold_pct: int = 0
    allow_new_loans: int = 0
    max_reserves_as_collateral: int = _U8_MAX
    debt_reserve: bytes = DEFAULT_PUBKEY

    def __post_init__(self) -> None:
        _check_uint(self.max_liquidation_bonus_bps, _U16_MAX, "max_liquidation_bonus_bps")
        for name in (
            "id",
            "ltv_pct",
            "liquidation_threshold_pct",
            "allow_new_loans",
            "max_reserves_as_collateral",
        ):
            _check_uint(getattr(self, name), _U8_MAX, name)
        self.debt_reserve = _check_key(self.debt_reserve, "debt_reserve")

    def new_loans_disabled(self) -> bool:
        return self.allow_new_loans == 0

    def get_index(self) -> int:
        if self.id == ELEVATION_GROUP_NONE:
            raise ValueError("elevation group 0 has no slot")
        return self.id - 1

    def to_bytes(self) -> bytes:
        """Serialized form, padding included."""
        return _ELEVATION_GROUP_LAYOUT.pack(
            self.max_liquidation_bonus_bps,
            self.id,
            self.ltv_pct,
            self.liquidation_threshold_pct,
            self.allow_new_loans,
            self.max_reserves_as_collateral,
            0,
            self.debt_reserve,
        )


def _default_groups() -> List[ElevationGroup]:
    return [ElevationGroup() for _ in range(MAX_ELEVATION_GROUPS)]


@dataclass
class LendingMarket:
    """Market-wide limits, ownership and elevation groups."""

    version: int = 0
    bump_seed: int = 0
    lending_market_owner: bytes = DEFAULT_PUBKEY
    lending_market_owner_cached: bytes = DEFAULT_PUBKEY
    quote_currency: bytes = bytes(_NAME_LEN)
    referral_fee_bps: int = 0
    emergency_mode: int = 0
    autodeleverage_enabled: int = 0
    borrow_disabled: int = 0
    price_refresh_trigger_to_max_age_pct: int = 0
    liquidation_max_debt_close_factor_pct: int = LIQUIDATION_CLOSE_FACTOR
    insolvency_risk_unhealthy_ltv_pct: int = CLOSE_TO_INSOLVENCY_RISKY_LTV
    min_full_liquidation_value_threshold: int = LIQUIDATION_CLOSE_VALUE
    max_liquidatable_debt_market_value_at_once: int = MAX_LIQUIDATABLE_VALUE_AT_ONCE
    global_unhealthy_borrow_value: int = GLOBAL_UNHEALTHY_BORROW_VALUE
    global_allowed_borrow_value: int = GLOBAL_ALLOWED_BORROW_VALUE
    risk_council: bytes = DEFAULT_PUBKEY
    elevation_groups: List[ElevationGroup] = field(default_factory=_default_groups)
    min_net_value_in_obligation_sf: int = MIN_NET_VALUE_IN_OBLIGATION.to_bits()
    min_value_skip_liquidation_ltv_bf_checks: int = 0
    name: bytes = bytes(_NAME_LEN)

    def __post_init__(self) -> None:
        self.lending_market_owner = _check_key(self.lending_market_owner, "lending_market_owner")
        self.lending_market_owner_cached = _check_key(
            self.lending_market_owner_cached, "lending_market_owner_cached"
        )
        self.risk_council = _check_key(self.risk_council, "risk_council")
        self.quote_currency = _fixed_field(self.quote_currency, "quote_currency")
        self.name = _fixed_field(self.name, "name")
        _check_uint(self.referral_fee_bps, _U16_MAX, "referral_fee_bps")
        _check_uint(self.min_net_value_in_obligation_sf, _U128_MAX, "min_net_value_in_obligation_sf")
        self.elevation_groups = list(self.elevation_groups)
        if len(self.elevation_groups) != MAX_ELEVATION_GROUPS:
            raise ValueError(f"a market holds exactly {MAX_ELEVATION_GROUPS} elevation groups")

    @classmethod
    def create(
        cls, bump_seed: int, lending_market_owner: bytes, quote_currency: bytes
    ) -> "LendingMarket":
        """A fresh market at the current program version."""
        return cls(
            version=PROGRAM_VERSION,
            bump_seed=_check_uint(bump_seed, _U8_MAX, "bump_seed"),
            lending_market_owner=lending_market_owner,
            quote_currency=quote_currency,
        )

    def get_elevation_group(self, group_id: int) -> Optional[ElevationGroup]:
        """The group with this id, or None for the id that means no group."""
        _check_uint(group_id, _U8_MAX, "group_id")
        if group_id == ELEVATION_GROUP_NONE:
            return None
        if group_id > len(self.elevation_groups):
            raise LendingError(LendingErrorCode.INVALID_ELEVATION_GROUP)
        return self.elevation_groups[group_id - 1]

    def set_elevation_group(self, elevation_group: ElevationGroup) -> None:
        if elevation_group.id == ELEVATION_GROUP_NONE:
            raise LendingError(LendingErrorCode.INVALID_ELEVATION_GROUP_CONFIG)
        index = elevation_group.get_index()
        if index >= len(self.elevation_groups):
            raise LendingError(LendingErrorCode.INVALID_ELEVATION_GROUP_CONFIG)
        self.elevation_groups[index] = elevation_group

    def is_borrowing_disabled(self) -> bool:
        return self.borrow_disabled != 0