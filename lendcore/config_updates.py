"""Configuration update modes and the encoded values they carry."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Any

from lendcore.lending_market import ElevationGroup
from lendcore.token_info import PUBKEY_LEN

VALUE_BYTE_ARRAY_LEN_SHORT_UPDATE = 32
VALUE_BYTE_MAX_ARRAY_LEN_MARKET_UPDATE = 72

_UTF_FIELD_LEN = 32
_ELEVATION_GROUPS_LEN = 20
_BORROW_LIMITS_LEN = 32
_SCOPE_CHAIN_LEN = 4
_U8_MAX = 0xFF
_U16_MAX = 0xFFFF
_U64_MAX = (1 << 64) - 1
_U128_MAX = (1 << 128) - 1


class UpdateConfigMode(enum.IntEnum):
    """Which part of a reserve configuration an update changes."""

    UPDATE_LOAN_TO_VALUE_PCT = 1
    UPDATE_MAX_LIQUIDATION_BONUS_BPS = 2
    UPDATE_LIQUIDATION_THRESHOLD_PCT = 3
    UPDATE_PROTOCOL_LIQUIDATION_FEE = 4
    UPDATE_PROTOCOL_TAKE_RATE = 5
    UPDATE_FEES_BORROW_FEE = 6
    UPDATE_FEES_FLASH_LOAN_FEE = 7
    UPDATE_FEES_REFERRAL_FEE_BPS = 8
    UPDATE_DEPOSIT_LIMIT = 9
    UPDATE_BORROW_LIMIT = 10
    UPDATE_TOKEN_INFO_LOWER_HEURISTIC = 11
    UPDATE_TOKEN_INFO_UPPER_HEURISTIC = 12
    UPDATE_TOKEN_INFO_EXP_HEURISTIC = 13
    UPDATE_TOKEN_INFO_TWAP_DIVERGENCE = 14
    UPDATE_TOKEN_INFO_SCOPE_TWAP = 15
    UPDATE_TOKEN_INFO_SCOPE_CHAIN = 16
    UPDATE_TOKEN_INFO_NAME = 17
    UPDATE_TOKEN_INFO_PRICE_MAX_AGE = 18
    UPDATE_TOKEN_INFO_TWAP_MAX_AGE = 19
    UPDATE_SCOPE_PRICE_FEED = 20
    UPDATE_PYTH_PRICE = 21
    UPDATE_SWITCHBOARD_FEED = 22
    UPDATE_SWITCHBOARD_TWAP_FEED = 23
    UPDATE_BORROW_RATE_CURVE = 24
    UPDATE_ENTIRE_RESERVE_CONFIG = 25
    UPDATE_DEBT_WITHDRAWAL_CAP = 26
    UPDATE_DEPOSIT_WITHDRAWAL_CAP = 27
    UPDATE_DEBT_WITHDRAWAL_CAP_CURRENT_TOTAL = 28
    UPDATE_DEPOSIT_WITHDRAWAL_CAP_CURRENT_TOTAL = 29
    UPDATE_BAD_DEBT_LIQUIDATION_BONUS_BPS = 30
    UPDATE_MIN_LIQUIDATION_BONUS_BPS = 31
    DELEVERAGING_MARGIN_CALL_PERIOD = 32
    UPDATE_BORROW_FACTOR = 33
    UPDATE_ASSET_TIER = 34
    UPDATE_ELEVATION_GROUP = 35
    DELEVERAGING_THRESHOLD_SLOTS_PER_BPS = 36
    DEPRECATED_UPDATE_MULTIPLIER_SIDE_BOOST = 37
    DEPRECATED_UPDATE_MULTIPLIER_TAG_BOOST = 38
    UPDATE_RESERVE_STATUS = 39
    UPDATE_FARM_COLLATERAL = 40
    UPDATE_FARM_DEBT = 41
    UPDATE_DISABLE_USAGE_AS_COLLATERAL_OUTSIDE_EMODE = 42
    UPDATE_BLOCK_BORROWING_ABOVE_UTILIZATION = 43
    UPDATE_BLOCK_PRICE_USAGE = 44
    UPDATE_BORROW_LIMIT_OUTSIDE_ELEVATION_GROUP = 45
    UPDATE_BORROW_LIMITS_IN_ELEVATION_GROUP_AGAINST_THIS_RESERVE = 46
    UPDATE_HOST_FIXED_INTEREST_RATE_BPS = 47


class UpdateLendingMarketMode(enum.IntEnum):
    """Which market setting an update changes."""

    UPDATE_OWNER = 0
    UPDATE_EMERGENCY_MODE = 1
    UPDATE_LIQUIDATION_CLOSE_FACTOR = 2
    UPDATE_LIQUIDATION_MAX_VALUE = 3
    UPDATE_GLOBAL_UNHEALTHY_BORROW = 4
    UPDATE_GLOBAL_ALLOWED_BORROW = 5
    UPDATE_RISK_COUNCIL = 6
    UPDATE_MIN_FULL_LIQUIDATION_THRESHOLD = 7
    UPDATE_INSOLVENCY_RISK_LTV = 8
    UPDATE_ELEVATION_GROUP = 9
    UPDATE_REFERRAL_FEE_BPS = 10
    DEPRECATED_UPDATE_MULTIPLIER_POINTS = 11
    UPDATE_PRICE_REFRESH_TRIGGER_TO_MAX_AGE_PCT = 12
    UPDATE_AUTODELEVERAGE_ENABLED = 13
    UPDATE_BORROWING_DISABLED = 14
    UPDATE_MIN_NET_VALUE_OBLIGATION_POST_ACTION = 15
    UPDATE_MIN_VALUE_SKIP_PRIORITY_LIQ_CHECK = 16
    UPDATE_PADDING_FIELDS = 17
    UPDATE_NAME = 18


def _uint(value: Any, maximum: int, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{what} must be an integer")
    if not 0 <= value <= maximum:
        raise ValueError(f"{what} out of range: {value}")
    return value


def _uints(values: Any, count: int, maximum: int, what: str) -> tuple:
    items = tuple(values)
    if len(items) != count:
        raise ValueError(f"{what} must hold {count} entries, got {len(items)}")
    return tuple(_uint(item, maximum, what) for item in items)


def _exact_bytes(value: Any, length: int, what: str) -> bytes:
    data = bytes(value)
    if len(data) != length:
        raise ValueError(f"{what} must be {length} bytes, got {len(data)}")
    return data


def decode_utf_field(field: bytes) -> str:
    """Text of a fixed-size name field, invalid bytes replaced, trailing NULs dropped."""
    return bytes(field).decode("utf-8", errors="replace").rstrip("\0")


def encode_utf_field(text: str) -> bytes:
    """A 32-byte name field holding the text, NUL padded."""
    data = text.encode("utf-8")
    if len(data) > _UTF_FIELD_LEN:
        raise ValueError(f"text takes {len(data)} bytes, at most {_UTF_FIELD_LEN} fit")
    return data.ljust(_UTF_FIELD_LEN, b"\0")


class ReserveValueKind(enum.Enum):
    BOOL = "bool"
    U8 = "u8"
    U8_TUPLE = "u8_tuple"
    U16 = "u16"
    U64 = "u64"
    PUBKEY = "pubkey"
    SCOPE_CHAIN = "scope_chain"
    NAME = "name"
    BORROW_RATE_CURVE = "borrow_rate_curve"
    FULL = "full"
    WITHDRAWAL_CAP = "withdrawal_cap"
    ELEVATION_GROUPS = "elevation_groups"
    ELEVATION_GROUP_BORROW_LIMITS = "elevation_group_borrow_limits"


def _normalize_reserve_value(kind: ReserveValueKind, value: Any) -> Any:
    if kind is ReserveValueKind.BOOL:
        if not isinstance(value, bool):
            raise TypeError("a bool value is required")
        return value
    if kind is ReserveValueKind.U8:
        return _uint(value, _U8_MAX, "u8 value")
    if kind is ReserveValueKind.U8_TUPLE:
        return _uints(value, 2, _U8_MAX, "u8 pair")
    if kind is ReserveValueKind.U16:
        return _uint(value, _U16_MAX, "u16 value")
    if kind is ReserveValueKind.U64:
        return _uint(value, _U64_MAX, "u64 value")
    if kind is ReserveValueKind.PUBKEY:
        return _exact_bytes(value, PUBKEY_LEN, "public key")
    if kind is ReserveValueKind.SCOPE_CHAIN:
        return _uints(value, _SCOPE_CHAIN_LEN, _U16_MAX, "scope chain")
    if kind is ReserveValueKind.NAME:
        return _exact_bytes(value, _UTF_FIELD_LEN, "name")
    if kind in (ReserveValueKind.BORROW_RATE_CURVE, ReserveValueKind.FULL):
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"{kind.value} must be given in serialized form")
        return bytes(value)
    if kind is ReserveValueKind.WITHDRAWAL_CAP:
        return _uints(value, 2, _U64_MAX, "withdrawal cap")
    if kind is ReserveValueKind.ELEVATION_GROUPS:
        return bytes(_uints(value, _ELEVATION_GROUPS_LEN, _U8_MAX, "elevation groups"))
    return _uints(value, _BORROW_LIMITS_LEN, _U64_MAX, "borrow limits")


@dataclass(frozen=True)
class UpdateReserveConfigValue:
    """A value for a reserve configuration update.

    Borrow rate curves and whole configurations are carried already serialized.
    """

    kind: ReserveValueKind
    value: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _normalize_reserve_value(self.kind, self.value))

    def to_raw_bytes(self) -> bytes:
        kind, value = self.kind, self.value
        if kind is ReserveValueKind.BOOL:
            return bytes([int(value)])
        if kind is ReserveValueKind.U8:
            return bytes([value])
        if kind is ReserveValueKind.U8_TUPLE:
            return bytes(value)
        if kind is ReserveValueKind.U16:
            return struct.pack("<H", value)
        if kind is ReserveValueKind.U64:
            return struct.pack("<Q", value)
        if kind is ReserveValueKind.SCOPE_CHAIN:
            return struct.pack(f"<{_SCOPE_CHAIN_LEN}H", *value)
        if kind is ReserveValueKind.WITHDRAWAL_CAP:
            return struct.pack("<QQ", *value)
        if kind is ReserveValueKind.ELEVATION_GROUP_BORROW_LIMITS:
            return struct.pack(f"<{_BORROW_LIMITS_LEN}Q", *value)
        return value


class MarketValueKind(enum.Enum):
    BOOL = "bool"
    U8 = "u8"
    U8_ARRAY = "u8_array"
    U16 = "u16"
    U64 = "u64"
    U128 = "u128"
    PUBKEY = "pubkey"
    ELEVATION_GROUP = "elevation_group"
    NAME = "name"


def _normalize_market_value(kind: MarketValueKind, value: Any) -> Any:
    if kind is MarketValueKind.BOOL:
        if not isinstance(value, bool):
            raise TypeError("a bool value is required")
        return value
    if kind is MarketValueKind.U8:
        return _uint(value, _U8_MAX, "u8 value")
    if kind is MarketValueKind.U8_ARRAY:
        return _exact_bytes(value, 8, "u8 array")
    if kind is MarketValueKind.U16:
        return _uint(value, _U16_MAX, "u16 value")
    if kind is MarketValueKind.U64:
        return _uint(value, _U64_MAX, "u64 value")
    if kind is MarketValueKind.U128:
        return _uint(value, _U128_MAX, "u128 value")
    if kind is MarketValueKind.PUBKEY:
        return _exact_bytes(value, PUBKEY_LEN, "public key")
    if kind is MarketValueKind.ELEVATION_GROUP:
        if not isinstance(value, ElevationGroup):
            raise TypeError("an ElevationGroup is required")
        return value
    return _exact_bytes(value, _UTF_FIELD_LEN, "name")


@dataclass(frozen=True)
class UpdateLendingMarketConfigValue:
    """A value for a market setting update."""

    kind: MarketValueKind
    value: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _normalize_market_value(self.kind, self.value))

    def to_bytes(self) -> bytes:
        """The value in a zero-padded buffer of fixed length."""
        kind, value = self.kind, self.value
        if kind is MarketValueKind.BOOL:
            payload = bytes([int(value)])
        elif kind is MarketValueKind.U8:
            payload = bytes([value])
        elif kind is MarketValueKind.U16:
            payload = struct.pack("<H", value)
        elif kind is MarketValueKind.U64:
            payload = struct.pack("<Q", value)
        elif kind is MarketValueKind.U128:
            payload = value.to_bytes(16, "little")
        elif kind is MarketValueKind.ELEVATION_GROUP:
            payload = value.to_bytes()
        else:
            payload = value
        return payload.ljust(VALUE_BYTE_MAX_ARRAY_LEN_MARKET_UPDATE, b"\0")