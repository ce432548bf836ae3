"""Referral accounts: referrer fee balances, user metadata and short URLs."""

from __future__ import annotations

from dataclasses import dataclass

from lendcore.types import Fixed

PUBKEY_LEN = 32
DEFAULT_PUBKEY = bytes(PUBKEY_LEN)
_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def _b58encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, rem = divmod(number, 58)
        digits.append(_B58_ALPHABET[rem])
    leading = len(data) - len(data.lstrip(b"\0"))
    return "1" * leading + "".join(reversed(digits))


def _check_key(key: bytes, name: str) -> bytes:
    key = bytes(key)
    if len(key) != PUBKEY_LEN:
        raise ValueError(f"{name} must be {PUBKEY_LEN} bytes, got {len(key)}")
    return key


@dataclass
class ReferrerTokenState:
    """Referral fees owed to a referrer in one token."""

    referrer: bytes = DEFAULT_PUBKEY
    mint: bytes = DEFAULT_PUBKEY
    amount_unclaimed_sf: int = 0
    amount_cumulative_sf: int = 0
    bump: int = 0

    def __post_init__(self) -> None:
        self.referrer = _check_key(self.referrer, "referrer")
        self.mint = _check_key(self.mint, "mint")

    def __str__(self) -> str:
        unclaimed = Fixed.from_bits(self.amount_unclaimed_sf).to_floor()
        cumulative = Fixed.from_bits(self.amount_cumulative_sf).to_floor()
        return (
            f"Referrer Account: referrer: {_b58encode(self.referrer)}, "
            f"mint: {_b58encode(self.mint)}, "
            f"amount_unclaimed (integer part): {unclaimed}, "
            f"amount_cumulative (integer part): {cumulative}"
        )


@dataclass
class UserMetadata:
    referrer: bytes = DEFAULT_PUBKEY
    bump: int = 0
    user_lookup_table: bytes = DEFAULT_PUBKEY
    owner: bytes = DEFAULT_PUBKEY

    def __post_init__(self) -> None:
        self.referrer = _check_key(self.referrer, "referrer")
        self.user_lookup_table = _check_key(self.user_lookup_table, "user_lookup_table")
        self.owner = _check_key(self.owner, "owner")


@dataclass
class ReferrerState:
    short_url: bytes = DEFAULT_PUBKEY
    owner: bytes = DEFAULT_PUBKEY

    def __post_init__(self) -> None:
        self.short_url = _check_key(self.short_url, "short_url")
        self.owner = _check_key(self.owner, "owner")


@dataclass
class ShortUrl:
    referrer: bytes
    short_url: str

    def __post_init__(self) -> None:
        self.referrer = _check_key(self.referrer, "referrer")