"""Slot tracking and price-status flags for refreshed accounts."""

from __future__ import annotations

import enum
import functools
from typing import Optional, Union

from lendcore.types import LendingError, LendingErrorCode

STALE_AFTER_SLOTS_ELAPSED = 1


class PriceStatusFlags(enum.IntFlag):
    """Checks that a price has passed."""

    NONE = 0
    PRICE_LOADED = 0b0000_0001
    PRICE_AGE_CHECKED = 0b0000_0010
    TWAP_CHECKED = 0b0000_0100
    TWAP_AGE_CHECKED = 0b0000_1000
    HEURISTIC_CHECKED = 0b0001_0000
    PRICE_USAGE_ALLOWED = 0b0010_0000
    ALL_CHECKS = 0b0011_1111
    LIQUIDATION_CHECKS = 0b0010_0011


def _truncate(flags: Union[PriceStatusFlags, int]) -> PriceStatusFlags:
    return PriceStatusFlags(int(flags) & int(PriceStatusFlags.ALL_CHECKS))


@functools.total_ordering
class LastUpdate:
    """When an account was last refreshed; compared by slot only."""

    def __init__(
        self,
        slot: int = 0,
        stale: bool = True,
        price_status: Union[PriceStatusFlags, int] = PriceStatusFlags.NONE,
    ) -> None:
        self.slot = slot
        self.stale = stale
        self.price_status = _truncate(price_status)

    def slots_elapsed(self, slot: int) -> int:
        elapsed = slot - self.slot
        if elapsed < 0:
            raise LendingError(LendingErrorCode.MATH_OVERFLOW)
        return elapsed

    def update_slot(
        self, slot: int, price_status: Optional[Union[PriceStatusFlags, int]] = None
    ) -> None:
        self.slot = slot
        self.stale = False
        if price_status is not None:
            self.price_status = _truncate(price_status)

    def mark_stale(self) -> None:
        self.stale = True

    def is_stale(self, slot: int, min_price_status: PriceStatusFlags) -> bool:
        required = int(min_price_status)
        price_status_ok = int(self.price_status) & required == required
        return (
            self.stale
            or self.slots_elapsed(slot) >= STALE_AFTER_SLOTS_ELAPSED
            or not price_status_ok
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LastUpdate):
            return NotImplemented
        return self.slot == other.slot

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LastUpdate):
            return NotImplemented
        return self.slot < other.slot

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"LastUpdate(slot={self.slot}, stale={self.stale}, "
            f"price_status={self.price_status!r})"
        )