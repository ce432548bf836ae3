"""Reserve liquidity and collateral balances, fees and interest compounding."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Tuple

from lendcore.referral import ReferrerTokenState
from lendcore.token_info import DEFAULT_PUBKEY, PUBKEY_LEN
from lendcore.types import FRACTIONAL_BITS, Fixed, LendingError, LendingErrorCode

SLOTS_PER_SECOND = 2
SLOTS_PER_MINUTE = SLOTS_PER_SECOND * 60
SLOTS_PER_HOUR = SLOTS_PER_MINUTE * 60
SLOTS_PER_DAY = SLOTS_PER_HOUR * 24
SLOTS_PER_YEAR = SLOTS_PER_DAY * 365

INITIAL_COLLATERAL_RATE = Fixed.ONE
FLASH_LOANS_DISABLED = (1 << 64) - 1

_U16_MAX = 0xFFFF
_U64_MAX = (1 << 64) - 1
_U128_MAX = (1 << 128) - 1
_U256_MAX = (1 << 256) - 1
_FULL_REFERRAL_BPS = 10_000
_MINIMUM_FEE = 1


def _overflow(message: str | None = None) -> LendingError:
    return LendingError(LendingErrorCode.MATH_OVERFLOW, message)


def _check_key(key: bytes, name: str) -> bytes:
    key = bytes(key)
    if len(key) != PUBKEY_LEN:
        raise ValueError(f"{name} must be {PUBKEY_LEN} bytes, got {len(key)}")
    return key


def _check_amount(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer")
    if not 0 <= value <= _U64_MAX:
        raise ValueError(f"{name} out of range: {value}")
    return value


class AssetTier(enum.IntEnum):
    REGULAR = 0
    ISOLATED_COLLATERAL = 1
    ISOLATED_DEBT = 2


class ReserveStatus(enum.IntEnum):
    ACTIVE = 0
    OBSOLETE = 1
    HIDDEN = 2


class ReserveFarmKind(enum.IntEnum):
    COLLATERAL = 0
    DEBT = 1


class FeeCalculation(enum.Enum):
    """Whether a fee is charged on top of an amount or taken out of it."""

    EXCLUSIVE = "exclusive"
    INCLUSIVE = "inclusive"


@dataclass
class WithdrawalCaps:
    config_capacity: int = 0
    current_total: int = 0
    last_interval_start_timestamp: int = 0
    config_interval_length_seconds: int = 0


@dataclass
class ReserveFees:
    """Borrow and flash-loan fee rates, as fixed-point bits."""

    borrow_fee_sf: int = 0
    flash_loan_fee_sf: int = 0

    def __post_init__(self) -> None:
        _check_amount(self.borrow_fee_sf, "borrow_fee_sf")
        _check_amount(self.flash_loan_fee_sf, "flash_loan_fee_sf")

    def flash_loans_disabled(self) -> bool:
        return self.flash_loan_fee_sf == FLASH_LOANS_DISABLED

    def calculate_borrow_fees(
        self,
        borrow_amount: Fixed,
        fee_calculation: FeeCalculation,
        referral_fee_bps: int,
        has_referrer: bool,
    ) -> Tuple[int, int]:
        """(protocol fee, referral fee) for a borrow."""
        return self._calculate_fees(
            borrow_amount, self.borrow_fee_sf, fee_calculation, referral_fee_bps, has_referrer
        )

    def calculate_flash_loan_fees(
        self, flash_loan_amount: Fixed, referral_fee_bps: int, has_referrer: bool
    ) -> Tuple[int, int]:
        """(protocol fee, referral fee) for a flash loan."""
        return self._calculate_fees(
            flash_loan_amount,
            self.flash_loan_fee_sf,
            FeeCalculation.EXCLUSIVE,
            referral_fee_bps,
            has_referrer,
        )

    @staticmethod
    def _calculate_fees(
        amount: Fixed,
        fee_sf: int,
        fee_calculation: FeeCalculation,
        referral_fee_bps: int,
        has_referrer: bool,
    ) -> Tuple[int, int]:
        if isinstance(referral_fee_bps, bool) or not 0 <= referral_fee_bps <= _U16_MAX:
            raise ValueError(f"referral_fee_bps out of range: {referral_fee_bps}")
        fee_rate = Fixed.from_bits(fee_sf)
        referral_fee_rate = Fixed.from_bps(referral_fee_bps)
        if not (fee_rate > Fixed.ZERO and amount > Fixed.ZERO):
            return 0, 0

        assess_referral = referral_fee_rate > Fixed.ZERO and has_referrer
        if fee_calculation is FeeCalculation.EXCLUSIVE:
            fee_amount = amount * fee_rate
        else:
            fee_amount = amount * (fee_rate / (fee_rate + Fixed.ONE))

        fee_f = max(fee_amount, Fixed.from_int(_MINIMUM_FEE))
        if fee_f >= amount:
            raise LendingError(
                LendingErrorCode.BORROW_TOO_SMALL,
                "Borrow amount is too small to receive liquidity after fees",
            )

        fee = fee_f.to_round()
        if not assess_referral:
            referral_fee = 0
        elif referral_fee_bps == _FULL_REFERRAL_BPS:
            referral_fee = fee
        else:
            referral_fee = (fee_f * referral_fee_rate).to_floor()
        return fee - referral_fee, referral_fee


@dataclass(frozen=True)
class CollateralExchangeRate:
    """Collateral tokens issued per unit of liquidity."""

    rate: Fixed

    def collateral_to_liquidity(self, collateral_amount: int) -> int:
        return self.fraction_collateral_to_liquidity(Fixed.from_int(collateral_amount)).to_floor()

    def fraction_collateral_to_liquidity(self, collateral_amount: Fixed) -> Fixed:
        return collateral_amount / self.rate

    def fraction_liquidity_to_collateral(self, liquidity_amount: Fixed) -> Fixed:
        return self.rate * liquidity_amount

    def liquidity_to_collateral_fraction(self, liquidity_amount: int) -> Fixed:
        return self.rate * _check_amount(liquidity_amount, "liquidity_amount")

    def liquidity_to_collateral(self, liquidity_amount: int) -> int:
        return self.liquidity_to_collateral_fraction(liquidity_amount).to_floor()

    def liquidity_to_collateral_ceil(self, liquidity_amount: int) -> int:
        return self.liquidity_to_collateral_fraction(liquidity_amount).to_ceil()


@dataclass
class ReserveCollateral:
    """The collateral token minted against a reserve's liquidity."""

    mint_pubkey: bytes = DEFAULT_PUBKEY
    mint_total_supply: int = 0
    supply_vault: bytes = DEFAULT_PUBKEY

    def __post_init__(self) -> None:
        self.mint_pubkey = _check_key(self.mint_pubkey, "mint_pubkey")
        self.supply_vault = _check_key(self.supply_vault, "supply_vault")
        _check_amount(self.mint_total_supply, "mint_total_supply")

    def mint(self, collateral_amount: int) -> None:
        new_supply = self.mint_total_supply + _check_amount(collateral_amount, "collateral_amount")
        if new_supply > _U64_MAX:
            raise _overflow()
        self.mint_total_supply = new_supply

    def burn(self, collateral_amount: int) -> None:
        new_supply = self.mint_total_supply - _check_amount(collateral_amount, "collateral_amount")
        if new_supply < 0:
            raise _overflow()
        self.mint_total_supply = new_supply

    def exchange_rate(self, total_liquidity: Fixed) -> CollateralExchangeRate:
        if self.mint_total_supply == 0 or total_liquidity == Fixed.ZERO:
            return CollateralExchangeRate(INITIAL_COLLATERAL_RATE)
        return CollateralExchangeRate(Fixed.from_int(self.mint_total_supply) / total_liquidity)


@dataclass
class ReserveLiquidity:
    """The lent token of a reserve: what is available, borrowed and owed in fees."""

    mint_pubkey: bytes = DEFAULT_PUBKEY
    supply_vault: bytes = DEFAULT_PUBKEY
    fee_vault: bytes = DEFAULT_PUBKEY
    available_amount: int = 0
    borrowed_amount_sf: int = 0
    market_price_sf: int = 0
    market_price_last_updated_ts: int = 0
    mint_decimals: int = 0
    deposit_limit_crossed_slot: int = 0
    borrow_limit_crossed_slot: int = 0
    cumulative_borrow_rate_bsf: int = field(default=Fixed.ONE.to_bits())
    accumulated_protocol_fees_sf: int = 0
    accumulated_referrer_fees_sf: int = 0
    pending_referrer_fees_sf: int = 0
    absolute_referral_rate_sf: int = 0
    token_program: bytes = DEFAULT_PUBKEY

    def __post_init__(self) -> None:
        for name in ("mint_pubkey", "supply_vault", "fee_vault", "token_program"):
            setattr(self, name, _check_key(getattr(self, name), name))
        _check_amount(self.available_amount, "available_amount")
        if not 0 <= self.cumulative_borrow_rate_bsf <= _U256_MAX:
            raise ValueError("cumulative_borrow_rate_bsf out of range")

    def total_supply(self) -> Fixed:
        return (
            Fixed.from_int(self.available_amount)
            + Fixed.from_bits(self.borrowed_amount_sf)
            - Fixed.from_bits(self.accumulated_protocol_fees_sf)
            - Fixed.from_bits(self.accumulated_referrer_fees_sf)
            - Fixed.from_bits(self.pending_referrer_fees_sf)
        )

    def total_borrow(self) -> Fixed:
        return Fixed.from_bits(self.borrowed_amount_sf)

    def deposit(self, liquidity_amount: int) -> None:
        new_amount = self.available_amount + _check_amount(liquidity_amount, "liquidity_amount")
        if new_amount > _U64_MAX:
            raise _overflow()
        self.available_amount = new_amount

    def withdraw(self, liquidity_amount: int) -> None:
        if _check_amount(liquidity_amount, "liquidity_amount") > self.available_amount:
            raise LendingError(
                LendingErrorCode.INSUFFICIENT_LIQUIDITY,
                "Withdraw amount cannot exceed available amount",
            )
        self.available_amount -= liquidity_amount

    def borrow(self, borrow_amount: Fixed) -> None:
        whole_amount = borrow_amount.to_floor()
        if whole_amount > self.available_amount:
            raise LendingError(
                LendingErrorCode.INSUFFICIENT_LIQUIDITY,
                f"Borrow amount cannot exceed available amount borrow_amount={whole_amount}, "
                f"available_amount={self.available_amount}",
            )
        new_borrowed = Fixed.from_bits(self.borrowed_amount_sf) + borrow_amount
        self.available_amount -= whole_amount
        self.borrowed_amount_sf = new_borrowed.to_bits()

    def repay(self, repay_amount: int, settle_amount: Fixed) -> None:
        new_available = self.available_amount + _check_amount(repay_amount, "repay_amount")
        if new_available > _U64_MAX:
            raise _overflow()
        borrowed = Fixed.from_bits(self.borrowed_amount_sf)
        remaining = borrowed.checked_sub(min(settle_amount, borrowed))
        if remaining is None:
            raise _overflow("Borrowed amount cannot be less than settle amount")
        self.available_amount = new_available
        self.borrowed_amount_sf = remaining.to_bits()

    def redeem_fees(self, withdraw_amount: int) -> None:
        new_available = self.available_amount - _check_amount(withdraw_amount, "withdraw_amount")
        if new_available < 0:
            raise _overflow()
        remaining = Fixed.from_bits(self.accumulated_protocol_fees_sf).checked_sub(
            Fixed.from_int(withdraw_amount)
        )
        if remaining is None:
            raise _overflow("Accumulated protocol fees cannot be less than withdraw amount")
        self.available_amount = new_available
        self.accumulated_protocol_fees_sf = remaining.to_bits()

    def utilization_rate(self) -> Fixed:
        total_supply = self.total_supply()
        if total_supply == Fixed.ZERO:
            return Fixed.ZERO
        return Fixed.from_bits(self.borrowed_amount_sf) / total_supply

    def compound_interest(
        self,
        current_borrow_rate: Fixed,
        host_fixed_interest_rate: Fixed,
        slots_elapsed: int,
        protocol_take_rate: Fixed,
        referral_rate: Fixed,
    ) -> None:
        """Grow the debt by the interest of the elapsed slots and book the fees on it."""
        previous_debt = Fixed.from_bits(self.borrowed_amount_sf)
        accumulated_protocol_fees = Fixed.from_bits(self.accumulated_protocol_fees_sf)

        compounded_interest_rate = approximate_compounded_interest(
            current_borrow_rate + host_fixed_interest_rate, slots_elapsed
        )
        compounded_fixed_rate = approximate_compounded_interest(
            host_fixed_interest_rate, slots_elapsed
        )

        new_cumulative_rate = (
            self.cumulative_borrow_rate_bsf * compounded_interest_rate.to_bits()
        ) >> FRACTIONAL_BITS
        if new_cumulative_rate > _U256_MAX:
            raise _overflow()

        new_debt = previous_debt * compounded_interest_rate
        fixed_host_fee = previous_debt * compounded_fixed_rate - previous_debt
        net_new_variable_debt = new_debt - previous_debt - fixed_host_fee

        variable_protocol_fee = net_new_variable_debt * protocol_take_rate
        absolute_referral_rate = protocol_take_rate * referral_rate
        max_referrers_fees = net_new_variable_debt * absolute_referral_rate

        new_accumulated_protocol_fees = (
            accumulated_protocol_fees + fixed_host_fee + variable_protocol_fee - max_referrers_fees
        )
        new_pending_referrer_fees = self.pending_referrer_fees_sf + max_referrers_fees.to_bits()
        if new_pending_referrer_fees > _U128_MAX:
            raise _overflow()

        self.cumulative_borrow_rate_bsf = new_cumulative_rate
        self.pending_referrer_fees_sf = new_pending_referrer_fees
        self.accumulated_protocol_fees_sf = new_accumulated_protocol_fees.to_bits()
        self.borrowed_amount_sf = new_debt.to_bits()
        self.absolute_referral_rate_sf = absolute_referral_rate.to_bits()

    def forgive_debt(self, liquidity_amount: Fixed) -> None:
        remaining = Fixed.from_bits(self.borrowed_amount_sf) - liquidity_amount
        self.borrowed_amount_sf = remaining.to_bits()

    def withdraw_referrer_fees(
        self, withdraw_amount: int, referrer_token_state: ReferrerTokenState
    ) -> None:
        """Pay referral fees out of the reserve and off the referrer's unclaimed balance."""
        new_available = self.available_amount - _check_amount(withdraw_amount, "withdraw_amount")
        if new_available < 0:
            raise _overflow()
        withdraw_f = Fixed.from_int(withdraw_amount)
        new_referrer_fees = Fixed.from_bits(self.accumulated_referrer_fees_sf).checked_sub(
            withdraw_f
        )
        if new_referrer_fees is None:
            raise _overflow("Accumulated referrer fees cannot be less than withdraw amount")
        new_unclaimed = Fixed.from_bits(referrer_token_state.amount_unclaimed_sf).checked_sub(
            withdraw_f
        )
        if new_unclaimed is None:
            raise _overflow("Unclaimed referrer fees cannot be less than withdraw amount")

        self.available_amount = new_available
        self.accumulated_referrer_fees_sf = new_referrer_fees.to_bits()
        referrer_token_state.amount_unclaimed_sf = new_unclaimed.to_bits()

    def market_price(self) -> Fixed:
        return Fixed.from_bits(self.market_price_sf)


def approximate_compounded_interest(rate: Fixed, elapsed_slots: int) -> Fixed:
    """Growth factor of a yearly rate over some slots, exact up to four slots."""
    if elapsed_slots < 0:
        raise ValueError("elapsed_slots must not be negative")
    base = rate / SLOTS_PER_YEAR
    one_plus = Fixed.ONE + base
    if elapsed_slots == 0:
        return Fixed.ONE
    if elapsed_slots == 1:
        return one_plus
    if elapsed_slots == 2:
        return one_plus * one_plus
    if elapsed_slots == 3:
        return one_plus * one_plus * one_plus
    if elapsed_slots == 4:
        squared = one_plus * one_plus
        return squared * squared

    exp = elapsed_slots
    base_power_two = base * base
    base_power_three = base_power_two * base

    first_term = base * exp
    second_term = (base_power_two * exp * (exp - 1)) / 2
    third_term = (base_power_three * exp * (exp - 1) * (exp - 2)) / 6
    return Fixed.ONE + first_term + second_term + third_term