# lendcore

`lendcore` models the state of a collateralised lending market in plain
Python: reserves, obligations, fees, interest and liquidation. Amounts are
exact fixed-point numbers (128 bits, 60 of them fractional), so every
rounding step is deterministic.

## What it covers

- **Fixed-point numbers**: `lendcore.types.Fixed` is built from raw bits
  (`Fixed.from_bits`) or from whole numbers, percentages and basis points
  (`Fixed.from_int`, `Fixed.from_percent`, `Fixed.from_bps`), and gives back
  `to_bits`, `to_floor`, `to_ceil`, `to_round`, `to_bps` and `to_percent`.
  It supports `+`, `-`, `*`, `/` and comparisons with other `Fixed` values
  and with integers. `saturating_sub` stops at zero; `checked_sub` returns
  `None` where the result would be negative, and the `-` operator raises a
  `LendingError` in that case.
- **Results and errors**: `lendcore.types` also holds the frozen result
  records (`CalculateBorrowResult`, `CalculateRepayResult`,
  `CalculateLiquidationResult`, `LiquidationParams` and others) and
  `LendingAction`.
- **Price freshness**: `lendcore.last_update.LastUpdate` records the slot of
  the last refresh and which `PriceStatusFlags` checks passed; `is_stale`
  tells whether it must be refreshed again.
- **Oracle configuration**: `lendcore.token_info.TokenInfo` checks its Scope,
  Switchboard and Pyth settings, the TWAP settings, and that the oracle
  account keys supplied are the configured ones
  (`validate_token_info_config`). `encode_scope_chain` and
  `decode_scope_chain` convert a price chain to and from its used entries.
- **Referrals**: `lendcore.referral` holds `ReferrerTokenState`,
  `UserMetadata`, `ReferrerState` and `ShortUrl`.
- **Markets**: `lendcore.lending_market.LendingMarket` holds market-wide
  limits and exactly 32 `ElevationGroup`s; `LendingMarket.create` makes a
  new market.
- **Config updates**: `lendcore.config_updates` encodes reserve and market
  update values to bytes (`UpdateReserveConfigValue.to_raw_bytes`,
  `UpdateLendingMarketConfigValue.to_bytes`) and lists the modes in
  `UpdateConfigMode` and `UpdateLendingMarketMode`. Borrow rate curves and
  whole reserve configurations are passed in already serialized.
- **Reserve balances**: `lendcore.liquidity` holds `ReserveLiquidity`,
  `ReserveCollateral`, `ReserveFees`, `CollateralExchangeRate` and
  `approximate_compounded_interest`.
- **Reserves**: `lendcore.reserve.Reserve` and `ReserveConfig` handle
  deposits, collateral redemption, borrow and repay calculations, deposit
  and borrow limits, referrer fee withdrawal and interest accrual.
- **Obligations**: `lendcore.obligation.Obligation` tracks a user's up to 8
  deposits and 5 borrows and their loan-to-value ratios.
- **Liquidation**: `lendcore.liquidation` decides whether an obligation can
  be liquidated, works out the bonus and the amounts to settle, repay and
  withdraw, and the protocol's share of the bonus
  (`calculate_protocol_liquidation_fee`). It logs its decisions at debug
  level on the `lendcore.liquidation` logger.

## Installing

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from lendcore.types import Fixed
from lendcore.liquidity import ReserveFees, FeeCalculation

fees = ReserveFees(borrow_fee_sf=Fixed.from_percent(1).to_bits())
protocol_fee, referrer_fee = fees.calculate_borrow_fees(
    Fixed.from_int(1_000), FeeCalculation.EXCLUSIVE, 0, False
)
# protocol_fee == 10, referrer_fee == 0
```

Failed operations raise `lendcore.types.LendingError`. Its `code` attribute
holds a `LendingErrorCode` that names the reason, such as `MATH_OVERFLOW`,
`BORROW_TOO_LARGE` or `OBLIGATION_HEALTHY`.

## What it does not do

- It does not compute a reserve's borrow rate: `Reserve.accrue_interest`
  takes the current yearly borrow rate as an argument.
- It has no auto-deleveraging: an obligation below its liquidation LTV
  cannot be liquidated and `get_liquidation_params` raises
  `OBLIGATION_HEALTHY`.
- It does not read oracle prices or refresh an obligation's values; market
  values are set on the objects by the caller.
- It does not store or serialize accounts, apart from the update values in
  `lendcore.config_updates` and `ElevationGroup.to_bytes`. There is no
  command line and no network access.