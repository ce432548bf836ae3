"""Fixed-point state and accounting rules for a collateralised lending market."""

__version__ = "0.1.0"
__all__ = [
    "config_updates",
    "last_update",
    "lending_market",
    "liquidation",
    "liquidity",
    "obligation",
    "referral",
    "reserve",
    "token_info",
    "types",
]