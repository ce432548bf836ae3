"""Oracle configuration of a token and its consistency checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from lendcore.types import LendingError, LendingErrorCode

U16_MAX = 0xFFFF
PUBKEY_LEN = 32
DEFAULT_PUBKEY = bytes(PUBKEY_LEN)
_NAME_LEN = 32
_CHAIN_LEN = 4
_INVALID_NAME = "InvalidTokenName"
_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def _b58decode(text: str) -> bytes:
    number = 0
    for char in text:
        number = number * 58 + _B58_ALPHABET.index(char)
    leading = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return bytes(leading) + body


NULL_PUBKEY = _b58decode("nu" + "1" * 41)

Chain = Tuple[int, int, int, int]
_EMPTY_CHAIN: Chain = (U16_MAX,) * _CHAIN_LEN
_ZERO_CHAIN: Chain = (0,) * _CHAIN_LEN


def _check_key(key: bytes, name: str) -> bytes:
    key = bytes(key)
    if len(key) != PUBKEY_LEN:
        raise ValueError(f"{name} must be {PUBKEY_LEN} bytes, got {len(key)}")
    return key


def _is_set(key: bytes) -> bool:
    return key != DEFAULT_PUBKEY and key != NULL_PUBKEY


def _check_chain(chain: Iterable[int], name: str) -> Chain:
    values = tuple(chain)
    if len(values) != _CHAIN_LEN:
        raise ValueError(f"{name} must hold {_CHAIN_LEN} entries")
    return values  # type: ignore[return-value]


def encode_scope_chain(chain: Iterable[int]) -> List[int]:
    """Chain entries up to the first unused slot."""
    result = []
    for entry in chain:
        if entry == U16_MAX:
            break
        result.append(entry)
    return result


def decode_scope_chain(values: Iterable[int]) -> Chain:
    """A full chain from its used entries; extra entries are ignored."""
    chain = list(_EMPTY_CHAIN)
    for position, value in zip(range(_CHAIN_LEN), values):
        chain[position] = value
    return tuple(chain)  # type: ignore[return-value]


@dataclass
class PriceHeuristic:
    lower: int = 0
    upper: int = 0
    exp: int = 0


@dataclass
class ScopeConfiguration:
    price_feed: bytes = NULL_PUBKEY
    price_chain: Chain = _EMPTY_CHAIN
    twap_chain: Chain = _EMPTY_CHAIN

    def __post_init__(self) -> None:
        self.price_feed = _check_key(self.price_feed, "price_feed")
        self.price_chain = _check_chain(self.price_chain, "price_chain")
        self.twap_chain = _check_chain(self.twap_chain, "twap_chain")

    def is_enabled(self) -> bool:
        return _is_set(self.price_feed)

    def is_valid(self) -> bool:
        return not self.is_enabled() or self.price_chain not in (_EMPTY_CHAIN, _ZERO_CHAIN)

    def has_twap(self) -> bool:
        return self.twap_chain not in (_EMPTY_CHAIN, _ZERO_CHAIN)


@dataclass
class SwitchboardConfiguration:
    price_aggregator: bytes = DEFAULT_PUBKEY
    twap_aggregator: bytes = DEFAULT_PUBKEY

    def __post_init__(self) -> None:
        self.price_aggregator = _check_key(self.price_aggregator, "price_aggregator")
        self.twap_aggregator = _check_key(self.twap_aggregator, "twap_aggregator")

    def is_enabled(self) -> bool:
        return _is_set(self.price_aggregator)

    def has_twap(self) -> bool:
        return _is_set(self.twap_aggregator)


@dataclass
class PythConfiguration:
    price: bytes = DEFAULT_PUBKEY

    def __post_init__(self) -> None:
        self.price = _check_key(self.price, "price")

    def is_enabled(self) -> bool:
        return _is_set(self.price)


@dataclass
class TokenInfo:
    """Name, oracle sources and price sanity limits of a token."""

    name: bytes = bytes(_NAME_LEN)
    heuristic: PriceHeuristic = field(default_factory=PriceHeuristic)
    max_twap_divergence_bps: int = 0
    max_age_price_seconds: int = 0
    max_age_twap_seconds: int = 0
    scope_configuration: ScopeConfiguration = field(default_factory=ScopeConfiguration)
    switchboard_configuration: SwitchboardConfiguration = field(
        default_factory=SwitchboardConfiguration
    )
    pyth_configuration: PythConfiguration = field(default_factory=PythConfiguration)
    block_price_usage: int = 0

    def __post_init__(self) -> None:
        name = bytes(self.name)
        if len(name) > _NAME_LEN:
            raise ValueError(f"name must be at most {_NAME_LEN} bytes")
        self.name = name.ljust(_NAME_LEN, b"\0")

    def validate_token_info_config(
        self,
        pyth_key: Optional[bytes],
        switchboard_price_key: Optional[bytes],
        switchboard_twap_key: Optional[bytes],
        scope_prices_key: Optional[bytes],
    ) -> None:
        """Raise if the configuration or the supplied oracle accounts do not fit."""
        checks = (
            (self.is_valid(), LendingErrorCode.INVALID_ORACLE_CONFIG),
            (self.is_twap_config_valid(), LendingErrorCode.INVALID_TWAP_CONFIG),
            (self.check_pyth_acc_matches(pyth_key), LendingErrorCode.INVALID_PYTH_PRICE_ACCOUNT),
            (
                self.check_switchboard_acc_matches(switchboard_price_key, switchboard_twap_key),
                LendingErrorCode.INVALID_SWITCHBOARD_ACCOUNT,
            ),
            (
                self.check_scope_acc_matches(scope_prices_key),
                LendingErrorCode.INVALID_SCOPE_PRICE_ACCOUNT,
            ),
        )
        for passed, code in checks:
            if not passed:
                raise LendingError(code)

    def is_valid(self) -> bool:
        return self.scope_configuration.is_valid() and (
            self.scope_configuration.is_enabled()
            or self.switchboard_configuration.is_enabled()
            or self.pyth_configuration.is_enabled()
        )

    def is_twap_enabled(self) -> bool:
        return self.max_twap_divergence_bps > 0

    def is_twap_config_valid(self) -> bool:
        if not self.is_twap_enabled():
            return True
        if self.max_age_twap_seconds == 0:
            return False
        if self.scope_configuration.is_enabled() and not self.scope_configuration.has_twap():
            return False
        if (
            self.switchboard_configuration.is_enabled()
            and not self.switchboard_configuration.has_twap()
        ):
            return False
        return True

    def check_pyth_acc_matches(self, pyth_key: Optional[bytes]) -> bool:
        if self.pyth_configuration.is_enabled():
            return pyth_key is not None and bytes(pyth_key) == self.pyth_configuration.price
        return pyth_key is None

    def check_switchboard_acc_matches(
        self,
        switchboard_price_key: Optional[bytes],
        switchboard_twap_key: Optional[bytes],
    ) -> bool:
        config = self.switchboard_configuration
        if config.is_enabled():
            price_ok = (
                switchboard_price_key is not None
                and bytes(switchboard_price_key) == config.price_aggregator
            )
            twap_ok = not self.is_twap_enabled() or (
                switchboard_twap_key is not None
                and bytes(switchboard_twap_key) == config.twap_aggregator
            )
            return price_ok and twap_ok
        return switchboard_price_key is None and switchboard_twap_key is None

    def check_scope_acc_matches(self, scope_prices_key: Optional[bytes]) -> bool:
        if self.scope_configuration.is_enabled():
            return (
                scope_prices_key is not None
                and bytes(scope_prices_key) == self.scope_configuration.price_feed
            )
        return scope_prices_key is None

    def symbol(self) -> str:
        try:
            text = self.name.decode("utf-8")
        except UnicodeDecodeError:
            text = _INVALID_NAME
        return text.rstrip("\0")