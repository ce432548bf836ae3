import pytest

from lendcore.token_info import (
    DEFAULT_PUBKEY,
    NULL_PUBKEY,
    U16_MAX,
    PythConfiguration,
    ScopeConfiguration,
    SwitchboardConfiguration,
    TokenInfo,
    decode_scope_chain,
    encode_scope_chain,
)
from lendcore.types import LendingError, LendingErrorCode

PYTH_KEY = bytes([7]) * 32
SB_PRICE_KEY = bytes([8]) * 32
SB_TWAP_KEY = bytes([9]) * 32
SCOPE_KEY = bytes([10]) * 32


def test_encode_scope_chain_stops_at_unused():
    assert encode_scope_chain((1, 2, U16_MAX, U16_MAX)) == [1, 2]
    assert encode_scope_chain((1, U16_MAX, 3, 4)) == [1]


def test_decode_scope_chain_fills_and_truncates():
    assert decode_scope_chain([1, 2]) == (1, 2, U16_MAX, U16_MAX)
    assert decode_scope_chain([1, 2, 3, 4, 5]) == (1, 2, 3, 4)


def test_scope_chain_round_trip():
    chain = (5, 6, 7, U16_MAX)
    assert decode_scope_chain(encode_scope_chain(chain)) == chain


def test_default_token_info_is_invalid():
    info = TokenInfo()
    assert info.is_valid() is False
    with pytest.raises(LendingError) as err:
        info.validate_token_info_config(None, None, None, None)
    assert err.value.code is LendingErrorCode.INVALID_ORACLE_CONFIG


def test_null_and_default_keys_are_disabled():
    assert len(NULL_PUBKEY) == 32
    assert ScopeConfiguration().is_enabled() is False
    assert PythConfiguration(NULL_PUBKEY).is_enabled() is False
    assert PythConfiguration(DEFAULT_PUBKEY).is_enabled() is False
    assert PythConfiguration(PYTH_KEY).is_enabled() is True


def test_pyth_only_config_validates():
    info = TokenInfo(pyth_configuration=PythConfiguration(PYTH_KEY))
    info.validate_token_info_config(PYTH_KEY, None, None, None)
    assert info.check_pyth_acc_matches(PYTH_KEY) is True
    with pytest.raises(LendingError) as err:
        info.validate_token_info_config(SB_PRICE_KEY, None, None, None)
    assert err.value.code is LendingErrorCode.INVALID_PYTH_PRICE_ACCOUNT


def test_twap_without_max_age_is_invalid():
    info = TokenInfo(
        pyth_configuration=PythConfiguration(PYTH_KEY),
        max_twap_divergence_bps=100,
    )
    assert info.is_twap_config_valid() is False
    with pytest.raises(LendingError) as err:
        info.validate_token_info_config(PYTH_KEY, None, None, None)
    assert err.value.code is LendingErrorCode.INVALID_TWAP_CONFIG


def test_switchboard_twap_requires_twap_account():
    info = TokenInfo(
        switchboard_configuration=SwitchboardConfiguration(SB_PRICE_KEY, SB_TWAP_KEY),
        max_twap_divergence_bps=100,
        max_age_twap_seconds=60,
    )
    assert info.is_twap_config_valid() is True
    assert info.check_switchboard_acc_matches(SB_PRICE_KEY, SB_TWAP_KEY) is True
    assert info.check_switchboard_acc_matches(SB_PRICE_KEY, None) is False
    with pytest.raises(LendingError) as err:
        info.validate_token_info_config(None, SB_PRICE_KEY, None, None)
    assert err.value.code is LendingErrorCode.INVALID_SWITCHBOARD_ACCOUNT


def test_switchboard_without_twap_ignores_twap_account():
    info = TokenInfo(switchboard_configuration=SwitchboardConfiguration(SB_PRICE_KEY))
    assert info.check_switchboard_acc_matches(SB_PRICE_KEY, None) is True
    assert info.switchboard_configuration.has_twap() is False


def test_scope_requires_price_chain():
    bad = ScopeConfiguration(price_feed=SCOPE_KEY)
    assert bad.is_valid() is False
    zero = ScopeConfiguration(price_feed=SCOPE_KEY, price_chain=(0, 0, 0, 0))
    assert zero.is_valid() is False
    good = ScopeConfiguration(price_feed=SCOPE_KEY, price_chain=(3, U16_MAX, U16_MAX, U16_MAX))
    info = TokenInfo(scope_configuration=good)
    info.validate_token_info_config(None, None, None, SCOPE_KEY)
    with pytest.raises(LendingError) as err:
        info.validate_token_info_config(None, None, None, None)
    assert err.value.code is LendingErrorCode.INVALID_SCOPE_PRICE_ACCOUNT


def test_unexpected_account_when_disabled():
    info = TokenInfo(pyth_configuration=PythConfiguration(PYTH_KEY))
    assert info.check_scope_acc_matches(SCOPE_KEY) is False
    assert info.check_scope_acc_matches(None) is True


def test_symbol():
    assert TokenInfo(name=b"SOL").symbol() == "SOL"
    assert TokenInfo(name=b"\xff\xfe").symbol() == "InvalidTokenName"


def test_name_too_long():
    with pytest.raises(ValueError):
        TokenInfo(name=b"x" * 33)


def test_bad_key_length():
    with pytest.raises(ValueError):
        PythConfiguration(b"short")