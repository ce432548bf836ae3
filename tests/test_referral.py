import pytest

from lendcore.referral import ReferrerState, ReferrerTokenState, ShortUrl, UserMetadata
from lendcore.types import Fixed

REFERRER_KEY = bytes([3]) * 32


def test_referrer_token_state_str_shows_integer_parts():
    state = ReferrerTokenState(
        amount_unclaimed_sf=(Fixed.from_int(12) + Fixed.ONE / 2).to_bits(),
        amount_cumulative_sf=Fixed.from_int(40).to_bits(),
    )
    text = str(state)
    assert "amount_unclaimed (integer part): 12," in text
    assert text.endswith("amount_cumulative (integer part): 40")


def test_default_key_displays_as_base58_ones():
    text = str(ReferrerTokenState())
    assert text.startswith("Referrer Account: referrer: " + "1" * 32 + ", mint: ")


def test_referrer_token_state_default_equality():
    assert ReferrerTokenState() == ReferrerTokenState()
    assert ReferrerTokenState(referrer=REFERRER_KEY) != ReferrerTokenState()


def test_user_metadata_keeps_fields():
    meta = UserMetadata(referrer=REFERRER_KEY, bump=254)
    assert meta.referrer == REFERRER_KEY
    assert meta.bump == 254
    assert meta.owner == bytes(32)


def test_referrer_state_and_short_url():
    state = ReferrerState(short_url=REFERRER_KEY, owner=REFERRER_KEY)
    assert state.short_url == state.owner
    url = ShortUrl(referrer=REFERRER_KEY, short_url="promo")
    assert url == ShortUrl(REFERRER_KEY, "promo")


def test_bad_key_length_rejected():
    with pytest.raises(ValueError):
        ReferrerTokenState(referrer=b"abc")
    with pytest.raises(ValueError):
        ShortUrl(referrer=bytes(31), short_url="x")