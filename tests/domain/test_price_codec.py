"""
Mod-9 check digit for display prices.
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from gem_kernel.domain.price_codec import (
    EncodedPrice,
    decode_price,
    encode_price,
    normalize_price,
    validate_price,
)


class TestEncode:

    def test_worked_example(self):
        assert encode_price(7850) == EncodedPrice(
            normalized_integer=7850, encoded_string="78502", check_digit=2
        )

    def test_rounds_half_up_and_drops_sign(self):
        assert normalize_price(Decimal("10.5")) == 11
        assert normalize_price(Decimal("10.49")) == 10
        assert normalize_price(-2.5) == 3

    def test_zero(self):
        assert encode_price(0).encoded_string == "00"

    def test_digit_sum_multiple_of_nine_gives_zero(self):
        assert encode_price(99).check_digit == 0

    @pytest.mark.parametrize("price", ["abc", "NaN", float("inf")])
    def test_non_finite_input_raises(self, price):
        with pytest.raises(ValueError):
            encode_price(price)


class TestValidate:

    @pytest.mark.parametrize(
        "encoded",
        [None, "", "7", "78503", "7a502", "7850x", " 78502", "7850²", "-78502"],
    )
    def test_rejects(self, encoded):
        assert validate_price(encoded) is False
        assert decode_price(encoded) is None

    def test_accepts_and_decodes(self):
        assert validate_price("78502") is True
        assert decode_price("78502") == 7850

    def test_transposition_is_not_detected(self):
        # Documented weakness of a digit-sum check.
        assert validate_price("58702")
        assert decode_price("58702") == 5870


class TestCodecLaws:

    @given(st.integers(min_value=0, max_value=10**12))
    def test_decode_inverts_encode(self, price):
        encoded = encode_price(price)
        assert validate_price(encoded.encoded_string)
        assert decode_price(encoded.encoded_string) == encoded.normalized_integer

    @given(
        st.decimals(min_value=0, max_value=10**9, allow_nan=False, allow_infinity=False, places=2)
    )
    def test_decimal_prices_decode_to_normalized(self, price):
        encoded = encode_price(price)
        assert decode_price(encoded.encoded_string) == normalize_price(price)

    @given(st.integers(min_value=0, max_value=10**9), st.integers(min_value=1, max_value=8))
    def test_wrong_check_digit_rejected(self, price, delta):
        encoded = encode_price(price)
        wrong = (encoded.check_digit + delta) % 9
        assert not validate_price(f"{encoded.normalized_integer}{wrong}")
