"""
Tests for currency validation and formatting.
"""

import pytest

from ticketing.core.errors import ValidationError
from ticketing.services.currency import (
    VALID_CURRENCIES,
    format_amount,
    get_currency_config,
    get_currency_name,
    get_currency_symbol,
    validate_currency_code,
)


class TestValidateCurrencyCode:
    def test_should_normalize_case_and_whitespace(self):
        assert validate_currency_code(" usd ") == "USD"

    @pytest.mark.parametrize("code", ["XYZ", "", "US"])
    def test_should_reject_unknown_codes(self, code):
        with pytest.raises(ValidationError) as exc_info:
            validate_currency_code(code)

        assert exc_info.value.details["supported"] == list(VALID_CURRENCIES)


class TestFormatAmount:
    def test_should_format_with_symbol_before(self):
        assert format_amount(123456, "USD") == "$1,234.56"

    def test_should_format_with_symbol_after(self):
        assert format_amount(500, "EUR", position="after") == "5.00€"

    def test_should_drop_decimals_for_zero_decimal_currency(self):
        assert format_amount(150000, "JPY") == "¥1,500"

    def test_should_use_default_currency_when_missing(self):
        assert format_amount(100).startswith(get_currency_symbol("NGN"))


class TestCurrencyLookups:
    def test_should_fall_back_to_code_for_unknown_symbol(self):
        assert get_currency_symbol("xyz") == "xyz"

    def test_should_return_currency_name(self):
        assert get_currency_name("gbp") == "British Pound"

    def test_should_build_config(self):
        config = get_currency_config()

        assert config["default_currency"] == "NGN"
        assert config["currency_symbol"] == "₦"
        assert config["currency_position"] == "before"
        assert set(config["symbols"]) == set(VALID_CURRENCIES)
