"""Currency -- ISO 4217 registry for supplier price currencies."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str


class CurrencyRegistry:
    """Registry of the ISO 4217 currencies suppliers invoice in."""

    # Source: https://www.iso.org/iso-4217-currency-codes.html
    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "CHF": CurrencyInfo("CHF", 2, "Swiss Franc"),
        "SEK": CurrencyInfo("SEK", 2, "Swedish Krona"),
        "NOK": CurrencyInfo("NOK", 2, "Norwegian Krone"),
        "DKK": CurrencyInfo("DKK", 2, "Danish Krone"),
        "PLN": CurrencyInfo("PLN", 2, "Polish Zloty"),
        "CZK": CurrencyInfo("CZK", 2, "Czech Koruna"),
        "HUF": CurrencyInfo("HUF", 2, "Hungarian Forint"),
        "RON": CurrencyInfo("RON", 2, "Romanian Leu"),
        "BGN": CurrencyInfo("BGN", 2, "Bulgarian Lev"),
        "RSD": CurrencyInfo("RSD", 2, "Serbian Dinar"),
        "BAM": CurrencyInfo("BAM", 2, "Bosnia and Herzegovina Convertible Mark"),
        "TRY": CurrencyInfo("TRY", 2, "Turkish Lira"),
        "CNY": CurrencyInfo("CNY", 2, "Chinese Yuan"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar"),
        "AUD": CurrencyInfo("AUD", 2, "Australian Dollar"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "KRW": CurrencyInfo("KRW", 0, "South Korean Won"),
        "ISK": CurrencyInfo("ISK", 0, "Icelandic Krona"),
    }

    # Default decimal places for unknown currencies
    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is a known ISO 4217 code."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        """Get currency information by code."""
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Get decimal places for a currency."""
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES
