from __future__ import annotations

from pydantic import BaseModel


class CurrencyConfigResponse(BaseModel):
    default_currency: str
    currency_symbol: str
    currency_position: str
    supported_currencies: list[str]
    symbols: dict[str, str]
    names: dict[str, str]
