from fastapi import APIRouter

from ticketing.api.schemas.currency import CurrencyConfigResponse
from ticketing.services.currency import get_currency_config

router = APIRouter(prefix="/currency", tags=["Currency"])


@router.get("/config", response_model=CurrencyConfigResponse, summary="Supported currencies")
def currency_config() -> dict:
    """Default currency, supported codes, symbols and names. Public."""
    return get_currency_config()
