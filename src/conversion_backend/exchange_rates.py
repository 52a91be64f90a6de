from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from omegaconf import DictConfig

from .errors import ConversionFailure

logger = logging.getLogger(__name__)


class ExchangeRateClient:
    """Thin client for the exchange-rates ``/convert`` endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.exchangeratesapi.io/v1",
        timeout_seconds: float = 15,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def from_config(cls, config: DictConfig, transport: Optional[httpx.BaseTransport] = None) -> "ExchangeRateClient":
        rates = config.exchange_rates
        return cls(
            api_key=str(rates.api_key or ""),
            base_url=str(rates.base_url),
            timeout_seconds=float(rates.timeout_seconds),
            transport=transport,
        )

    def convert(self, amount: float, from_currency: str, to_currency: str) -> Dict[str, Any]:
        if not self.api_key:
            raise ConversionFailure("Exchange Rates API key not configured")

        params = {
            "access_key": self.api_key,
            "from": from_currency,
            "to": to_currency,
            "amount": amount,
        }
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.get(f"{self.base_url}/convert", params=params)
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Exchange Rates API error: %s", exc)
            raise ConversionFailure("Currency conversion failed") from exc

        if not data.get("success"):
            info = (data.get("error") or {}).get("info")
            logger.error("Exchange Rates API rejected %s->%s: %s", from_currency, to_currency, info)
            raise ConversionFailure(info or "Currency conversion failed")

        return {
            "original_amount": amount,
            "from_currency": from_currency,
            "to_currency": to_currency,
            "converted_amount": data.get("result"),
            "exchange_rate": (data.get("info") or {}).get("rate"),
            "date": data.get("date"),
        }
