"""Marketplace configuration — fee rate and the administrator principal.

The fee rate is process-wide configuration. It is read at settlement
time and applies to every sale settled after it changes; escrowed bids
carry no rate of their own. Only the administrator may change it.

Sources, in order of preference for the CLI:
    MarketConfig.from_env()     NFTMARKET_FEE_RATE, NFTMARKET_ADMINISTRATOR
                                (a .env file is honoured via python-dotenv)
    MarketConfig.from_file()    config/market_params.json
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from nftmarket.errors import Unauthorized
from nftmarket.settlement.fees import validate_fee_rate

DEFAULT_CONFIG_PATH = (
    Path(__file__).resolve().parents[2] / "config" / "market_params.json"
)

ENV_FEE_RATE = "NFTMARKET_FEE_RATE"
ENV_ADMINISTRATOR = "NFTMARKET_ADMINISTRATOR"


@dataclass(frozen=True)
class MarketConfig:
    """Settlement configuration passed explicitly into every settlement."""

    fee_rate: int
    administrator: str

    def __post_init__(self) -> None:
        validate_fee_rate(self.fee_rate)
        if not self.administrator:
            raise ValueError("Administrator principal must be non-empty")

    def with_fee_rate(self, caller: str, fee_rate: int) -> MarketConfig:
        """Return a copy with a new fee rate. Administrator only."""
        if caller != self.administrator:
            raise Unauthorized(
                f"Only the administrator may change the fee rate (caller: {caller})"
            )
        return replace(self, fee_rate=fee_rate)

    @classmethod
    def from_file(cls, path: Path = DEFAULT_CONFIG_PATH) -> MarketConfig:
        """Load from a JSON params file."""
        params = json.loads(path.read_text(encoding="utf-8"))
        return cls(
            fee_rate=params["fee_rate_percent"],
            administrator=params["administrator"],
        )

    @classmethod
    def from_env(
        cls,
        dotenv_path: Optional[Path] = None,
        fallback: Optional[MarketConfig] = None,
    ) -> MarketConfig:
        """Load from environment variables, reading a .env file first.

        Variables that are unset fall back to ``fallback`` (or the
        params file when no fallback is given).
        """
        load_dotenv(dotenv_path)
        base = fallback if fallback is not None else cls.from_file()

        raw_rate = os.getenv(ENV_FEE_RATE)
        if raw_rate is None:
            fee_rate = base.fee_rate
        else:
            try:
                fee_rate = int(raw_rate)
            except ValueError:
                raise ValueError(
                    f"{ENV_FEE_RATE} must be an integer percentage, got {raw_rate!r}"
                ) from None

        administrator = os.getenv(ENV_ADMINISTRATOR) or base.administrator
        return cls(fee_rate=fee_rate, administrator=administrator)
