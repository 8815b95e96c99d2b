"""Tests for marketplace configuration loading and fee-rate authority."""

import json

import pytest

from nftmarket.config import (
    DEFAULT_CONFIG_PATH,
    ENV_ADMINISTRATOR,
    ENV_FEE_RATE,
    MarketConfig,
)
from nftmarket.errors import Unauthorized


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    # setenv first so teardown also removes values a .env file loaded
    for name in (ENV_FEE_RATE, ENV_ADMINISTRATOR):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestMarketConfig:
    def test_validates_rate(self) -> None:
        with pytest.raises(ValueError, match="within"):
            MarketConfig(fee_rate=101, administrator="admin")

    def test_requires_administrator(self) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            MarketConfig(fee_rate=5, administrator="")

    def test_with_fee_rate(self) -> None:
        config = MarketConfig(fee_rate=5, administrator="admin")
        updated = config.with_fee_rate("admin", 7)
        assert updated.fee_rate == 7
        assert config.fee_rate == 5

    def test_with_fee_rate_requires_administrator(self) -> None:
        config = MarketConfig(fee_rate=5, administrator="admin")
        with pytest.raises(Unauthorized, match="Only the administrator"):
            config.with_fee_rate("mallory", 0)


class TestLoading:
    def test_shipped_params_file(self) -> None:
        config = MarketConfig.from_file(DEFAULT_CONFIG_PATH)
        assert config.fee_rate == 5
        assert config.administrator == "platform-admin"

    def test_from_file(self, tmp_path) -> None:
        path = tmp_path / "params.json"
        path.write_text(json.dumps({"fee_rate_percent": 3, "administrator": "ops"}))
        config = MarketConfig.from_file(path)
        assert config == MarketConfig(fee_rate=3, administrator="ops")

    def test_from_env_overrides_fallback(self, monkeypatch) -> None:
        monkeypatch.setenv(ENV_FEE_RATE, "12")
        fallback = MarketConfig(fee_rate=5, administrator="ops")
        config = MarketConfig.from_env(fallback=fallback)
        assert config.fee_rate == 12
        assert config.administrator == "ops"

    def test_from_env_reads_dotenv(self, tmp_path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"{ENV_FEE_RATE}=8\n{ENV_ADMINISTRATOR}=treasury\n")
        config = MarketConfig.from_env(
            dotenv_path=env_file,
            fallback=MarketConfig(fee_rate=5, administrator="ops"),
        )
        assert config == MarketConfig(fee_rate=8, administrator="treasury")

    def test_from_env_rejects_non_integer(self, monkeypatch) -> None:
        monkeypatch.setenv(ENV_FEE_RATE, "five")
        with pytest.raises(ValueError, match="integer percentage"):
            MarketConfig.from_env(fallback=MarketConfig(fee_rate=5, administrator="ops"))

    def test_from_env_without_variables_uses_fallback(self) -> None:
        fallback = MarketConfig(fee_rate=4, administrator="ops")
        assert MarketConfig.from_env(fallback=fallback) == fallback
