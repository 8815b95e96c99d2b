"""Tests for nftmarket CLI — proves CLI dispatches correctly."""

import json

import pytest
from nftmarket.cli import build_parser, main
from nftmarket.config import ENV_ADMINISTRATOR, ENV_FEE_RATE


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    monkeypatch.delenv(ENV_FEE_RATE, raising=False)
    monkeypatch.delenv(ENV_ADMINISTRATOR, raising=False)


@pytest.fixture
def events(tmp_path):
    return tmp_path / "events.jsonl"


def _run(capsys, *argv: str) -> tuple[int, str]:
    capsys.readouterr()
    code = main(list(argv))
    return code, capsys.readouterr().out


class TestCLIParsing:
    def test_status_command(self) -> None:
        args = build_parser().parse_args(["status"])
        assert args.command == "status"

    def test_fee_split_command(self) -> None:
        args = build_parser().parse_args(["fee-split", "--amount", "20", "--rate", "5"])
        assert args.command == "fee-split"
        assert args.amount == 20
        assert args.rate == 5

    def test_listings_mode_choices(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["listings", "--mode", "barter"])


class TestCLIExecution:
    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out

    def test_fee_split(self, capsys) -> None:
        code, out = _run(capsys, "fee-split", "--amount", "20", "--rate", "5")
        assert code == 0
        assert json.loads(out) == {
            "amount": 20, "fee_rate": 5, "fee_amount": 1, "seller_amount": 19,
        }

    def test_fee_split_uses_configured_rate(self, capsys) -> None:
        code, out = _run(capsys, "fee-split", "--amount", "100")
        assert code == 0
        assert json.loads(out)["fee_amount"] == 5

    def test_fee_split_invalid_rate(self, capsys) -> None:
        code, _ = _run(capsys, "fee-split", "--amount", "20", "--rate", "150")
        assert code == 1

    def test_status_on_empty_log(self, capsys, events) -> None:
        code, out = _run(capsys, "--events", str(events), "status")
        assert code == 0
        status = json.loads(out)
        assert status["events"] == 0
        assert status["fee_rate"] == 5

    def test_verify_missing_log_fails(self, capsys, events) -> None:
        code, _ = _run(capsys, "--events", str(events), "verify-log")
        assert code == 1


class TestDemoEndToEnd:
    def test_demo_then_inspect(self, capsys, events) -> None:
        code, out = _run(capsys, "--events", str(events), "demo")
        assert code == 0
        report = json.loads(out)
        assert report["owner"] == "bob"
        assert report["settlement"]["fee_amount"] == 1
        assert report["balances"]["seller"] == 19
        assert report["balances"]["alice"] == 100
        assert report["balances"]["bob"] == 80

        code, out = _run(capsys, "--events", str(events), "verify-log")
        assert code == 0
        assert out.strip() == "OK: 4 events verified, 0 active listings"

        code, out = _run(capsys, "--events", str(events), "status")
        status = json.loads(out)
        assert status["settled_volume"] == 20
        assert status["fees_collected"] == 1

        code, out = _run(capsys, "--events", str(events), "listings")
        assert json.loads(out) == []

        code, out = _run(capsys, "--events", str(events), "check-invariants")
        assert code == 0
        assert "passed" in out

    def test_tampered_log_fails_verification(self, capsys, events) -> None:
        _run(capsys, "--events", str(events), "demo")
        lines = events.read_text(encoding="utf-8").splitlines()
        record = json.loads(lines[1])
        record["payload"]["amount"] = 99
        lines[1] = json.dumps(record)
        events.write_text("\n".join(lines) + "\n", encoding="utf-8")

        code, _ = _run(capsys, "--events", str(events), "verify-log")
        assert code == 1
