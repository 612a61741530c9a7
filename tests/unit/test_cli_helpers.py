"""Unit tests for CLI helper functions."""

from datetime import date

import click
import pytest
from click.testing import CliRunner

from fiscalsync.__main__ import cli, parse_date_range


class TestParseDateRange:
    """Tests for parse_date_range."""

    def test_range(self) -> None:
        assert parse_date_range("2024-03-01..2024-03-10") == (
            date(2024, 3, 1),
            date(2024, 3, 10),
        )

    def test_single_day(self) -> None:
        assert parse_date_range("2024-03-01") == (date(2024, 3, 1), date(2024, 3, 1))

    def test_invalid_format(self) -> None:
        with pytest.raises(click.BadParameter, match="YYYY-MM-DD"):
            parse_date_range("01/03/2024..10/03/2024")

    def test_invalid_date(self) -> None:
        with pytest.raises(click.BadParameter):
            parse_date_range("2024-02-30..2024-03-01")

    def test_start_after_end(self) -> None:
        with pytest.raises(click.BadParameter, match="before"):
            parse_date_range("2024-03-10..2024-03-01")


class TestCommands:
    """Smoke tests for CLI commands against an empty data directory."""

    @pytest.fixture
    def config(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            f'[paths]\ndata = "{tmp_path / "data"}"\nstorage = "{tmp_path / "xml"}"\n'
        )
        return path

    def test_run_unknown_subscriber(self, config) -> None:
        result = CliRunner().invoke(cli, ["-c", str(config), "run", "nobody"])
        assert result.exit_code == 1
        assert "Subscriber not found" in result.output

    def test_run_missing_credential(self, config, tmp_path) -> None:
        (tmp_path / "data").mkdir()
        (tmp_path / "data" / "subscribers.yaml").write_text(
            "subscribers:\n  - id: acme\n    tax_identifiers:\n"
            "      - id: t1\n        cnpj: '11222333000181'\n"
        )
        result = CliRunner().invoke(cli, ["-c", str(config), "run", "acme"])
        assert result.exit_code == 1
        assert "No SIEG API key" in result.output

    def test_history_empty(self, config) -> None:
        result = CliRunner().invoke(cli, ["-c", str(config), "history"])
        assert result.exit_code == 0
        assert "No outcomes found" in result.output

    def test_purge_nothing(self, config) -> None:
        result = CliRunner().invoke(cli, ["-c", str(config), "purge"])
        assert result.exit_code == 0
        assert "Deleted 0 expired documents" in result.output

    def test_delete_unknown(self, config) -> None:
        result = CliRunner().invoke(cli, ["-c", str(config), "delete", "nope"])
        assert result.exit_code == 1

    def test_bad_dates_rejected(self, config) -> None:
        result = CliRunner().invoke(
            cli, ["-c", str(config), "run", "acme", "--dates", "2024-03-10..2024-03-01"]
        )
        assert result.exit_code == 2
