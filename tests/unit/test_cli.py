"""Unit tests for the ``python -m adrefresh`` entry-point."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from adrefresh.__main__ import main


@pytest.fixture(autouse=True)
def _isolated_env(clean_env: None) -> None:
    """Every CLI test starts from an empty adrefresh environment."""


class TestInfo:
    def test_default_environment(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["info"]) == 0

        payload = json.loads(capsys.readouterr().out)
        assert payload["provider"] == "none"
        assert payload["dispatch_target"] is None
        assert payload["profile"]["name"] == "production"
        assert payload["timeouts"] == {"ezoic": 10.0, "adsense": 8.0, "monetag": 6.0, "adsterra": 6.0}

    def test_selected_provider(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("AD_PROVIDER", "monetag")
        monkeypatch.setenv("AD_REFRESH_PROFILE", "development")

        assert main(["info"]) == 0

        payload = json.loads(capsys.readouterr().out)
        assert payload["dispatch_target"] == "monetag"
        assert payload["active_flags"]["monetag"] is True
        assert payload["active_flags"]["ezoic"] is False
        assert payload["profile"]["min_refresh_interval"] == 2.0

    def test_invalid_configuration(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AD_PROVIDER", "taboola")
        assert main(["info"]) == 1

    def test_invalid_log_level(self) -> None:
        assert main(["--log-level", "LOUD", "info"]) == 1


class TestCheckLimit:
    def test_denies_after_capacity(
        self,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("API_RATE_LIMIT_MAX_REQUESTS", "2")

        assert main(["check-limit", "session-1", "-n", "3", "--limiter", "api"]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert [line.split()[1] for line in lines] == ["allowed", "allowed", "denied"]
        assert lines[1].endswith("remaining=0")
        assert "retry_after=" in lines[2]

    def test_sqlite_store(
        self,
        monkeypatch: pytest.MonkeyPatch,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        db_path = tmp_path / "state" / "limits.db"
        monkeypatch.setenv("RATE_LIMIT_DB_PATH", str(db_path))

        assert main(["check-limit", "session-1"]) == 0

        assert capsys.readouterr().out.split() == ["1", "allowed", "remaining=29"]
        assert db_path.exists()

    def test_count_must_be_positive(self) -> None:
        assert main(["check-limit", "session-1", "-n", "0"]) == 2
