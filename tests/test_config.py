"""Tests for settings resolution."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from reposcope.logger import LoggerSettings
from reposcope.repository import RepositorySettings


@pytest.mark.unit
class TestRepositorySettings:
    def test_defaults(self) -> None:
        settings = RepositorySettings()

        assert settings.per_page == 50
        assert settings.max_per_page == 100
        assert settings.cache_enabled is True
        assert settings.cache_skip_param == "skipCache"
        assert settings.cache_minutes == 60
        assert settings.locale == "en"
        assert settings.scopes == {"search": "search", "order_by": "order_by"}

    def test_zero_max_means_hundred(self) -> None:
        assert RepositorySettings(max_per_page=0).effective_max_per_page == 100
        assert RepositorySettings(max_per_page=25, per_page=10).effective_max_per_page == 25

    def test_per_page_cannot_exceed_max(self) -> None:
        with pytest.raises(ValidationError, match="per_page cannot exceed max_per_page"):
            RepositorySettings(per_page=30, max_per_page=20)

    def test_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REPOSITORIES_PER_PAGE", "25")
        monkeypatch.setenv("REPOSITORIES_LOCALE", "nl")

        settings = RepositorySettings()

        assert settings.per_page == 25
        assert settings.locale == "nl"

    def test_arguments_beat_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REPOSITORIES_LOCALE", "nl")

        assert RepositorySettings(locale="fr").locale == "fr"

    def test_yaml_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "settings").mkdir()
        (tmp_path / "settings" / "repositories.yaml").write_text(
            "per_page: 20\ncache_skip_param: nocache\n"
        )
        monkeypatch.chdir(tmp_path)

        settings = RepositorySettings()

        assert settings.per_page == 20
        assert settings.cache_skip_param == "nocache"


@pytest.mark.unit
class TestLoggerSettings:
    def test_defaults(self) -> None:
        settings = LoggerSettings()

        assert settings.level == "INFO"
        assert "{extra[mod_name]" in settings.format_string

    def test_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REPOSCOPE_LOG_LEVEL", "DEBUG")

        assert LoggerSettings().level == "DEBUG"
