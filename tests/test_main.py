import logging
from unittest import mock

import pytest
from pydantic import SecretStr

from drive_restore import __main__ as entry
from drive_restore.core.models import BatchReport
from drive_restore.exceptions import ConfigurationError, DiscoveryError


@pytest.fixture
def configured(monkeypatch, settings):
    monkeypatch.setattr(entry, "load_settings", lambda: settings)
    monkeypatch.setattr(entry.logging.config, "dictConfig", lambda config: None)
    monkeypatch.setattr(entry, "check_external_tools", lambda s: None)
    return settings


def test_configuration_error_exits_before_processing(monkeypatch):
    monkeypatch.setattr(entry, "load_settings", mock.Mock(side_effect=ConfigurationError("DB_HOST missing")))
    build = mock.Mock()
    monkeypatch.setattr(entry, "build_driver", build)

    assert entry.main() == entry.EXIT_CONFIGURATION_FAILED
    build.assert_not_called()


def test_discovery_error_exits_non_zero(monkeypatch, configured):
    driver = mock.Mock()
    driver.run.side_effect = DiscoveryError("Drive API error")
    monkeypatch.setattr(entry, "build_driver", lambda s: driver)

    assert entry.main() == entry.EXIT_DISCOVERY_FAILED


def test_completed_run_exits_zero(monkeypatch, configured):
    driver = mock.Mock()
    driver.run.return_value = BatchReport(total=0)
    monkeypatch.setattr(entry, "build_driver", lambda s: driver)

    assert entry.main() == entry.EXIT_OK


def test_missing_tools_fail_fast(monkeypatch, settings):
    monkeypatch.setattr(entry.shutil, "which", lambda program: None if program == "sqlcmd" else "/usr/bin/7z")

    with pytest.raises(ConfigurationError, match="sqlcmd"):
        entry.check_external_tools(settings)


def test_sqlcmd_not_required_for_pymssql_driver(monkeypatch, settings):
    settings.database.driver = "pymssql"
    monkeypatch.setattr(entry.shutil, "which", lambda program: None if program == "sqlcmd" else "/usr/bin/7z")

    entry.check_external_tools(settings)


def test_unreadable_credentials_are_a_configuration_error(settings):
    with pytest.raises(ConfigurationError):
        entry.build_driver(settings)


def test_startup_banner_shows_login_when_password_set(settings, caplog):
    caplog.set_level(logging.INFO)
    settings.database.password = SecretStr("pw")

    entry.log_startup_info(settings)

    messages = [r.getMessage() for r in caplog.records]
    assert "DB_USER: " in messages
    assert not any("integrated authentication" in m for m in messages)


def test_startup_banner_reports_integrated_auth(settings, caplog):
    caplog.set_level(logging.INFO)

    entry.log_startup_info(settings)

    assert any(r.getMessage() == "DB_USER: (integrated authentication)" for r in caplog.records)
