import logging

import pytest

from src.api import config
from src.api.config import ConfigurationError, configure_logging, load_settings


def test_load_settings_from_environment():
    settings = load_settings({
        "DATABASE_URL": "sqlite:///./notes.db",
        "JWT_SECRET": "abc",
        "JWT_EXPIRE_DAYS": "7",
        "CLIENT_URL": "https://notes.example.com",
        "PORT": "8080",
        "APP_ENV": "production",
    })
    assert settings.database_url == "sqlite:///./notes.db"
    assert settings.jwt_secret == "abc"
    assert settings.token_expire_days == 7
    assert settings.client_url == "https://notes.example.com"
    assert settings.port == 8080
    assert settings.is_production


def test_defaults():
    settings = load_settings({"DATABASE_URL": "sqlite://", "JWT_SECRET": ""})
    assert settings.jwt_secret is None
    assert settings.jwt_algorithm == "HS256"
    assert settings.token_expire_days == 30
    assert settings.port == 5000
    assert not settings.is_production


def test_database_url_is_required():
    with pytest.raises(ConfigurationError):
        load_settings({"JWT_SECRET": "abc"})


def test_configure_logging_installs_one_handler():
    root = logging.getLogger()
    level = root.level
    try:
        configure_logging("debug")
        configure_logging("debug")
        assert root.handlers.count(config._handler) == 1
        assert root.level == logging.DEBUG
    finally:
        root.setLevel(level)


def test_unset_and_empty_variables_fall_back_to_defaults():
    settings = load_settings({"DATABASE_URL": "sqlite://", "PORT": "", "APP_ENV": "staging"})
    assert settings.port == 5000
    assert settings.environment == "staging"
    assert settings.client_url == "http://localhost:3000"
