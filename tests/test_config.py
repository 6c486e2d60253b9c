from datetime import timedelta

import pytest

from api import create_app
from api.config import (
    DEV_JWT_SECRET,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    get_config,
    validate_config,
)


def test_get_config_by_name():
    assert get_config("prod") is ProductionConfig
    assert get_config("Production") is ProductionConfig
    assert get_config("test") is TestingConfig
    assert get_config("dev") is DevelopmentConfig


def test_get_config_from_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    assert get_config(None) is ProductionConfig


def test_default_lifetimes():
    assert TestingConfig.ACCESS_TOKEN_EXPIRES == timedelta(minutes=15)
    assert TestingConfig.REFRESH_TOKEN_EXPIRES == timedelta(days=7)


def test_production_refuses_dev_secret():
    config = {
        "APP_ENV": "prod",
        "DEBUG": False,
        "TESTING": False,
        "JWT_SECRET": DEV_JWT_SECRET,
        "ACCESS_TOKEN_EXPIRES": timedelta(minutes=15),
        "REFRESH_TOKEN_EXPIRES": timedelta(days=7),
        "AUTH_RATE_LIMIT_MAX": 5,
        "AUTH_RATE_LIMIT_WINDOW_SECONDS": 900,
    }
    with pytest.raises(RuntimeError):
        validate_config(config)
    config["JWT_SECRET"] = "a-real-production-secret-value-1234"
    validate_config(config)


def test_access_must_be_shorter_than_refresh(tmp_path):
    with pytest.raises(RuntimeError):
        create_app("test", overrides={
            "DATABASE_URL": f"sqlite:///{tmp_path / 'x.db'}",
            "ACCESS_TOKEN_EXPIRES": timedelta(days=8),
        })


def test_refresh_lifetime_is_configurable(tmp_path):
    app = create_app("test", overrides={
        "DATABASE_URL": f"sqlite:///{tmp_path / 'y.db'}",
        "REFRESH_TOKEN_EXPIRES": timedelta(days=1),
    })
    assert app.extensions["rnc_sessions"]["tokens"].ttl == timedelta(days=1)
    app.extensions["rnc_sessions"]["storage"].engine.dispose()


def test_rate_limit_must_be_positive(tmp_path):
    with pytest.raises(RuntimeError):
        create_app("test", overrides={
            "DATABASE_URL": f"sqlite:///{tmp_path / 'z.db'}",
            "AUTH_RATE_LIMIT_MAX": 0,
        })
