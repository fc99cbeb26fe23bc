from __future__ import annotations

import pytest

from src.school_fees.school_fees.database import connection
from src.school_fees.school_fees.database.connection import DatabaseConnection, DBConfig

SETTINGS = {"host": "db", "port": "3307", "user": "fees", "password": "s3cret", "database": "school_fees_db"}


def test_config_from_settings():
    config = DBConfig.from_settings(SETTINGS)
    assert config.port == 3307
    assert config.label() == "fees@db:3307/school_fees_db"
    assert "s3cret" not in config.label()


def test_config_defaults_port_and_password():
    config = DBConfig.from_settings({"host": "db", "user": "fees", "database": "x"})
    assert config.port == 3306
    assert config.password == ""


def test_config_requires_host_user_database():
    with pytest.raises(ValueError, match="user, database"):
        DBConfig.from_settings({"host": "db"})


def test_connect_opens_transactional_session(monkeypatch):
    captured = {}
    monkeypatch.setattr(connection.mysql.connector, "connect", lambda **kw: captured.update(kw) or "conn")

    assert DatabaseConnection(DBConfig.from_settings(SETTINGS)).connect() == "conn"
    assert captured["autocommit"] is False
    assert captured["database"] == "school_fees_db"
    assert captured["port"] == 3307
