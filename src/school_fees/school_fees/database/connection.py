from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import mysql.connector


@dataclass(frozen=True)
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str

    @classmethod
    def from_settings(cls, db_config: Mapping) -> "DBConfig":
        """Build from a settings DB_CONFIG dict; host, user and database are required."""
        missing = [k for k in ("host", "user", "database") if not db_config.get(k)]
        if missing:
            raise ValueError(f"DB_CONFIG is missing {', '.join(missing)}")
        return cls(
            host=str(db_config["host"]),
            port=int(db_config.get("port") or 3306),
            user=str(db_config["user"]),
            password=str(db_config.get("password") or ""),
            database=str(db_config["database"]),
        )

    def label(self) -> str:
        """user@host:port/db, without the password, for log lines."""
        return f"{self.user}@{self.host}:{self.port}/{self.database}"


class DatabaseConnection:
    """Opens one short-lived connection per unit of work.

    Ledger writes and their SELECT ... FOR UPDATE reads run in the same
    explicit transaction, so autocommit stays off and db_cursor commits.
    """

    def __init__(self, config: DBConfig):
        self.config = config

    def connect(self):
        return mysql.connector.connect(
            host=self.config.host,
            port=self.config.port,
            user=self.config.user,
            password=self.config.password,
            database=self.config.database,
            autocommit=False,
            charset="utf8mb4",
        )
