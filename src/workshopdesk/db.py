from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass

import psycopg
from psycopg import Connection

from .config import DbConfig
from .errors import UpstreamUnavailableError


class DbError(UpstreamUnavailableError):
    pass


@dataclass(frozen=True)
class Db:
    cfg: DbConfig

    def connect(self) -> Connection:
        try:
            return psycopg.connect(
                host=self.cfg.host,
                port=self.cfg.port,
                dbname=self.cfg.name,
                user=self.cfg.user,
                password=self.cfg.password,
                sslmode=self.cfg.sslmode,
                connect_timeout=self.cfg.connect_timeout,
                options=f"-c statement_timeout={self.cfg.statement_timeout_ms}",
            )
        except psycopg.Error as e:
            raise DbError(
                "Cannot connect to database. Check config.toml [db] and that PostgreSQL is running."
            ) from e

    @contextmanager
    def session(self) -> Connection:
        conn = self.connect()
        try:
            yield conn
        except psycopg.OperationalError as e:
            raise DbError(f"Database unavailable: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Connection:
        conn = self.connect()
        try:
            with conn.transaction():
                yield conn
        except psycopg.OperationalError as e:
            raise DbError(f"Database unavailable: {e}") from e
        finally:
            conn.close()
