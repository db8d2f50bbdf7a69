from __future__ import annotations

import psycopg
from psycopg import Connection


def connect(database_url: str) -> Connection:
    """
    Open a psycopg connection to `database_url` (resolved by `config.load_settings`).

    Autocommit stays OFF; callers commit explicitly.
    """
    if not database_url:
        raise ValueError("a database URL is required (set CLUB_DSN or `dsn` in the config file)")
    return psycopg.connect(database_url)
