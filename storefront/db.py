from contextlib import contextmanager
import psycopg
from psycopg.rows import dict_row
from . import settings

@contextmanager
def get_conn(dsn: str | None = None):
    """One connection per unit of work; commits on success, rolls back on error.

    Reads ``settings.DATABASE_URL`` at call time so tests and scripts can
    point the stores at another database.
    """
    conn = psycopg.connect(dsn or settings.DATABASE_URL, row_factory=dict_row, connect_timeout=10)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
