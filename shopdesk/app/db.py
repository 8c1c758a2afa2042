import os
from contextlib import contextmanager
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .config import _env_int, settings

# The app role is subject to row-level policies; the admin role reads sessions and runs probes.
APP_DATABASE_URL = os.getenv("APP_DATABASE_URL") or settings.db_url
ADMIN_DATABASE_URL = os.getenv("DATABASE_URL_ADMIN") or settings.db_url


def _make_pool(conninfo: str, size_env: str, default_min: int, default_max: int) -> ConnectionPool:
    # e.g. DB_POOL_MIN_SIZE / DB_POOL_MAX_SIZE
    min_size = _env_int(f"{size_env}_MIN_SIZE", default_min)
    max_size = max(min_size, _env_int(f"{size_env}_MAX_SIZE", default_max))
    return ConnectionPool(
        conninfo=conninfo,
        min_size=min_size,
        max_size=max_size,
        kwargs={"row_factory": dict_row},
        open=False,
    )


_pool = _make_pool(APP_DATABASE_URL, "DB_POOL", 1, 10)
_admin_pool = _make_pool(ADMIN_DATABASE_URL, "DB_ADMIN_POOL", 1, 5)


@contextmanager
def _pooled_conn(pool: ConnectionPool):
    # One transaction per block: commit on success, rollback on error.
    if pool.closed:
        pool.open()
    with pool.connection() as conn:
        with conn.transaction():
            yield conn


def get_conn():
    return _pooled_conn(_pool)


def get_admin_conn():
    return _pooled_conn(_admin_pool)


def close_pools() -> None:
    for pool in (_pool, _admin_pool):
        if not pool.closed:
            pool.close()


def set_actor_context(conn, user_id: str, role: str):
    # Transaction-local, so it must run inside the same `get_conn()` block as the queries.
    # set_config() takes bound parameters where `SET app.x = %s` cannot.
    with conn.cursor() as cur:
        cur.execute(
            """
            SELECT set_config('app.current_user_id', %s::text, true),
                   set_config('app.current_role', %s::text, true)
            """,
            (user_id, role),
        )
