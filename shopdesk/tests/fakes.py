"""In-memory stand-ins for psycopg connections used by router tests."""


class FakeCursor:
    """
    Answers queries by substring match on the normalized SQL text.

    `responses` is an ordered list of (needle, rows); the first needle found in
    the lower-cased, whitespace-collapsed SQL wins. Unmatched queries yield no rows.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.executed: list[tuple[str, tuple]] = []
        self.rows = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        text = " ".join(str(sql or "").lower().split())
        self.executed.append((text, tuple(params or ())))
        self.rows = []
        for needle, rows in self.responses:
            if needle in text:
                self.rows = list(rows)
                break

    def fetchall(self):
        return list(self.rows)

    def fetchone(self):
        if not self.rows:
            return None
        return self.rows[0]

    def calls(self, needle: str) -> list[tuple]:
        return [params for text, params in self.executed if needle in text]


class FakeConn:
    def __init__(self, cursor: FakeCursor):
        self._cursor = cursor

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def cursor(self):
        return self._cursor


def patch_db(monkeypatch, module, responses=None) -> FakeCursor:
    cur = FakeCursor(responses)
    conn = FakeConn(cur)
    monkeypatch.setattr(module, "get_conn", lambda: conn)
    monkeypatch.setattr(module, "set_actor_context", lambda *_args, **_kwargs: None)
    return cur
