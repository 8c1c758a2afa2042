import asyncio
import json

from shopdesk.app import main
from shopdesk.app.money import PaymentValidationError


def test_payment_validation_error_maps_to_400():
    resp = main._payment_validation_error(None, PaymentValidationError("paid amount cannot exceed total amount"))
    assert resp.status_code == 400
    assert json.loads(resp.body) == {"detail": "paid amount cannot exceed total amount"}


def test_error_content_hides_internals_outside_dev(monkeypatch):
    monkeypatch.setattr(main.settings, "env", "prod")
    assert main._error_content("conflict", RuntimeError("dup key")) == {"detail": "conflict"}
    monkeypatch.setattr(main.settings, "env", "dev")
    assert main._error_content("conflict", RuntimeError("dup key")) == {"detail": "conflict", "error": "dup key"}


def test_meta_reports_currency(monkeypatch):
    monkeypatch.setattr(main.settings, "currency", "EGP")
    out = main.meta()
    assert out["service"] == "shopdesk-api"
    assert out["currency"] == "EGP"


def test_db_constraint_errors_map_to_client_statuses(monkeypatch):
    monkeypatch.setattr(main.settings, "env", "prod")
    conflict = main._db_error(None, main.pg_errors.UniqueViolation("duplicate key"))
    assert conflict.status_code == 409
    assert json.loads(conflict.body) == {"detail": "conflict"}
    bad_ref = main._db_error(None, main.pg_errors.ForeignKeyViolation("missing product"))
    assert bad_ref.status_code == 400


def _run_lifespan():
    async def _cycle():
        async with main.lifespan(main.app):
            pass

    asyncio.run(_cycle())


def test_lifespan_logs_db_probe_and_closes_pools(monkeypatch, capsys):
    closed = []
    monkeypatch.setattr(main, "_probe_db", lambda: (True, None))
    monkeypatch.setattr(main, "close_pools", lambda: closed.append(True))

    _run_lifespan()

    events = [json.loads(line)["event"] for line in capsys.readouterr().err.splitlines() if line.strip()]
    assert events == ["startup.db_connected"]
    assert closed == [True]


def test_lifespan_starts_when_database_is_down(monkeypatch, capsys):
    closed = []
    monkeypatch.setattr(main, "_probe_db", lambda: (False, "connection refused"))
    monkeypatch.setattr(main, "close_pools", lambda: closed.append(True))

    _run_lifespan()

    (line,) = [l for l in capsys.readouterr().err.splitlines() if l.strip()]
    rec = json.loads(line)
    assert rec["event"] == "startup.db_probe_failed"
    assert rec["error"] == "connection refused"
    assert closed == [True]
