import json

from shopdesk.app.routers import alerts as alerts_router
from shopdesk.tests.fakes import patch_db

SALES = {"user_id": "aaaaaaaa-0000-0000-0000-000000000003", "role": "sales"}


def _log_events(stderr: str) -> list[str]:
    return [json.loads(line)["event"] for line in stderr.splitlines() if line.strip()]


def test_low_stock_returns_procedure_rows(monkeypatch, capsys):
    rows = [
        {"id": "p1", "sku": "CUP-1", "name": "Cup", "current_stock": 2, "threshold": 5},
        {"id": "p2", "sku": "JAR-1", "name": "Jar", "current_stock": 0, "threshold": 0},
    ]
    patch_db(monkeypatch, alerts_router, [("from low_stock_items()", rows)])

    out = alerts_router.low_stock(profile=SALES)

    assert out == {"items": rows, "count": 2}
    assert "low_stock.threshold_drift" not in _log_events(capsys.readouterr().err)


def test_low_stock_logs_rows_the_predicate_disagrees_with(monkeypatch, capsys):
    rows = [{"id": "p1", "sku": "CUP-1", "name": "Cup", "current_stock": 9, "threshold": 5}]
    patch_db(monkeypatch, alerts_router, [("from low_stock_items()", rows)])

    out = alerts_router.low_stock(profile=SALES)

    assert out["count"] == 1
    assert _log_events(capsys.readouterr().err) == ["low_stock.threshold_drift"]
