"""
tests/test_repair.py — Batch Badge Repair CLI
==============================================
"""

from __future__ import annotations

import json

from conftest import make_badge, make_user

from civicfix import repair
from civicfix.services import badge_service


def test_dry_run_prints_report(db_engine, monkeypatch, capsys):
    make_badge(db_engine, "Starter", 0)
    make_user(db_engine, points=5)
    monkeypatch.setattr(repair, "create_db_engine", lambda: db_engine)

    assert repair.main(["--dry-run"]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["dry_run"] is True
    assert report["summary"]["fixed_users"] == 1
    assert badge_service.get_user_badges(db_engine, report["results"][0]["user_id"]) == []


def test_repair_writes(db_engine, monkeypatch, capsys):
    make_badge(db_engine, "Starter", 0)
    user_id = make_user(db_engine, points=5)
    monkeypatch.setattr(repair, "create_db_engine", lambda: db_engine)

    assert repair.main([]) == 0

    # The existing catalogue blocks the default badge seed.
    names = [b["name"] for b in badge_service.get_user_badges(db_engine, user_id)]
    assert names == ["Starter"]


def test_missing_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(repair, "load_dotenv", lambda: None)

    assert repair.main([]) == 1
