"""
Audit log filtering, CSV export and admin API.
"""
from datetime import datetime, timedelta

import pytest

from conftest import auth_headers
from core.exceptions import ValidationError
from database.models import AuditLog
from services.audit_service import AuditService, distinct_values, export_csv, filter_logs

NOW = datetime(2026, 5, 20, 15, 0, 0)


def entry(action, table, user_id=None, days_ago=0, **kwargs):
    return AuditLog(
        action_type=action,
        table_name=table,
        user_id=user_id,
        created_at=NOW - timedelta(days=days_ago),
        **kwargs
    )


@pytest.fixture
def logs():
    return [
        entry("create", "documents", "u-1", days_ago=0),
        entry("update", "documents", "u-2", days_ago=3),
        entry("login", "users", "u-1", days_ago=10),
        entry("delete", "announcements", None, days_ago=45),
    ]


@pytest.mark.parametrize("window,expected", [
    ("all", 4),
    ("today", 1),
    ("week", 2),
    ("month", 3),
])
def test_date_windows(logs, window, expected):
    assert len(filter_logs(logs, window=window, now=NOW)) == expected


def test_invalid_window_rejected(logs):
    with pytest.raises(ValidationError):
        filter_logs(logs, window="decade", now=NOW)


def test_search_matches_action_table_or_user(logs):
    assert len(filter_logs(logs, search="DOC", now=NOW)) == 2
    assert len(filter_logs(logs, search="u-1", now=NOW)) == 2
    assert len(filter_logs(logs, search="login", now=NOW)) == 1


def test_action_and_table_filters(logs):
    assert [l.action_type for l in filter_logs(logs, action="update", now=NOW)] == ["update"]
    assert len(filter_logs(logs, table="documents", now=NOW)) == 2
    assert len(filter_logs(logs, action="all", table="all", now=NOW)) == 4


def test_distinct_values(logs):
    assert distinct_values(logs, "table_name") == ["announcements", "documents", "users"]
    assert distinct_values(logs, "action_type") == ["create", "delete", "login", "update"]


def test_export_csv_format():
    log = AuditLog(
        action_type="delete",
        table_name="documents",
        record_id="doc-1",
        user_id=None,
        ip_address="10.0.0.1",
        user_agent="pytest",
        created_at=datetime(2026, 2, 3, 4, 5, 6),
    )

    lines = export_csv([log]).splitlines()

    assert lines[0] == "Data,Usuário,Ação,Tabela,Registro,IP,User Agent"
    assert lines[1] == "03/02/2026 04:05:06,Sistema,delete,documents,doc-1,10.0.0.1,pytest"


def test_recent_newest_first(db_session, student):
    AuditService.log_action(db_session, "create", user_id=student.id, table_name="documents", record_id=1)
    first, = AuditService.recent(db_session, limit=1)
    assert first.record_id == "1"

    db_session.add(AuditLog(action_type="update", table_name="documents", created_at=datetime(2020, 1, 1)))
    db_session.commit()

    assert [l.action_type for l in AuditService.recent(db_session)] == ["create", "update"]


def test_audit_api_admin_only(client, student, officer, admin):
    assert client.get("/api/audit", headers=auth_headers(admin)).status_code == 200
    assert client.get("/api/audit", headers=auth_headers(officer)).status_code == 403
    assert client.get("/api/audit", headers=auth_headers(student)).status_code == 403


def test_audit_api_lists_and_exports(client, db_session, admin):
    AuditService.log_action(db_session, "create", user_id=admin.id, table_name="documents", record_id="d1")
    AuditService.log_action(db_session, "delete", user_id=admin.id, table_name="announcements", record_id="a1")

    response = client.get("/api/audit?table=documents", headers=auth_headers(admin))
    body = response.json()
    assert body["total"] == 2
    assert body["filtered"] == 1
    assert body["tables"] == ["announcements", "documents"]
    assert body["data"][0]["record_id"] == "d1"

    response = client.get("/api/audit/export", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "audit-logs-" in response.headers["content-disposition"]
    assert response.text.splitlines()[0] == "Data,Usuário,Ação,Tabela,Registro,IP,User Agent"

    response = client.get("/api/audit?window=decade", headers=auth_headers(admin))
    assert response.status_code == 400
