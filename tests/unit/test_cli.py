from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
from uuid import UUID

import pytest

from membership_pipeline.alerts.gateway import Alert
from membership_pipeline.cli.main import main
from membership_pipeline.ingest.readers import CsvTableStore

QUEUE_HEADERS = "id,email,subject,htmlBody,groups,attempts,lastAttemptAt,lastError,nextAttemptAt,maxAttempts,dead"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """No ambient CLUB_* settings leak into CLI runs."""
    for var in ("CLUB_CONFIG", "CLUB_DSN", "CLUB_BATCH_SIZE", "CLUB_MAX_ATTEMPTS", "CLUB_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


class _Outbox:
    """Identity mail gateway for the CLI; swapped in for SMTP."""
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.sent: list[Alert] = []
        self.fail_for = fail_for or set()

    def send(self, alert: Alert) -> None:
        if alert.to in self.fail_for:
            raise RuntimeError(f"mailbox unavailable: {alert.to}")
        self.sent.append(alert)


def _use_outbox(monkeypatch: pytest.MonkeyPatch, outbox: _Outbox) -> None:
    import membership_pipeline.cli.main as cli_main
    monkeypatch.setattr(cli_main, "_gateway", lambda settings, *, dry_run: outbox)


def test_cli_help_prints_and_exits_zero(capsys: pytest.CaptureFixture[str]) -> None:
    """CLI is accessible."""
    with pytest.raises(SystemExit) as e:
        main(["-h"])

    assert e.value.code == 0
    out = capsys.readouterr().out
    assert "usage: clubsync" in out
    assert "validate" in out
    assert "queue" in out


def test_cli_kinds_lists_registry(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["kinds"]) == 0
    out = capsys.readouterr().out
    assert "members: Member (ActiveMembers)" in out
    assert "delivery_queue: DeliveryQueueItem (ExpirationFIFO)" in out


def test_cli_validate_csv_reports_and_alerts_once(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    groups = tmp_path / "PublicGroups.csv"
    groups.write_text(
        "Email,Name,Subscription\n"
        "sailing@example.com,Sailing,auto\n"
        "racing@example.com,,manual\n"
        "cruise@example.com,Cruising,auto\n",
        encoding="utf-8",
    )
    outbox = _Outbox()
    _use_outbox(monkeypatch, outbox)

    rc = main(["validate", "--kind", "public_groups", "--input", str(groups)])

    assert rc == 0
    out = capsys.readouterr().out.strip()
    assert out == "PublicGroup (PublicGroups): total=3 valid=2 rejected=1 alert_sent=true"
    assert len(outbox.sent) == 1
    assert "Row 3: PublicGroup Name is required" in outbox.sent[0].body


def test_cli_validate_record_run_uses_ledger(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """`--record-run` opens a connection and hands it to the loader as the ledger."""
    groups = tmp_path / "PublicGroups.csv"
    groups.write_text("Name,Email,Subscription\nSailing,s@example.com,auto\n", encoding="utf-8")
    calls: dict[str, object] = {}
    fake_conn = object()

    @contextmanager
    def fake_connect(dsn: str) -> Iterator[object]:
        calls["dsn"] = dsn
        yield fake_conn

    def fake_validate_table(store, *, table_name, spec, validator, context, ledger):
        from membership_pipeline.ingest.summary import ValidationSummary
        calls["ledger"] = ledger
        calls["table_name"] = table_name
        return ValidationSummary(
            kind=spec.record_cls.KIND, source=table_name, total=1, valid=1, rejected=0,
            alert_sent=False, run_id=UUID("00000000-0000-0000-0000-000000000001"),
        )

    import membership_pipeline.cli.main as cli_main
    monkeypatch.setattr(cli_main, "connect", fake_connect)
    monkeypatch.setattr(cli_main, "validate_table", fake_validate_table)

    rc = main(["validate", "--kind", "public_groups", "--input", str(groups), "--record-run", "--dry-run"])

    assert rc == 0
    assert calls["ledger"] is fake_conn
    assert calls["table_name"] == "PublicGroups"
    assert capsys.readouterr().out.strip().endswith("run_id=00000000-0000-0000-0000-000000000001")


def test_cli_queue_process_writes_back(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "ExpirationFIFO.csv").write_text(
        QUEUE_HEADERS + "\n"
        "1,ok@example.com,Expiring,<p>a</p>,,0,,,,,false\n"
        "2,down@example.com,Expiring,<p>b</p>,,0,,,,,false\n"
        "3,last@example.com,Expiring,<p>c</p>,,4,,,,5,false\n"
        ",broken-row,,,,,,,,,\n",
        encoding="utf-8",
    )
    outbox = _Outbox(fail_for={"down@example.com", "last@example.com"})
    _use_outbox(monkeypatch, outbox)

    rc = main(["queue", "process", "--input-dir", str(tmp_path)])

    assert rc == 0
    assert capsys.readouterr().out.strip() == "delivery: delivered=1 retried=1 dead=1 remaining=2"

    table = CsvTableStore(tmp_path).read("ExpirationFIFO")
    ids = [r[0] for r in table.rows]
    # retry, newly dead, then the undecodable row kept as-is
    assert ids == ["2", "3", ""]
    retry = dict(zip(table.headers, table.rows[0]))
    assert retry["attempts"] == "1"
    assert retry["lastError"] == "mailbox unavailable: down@example.com"
    assert retry["nextAttemptAt"] != ""
    dead = dict(zip(table.headers, table.rows[1]))
    assert dead["dead"] == "true"
    assert dead["nextAttemptAt"] == ""
    assert table.rows[2][1] == "broken-row"

    # one delivered member email + one consolidated alert for the broken row
    subjects = [a.subject for a in outbox.sent]
    assert "Expiring" in subjects
    assert "ALERT: 1 DeliveryQueueItem Validation Error" in subjects


def test_cli_queue_process_dry_run_leaves_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "ExpirationFIFO.csv"
    original = QUEUE_HEADERS + "\n1,ok@example.com,Expiring,<p>a</p>,,0,,,,,false\n"
    path.write_text(original, encoding="utf-8")

    assert main(["queue", "process", "--input-dir", str(tmp_path), "--dry-run"]) == 0
    assert "delivered=1" in capsys.readouterr().out
    assert path.read_text(encoding="utf-8") == original


def test_cli_queue_purge_dead(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (tmp_path / "ExpirationFIFO.csv").write_text(
        QUEUE_HEADERS + "\n"
        "1,a@example.com,s,<p>a</p>,,5,,smtp 550,,,true\n"
        "2,b@example.com,s,<p>b</p>,,0,,,,,false\n",
        encoding="utf-8",
    )

    assert main(["queue", "purge", "--input-dir", str(tmp_path), "--dead"]) == 0
    assert capsys.readouterr().out.strip() == "purged 1 dead item(s)"
    assert [r[0] for r in CsvTableStore(tmp_path).read("ExpirationFIFO").rows] == ["2"]


def test_cli_db_init_calls_initializer(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    calls: dict[str, object] = {}

    def fake_db_init(*, sql_path: Path, database_url: str) -> list[Path]:
        calls["sql_path"] = sql_path
        return [sql_path / "000_init.sql"]

    import membership_pipeline.cli.main as cli_main
    monkeypatch.setattr(cli_main, "db_init", fake_db_init)

    assert main(["db", "init", "--sql", str(tmp_path)]) == 0
    assert calls["sql_path"] == tmp_path
    assert "(1 file(s))" in capsys.readouterr().out


def test_cli_queue_enqueue_starts_queue_and_is_idempotent(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "ActiveMembers.csv").write_text(
        "Status,Email,First,Last,Phone,Joined,Expires\n"
        "Active,ada@example.com,Ada,Lovelace,,2020-01-01,2025-03-17\n"
        "Active,bob@example.com,Bob,Stay,,2020-01-01,2025-09-01\n"
        "Expired,cy@example.com,Cy,Gone,,2020-01-01,2025-03-17\n",
        encoding="utf-8",
    )
    (tmp_path / "ActionSpecs.csv").write_text(
        "Type,Offset,Subject,Body\n"
        "Expiry1,-7,Expires {Expires},Hi {First}\n",
        encoding="utf-8",
    )
    _use_outbox(monkeypatch, _Outbox())
    argv = ["queue", "enqueue", "--input-dir", str(tmp_path), "--today", "2025-03-10"]

    assert main(argv) == 0
    assert capsys.readouterr().out.strip() == "enqueue: added=1 already_queued=0 queue=1"
    table = CsvTableStore(tmp_path).read("ExpirationFIFO")
    assert ",".join(table.headers) == QUEUE_HEADERS
    row = dict(zip(table.headers, table.rows[0]))
    assert (row["id"], row["subject"], row["htmlBody"]) == (
        "Expiry1:ada@example.com:2025-03-17",
        "Expires 2025-03-17",
        "Hi Ada",
    )

    assert main(argv) == 0
    assert capsys.readouterr().out.strip() == "enqueue: added=0 already_queued=1 queue=1"
    assert len(CsvTableStore(tmp_path).read("ExpirationFIFO").rows) == 1
