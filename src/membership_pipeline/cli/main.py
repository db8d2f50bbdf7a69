from __future__ import annotations

import argparse
import logging
from contextlib import ExitStack
from datetime import date
from pathlib import Path

from membership_pipeline.alerts.gateway import AlertGateway, LogAlertGateway, SmtpAlertGateway
from membership_pipeline.cli.loader import (
    enqueue_expiry_items,
    process_delivery_queue,
    purge_dead_items,
    validate_table,
)
from membership_pipeline.config import Settings, load_settings
from membership_pipeline.db.connect import connect
from membership_pipeline.db.initialize import db_init
from membership_pipeline.db.table_store import PostgresTableStore
from membership_pipeline.ingest.readers import CsvTableStore, TableStore
from membership_pipeline.parsing.batch import BatchValidator
from membership_pipeline.parsing.registry import get_kind_spec, kind_names


def _gateway(settings: Settings, *, dry_run: bool) -> AlertGateway:
    if dry_run:
        return LogAlertGateway()
    return SmtpAlertGateway(settings.smtp_host, settings.smtp_port, settings.smtp_sender)


def main(argv: list[str] | None = None) -> int:
    """
    A CLI for validating club membership tables and delivering the email queue.

    The `cmd` options are:
    ## validate:
    Decode every row of a table as one record kind; bad rows are reported, never fatal.
    - `--kind` the record kind (see `clubsync kinds`),
    - `--input` a CSV file, OR `--sheet` a table held in Postgres,
    - `--dry-run` logs the consolidated alert instead of emailing it,
    - `--record-run` writes the run + its reject rows to the Postgres ledger.

    ### Example validate usage:
    - `clubsync validate --kind members --input data/ActiveMembers.csv`
    - `clubsync validate --kind action_specs --sheet ActionSpecs --record-run`

    ## queue:
    - `enqueue` appends the expiry notices due since the previous day (`--since`, `--today` override the window).
    - `process` runs one delivery pass over `ExpirationFIFO.csv` in `--input-dir`.
    - `purge --dead` removes dead-lettered items.

    ## db:
    - `init` applies the schema; `--sql` points at a file or a dir of `.sql` files.

    ## kinds:
    Lists the registered record kinds and the table each one normally lives in.
    """
    p = argparse.ArgumentParser(prog="clubsync")
    p.add_argument("--config", default=None, help="Path to a YAML settings file (else CLUB_CONFIG).")
    sub = p.add_subparsers(dest="cmd", required=True)

    # validate cmd
    val = sub.add_parser("validate", help="Validate a table and alert once on bad rows.")
    val.add_argument("--kind", required=True, choices=kind_names())
    src = val.add_mutually_exclusive_group(required=True)
    src.add_argument("--input", help="Path to a CSV file (header row first).")
    src.add_argument("--sheet", help="Name of a table held in the Postgres table store.")
    val.add_argument("--context", default=None, help="Free text included in the alert (default: the source).")
    val.add_argument("--dry-run", action="store_true", help="Log the alert instead of sending it.")
    val.add_argument("--record-run", action="store_true", help="Record the run and rejects in Postgres.")

    # queue cmd
    queue = sub.add_parser("queue", help="Delivery queue utilities.")
    q_sub = queue.add_subparsers(dest="queue_cmd", required=True)

    q_proc = q_sub.add_parser("process", help="Attempt delivery of due queue items once.")
    q_proc.add_argument("--input-dir", required=True, help="Directory holding ExpirationFIFO.csv.")
    q_proc.add_argument("--batch-size", type=int, default=None)
    q_proc.add_argument("--schedule-next", type=int, default=None, metavar="SECONDS",
                        help="Stamp the next batch of unscheduled items to run SECONDS from now.")
    q_proc.add_argument("--dry-run", action="store_true", help="Log emails instead of sending them.")

    q_enq = q_sub.add_parser("enqueue", help="Queue the expiry notices that fell due.")
    q_enq.add_argument("--input-dir", required=True, help="Directory holding ActiveMembers.csv, ActionSpecs.csv and ExpirationFIFO.csv.")
    q_enq.add_argument("--today", type=date.fromisoformat, default=None, help="YYYY-MM-DD (default: today).")
    q_enq.add_argument("--since", type=date.fromisoformat, default=None, help="YYYY-MM-DD, exclusive (default: the day before --today).")
    q_enq.add_argument("--dry-run", action="store_true", help="Do not write the queue back.")

    q_purge = q_sub.add_parser("purge", help="Remove items from the queue.")
    q_purge.add_argument("--input-dir", required=True, help="Directory holding ExpirationFIFO.csv.")
    q_purge.add_argument("--dead", action="store_true", required=True, help="Purge dead-lettered items.")

    # db cmd
    db = sub.add_parser("db", help="Database utilities.")
    db_sub = db.add_subparsers(dest="db_cmd", required=True)

    db_init_p = db_sub.add_parser("init", help="Initialize DB schema from SQL file(s).")
    db_init_p.add_argument("--sql", default="sql", help="Path to schema SQL file OR a directory of `.sql` files.")

    # kinds cmd
    sub.add_parser("kinds", help="List record kinds.")

    args = p.parse_args(argv)

    settings = load_settings(Path(args.config) if args.config else None)
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "validate":
        spec = get_kind_spec(args.kind)
        with ExitStack() as stack:
            conn = None
            if args.sheet or args.record_run:
                conn = stack.enter_context(connect(settings.dsn))

            store: TableStore
            if args.sheet:
                store, table_name = PostgresTableStore(conn), args.sheet
            else:
                input_path = Path(args.input)
                store, table_name = CsvTableStore(input_path.parent), input_path.stem

            validator = BatchValidator(
                _gateway(settings, dry_run=args.dry_run), recipient=settings.alert_recipient
            )
            summary = validate_table(
                store,
                table_name=table_name,
                spec=spec,
                validator=validator,
                context=args.context or f"clubsync validate {args.kind} ({table_name})",
                ledger=conn if args.record_run else None,
            )

        print(summary.render_one_line())
        return 0

    if args.cmd == "queue":
        store = CsvTableStore(Path(args.input_dir))
        gateway = _gateway(settings, dry_run=getattr(args, "dry_run", False))
        validator = BatchValidator(gateway, recipient=settings.alert_recipient)

        if args.queue_cmd == "process":
            outcome = process_delivery_queue(
                store,
                validator=validator,
                mailer=gateway,
                batch_size=args.batch_size or settings.batch_size,
                default_max_attempts=settings.default_max_attempts,
                backoff_base_seconds=settings.backoff_base_seconds,
                schedule_next_in=args.schedule_next,
                dry_run=args.dry_run,
            )
            print(outcome.render_one_line())
            return 0

        if args.queue_cmd == "enqueue":
            enqueued = enqueue_expiry_items(
                store,
                validator=validator,
                today=args.today or date.today(),
                since=args.since,
                dry_run=args.dry_run,
            )
            print(enqueued.render_one_line())
            return 0

        if args.queue_cmd == "purge":
            purged = purge_dead_items(store, validator=validator)
            print(f"purged {len(purged)} dead item(s)")
            return 0

    if args.cmd == "db" and args.db_cmd == "init":
        applied = db_init(sql_path=Path(args.sql), database_url=settings.dsn)
        print(f"Initialized schema from {args.sql} ({len(applied)} file(s))")
        return 0

    if args.cmd == "kinds":
        for name in kind_names():
            spec = get_kind_spec(name)
            print(f"{name}: {spec.record_cls.KIND} ({spec.sheet_name})")
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
