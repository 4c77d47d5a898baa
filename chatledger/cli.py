"""CLI for the ``chatledger`` package.

Typer-based console interface over the extraction pipeline, the record
service and the sync engine. Environment variables are loaded from a local
``.env`` with ``python-dotenv`` (without overriding the environment) before
any command runs. Business logic lives in ``chatledger.api``,
``chatledger.ledger`` and ``chatledger.sync``.

Command handlers print ``Error: ...`` to stderr and exit with status 1 on
failure.
"""

from __future__ import annotations

import json
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from .logging_setup import configure_logging

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Turn chat snippets and OCR text into calendar/expense records, and sync "
        "shared records through the local group store."
    ),
)


# ---- Small module-level helpers used by CLI commands -------------------------


def _fail(message: str) -> typer.Exit:
    print(f"Error: {message}", file=sys.stderr)
    return typer.Exit(1)


def _read_input(text: str | None, file: Path | None) -> str:
    if text is not None:
        return text
    if file is not None:
        return file.read_text(encoding="utf-8")
    return sys.stdin.read()


def _parse_day(value: str | None, *, option: str) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise _fail(f"{option} must be YYYY-MM-DD, got {value!r}") from e


def _repository(ctx: typer.Context):
    # Deferred import keeps `clean`/`parse` free of SQLAlchemy startup cost
    from .db.client import create_session_factory
    from .repository import SqlRecordRepository

    database_url = (ctx.obj or {}).get("database_url")
    return SqlRecordRepository(create_session_factory(database_url))


def _format_record(record) -> str:
    when = record.occurs_at.strftime("%Y-%m-%d %H:%M")
    amount = "-" if record.amount is None else f"{record.amount:g}"
    shared = f" shared={record.share_size} group={record.group_id or '-'}" if record.is_shared else ""
    return f"{record.id}  {when}  {record.title}  amount={amount}  {record.category.value}{shared}"


TEXT_OPTION = typer.Option("--text", "-t", help="Input text (defaults to stdin).")
FILE_OPTION = typer.Option(
    "--file", "-f", help="Read input text from a file.", dir_okay=False, exists=True, readable=True
)


# ---- Commands ------------------------------------------------------------------


@app.command("clean")
def clean_cmd(
    text: Annotated[str | None, TEXT_OPTION] = None,
    file: Annotated[Path | None, FILE_OPTION] = None,
) -> None:
    """Print the input with chat/OCR noise lines removed."""

    from .normalizer import clean_recognized_text

    typer.echo(clean_recognized_text(_read_input(text, file)))


@app.command("parse")
def parse_cmd(
    ctx: typer.Context,
    text: Annotated[str | None, TEXT_OPTION] = None,
    file: Annotated[Path | None, FILE_OPTION] = None,
    reference_date: Annotated[
        str | None, typer.Option("--reference-date", help="Anchor date YYYY-MM-DD (default: today).")
    ] = None,
    use_ai: Annotated[bool, typer.Option("--ai", help="Ask the AI endpoint first.")] = False,
    save: Annotated[bool, typer.Option("--save", help="Store the parsed record.")] = False,
) -> None:
    """Extract one record and print it as JSON."""

    from .ai_client import AIRecognizer
    from .api import extract_record
    from .ledger import PersistenceError, add_record

    day = _parse_day(reference_date, option="--reference-date")
    reference = datetime(day.year, day.month, day.day) if day else None
    recognizer = AIRecognizer() if use_ai else None

    result = extract_record(_read_input(text, file), reference=reference, recognizer=recognizer)
    if result.record is None:
        typer.echo("No record detected.")
        return

    record = result.record
    if save:
        try:
            record = add_record(_repository(ctx), record)
        except PersistenceError as e:
            raise _fail(f"could not save record: {e}") from e
    typer.echo(json.dumps(record.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2))


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    on: Annotated[str | None, typer.Option("--date", help="Only records on YYYY-MM-DD.")] = None,
) -> None:
    """List stored records, optionally for one day."""

    day = _parse_day(on, option="--date")
    repo = _repository(ctx)
    records = repo.for_date(day) if day else repo.all()
    for record in records:
        typer.echo(_format_record(record))
    if day is not None:
        typer.echo(f"Total expenses: {repo.expense_total_for_date(day):g}")


@app.command("sync")
def sync_cmd(
    ctx: typer.Context,
    groups: Annotated[list[str], typer.Option("--group", "-g", help="Group id (repeatable).")],
    author: Annotated[str, typer.Option("--author", help="Name stamped on unattributed records.")] = "",
) -> None:
    """Run a sync pass for each group."""

    from .sync import SyncEngine

    engine = SyncEngine(_repository(ctx))
    results = engine.sync_groups(groups, author)
    if not results:
        raise _fail("no non-blank --group given")
    failed = [g for g, when in results.items() if when is None]
    for group_id, when in results.items():
        status = when.isoformat() if when else "failed"
        typer.echo(f"{group_id}: {status}")
    if failed:
        raise _fail(f"sync failed for: {', '.join(failed)}")


@app.command("delete")
def delete_cmd(
    ctx: typer.Context,
    record_id: Annotated[str, typer.Option("--id", help="Record id to delete.")],
) -> None:
    """Delete a record; shared records are queued for deletion on next sync."""

    from .ledger import delete_record
    from .sync import SyncEngine

    repo = _repository(ctx)
    if not delete_record(repo, record_id, sync_engine=SyncEngine(repo)):
        raise _fail(f"record not found: {record_id}")
    typer.echo(f"Deleted {record_id}")


@app.command("upload")
def upload_cmd(
    ctx: typer.Context,
    on: Annotated[str | None, typer.Option("--date", help="Day YYYY-MM-DD (default: today).")] = None,
) -> None:
    """Upload the shared records of one day."""

    from .ledger import upload_shared_for_date
    from .uploader import UploadError, UploadServerError

    day = _parse_day(on, option="--date") or date.today()
    try:
        count = upload_shared_for_date(_repository(ctx), day)
    except UploadServerError as e:
        raise _fail(f"upload rejected (HTTP {e.status}): {e.body or ''}".rstrip()) from e
    except UploadError as e:
        raise _fail(f"upload failed: {e}") from e
    typer.echo(f"Uploaded {count} shared record(s)")


@app.command("export")
def export_cmd(
    ctx: typer.Context,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Write to a file instead of stdout.")] = None,
    on: Annotated[str | None, typer.Option("--date", help="Export one day as JSON instead of all as CSV.")] = None,
) -> None:
    """Export records as CSV (all) or JSON (one day)."""

    from .export import export_csv, export_json_for_date

    day = _parse_day(on, option="--date")
    repo = _repository(ctx)
    if day is not None:
        content = export_json_for_date(repo, day)
        if content is None:
            raise _fail(f"no records on {day.isoformat()}")
    else:
        content = export_csv(repo.all())

    if output is None:
        typer.echo(content)
        return
    try:
        output.write_text(content, encoding="utf-8")
    except OSError as e:
        raise _fail(f"could not write {output}: {e}") from e
    typer.echo(f"Wrote {output}")


@app.command("import")
def import_cmd(
    ctx: typer.Context,
    file: Annotated[
        Path,
        typer.Option("--file", "-f", help="CSV written by `export`.", dir_okay=False, exists=True, readable=True),
    ],
    append: Annotated[bool, typer.Option("--append", help="Keep existing records instead of replacing them.")] = False,
) -> None:
    """Restore records from a CSV export (replaces all records by default)."""

    from .export import import_csv
    from .ledger import import_records

    try:
        text = file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise _fail(f"could not read {file}: {e}") from e
    records = import_csv(text)
    if not records:
        raise _fail(f"no importable rows in {file}")
    count = import_records(_repository(ctx), records, replace=not append)
    typer.echo(f"Imported {count} record(s)")


@app.callback()
def _root(
    ctx: typer.Context,
    database_url: Annotated[
        str | None, typer.Option("--database-url", help="Override DATABASE_URL (falls back to env var).")
    ] = None,
    log_level: Annotated[str | None, typer.Option("--log-level", help="Override CHATLEDGER_LOG_LEVEL.")] = None,
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)
    ctx.obj = {"database_url": database_url}


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
