"""Command-line interface for student context retrieval."""

import asyncio
import logging
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import Settings
from .database import (
    DatabasePool,
    FileFlagRuleSource,
    FlagRuleSource,
    InMemoryRecordStore,
    PostgresRecordStore,
    RecordStore,
    RecordStoreError,
    StaticFlagRuleSource,
    create_database_config,
    create_postgres_store,
    load_record_bundle,
)
from .models import FlagRule, StudentDataContext, StudentRiskProfile
from .retrieval import StudentDataRetrieval


app = typer.Typer(
    name="student-context",
    help="Student Context - budgeted student data retrieval for free-text questions",
    add_completion=False,
)

console = Console()


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _parse_reference_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise typer.BadParameter("Reference date must be YYYY-MM-DD")


async def _open_store(data: Optional[Path], settings: Settings):
    """Return (store, bundled flag rules); a database store comes back with its pool initialized."""
    if data is not None:
        bundle = load_record_bundle(data)
        return InMemoryRecordStore.from_bundle(bundle), bundle.flag_rules
    if not settings.database.is_configured:
        raise typer.BadParameter("Pass --data FILE or set DATABASE_URL")
    store = await create_postgres_store(DatabasePool(create_database_config(settings.database)))
    return store, []


def _flag_source(flags: Optional[Path], settings: Settings, bundled: List[FlagRule]) -> Optional[FlagRuleSource]:
    """An explicit rule file wins over rules bundled in the data file."""
    path = flags or settings.app.flag_rules_path
    if path:
        return FileFlagRuleSource(path)
    return StaticFlagRuleSource(bundled) if bundled else None


async def _run_with_store(data: Optional[Path], settings: Settings, action):
    store, bundled_rules = await _open_store(data, settings)
    try:
        return await action(store, bundled_rules)
    finally:
        if isinstance(store, PostgresRecordStore):
            await store.pool.close()


def _print_summary(context: StudentDataContext) -> None:
    summary = context.summary
    risk = summary.risk_categories
    console.print(Panel.fit(
        f"[bold]Question:[/bold] {context.metadata.question}\n"
        f"Query type: [cyan]{summary.query_type}[/cyan]  "
        f"Students: [green]{summary.total_students}[/green]  "
        f"Budget policy: [yellow]{context.metadata.budget_policy.value if context.metadata.budget_policy else 'none'}[/yellow]\n"
        f"Average attendance: {summary.average_attendance:.1f}%  "
        f"Average grade: {summary.average_grade:.1f}\n"
        f"Risk: [red]{risk.high_risk} high[/red], [yellow]{risk.medium_risk} medium[/yellow], "
        f"[green]{risk.low_risk} low[/green]  Flagged students: {summary.students_with_flags}",
        title="Student Data Context",
    ))

    if context.flags:
        table = Table(title="Flags")
        table.add_column("Student")
        table.add_column("Flag")
        table.add_column("Category")
        table.add_column("Detail")
        for flag in context.flags:
            table.add_row(flag.student_id, flag.flag_name, flag.category, f"[{flag.color}]{flag.message}[/{flag.color}]")
        console.print(table)


def _print_profile(profile: StudentRiskProfile) -> None:
    risk = profile.risk
    lines = [
        f"[bold]Overall risk:[/bold] {risk.overall_risk_level.value}",
        f"Attendance: {profile.attendance.attendance_rate:.1f}% ({risk.attendance_risk.value})",
        f"Academics: {profile.academics.overall_average:.1f} average ({risk.academic_risk.value})",
        f"Behavior: {profile.behavior.incident_count} incidents ({risk.behavior_risk.value})",
    ]
    if risk.risk_factors:
        lines.append("[red]Risk factors:[/red] " + "; ".join(risk.risk_factors))
    if risk.protective_factors:
        lines.append("[green]Protective factors:[/green] " + "; ".join(risk.protective_factors))
    if profile.summary.priorities:
        lines.append("[yellow]Priorities:[/yellow] " + "; ".join(profile.summary.priorities))
    console.print(Panel.fit("\n".join(lines), title=f"Student {profile.student.id}"))


@app.command()
def version():
    """Show version information."""
    from student_context import __version__

    console.print(Panel.fit(
        f"[bold blue]Student Context[/bold blue]\n"
        f"Version: [green]{__version__}[/green]",
        title="Version Info"
    ))


@app.command()
def retrieve(
    question: str = typer.Argument(..., help="Free-text question about students"),
    data: Optional[Path] = typer.Option(None, "--data", "-d", help="JSON record file (defaults to DATABASE_URL)"),
    flags: Optional[Path] = typer.Option(None, "--flags", "-f", help="YAML or JSON flag rule file"),
    deep: bool = typer.Option(False, "--deep", help="Attach risk profiles for named students"),
    as_json: bool = typer.Option(False, "--json", help="Print the full context as JSON"),
    reference_date: Optional[str] = typer.Option(None, "--reference-date", help="Pin 'today' (YYYY-MM-DD)"),
):
    """Build the data context for a question."""
    settings = Settings.load()
    setup_logging(settings.app.log_level)

    async def action(store: RecordStore, bundled_rules: List[FlagRule]) -> StudentDataContext:
        engine = StudentDataRetrieval(
            store,
            flag_rules=_flag_source(flags, settings, bundled_rules),
            settings=settings,
            reference_date=_parse_reference_date(reference_date),
        )
        return await engine.retrieve_relevant_data(question, deep=deep or None)

    try:
        context = asyncio.run(_run_with_store(data, settings, action))
    except (RecordStoreError, ValueError) as e:
        console.print(f"[red]❌ Retrieval failed: {e}[/red]")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(context.model_dump_json())
        return

    _print_summary(context)
    for profile in context.profiles:
        _print_profile(profile)


@app.command()
def profile(
    student_ids: List[str] = typer.Argument(..., help="Student ids to profile"),
    data: Optional[Path] = typer.Option(None, "--data", "-d", help="JSON record file (defaults to DATABASE_URL)"),
    as_json: bool = typer.Option(False, "--json", help="Print profiles as JSON"),
    reference_date: Optional[str] = typer.Option(None, "--reference-date", help="Pin 'today' (YYYY-MM-DD)"),
):
    """Build deep risk profiles for specific students."""
    settings = Settings.load()
    setup_logging(settings.app.log_level)

    async def action(store: RecordStore, bundled_rules: List[FlagRule]) -> List[StudentRiskProfile]:
        engine = StudentDataRetrieval(store, settings=settings, reference_date=_parse_reference_date(reference_date))
        return await engine.create_student_profiles(student_ids)

    try:
        profiles = asyncio.run(_run_with_store(data, settings, action))
    except (RecordStoreError, ValueError) as e:
        console.print(f"[red]❌ Profiling failed: {e}[/red]")
        raise typer.Exit(code=1)

    if not profiles:
        console.print("[yellow]No matching students found[/yellow]")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(data=[p.model_dump(mode="json") for p in profiles])
        return
    for item in profiles:
        _print_profile(item)


@app.command()
def test_db(
    url: Optional[str] = typer.Option(
        None,
        "--url",
        "-u",
        help="Database URL (defaults to DATABASE_URL env var)"
    )
):
    """Test database connectivity."""
    console.print("[yellow]Testing database connection...[/yellow]")

    async def check() -> bool:
        settings = Settings.load().database
        if url:
            settings = settings.model_copy(update={"url": url})
        pool = DatabasePool(create_database_config(settings))
        try:
            await pool.initialize()
            return await pool.health_check()
        finally:
            await pool.close()

    try:
        healthy = asyncio.run(check())
    except (RecordStoreError, ValueError) as e:
        console.print(f"[red]❌ Database connection failed: {e}[/red]")
        raise typer.Exit(code=1)

    if healthy:
        console.print("[green]✅ Database connection successful![/green]")
    else:
        console.print("[red]❌ Database health check failed[/red]")
        raise typer.Exit(code=1)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
