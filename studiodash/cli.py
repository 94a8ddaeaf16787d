# studiodash/cli.py
"""
🎛️ StudioDash - Operator CLI
═══════════════════════════════════════════════════════════════════════════════

Commands:
    modules     List registered feature modules
    widgets     List dashboard widgets in render order
    nav         List navigation items
    init-db     Create database tables
    seed        Insert sample data
    db-health   Check database connectivity
    stats       Show dashboard statistics for a user
    config      Show the loaded configuration
    version     Show version information
"""

import asyncio
import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from plugins import load_modules

from . import __version__
from .app import StudioDashApplication
from .config import AppSettings, ConfigurationManager, setup_logging
from .core import ModuleRegistry
from .database import DatabaseManager, check_database_health, init_database
from .repositories import create_cached_repositories
from .seed import seed_sample_data

console = Console()
app = typer.Typer(help="🎛️ StudioDash - audio studio dashboard CLI")


def _settings(ctx: typer.Context) -> AppSettings:
    return ctx.obj["settings"]


def _registry(settings: AppSettings) -> ModuleRegistry:
    return load_modules(ModuleRegistry(), disabled=settings.modules.disabled)


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="YAML or JSON configuration file"),
    env_file: Optional[str] = typer.Option(None, "--env-file", help=".env file to load"),
):
    """Load configuration and logging before any command runs."""
    try:
        settings = ConfigurationManager().load_config(config_file, env_file)
    except (ValueError, FileNotFoundError) as e:
        console.print(f"❌ [red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)

    setup_logging(settings.logging)
    ctx.obj = {"settings": settings}


# ═══════════════════════════════════════════════════════════════════════════════
# 🧩 MODULES
# ═══════════════════════════════════════════════════════════════════════════════

@app.command("modules")
def modules(ctx: typer.Context):
    """🧩 List registered feature modules"""
    registry = _registry(_settings(ctx))

    table = Table(title="🧩 Feature Modules")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Widgets", justify="right")
    table.add_column("Description")

    for module in registry.get_all_modules():
        status = "[green]enabled[/green]" if module.enabled else "[red]disabled[/red]"
        table.add_row(module.id, module.name, status, str(len(module.widgets or [])), module.description)

    console.print(table)


@app.command("widgets")
def widgets(ctx: typer.Context):
    """📊 List dashboard widgets in render order"""
    registry = _registry(_settings(ctx))

    table = Table(title="📊 Dashboard Widgets")
    table.add_column("Priority", justify="right", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Width")
    table.add_column("Component")

    for widget in registry.get_all_widgets():
        table.add_row(str(widget.priority), widget.title, widget.width, widget.component)

    console.print(table)


@app.command("nav")
def nav(ctx: typer.Context):
    """🧭 List navigation items"""
    registry = _registry(_settings(ctx))

    table = Table(title="🧭 Navigation")
    table.add_column("Label", style="bold")
    table.add_column("Link", style="cyan")
    table.add_column("Description")

    for item in registry.get_all_nav_items():
        table.add_row(item.label, item.href, item.description or "")

    console.print(table)


# ═══════════════════════════════════════════════════════════════════════════════
# 🗄️ DATABASE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command("init-db")
def init_db(
    ctx: typer.Context,
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables first"),
):
    """🗄️ Create database tables"""
    settings = _settings(ctx)
    console.print(Panel.fit(
        f"🗄️ Database: [bold yellow]{settings.database.url}[/bold yellow]\n"
        f"🔄 Drop first: [bold red]{drop}[/bold red]",
        title="🗄️ Database Initialization",
        border_style="cyan"
    ))

    try:
        with console.status("[bold green]Creating tables..."):
            manager = init_database(settings.database, settings.retry, create_tables=False)
            if drop:
                manager.drop_tables()
            manager.create_tables()
            manager.close()

        console.print("✅ [green]Database tables created[/green]")

    except Exception as e:
        console.print(f"❌ [red]Database initialization failed:[/red] {e}")
        raise typer.Exit(1)


@app.command("seed")
def seed(ctx: typer.Context):
    """🌱 Insert sample data"""
    settings = _settings(ctx)

    async def _seed():
        manager = init_database(settings.database, settings.retry)
        try:
            repositories = create_cached_repositories(manager, default_ttl=settings.cache.repository_timeout)
            return await seed_sample_data(repositories)
        finally:
            manager.close()

    try:
        with console.status("[bold green]Seeding data..."):
            ids = asyncio.run(_seed())

        console.print("✅ [green]Sample data seeded successfully![/green]")
        console.print(f"👤 Admin user: [bold]{ids['admin_id']}[/bold]")
        console.print(f"📁 Project: [bold]{ids['project_id']}[/bold]")

    except Exception as e:
        console.print(f"❌ [red]Seeding failed:[/red] {e}")
        raise typer.Exit(1)


@app.command("db-health")
def db_health(ctx: typer.Context):
    """🩺 Check database connectivity"""
    settings = _settings(ctx)
    manager = DatabaseManager(settings.database, settings.retry)

    try:
        manager.initialize()
        healthy = asyncio.run(check_database_health(manager))
    except Exception as e:
        console.print(f"❌ [red]Database unavailable:[/red] {e}")
        raise typer.Exit(1)
    finally:
        manager.close()

    if not healthy:
        console.print("❌ [red]Database health check failed[/red]")
        raise typer.Exit(1)

    console.print("✅ [green]Database is healthy[/green]")


# ═══════════════════════════════════════════════════════════════════════════════
# 📈 DASHBOARD
# ═══════════════════════════════════════════════════════════════════════════════

@app.command("stats")
def stats(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User id"),
    widgets: bool = typer.Option(False, "--widgets", "-w", help="Also load widget data"),
    chart: bool = typer.Option(False, "--chart", "-c", help="Also show monthly expenses"),
):
    """📈 Show dashboard statistics for a user"""
    settings = _settings(ctx)

    async def _load():
        async with StudioDashApplication(settings, registry=ModuleRegistry()) as application:
            result = await application.dashboard.get_stats(user_id)
            payloads = await application.dashboard.build_widgets(user_id) if widgets else []
            months = await application.dashboard.get_expense_chart(user_id) if chart else []
            return result, payloads, months

    try:
        result, payloads, months = asyncio.run(_load())
    except Exception as e:
        console.print(f"❌ [red]Failed to load dashboard:[/red] {e}")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"📁 Active projects: [bold]{result.active_projects}[/bold]\n"
        f"✅ Pending tasks: [bold]{result.pending_tasks}[/bold]\n"
        f"📄 Recent files: [bold]{result.recent_files}[/bold]\n"
        f"💰 Total expenses: [bold]{result.total_expenses:.2f}[/bold]",
        title=f"📈 Dashboard for {user_id}",
        border_style="green"
    ))

    for payload in payloads:
        if payload.error:
            console.print(f"⚠️ [yellow]{payload.title}:[/yellow] {payload.error}")
        else:
            count = len(payload.data) if isinstance(payload.data, list) else 1
            console.print(f"📊 [bold]{payload.title}[/bold] ({payload.width}): {count} item(s)")

    if months:
        table = Table(title="💰 Monthly Expenses")
        table.add_column("Month", style="cyan")
        table.add_column("Amount", justify="right")
        for bar in months:
            table.add_row(bar.month, f"{bar.amount:.2f}")
        console.print(table)


# ═══════════════════════════════════════════════════════════════════════════════
# ⚙️ CONFIG / VERSION
# ═══════════════════════════════════════════════════════════════════════════════

@app.command("config")
def config():
    """⚙️ Show the loaded configuration"""
    console.print(Panel(ConfigurationManager().get_config_summary(), title="⚙️ Configuration", border_style="blue"))


@app.command("version")
def version():
    """📋 Show version information"""
    console.print(Panel.fit(
        f"🎛️ [bold blue]StudioDash[/bold blue] v{__version__}\n"
        f"🐍 Python {sys.version.split()[0]}",
        title="📋 Version Info",
        border_style="blue"
    ))


def run(argv: Optional[List[str]] = None) -> None:
    app(args=argv)


if __name__ == "__main__":
    run()
