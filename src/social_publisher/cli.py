"""Command-line interface using Typer."""

from typing import Optional
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table

from social_publisher import __version__
from social_publisher.logging import setup_logging

# Setup logging
setup_logging()

app = typer.Typer(
    name="social-publisher",
    help="Social Publisher - connect accounts and publish videos",
    add_completion=False,
)

# Subcommand groups
keys_app = typer.Typer(help="Encryption key commands")
settings_app = typer.Typer(help="Persisted settings commands")
accounts_app = typer.Typer(help="Connected account commands")
posts_app = typer.Typer(help="Scheduled post commands")
app.add_typer(keys_app, name="keys")
app.add_typer(settings_app, name="settings")
app.add_typer(accounts_app, name="accounts")
app.add_typer(posts_app, name="posts")

console = Console()


def _parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        console.print(f"[bold red]Invalid {label} ID: {value}[/bold red]")
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show version and exit."""
    console.print(f"Social Publisher v{__version__}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the API server."""
    import uvicorn

    from social_publisher.config import settings

    uvicorn.run(
        "social_publisher.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload or settings.api_reload,
    )


@app.command()
def worker() -> None:
    """Start a Celery worker for the publishing queue (for development)."""
    console.print("[bold blue]Starting Celery worker...[/bold blue]")

    import subprocess
    import sys

    subprocess.run(
        [
            sys.executable,
            "-m",
            "celery",
            "-A",
            "social_publisher.worker",
            "worker",
            "-Q",
            "publishing,celery",
            "--loglevel=info",
        ],
        check=True,
    )


@app.command()
def health() -> None:
    """Check the health of the running API."""
    import httpx

    from social_publisher.config import settings

    url = f"{settings.api_public_url.rstrip('/')}/health/ready"

    try:
        response = httpx.get(url, timeout=10)
        data = response.json()
    except httpx.RequestError as e:
        console.print(f"[bold red]Cannot connect to API: {e}[/bold red]")
        console.print("[dim]Is the API server running?[/dim]")
        raise typer.Exit(code=1)

    table = Table(title="Service Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_row("Database", "✓" if data.get("database") else "✗")
    table.add_row("Redis", "✓" if data.get("redis") else "✗")
    console.print(table)

    if data.get("ready"):
        console.print("[bold green]All services healthy![/bold green]")
    else:
        console.print("[bold yellow]Some services unhealthy[/bold yellow]")
        raise typer.Exit(code=1)


# =============================================================================
# KEYS / SETTINGS
# =============================================================================


@keys_app.command("generate")
def keys_generate() -> None:
    """Print a new Fernet key for ENCRYPTION_MASTER_KEY."""
    from social_publisher.services.encryption import generate_master_key

    console.print(generate_master_key())


@settings_app.command("bootstrap")
def settings_bootstrap() -> None:
    """Create the persisted credentials row if it is missing."""
    from social_publisher.db.session import get_session_context
    from social_publisher.services.credentials import bootstrap_app_settings

    with get_session_context() as session:
        bootstrap_app_settings(session)
    console.print("[green]Settings row ready[/green]")


# =============================================================================
# ACCOUNTS
# =============================================================================


@accounts_app.command("list")
def accounts_list(
    user: str = typer.Option(..., "--user", "-u", help="Owning user ID"),
) -> None:
    """List a user's active connected accounts."""
    from social_publisher.db.session import get_session_context
    from social_publisher.services.accounts import list_accounts

    with get_session_context() as session:
        accounts = list_accounts(session, user)

    if not accounts:
        console.print("[dim]No connected accounts[/dim]")
        return

    table = Table(title=f"Accounts for {user}")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Platform", style="cyan")
    table.add_column("Name")
    table.add_column("Limited")
    table.add_column("Token expires")

    for account in accounts:
        table.add_row(
            str(account.id),
            account.platform.value,
            account.account_name,
            "yes" if account.limited_access else "",
            account.token_expires_at.strftime("%Y-%m-%d %H:%M") if account.token_expires_at else "-",
        )

    console.print(table)


# =============================================================================
# POSTS
# =============================================================================


@posts_app.command("list")
def posts_list(
    user: str = typer.Option(..., "--user", "-u", help="Owning user ID"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of posts to show"),
) -> None:
    """List a user's posts, earliest scheduled first."""
    from social_publisher.db.session import get_session_context
    from social_publisher.domain.enums import PostStatus
    from social_publisher.services.scheduling import list_posts

    try:
        status_filter = PostStatus(status.upper()) if status else None
    except ValueError:
        console.print(f"[bold red]Unknown status: {status}[/bold red]")
        raise typer.Exit(code=1)

    with get_session_context() as session:
        page = list_posts(session, user, status=status_filter, limit=limit)

        if not page.posts:
            console.print("[dim]No posts found[/dim]")
            return

        table = Table(title=f"Posts ({page.total} total)")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Scheduled for")
        table.add_column("Status", style="green")
        table.add_column("URL / failure")

        for post in page.posts:
            table.add_row(
                str(post.id),
                post.scheduled_for.strftime("%Y-%m-%d %H:%M"),
                post.status,
                (post.post_url or post.failure_reason or "")[:60],
            )

    console.print(table)


@posts_app.command("retry")
def posts_retry(
    post_id: str = typer.Argument(..., help="Failed post ID"),
    user: str = typer.Option(..., "--user", "-u", help="Owning user ID"),
) -> None:
    """Retry a failed post in the background."""
    from kombu.exceptions import OperationalError

    from social_publisher.db.session import get_session_context
    from social_publisher.domain.errors import PostError, TransientPublishError
    from social_publisher.jobs.publish_tasks import retry_publish_task
    from social_publisher.services.scheduling import begin_retry, release_claim

    post_uuid = _parse_uuid(post_id, "post")
    try:
        with get_session_context() as session:
            begin_retry(session, post_uuid, user)
    except PostError as e:
        console.print(f"[bold red]Cannot retry: {e}[/bold red]")
        raise typer.Exit(code=1)

    try:
        result = retry_publish_task.delay(str(post_uuid))
    except OperationalError as e:
        with get_session_context() as session:
            release_claim(
                session, post_uuid, TransientPublishError("Could not queue retry").failure_reason
            )
        console.print(f"[bold red]Could not queue retry: {e}[/bold red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Retry initiated (task {result.id})[/green]")


@posts_app.command("process-due")
def posts_process_due(
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum posts to publish"),
) -> None:
    """Publish every scheduled post whose time has passed, inline."""
    from social_publisher.db.session import get_session_context
    from social_publisher.services.publishing import PublishDispatcher
    from social_publisher.services.scheduling import process_due_posts
    from social_publisher.utils.async_utils import run_async

    with get_session_context() as session:
        posts = run_async(process_due_posts(session, PublishDispatcher(), limit=limit))

        if not posts:
            console.print("[dim]No posts due[/dim]")
            return

        table = Table(title=f"Processed {len(posts)} due posts")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Status", style="green")
        table.add_column("URL / failure")

        for post in posts:
            table.add_row(
                str(post.id),
                post.status,
                (post.post_url or post.failure_reason or "")[:60],
            )

    console.print(table)


if __name__ == "__main__":
    app()
