#!/usr/bin/env python3
"""
ptimer: command-line front-end for the Production Timer service.

Usage:
    ptimer serve
    ptimer start --category Study
    ptimer switch Work
    ptimer stop
    ptimer stats
    ptimer goals set --weekly 30 --monthly 120
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Optional

import click
import requests
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import get_config
from .stats import format_duration_short
from .timer import format_hms

console = Console()

REQUEST_TIMEOUT = 5  # seconds
WATCH_INTERVAL = 1.0


class ApiClient:
    """Thin JSON client for the local service."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, json=payload, timeout=REQUEST_TIMEOUT)
        except requests.ConnectionError:
            raise click.ClickException(
                f"Cannot reach the timer service at {self.base_url}. Start it with: ptimer serve"
            )
        except requests.Timeout:
            raise click.ClickException(f"Timer service at {self.base_url} timed out")

        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail", resp.text)
            except ValueError:
                detail = resp.text
            if isinstance(detail, list):
                detail = "; ".join(str(item.get("msg", item)) for item in detail)
            raise click.ClickException(f"{detail} (HTTP {resp.status_code})")

        if "application/json" in resp.headers.get("content-type", ""):
            return resp.json()
        return resp.text

    def get(self, path: str) -> Any:
        return self.request("GET", path)

    def post(self, path: str, payload: Optional[dict] = None) -> Any:
        return self.request("POST", path, payload)

    def put(self, path: str, payload: dict) -> Any:
        return self.request("PUT", path, payload)

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)


# ---- Rendering ----


def _category_label(categories: list[dict], category_id: Optional[str]) -> str:
    for category in categories:
        if category["id"] == category_id:
            return category["name"]
    return "Uncategorized" if category_id is None else category_id


def render_timer_panel(payload: dict, categories: list[dict]) -> Panel:
    """Timer card: elapsed clock, status line and category."""
    state = payload["state"]

    if state["is_black_screen_active"]:
        content = Text("\n\n  Screen dimmed. Run 'ptimer wake' to show the timer.\n\n", style="grey30")
        return Panel(content, style="on black", border_style="black", title="")

    if state["is_running"]:
        status = "[green bold]Focusing[/green bold]"
        border = "green"
    elif state["has_active_record"]:
        status = "[yellow]Paused (resume with 'ptimer start')[/yellow]"
        border = "yellow"
    else:
        status = "[dim]Waiting to start[/dim]"
        border = "blue"

    category_id = state["category_id"] if state["has_active_record"] else payload["selected_category_id"]
    lines = [
        f"[bold]{format_hms(state['session_elapsed_seconds'])}[/bold]",
        status,
        f"Category: [cyan]{_category_label(categories, category_id)}[/cyan]",
    ]
    if state["is_running"] and state["record_elapsed_seconds"] != state["session_elapsed_seconds"]:
        lines.append(f"[dim]This category: {format_hms(state['record_elapsed_seconds'])}[/dim]")
    return Panel("\n".join(lines), title="Production Timer", border_style=border)


def _progress_bar(progress: float, width: int = 20) -> str:
    filled = int(round(progress * width))
    return "█" * filled + "░" * (width - filled)


def render_focus_table(stats: dict, category_stats: list[dict]) -> Table:
    table = Table(title="Focus", show_header=True, header_style="bold")
    table.add_column("Period")
    table.add_column("Time", justify="right")
    table.add_column("Goal", justify="right")
    table.add_column("Progress")

    table.add_row("Today", format_duration_short(stats["today_total_seconds"]), "", "")
    table.add_row(
        "Last 7 days",
        f"{stats['weekly_hours']:.1f}h",
        f"{stats['weekly_goal_hours']}h",
        f"{_progress_bar(stats['weekly_progress'])} {stats['weekly_progress'] * 100:.0f}%",
    )
    table.add_row(
        "Last 30 days",
        f"{stats['monthly_hours']:.1f}h",
        f"{stats['monthly_goal_hours']}h",
        f"{_progress_bar(stats['monthly_progress'])} {stats['monthly_progress'] * 100:.0f}%",
    )
    for category in category_stats:
        table.add_row(f"  {category['name']} today", format_hms(category["today_seconds"]), "", "")
    return table


def render_month_table(daily: dict) -> Table:
    table = Table(title=f"{daily['year']:04d}-{daily['month']:02d}", show_header=True, header_style="bold")
    table.add_column("Day")
    table.add_column("Time", justify="right")
    table.add_column("Level", justify="center")
    shades = ["·", "░", "▒", "▓", "█"]
    for day in daily["days"]:
        if day["total_seconds"] == 0:
            continue
        table.add_row(day["date"], day["formatted_duration"], shades[day["heat_level"]])
    if table.row_count == 0:
        table.add_row("[dim]No records this month[/dim]", "", "")
    return table


def render_history_table(months: list[dict]) -> Table:
    table = Table(title="Monthly history", show_header=True, header_style="bold")
    table.add_column("Month")
    table.add_column("Time", justify="right")
    table.add_column("Hours", justify="right")
    for month in months:
        table.add_row(month["label"], month["formatted_duration"], f"{month['hours']:.1f}h")
    if not months:
        table.add_row("[dim]No records yet[/dim]", "", "")
    return table


def render_categories_table(categories: list[dict], selected_id: Optional[str]) -> Table:
    table = Table(title="Categories", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Color")
    table.add_column("Icon")
    table.add_column("Id", style="dim")
    for category in categories:
        marker = "→ " if category["id"] == selected_id else "  "
        color = category["color_hex"]
        table.add_row(
            str(category["order"]),
            f"{marker}{category['name']}",
            f"[{color}]■[/{color}] {color}",
            category["icon"],
            category["id"],
        )
    return table


# ---- Helpers ----


def _client(ctx: click.Context) -> ApiClient:
    return ctx.obj["client"]


def _resolve_category(client: ApiClient, value: str) -> dict:
    """Match a category by id or (case-insensitive) name."""
    categories = client.get("/api/categories")["categories"]
    for category in categories:
        if category["id"] == value:
            return category
    lowered = value.strip().lower()
    for category in categories:
        if category["name"].lower() == lowered:
            return category
    names = ", ".join(c["name"] for c in categories) or "none"
    raise click.ClickException(f"Unknown category '{value}'. Available: {names}")


def _parse_color(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    raw = value.strip().lstrip("#")
    if raw.lower().startswith("0x"):
        raw = raw[2:]
    try:
        number = int(raw, 16)
    except ValueError:
        raise click.BadParameter("Use a hex color like #42A5F5", param_hint="--color")
    if len(raw) <= 6:
        number |= 0xFF000000
    return number


def _show_timer(client: ApiClient, payload: Optional[dict] = None) -> None:
    payload = payload or client.get("/api/timer")
    categories = client.get("/api/categories")["categories"]
    console.print(render_timer_panel(payload, categories))


# ---- Commands ----


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--api-url", envvar="PTIMER_API_URL", help="Timer service URL.")
@click.pass_context
def cli(ctx, api_url):
    """Production Timer - track focused work sessions."""
    ctx.ensure_object(dict)
    if "client" not in ctx.obj:
        config = get_config()
        ctx.obj["config"] = config
        ctx.obj["client"] = ApiClient(api_url or config.api_url)


@cli.command()
@click.pass_context
def serve(ctx):
    """Run the timer service in the foreground."""
    from .server import run

    run(ctx.obj.get("config") or get_config())


@cli.command()
@click.pass_context
def status(ctx):
    """Show the timer."""
    _show_timer(_client(ctx))


@cli.command()
@click.option("--category", "-c", help="Category name or id to record into.")
@click.pass_context
def start(ctx, category):
    """Start (or resume) the timer."""
    client = _client(ctx)
    payload = {}
    if category:
        payload["category_id"] = _resolve_category(client, category)["id"]
    _show_timer(client, client.post("/api/timer/start", payload))


@cli.command()
@click.pass_context
def stop(ctx):
    """Stop the timer and save the session."""
    client = _client(ctx)
    before = client.get("/api/timer")["state"]
    after = client.post("/api/timer/stop")
    if before["has_active_record"]:
        console.print(f"[green]Saved[/green] {format_duration_short(before['record_elapsed_seconds'])}")
    _show_timer(client, after)


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def reset(ctx, yes):
    """Discard the current session without saving it."""
    client = _client(ctx)
    if not yes:
        click.confirm("Discard the current session?", abort=True)
    _show_timer(client, client.post("/api/timer/reset"))


@cli.command()
@click.argument("category")
@click.pass_context
def switch(ctx, category):
    """Switch category; a running session continues in the new one."""
    client = _client(ctx)
    target = _resolve_category(client, category)
    _show_timer(client, client.post("/api/timer/category", {"category_id": target["id"]}))


@cli.command()
@click.pass_context
def wake(ctx):
    """Dismiss the black screen."""
    client = _client(ctx)
    _show_timer(client, client.post("/api/timer/black-screen/exit"))


@cli.command()
@click.argument(
    "state",
    type=click.Choice(["inactive", "paused", "detached", "hidden", "resumed"], case_sensitive=False),
)
@click.pass_context
def lifecycle(ctx, state):
    """Send an app lifecycle signal (leaving the app stops the timer)."""
    client = _client(ctx)
    _show_timer(client, client.post("/api/lifecycle", {"state": state}))


@cli.command()
@click.option("--interval", default=WATCH_INTERVAL, show_default=True, help="Refresh seconds.")
@click.pass_context
def watch(ctx, interval):
    """Live timer view (Ctrl+C to quit)."""
    client = _client(ctx)
    categories = client.get("/api/categories")["categories"]
    try:
        with Live(render_timer_panel(client.get("/api/timer"), categories), console=console, refresh_per_second=4) as live:
            while True:
                time.sleep(interval)
                live.update(render_timer_panel(client.get("/api/timer"), categories))
    except KeyboardInterrupt:
        pass


@cli.command()
@click.pass_context
def stats(ctx):
    """Today, last 7 days and last 30 days against goals."""
    client = _client(ctx)
    focus = client.get("/api/stats/focus")
    per_category = client.get("/api/stats/categories")["categories"]
    console.print(render_focus_table(focus, per_category))


@cli.command()
@click.pass_context
def month(ctx):
    """Per-day totals for the current month."""
    console.print(render_month_table(_client(ctx).get("/api/stats/daily")))


@cli.command()
@click.option("--day", "day_filter", help="Show the breakdown of one day (YYYY-MM-DD).")
@click.pass_context
def history(ctx, day_filter):
    """Monthly totals, newest first."""
    client = _client(ctx)
    if day_filter:
        daily = client.get("/api/stats/daily")
        for day in daily["days"]:
            if day["date"] == day_filter:
                console.print(Panel(day["summary"], title=day_filter, border_style="blue"))
                return
        raise click.ClickException(f"{day_filter} is not in the current month")
    console.print(render_history_table(client.get("/api/stats/monthly")["months"]))


@cli.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write to a file.")
@click.pass_context
def export(ctx, output):
    """Export per-day totals as JSON."""
    data = _client(ctx).get("/api/export/daily")
    text = data if isinstance(data, str) else json.dumps(data, indent=2)
    if output:
        output.write_text(text, encoding="utf-8")
        click.echo(f"Wrote {output}")
    else:
        click.echo(text)


@cli.command()
@click.option("--limit", "-n", default=30, show_default=True)
@click.pass_context
def logs(ctx, limit):
    """Recent service log lines."""
    entries = _client(ctx).get(f"/api/logs?limit={limit}")["logs"]
    colors = {"ERROR": "red", "WARNING": "yellow", "DEBUG": "dim"}
    for entry in entries:
        color = colors.get(entry["level"], "white")
        console.print(f"[dim]{entry['timestamp']}[/dim] [{color}]{entry['level']:<7}[/{color}] {entry['message']}")


# ---- Categories ----


@cli.group()
def categories():
    """Manage categories (at most three)."""


@categories.command("list")
@click.pass_context
def categories_list(ctx):
    """List categories in display order."""
    data = _client(ctx).get("/api/categories")
    console.print(render_categories_table(data["categories"], data["selected_category_id"]))


@categories.command("add")
@click.argument("name")
@click.option("--color", help="Hex color, e.g. #42A5F5.")
@click.option("--icon", default="label", show_default=True)
@click.pass_context
def categories_add(ctx, name, color, icon):
    """Add a category."""
    payload = {"name": name, "icon": icon}
    color_value = _parse_color(color)
    if color_value is not None:
        payload["color_value"] = color_value
    created = _client(ctx).post("/api/categories", payload)
    console.print(f"[green]Added[/green] {created['name']} ({created['id']})")


@categories.command("edit")
@click.argument("category")
@click.option("--name", help="New name.")
@click.option("--color", help="New hex color.")
@click.option("--icon", help="New icon name.")
@click.pass_context
def categories_edit(ctx, category, name, color, icon):
    """Rename or recolor a category."""
    client = _client(ctx)
    current = _resolve_category(client, category)
    color_value = _parse_color(color)
    payload = {
        "name": name or current["name"],
        "color_value": color_value if color_value is not None else current["color_value"],
        "icon": icon or current["icon"],
    }
    updated = client.put(f"/api/categories/{current['id']}", payload)
    console.print(f"[green]Updated[/green] {updated['name']}")


@categories.command("rm")
@click.argument("category")
@click.pass_context
def categories_rm(ctx, category):
    """Delete a category; its past sessions are kept."""
    client = _client(ctx)
    target = _resolve_category(client, category)
    client.delete(f"/api/categories/{target['id']}")
    console.print(f"[green]Deleted[/green] {target['name']}")


@categories.command("move")
@click.argument("old_index", type=int)
@click.argument("new_index", type=int)
@click.pass_context
def categories_move(ctx, old_index, new_index):
    """Move a category from one position to another."""
    data = _client(ctx).post("/api/categories/reorder", {"old_index": old_index, "new_index": new_index})
    console.print(render_categories_table(data["categories"], None))


# ---- Goals ----


@cli.group()
def goals():
    """Weekly and monthly goals."""


@goals.command("show")
@click.pass_context
def goals_show(ctx):
    """Show current goals."""
    settings = _client(ctx).get("/api/settings")
    console.print(f"Weekly goal:  [bold]{settings['weekly_goal_hours']}h[/bold]")
    console.print(f"Monthly goal: [bold]{settings['monthly_goal_hours']}h[/bold]")


@goals.command("set")
@click.option("--weekly", type=click.IntRange(1, 168), help="Weekly goal in hours (1-168).")
@click.option("--monthly", type=click.IntRange(1, 744), help="Monthly goal in hours (1-744).")
@click.pass_context
def goals_set(ctx, weekly, monthly):
    """Update weekly and/or monthly goals."""
    if weekly is None and monthly is None:
        raise click.UsageError("Give --weekly and/or --monthly")
    client = _client(ctx)
    current = client.get("/api/settings")
    payload = {
        "weekly_goal_hours": weekly if weekly is not None else current["weekly_goal_hours"],
        "monthly_goal_hours": monthly if monthly is not None else current["monthly_goal_hours"],
    }
    settings = client.put("/api/settings", payload)
    console.print(
        f"[green]Saved[/green] weekly {settings['weekly_goal_hours']}h, "
        f"monthly {settings['monthly_goal_hours']}h"
    )


if __name__ == "__main__":  # pragma: no cover
    cli()
