"""CLI interface for SimpLLM.

Settings come from ~/.simpllm/config.yaml (or --config / $SIMPLLM_CONFIG),
so day-to-day use needs no flags.

Quick start:
    simpllm                                  # Interactive chat
    simpllm ask "fix the failing test"       # One-shot, auto-routed
    simpllm ask "@opus design a cache"       # Force a model by alias
    simpllm route "write unit tests for X"   # Which model would it pick?
    simpllm config block claude-opus-4.5     # Admin policy
"""

import asyncio
import logging
import warnings
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from simpllm import SimpLLMError, __version__
from simpllm.backends import StaticProvider, assistant_message, user_message
from simpllm.config import ConfigError, ConfigStore, Settings, default_config_path
from simpllm.feedback import FeedbackRecorder
from simpllm.handler import ChatResult, ChatSession
from simpllm.reports import feedback_report, models_report
from simpllm.routing.catalog import TaskType, get_model
from simpllm.routing.classifier import TaskClassifier
from simpllm.routing.router import ModelRouter, parse_force_alias
from simpllm.state import StateStore

# Suppress noisy warnings from LiteLLM
warnings.filterwarnings("ignore", message="Pydantic serializer warnings")
warnings.filterwarnings("ignore", category=RuntimeWarning, module="litellm")


app = typer.Typer(
    name="simpllm",
    help="Task-aware model routing with credit budgets",
    no_args_is_help=False,
    invoke_without_command=True,
)

# Sub-command groups
feedback_app = typer.Typer(help="Inspect the local feedback log")
app.add_typer(feedback_app, name="feedback")

config_app = typer.Typer(help="Settings and admin routing policy")
app.add_typer(config_app, name="config")

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    if not verbose:
        logging.getLogger("LiteLLM").setLevel(logging.ERROR)
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _config_path(ctx: typer.Context) -> Path:
    obj = ctx.find_root().obj or {}
    return obj.get("config_path") or default_config_path()


def _store(ctx: typer.Context) -> ConfigStore:
    try:
        return ConfigStore(_config_path(ctx))
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


def _state(ctx: typer.Context) -> StateStore:
    """State lives next to the config file."""
    return StateStore(_config_path(ctx).parent / "state.json")


def _print_notices(result: ChatResult) -> None:
    for notice in result.notices:
        console.print(f"[dim]{escape(notice)}[/dim]", highlight=False)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Path = typer.Option(
        None, "--config", "-c", help="Config file (default: ~/.simpllm/config.yaml)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Task-aware model routing with credit budgets.

    Run with no arguments to start interactive chat.
    """
    _setup_logging(verbose)
    ctx.obj = {"config_path": config_path}

    if ctx.invoked_subcommand is not None:
        return

    _run_chat(ctx)


@app.command()
def version() -> None:
    """Show version."""
    console.print(f"SimpLLM v{__version__}")


# ── Chat ────────────────────────────────────────────────

CHAT_HELP = (
    "**Commands:**\n"
    "- `/stats` - Session statistics\n"
    "- `/budget` - Credit budget\n"
    "- `/model <id|auto>` - Pin the next request to a model\n"
    "- `/good`, `/bad` - Rate the last response\n"
    "- `/credits <reason>` - Request extra credits\n"
    "- `/quit` - End session\n"
    "\n**Tips:**\n"
    "- Put `@opus`, `@sonnet`, `@flash`... anywhere in a prompt to force a model\n"
)


def _run_chat(ctx: typer.Context) -> None:
    store = _store(ctx)
    session = ChatSession(store, state=_state(ctx))
    settings = store.settings

    console.print(
        Panel(
            "[bold cyan]SimpLLM[/bold cyan] - Task-aware model routing\n"
            f"Version {__version__} | Budget {settings.monthly_budget:g} credits"
            f" | Ceiling {settings.max_credit_tier.value}",
            border_style="cyan",
        )
    )
    console.print("[dim]Type '/quit' to end, '/help' for commands[/dim]\n")

    async def run_chat_async() -> None:
        history = []
        try:
            while True:
                try:
                    user_input = Prompt.ask("[bold]You[/bold]")
                except (KeyboardInterrupt, EOFError):
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                text = user_input.strip()
                if not text:
                    continue
                command, _, arg = text.partition(" ")
                command = command.lower()

                if command in ("/quit", "exit", "quit"):
                    console.print("[dim]Goodbye![/dim]")
                    break

                if command == "/help":
                    console.print(Panel(Markdown(CHAT_HELP), title="Help"))
                    continue

                if command == "/model":
                    choice = arg.strip()
                    if not choice or choice == "auto":
                        session.force_next(None)
                        console.print("[dim]Next request: auto[/dim]")
                    elif get_model(choice) is None:
                        console.print(f"[red]Unknown model: {choice}[/red]")
                    else:
                        session.force_next(choice)
                        console.print(f"[dim]Next request: {get_model(choice).name}[/dim]")
                    continue

                if command in ("/good", "/bad"):
                    if session.rate(None, positive=command == "/good"):
                        console.print("[dim]Thanks for the feedback.[/dim]")
                    else:
                        console.print("[yellow]Nothing to rate yet.[/yellow]")
                    continue

                if command == "/credits":
                    if not arg.strip():
                        console.print("[yellow]Usage: /credits <reason>[/yellow]")
                    elif await session.request_credits(arg.strip()):
                        console.print("[green]Credit request sent.[/green]")
                    else:
                        console.print("[red]Credit request failed. Is feedback_endpoint set?[/red]")
                    continue

                console.print()
                result = await session.handle(text, history)
                if result.error is None and result.request_id:
                    history += [user_message(text), assistant_message(result.text)]

                _print_notices(result)
                style = "red" if result.error else "green"
                title = result.metadata.get("model", "SimpLLM")
                console.print(Panel(Markdown(result.text or "(empty)"), title=title, border_style=style))
                if result.metadata.get("feedback_requested"):
                    console.print("[dim]Rate with /good or /bad[/dim]")
                console.print()
        finally:
            await session.aclose()

    asyncio.run(run_chat_async())


@app.command()
def chat(ctx: typer.Context) -> None:
    """Interactive chat with automatic model routing."""
    _run_chat(ctx)


@app.command()
def ask(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Prompt to send"),
    model: str = typer.Option(None, "--model", "-m", help="Force a model id"),
) -> None:
    """Send one prompt and stream the reply.

    Examples:
        simpllm ask "why does this throw a NullPointerException?"
        simpllm ask "review this diff" -m claude-sonnet-4.5
    """
    store = _store(ctx)

    async def run() -> ChatResult:
        session = ChatSession(store, state=_state(ctx))
        try:
            return await session.handle(
                prompt,
                forced_model_id=model,
                on_chunk=lambda chunk: console.print(chunk, end="", markup=False, highlight=False),
            )
        finally:
            await session.aclose()

    result = asyncio.run(run())
    if result.error:
        console.print(f"[red]{escape(result.text)}[/red]", highlight=False)
        _print_notices(result)
        raise typer.Exit(1)

    console.print()
    _print_notices(result)


@app.command()
def route(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Prompt to route"),
) -> None:
    """Show which model a prompt would go to, without calling any model.

    Uses the keyword classifier only.

    Example:
        simpllm route "write unit tests for the auth service"
    """
    settings = _store(ctx).settings
    offline = StaticProvider([])
    router = ModelRouter(TaskClassifier(offline, settings.classifier_model), offline)

    clean_prompt, forced_id = parse_force_alias(prompt)
    try:
        decision = asyncio.run(router.route(clean_prompt, forced_id, settings.admin))
    except SimpLLMError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Task", decision.task_type.value)
    table.add_row("Model", f"{decision.model.name} ({decision.model.id})")
    table.add_row("Credit", f"{decision.model.credit_multiplier:g}x ({decision.model.credit_tier.value})")
    table.add_row("Reason", decision.reason)
    if decision.notice:
        table.add_row("Notice", f"[yellow]{decision.notice}[/yellow]")
    console.print(table)


@app.command()
def models() -> None:
    """List the model catalog by credit tier."""
    console.print(Markdown(models_report()))


# ── Feedback ────────────────────────────────────────────

@feedback_app.command("show")
def feedback_show(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", help="Recent entries to show"),
) -> None:
    """Show feedback totals and the most recent entries."""
    recorder = FeedbackRecorder(_state(ctx))
    console.print(Markdown(feedback_report(recorder.stats(), recorder.entries(), limit)))


@feedback_app.command("clear")
def feedback_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete the local feedback log."""
    recorder = FeedbackRecorder(_state(ctx))
    if not yes and not typer.confirm(f"Delete {len(recorder)} feedback entries?"):
        raise typer.Exit(0)
    recorder.clear()
    console.print("[green]Feedback log cleared.[/green]")


# ── Config ──────────────────────────────────────────────

def _require_known(model_id: str) -> None:
    if get_model(model_id) is None:
        console.print(f"[red]Unknown model: {model_id}[/red]")
        console.print("[dim]See 'simpllm models' for valid ids.[/dim]")
        raise typer.Exit(1)


def _update(store: ConfigStore, **changes) -> Settings:
    try:
        return store.update(**changes)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show current settings."""
    store = _store(ctx)
    settings = store.settings

    table = Table(title=f"Settings ({store.path})")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        if key == "backends":
            continue
        if isinstance(value, (dict, list)):
            value = yaml.dump(value, default_flow_style=True).strip() if value else "-"
        table.add_row(key, str(value) if value != "" else "-")
    console.print(table)

    routes = Table(title="Backends")
    routes.add_column("Family", style="cyan")
    routes.add_column("LiteLLM model")
    for family, name in settings.backends.items():
        routes.add_row(family, name)
    console.print(routes)


@config_app.command("set-route")
def config_set_route(
    ctx: typer.Context,
    task: str = typer.Argument(..., help="Task type, e.g. debug"),
    model_id: str = typer.Argument(..., help="Model id, or 'default' to remove the override"),
) -> None:
    """Route a task type to a specific model."""
    task_type = TaskType.parse(task)
    if task_type is None:
        console.print(f"[red]Unknown task type: {task}[/red]")
        console.print(f"[dim]Valid: {', '.join(t.value for t in TaskType)}[/dim]")
        raise typer.Exit(1)

    store = _store(ctx)
    routing = {t.value: m for t, m in store.settings.task_routing.items()}
    if model_id == "default":
        routing.pop(task_type.value, None)
    else:
        _require_known(model_id)
        routing[task_type.value] = model_id

    _update(store, task_routing=routing)
    console.print(f"[green]{task_type.value} → {model_id}[/green]")


@config_app.command("block")
def config_block(
    ctx: typer.Context,
    model_id: str = typer.Argument(..., help="Model id to block"),
) -> None:
    """Never route to a model."""
    _require_known(model_id)
    store = _store(ctx)
    blocked = sorted(set(store.settings.blocked_models) | {model_id})
    _update(store, blocked_models=blocked)
    console.print(f"[green]Blocked {model_id}[/green]")


@config_app.command("unblock")
def config_unblock(
    ctx: typer.Context,
    model_id: str = typer.Argument(..., help="Model id to unblock"),
) -> None:
    """Remove a model from the block list."""
    store = _store(ctx)
    if model_id not in store.settings.blocked_models:
        console.print(f"[yellow]{model_id} is not blocked[/yellow]")
        return
    blocked = [m for m in store.settings.blocked_models if m != model_id]
    _update(store, blocked_models=blocked)
    console.print(f"[green]Unblocked {model_id}[/green]")


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Setting name, e.g. max_credit_tier"),
    value: str = typer.Argument(..., help="New value (YAML syntax)"),
) -> None:
    """Change a single setting.

    Examples:
        simpllm config set max_credit_tier standard
        simpllm config set monthly_budget 500
        simpllm config set feedback_endpoint https://admin.example.com/feedback
    """
    if key not in Settings.model_fields:
        console.print(f"[red]Unknown setting: {key}[/red]")
        raise typer.Exit(1)

    if Settings.model_fields[key].annotation is str:
        parsed = value
    else:
        try:
            parsed = yaml.safe_load(value)
        except yaml.YAMLError:
            parsed = value

    store = _store(ctx)
    settings = _update(store, **{key: parsed})
    console.print(f"[green]{key} = {settings.to_dict()[key]}[/green]")


if __name__ == "__main__":
    app()
