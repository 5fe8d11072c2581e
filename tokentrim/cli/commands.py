"""CLI commands for tokentrim."""

import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from tokentrim import __version__, __logo__
from tokentrim.compaction.estimator import get_tokenizer
from tokentrim.compaction.types import CompactionConfig, Message
from tokentrim.config.loader import load_config
from tokentrim.errors import ConfigurationError, InvalidInputError
from tokentrim.session.history import ConversationHistory
from tokentrim.session.log import JsonlArchive, read_session_log, write_session_log

app = typer.Typer(
    name="tokentrim",
    help=f"{__logo__} tokentrim - Conversation history compaction",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} tokentrim v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """tokentrim - Conversation history compaction."""
    pass


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def _build_config(
    config_path: Optional[Path],
    ratio: Optional[float] = None,
    min_messages: Optional[int] = None,
) -> tuple[CompactionConfig, str]:
    """Load settings and apply command-line overrides."""
    settings = load_config(config_path)
    overrides = {}
    if ratio is not None:
        overrides["target_reduction_ratio"] = ratio
    if min_messages is not None:
        overrides["minimum_messages"] = min_messages
    try:
        config = replace(settings.to_compaction_config(), **overrides)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    return config, settings.compaction.tokenizer


def _load_history(
    log: Path,
    config: CompactionConfig,
    tokenizer_name: str,
) -> ConversationHistory:
    """Re-hydrate a session log into a history."""
    if not log.exists():
        console.print(f"[red]Error: session log not found: {log}[/red]")
        raise typer.Exit(1)

    try:
        counter = get_tokenizer(tokenizer_name)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    history = ConversationHistory(config, tokenizer=counter)
    try:
        history.record_items(read_session_log(log))
    except InvalidInputError as e:
        console.print(f"[yellow]Skipped {len(e.failures)} malformed record(s)[/yellow]")
    return history


# ============================================================================
# Compaction Commands
# ============================================================================


@app.command()
def compact(
    log: Path = typer.Argument(..., help="Session log (JSONL)"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", "-m", help="Absolute token ceiling"),
    ratio: Optional[float] = typer.Option(None, "--ratio", "-r", help="Target reduction ratio (0.0-0.99)"),
    min_messages: Optional[int] = typer.Option(None, "--min-messages", "-k", help="Recent messages always kept"),
    tokenizer: Optional[str] = typer.Option(None, "--tokenizer", "-t", help="heuristic or tiktoken"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write result here instead of overwriting the log"),
    archive: Optional[Path] = typer.Option(None, "--archive", "-a", help="Append dropped messages to this JSONL file"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """Compact a session log to fit a token budget."""
    _configure_logging(verbose)
    config, tokenizer_name = _build_config(config_path, ratio, min_messages)
    history = _load_history(log, config, tokenizer or tokenizer_name)
    messages_before = len(history)

    try:
        result = history.compact(max_tokens)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if archive is not None and result.dropped:
        JsonlArchive(archive).archive(result.dropped)

    target = output or log
    write_session_log(target, history.items())

    table = Table(title="Compaction Result")
    table.add_column("Metric", style="cyan")
    table.add_column("Before", justify="right")
    table.add_column("After", justify="right")
    table.add_row("Messages", str(messages_before), str(len(history)))
    table.add_row("Tokens", str(result.tokens_before), str(result.tokens_after))
    table.add_row("Target tokens", "", str(result.target_tokens))
    table.add_row("Removed", "", str(result.messages_removed))
    table.add_row("Compressed", "", str(len(result.compressed_indices)))
    table.add_row("Reduction", "", f"{result.reduction:.1%}")
    console.print(table)

    if result.budget_unreachable:
        console.print(
            "[yellow]Budget unreachable: essential and recent messages alone "
            "exceed the target. Consider keep-last for hard truncation.[/yellow]"
        )
    console.print(f"[green]✓[/green] Wrote {target}")


@app.command("keep-last")
def keep_last(
    log: Path = typer.Argument(..., help="Session log (JSONL)"),
    count: int = typer.Argument(..., help="Messages to keep"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write result here instead of overwriting the log"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Truncate a session log to its last N messages."""
    if count < 1:
        console.print(f"[red]Error: count must be at least 1, got {count}[/red]")
        raise typer.Exit(1)

    config, tokenizer_name = _build_config(config_path)
    history = _load_history(log, config, tokenizer_name)
    before = len(history)
    kept = history.keep_last_messages(count)

    target = output or log
    write_session_log(target, kept)
    console.print(f"[green]✓[/green] Kept {len(kept)} of {before} messages in {target}")


@app.command()
def stats(
    log: Path = typer.Argument(..., help="Session log (JSONL)"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", "-m", help="Ceiling for utilization"),
    tokenizer: Optional[str] = typer.Option(None, "--tokenizer", "-t", help="heuristic or tiktoken"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Show token statistics for a session log."""
    config, tokenizer_name = _build_config(config_path)
    history = _load_history(log, config, tokenizer or tokenizer_name)
    info = history.stats(max_tokens)

    table = Table(title="History Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Messages", str(info.total_messages))
    table.add_row("Tokens", str(info.total_tokens))
    if info.max_tokens is not None:
        table.add_row("Max tokens", str(info.max_tokens))
        table.add_row("Utilization", f"{info.utilization_percentage}%")
    table.add_row("Essential", str(info.essential_messages))
    table.add_row("High importance", str(info.high_importance_messages))
    table.add_row("Compressed", str(info.compressed_messages))
    console.print(table)


@app.command()
def score(
    text: str = typer.Argument(..., help="Message content"),
    role: str = typer.Option("user", "--role", help="system, user or assistant"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Score a single message."""
    config, _ = _build_config(config_path)
    history = ConversationHistory(config)
    try:
        message = history.record_items([{"role": role, "content": text}])[0]
    except InvalidInputError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    category = history.service.scorer.categorize(message.importance)
    console.print(f"Importance: [bold]{message.importance:.2f}[/bold] ({category})")
    console.print(f"Essential: {'yes' if message.essential else 'no'}")
    console.print(f"Tokens: {message.token_count}")


def _message_preview(message: Message, width: int = 60) -> str:
    content = message.content.replace("\n", " ")
    return content if len(content) <= width else content[: width - 1] + "…"


@app.command()
def show(
    log: Path = typer.Argument(..., help="Session log (JSONL)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """List messages with their scores."""
    config, tokenizer_name = _build_config(config_path)
    history = _load_history(log, config, tokenizer_name)

    table = Table(title=str(log))
    table.add_column("#", justify="right", style="dim")
    table.add_column("Role", style="cyan")
    table.add_column("Tokens", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Essential", justify="center")
    table.add_column("Content")
    for message in history.items():
        table.add_row(
            str(message.index),
            message.role,
            str(message.token_count),
            f"{message.importance:.2f}",
            "[green]✓[/green]" if message.essential else "",
            _message_preview(message),
        )
    console.print(table)


if __name__ == "__main__":
    app()
