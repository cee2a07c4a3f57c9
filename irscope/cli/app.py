"""irscope-taste: inspect and maintain the persisted taste store.

Commands:

  irscope-taste status SPEAKER MODE INTENT
      Vote count and confidence of one context's intent model.

  irscope-taste reset [SPEAKER MODE INTENT] [--all]
      Wipe one context (its global model is kept) or the whole namespace.

  irscope-taste promote
      Merge the sandbox document into live and delete it.

  irscope-taste sandbox [on|off]
      Show or persist the active namespace for later invocations.

  irscope-taste training [on|off]
      Show or set the training-mode flag.

  irscope-taste summary
      Counts for the active namespace.

  irscope-taste top-winners SPEAKER INTENT
      Files that tend to win for a speaker and intent.

``--sandbox`` selects the sandbox namespace for a single invocation.
Exit codes follow ``errors.ExitCode``.
"""
from __future__ import annotations

import logging
import pathlib
from typing import Optional

import typer

from irscope.cli.errors import ExitCode
from irscope.config import get_settings
from irscope.contracts.taste_types import TasteContext
from irscope.services.taste.scoring import get_top_ir_winners
from irscope.services.taste.storage import JsonFileBackend
from irscope.services.taste.store import TasteStore, get_taste_store

logger = logging.getLogger(__name__)

cli = typer.Typer(
    name="irscope-taste",
    help="Inspect and maintain the IRScope taste store.",
    no_args_is_help=True,
)


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if get_settings().debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _store(ctx: typer.Context) -> TasteStore:
    store: TasteStore = ctx.obj
    return store


def _context(speaker: str, mode: str, intent: str) -> TasteContext:
    try:
        return TasteContext(speaker_prefix=speaker, mode=mode, intent=intent)
    except ValueError:
        typer.echo(
            f"❌ Unknown mode/intent {mode!r}/{intent!r}: "
            "mode is singleIR or blend, intent is rhythm, lead or clean."
        )
        raise typer.Exit(code=int(ExitCode.USER_ERROR)) from None


def _switch(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized not in ("on", "off"):
        typer.echo(f"❌ Expected 'on' or 'off', got {value!r}.")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    return normalized == "on"


def _namespace(store: TasteStore) -> str:
    return "sandbox" if store.sandbox_mode else "live"


@cli.callback()
def main(
    ctx: typer.Context,
    sandbox: bool = typer.Option(
        False, "--sandbox", help="Use the sandbox namespace for this invocation."
    ),
    storage_dir: Optional[pathlib.Path] = typer.Option(
        None,
        "--storage-dir",
        help="Directory holding the taste documents (default: IRSCOPE_STORAGE_DIR).",
    ),
) -> None:
    """Inspect and maintain the IRScope taste store."""
    _configure_logging()
    if storage_dir is not None:
        store = TasteStore(JsonFileBackend(storage_dir), get_settings())
    else:
        store = get_taste_store()
    store.restore_sandbox_mode()
    if sandbox:
        store.set_sandbox_mode(True)
    ctx.obj = store


@cli.command("status")
def status(
    ctx: typer.Context,
    speaker: str = typer.Argument(..., help="Speaker prefix (e.g. 'v30')."),
    mode: str = typer.Argument(..., help="singleIR or blend."),
    intent: str = typer.Argument(..., help="rhythm, lead or clean."),
) -> None:
    """Show vote count and confidence for one context."""
    store = _store(ctx)
    taste_ctx = _context(speaker, mode, intent)
    info = store.get_taste_status(taste_ctx)
    typer.echo(f"namespace:  {_namespace(store)}")
    typer.echo(f"context:    {taste_ctx.intent_key}")
    typer.echo(f"votes:      {info['n_votes']:.2f}")
    typer.echo(f"confidence: {info['confidence']:.2f}")


@cli.command("reset")
def reset(
    ctx: typer.Context,
    speaker: Optional[str] = typer.Argument(None, help="Speaker prefix."),
    mode: Optional[str] = typer.Argument(None, help="singleIR or blend."),
    intent: Optional[str] = typer.Argument(None, help="rhythm, lead or clean."),
    all_: bool = typer.Option(False, "--all", help="Wipe the whole active namespace."),
) -> None:
    """Wipe one context's taste data, or everything with ``--all``."""
    store = _store(ctx)
    if all_:
        store.reset_all_taste()
        typer.echo(f"✅ Reset all taste data ({_namespace(store)})")
        return
    if speaker is None or mode is None or intent is None:
        typer.echo("❌ Give SPEAKER MODE INTENT, or --all to wipe everything.")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))

    taste_ctx = _context(speaker, mode, intent)
    store.reset_taste(taste_ctx)
    typer.echo(f"✅ Reset {taste_ctx.intent_key} ({_namespace(store)})")


@cli.command("promote")
def promote(ctx: typer.Context) -> None:
    """Merge sandbox learning into the live store."""
    if not _store(ctx).promote_sandbox_to_live():
        typer.echo("❌ Nothing promoted: no readable sandbox data, or the live write failed.")
        raise typer.Exit(code=int(ExitCode.USER_ERROR))
    typer.echo("✅ Sandbox promoted to live")
    logger.info("✅ irscope-taste promote")


@cli.command("sandbox")
def sandbox_cmd(
    ctx: typer.Context,
    state: Optional[str] = typer.Argument(None, help="on or off; omit to show."),
) -> None:
    """Show or persist the active namespace."""
    store = _store(ctx)
    if state is None:
        typer.echo(f"sandbox: {'on' if store.sandbox_mode else 'off'}")
        return
    enabled = _switch(state)
    store.set_sandbox_mode(enabled, persist=True)
    typer.echo(f"✅ Sandbox {'on' if enabled else 'off'}")


@cli.command("training")
def training(
    ctx: typer.Context,
    state: Optional[str] = typer.Argument(None, help="on or off; omit to show."),
) -> None:
    """Show or set the training-mode flag."""
    store = _store(ctx)
    if state is None:
        typer.echo(f"training: {'on' if store.get_training_mode() else 'off'}")
        return
    enabled = _switch(state)
    store.set_training_mode(enabled)
    typer.echo(f"✅ Training mode {'on' if enabled else 'off'}")


@cli.command("summary")
def summary(ctx: typer.Context) -> None:
    """Counts for the active namespace."""
    store = _store(ctx)
    info = store.get_state_summary()
    typer.echo(f"namespace:        {info['namespace']}")
    typer.echo(f"models:           {info['models']}")
    typer.echo(f"total votes:      {info['total_votes']:.2f}")
    typer.echo(f"complement pairs: {info['complement_pairs']}")
    typer.echo(f"tracked files:    {info['tracked_files']}")
    typer.echo(f"training mode:    {'on' if store.get_training_mode() else 'off'}")


@cli.command("top-winners")
def top_winners(
    ctx: typer.Context,
    speaker: str = typer.Argument(..., help="Speaker prefix."),
    intent: str = typer.Argument(..., help="rhythm, lead or clean."),
    limit: int = typer.Option(5, "--limit", "-n", min=1, help="Maximum files to list."),
    min_decisions: int = typer.Option(
        3, "--min-decisions", min=1, help="Minimum decided votes per file."
    ),
) -> None:
    """List files that tend to win for a speaker and intent."""
    store = _store(ctx)
    # Win records are keyed without mode.
    taste_ctx = _context(speaker, "singleIR", intent)
    winners = get_top_ir_winners(store, taste_ctx, limit=limit, min_decisions=min_decisions)
    if not winners:
        typer.echo(f"(no files with at least {min_decisions} decisions for {taste_ctx.win_key})")
        return
    for w in winners:
        typer.echo(
            f"{w.filename}\t{w.win_rate:.0%}\t{w.wins}W/{w.losses}L\t{w.both_count} both"
        )


if __name__ == "__main__":
    cli()
