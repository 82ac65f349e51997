"""
DOCFLOW MAIN - Entry Point and CLI

Commands:
    discover         - Run a discovery conversation and print the summary
    session show     - Print recent turns of a stored session
    session delete   - Delete a stored session
    env              - Show the resolved configuration (never prints keys)

Usage:
    # Fresh conversation, seeded with an idea
    docflow discover --idea "Habit tracker for remote teams"

    # Resume a stored session
    docflow discover --resume conv-1a2b3c4d

    # Fully offline (static questions + heuristic extraction)
    docflow discover --dry-run --max-turns 5

    # Inspect and clean up
    docflow session show --id conv-1a2b3c4d --limit 20
    docflow session delete --id conv-1a2b3c4d

    # Machine-readable summary
    docflow discover --idea "..." --json
"""
import sys
import argparse
import logging
from pathlib import Path
from typing import Optional, List

import msgspec
from rich.console import Console

# Add the project root to the path for flat-layout imports
sys.path.insert(0, str(Path(__file__).parent))

from agents.discovery_agent import DiscoveryAgent, turns_preview
from agents.human_loop import ConsoleChatUI, ConversationCancelled
from agents.project_data import build_project_data
from infrastructure.config import DocflowConfig, load_config
from infrastructure.context_store import (
    ConvexContextStore,
    StoreConfigurationError,
    StoreError,
    create_context_store,
)
from infrastructure.logger import setup_logging
from infrastructure.session_manager import SessionManager

logger = logging.getLogger(__name__)

EXIT_CANCELLED = 130

console = Console()
err_console = Console(stderr=True)


def _config_from_args(args) -> DocflowConfig:
    return load_config(
        provider=getattr(args, "provider", None),
        model=getattr(args, "model", None),
        max_turns=getattr(args, "max_turns", None),
        dry_run=True if getattr(args, "dry_run", False) else None,
    )


def _sessions(config: DocflowConfig) -> SessionManager:
    return SessionManager(create_context_store(config.store_backend, config.sessions_dir, config.convex_url))


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_discover(args) -> int:
    """Run a discovery conversation."""
    config = _config_from_args(args)
    agent = DiscoveryAgent(config, ConsoleChatUI(console))

    session_id = args.resume or args.session_id
    try:
        run = agent.run(
            idea=args.idea,
            session_id=session_id,
            resume=bool(args.resume),
        )
    finally:
        agent.close()

    project = build_project_data(run.summary, provider=agent.backend.provider, model=agent.backend.model or None)

    if args.json:
        payload = {
            "sessionId": run.session_id,
            "resumed": run.resumed,
            "exchanges": run.result.exchanges,
            "completed": run.result.completed,
            "summary": msgspec.to_builtins(run.summary),
            "project": msgspec.to_builtins(project),
        }
        sys.stdout.write(msgspec.json.format(msgspec.json.encode(payload), indent=2).decode("utf-8") + "\n")
        return 0

    summary = run.summary
    console.print()
    console.rule(f"[bold]Discovery summary[/] ({run.session_id})")
    console.print(f"[bold]Description:[/] {summary.description}")
    for label, values in (
        ("Objectives", summary.objectives),
        ("Target users", summary.target_users),
        ("Features", summary.features),
        ("Constraints", summary.constraints),
    ):
        console.print(f"[bold]{label}:[/] {', '.join(values or []) or '-'}")
    console.print(f"[bold]Stack:[/] {project.stack}")
    if summary.extras:
        for key, value in summary.extras.items():
            console.print(f"  [dim]{key}:[/] {value}")
    if not run.result.completed:
        console.print("[yellow]Turn budget reached before every required field was collected.[/]")
    console.print(f"\nResume with: docflow discover --resume {run.session_id}")
    return 0


def cmd_session_show(args) -> int:
    """Print the last N turns of a session."""
    config = load_config()
    store = create_context_store(config.store_backend, config.sessions_dir, config.convex_url)

    # The remote message log includes streamed chunks; the local turn log does not
    if isinstance(store, ConvexContextStore):
        turns = store.list_messages(args.id)
    else:
        saved = SessionManager(store).load(args.id)
        if saved is None:
            err_console.print(f"[red]Session {args.id} not found[/]")
            return 1
        turns = [msgspec.to_builtins(t) for t in saved.state.turns]

    limit = max(1, args.limit)
    recent = turns_preview(turns, limit)
    console.print(f"\n[cyan]Session {args.id} - Showing last {len(recent)} of {len(turns)} turns[/]\n")
    for t in recent:
        chunk = " [dim]\\[chunk][/]" if t.get("chunk") else ""
        console.print(
            f"[yellow]{t.get('timestamp', '')}[/] [magenta]{t.get('role', 'unknown')}[/]:{chunk} ",
            end="",
        )
        console.print(t.get("content", ""), markup=False, highlight=False)
    return 0


def cmd_session_delete(args) -> int:
    """Delete a stored session."""
    _sessions(load_config()).delete(args.id)
    console.print(f"Deleted session {args.id}")
    return 0


def cmd_env(args) -> int:
    """Show the resolved configuration."""
    config = load_config()
    rows = [
        ("provider", config.provider),
        ("model", config.model or "(provider default)"),
        ("temperature", str(config.temperature)),
        ("dry run", str(config.dry_run)),
        ("api key", "set" if config.api_key else "missing"),
        ("max turns", str(config.max_turns)),
        ("history window", str(config.history_window)),
        ("store", config.store_backend),
        ("sessions dir", config.sessions_dir),
        ("convex url", config.convex_url or "-"),
        ("convex relay", "enabled" if config.use_convex_ai else "disabled"),
        ("web search", "enabled" if config.tavily_api_key else "disabled"),
        ("log dir", config.log_dir or "-"),
    ]
    width = max(len(k) for k, _ in rows)
    for key, value in rows:
        console.print(f"{key.ljust(width)}  {value}", markup=False, highlight=False)
    return 0


# =============================================================================
# PARSER
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docflow",
        description="Docflow - conversational project discovery",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # discover command
    discover_parser = subparsers.add_parser("discover", help="Run a discovery conversation")
    discover_parser.add_argument("--idea", help="Seed idea (becomes the initial description)")
    discover_parser.add_argument("--session-id", help="Session id for a new conversation")
    discover_parser.add_argument("--resume", metavar="ID", help="Resume a stored session")
    discover_parser.add_argument("--max-turns", type=int, help="Maximum question/answer exchanges")
    discover_parser.add_argument("--provider", choices=["openai", "anthropic", "local"], help="AI provider")
    discover_parser.add_argument("--model", help="Model name")
    discover_parser.add_argument("--dry-run", action="store_true", help="Offline mode, no AI calls")
    discover_parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    discover_parser.set_defaults(func=cmd_discover)

    # session commands
    session_parser = subparsers.add_parser("session", help="Inspect stored sessions")
    session_sub = session_parser.add_subparsers(dest="session_command")

    show_parser = session_sub.add_parser("show", help="Print recent turns")
    show_parser.add_argument("--id", required=True, help="Session id")
    show_parser.add_argument("--limit", type=int, default=20, help="Number of turns to show (default 20)")
    show_parser.set_defaults(func=cmd_session_show)

    delete_parser = session_sub.add_parser("delete", help="Delete a session")
    delete_parser.add_argument("--id", required=True, help="Session id")
    delete_parser.set_defaults(func=cmd_session_delete)

    # env command
    env_parser = subparsers.add_parser("env", help="Show resolved configuration")
    env_parser.set_defaults(func=cmd_env)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with subcommands."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 2

    setup_logging("DEBUG" if args.verbose else load_config().log_level)

    try:
        return args.func(args)
    except ConversationCancelled:
        err_console.print("Operation cancelled.")
        return EXIT_CANCELLED
    except StoreConfigurationError as e:
        err_console.print(f"[red]{e}[/]")
        return 1
    except StoreError as e:
        err_console.print(f"[red]Session store error: {e}[/]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
