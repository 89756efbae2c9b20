"""Main entry point for the ipuaro CLI.

Commands:
    ipuaro start [path] [--session ID] [--new]   interactive session
    ipuaro init [path] [--force]                 write .ipuaro.yaml
    ipuaro index [path]                          (re)build the project index
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

import yaml

from .agent import CodingAgent
from .clients import OpenAICompatibleClient
from .config import PROJECT_CONFIG_FILE, Settings, get_settings, settings_for_project
from .core import StartSession, UndoChange
from .exceptions import IpuaroError
from .indexer import FileScanner, IndexProject, IndexProjectOptions
from .logging import get_logger, setup_logging
from .storage import FileSessionStorage, FileStorage, project_key
from .tools import CommandSecurity, ToolRegistry, get_default_tools
from .types import IndexProgress

logger = get_logger(__name__)

HELP_TEXT = """Commands:
  /undo     revert the last applied edit
  /status   show session statistics
  /clear    clear the conversation history
  /index    rebuild the project index
  /help     show this help
  /exit     quit"""


def open_storage(settings: Settings, project_root: Path) -> tuple[FileStorage, FileSessionStorage]:
    data_dir = Path(settings.data_dir).expanduser()
    storage = FileStorage(data_dir / "projects" / project_key(project_root))
    sessions = FileSessionStorage(data_dir / "sessions", max_undo_entries=settings.max_undo_entries)
    return storage, sessions


def _print_progress(progress: IndexProgress) -> None:
    if progress.phase == "parsing" and progress.total:
        print(f"\r[{progress.phase}] {progress.current}/{progress.total}", end="", flush=True)
    else:
        print(f"\r[{progress.phase}] {progress.current_file}".ljust(60), end="", flush=True)


async def run_index(project_root: Path, settings: Settings, storage: FileStorage) -> None:
    indexer = IndexProject(storage, scanner=FileScanner(settings.ignore_patterns))
    stats = await indexer.execute(
        project_root,
        IndexProjectOptions(on_progress=_print_progress),
    )
    print(
        f"\nIndexed {stats.files_scanned} files "
        f"({stats.files_parsed} parsed, {stats.parse_errors} parse errors) "
        f"in {stats.time_ms} ms"
    )


# ==================== commands ====================


def cmd_init(args: argparse.Namespace) -> int:
    project_root = Path(args.path).resolve()
    config_path = project_root / PROJECT_CONFIG_FILE
    if config_path.exists() and not args.force:
        print(f"{config_path} already exists. Use --force to overwrite.")
        return 1

    settings = Settings()
    config = {
        "llm_base_url": settings.llm_base_url,
        "llm_model": settings.llm_model,
        "context_window": settings.context_window,
        "max_tool_iterations": settings.max_tool_iterations,
        "command_timeout": settings.command_timeout,
        "ignore_patterns": [],
        "extra_whitelist": [],
        "extra_blacklist": [],
    }
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f, sort_keys=False)
    print(f"Created {config_path}")
    return 0


async def cmd_index(args: argparse.Namespace) -> int:
    project_root = Path(args.path).resolve()
    settings = settings_for_project(project_root)
    storage, _ = open_storage(settings, project_root)
    await run_index(project_root, settings, storage)
    return 0


async def _ask(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


async def _confirm(message: str) -> bool:
    try:
        answer = await _ask(f"\n[Confirm]: {message} (y/n): ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _print_status(agent: CodingAgent) -> None:
    session = agent.session
    stats = session.stats
    print(f"Session:   {session.id}")
    print(f"Messages:  {len(session.history)}")
    print(f"Tokens:    {stats.total_tokens} ({session.context.token_usage:.0%} of context)")
    print(f"Tool calls: {stats.tool_calls}")
    print(f"Edits:     {stats.edits_applied} applied, {stats.edits_rejected} rejected")
    print(f"Undo:      {session.undo_depth} entries")


async def run_repl(agent: CodingAgent, undo: UndoChange, reindex) -> None:
    """Run the interactive REPL loop."""
    print(f"ipuaro session {agent.session.id}. Type /help for commands.")
    print("-" * 50)
    loop = asyncio.get_running_loop()

    while True:
        try:
            user_input = (await _ask("You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if not user_input:
            continue
        if user_input in ("/exit", "/quit"):
            print("Goodbye!")
            break
        if user_input == "/help":
            print(HELP_TEXT)
            continue
        if user_input == "/status":
            _print_status(agent)
            continue
        if user_input == "/clear":
            agent.clear_history()
            print("History cleared.")
            continue
        if user_input == "/index":
            await reindex()
            continue
        if user_input == "/undo":
            result = await undo.execute(agent.session)
            if result.success:
                print(f"Reverted: {result.entry.description or result.entry.file_path}")
            else:
                print(f"Undo failed: {result.error}")
            continue

        loop.add_signal_handler(signal.SIGINT, agent.interrupt)
        try:
            result = await agent.run_turn(user_input)
        finally:
            loop.remove_signal_handler(signal.SIGINT)

        if result.interrupted:
            print("\n[Interrupted]")
        elif result.cancelled:
            print("Operation cancelled.")
        elif result.error is not None:
            print(result.error.to_display_string())
        else:
            print(f"Agent: {result.content}")


async def cmd_start(args: argparse.Namespace) -> int:
    project_root = Path(args.path).resolve()
    settings = settings_for_project(project_root)
    storage, sessions = open_storage(settings, project_root)

    if await storage.get_project_config("last_indexed") is None:
        print("Project not indexed yet, indexing...")
        await run_index(project_root, settings, storage)

    client = OpenAICompatibleClient(
        base_url=settings.llm_base_url,
        model=settings.llm_model,
        api_key=settings.llm_api_key,
        timeout=settings.llm_timeout,
    )
    if not await client.is_available():
        print(f"Warning: LLM server at {settings.llm_base_url} is not reachable.")

    security = CommandSecurity(settings.extra_blacklist, settings.extra_whitelist)
    registry = ToolRegistry(get_default_tools(security, settings.command_timeout))

    started = await StartSession(
        sessions,
        max_undo_entries=settings.max_undo_entries,
        max_input_history=settings.max_input_history,
    ).execute(project_root.name, session_id=args.session, force_new=args.new)
    if not started.is_new:
        print(f"Resumed session with {len(started.session.history)} messages.")

    agent = CodingAgent(
        client,
        registry,
        started.session,
        storage,
        project_root,
        session_storage=sessions,
        settings=settings,
        on_confirm=_confirm,
        on_progress=lambda message: print(f"  {message}"),
    )
    undo = UndoChange(sessions, storage, project_root)
    await run_repl(agent, undo, lambda: run_index(project_root, settings, storage))
    return 0


def main():
    """Main entry point for the ipuaro CLI."""
    parser = argparse.ArgumentParser(prog="ipuaro", description="Local coding agent")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (also settable via IPUARO_LOG_LEVEL env var)"
    )
    parser.add_argument("--log-file", help="Write logs to this file (also IPUARO_LOG_FILE)")
    subparsers = parser.add_subparsers(dest="command")

    start = subparsers.add_parser("start", help="Start an interactive session")
    start.add_argument("path", nargs="?", default=".", help="Project root (default: .)")
    start.add_argument("--session", help="Resume the session with this id")
    start.add_argument("--new", action="store_true", help="Always start a new session")

    init = subparsers.add_parser("init", help=f"Write a {PROJECT_CONFIG_FILE} template")
    init.add_argument("path", nargs="?", default=".", help="Project root (default: .)")
    init.add_argument("--force", action="store_true", help="Overwrite an existing config")

    index = subparsers.add_parser("index", help="Build the project index")
    index.add_argument("path", nargs="?", default=".", help="Project root (default: .)")

    # bare `ipuaro` starts a session in the current directory
    parser.set_defaults(command="start", path=".", session=None, new=False)
    args = parser.parse_args()

    # setup logging early
    setup_logging(args.log_level, args.log_file or get_settings().log_file)

    try:
        if args.command == "init":
            code = cmd_init(args)
        elif args.command == "index":
            code = asyncio.run(cmd_index(args))
        else:
            code = asyncio.run(cmd_start(args))
    except IpuaroError as e:
        logger.debug("command failed", exc_info=True)
        print(e.to_display_string(), file=sys.stderr)
        code = 1
    except KeyboardInterrupt:
        print("\nGoodbye!")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
