"""CLI - Command line interface for CV Assistant."""

import asyncio
import json
from pathlib import Path
from typing import Iterable, List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from ..config import (
    AppConfig,
    Severity,
    apply_env_overrides,
    has_errors,
    load_config,
    load_raw_config,
    validate_config,
)
from ..core.observability import TurnObserver
from ..core.orchestrator import ConversationOrchestrator
from ..core.project_manager import ActionResult, ProjectManager
from ..providers import GenerationConfig, create_provider
from ..storage.kv import SQLiteKeyValueStore
from ..storage.project_store import ProjectStore

console = Console()


class CVAssistantCompleter(Completer):
    """Command auto-completer for interactive CLI."""

    COMMANDS = [
        "/help",
        "/projects",
        "/new",
        "/switch",
        "/rename",
        "/delete",
        "/history",
        "/revert",
        "/show",
        "/validate",
        "/import",
        "/export",
        "/match",
        "/reset",
        "/config",
        "/quit",
        "/exit",
    ]

    def __init__(self, project_names: Optional[List[str]] = None):
        self.project_names = project_names if project_names is not None else []

    @staticmethod
    def _yield_options(options: Iterable[str], current: str):
        start_position = -len(current)
        current_lower = current.lower()
        for option in options:
            if not current or option.lower().startswith(current_lower):
                yield Completion(option, start_position=start_position)

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor
        if not text.startswith("/"):
            return

        parts = text.split()
        if text.endswith(" "):
            parts.append("")
        if not parts:
            return

        if len(parts) == 1:
            yield from self._yield_options(self.COMMANDS, parts[0])
            return

        command = parts[0].lower()
        if command in {"/switch", "/delete"} and len(parts) == 2:
            yield from self._yield_options(self.project_names, parts[-1])


def print_banner():
    """Print welcome banner."""
    banner = """
╔═══════════════════════════════════════════════════════════╗
║                    📄 CV Assistant                        ║
║         Conversational resume editing with history        ║
╠═══════════════════════════════════════════════════════════╣
║  Quick Commands:                                          ║
║    /help     - Show all commands                          ║
║    /projects - List resume projects                       ║
║    /history  - Show versions of the active project        ║
║    /quit     - Exit                                       ║
╚═══════════════════════════════════════════════════════════╝
"""
    console.print(banner, style="cyan")


def print_help():
    """Print help message."""
    help_text = """
## Available Commands

| Command | Description |
|---------|-------------|
| `/help` | Show this help message |
| `/projects` | List projects (`*` marks the active one) |
| `/new <name>` | Create a project and switch to it |
| `/switch <number or name>` | Switch the active project |
| `/rename <new name>` | Rename the active project |
| `/delete <number or name>` | Delete a project and all of its data |
| `/history` | List versions of the active project, newest first |
| `/revert <number or timestamp>` | Make an earlier version current |
| `/show` | Print the current resume JSON |
| `/validate` | Validate the resume and check storage integrity |
| `/import <file.json>` | Replace the resume with the contents of a JSON file |
| `/export [file.json]` | Write the resume JSON to a file (or print it) |
| `/match <job description>` | Compare the resume with a job description |
| `/reset` | Restore the template and clear chat and history |
| `/config` | Show current configuration |
| `/quit` or `/exit` | Exit |

Anything that does not start with `/` is sent to the assistant as a change request.

## Example Prompts

- "Change my phone number to 555-1234"
- "Add Go to my languages"
- "Rewrite the first responsibility of my latest role with a stronger action verb"
"""
    console.print(Markdown(help_text))


def print_result(result: ActionResult, title: str = "🤖 Assistant", markdown: bool = False) -> None:
    body = result.to_message()
    renderable = Markdown(body) if markdown else body
    border = "green" if result.success else "red"
    console.print(Panel(renderable, title=title, border_style=border))


def print_config(config: AppConfig) -> None:
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("provider", config.provider)
    table.add_row("model", config.model)
    table.add_row("api_key", "set" if config.api_key else "not set")
    table.add_row("api_base", config.api_base or "-")
    table.add_row("temperature", str(config.temperature))
    table.add_row("max_tokens", str(config.max_tokens))
    table.add_row("db_path", str(config.resolved_db_path))
    table.add_row("chat.timeout_seconds", str(config.chat_timeout_seconds))
    console.print(table)


async def _refresh_names(manager: ProjectManager, completer: Optional[CVAssistantCompleter]) -> None:
    if completer is None:
        return
    completer.project_names[:] = [p.name for p in await manager.store.get_all()]


async def handle_command(
    command: str,
    manager: ProjectManager,
    config: AppConfig,
    completer: Optional[CVAssistantCompleter] = None,
) -> bool:
    """Handle special commands. Returns True if should continue, False to exit."""
    command_text = command.strip()
    parts = command_text.split(maxsplit=1)
    cmd = parts[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else ""

    if cmd in ["/quit", "/exit", "/q"]:
        console.print("\n👋 Goodbye!", style="yellow")
        return False

    elif cmd == "/help":
        print_help()

    elif cmd == "/projects":
        print_result(await manager.list_projects(), title="📁 Projects")

    elif cmd == "/new":
        if not arg:
            console.print("Usage: /new <name>", style="yellow")
            return True
        print_result(await manager.create_project(arg), title="📁 Projects")

    elif cmd == "/switch":
        if not arg:
            console.print("Usage: /switch <number or name>", style="yellow")
            return True
        print_result(await manager.switch_project(arg), title="📁 Projects")

    elif cmd == "/rename":
        if not arg:
            console.print("Usage: /rename <new name>", style="yellow")
            return True
        print_result(await manager.rename_project(arg), title="📁 Projects")

    elif cmd == "/delete":
        if not arg:
            console.print("Usage: /delete <number or name>", style="yellow")
            return True
        print_result(await manager.delete_project(arg), title="📁 Projects")

    elif cmd == "/history":
        print_result(await manager.list_history(), title="🕘 History")

    elif cmd == "/revert":
        if not arg:
            console.print("Usage: /revert <number or timestamp>", style="yellow")
            return True
        print_result(await manager.revert(arg), title="🕘 History")

    elif cmd == "/show":
        result = await manager.show_document()
        if result.success:
            console.print_json(result.output)
        else:
            print_result(result, title="📄 Resume")

    elif cmd == "/validate":
        print_result(await manager.validate_document(), title="✅ Validation", markdown=True)
        print_result(await manager.check_integrity(), title="🔍 Integrity")

    elif cmd == "/import":
        if not arg:
            console.print("Usage: /import <file.json>", style="yellow")
            return True
        path = Path(arg).expanduser()
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            console.print(f"❌ Failed to read {path}: {e}", style="red")
            return True
        print_result(await manager.import_document(raw), title="📄 Resume")

    elif cmd == "/export":
        result = await manager.export_document()
        if not result.success or not arg:
            print_result(result, title="📄 Resume")
            return True
        path = Path(arg).expanduser()
        try:
            path.write_text(json.dumps(result.data["document"], indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            console.print(f"❌ Failed to write {path}: {e}", style="red")
            return True
        console.print(f"✓ Resume exported to {path}", style="green")

    elif cmd == "/match":
        if not arg:
            console.print("Usage: /match <job description>", style="yellow")
            return True
        console.print("\n🤔 Comparing...", style="dim")
        print_result(await manager.match_job(arg), title="🎯 Job match", markdown=True)

    elif cmd == "/reset":
        print_result(await manager.reset(), title="📄 Resume")

    elif cmd == "/config":
        print_config(config)

    else:
        console.print(f"Unknown command: {cmd}. Type /help for available commands.", style="yellow")

    await _refresh_names(manager, completer)
    return True


async def run_turn(manager: ProjectManager, user_input: str) -> None:
    console.print("\n🤔 Thinking...", style="dim")
    result = await manager.chat(user_input)
    console.print()
    print_result(result, markdown=True)
    if result.data.get("applied"):
        console.print(f"✓ Saved version {result.data['timestamp']}", style="green")


async def run_interactive(manager: ProjectManager, config: AppConfig):
    """Run interactive chat loop."""
    history_file = Path.home() / ".cv_assistant_history"
    completer = CVAssistantCompleter()
    await _refresh_names(manager, completer)
    session = PromptSession(
        history=FileHistory(str(history_file)),
        completer=completer,
        complete_while_typing=False,
    )

    print_banner()
    active = await manager.store.get_active()
    if active is not None:
        console.print(f"📁 Active project: {active.name}", style="dim")
    if not config.api_key:
        console.print("⚠️ No API key configured - chat turns will fail until one is set.", style="yellow")

    while True:
        try:
            active = await manager.store.get_active()
            prompt_prefix = f"\n📝 [{active.name}] You: " if active else "\n📝 You: "
            user_input = await asyncio.get_event_loop().run_in_executor(
                None,
                lambda: session.prompt(prompt_prefix),
            )

            user_input = user_input.strip()
            if not user_input:
                continue

            if user_input.startswith("/"):
                should_continue = await handle_command(user_input, manager, config, completer)
                if not should_continue:
                    break
                continue

            await run_turn(manager, user_input)

        except KeyboardInterrupt:
            console.print("\n\n👋 Goodbye!", style="yellow")
            break
        except EOFError:
            console.print("\n👋 Goodbye!", style="yellow")
            break


def build_manager(config: AppConfig, storage, observer: Optional[TurnObserver] = None) -> ProjectManager:
    store = ProjectStore(storage)

    def provider_factory(model: str, credential: str):
        return create_provider(config.provider, credential, model, config.api_base)

    orchestrator = ConversationOrchestrator(
        store,
        provider_factory,
        generation=GenerationConfig(max_tokens=config.max_tokens, temperature=config.temperature),
        observer=observer or TurnObserver(verbose=config.verbose),
        timeout_seconds=config.chat_timeout_seconds,
    )
    return ProjectManager(store, orchestrator, credential=config.api_key, model=config.model)


def main():
    """Main entry point."""
    import argparse

    from dotenv import load_dotenv

    # Load environment variables from .env file
    load_dotenv()

    parser = argparse.ArgumentParser(description="CV Assistant - conversational resume editor")
    parser.add_argument(
        "--config",
        "-c",
        default="config/config.local.yaml",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--db",
        help="Path to the SQLite store (overrides config db_path)",
    )
    parser.add_argument(
        "--prompt",
        "-p",
        help="Send a single chat message to the active project and exit",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Verbose output (log completion requests and commits)",
    )
    args = parser.parse_args()

    raw_config = apply_env_overrides(load_raw_config(args.config))
    issues = validate_config(raw_config)
    if issues:
        for issue in issues:
            icon = "❌" if issue.severity == Severity.ERROR else "⚠️"
            style = "red" if issue.severity == Severity.ERROR else "yellow"
            console.print(f"  {icon} [{issue.field}] {issue.message}", style=style)

        if has_errors(issues):
            console.print(
                "\n💡 Fix the errors above, then try again.\n"
                "   Or copy config/config.yaml → config/config.local.yaml and edit it",
                style="dim",
            )
            return

    config = load_config(args.config)
    if args.db:
        config.db_path = args.db
    if args.verbose:
        config.verbose = True

    async def run():
        async with SQLiteKeyValueStore(config.resolved_db_path) as storage:
            manager = build_manager(config, storage)
            migration = await manager.store.migrate_legacy()
            if migration.project_id:
                console.print("✓ Migrated existing resume data into 'My Resume'", style="green")
            elif not migration.success:
                for message in migration.messages:
                    console.print(f"  ⚠️ {message}", style="yellow")
            await manager.store.ensure_default_project()

            if args.prompt:
                await run_turn(manager, args.prompt)
            else:
                await run_interactive(manager, config)

    asyncio.run(run())


if __name__ == "__main__":
    main()
