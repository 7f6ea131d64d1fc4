"""Command-line bootstrap for the agentstream server and terminal client."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.client import AIClient
from .ai.orchestration.event_log import ChatEventLogger
from .ai.tools import build_default_registry
from .client.events import AssistantTurnCanceled, AssistantTurnFailed, SessionStateChanged
from .client.persistence import ConversationStore, HistoryAdoptionError
from .client.session import AssistantSession, SessionBusyError
from .client.transport import StreamTransport
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_BOOL_WORDS = {
    **dict.fromkeys(("1", "true", "yes", "on", "debug"), True),
    **dict.fromkeys(("0", "false", "no", "off", "disabled"), False),
}
_LOGGER = logging.getLogger(__name__)

_CHAT_HELP = """Commands:
  /retry        re-send the last message
  /save [title] save this conversation
  /load <id>    load a saved conversation
  /list         list saved conversations
  /clear        start a new conversation
  /quit         exit
Press Ctrl-C while the assistant is answering to stop it."""


def configure_logging(debug: bool = False, *, force: bool = False, console: bool = True) -> None:
    """Install the shared log handlers; debug lowers the level to DEBUG."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, console=console, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Path | None = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Resolve settings, falling back to defaults when the file cannot be read."""

    store = store or SettingsStore(path)
    try:
        return store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Using default settings; %s could not be loaded: %s", store.path, exc)
        return Settings()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `agentstream` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    debug = _env_flag("AGENTSTREAM_DEBUG") or args.debug
    # The chat client keeps the terminal for the conversation itself.
    configure_logging(debug, console=args.command != "chat")

    settings_path = args.settings_path or os.environ.get("AGENTSTREAM_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(True, force=True, console=args.command != "chat")

    if args.command == "serve":
        return run_server(settings, host=args.host, port=args.port)
    if args.command == "models":
        return asyncio.run(_list_models(settings))
    if args.command == "save-settings":
        path = settings_store.save(settings)
        print(f"Settings written to {path}")
        return 0
    try:
        return asyncio.run(run_chat(settings, thread_id=args.thread))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
        return 130


def run_server(settings: Settings, *, host: str | None = None, port: int | None = None) -> int:
    """Serve the streaming API with uvicorn until interrupted."""

    import uvicorn

    from .server.app import create_app

    if not settings.api_key:
        _LOGGER.warning("No API key configured; model requests will fail until one is set.")
    model = AIClient(settings.client_settings())
    app = create_app(
        model=model,
        registry=build_default_registry(),
        config=settings.agent_config(),
        tool_defaults=settings.tool_preferences,
        event_logger=ChatEventLogger(enabled=settings.debug_event_logging),
    )

    @app.on_event("shutdown")
    async def _close_model() -> None:
        await model.aclose()

    bind_host = host or settings.server_host
    bind_port = port or settings.server_port
    _LOGGER.info("Serving assistant stream on http://%s:%s (model=%s)", bind_host, bind_port, settings.model)
    uvicorn.run(app, host=bind_host, port=bind_port, log_config=None)
    return 0


class TerminalRenderer:
    """Prints assistant text as it streams in, plus tool and step progress."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._printed = 0
        self._turn_index: int | None = None
        self._status = ""
        self._seen_tools: set[str] = set()

    def attach(self, session: AssistantSession) -> None:
        session.bus.subscribe(SessionStateChanged, self.on_state)
        session.bus.subscribe(AssistantTurnFailed, self.on_failed)
        session.bus.subscribe(AssistantTurnCanceled, self.on_canceled)

    def on_state(self, event: SessionStateChanged) -> None:
        state = event.state
        if state.current_turn_index is not None and state.current_turn_index != self._turn_index:
            self._turn_index = state.current_turn_index
            self._printed = 0
            self._seen_tools.clear()
        turn = state.current_turn
        if turn is None:
            return
        for part in turn.tool_calls:
            if part.tool_call_id not in self._seen_tools:
                self._seen_tools.add(part.tool_call_id)
                self._write(f"\n[tool] {part.tool_name}\n")
        if state.thinking_message and state.thinking_message != self._status and state.is_loading:
            self._status = state.thinking_message
            _LOGGER.debug("Assistant status: %s", self._status)
        text = turn.text
        if len(text) > self._printed:
            self._write(text[self._printed :])
            self._printed = len(text)

    def on_failed(self, event: AssistantTurnFailed) -> None:
        self._write(f"\n[error] {event.error}\n")

    def on_canceled(self, event: AssistantTurnCanceled) -> None:
        self._write("\n[stopped]\n")

    def _write(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()


async def run_chat(settings: Settings, *, thread_id: str | None = None) -> int:
    """Interactive terminal conversation against a running server."""

    transport = StreamTransport(settings.server_url, idle_timeout=settings.stream_idle_timeout)
    store = ConversationStore(settings.conversations_dir)
    session = AssistantSession(
        transport,
        store=store,
        tool_preferences=settings.tool_preferences,
        max_steps=settings.max_steps,
    )
    renderer = TerminalRenderer()
    renderer.attach(session)
    if thread_id:
        try:
            session.load(thread_id)
            print(f"Loaded conversation {thread_id} ({len(session.state.messages)} message(s)).")
        except (FileNotFoundError, HistoryAdoptionError) as exc:
            print(f"Could not load {thread_id}: {exc}", file=sys.stderr)
    print(f"Connected to {transport.url}. Type /help for commands.")

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "\n> ")
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await _run_command(session, store, line):
                    break
                continue
            await _with_interrupt(session, session.send(line))
            if session.state.stop_reason == "max-steps":
                print("\n[stopped after reaching the step limit]")
            print()
    finally:
        await transport.aclose()
    return 0


async def _run_command(session: AssistantSession, store: ConversationStore, line: str) -> bool:
    command, _, argument = line.partition(" ")
    argument = argument.strip()
    if command in {"/quit", "/exit"}:
        return False
    if command == "/help":
        print(_CHAT_HELP)
    elif command == "/retry":
        await _with_interrupt(session, session.retry())
    elif command == "/save":
        path = session.save(title=argument or None)
        print(f"Saved {session.thread_id} to {path}")
    elif command == "/load":
        if not argument:
            print("Usage: /load <thread id>")
            return True
        try:
            session.load(argument)
        except (FileNotFoundError, HistoryAdoptionError, ValueError) as exc:
            print(f"Could not load {argument}: {exc}")
            return True
        print(f"Loaded {argument} ({len(session.state.messages)} message(s)).")
    elif command == "/list":
        threads = store.list_threads()
        if not threads:
            print("No saved conversations.")
        for summary in threads:
            print(f"{summary.thread_id}  {summary.updated_at[:19]}  {summary.title}")
    elif command == "/clear":
        session.clear()
        print(f"Started conversation {session.thread_id}.")
    else:
        print(f"Unknown command {command}; type /help.")
    return True


async def _with_interrupt(session: AssistantSession, operation: Any) -> None:
    """Await ``operation`` with Ctrl-C mapped to :meth:`AssistantSession.stop`."""

    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, session.stop)
        installed = True
    try:
        await operation
    except (ValueError, SessionBusyError) as exc:
        print(f"Cannot send: {exc}")
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _list_models(settings: Settings) -> int:
    client = AIClient(settings.client_settings())
    try:
        models = await client.list_models()
    finally:
        await client.aclose()
    for name in models:
        print(name)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentstream",
        description="Run the assistant streaming server or chat with it from the terminal.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.agentstream/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")

    commands = parser.add_subparsers(dest="command")
    serve = commands.add_parser("serve", help="Serve the streaming API.")
    serve.add_argument("--host", help="Bind address (defaults to server_host).")
    serve.add_argument("--port", type=int, help="Bind port (defaults to server_port).")
    chat = commands.add_parser("chat", help="Chat with a running server (default).")
    chat.add_argument("--thread", metavar="ID", help="Resume a saved conversation.")
    commands.add_parser("models", help="List models offered by the configured endpoint.")
    commands.add_parser("save-settings", help="Persist the effective settings to disk.")
    parser.set_defaults(command="chat", thread=None)
    return parser


def _env_flag(name: str) -> bool:
    return _BOOL_WORDS.get(os.environ.get(name, "").strip().lower(), False)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    """Parse ``KEY=VALUE`` entries into typed values using the ``Settings`` annotations."""

    hints = get_type_hints(Settings)
    overrides: Dict[str, Any] = {}
    for entry in items:
        key, separator, raw = entry.partition("=")
        key = key.strip()
        if not separator:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in hints:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _parse_override(key, hints[key], raw.strip())
    return overrides


def _parse_override(key: str, annotation: Any, raw: str) -> Any:
    members = get_args(annotation)
    if type(None) in members:
        if raw.lower() in {"none", "null"}:
            return None
        target = next(member for member in members if member is not type(None))
    else:
        target = get_origin(annotation) or annotation

    if target is bool:
        if raw.lower() not in _BOOL_WORDS:
            raise ValueError(f"{key} expects a boolean, got '{raw}'.")
        return _BOOL_WORDS[raw.lower()]
    if target in (int, float):
        return target(raw)
    if target is dict:
        try:
            value = json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError(f"{key} expects a JSON object: {exc.msg}") from exc
        if not isinstance(value, dict):
            raise ValueError(f"{key} expects a JSON object.")
        return value
    return raw


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    report = {
        "settings": {**asdict(settings), "api_key": redact_secret(settings.api_key)},
        "meta": {
            "path": str(store.path),
            "secret_backend": store.vault.strategy,
            "cli_overrides": sorted(overrides),
            "environment_variables": sorted(name for name in os.environ if name.startswith("AGENTSTREAM_")),
        },
    }
    out = stream or sys.stdout
    out.write(json.dumps(report, indent=2) + "\n")


if __name__ == "__main__":  # pragma: no cover - module execution
    raise SystemExit(main())
