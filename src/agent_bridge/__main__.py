"""CLI entry point for agent-bridge."""

from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys
from pathlib import Path

from agent_bridge.app import AgentBridgeApp
from agent_bridge.config import AppConfig, load_config
from agent_bridge.log import setup_logging
from agent_bridge.storage.session_store import JsonSessionStore


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="agent-bridge",
        description="Relay chat threads to persistent coding-agent terminal sessions",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("start", "Start the bridge"),
        ("config-check", "Validate configuration"),
        ("sessions", "List thread -> session mappings"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
        sub.add_argument("-e", "--env", default=".env", help="Path to .env file")

    args = parser.parse_args()

    if args.command is None:
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "sessions":
        _list_sessions(args.config, args.env)
    elif args.command == "start":
        _run(args.config, args.env)


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load_or_exit(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Bots configured: {len(config.bots)}")
    for bot in config.bots:
        chats = ", ".join(bot.allowed_chat_ids) or "(all chats)"
        print(f"    - {bot.id} ({bot.platform}) chats: {chats}")
    print(f"  Agent CLI: {config.agent.cli_path} in {config.agent.working_dir}")
    print(f"  Driver: {config.driver.backend}")
    print(f"  Timeout: {config.agent.timeout:g}s (poll every {config.agent.poll_interval:g}s)")
    print(f"  Sessions: {config.storage.sessions_path}")


def _list_sessions(config_path: str, env_path: str) -> None:
    """Print stored sessions, most recently used first."""
    config = _load_or_exit(config_path, env_path)
    store = JsonSessionStore(config.storage.sessions_path)
    store.load()
    records = store.all()
    if not records:
        print("No sessions recorded.")
        return
    for record in records:
        print(f"{record.thread_id}")
        print(f"    session : {record.session_id}")
        print(f"    handle  : {record.driver_handle or '(none)'}")
        print(f"    created : {record.created_at.isoformat()}")
        print(f"    last use: {record.last_used_at.isoformat()}")


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def acquire_pid_file(path: Path) -> None:
    """Refuse to start while another instance is alive; replace a stale PID file."""
    if path.exists():
        try:
            old_pid = int(path.read_text(encoding="utf-8").strip())
        except ValueError:
            old_pid = None
        if old_pid is not None and old_pid != os.getpid() and _pid_alive(old_pid):
            print(f"Error: another instance is already running (PID: {old_pid})", file=sys.stderr)
            print(f"Stop it, or delete {path} if that process is not agent-bridge.", file=sys.stderr)
            sys.exit(1)
        path.unlink(missing_ok=True)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(str(os.getpid()), encoding="utf-8")


def release_pid_file(path: Path) -> None:
    try:
        if path.read_text(encoding="utf-8").strip() == str(os.getpid()):
            path.unlink()
    except FileNotFoundError:
        pass


def _run(config_path: str, env_path: str) -> None:
    """Load config and run the bridge until SIGINT/SIGTERM."""
    config = _load_or_exit(config_path, env_path)
    setup_logging(config.log_level, config.log_format)

    pid_file = Path(config.pid_file)
    acquire_pid_file(pid_file)

    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(_signal_handler))

        app = AgentBridgeApp(config)
        await app.start()
        try:
            await stop_event.wait()
        finally:
            await app.stop()

    try:
        asyncio.run(_async_main())
    finally:
        release_pid_file(pid_file)


if __name__ == "__main__":
    main()
