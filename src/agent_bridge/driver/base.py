"""Agent driver interface: the terminal surface the agent CLI runs in."""

from __future__ import annotations

import asyncio
import hashlib
import os
import shlex
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from agent_bridge.config import AgentConfig, DriverConfig
from agent_bridge.core.encoder import Action
from agent_bridge.errors import DriverError
from agent_bridge.log import get_logger

logger = get_logger(__name__)


def thread_slug(thread_id: str) -> str:
    """Short, filesystem- and tmux-safe name derived from a thread id."""
    return hashlib.sha1(thread_id.encode("utf-8")).hexdigest()[:12]


class AgentDriver(ABC):
    """Opens, resumes and types into the agent's interactive surface.

    Implementations only deliver input; they never interpret the agent's
    output. Failures are raised as DriverError.
    """

    def __init__(self, agent_config: AgentConfig, driver_config: DriverConfig):
        self._agent = agent_config
        self._config = driver_config
        self._scratch_dir = Path(driver_config.scratch_dir)

    @abstractmethod
    async def open_session(
        self, thread_id: str, session_id: str, working_dir: str, initial_message: str
    ) -> str:
        """Start the agent with a fresh session and type the first message. Returns the handle."""
        ...

    @abstractmethod
    async def resume_session(self, thread_id: str, session_id: str, working_dir: str) -> str:
        """Start the agent on a new surface, resuming an existing session. Returns the handle."""
        ...

    @abstractmethod
    async def is_alive(self, handle: str) -> bool:
        ...

    @abstractmethod
    async def deliver_text(self, handle: str, text: str) -> None:
        """Type ``text`` into the prompt and submit it."""
        ...

    @abstractmethod
    async def deliver_actions(self, handle: str, actions: list[Action]) -> None:
        """Replay navigation actions against the agent's question prompt."""
        ...

    async def cleanup(self, thread_id: str) -> None:
        """Remove scratch files written for the thread."""
        slug = thread_slug(thread_id)
        if not self._scratch_dir.exists():
            return
        for path in self._scratch_dir.glob(f"{slug}*"):
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink(missing_ok=True)
        logger.debug("driver_scratch_cleaned", thread_id=thread_id)

    def agent_command(self, session_id: str, resume: bool) -> list[str]:
        """Command line that launches the agent CLI for a session."""
        cmd = [self._agent.cli_path]
        cmd.extend(["--resume", session_id] if resume else ["--session-id", session_id])
        if self._agent.system_prompt:
            cmd.extend(["--append-system-prompt", self._agent.system_prompt])
        cmd.extend(self._agent.extra_args)
        return cmd

    def scratch_path(self, thread_id: str, suffix: str) -> Path:
        self._scratch_dir.mkdir(parents=True, exist_ok=True)
        return self._scratch_dir / f"{thread_slug(thread_id)}{suffix}"

    def write_launch_script(self, thread_id: str, session_id: str, working_dir: str, resume: bool) -> Path:
        """Write an executable shell script that starts the agent in ``working_dir``."""
        script = self.scratch_path(thread_id, "-launch.sh")
        lines = [
            "#!/bin/sh",
            f"export PATH={shlex.quote(os.environ.get('PATH', '/usr/bin:/bin'))}",
            # Without an API key in the environment the CLI uses subscription auth
            "unset ANTHROPIC_API_KEY",
            f"cd {shlex.quote(str(Path(working_dir).expanduser()))} || exit 1",
            f"exec {shlex.join(self.agent_command(session_id, resume))}",
            "",
        ]
        script.write_text("\n".join(lines), encoding="utf-8")
        script.chmod(0o700)
        return script


async def run_command(*cmd: str, input_bytes: bytes | None = None, check: bool = True) -> tuple[int, str]:
    """Run a command and return (returncode, stdout). Raises DriverError on failure when ``check``."""
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if input_bytes is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise DriverError(f"Command not found: {cmd[0]}") from e

    stdout, stderr = await process.communicate(input=input_bytes)
    stdout_text = stdout.decode("utf-8", errors="replace").strip()
    stderr_text = stderr.decode("utf-8", errors="replace").strip()

    if check and process.returncode != 0:
        logger.error("driver_command_failed", command=cmd[0], returncode=process.returncode, stderr=stderr_text)
        raise DriverError(f"{cmd[0]} exited with {process.returncode}: {stderr_text or stdout_text or '(no output)'}")
    return process.returncode or 0, stdout_text
