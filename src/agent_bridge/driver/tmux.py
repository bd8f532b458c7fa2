"""Driver that runs the agent CLI inside detached tmux sessions."""

from __future__ import annotations

import asyncio
import shlex

from agent_bridge.core.encoder import Action
from agent_bridge.driver.base import AgentDriver, run_command, thread_slug
from agent_bridge.log import get_logger

logger = get_logger(__name__)

TMUX_KEYS = {
    Action.DOWN: "Down",
    Action.TOGGLE: "Space",
    Action.CONFIRM: "Enter",
}


class TmuxDriver(AgentDriver):
    """One tmux session per chat thread; the handle is the tmux session name."""

    def session_name(self, thread_id: str) -> str:
        return f"{self._config.session_prefix}-{thread_slug(thread_id)}"

    async def _tmux(self, *args: str, input_bytes: bytes | None = None, check: bool = True) -> tuple[int, str]:
        return await run_command(self._config.tmux_path, *args, input_bytes=input_bytes, check=check)

    async def _spawn(self, thread_id: str, session_id: str, working_dir: str, resume: bool) -> str:
        name = self.session_name(thread_id)
        if await self.is_alive(name):
            # A surface left over from an earlier run would receive our keystrokes
            await self._tmux("kill-session", "-t", name, check=False)

        script = self.write_launch_script(thread_id, session_id, working_dir, resume)
        await self._tmux(
            "new-session", "-d",
            "-s", name,
            "-x", "200", "-y", "50",
            shlex.quote(str(script)),
        )
        logger.info("tmux_session_started", thread_id=thread_id, handle=name, resume=resume)
        await asyncio.sleep(self._agent.startup_delay)
        return name

    async def open_session(
        self, thread_id: str, session_id: str, working_dir: str, initial_message: str
    ) -> str:
        name = await self._spawn(thread_id, session_id, working_dir, resume=False)
        await self.deliver_text(name, initial_message)
        return name

    async def resume_session(self, thread_id: str, session_id: str, working_dir: str) -> str:
        return await self._spawn(thread_id, session_id, working_dir, resume=True)

    async def is_alive(self, handle: str) -> bool:
        returncode, _ = await self._tmux("has-session", "-t", handle, check=False)
        return returncode == 0

    async def deliver_text(self, handle: str, text: str) -> None:
        """Paste the text as one bracketed paste so newlines do not submit early."""
        buffer_name = f"{handle}-input"
        await self._tmux("load-buffer", "-b", buffer_name, "-", input_bytes=text.encode("utf-8"))
        await self._tmux("paste-buffer", "-p", "-d", "-b", buffer_name, "-t", handle)
        await asyncio.sleep(self._config.key_delay)
        await self._tmux("send-keys", "-t", handle, "Enter")
        logger.info("tmux_text_delivered", handle=handle, length=len(text))

    async def deliver_actions(self, handle: str, actions: list[Action]) -> None:
        for action in actions:
            await self._tmux("send-keys", "-t", handle, TMUX_KEYS[action])
            await asyncio.sleep(self._config.key_delay)
        logger.info("tmux_actions_delivered", handle=handle, count=len(actions))
