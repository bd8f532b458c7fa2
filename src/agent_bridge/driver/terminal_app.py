"""Driver that runs the agent CLI in macOS Terminal.app windows via AppleScript."""

from __future__ import annotations

import asyncio

from agent_bridge.core.encoder import Action
from agent_bridge.driver.base import AgentDriver, run_command
from agent_bridge.errors import DriverError
from agent_bridge.log import get_logger

logger = get_logger(__name__)

# System Events statements, one per navigation action
APPLESCRIPT_KEYS = {
    Action.DOWN: "key code 125",
    Action.TOGGLE: 'keystroke " "',
    Action.CONFIRM: "key code 36",
}


def escape_applescript(text: str) -> str:
    """Escape a value for use inside an AppleScript string literal."""
    return text.replace("\\", "\\\\").replace('"', '\\"')


def build_open_window_script(script_path: str) -> str:
    return f"""
tell application "Terminal"
  activate
  do script "{escape_applescript(script_path)}"
  set windowId to id of window 1
  return windowId
end tell
"""


def build_check_window_script(window_id: str) -> str:
    return f"""
tell application "Terminal"
  try
    get window id {window_id}
    return true
  on error
    return false
  end try
end tell
"""


def build_paste_script(window_id: str, text: str, key_delay: float) -> str:
    return f"""set the clipboard to "{escape_applescript(text)}"

tell application "Terminal"
  activate
  set frontmost of window id {window_id} to true
end tell

delay 0.3

tell application "System Events"
  tell process "Terminal"
    keystroke "v" using command down
    delay {key_delay}
    key code 36
  end tell
end tell
"""


def build_keystroke_script(window_id: str, actions: list[Action], key_delay: float) -> str:
    statements = []
    for action in actions:
        statements.append(APPLESCRIPT_KEYS[action])
        statements.append(f"delay {key_delay}")
    body = "\n    ".join(statements)
    return f"""
tell application "Terminal"
  activate
  set frontmost of window id {window_id} to true
end tell

delay 0.3

tell application "System Events"
  tell process "Terminal"
    {body}
  end tell
end tell
"""


class TerminalAppDriver(AgentDriver):
    """One Terminal.app window per chat thread; the handle is the window id."""

    async def _osascript(self, script: str, check: bool = True) -> tuple[int, str]:
        return await run_command("osascript", "-e", script, check=check)

    async def _spawn(self, thread_id: str, session_id: str, working_dir: str, resume: bool) -> str:
        launch = self.write_launch_script(thread_id, session_id, working_dir, resume)
        _, window_id = await self._osascript(build_open_window_script(str(launch)))
        if not window_id.isdigit():
            raise DriverError(f"Terminal returned an unexpected window id: {window_id!r}")
        logger.info("terminal_window_opened", thread_id=thread_id, handle=window_id, resume=resume)
        await asyncio.sleep(self._agent.startup_delay)
        return window_id

    async def open_session(
        self, thread_id: str, session_id: str, working_dir: str, initial_message: str
    ) -> str:
        window_id = await self._spawn(thread_id, session_id, working_dir, resume=False)
        await self.deliver_text(window_id, initial_message)
        return window_id

    async def resume_session(self, thread_id: str, session_id: str, working_dir: str) -> str:
        return await self._spawn(thread_id, session_id, working_dir, resume=True)

    async def is_alive(self, handle: str) -> bool:
        if not handle.isdigit():
            return False
        returncode, output = await self._osascript(build_check_window_script(handle), check=False)
        return returncode == 0 and output == "true"

    async def deliver_text(self, handle: str, text: str) -> None:
        await self._osascript(build_paste_script(handle, text, self._config.key_delay))
        logger.info("terminal_text_delivered", handle=handle, length=len(text))

    async def deliver_actions(self, handle: str, actions: list[Action]) -> None:
        await self._osascript(build_keystroke_script(handle, actions, self._config.key_delay))
        logger.info("terminal_actions_delivered", handle=handle, count=len(actions))
