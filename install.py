#!/usr/bin/env python3
"""Cross-platform install script for agent-bridge.

Usage:
    python install.py          # Production install
    python install.py --dev    # Development install (includes test tools)
"""

import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)


def main() -> None:
    # 1. Check Python version
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )

    print(f"Python {sys.version_info.major}.{sys.version_info.minor} detected. OK.")

    dev = "--dev" in sys.argv
    project_dir = os.path.dirname(os.path.abspath(__file__))
    venv_dir = os.path.join(project_dir, ".venv")
    is_macos = platform.system() == "Darwin"

    pip = os.path.join(venv_dir, "bin", "pip")

    # 2. Check the external tools the bridge drives
    if shutil.which("claude") is None:
        print("Warning: 'claude' CLI not found on PATH. Install it with:")
        print("    npm install -g @anthropic-ai/claude-code")
    if shutil.which("tmux") is None:
        if is_macos:
            print("Note: tmux not found; set driver.backend to 'terminal_app' or run 'brew install tmux'.")
        else:
            print("Warning: tmux not found; the default driver needs it.")

    # 3. Create virtual environment
    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    else:
        print("Virtual environment already exists.")

    # 4. Upgrade pip
    print("Upgrading pip...")
    subprocess.check_call([pip, "install", "--upgrade", "pip"])

    # 5. Install project
    if dev:
        print("Installing agent-bridge in development mode...")
        subprocess.check_call([pip, "install", "-e", ".[dev]"], cwd=project_dir)
    else:
        print("Installing agent-bridge...")
        subprocess.check_call([pip, "install", "."], cwd=project_dir)

    # 6. Create data directory
    os.makedirs(os.path.join(project_dir, "data", "scratch"), exist_ok=True)

    # 7. Copy config files if missing
    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        src_path = os.path.join(project_dir, src)
        dst_path = os.path.join(project_dir, dst)
        if not os.path.exists(dst_path) and os.path.exists(src_path):
            shutil.copy(src_path, dst_path)
            print(f"Created {dst} from {src}")
        elif os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")

    # 8. Print instructions
    print()
    print("=" * 50)
    print("  agent-bridge installation complete!")
    print("=" * 50)
    print()
    print("Next steps:")
    print("  1. Edit config.yaml - configure bots, agent and driver")
    print("  2. Edit .env - set your tokens:")
    print("       TELEGRAM_BOT_TOKEN=...")
    print("       DISCORD_BOT_TOKEN=...")
    print("       CLAUDE_WORKING_DIR=/path/to/project")
    print("  3. Activate the virtual environment:")
    print("       source .venv/bin/activate")
    print("  4. Start the bridge:")
    print("       python -m agent_bridge")
    print("  5. Or check config:")
    print("       python -m agent_bridge config-check")
    print()


if __name__ == "__main__":
    main()
