from __future__ import annotations

import os
import shutil
import subprocess
import sys


def _notifier_command(title: str, message: str) -> list[str] | None:
    plat = sys.platform
    if plat == "darwin" and shutil.which("terminal-notifier"):
        return ["terminal-notifier", "-title", title, "-message", message]
    if shutil.which("notify-send"):
        return ["notify-send", title, message]
    return None


def notify(title: str, message: str) -> bool:
    """
    Best-effort desktop notification; returns whether one was dispatched.
    Set LISTKEEPER_DISABLE_NOTIFICATIONS on headless hosts.
    """
    if os.environ.get("LISTKEEPER_DISABLE_NOTIFICATIONS"):
        return False

    cmd = _notifier_command(title, message)
    if cmd is None:
        return False
    subprocess.run(cmd, check=False)
    return True
