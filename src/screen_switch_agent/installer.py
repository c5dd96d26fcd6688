"""
systemd installer for Screen Switch Agent (start at boot).

Usage:
  sudo screen-switch-agent install-service
  sudo screen-switch-agent uninstall-service
  screen-switch-agent service-status

Contract:
- Idempotent: safe to re-run.
- Writes/updates the systemd unit and enables the service.
- Never touches the env file; broker settings live in /etc/screen-switch/agent.env.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from pathlib import Path
from textwrap import dedent

# =========================
# Contract constants
# =========================
SERVICE_NAME = "screen-switch-agent"

ENV_PATH = Path("/etc/screen-switch/agent.env")
UNIT_PATH = Path("/etc/systemd/system/screen-switch-agent.service")


# =========================
# Helpers
# =========================
def _run(cmd: list[str], check: bool = True) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, check=check, capture_output=not check, text=True)


def _require_root() -> None:
    if os.geteuid() != 0:
        raise SystemExit("This command must be run as root (use sudo).")


def _require_systemd() -> None:
    if shutil.which("systemctl") is None:
        raise SystemExit("systemctl not found. This host does not appear to run systemd.")


def _exec_start() -> str:
    cli = shutil.which(SERVICE_NAME)
    if cli:
        return f"{cli} run"
    return f"{sys.executable} -m screen_switch_agent.main run"


def render_unit(exec_start: str) -> str:
    return dedent(
        f"""\
        [Unit]
        Description=Screen Switch Agent
        After=network-online.target
        Wants=network-online.target

        [Service]
        Type=simple
        EnvironmentFile=-{ENV_PATH}
        ExecStart={exec_start}
        Restart=on-failure
        RestartSec=5

        [Install]
        WantedBy=multi-user.target
        """
    )


def _write_unit_file() -> bool:
    """Write the unit file. Returns False if it was already up to date."""
    unit = render_unit(_exec_start())

    if UNIT_PATH.exists() and UNIT_PATH.read_text(encoding="utf-8") == unit:
        return False

    UNIT_PATH.parent.mkdir(parents=True, exist_ok=True)
    UNIT_PATH.write_text(unit, encoding="utf-8")
    return True


# =========================
# Public API
# =========================
def install_service() -> None:
    """Write the unit, reload systemd, enable and start the service."""
    _require_root()
    _require_systemd()

    _write_unit_file()
    _run(["systemctl", "daemon-reload"])
    _run(["systemctl", "enable", "--now", SERVICE_NAME])

    print(f"Installed and started: {SERVICE_NAME}")
    print(f"Edit config: {ENV_PATH}")
    print(f"Status: systemctl status {SERVICE_NAME} --no-pager")


def uninstall_service() -> None:
    """Stop and disable the service and remove its unit. Safe if not installed."""
    _require_root()
    _require_systemd()

    if UNIT_PATH.exists():
        _run(["systemctl", "disable", "--now", SERVICE_NAME], check=False)
        UNIT_PATH.unlink()
        _run(["systemctl", "daemon-reload"])
        print(f"Removed: {SERVICE_NAME}")
    else:
        print(f"Not installed: {SERVICE_NAME}")


def is_service_enabled() -> bool:
    if shutil.which("systemctl") is None:
        return False
    res = _run(["systemctl", "is-enabled", SERVICE_NAME], check=False)
    return res.returncode == 0
