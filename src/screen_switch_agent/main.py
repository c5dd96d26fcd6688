"""
Screen Switch Agent entrypoint.

CLI:
  screen-switch-agent run                 -> run agent (service mode, SIGINT/SIGTERM to stop)
  screen-switch-agent console             -> interactive start/stop/status/quit on stdin
  screen-switch-agent install-service     -> install + enable systemd service (sudo)
  screen-switch-agent uninstall-service   -> disable + remove systemd service (sudo)
  screen-switch-agent service-status      -> print whether the service is enabled
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version as pkg_version
from typing import Optional, TextIO

from screen_switch_agent.core.log_config import configure_logging

logger = logging.getLogger(__name__)


def get_version_string() -> str:
    try:
        return pkg_version("screen-switch-agent")
    except PackageNotFoundError:
        return "0.0.0+dev"


@dataclass
class Runtime:
    shutdown: threading.Event
    host: Optional[object] = None


def _install_signal_handlers(rt: Runtime) -> None:
    def _handler(signum: int, frame) -> None:  # frame is unused, keep signature
        logger.info("Received signal %s; requesting shutdown", signum)
        rt.shutdown.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _build_host():
    """
    Load settings and build the host controller.
    Returns None (after logging) if startup settings are invalid.
    """
    # Lazy imports keep install-service isolated from runtime env/config.
    from screen_switch_agent.actuator import default_actuator
    from screen_switch_agent.config import ConfigError, load_settings
    from screen_switch_agent.host import HostController

    try:
        settings = load_settings()
    except ConfigError as exc:
        logger.error("Invalid settings: %s", exc)
        return None

    logger.info("============================================================")
    logger.info("Screen Switch Agent")
    logger.info("Version: %s", get_version_string())
    logger.info("Control topic: %s", settings.topics.control)
    logger.info("Payload mode: %s", settings.payload_mode.value)
    logger.info(
        "Backoff: %s (max retries %d)", settings.backoff.mode.value, settings.backoff.max_retries
    )
    logger.info("============================================================")

    return HostController(settings, default_actuator())


def _setup_logging() -> None:
    from screen_switch_agent.paths import ensure_dirs, get_paths

    paths = get_paths()
    try:
        ensure_dirs(paths)
    except OSError as exc:
        configure_logging()
        logger.warning("Cannot create %s (%s); logging to console only", paths.base_dir, exc)
        return
    configure_logging(paths.log_path)


def run_agent() -> int:
    """
    Service mode: start the agent, block until SIGINT/SIGTERM.
    Returns process exit code.
    """
    _setup_logging()
    host = _build_host()
    if host is None:
        return 1

    rt = Runtime(shutdown=threading.Event(), host=host)
    _install_signal_handlers(rt)

    host.launch()
    host.start()

    logger.info("Agent running (shutdown via SIGINT/SIGTERM)")
    try:
        while not rt.shutdown.is_set() and host.is_alive():
            host.drain_status(timeout=0.5)
    finally:
        _shutdown(rt)

    return 0


def _shutdown(rt: Runtime) -> None:
    logger.info("Shutting down...")
    if rt.host is not None:
        try:
            rt.host.shutdown()
        except Exception:
            logger.exception("Error stopping supervisor")


CONSOLE_HELP = "commands: start, stop, status, quit"


def run_console(stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> int:
    """Interactive mode: the console plays the part of the tray menu."""
    _setup_logging()
    host = _build_host()
    if host is None:
        return 1

    rt = Runtime(shutdown=threading.Event(), host=host)
    host.launch()
    print(CONSOLE_HELP, file=stdout)
    try:
        for line in stdin:
            cmd = line.strip().lower()
            if cmd == "start":
                host.start()
            elif cmd == "stop":
                host.stop()
            elif cmd == "status":
                host.drain_status()
                print(
                    f"state={host.state.value} running={host.running}",
                    file=stdout,
                )
            elif cmd in ("quit", "exit"):
                break
            elif cmd:
                print(CONSOLE_HELP, file=stdout)
            host.drain_status()
    finally:
        _shutdown(rt)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="screen-switch-agent")
    p.add_argument("--version", action="version", version=get_version_string())

    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("run", help="Run agent (service mode)")

    sub.add_parser("console", help="Run agent with interactive start/stop on stdin")

    sub.add_parser(
        "install-service",
        help="Install and enable systemd service (requires sudo; Linux only)",
    )
    sub.add_parser(
        "uninstall-service",
        help="Disable and remove systemd service (requires sudo; Linux only)",
    )
    sub.add_parser("service-status", help="Show whether the systemd service is enabled")

    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if args.cmd == "install-service":
        from screen_switch_agent.installer import install_service

        install_service()
        return

    if args.cmd == "uninstall-service":
        from screen_switch_agent.installer import uninstall_service

        uninstall_service()
        return

    if args.cmd == "service-status":
        from screen_switch_agent.installer import is_service_enabled

        print("enabled" if is_service_enabled() else "disabled")
        return

    if args.cmd == "run":
        raise SystemExit(run_agent())

    if args.cmd == "console":
        raise SystemExit(run_console())

    raise SystemExit(2)


if __name__ == "__main__":
    main()
