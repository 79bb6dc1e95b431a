"""Command line interface: status, active, install and uninstall."""

from __future__ import annotations

import argparse
import os
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from glmquota import logger, ui
from glmquota.client import Client, ClientError, QuotaStatus, client_from_config, format_time_until
from glmquota.config import Config, ScheduleConfig, default_config_path, init_config, save_config
from glmquota.schedule import ScheduleError, next_activation_time, normalize_time, parse_timezone
from glmquota.service import (
    SERVICE_UNIT,
    SystemctlError,
    install_service_unit,
    remove_service_unit,
    service_paths,
    systemctl_user,
)

ETC_TZ_PATH = Path("/etc/TZ")
RETRY_DELAY = timedelta(minutes=1)
MAX_INSTALL_ARGS = 10
_MISSING_CREDENTIALS_MESSAGE = "no API key configured. Run 'glm login' first"


class _CommandError(Exception):
    """A command failed; the message is shown to the user."""


def detect_timezone() -> str:
    """The local timezone name from TZ, /etc/TZ or the Android system property."""
    tz = os.environ.get("TZ", "")
    if tz:
        return tz
    try:
        tz = ETC_TZ_PATH.read_text(encoding="utf-8").strip()
    except OSError:
        tz = ""
    if tz:
        return tz
    try:
        result = subprocess.run(
            ["getprop", "persist.sys.timezone"],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return ""
    return (result.stdout or "").strip()


def _apply_local_timezone() -> None:
    tz = detect_timezone()
    if not tz or os.environ.get("TZ") == tz:
        return
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return
    os.environ["TZ"] = tz
    if hasattr(time, "tzset"):
        time.tzset()


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def _clock(when: datetime) -> str:
    return when.astimezone().strftime("%H:%M:%S")


def format_quota_status(quota: QuotaStatus, now: datetime | None = None) -> str:
    """One status line: remaining percentage and the reset time."""
    now = _now(now)
    if quota.remaining < 20:
        color = ui.RED
    elif quota.remaining < 50:
        color = ui.YELLOW
    else:
        color = ui.GREEN
    pct = ui.style(f"{quota.remaining}%", color, ui.BOLD)

    reset = ui.dimmed("N/A")
    if quota.reset_time is not None:
        until = format_time_until(quota.reset_time, now)
        at = _clock(quota.reset_time)
        shown = ui.dimmed("passed") if until == "Passed" else until
        reset = f"{shown}, reset at {at}"

    return f"  {pct} ({reset})"


def format_activation_result(quota: QuotaStatus, now: datetime | None = None) -> str:
    """The lines reported after a one-shot activation."""
    now = _now(now)
    if quota.remaining >= 100:
        icon = ui.style(ui.ICON_INFO, ui.BLUE, ui.BOLD)
        msg = f"Quota: {ui.style('100%', ui.GREEN, ui.BOLD)} remaining (may already be fresh)"
    else:
        icon = ui.style(ui.ICON_SUCCESS, ui.GREEN, ui.BOLD)
        pct = ui.style(f"{quota.remaining}%", ui.GREEN, ui.BOLD)
        msg = f"Activated — {pct} remaining"
    lines = [f"{icon} {msg}"]

    if quota.reset_time is not None:
        lines.append(
            f"  Reset at: {ui.style(_clock(quota.reset_time), ui.CYAN, ui.BOLD)} "
            f"({ui.dimmed(format_time_until(quota.reset_time, now))})"
        )
    return "\n".join(lines)


@contextmanager
def _stop_on_signals() -> Iterator[threading.Event]:
    stop = threading.Event()

    def handler(signum, frame):
        stop.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, handler)
    try:
        yield stop
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old if old is not None else signal.SIG_DFL)


def run_daemon(client: Client, config: Config, force: bool = False) -> None:
    """Activate, sleep until the next run, repeat until SIGINT or SIGTERM."""
    schedule = config.schedule
    with _stop_on_signals() as stop:
        auto_word = str(schedule.auto).lower()
        manual_word = str(not schedule.is_empty()).lower()
        logger.info(f"Daemon started (auto={auto_word} manual={manual_word})")
        while True:
            logger.info("Activating...")
            try:
                quota = client.activate(force, True)
            except ClientError as exc:
                logger.error(f"Activation failed: {exc}")
                if stop.wait(RETRY_DELAY.total_seconds()):
                    logger.info("Received signal, shutting down")
                    return
                continue

            logger.info(f"Activated — {quota.remaining}% remaining")
            try:
                fresh = client.get_quota()
            except ClientError:
                fresh = None
            if fresh is not None:
                quota = fresh

            logger.info(f"Activated — {quota.remaining}% remaining")
            if quota.reset_time is not None:
                logger.info(
                    f"Reset at: {_clock(quota.reset_time)} ({format_time_until(quota.reset_time)})"
                )

            try:
                next_run = next_activation_time(quota, schedule)
            except ScheduleError as exc:
                logger.error(f"Calculate next run: {exc}")
                raise

            wait = max(0.0, (next_run - datetime.now(timezone.utc)).total_seconds())
            logger.info(
                f"Next activation at {next_run.astimezone().strftime('%Y-%m-%d %H:%M:%S')} "
                f"(sleeping {format_time_until(next_run)})"
            )
            if stop.wait(wait):
                logger.info("Received signal, shutting down")
                return


def _require_credentials(config: Config) -> None:
    if not config.api_key:
        raise _CommandError(_MISSING_CREDENTIALS_MESSAGE)


def _cmd_status(args: argparse.Namespace, config: Config) -> None:
    _require_credentials(config)
    client = client_from_config(config)
    try:
        quota = client.get_quota()
    except ClientError as exc:
        ui.error(f"Failed to get quota: {exc}")
        raise
    print(format_quota_status(quota))


def _cmd_active(args: argparse.Namespace, config: Config) -> None:
    _require_credentials(config)
    client = client_from_config(config)
    client.debug = args.client_debug
    if args.service:
        run_daemon(client, config, args.force)
        return
    try:
        quota = client.activate(args.force, False)
    except ClientError as exc:
        ui.error(f"Activation failed: {exc}")
        raise
    print(format_activation_result(quota))


def _save(config: Config, cfg_file: str | None) -> None:
    try:
        save_config(config, default_config_path(cfg_file))
    except OSError as exc:
        raise _CommandError(f"save config: {exc}") from exc


def _install_unit(cfg_file: str | None) -> None:
    exec_path, config_path = service_paths(cfg_file)
    install_service_unit(exec_path, config_path)
    systemctl_user("daemon-reload")
    systemctl_user("enable", "--now", SERVICE_UNIT)


def _install_auto(config: Config, cfg_file: str | None) -> None:
    config.schedule = ScheduleConfig(auto=True)
    _save(config, cfg_file)
    _install_unit(cfg_file)
    ui.success("Installed auto-schedule service")
    print(f"  Mode: {ui.accent('auto (self-driven daemon)')}")
    print(f"  Unit: {ui.accent(SERVICE_UNIT)}")


def _install_manual(config: Config, cfg_file: str | None, zone: str, entries: list[str]) -> None:
    try:
        parse_timezone(zone)
    except ScheduleError as exc:
        raise _CommandError(f'invalid timezone "{zone}": {exc}') from exc

    times = []
    for entry in entries:
        try:
            times.append(normalize_time(entry))
        except ScheduleError as exc:
            raise _CommandError(f'invalid time "{entry}": {exc}') from exc
    times.sort()

    config.schedule = ScheduleConfig(timezone=zone, times=times)
    _save(config, cfg_file)
    _install_unit(cfg_file)
    ui.success("Installed scheduled service")
    print(f"  Timezone: {ui.accent(zone)}")
    print(f"  Times:    {ui.accent(', '.join(times))}")
    print(f"  Unit:     {ui.accent(SERVICE_UNIT)}")


def _cmd_install(args: argparse.Namespace, config: Config) -> None:
    if len(args.args) > MAX_INSTALL_ARGS:
        raise _CommandError(
            f"accepts at most {MAX_INSTALL_ARGS} arg(s), received {len(args.args)}"
        )
    if args.auto:
        _install_auto(config, args.config)
        return
    if len(args.args) < 2:
        raise _CommandError(
            "manual mode requires <timezone> <time> [time...], or use --auto"
        )
    _install_manual(config, args.config, args.args[0], args.args[1:])


def _cmd_uninstall(args: argparse.Namespace, config: Config) -> None:
    try:
        systemctl_user("disable", "--now", SERVICE_UNIT)
    except SystemctlError as exc:
        if "not loaded" not in str(exc):
            ui.warn(f"Stop service: {exc}")

    removed = 0
    try:
        if remove_service_unit():
            removed += 1
    except OSError as exc:
        ui.warn(f"Remove {SERVICE_UNIT}: {exc}")

    if removed:
        try:
            systemctl_user("daemon-reload")
        except SystemctlError as exc:
            ui.warn(f"Daemon reload: {exc}")

    config.schedule = ScheduleConfig()
    try:
        save_config(config, default_config_path(args.config))
    except OSError as exc:
        ui.warn(f"Save config: {exc}")

    ui.success(f"Uninstalled ({removed} unit(s) removed)")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="glm",
        description="glm manages GLM quota activation with heartbeat and systemd scheduling.",
    )
    parser.add_argument(
        "--config", default=None,
        help="config file (default $HOME/.config/glm/config.yaml)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    active = sub.add_parser(
        "active",
        help="Send heartbeat to activate GLM quota",
        description=(
            "Send heartbeat to activate GLM quota. Verifies activation by polling quota "
            "after heartbeat. Use --force to activate even when quota is active. With "
            "--service, runs as a daemon: activate, sleep until next run, repeat."
        ),
    )
    active.add_argument("-f", "--force", action="store_true",
                        help="Force activation even if quota is active")
    active.add_argument("--service", action="store_true",
                        help="Daemon mode: activate, sleep, repeat")
    active.add_argument("--debug", dest="client_debug", action="store_true",
                        help="Show raw API responses")
    active.set_defaults(handler=_cmd_active)

    install = sub.add_parser(
        "install",
        help="Install systemd service for scheduled activation",
        description=(
            "Install systemd user service for GLM quota activation. Use --auto to follow "
            "the quota reset time, or pass a timezone (+8, UTC+8, Asia/Shanghai) and "
            "times (H, H:M or H:M:S)."
        ),
    )
    install.add_argument("args", nargs="*", metavar="timezone/time")
    install.add_argument("--auto", action="store_true",
                         help="Auto-schedule: calculate next run from quota reset time")
    install.set_defaults(handler=_cmd_install)

    status = sub.add_parser("status", help="Show GLM quota status")
    status.set_defaults(handler=_cmd_status)

    uninstall = sub.add_parser(
        "uninstall",
        help="Uninstall systemd service",
        description="Stop, disable, and remove the systemd user service. "
                    "Clears the schedule from config.",
    )
    uninstall.set_defaults(handler=_cmd_uninstall)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; returns the process exit status."""
    _apply_local_timezone()
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    config = init_config(args.config)
    logger.set_debug_mode(args.debug)
    try:
        args.handler(args, config)
    except (_CommandError, ClientError, ScheduleError, SystemctlError, OSError, ValueError) as exc:
        sys.stderr.write(f"{ui.RED}{ui.ICON_ERROR} {exc}{ui.RESET}\n")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())