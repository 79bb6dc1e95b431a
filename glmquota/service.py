"""Installing and removing the systemd user unit for the daemon."""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from pathlib import Path

from glmquota.config import default_config_path

SERVICE_UNIT = "glm.service"

_UNIT_TEMPLATE = """[Unit]
Description=GLM Activation Daemon
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
ExecStart={exec_path} active --service --config {config_path}
Restart=on-failure
RestartSec=30
StandardOutput=journal
StandardError=journal

[Install]
WantedBy=default.target
"""


class SystemctlError(RuntimeError):
    """A systemctl invocation failed."""


def render_unit(exec_path: str, config_path: str) -> str:
    """The unit file text for the given executable and config file."""
    return _UNIT_TEMPLATE.format(exec_path=exec_path, config_path=config_path)


def systemd_unit_dir() -> Path:
    """The per-user systemd unit directory."""
    return Path.home() / ".config" / "systemd" / "user"


def _executable_path() -> str:
    argv0 = sys.argv[0] if sys.argv else ""
    if not argv0:
        raise OSError("cannot determine executable path")
    found = argv0 if os.sep in argv0 else (shutil.which(argv0) or argv0)
    path = os.path.abspath(found)
    try:
        return str(Path(path).resolve(strict=True))
    except OSError:
        return path


def service_paths(cfg_file: str | None = None) -> tuple[str, str]:
    """The resolved executable path and the config path for the unit."""
    return _executable_path(), default_config_path(cfg_file)


def install_service_unit(
    exec_path: str, config_path: str, unit_dir: str | os.PathLike | None = None
) -> Path:
    """Write the unit file and return its path."""
    directory = Path(unit_dir) if unit_dir is not None else systemd_unit_dir()
    directory.mkdir(mode=0o755, parents=True, exist_ok=True)
    path = directory / SERVICE_UNIT
    path.write_text(render_unit(exec_path, config_path), encoding="utf-8")
    return path


def systemctl_user(*args: str) -> None:
    """Run ``systemctl --user`` with ``args``; raise SystemctlError on failure."""
    joined = " ".join(args)
    try:
        result = subprocess.run(
            ["systemctl", "--user", *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise SystemctlError(f"systemctl {joined}: {exc}: ") from exc
    if result.returncode != 0:
        output = (result.stdout or "").strip()
        raise SystemctlError(f"systemctl {joined}: exit status {result.returncode}: {output}")


def remove_service_unit(unit_dir: str | os.PathLike | None = None) -> bool:
    """Delete the unit file; True if one was removed, False if none existed."""
    directory = Path(unit_dir) if unit_dir is not None else systemd_unit_dir()
    path = directory / SERVICE_UNIT
    if not path.exists():
        return False
    path.unlink()
    return True