import os
import signal
import subprocess
from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
import responses
import yaml

from glmquota import cli, ui
from glmquota.client import QUOTA_ENDPOINT, ClientError, QuotaStatus
from glmquota.config import Config, ScheduleConfig, load_config
from glmquota.schedule import ScheduleError
from glmquota.service import SERVICE_UNIT

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
BASE_URL = "https://quota.example.com"
NOT_CONFIGURED_MESSAGE = "no API key configured. Run 'glm login' first"


def _write_config(path, **fields):
    data = dict(api_key="placeholder", base_url=BASE_URL)
    data.update(fields)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def _ok_run(*args, **kwargs):
    return subprocess.CompletedProcess(args, 0, stdout="")


# detect_timezone

def test_detect_timezone_prefers_env(monkeypatch):
    monkeypatch.setenv("TZ", "Asia/Shanghai")
    assert cli.detect_timezone() == "Asia/Shanghai"


def test_detect_timezone_reads_etc_tz(monkeypatch, tmp_path):
    monkeypatch.delenv("TZ", raising=False)
    tz_file = tmp_path / "TZ"
    tz_file.write_text("Asia/Tokyo\n", encoding="utf-8")
    monkeypatch.setattr(cli, "ETC_TZ_PATH", tz_file)
    assert cli.detect_timezone() == "Asia/Tokyo"


def test_detect_timezone_uses_getprop(monkeypatch, tmp_path):
    monkeypatch.delenv("TZ", raising=False)
    monkeypatch.setattr(cli, "ETC_TZ_PATH", tmp_path / "missing")
    done = subprocess.CompletedProcess([], 0, stdout="Europe/Berlin\n")
    with mock.patch("subprocess.run", return_value=done) as run:
        assert cli.detect_timezone() == "Europe/Berlin"
    assert run.call_args.args[0] == ["getprop", "persist.sys.timezone"]


def test_detect_timezone_empty_when_nothing_found(monkeypatch, tmp_path):
    monkeypatch.delenv("TZ", raising=False)
    monkeypatch.setattr(cli, "ETC_TZ_PATH", tmp_path / "missing")
    with mock.patch("subprocess.run", side_effect=FileNotFoundError("getprop")):
        assert cli.detect_timezone() == ""


# format_quota_status

@pytest.mark.parametrize(
    "remaining, color",
    [(10, ui.RED), (19, ui.RED), (20, ui.YELLOW), (49, ui.YELLOW), (50, ui.GREEN), (90, ui.GREEN)],
)
def test_format_quota_status_colors(remaining, color):
    line = cli.format_quota_status(QuotaStatus(remaining=remaining, limit=100), NOW)
    assert line.startswith("  " + ui.style(f"{remaining}%", color, ui.BOLD))


def test_format_quota_status_without_reset():
    line = cli.format_quota_status(QuotaStatus(remaining=70, limit=100), NOW)
    assert line.endswith("(" + ui.dimmed("N/A") + ")")


def test_format_quota_status_future_reset():
    reset = NOW + timedelta(hours=2, minutes=5)
    line = cli.format_quota_status(QuotaStatus(remaining=70, reset_time=reset), NOW)
    assert "2h 5m, reset at " in line
    assert reset.astimezone().strftime("%H:%M:%S") in line


def test_format_quota_status_passed_reset():
    reset = NOW - timedelta(hours=1)
    line = cli.format_quota_status(QuotaStatus(remaining=70, reset_time=reset), NOW)
    assert ui.dimmed("passed") + ", reset at " in line


# format_activation_result

def test_activation_result_fresh_quota():
    text = cli.format_activation_result(QuotaStatus(remaining=100, limit=100), NOW)
    assert text.startswith(ui.style(ui.ICON_INFO, ui.BLUE, ui.BOLD))
    assert "may already be fresh" in text
    assert "\n" not in text


def test_activation_result_activated_with_reset():
    reset = NOW + timedelta(hours=5)
    text = cli.format_activation_result(QuotaStatus(remaining=60, reset_time=reset), NOW)
    first, second = text.split("\n")
    assert first.startswith(ui.style(ui.ICON_SUCCESS, ui.GREEN, ui.BOLD))
    assert ui.style("60%", ui.GREEN, ui.BOLD) in first
    assert second.startswith("  Reset at: ")
    assert "5h 0m" in second


# run_daemon

class _StubClient:
    def __init__(self, activate_result=None, activate_error=None, quota=None, kill_in=None):
        self.activate_result = activate_result
        self.activate_error = activate_error
        self.quota = quota
        self.kill_in = kill_in
        self.activate_calls = 0
        self.quota_calls = 0

    def activate(self, force, service_mode):
        self.activate_calls += 1
        if self.kill_in == "activate":
            os.kill(os.getpid(), signal.SIGINT)
        if self.activate_error is not None:
            raise self.activate_error
        return self.activate_result

    def get_quota(self):
        self.quota_calls += 1
        if self.kill_in == "get_quota":
            os.kill(os.getpid(), signal.SIGINT)
        return self.quota


def test_run_daemon_stops_on_signal_after_failure():
    before = signal.getsignal(signal.SIGINT)
    client = _StubClient(activate_error=ClientError("boom"), kill_in="activate")
    config = Config(api_key="placeholder", schedule=ScheduleConfig(auto=True))
    assert cli.run_daemon(client, config, False) is None
    assert client.activate_calls == 1
    assert signal.getsignal(signal.SIGINT) is before


def test_run_daemon_stops_on_signal_while_sleeping():
    reset = datetime.now(timezone.utc) + timedelta(hours=3)
    quota = QuotaStatus(remaining=40, limit=100, reset_time=reset)
    client = _StubClient(activate_result=quota, quota=quota, kill_in="get_quota")
    config = Config(api_key="placeholder", schedule=ScheduleConfig(auto=True))
    assert cli.run_daemon(client, config, True) is None
    assert client.activate_calls == 1
    assert client.quota_calls == 1


def test_run_daemon_raises_on_bad_schedule():
    quota = QuotaStatus(remaining=50, limit=100)
    client = _StubClient(activate_result=quota, quota=quota)
    config = Config(
        api_key="placeholder",
        schedule=ScheduleConfig(timezone="Nowhere/Invalid", times=["05:00:00"]),
    )
    with pytest.raises(ScheduleError):
        cli.run_daemon(client, config, False)


# main

def test_main_status(tmp_path, capsys):
    cfg = _write_config(tmp_path / "config.yaml")
    body = {"data": {"limits": [{"type": "TOKENS_LIMIT", "percentage": 58}]}}
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, BASE_URL + QUOTA_ENDPOINT, json=body)
        assert cli.main(["--config", str(cfg), "status"]) == 0
        assert rsps.calls[0].request.headers["Authorization"] == "Bearer placeholder"
    out = capsys.readouterr().out
    assert ui.style("42%", ui.YELLOW, ui.BOLD) in out


def test_main_status_http_failure(tmp_path, capsys):
    cfg = _write_config(tmp_path / "config.yaml")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, BASE_URL + QUOTA_ENDPOINT, status=500)
        assert cli.main(["--config", str(cfg), "status"]) == 1
    captured = capsys.readouterr()
    assert "Failed to get quota: quota failed: 500" in captured.out
    assert "quota failed: 500" in captured.err


def test_main_status_without_api_key(tmp_path, capsys):
    cfg = tmp_path / "config.yaml"
    assert cli.main(["--config", str(cfg), "status"]) == 1
    assert NOT_CONFIGURED_MESSAGE in capsys.readouterr().err


def test_main_install_auto(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = _write_config(tmp_path / "config.yaml")
    with mock.patch("subprocess.run", side_effect=_ok_run) as run:
        assert cli.main(["--config", str(cfg), "install", "--auto"]) == 0
    assert load_config(cfg).schedule == ScheduleConfig(auto=True)
    unit = tmp_path / ".config" / "systemd" / "user" / SERVICE_UNIT
    assert f"--config {cfg}" in unit.read_text(encoding="utf-8")
    commands = [call.args[0] for call in run.call_args_list]
    assert ["systemctl", "--user", "enable", "--now", SERVICE_UNIT] in commands


def test_main_install_manual_sorts_times(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = _write_config(tmp_path / "config.yaml")
    with mock.patch("subprocess.run", side_effect=_ok_run):
        assert cli.main(["--config", str(cfg), "install", "+8", "15:00", "5"]) == 0
    schedule = load_config(cfg).schedule
    assert schedule.timezone == "+8"
    assert schedule.times == ["05:00:00", "15:00:00"]


def test_main_install_manual_needs_times(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = _write_config(tmp_path / "config.yaml")
    assert cli.main(["--config", str(cfg), "install", "+8"]) == 1
    assert "manual mode requires" in capsys.readouterr().err


def test_main_install_rejects_bad_time(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = _write_config(tmp_path / "config.yaml")
    assert cli.main(["--config", str(cfg), "install", "+8", "25:00"]) == 1
    assert 'invalid time "25:00"' in capsys.readouterr().err
    assert load_config(cfg).schedule == ScheduleConfig()


def test_main_uninstall_removes_unit(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = _write_config(tmp_path / "config.yaml", schedule={"auto": True})
    unit_dir = tmp_path / ".config" / "systemd" / "user"
    unit_dir.mkdir(parents=True)
    (unit_dir / SERVICE_UNIT).write_text("[Unit]\n", encoding="utf-8")
    with mock.patch("subprocess.run", side_effect=_ok_run):
        assert cli.main(["--config", str(cfg), "uninstall"]) == 0
    assert not (unit_dir / SERVICE_UNIT).exists()
    assert load_config(cfg).schedule.is_empty()
    assert "Uninstalled (1 unit(s) removed)" in capsys.readouterr().out