"""HTTP client for the quota and heartbeat endpoints."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple
from urllib.parse import urlsplit

import requests

from glmquota import logger
from glmquota.config import Config

DEFAULT_BASE_URL = "https://open.bigmodel.cn"
QUOTA_ENDPOINT = "/api/monitor/usage/quota/limit"
HEARTBEAT_ENDPOINT = "/api/coding/paas/v4/chat/completions"
USER_AGENT = "OpenClaw/2026.3.19"
HEARTBEAT_MODEL = "glm-4.7"
HEARTBEAT_PROMPT = (
    "Read HEARTBEAT.md if it exists (workspace context). Follow it strictly. "
    "Do not infer or repeat old tasks from prior chats. If nothing needs attention, "
    "reply HEARTBEAT_OK."
)

VERIFY_RETRIES = 5
VERIFY_INTERVAL = 3.0
RESET_THRESHOLD = timedelta(minutes=10)
REQUEST_TIMEOUT = 10.0

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_RESET_GRACE = 2.0


class ClientError(Exception):
    """A request to the quota service failed."""


@dataclass
class QuotaStatus:
    """Quota usage as percentages, with the next reset time if known."""

    used: int = 0
    limit: int = 0
    remaining: int = 0
    reset_time: datetime | None = None
    raw: str = ""


class _Limit(NamedTuple):
    type: str
    remaining: int
    usage: int
    percentage: float
    next_reset_time: int


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _field(item: dict, key: str, check, default):
    value = item.get(key)
    if value is None:
        return default
    if not check(value):
        raise ValueError(f"limit field {key!r} has the wrong type")
    return value


def _parse_limit(item: Any) -> _Limit:
    if item is None:
        return _Limit("", 0, 0, 0.0, 0)
    if not isinstance(item, dict):
        raise ValueError("limit entry is not an object")
    return _Limit(
        type=_field(item, "type", lambda v: isinstance(v, str), ""),
        remaining=_field(item, "remaining", _is_int, 0),
        usage=_field(item, "usage", _is_int, 0),
        percentage=_field(
            item, "percentage", lambda v: _is_int(v) or isinstance(v, float), 0.0
        ),
        next_reset_time=_field(item, "nextResetTime", _is_int, 0),
    )


def _decode_limits(text: str) -> list[_Limit]:
    doc = json.loads(text)
    if doc is None:
        return []
    if not isinstance(doc, dict):
        raise ValueError("response is not an object")
    if doc.get("code") is not None and not _is_int(doc["code"]):
        raise ValueError("code is not an integer")
    if doc.get("msg") is not None and not isinstance(doc["msg"], str):
        raise ValueError("msg is not a string")
    data = doc.get("data")
    if data is None:
        return []
    if not isinstance(data, dict):
        raise ValueError("data is not an object")
    limits = data.get("limits")
    if limits is None:
        return []
    if not isinstance(limits, list):
        raise ValueError("limits is not a list")
    return [_parse_limit(item) for item in limits]


def _reset_from_millis(millis: int) -> datetime | None:
    return _EPOCH + timedelta(milliseconds=millis) if millis > 0 else None


def parse_quota_response(raw: str | bytes) -> QuotaStatus:
    """Interpret a quota response body.

    Token limits take precedence over time limits. A body that cannot be
    decoded yields a status holding only the raw text.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        limits = _decode_limits(text)
    except ValueError:
        return QuotaStatus(raw=text)

    used, remaining, reset_time = 0, 100, None
    tokens = next((lim for lim in limits if lim.type == "TOKENS_LIMIT"), None)
    if tokens is not None:
        used = int(tokens.percentage)
        remaining = 100 - used
        reset_time = _reset_from_millis(tokens.next_reset_time)
    else:
        timed = next((lim for lim in limits if lim.type == "TIME_LIMIT"), None)
        if timed is not None:
            remaining = timed.remaining
            used = 100 - remaining
            reset_time = _reset_from_millis(timed.next_reset_time)

    return QuotaStatus(used=used, limit=100, remaining=remaining, reset_time=reset_time, raw=text)


def new_session(proxy: str = "") -> requests.Session:
    """A session that routes through ``proxy`` when it is a parsable URL."""
    session = requests.Session()
    if proxy:
        try:
            urlsplit(proxy)
        except ValueError:
            return session
        session.proxies = {"http": proxy, "https": proxy}
    return session


def format_time_until(target: datetime, now: datetime | None = None) -> str:
    """Human-readable time left until ``target``, or "Passed"."""
    now = now or datetime.now(timezone.utc)
    seconds = (target - now).total_seconds()
    if seconds < 0:
        return "Passed"
    hours = int(seconds // 3600)
    minutes = int(seconds // 60) % 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return "0m"


def _clock(when: datetime) -> str:
    return when.astimezone().strftime("%H:%M:%S")


class Client:
    """Talks to the quota and heartbeat endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        proxy: str = "",
        debug: bool = False,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url or DEFAULT_BASE_URL
        self.debug = debug
        self._session = new_session(proxy)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "User-Agent": USER_AGENT,
            "Connection": "keep-alive",
            "Accept": "application/json",
        }

    def get_quota(self) -> QuotaStatus:
        """Fetch the current quota status."""
        try:
            resp = self._session.get(
                self.base_url + QUOTA_ENDPOINT, headers=self._headers(), timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as exc:
            raise ClientError(str(exc)) from exc
        if resp.status_code != 200:
            raise ClientError(f"quota failed: {resp.status_code}")
        return parse_quota_response(resp.content)

    def send_heartbeat(self) -> None:
        """Send a minimal chat completion that starts a quota cycle."""
        url = self.base_url + HEARTBEAT_ENDPOINT
        payload = {
            "type": "heartbeat",
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "model": HEARTBEAT_MODEL,
            "messages": [{"role": "user", "content": HEARTBEAT_PROMPT}],
            "max_tokens": 5,
        }
        logger.debug(f"Sending heartbeat to {url}")
        try:
            resp = self._session.post(
                url, headers=self._headers(), json=payload, timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as exc:
            raise ClientError(str(exc)) from exc
        if resp.status_code != 200:
            logger.debug(f"Heartbeat failed with status {resp.status_code}: {resp.text}")
            raise ClientError(f"status {resp.status_code}: {resp.text}")

    @staticmethod
    def _imminent_reset(quota: QuotaStatus) -> timedelta | None:
        if quota.reset_time is None:
            return None
        until = quota.reset_time - datetime.now(timezone.utc)
        if timedelta(0) < until < RESET_THRESHOLD:
            return until
        return None

    def _verify(self, quota: QuotaStatus) -> QuotaStatus:
        for attempt in range(1, VERIFY_RETRIES + 1):
            time.sleep(VERIFY_INTERVAL)
            try:
                fresh = self.get_quota()
            except ClientError as exc:
                logger.debug(f"Verify attempt {attempt}: quota error: {exc}")
                continue
            if fresh.remaining < 100:
                return fresh
            logger.debug(f"Verify attempt {attempt}: still 100% remaining, retrying...")
        logger.debug(
            f"Heartbeat sent but verification inconclusive after {VERIFY_RETRIES} attempts"
        )
        return quota

    def activate(self, force: bool = False, service_mode: bool = False) -> QuotaStatus:
        """Send a heartbeat when the quota is fresh and confirm it took effect.

        In service mode an imminent reset is waited out first, and a new
        cycle that is about to reset is retried after it resets.
        """
        while True:
            try:
                quota = self.get_quota()
            except ClientError as exc:
                raise ClientError(f"get quota: {exc}") from exc

            if not force and quota.remaining < 100:
                return quota

            if service_mode:
                until = self._imminent_reset(quota)
                if until is not None:
                    logger.info(f"Reset in {until}, sleeping until {_clock(quota.reset_time)}")
                    time.sleep(until.total_seconds() + _RESET_GRACE)
                    try:
                        quota = self.get_quota()
                    except ClientError as exc:
                        raise ClientError(f"get quota after sleep: {exc}") from exc

            self.send_heartbeat()
            quota = self._verify(quota)

            if service_mode:
                until = self._imminent_reset(quota)
                if until is not None:
                    logger.info(f"New cycle reset in {until}, sleeping and retrying")
                    time.sleep(until.total_seconds() + _RESET_GRACE)
                    force = False
                    continue

            return quota


def client_from_config(config: Config) -> Client:
    """Build a client from the loaded configuration."""
    return Client(
        api_key=config.api_key,
        base_url=config.base_url or DEFAULT_BASE_URL,
        proxy=config.proxy,
    )