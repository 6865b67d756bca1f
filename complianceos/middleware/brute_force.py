"""
Login lockout (OWASP A07).

Failed logins are counted twice, once against the caller's IP and once
against the (lower-cased) email they tried:
- 5 failures from one IP within 15 minutes lock that IP for 15 minutes
- 10 failures for one email within an hour lock that email for an hour
- from the 3rd IP failure on, each attempt is delayed 1s, 2s, 4s, capped at 8s
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import NamedTuple, Optional

import structlog

logger = structlog.get_logger(__name__)

DELAY_THRESHOLD = 3
MAX_DELAY_EXPONENT = 3


@dataclass(frozen=True)
class LockoutPolicy:
    max_failures: int
    window_seconds: float
    lockout_seconds: float
    blocked_reason: str


@dataclass
class _FailureLog:
    failures: deque = field(default_factory=deque)
    locked_until: float = 0.0

    def add(self, now: float, window: float) -> int:
        while self.failures and self.failures[0] <= now - window:
            self.failures.popleft()
        self.failures.append(now)
        return len(self.failures)


class LoginCheck(NamedTuple):
    allowed: bool
    reason: str = ""
    retry_after: int = 0


class _Lockout:
    """Failure logs for one dimension (IP or email) under one policy."""

    def __init__(self, name: str, policy: LockoutPolicy):
        self.name = name
        self.policy = policy
        self._logs: dict[str, _FailureLog] = {}

    def blocked(self, key: str, now: float) -> Optional[LoginCheck]:
        log = self._logs.get(key)
        if log is not None and now < log.locked_until:
            return LoginCheck(False, self.policy.blocked_reason, int(log.locked_until - now))
        return None

    def fail(self, key: str, now: float) -> None:
        log = self._logs.setdefault(key, _FailureLog())
        count = log.add(now, self.policy.window_seconds)
        if count >= self.policy.max_failures:
            log.locked_until = now + self.policy.lockout_seconds
            logger.warning("login_locked", scope=self.name, key=key, failures=count)

    def failures(self, key: str) -> int:
        log = self._logs.get(key)
        return len(log.failures) if log else 0

    def forget(self, key: str) -> None:
        self._logs.pop(key, None)

    def clear(self) -> None:
        self._logs.clear()


class BruteForceProtection:
    """In-process login lockout, per IP and per email."""

    def __init__(
        self,
        ip_max_attempts: int = 5,
        ip_window_seconds: float = 900.0,
        ip_lockout_seconds: float = 900.0,
        email_max_attempts: int = 10,
        email_window_seconds: float = 3600.0,
        email_lockout_seconds: float = 3600.0,
    ):
        self._by_ip = _Lockout("ip", LockoutPolicy(
            ip_max_attempts, ip_window_seconds, ip_lockout_seconds,
            "Too many failed attempts from this IP",
        ))
        self._by_email = _Lockout("email", LockoutPolicy(
            email_max_attempts, email_window_seconds, email_lockout_seconds,
            "Account temporarily locked",
        ))

    def check_allowed(self, ip: str, email: Optional[str] = None) -> LoginCheck:
        now = time.monotonic()
        blocked = self._by_ip.blocked(ip, now)
        if blocked is None and email:
            blocked = self._by_email.blocked(email.lower(), now)
        return blocked or LoginCheck(True)

    def record_failure(self, ip: str, email: Optional[str] = None) -> None:
        now = time.monotonic()
        self._by_ip.fail(ip, now)
        if email:
            self._by_email.fail(email.lower(), now)

    def record_success(self, ip: str, email: Optional[str] = None) -> None:
        self._by_ip.forget(ip)
        if email:
            self._by_email.forget(email.lower())

    def get_progressive_delay(self, ip: str) -> float:
        failures = self._by_ip.failures(ip)
        if failures < DELAY_THRESHOLD:
            return 0.0
        return float(2 ** min(failures - DELAY_THRESHOLD, MAX_DELAY_EXPONENT))

    def reset(self) -> None:
        self._by_ip.clear()
        self._by_email.clear()


_brute_force = BruteForceProtection()


def get_brute_force_protection() -> BruteForceProtection:
    return _brute_force
