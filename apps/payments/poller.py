"""
Client-side status poller.

Polls ``GET /api/payments/stk/{id}/status/`` until the payment reaches a
terminal state or the attempt budget runs out. Holds no server-side
state; the till front end and the ``poll_payment`` command both drive it.

Usage::

    poller = StatusPoller('https://pos.example.com', access_token=token)
    result = poller.poll(transaction_id, on_update=print)
    if result.status == 'confirmed':
        ...
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests

logger = logging.getLogger(__name__)

TERMINAL = ('confirmed', 'failed', 'expired')


class PollError(Exception):
    """Raised when the status endpoint answers with an unexpected error."""
    pass


@dataclass
class PollResult:
    status: Optional[str]
    attempts: int
    timed_out: bool
    payload: dict = field(default_factory=dict)

    @property
    def is_terminal(self):
        return self.status in TERMINAL


class StatusPoller:
    """
    Poll a payment's status with increasing delays.

    Args:
        base_url: Server root, e.g. ``https://pos.example.com``
        access_token: JWT access token sent as a bearer token
        max_attempts: Number of status requests before giving up
        initial_delay: Seconds before the second request
        backoff: Multiplier applied to the delay after each attempt
        max_delay: Upper bound for a single delay
        refresh_after: From this attempt on, ask the server to query the
            provider (``?refresh=true``); None never does
        timeout: Per-request timeout in seconds
        session: requests.Session to reuse
        sleep: Sleep function, replaceable in tests
    """

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        *,
        max_attempts: int = 20,
        initial_delay: float = 2.0,
        backoff: float = 1.5,
        max_delay: float = 15.0,
        refresh_after: Optional[int] = 5,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        if max_attempts < 1:
            raise ValueError('max_attempts must be at least 1')

        self.base_url = base_url.rstrip('/')
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.backoff = backoff
        self.max_delay = max_delay
        self.refresh_after = refresh_after
        self.timeout = timeout
        self.session = session or requests.Session()
        self.sleep = sleep

        if access_token:
            self.session.headers['Authorization'] = f'Bearer {access_token}'

    def status_url(self, transaction_id) -> str:
        return f"{self.base_url}/api/payments/stk/{transaction_id}/status/"

    def delays(self):
        """Yield the wait before each attempt after the first."""
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            yield min(delay, self.max_delay)
            delay *= self.backoff

    def fetch(self, transaction_id, refresh: bool = False) -> dict:
        """
        Fetch the current status once.

        Raises:
            PollError: On 4xx responses, which retrying will not fix
            requests.RequestException: On network errors and 5xx responses
        """
        params = {'refresh': 'true'} if refresh else None
        resp = self.session.get(self.status_url(transaction_id), params=params, timeout=self.timeout)
        if 400 <= resp.status_code < 500:
            raise PollError(f"Status request failed with HTTP {resp.status_code}: {resp.text[:200]}")
        resp.raise_for_status()
        return resp.json()

    def poll(self, transaction_id, on_update: Optional[Callable[[dict], None]] = None) -> PollResult:
        """
        Poll until the payment is terminal or attempts are exhausted.

        Transient errors (network, 5xx) count as an attempt and polling
        continues. ``on_update`` is called with every payload received.
        """
        delays = self.delays()
        payload = {}
        status = None

        for attempt in range(1, self.max_attempts + 1):
            refresh = self.refresh_after is not None and attempt >= self.refresh_after
            try:
                payload = self.fetch(transaction_id, refresh=refresh)
            except requests.RequestException as e:
                logger.warning("Status poll %s for %s failed: %s", attempt, transaction_id, e)
            else:
                status = payload.get('status')
                if on_update:
                    on_update(payload)
                if status in TERMINAL:
                    return PollResult(status=status, attempts=attempt, timed_out=False, payload=payload)

            delay = next(delays, None)
            if delay is None:
                break
            self.sleep(delay)

        logger.info("Gave up polling %s after %s attempts (last status %s)", transaction_id, self.max_attempts, status)
        return PollResult(status=status, attempts=self.max_attempts, timed_out=True, payload=payload)
