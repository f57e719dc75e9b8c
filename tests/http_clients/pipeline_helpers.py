"""Test doubles for the HTTP client pipeline: scripted transport, sleep and clock."""

from __future__ import annotations

from typing import Callable, List, Sequence, Union

import httpx


Outcome = Union[httpx.Response, BaseException, Callable[[httpx.Request], httpx.Response]]


class ScriptedTransport(httpx.MockTransport):
    """Mock transport replaying a script of responses and exceptions.

    Once the script is exhausted the last entry repeats. Every request that
    reaches the transport is recorded in ``requests``.
    """

    def __init__(self, outcomes: Sequence[Outcome]) -> None:
        self.outcomes: List[Outcome] = list(outcomes)
        self.requests: List[httpx.Request] = []
        self.closed = False
        super().__init__(self._handle)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(request)
        return httpx.Response(
            outcome.status_code,
            headers=outcome.headers,
            content=outcome.content,
        )

    def close(self) -> None:
        self.closed = True


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def connect_error(message: str = "connection refused") -> httpx.ConnectError:
    return httpx.ConnectError(message)


