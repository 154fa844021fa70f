"""
    Copyright 2024 Inmanta

    Licensed under the Apache License, Version 2.0 (the "License");
    you may not use this file except in compliance with the License.
    You may obtain a copy of the License at

        http://www.apache.org/licenses/LICENSE-2.0

    Unless required by applicable law or agreed to in writing, software
    distributed under the License is distributed on an "AS IS" BASIS,
    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
    See the License for the specific language governing permissions and
    limitations under the License.

    Contact: code@inmanta.com
"""

import dataclasses
import logging
import time
from collections.abc import Callable, Collection
from typing import Optional

LOGGER = logging.getLogger(__name__)

ABSENT = ""
"""
The state label of an object that does not exist. Put it in the target set to wait for an object to disappear.
"""


@dataclasses.dataclass(frozen=True)
class RefreshResult:
    """
    The outcome of one poll of the remote state.

    :param raw: The raw provider response, None when the object does not exist
    :param state: The coarse state label extracted from the response
    """

    raw: Optional[object]
    state: str

    @property
    def gone(self) -> bool:
        return self.state == ABSENT


GONE = RefreshResult(raw=None, state=ABSENT)

RefreshFunction = Callable[[], RefreshResult]


class ConvergenceError(Exception):
    """
    Base class for the errors raised when a remote object does not converge to its target state.
    """

    def __init__(self, message: str, description: str) -> None:
        super().__init__(message)
        self.description = description


class UnexpectedStateError(ConvergenceError):
    """
    The remote object reached a state that is neither pending nor a target.
    """

    def __init__(self, state: str, expected: Collection[str], description: str) -> None:
        super().__init__(
            f"Unexpected state '{state}' for {description}, wanted target {_format_states(expected)}", description
        )
        self.state = state
        self.expected = frozenset(expected)


class WaitTimeoutError(ConvergenceError, TimeoutError):
    """
    The remote object was still pending when the timeout expired.
    """

    def __init__(self, last_state: Optional[str], target: Collection[str], timeout: float, description: str) -> None:
        last = "none" if last_state is None else f"'{last_state}'"
        super().__init__(
            f"Timeout while waiting for {description} to become {_format_states(target)}"
            f" (last state: {last}, timeout: {timeout}s)",
            description,
        )
        self.last_state = last_state
        self.timeout = timeout


def _format_states(states: Collection[str]) -> str:
    return "[" + ", ".join(repr(s) if s != ABSENT else "<absent>" for s in sorted(states)) + "]"


@dataclasses.dataclass
class StateWaiter:
    """
    Polls a refresh function until the state label it reports is one of the target states.

    The first poll happens after ``delay`` seconds. After that, the wait between two polls starts at ``min_interval``
    and doubles after every poll, up to ``max_interval``. Every wait is cut short at the deadline, no poll is started
    once ``timeout`` seconds have passed since the start of the wait.

    A refresh that reports the object as gone counts as pending, unless :data:`ABSENT` is one of the target states:
    a new object is not always visible right after it was created.

    :param pending: The state labels that are expected while the object converges
    :param target: The state labels that end the wait successfully
    :param timeout: The number of seconds, including the initial delay, after which the wait fails
    :param delay: The number of seconds to wait before the first poll
    :param min_interval: The minimal number of seconds between two polls
    :param max_interval: The maximal number of seconds between two polls
    :param description: What is being waited for, used in log lines and errors
    """

    pending: Collection[str]
    target: Collection[str]
    timeout: float
    delay: float = 0
    min_interval: float = 1
    max_interval: float = 10
    description: str = "resource"
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        self.pending = frozenset(self.pending)
        self.target = frozenset(self.target)
        if not self.target:
            raise ValueError("At least one target state is required")
        overlap = self.pending & self.target
        if overlap:
            raise ValueError(f"States {_format_states(overlap)} can not be both pending and target")
        if self.timeout <= 0:
            raise ValueError(f"The timeout should be positive, got {self.timeout}")
        if self.min_interval <= 0:
            raise ValueError(f"The minimal poll interval should be positive, got {self.min_interval}")
        if self.delay < 0:
            raise ValueError(f"The delay can not be negative, got {self.delay}")
        self.max_interval = max(self.max_interval, self.min_interval)

    def wait(self, refresh: RefreshFunction) -> Optional[object]:
        """
        Poll until the object reaches a target state.

        :param refresh: Called once per poll, it should query the remote state afresh every time
        :return: The raw response of the poll that reported a target state
        :raise UnexpectedStateError: A poll reported a state that is neither pending nor a target
        :raise WaitTimeoutError: The object did not reach a target state before the deadline
        :raise Exception: Any error raised by the refresh function is propagated as is
        """
        start = self.clock()
        deadline = start + self.timeout
        last_state: Optional[str] = None
        polls = 0

        if self.delay > 0:
            LOGGER.debug("Waiting %ss before polling %s", self.delay, self.description)
            self.sleep(min(self.delay, self.timeout))

        interval = self.min_interval
        while True:
            if self.clock() >= deadline:
                LOGGER.debug("Gave up on %s after %d polls", self.description, polls)
                raise WaitTimeoutError(last_state, self.target, self.timeout, self.description)

            result = refresh()
            polls += 1
            now = self.clock()
            if now > deadline:
                # The poll was still in flight at the deadline, its outcome no longer counts
                raise WaitTimeoutError(last_state, self.target, self.timeout, self.description)

            last_state = result.state
            LOGGER.debug(
                "Poll %d of %s: state %s after %.1fs",
                polls,
                self.description,
                "<absent>" if result.gone else repr(result.state),
                now - start,
            )

            if result.state in self.target:
                LOGGER.info("%s reached state %s after %.1fs", self.description, _format_states([result.state]), now - start)
                return result.raw

            if not result.gone and result.state not in self.pending:
                raise UnexpectedStateError(result.state, self.target, self.description)

            self.sleep(min(interval, max(deadline - self.clock(), 0)))
            interval = min(interval * 2, self.max_interval)


def wait_for_state(
    refresh: RefreshFunction,
    *,
    pending: Collection[str],
    target: Collection[str],
    timeout: float,
    delay: float = 0,
    min_interval: float = 1,
    max_interval: float = 10,
    description: str = "resource",
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[object]:
    """
    Poll ``refresh`` until it reports one of the ``target`` states. See :class:`StateWaiter` for the parameters.
    """
    waiter = StateWaiter(
        pending=pending,
        target=target,
        timeout=timeout,
        delay=delay,
        min_interval=min_interval,
        max_interval=max_interval,
        description=description,
        clock=clock,
        sleep=sleep,
    )
    return waiter.wait(refresh)
