# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Helpers for concurrent fan-out, bounded polling and per-name serialization.
"""
import threading
from contextlib import contextmanager
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TypeVar

from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, stop_when_event_set, wait_fixed

T = TypeVar("T")
R = TypeVar("R")

MAX_WORKERS = 8


class PollTimeout(Exception):
    """
    Raised when a poll gives up. ``last`` holds the final probe result.
    """
    def __init__(self, last: Any, cancelled: bool = False):
        super().__init__("cancelled" if cancelled else "timed out")
        self.last = last
        self.cancelled = cancelled


def map_ordered(fn: Callable[[T], R], items: Sequence[T], max_workers: int = MAX_WORKERS) -> List[R]:
    """
    Runs ``fn`` over ``items`` concurrently and returns results in input order.
    The first exception raised by any call is re-raised after all calls finish.
    """
    if not items:
        return []
    if len(items) == 1:
        return [fn(items[0])]
    with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as pool:
        futures = [pool.submit(fn, item) for item in items]
    return [f.result() for f in futures]


def poll_until(probe: Callable[[], R],
               done: Callable[[R], bool],
               timeout: float,
               interval: float,
               cancel: Optional[threading.Event] = None,
               sleep: Optional[Callable[[float], None]] = None) -> R:
    """
    Calls ``probe`` every ``interval`` seconds until ``done(result)`` holds.

    :param probe: Function returning the observed state.
    :param done: Predicate telling when the observed state is final.
    :param timeout: Seconds before giving up.
    :param interval: Seconds between probes.
    :param cancel: Event that aborts the wait when set.
    :param sleep: Sleep function, replaceable in tests.
    :return: The first result accepted by ``done``.
    :raises PollTimeout: When the deadline passes or ``cancel`` is set.
    """
    stop = stop_after_delay(timeout)
    if cancel is not None:
        stop = stop | stop_when_event_set(cancel)

    kwargs: Dict[str, Any] = {}
    if sleep is not None:
        kwargs["sleep"] = sleep

    retrying = Retrying(
        stop=stop,
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda result: not done(result)),
        **kwargs,
    )
    try:
        return retrying(probe)
    except RetryError as e:
        cancelled = cancel is not None and cancel.is_set()
        raise PollTimeout(e.last_attempt.result(), cancelled=cancelled) from None


class NameLocks:
    """
    One lock per service name, so two reconciliations of the same service never overlap.
    A name's entry is dropped once nobody holds or waits on it.
    """
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, name: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
            self._users[name] = self._users.get(name, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[name] -= 1
                if not self._users[name]:
                    del self._users[name]
                    del self._locks[name]
