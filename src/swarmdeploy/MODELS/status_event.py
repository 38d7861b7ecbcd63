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
Status events streamed back to the caller of a deployment operation.
"""
import threading
from enum import Enum
from typing import Any, Callable, List, Optional, TextIO

from pydantic import BaseModel, ConfigDict


class StatusLevel(str, Enum):
    """Severity of a status event."""

    INFO = "info"
    VERBOSE = "verbose"
    ERROR = "error"


class StatusEvent(BaseModel):
    """
    One status record. Extra keys (``deployments``, ``exitCode``...) are kept as-is.
    """
    model_config = ConfigDict(extra="allow")

    message: str
    level: StatusLevel = StatusLevel.INFO
    data: Optional[Any] = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


class ResultStream:
    """
    Append-only event stream for one top-level operation.

    Events are kept in memory and, when a sink is given, forwarded to it
    immediately as JSON lines. The stream must be closed exactly once.
    """

    def __init__(self, sink: Optional[TextIO] = None, on_event: Optional[Callable[[StatusEvent], None]] = None):
        """
        :param sink: File-like object receiving one JSON line per event.
        :param on_event: Callback invoked with every event as it is written.
        """
        self.sink = sink
        self.on_event = on_event
        self.events: List[StatusEvent] = []
        self.closed = False
        self._lock = threading.Lock()

    def write(self, message: str, level: StatusLevel = StatusLevel.INFO, **fields: Any) -> StatusEvent:
        """
        Appends an event and forwards it to the sink.

        :raises RuntimeError: If the stream was already closed.
        """
        event = StatusEvent(message=message, level=level, **fields)
        with self._lock:
            if self.closed:
                raise RuntimeError("Cannot write to a closed result stream")
            self.events.append(event)
            if self.sink is not None:
                self.sink.write(event.to_json() + "\n")
                self.sink.flush()
        if self.on_event:
            self.on_event(event)
        return event

    def close(self):
        """
        Closes the stream. Closing twice is a programming error.
        """
        with self._lock:
            if self.closed:
                raise RuntimeError("Result stream closed twice")
            self.closed = True

    @property
    def last(self) -> Optional[StatusEvent]:
        return self.events[-1] if self.events else None

    def errors(self) -> List[StatusEvent]:
        return [e for e in self.events if e.level == StatusLevel.ERROR]
