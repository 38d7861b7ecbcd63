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
Log retrieval for single services and whole projects.
"""
import itertools
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, Optional

from ..CLIENTS.orchestrator_client import OrchestratorClient
from ..MODELS.labels import name_of
from ..MODELS.swarm_config import SwarmConfig
from ..UTILS.concurrency import map_ordered
from .project_query import ProjectQuery

logger = logging.getLogger(__name__)

LogStream = Iterable[bytes]


def _identity(stream: LogStream) -> LogStream:
    return stream


class LogAggregator:
    """
    Fetches log streams for the services behind an identifier.
    """
    def __init__(self,
                 client: OrchestratorClient,
                 config: SwarmConfig,
                 normalize: Optional[Callable[[LogStream], LogStream]] = None):
        """
        Initializes the log aggregator.

        :param client: Orchestrator client.
        :param config: Swarm configuration.
        :param normalize: Turns a raw daemon log stream into plain log lines.
        """
        self.client = client
        self.config = config
        self.query = ProjectQuery(client, config)
        self.normalize = normalize or _identity

    def fetch_logs(self, identifier: str, user: str, follow: bool = False) -> Iterator[bytes]:
        """
        Returns the logs for ``identifier``.

        A project with several services yields each service's full log after a
        ``Logs for <name>`` header, one service after the other.

        :param identifier: Service name, project name, or the server name.
        :param user: Owner the lookup is scoped to.
        :param follow: Keep streaming new lines.
        :raises ServiceNotFoundError: If nothing matches.
        """
        if identifier == self.config.server_name:
            return self._server_logs(follow)

        services = self.query.resolve(identifier, user)
        if len(services) == 1:
            return iter(self._service_logs(services[0], follow))

        logger.debug("Fetching logs for %d services of %s", len(services), identifier)
        streams = map_ordered(lambda s: self._service_logs(s, follow), services)
        return itertools.chain.from_iterable(
            itertools.chain([f"Logs for {name_of(service)}\n\n".encode()], stream)
            for service, stream in zip(services, streams)
        )

    def _service_logs(self, record, follow: bool) -> LogStream:
        handle = self.client.get_service(record["ID"])
        return self.normalize(handle.logs(follow=follow))

    def _server_logs(self, follow: bool) -> Iterator[bytes]:
        server = self.query.find_server()
        if server is None:
            now = datetime.now(timezone.utc).isoformat()
            line = f"{now} Exoframe server not running in container!".encode()
            return iter(self.normalize([line]))
        return iter(self._service_logs(server, follow))
