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
Resolution of user-facing identifiers to swarm services.
"""
from typing import List, Optional

from ..CLIENTS.orchestrator_client import OrchestratorClient
from ..MODELS.labels import ServiceRecord, in_project, name_of, owned_by
from ..MODELS.swarm_config import SwarmConfig
from ..UTILS.concurrency import map_ordered
from ..errors import ServiceNotFoundError


class ProjectQuery:
    """
    Finds the services a user addresses by service name or by project.
    """
    def __init__(self, client: OrchestratorClient, config: SwarmConfig):
        self.client = client
        self.config = config

    def resolve(self, identifier: str, user: str) -> List[ServiceRecord]:
        """
        Resolves ``identifier`` for ``user``.

        An exact service name wins and yields that one service. Otherwise every
        service labelled with project ``identifier`` is returned, in listing order.

        :param identifier: Service name or project name.
        :param user: Owner the lookup is scoped to.
        :return: One or more service records.
        :raises ServiceNotFoundError: If nothing matches.
        """
        services = self.client.list_services()

        for record in services:
            if owned_by(record, user) and name_of(record) == identifier:
                return [record]

        matches = [s for s in services if in_project(s, user, identifier)]
        if not matches:
            raise ServiceNotFoundError(identifier)
        return matches

    def find_server(self) -> Optional[ServiceRecord]:
        """
        The platform's own control service, if it runs as a swarm service.
        """
        for record in self.client.list_services():
            if self.config.server_name in name_of(record):
                return record
        return None

    def list_services(self, user: str) -> List[ServiceRecord]:
        """
        Inspects every service owned by ``user``, leaving out the routing proxy.
        """
        owned = [
            s for s in self.client.list_services()
            if owned_by(s, user) and name_of(s) != self.config.traefik_name
        ]
        return map_ordered(lambda s: self.client.get_service(s["ID"]).inspect(), owned)
