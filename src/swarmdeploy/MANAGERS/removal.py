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
Removal of a single service or every service of a project.
"""
import logging
from typing import Dict, Optional, Tuple

from ..CLIENTS.orchestrator_client import OrchestratorClient
from ..MODELS.labels import ServiceRecord, name_of
from ..MODELS.swarm_config import SwarmConfig
from ..UTILS.concurrency import map_ordered
from ..errors import OrchestratorNotFound, RemovalError
from .project_query import ProjectQuery

logger = logging.getLogger(__name__)


class ServiceRemover:
    """
    Removes the services behind an identifier.

    Every removal in a batch is attempted; failures are collected and raised
    together once all of them ran.
    """
    def __init__(self, client: OrchestratorClient, config: SwarmConfig):
        self.client = client
        self.query = ProjectQuery(client, config)

    def remove(self, identifier: str, user: str) -> int:
        """
        Removes every service ``identifier`` resolves to.

        :param identifier: Service name or project name.
        :param user: Owner the lookup is scoped to.
        :return: Number of services removed, counting ones already gone.
        :raises ServiceNotFoundError: If nothing matches.
        :raises RemovalError: If any removal failed.
        """
        services = self.query.resolve(identifier, user)
        results = map_ordered(self._remove_one, services)

        failures: Dict[str, Exception] = {name: err for name, err in results if err is not None}
        removed = len(results) - len(failures)
        if failures:
            raise RemovalError(failures, removed)
        return removed

    def _remove_one(self, record: ServiceRecord) -> Tuple[str, Optional[Exception]]:
        name = name_of(record)
        try:
            self.client.get_service(record["ID"]).remove()
        except OrchestratorNotFound:
            logger.debug("Service %s already removed", name)
        except Exception as e:
            logger.error("Failed to remove service %s: %s", name, e)
            return name, e
        else:
            logger.info("Removed service %s", name)
        return name, None
