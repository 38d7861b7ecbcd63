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
Reconciliation of single services: create a new service or update the
matching one in place.
"""
import logging
from typing import Dict, List, Optional, Sequence

from ..CLIENTS.orchestrator_client import OrchestratorClient
from ..MODELS.labels import ServiceRecord, image_of, in_project, routing_labels
from ..MODELS.service_spec import NetworkAttachment, RestartPolicy, ServiceSpec
from ..MODELS.status_event import ResultStream, StatusLevel
from ..MODELS.swarm_config import SwarmConfig
from ..UTILS.concurrency import NameLocks

logger = logging.getLogger(__name__)


class ServiceOrchestrator:
    """
    Creates or updates swarm services for a user's project.
    """
    def __init__(self, client: OrchestratorClient, config: SwarmConfig, locks: Optional[NameLocks] = None):
        """
        Initializes the orchestrator.

        :param client: Orchestrator client.
        :param config: Swarm configuration.
        :param locks: Lock registry shared by every orchestrator in the process.
        """
        self.client = client
        self.config = config
        self.locks = locks if locks is not None else NameLocks()

    def build_spec(self,
                   name: str,
                   image: str,
                   labels: Optional[Dict[str, str]] = None,
                   env: Optional[List[str]] = None,
                   mounts: Optional[List[Dict]] = None,
                   restart: Optional[str] = None,
                   hostname: Optional[str] = None,
                   additional_networks: Sequence[str] = ()) -> ServiceSpec:
        """
        Builds the desired spec of a service on the shared network.

        :param name: Service name.
        :param image: Image reference.
        :param labels: Identity and routing labels; the routing network labels are added.
        :param env: ``KEY=value`` environment entries.
        :param mounts: Engine API mount dicts.
        :param restart: Restart string, ``on-failure:2`` when empty.
        :param hostname: DNS alias on the shared network.
        :param additional_networks: Networks joined before the shared one.
        :raises ValueError: If the restart string is not recognised.
        """
        merged = dict(labels or {})
        merged.update(routing_labels(self.config.network))

        networks = [NetworkAttachment(target=n) for n in additional_networks]
        networks.append(NetworkAttachment(target=self.config.network, aliases=[hostname] if hostname else []))

        return ServiceSpec(
            name=name,
            image=image,
            env=list(env or []),
            mounts=list(mounts or []),
            labels=merged,
            restart_policy=RestartPolicy.parse(restart),
            networks=networks,
        )

    def find_update_target(self, user: str, project: str, image: str) -> Optional[ServiceRecord]:
        """
        Returns the service of ``user``/``project`` already running ``image``.

        Other services of the same project are left alone: a different image
        means a new service next to them.
        """
        for record in self.client.list_services():
            if in_project(record, user, project) and image_of(record) == image:
                return record
        return None

    def reconcile(self,
                  spec: ServiceSpec,
                  user: str,
                  project: str,
                  stream: Optional[ResultStream] = None) -> ServiceRecord:
        """
        Updates the matching service or creates a new one.

        :param spec: Desired service spec.
        :param user: Owner of the project.
        :param project: Project the service belongs to.
        :param stream: Receives verbose progress events.
        :return: The inspected service record after the change.
        """
        with self.locks.hold(f"{user}/{project}/{spec.image}"):
            existing = self.find_update_target(user, project, spec.image)
            if existing is None:
                return self._create(spec, stream)
            return self._update(existing, spec, stream)

    def start_from_params(self, spec: ServiceSpec, stream: Optional[ResultStream] = None) -> ServiceRecord:
        """
        Always creates a new service from ``spec``.
        """
        with self.locks.hold(spec.name):
            return self._create(spec, stream)

    def _create(self, spec: ServiceSpec, stream: Optional[ResultStream]) -> ServiceRecord:
        config = spec.to_api()
        self._status(stream, "Starting service with following config:", serviceConfig=config)
        service = self.client.create_service(config)
        logger.info("Created service %s (%s)", spec.name, service.id)
        self._status(stream, "Service successfully started!")
        return service.inspect()

    def _update(self, existing: ServiceRecord, spec: ServiceSpec, stream: Optional[ResultStream]) -> ServiceRecord:
        current_spec = existing.get("Spec") or {}
        force = int((current_spec.get("TaskTemplate") or {}).get("ForceUpdate") or 0) + 1
        spec = spec.model_copy(update={
            "name": current_spec.get("Name", spec.name),
            "version": int(existing["Version"]["Index"]),
            "force_update": force,
        })
        config = spec.to_api()
        config["version"] = spec.version

        self._status(stream, "Updating service with following config:", serviceConfig=config)
        service = self.client.get_service(existing["ID"])
        service.update(config)
        logger.info("Updated service %s (%s)", spec.name, service.id)
        self._status(stream, "Service successfully updated!")
        return service.inspect()

    @staticmethod
    def _status(stream: Optional[ResultStream], message: str, **fields):
        if stream is not None:
            stream.write(message, level=StatusLevel.VERBOSE, **fields)
