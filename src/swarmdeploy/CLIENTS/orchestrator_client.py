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
Orchestrator client used by the deployment engine.

``OrchestratorClient`` is the capability interface the engine talks to;
``DockerOrchestratorClient`` implements it on top of the Docker SDK's
low-level API client. Specs and records are Engine API shaped dicts.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import docker
from docker.errors import NotFound

from ..errors import OrchestratorNotFound

Record = Dict[str, Any]


class ServiceHandle:
    """Reference to one swarm service."""

    def __init__(self, client: "OrchestratorClient", service_id: str):
        self.client = client
        self.id = service_id

    def inspect(self) -> Record:
        return self.client.inspect_service(self.id)

    def update(self, spec: Record) -> None:
        """
        Submits a new spec. ``spec['version']`` must carry the current version index.
        """
        self.client.update_service(self.id, spec)

    def remove(self) -> None:
        self.client.remove_service(self.id)

    def logs(self, follow: bool = False, tail: str = "all", timestamps: bool = True) -> Iterable[bytes]:
        return self.client.service_logs(self.id, follow=follow, tail=tail, timestamps=timestamps)


class ContainerHandle:
    """Reference to one plain container."""

    def __init__(self, client: "OrchestratorClient", container_id: str):
        self.client = client
        self.id = container_id

    def remove(self) -> None:
        self.client.remove_container(self.id)


class NetworkHandle:
    """Reference to one network."""

    def __init__(self, client: "OrchestratorClient", network_id: str):
        self.client = client
        self.id = network_id

    def inspect(self) -> Record:
        return self.client.inspect_network(self.id)


class OrchestratorClient(ABC):
    """
    Capability interface over a swarm orchestrator.

    Implementations raise ``OrchestratorNotFound`` whenever the orchestrator
    reports that the addressed object does not exist.
    """

    @abstractmethod
    def list_services(self) -> List[Record]:
        """List all services with their specs."""

    @abstractmethod
    def inspect_service(self, service_id: str) -> Record:
        """Return the full record of one service."""

    @abstractmethod
    def submit_service(self, spec: Record) -> str:
        """Create a service from an Engine API spec and return its ID."""

    @abstractmethod
    def update_service(self, service_id: str, spec: Record) -> None:
        """Submit a new spec for an existing service."""

    @abstractmethod
    def remove_service(self, service_id: str) -> None:
        """Remove a service."""

    @abstractmethod
    def service_logs(self, service_id: str, follow: bool = False, tail: str = "all",
                     timestamps: bool = True) -> Iterable[bytes]:
        """Return the log stream of a service."""

    @abstractmethod
    def list_networks(self) -> List[Record]:
        """List networks."""

    @abstractmethod
    def submit_network(self, spec: Record) -> str:
        """Create a network from an Engine API spec and return its ID."""

    @abstractmethod
    def inspect_network(self, network_id: str) -> Record:
        """Return the full record of one network."""

    @abstractmethod
    def list_containers(self, all: bool = True) -> List[Record]:
        """List containers, including stopped ones when ``all`` is set."""

    @abstractmethod
    def remove_container(self, container_id: str) -> None:
        """Remove a container."""

    def get_service(self, service_id: str) -> ServiceHandle:
        return ServiceHandle(self, service_id)

    def create_service(self, spec: Record) -> ServiceHandle:
        return ServiceHandle(self, self.submit_service(spec))

    def get_network(self, network_id: str) -> NetworkHandle:
        return NetworkHandle(self, network_id)

    def create_network(self, spec: Record) -> NetworkHandle:
        return NetworkHandle(self, self.submit_network(spec))

    def get_container(self, container_id: str) -> ContainerHandle:
        return ContainerHandle(self, container_id)


class DockerOrchestratorClient(OrchestratorClient):
    """
    Orchestrator client backed by a Docker daemon in swarm mode.
    """

    def __init__(self, api: Optional[docker.APIClient] = None, base_url: Optional[str] = None):
        """
        Initialize the client.

        Args:
            api: Preconfigured low-level client. Built from the environment when omitted.
            base_url: Daemon URL, e.g. ``unix:///var/run/docker.sock``.
        """
        if api is not None:
            self.api = api
        elif base_url:
            self.api = docker.APIClient(base_url=base_url)
        else:
            self.api = docker.from_env().api

    def list_services(self) -> List[Record]:
        return self.api.services()

    def inspect_service(self, service_id: str) -> Record:
        try:
            return self.api.inspect_service(service_id)
        except NotFound as e:
            raise OrchestratorNotFound(f"Service {service_id} does not exist") from e

    def submit_service(self, spec: Record) -> str:
        result = self.api.create_service(
            spec["TaskTemplate"],
            name=spec.get("Name"),
            labels=spec.get("Labels"),
            mode=spec.get("Mode"),
            update_config=spec.get("UpdateConfig"),
            networks=spec.get("Networks"),
            endpoint_spec=spec.get("EndpointSpec"),
        )
        return result["ID"]

    def update_service(self, service_id: str, spec: Record) -> None:
        try:
            self.api.update_service(
                service_id,
                spec["version"],
                task_template=spec.get("TaskTemplate"),
                name=spec.get("Name"),
                labels=spec.get("Labels"),
                mode=spec.get("Mode"),
                update_config=spec.get("UpdateConfig"),
                networks=spec.get("Networks"),
                endpoint_spec=spec.get("EndpointSpec"),
            )
        except NotFound as e:
            raise OrchestratorNotFound(f"Service {service_id} does not exist") from e

    def remove_service(self, service_id: str) -> None:
        try:
            self.api.remove_service(service_id)
        except NotFound as e:
            raise OrchestratorNotFound(f"Service {service_id} does not exist") from e

    def service_logs(self, service_id: str, follow: bool = False, tail: str = "all",
                     timestamps: bool = True) -> Iterable[bytes]:
        try:
            return self.api.service_logs(
                service_id,
                follow=follow,
                stdout=True,
                stderr=True,
                timestamps=timestamps,
                tail=tail,
            )
        except NotFound as e:
            raise OrchestratorNotFound(f"Service {service_id} does not exist") from e

    def list_networks(self) -> List[Record]:
        return self.api.networks()

    def submit_network(self, spec: Record) -> str:
        result = self.api.create_network(
            spec["Name"],
            driver=spec.get("Driver"),
            attachable=spec.get("Attachable"),
            labels=spec.get("Labels"),
        )
        return result["Id"]

    def inspect_network(self, network_id: str) -> Record:
        try:
            return self.api.inspect_network(network_id)
        except NotFound as e:
            raise OrchestratorNotFound(f"Network {network_id} does not exist") from e

    def list_containers(self, all: bool = True) -> List[Record]:
        return self.api.containers(all=all)

    def remove_container(self, container_id: str) -> None:
        try:
            self.api.remove_container(container_id)
        except NotFound as e:
            raise OrchestratorNotFound(f"Container {container_id} does not exist") from e
