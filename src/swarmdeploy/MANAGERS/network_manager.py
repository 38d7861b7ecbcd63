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
Cluster network setup: the shared overlay network, the routing proxy
service, and attaching the platform's own service to the network.
"""
import logging
from typing import Any, Dict, List, Optional

from ..CLIENTS.orchestrator_client import NetworkHandle, OrchestratorClient
from ..MODELS.labels import LABEL_DEPLOYMENT, LABEL_USER, name_of
from ..MODELS.service_spec import (
    NetworkAttachment,
    PublishedPort,
    RestartPolicy,
    RestartPolicyCondition,
    ServiceSpec,
    UpdateConfig,
)
from ..MODELS.swarm_config import SwarmConfig
from ..errors import OrchestratorNotFound

logger = logging.getLogger(__name__)

DOCKER_SOCKET = "/var/run/docker.sock"


def _is_exited(container: Dict[str, Any]) -> bool:
    return (container.get("Status") or "").startswith("Exited") or container.get("State") == "exited"


def _attached_to(record: Dict[str, Any], network: str) -> bool:
    spec = record.get("Spec") or {}
    attachments = list(spec.get("Networks") or []) + list((spec.get("TaskTemplate") or {}).get("Networks") or [])
    return any(n.get("Target") == network for n in attachments)


class NetworkManager:
    """
    Prepares a swarm cluster for deployments. Every step is idempotent.
    """
    def __init__(self, client: OrchestratorClient, config: SwarmConfig):
        """
        Initializes the network manager.

        :param client: Orchestrator client.
        :param config: Swarm configuration naming the network and the proxy.
        """
        self.client = client
        self.config = config

    def ensure_cluster_ready(self) -> bool:
        """
        Creates the shared network and the routing proxy when missing.

        :return: False when swarm support is disabled, True otherwise.
        """
        if not self.config.enabled:
            logger.debug("Swarm support disabled, skipping cluster init")
            return False

        self.ensure_network()

        proxy = self.find_proxy_container()
        if proxy and not _is_exited(proxy):
            logger.info("Traefik already running, swarm init done!")
            self.attach_service(self.config.traefik_name)
            self.attach_service(self.config.server_name)
            return True

        if proxy:
            logger.info("Exited traefik instance found, re-creating...")
            self.client.get_container(proxy["Id"]).remove()
            self._remove_stale_proxy_service()

        self.client.create_service(self.proxy_spec().to_api())
        logger.info("Traefik instance started..")
        self.attach_service(self.config.server_name)
        return True

    def ensure_network(self) -> NetworkHandle:
        """
        Returns the shared overlay network, creating it if absent.
        """
        name = self.config.network
        existing = next((n for n in self.client.list_networks() if n.get("Name") == name), None)
        if existing:
            return self.client.get_network(existing["Id"])

        logger.info("Swarm network %s does not exist, creating...", name)
        return self.client.create_network({"Name": name, "Driver": "overlay"})

    def find_proxy_container(self) -> Optional[Dict[str, Any]]:
        prefix = f"/{self.config.traefik_name}"
        for container in self.client.list_containers(all=True):
            if any(n.startswith(prefix) for n in container.get("Names") or []):
                return container
        return None

    def _remove_stale_proxy_service(self):
        for record in self.client.list_services():
            if name_of(record) == self.config.traefik_name:
                try:
                    self.client.get_service(record["ID"]).remove()
                except OrchestratorNotFound:
                    pass

    def attach_service(self, name_prefix: str) -> bool:
        """
        Attaches the first service whose name starts with ``name_prefix`` to
        the shared network.

        :param name_prefix: Service name prefix.
        :return: True if an update was submitted.
        """
        network = self.config.network
        record = next((s for s in self.client.list_services() if name_of(s).startswith(name_prefix)), None)
        if record is None:
            return False

        handle = self.client.get_service(record["ID"])
        info = handle.inspect()
        if _attached_to(info, network):
            logger.debug("Service %s already joined swarm network", name_of(info))
            return False

        logger.debug("Service %s not joined swarm network, updating..", name_of(info))
        spec = info["Spec"]
        attachment = [{"Target": network}]
        task_template = dict(spec.get("TaskTemplate") or {})
        task_template["Networks"] = attachment
        handle.update({
            "Name": spec["Name"],
            "version": int(info["Version"]["Index"]),
            "Labels": spec.get("Labels") or {},
            "TaskTemplate": task_template,
            "Mode": spec.get("Mode"),
            "UpdateConfig": spec.get("UpdateConfig"),
            "EndpointSpec": spec.get("EndpointSpec"),
            "Networks": attachment,
        })
        return True

    def proxy_args(self) -> List[str]:
        """
        Command line for the routing proxy. TLS and plain HTTP entrypoints are exclusive.
        """
        compress = "Compress:on" if self.config.compress else "Compress:off"
        if self.config.letsencrypt:
            entrypoints = [
                "--acme",
                f"--acme.email={self.config.letsencrypt_email}",
                "--acme.storage=/var/acme/acme.json",
                "--acme.httpchallenge.entrypoint=http",
                "--acme.entrypoint=https",
                "--acme.onhostrule=true",
                "--accesslogsfile=/var/acme/access.log",
                f"--entryPoints=Name:https Address::443 TLS {compress}",
                f"--entryPoints=Name:http Address::80 Redirect.EntryPoint:https {compress}",
                "--defaultEntryPoints=https,http",
            ]
        else:
            entrypoints = [
                f"--entryPoints=Name:http Address::80 {compress}",
                "--defaultEntryPoints=http",
            ]

        args = ["-c", "/dev/null", "--docker", "--docker.watch", "--docker.swarmmode"]
        args += entrypoints
        if self.config.debug:
            args += ["--debug", "--logLevel=DEBUG"]
        args += list(self.config.traefik_args)
        return args

    def proxy_spec(self) -> ServiceSpec:
        """
        Single replica routing proxy pinned to manager nodes.
        """
        return ServiceSpec(
            name=self.config.traefik_name,
            image=self.config.traefik_image,
            args=self.proxy_args(),
            container_labels={LABEL_DEPLOYMENT: "exo-traefik", LABEL_USER: "admin"},
            mounts=[{"Source": DOCKER_SOCKET, "Target": DOCKER_SOCKET, "Type": "bind"}],
            restart_policy=RestartPolicy(
                condition=RestartPolicyCondition.ON_FAILURE, max_attempts=2, maximum_retry_count=2
            ),
            constraints=["node.role==manager"],
            ports=[PublishedPort(target=80, published=80), PublishedPort(target=443, published=443)],
            update_config=UpdateConfig(parallelism=1, delay=0, order=None),
            networks=[NetworkAttachment(target=self.config.network)],
        )
