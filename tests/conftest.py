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
Shared fixtures: an in-memory orchestrator and a scripted deploy command.
"""
import copy
import itertools

import pytest

from swarmdeploy.CLIENTS.orchestrator_client import OrchestratorClient
from swarmdeploy.MODELS.status_event import ResultStream
from swarmdeploy.MODELS.swarm_config import SwarmConfig
from swarmdeploy.errors import OrchestratorNotFound


class FakeOrchestratorClient(OrchestratorClient):
    """Keeps services, networks and containers in dictionaries."""

    def __init__(self):
        self.services = {}
        self.networks = {}
        self.containers = {}
        self.logs = {}
        self.remove_errors = {}
        self.calls = []
        self._ids = itertools.count(1)

    # Helpers for tests

    def add_service(self, name, image="nginx:latest", labels=None, networks=None):
        service_id = self.submit_service({
            "Name": name,
            "Labels": dict(labels or {}),
            "TaskTemplate": {"ContainerSpec": {"Image": image}},
            "Networks": list(networks or []),
        })
        self.calls.pop()
        return service_id

    def mutations(self):
        return [c for c in self.calls if c[0] not in ("inspect_service", "list_services", "service_logs",
                                                     "list_networks", "inspect_network", "list_containers")]

    # OrchestratorClient

    def list_services(self):
        self.calls.append(("list_services",))
        return [copy.deepcopy(s) for s in self.services.values()]

    def inspect_service(self, service_id):
        self.calls.append(("inspect_service", service_id))
        if service_id not in self.services:
            raise OrchestratorNotFound(service_id)
        return copy.deepcopy(self.services[service_id])

    def submit_service(self, spec):
        service_id = f"svc{next(self._ids)}"
        spec = copy.deepcopy(spec)
        spec.pop("version", None)
        self.services[service_id] = {"ID": service_id, "Version": {"Index": 1}, "Spec": spec}
        self.calls.append(("create_service", spec["Name"]))
        return service_id

    def update_service(self, service_id, spec):
        self.calls.append(("update_service", service_id))
        record = self.services.get(service_id)
        if record is None:
            raise OrchestratorNotFound(service_id)
        if spec["version"] != record["Version"]["Index"]:
            raise RuntimeError("update out of sequence")
        spec = copy.deepcopy(spec)
        spec.pop("version")
        record["Spec"] = spec
        record["Version"]["Index"] += 1

    def remove_service(self, service_id):
        self.calls.append(("remove_service", service_id))
        if service_id in self.remove_errors:
            raise self.remove_errors[service_id]
        if self.services.pop(service_id, None) is None:
            raise OrchestratorNotFound(service_id)

    def service_logs(self, service_id, follow=False, tail="all", timestamps=True):
        self.calls.append(("service_logs", service_id))
        return iter(self.logs.get(service_id, []))

    def list_networks(self):
        self.calls.append(("list_networks",))
        return list(self.networks.values())

    def submit_network(self, spec):
        network_id = f"net{next(self._ids)}"
        self.networks[network_id] = {"Id": network_id, "Name": spec["Name"], "Driver": spec.get("Driver")}
        self.calls.append(("create_network", spec["Name"]))
        return network_id

    def inspect_network(self, network_id):
        self.calls.append(("inspect_network", network_id))
        return copy.deepcopy(self.networks[network_id])

    def list_containers(self, all=True):
        self.calls.append(("list_containers",))
        return list(self.containers.values())

    def remove_container(self, container_id):
        self.calls.append(("remove_container", container_id))
        if self.containers.pop(container_id, None) is None:
            raise OrchestratorNotFound(container_id)


class FakeRunner:
    """
    Stands in for the docker CLI. ``on_run`` can create services the way a
    real ``docker stack deploy`` would.
    """

    def __init__(self, lines=(), exit_code=0, on_run=None):
        self.lines = list(lines)
        self.exit_code = exit_code
        self.on_run = on_run
        self.invocations = []
        self.cancel = None

    def run(self, args, working_dir, on_line, env=None, cancel=None):
        self.invocations.append((list(args), working_dir))
        self.cancel = cancel
        for line in self.lines:
            on_line(line)
        if self.on_run:
            self.on_run()
        return self.exit_code


@pytest.fixture
def client():
    return FakeOrchestratorClient()


@pytest.fixture
def config():
    return SwarmConfig(poll_interval=0, stack_timeout=0)


@pytest.fixture
def stream():
    return ResultStream()
