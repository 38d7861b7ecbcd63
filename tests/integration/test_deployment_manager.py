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
End-to-end tests through DeploymentManager with an in-memory cluster.
"""
import io
import json

import yaml

from conftest import FakeRunner
from swarmdeploy.MANAGERS.deployment_manager import DeploymentManager
from swarmdeploy.MODELS.labels import identity_labels
from swarmdeploy.MODELS.status_event import ResultStream


def deploy_once(manager, image="shop:1", name="exo-admin-shop-abc"):
    sink = io.StringIO()
    stream = ResultStream(sink=sink)
    spec = manager.services.build_spec(name, image, labels=identity_labels("admin", "shop", name),
                                       restart="none", hostname="shop.local")
    manager.deploy_service(spec, "admin", "shop", stream)
    return stream, [json.loads(l) for l in sink.getvalue().splitlines()]


def test_single_service_create_then_update(client, config):
    manager = DeploymentManager(client, config)

    stream, events = deploy_once(manager)
    assert stream.closed
    creates = [c for c in client.calls if c[0] == "create_service"]
    assert len(creates) == 1
    final = events[-1]
    assert final["message"] == "Deployment success!"
    assert len(final["deployments"]) == 1
    first = final["deployments"][0]
    assert first["Spec"]["TaskTemplate"]["RestartPolicy"] == {"Condition": "none", "MaxAttempts": 1}
    assert first["Spec"]["Networks"][0]["Aliases"] == ["shop.local"]

    stream, events = deploy_once(manager, name="exo-admin-shop-def")
    second = events[-1]["deployments"][0]
    assert second["ID"] == first["ID"]
    assert len([c for c in client.calls if c[0] == "create_service"]) == 1
    assert any(e["message"] == "Service successfully updated!" for e in events)


def test_failure_reported_in_band(client, config, monkeypatch):
    def boom(spec):
        raise RuntimeError("daemon down")

    monkeypatch.setattr(client, "submit_service", boom)
    manager = DeploymentManager(client, config)

    stream, events = deploy_once(manager)
    assert stream.closed
    assert events[-1]["level"] == "error"
    assert "daemon down" in events[-1]["message"]


def test_stack_version_2_rejected(client, config, tmp_path):
    path = tmp_path / "docker-compose.yml"
    path.write_text(yaml.safe_dump({"version": "2", "services": {"web": {"build": "."}}}))
    runner = FakeRunner()
    manager = DeploymentManager(client, config, runner=runner)
    stream = ResultStream()

    assert manager.deploy_stack(str(path), "stack", ["stack_web:latest"], stream) is None

    assert stream.closed
    assert len(stream.events) == 1
    assert stream.events[0].message == "Running in swarm mode, can only deploy docker-compose file of version 3!"
    assert stream.events[0].level == "error"
    assert client.mutations() == []
    assert runner.invocations == []


def test_stack_deploy_failure_carries_exit_code(client, config, tmp_path):
    path = tmp_path / "docker-compose.yml"
    path.write_text(yaml.safe_dump({"version": "3", "services": {"web": {"image": "nginx"}}}))
    manager = DeploymentManager(client, config, runner=FakeRunner(exit_code=2))
    stream = ResultStream()

    manager.deploy_stack(str(path), "stack", [], stream)

    final = stream.last
    assert final.message == "Deployment failed!"
    assert final.exitCode == "2"
    assert stream.closed


def test_stack_deploy_success(client, config, tmp_path):
    path = tmp_path / "docker-compose.yml"
    path.write_text(yaml.safe_dump({"version": "3.4", "services": {
        "web": {"build": ".", "labels": {"exoframe.name": "stack-web"}},
        "redis": {"image": "redis", "labels": {"exoframe.name": "stack-redis"}},
    }}))

    def stack_up():
        client.add_service("stack_web", labels={"exoframe.name": "stack-web", "exoframe.user": "admin",
                                                "exoframe.project": "stack"})
        client.add_service("stack_redis", labels={"exoframe.name": "stack-redis", "exoframe.user": "admin",
                                                  "exoframe.project": "stack"})

    manager = DeploymentManager(client, config, runner=FakeRunner(on_run=stack_up))
    stream = ResultStream()
    deployments = manager.deploy_stack(str(path), "stack", ["stack_web:latest"], stream)

    assert [d["Spec"]["Name"] for d in deployments] == ["stack_web", "stack_redis"]
    assert stream.last.message == "Deployment success!"

    ids = {d["ID"]: d["Spec"]["Name"] for d in deployments}
    client.logs.update({i: [f"{n} says hi\n".encode()] for i, n in ids.items()})
    logs = b"".join(manager.logs("stack", "admin")).decode()
    assert logs.index("Logs for stack_web") < logs.index("stack_web says hi") < logs.index("Logs for stack_redis")

    assert manager.remove("stack", "admin") == 2
    assert client.services == {}


def test_stack_timeout_reported_in_band(client, config, tmp_path):
    path = tmp_path / "docker-compose.yml"
    path.write_text(yaml.safe_dump({"version": "3", "services": {
        "redis": {"image": "redis", "labels": {"exoframe.name": "stack-redis"}},
    }}))

    manager = DeploymentManager(client, config, runner=FakeRunner())
    stream = ResultStream()
    assert manager.deploy_stack(str(path), "stack", [], stream) is None

    final = stream.last
    assert final.level == "error"
    assert final.message == "Timed out after 0s waiting for stack services: stack-redis"
    assert final.missing == ["stack-redis"]
    assert stream.closed
