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
Unit tests for configuration loading.
"""
import yaml

from swarmdeploy.MODELS.swarm_config import SwarmConfig


def test_defaults():
    config = SwarmConfig()
    assert config.network == "exoframe-swarm"
    assert config.poll_interval == 1.0
    assert config.stack_timeout > 0


def test_from_file(tmp_path):
    path = tmp_path / "server.config.yml"
    path.write_text(yaml.safe_dump({
        "exoframeNetwork": "exo-local",
        "traefikName": "proxy",
        "letsencrypt": True,
        "letsencryptEmail": "ops@example.com",
        "plugins": {"swarm": {"enabled": True, "network": "cluster-net"}},
    }))
    config = SwarmConfig.from_file(str(path))
    assert config.enabled is True
    assert config.network == "cluster-net"
    assert config.non_swarm_network == "exo-local"
    assert config.traefik_name == "proxy"
    assert config.letsencrypt is True
    assert config.letsencrypt_email == "ops@example.com"


def test_from_file_without_swarm_section(tmp_path):
    path = tmp_path / "server.config.yml"
    path.write_text("debug: true\n")
    config = SwarmConfig.from_file(str(path))
    assert config.enabled is False
    assert config.network == "exoframe-swarm"
    assert config.debug is True


def test_from_env(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("SWARMDEPLOY_NETWORK=from-file\nSWARMDEPLOY_STACK_TIMEOUT=30\n")
    monkeypatch.setenv("SWARMDEPLOY_STACK_TIMEOUT", "45")
    monkeypatch.setenv("SWARMDEPLOY_TRAEFIK_ARGS", "--a --b")
    monkeypatch.setenv("SWARMDEPLOY_ENABLED", "false")

    config = SwarmConfig.from_env(str(env_file), base=SwarmConfig(server_name="srv"))
    assert config.network == "from-file"
    assert config.stack_timeout == 45.0
    assert config.traefik_args == ["--a", "--b"]
    assert config.enabled is False
    assert config.server_name == "srv"
