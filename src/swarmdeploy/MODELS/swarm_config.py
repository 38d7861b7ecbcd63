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
Configuration for the swarm deployment engine.

A ``SwarmConfig`` is passed explicitly to every entry point; nothing reads
configuration from module state at call time.
"""
import os
from typing import Dict, List, Optional, Any

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel

ENV_PREFIX = "SWARMDEPLOY_"


class SwarmConfig(BaseModel):
    """
    Server-side settings that shape how services and stacks are deployed.
    """
    enabled: bool = True

    # Networking
    network: str = "exoframe-swarm"
    non_swarm_network: str = "exoframe"

    # Routing proxy
    traefik_name: str = "exoframe-traefik"
    traefik_image: str = "traefik:1.7"
    traefik_args: List[str] = []
    letsencrypt: bool = False
    letsencrypt_email: str = "admin@domain.com"
    compress: bool = True
    debug: bool = False

    # Platform control service
    server_name: str = "exoframe-server"

    # Stack deploys
    deploy_command: str = "docker"
    compose_file: str = "docker-compose.yml"
    stack_timeout: float = 300.0
    poll_interval: float = 1.0

    @classmethod
    def from_file(cls, path: str) -> "SwarmConfig":
        """
        Loads a YAML server config. Swarm settings live under ``plugins.swarm``;
        routing proxy settings are top-level keys.

        :param path: Path to the server config file.
        :return: The loaded configuration.
        """
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        swarm = (data.get('plugins') or {}).get('swarm') or {}
        values: Dict[str, Any] = {
            'enabled': bool(swarm.get('enabled', False)),
        }
        if swarm.get('network'):
            values['network'] = swarm['network']

        key_map = {
            'exoframeNetwork': 'non_swarm_network',
            'traefikName': 'traefik_name',
            'traefikImage': 'traefik_image',
            'traefikArgs': 'traefik_args',
            'letsencrypt': 'letsencrypt',
            'letsencryptEmail': 'letsencrypt_email',
            'compress': 'compress',
            'debug': 'debug',
        }
        for source, target in key_map.items():
            if data.get(source) is not None:
                values[target] = data[source]

        return cls(**values)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, base: Optional["SwarmConfig"] = None) -> "SwarmConfig":
        """
        Applies ``SWARMDEPLOY_*`` overrides on top of ``base`` (or the defaults).
        Values from ``env_file`` are read first; the process environment wins.

        :param env_file: Optional .env file with overrides.
        :param base: Configuration to override.
        :return: A new configuration.
        """
        env: Dict[str, Optional[str]] = {}
        if env_file and os.path.exists(env_file):
            env.update(dotenv_values(env_file))
        env.update(os.environ)

        values = (base or cls()).model_dump()
        for field in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{field.upper()}")
            if raw is None:
                continue
            if field == 'traefik_args':
                values[field] = raw.split()
            else:
                values[field] = raw
        return cls.model_validate(values)
