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
Label and naming conventions that encode user, project and deployment
identity on swarm services.

The orchestrator's label storage is the only record of who owns a service:
user + project + deployment identify one service, user + project identify
the set of services belonging to a project.
"""
import re
from typing import Any, Dict, Optional

LABEL_USER = "exoframe.user"
LABEL_PROJECT = "exoframe.project"
LABEL_DEPLOYMENT = "exoframe.deployment"
LABEL_NAME = "exoframe.name"

LABEL_TRAEFIK_BACKEND = "traefik.backend"
LABEL_TRAEFIK_NETWORK = "traefik.docker.network"
LABEL_TRAEFIK_ENABLE = "traefik.enable"
LABEL_TRAEFIK_PORT = "traefik.port"
LABEL_TRAEFIK_RULE = "traefik.frontend.rule"

ServiceRecord = Dict[str, Any]


def deployment_name(user: str, base_name: str, deploy_id: str) -> str:
    """
    Builds the unique service name for one deploy of one project.

    :param user: Owner of the deployment.
    :param base_name: Project directory or project name.
    :param deploy_id: Short unique id for this deploy.
    :return: A name like ``exo-admin-my-app-1a2b3c``.
    """
    raw = f"exo-{user}-{base_name}-{deploy_id}".lower()
    return re.sub(r"[^a-z0-9_.-]", "-", raw)


def identity_labels(
    user: str,
    project: str,
    deployment: str,
    host: Optional[str] = None,
    extra: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """
    Builds the identity and routing labels for a service.
    Caller supplied labels are kept; identity keys always win.
    """
    labels = dict(extra or {})
    labels[LABEL_DEPLOYMENT] = deployment
    labels[LABEL_USER] = user
    labels[LABEL_PROJECT] = project
    labels[LABEL_TRAEFIK_ENABLE] = "true"
    labels[LABEL_TRAEFIK_BACKEND] = host or deployment
    if host:
        labels[LABEL_TRAEFIK_RULE] = f"Host:{host}"
    return labels


def routing_labels(network: str) -> Dict[str, str]:
    """
    Labels binding a single service to the shared swarm network.
    """
    return {LABEL_TRAEFIK_PORT: "80", LABEL_TRAEFIK_NETWORK: network}


def labels_of(record: ServiceRecord) -> Dict[str, str]:
    return (record.get("Spec") or {}).get("Labels") or {}


def name_of(record: ServiceRecord) -> str:
    return (record.get("Spec") or {}).get("Name", "")


def image_of(record: ServiceRecord) -> Optional[str]:
    spec = record.get("Spec") or {}
    return ((spec.get("TaskTemplate") or {}).get("ContainerSpec") or {}).get("Image")


def owned_by(record: ServiceRecord, user: str) -> bool:
    return labels_of(record).get(LABEL_USER) == user


def in_project(record: ServiceRecord, user: str, project: str) -> bool:
    """
    True when the service belongs to ``project`` of ``user``.
    """
    labels = labels_of(record)
    return labels.get(LABEL_USER) == user and labels.get(LABEL_PROJECT) == project
