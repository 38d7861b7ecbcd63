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
Converter that retargets a Docker Compose file at a swarm cluster for
``docker stack deploy``.
"""
import copy
import logging
from typing import Any, Dict, List, Sequence

from ..MODELS.labels import LABEL_TRAEFIK_NETWORK
from ..MODELS.swarm_config import SwarmConfig
from ..PARSERS.compose_parser import ComposeCodec
from ..errors import ImageResolutionError

logger = logging.getLogger(__name__)


def image_candidates(base_name: str, service_key: str) -> List[str]:
    """
    Image names a built service may carry, in lookup order.

    Some engines strip dashes from repository names, so the dash-less
    variant is tried after the exact one.

    :param base_name: Stack (project) base name.
    :param service_key: Service key in the compose file.
    :return: The exact name followed by the dash-less variant.
    """
    exact = f"{base_name}_{service_key}:latest"
    candidates = [exact]
    stripped = exact.replace("-", "")
    if stripped != exact:
        candidates.append(stripped)
    return candidates


def resolve_image(base_name: str, service_key: str, images: Sequence[str]) -> str:
    """
    Picks the pre-built image for a service.

    :raises ImageResolutionError: If no candidate is among ``images``.
    """
    candidates = image_candidates(base_name, service_key)
    for candidate in candidates:
        if candidate in images:
            return candidate
    raise ImageResolutionError(service_key, candidates)


def _labels_to_dict(labels: Any) -> Dict[str, str]:
    """
    Compose accepts labels as a mapping or as a list of ``key=value`` strings.
    """
    if not labels:
        return {}
    if isinstance(labels, dict):
        return {str(k): "" if v is None else str(v) for k, v in labels.items()}
    result = {}
    for item in labels:
        key, _, value = str(item).partition("=")
        result[key] = value
    return result


class StackConverter:
    """
    Rewrites a compose document so ``docker stack deploy`` can run it on the cluster.
    """

    def __init__(self, config: SwarmConfig, codec: ComposeCodec = None):
        """
        :param config: Swarm configuration naming the shared and local networks.
        :param codec: Codec used to read and persist compose files.
        """
        self.config = config
        self.codec = codec or ComposeCodec()

    def convert(self, compose: Dict[str, Any], base_name: str, images: Sequence[str]) -> Dict[str, Any]:
        """
        Returns a transformed copy of ``compose``.

        - build steps are replaced by the matching pre-built image
        - the shared swarm network is declared external, the local network is dropped
        - every service joins the shared network instead of the local one
        - service labels move under ``deploy.labels`` with the routing network label

        :param compose: Parsed compose document.
        :param base_name: Stack base name used to build image names.
        :param images: Names of the images built for this deploy.
        :return: The transformed compose document.
        :raises ImageResolutionError: If a built service has no image.
        """
        network = self.config.network
        local_network = self.config.non_swarm_network
        stack = copy.deepcopy(compose)

        networks = {network: {"external": True}}
        networks.update(stack.get("networks") or {})
        networks.pop(local_network, None)
        stack["networks"] = networks

        services = stack.get("services") or {}
        for key, service in services.items():
            if service is None:
                service = services[key] = {}

            if "build" in service:
                del service["build"]
                service["image"] = resolve_image(base_name, key, images)

            service["networks"] = self._swap_networks(service.get("networks"), network, local_network)

            deploy = service.get("deploy") or {}
            merged = _labels_to_dict(deploy.get("labels"))
            merged.update(_labels_to_dict(service.pop("labels", None)))
            merged[LABEL_TRAEFIK_NETWORK] = network
            deploy["labels"] = merged
            service["deploy"] = deploy

        return stack

    @staticmethod
    def _swap_networks(current: Any, network: str, local_network: str) -> Any:
        """
        Shared network first, then every other declared network except the local one.
        """
        if isinstance(current, dict):
            swapped = {network: current.get(network)}
            for name, options in current.items():
                if name not in (network, local_network):
                    swapped[name] = options
            return swapped

        swapped = [network]
        for name in current or []:
            if name != local_network and name not in swapped:
                swapped.append(name)
        return swapped

    def convert_file(self, compose_path: str, base_name: str, images: Sequence[str]) -> Dict[str, Any]:
        """
        Transforms the compose file at ``compose_path`` in place.

        :return: The transformed compose document as written.
        """
        compose = self.codec.load(compose_path)
        stack = self.convert(compose, base_name, images)
        self.codec.dump(stack, compose_path)
        logger.debug("Compose file %s rewritten for stack deploy", compose_path)
        return stack
