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
Exceptions raised by the deployment engine.
"""
from typing import Any, Dict, List, Optional

NOT_FOUND_MESSAGE = "Service not found!"
COMPOSE_VERSION_MESSAGE = "Running in swarm mode, can only deploy docker-compose file of version 3!"


class SwarmDeployError(Exception):
    """
    Base class for every error the engine reports to its callers.
    """
    def to_event_data(self) -> Dict[str, Any]:
        """
        Extra fields attached to the terminal error event.
        """
        return {}


class ComposeVersionError(SwarmDeployError):
    """
    The compose file does not declare a swarm-compatible (3.x) version.
    """
    def __init__(self, compose: Optional[Dict[str, Any]] = None):
        super().__init__(COMPOSE_VERSION_MESSAGE)
        self.compose = compose

    def to_event_data(self) -> Dict[str, Any]:
        return {"data": self.compose}


class ImageResolutionError(SwarmDeployError):
    """
    A service with a build step has no matching pre-built image.
    """
    def __init__(self, service: str, candidates: List[str]):
        super().__init__(
            f"No built image found for service {service} (tried: {', '.join(candidates)})"
        )
        self.service = service
        self.candidates = candidates


class DeployCommandError(SwarmDeployError):
    """
    The external stack deploy command exited with a non-zero code.
    """
    def __init__(self, exit_code: int):
        super().__init__("Deployment failed!")
        self.exit_code = exit_code

    def to_event_data(self) -> Dict[str, Any]:
        return {"exitCode": str(self.exit_code)}


class StackTimeoutError(SwarmDeployError):
    """
    Stack services did not all appear before the deadline, or the wait was cancelled.
    """
    def __init__(self, missing: List[str], timeout: float, cancelled: bool = False):
        if cancelled:
            reason = "Cancelled"
        else:
            reason = f"Timed out after {timeout:g}s"
        super().__init__(f"{reason} waiting for stack services: {', '.join(missing)}")
        self.missing = missing
        self.timeout = timeout
        self.cancelled = cancelled

    def to_event_data(self) -> Dict[str, Any]:
        return {"missing": self.missing}


class ServiceNotFoundError(SwarmDeployError):
    """
    An identifier resolved to zero services.
    """
    def __init__(self, identifier: str):
        super().__init__(NOT_FOUND_MESSAGE)
        self.identifier = identifier

    @property
    def payload(self) -> Dict[str, str]:
        return {"error": NOT_FOUND_MESSAGE}


class RemovalError(SwarmDeployError):
    """
    One or more services of a batch could not be removed.
    """
    def __init__(self, failures: Dict[str, Exception], removed: int):
        names = ", ".join(sorted(failures))
        super().__init__(f"Failed to remove {len(failures)} service(s): {names}")
        self.failures = failures
        self.removed = removed


class OrchestratorNotFound(SwarmDeployError):
    """
    The orchestrator reports that an object does not exist.
    """
