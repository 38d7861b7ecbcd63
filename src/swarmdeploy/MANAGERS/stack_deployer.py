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
Stack deployments: retarget a compose file at the cluster, run
``docker stack deploy`` and wait until every stack service shows up.
"""
import json
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..CLIENTS.orchestrator_client import OrchestratorClient
from ..CONVERTERS.to_stack import StackConverter
from ..MODELS.labels import LABEL_NAME, ServiceRecord, labels_of, name_of
from ..MODELS.status_event import ResultStream, StatusLevel
from ..MODELS.swarm_config import SwarmConfig
from ..PARSERS.compose_parser import ComposeCodec, compose_version
from ..RUNNERS.process_runner import ProcessRunner, stack_deploy_args
from ..UTILS.concurrency import PollTimeout, map_ordered, poll_until
from ..errors import ComposeVersionError, DeployCommandError, StackTimeoutError

logger = logging.getLogger(__name__)

ERROR_MARKERS = ("error", "failed")


def line_level(line: str) -> StatusLevel:
    """
    Output lines mentioning an error or failure are reported at error level.
    """
    lowered = line.lower()
    return StatusLevel.ERROR if any(m in lowered for m in ERROR_MARKERS) else StatusLevel.INFO


def expected_services(stack: Dict[str, Any], base_name: str) -> List[str]:
    """
    The names the deployed stack services will be known by.

    Services carry their deployment name in ``deploy.labels``; services
    without one fall back to swarm's ``<stack>_<service>`` naming.
    """
    names = []
    for key, service in (stack.get("services") or {}).items():
        labels = ((service or {}).get("deploy") or {}).get("labels") or {}
        names.append(labels.get(LABEL_NAME) or f"{base_name}_{key}")
    return names


class StackDeployer:
    """
    Deploys a compose stack to the cluster and reports progress on a result stream.
    """
    def __init__(self,
                 client: OrchestratorClient,
                 config: SwarmConfig,
                 runner: Optional[ProcessRunner] = None,
                 codec: Optional[ComposeCodec] = None,
                 sleep: Optional[Callable[[float], None]] = None):
        """
        Initializes the stack deployer.

        :param client: Orchestrator client.
        :param config: Swarm configuration.
        :param runner: Runs the docker CLI.
        :param codec: Compose file codec.
        :param sleep: Sleep used between readiness polls.
        """
        self.client = client
        self.config = config
        self.runner = runner or ProcessRunner(config.deploy_command)
        self.codec = codec or ComposeCodec()
        self.converter = StackConverter(config, self.codec)
        self.sleep = sleep

    def deploy(self,
               compose_path: str,
               base_name: str,
               images: Sequence[str],
               stream: ResultStream,
               working_dir: Optional[str] = None,
               cancel: Optional[threading.Event] = None) -> List[ServiceRecord]:
        """
        Runs a full stack deploy.

        :param compose_path: Compose file; rewritten in place for the cluster.
        :param base_name: Stack name.
        :param images: Images built for this deploy.
        :param stream: Receives progress events.
        :param working_dir: Directory the deploy command runs in, the compose file's by default.
        :param cancel: Event that stops the deploy command and aborts the readiness wait.
        :return: Inspected records of every stack service.
        :raises ComposeVersionError: If the compose file is not version 3.
        :raises ImageResolutionError: If a built service has no image.
        :raises DeployCommandError: If the deploy command fails.
        :raises StackTimeoutError: If services do not appear in time.
        """
        compose = self.codec.load(compose_path)
        if not compose_version(compose).startswith("3"):
            logger.debug("Compose file should be of version 3!")
            raise ComposeVersionError(compose)

        stack = self.converter.convert_file(compose_path, base_name, images)
        stream.write(
            "Compose file modified for stack deploy",
            level=StatusLevel.VERBOSE,
            data=json.dumps(stack, indent=2),
        )

        working_dir = working_dir or os.path.dirname(os.path.abspath(compose_path))
        compose_file = os.path.relpath(os.path.abspath(compose_path), working_dir)
        exit_code = self.runner.run(
            stack_deploy_args(compose_file, base_name),
            working_dir,
            lambda line: stream.write(line, level=line_level(line)),
            cancel=cancel,
        )
        stream.write(f"Docker stack deploy exited with code {exit_code}", level=StatusLevel.INFO)
        logger.debug("Stack deploy executed, exit code: %s", exit_code)
        if cancel is not None and cancel.is_set():
            raise StackTimeoutError(expected_services(stack, base_name), self.config.stack_timeout, cancelled=True)
        if exit_code != 0:
            raise DeployCommandError(exit_code)

        expected = expected_services(self.codec.load(compose_path), base_name)
        found = self.wait_for_services(expected, cancel)
        return map_ordered(lambda s: self.client.get_service(s["ID"]).inspect(), found)

    def _observe(self, expected: List[str]) -> List[Optional[ServiceRecord]]:
        services = self.client.list_services()
        observed = []
        for name in expected:
            observed.append(next(
                (s for s in services if labels_of(s).get(LABEL_NAME) == name or name_of(s) == name),
                None,
            ))
        return observed

    def wait_for_services(self,
                          expected: List[str],
                          cancel: Optional[threading.Event] = None) -> List[ServiceRecord]:
        """
        Polls the service list until every expected service is present.

        :param expected: Service names from :func:`expected_services`.
        :param cancel: Event that aborts the wait.
        :return: The observed records, in ``expected`` order.
        :raises StackTimeoutError: On deadline or cancellation.
        """
        try:
            return poll_until(
                lambda: self._observe(expected),
                lambda observed: all(s is not None for s in observed),
                timeout=self.config.stack_timeout,
                interval=self.config.poll_interval,
                cancel=cancel,
                sleep=self.sleep,
            )
        except PollTimeout as e:
            missing = [name for name, s in zip(expected, e.last) if s is None]
            raise StackTimeoutError(missing, self.config.stack_timeout, cancelled=e.cancelled) from None
