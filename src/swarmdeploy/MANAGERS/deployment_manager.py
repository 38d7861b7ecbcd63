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
Entry points for deployment requests. Every operation reports on a
``ResultStream`` and closes it exactly once, whatever happens.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence

from ..CLIENTS.orchestrator_client import OrchestratorClient
from ..MODELS.labels import ServiceRecord
from ..MODELS.service_spec import ServiceSpec
from ..MODELS.status_event import ResultStream, StatusLevel
from ..MODELS.swarm_config import SwarmConfig
from ..RUNNERS.process_runner import ProcessRunner
from ..UTILS.concurrency import NameLocks
from ..errors import SwarmDeployError
from .log_aggregator import LogAggregator, LogStream
from .network_manager import NetworkManager
from .project_query import ProjectQuery
from .removal import ServiceRemover
from .service_orchestrator import ServiceOrchestrator
from .stack_deployer import StackDeployer

logger = logging.getLogger(__name__)


class DeploymentManager:
    """
    Ties cluster setup, service reconciliation, stack deploys, listing, logs
    and removal together behind one object.
    """
    def __init__(self,
                 client: OrchestratorClient,
                 config: SwarmConfig,
                 runner: Optional[ProcessRunner] = None,
                 normalize_logs: Optional[Callable[[LogStream], LogStream]] = None,
                 sleep: Optional[Callable[[float], None]] = None):
        self.client = client
        self.config = config
        self.locks = NameLocks()
        self.network = NetworkManager(client, config)
        self.services = ServiceOrchestrator(client, config, self.locks)
        self.stacks = StackDeployer(client, config, runner=runner, sleep=sleep)
        self.query = ProjectQuery(client, config)
        self.logs_aggregator = LogAggregator(client, config, normalize=normalize_logs)
        self.remover = ServiceRemover(client, config)

    @contextmanager
    def _operation(self, stream: ResultStream) -> Iterator[ResultStream]:
        """
        Turns failures into a terminal error event and always closes the stream.
        """
        try:
            yield stream
        except SwarmDeployError as e:
            logger.debug("Deployment failed: %s", e)
            stream.write(str(e), level=StatusLevel.ERROR, **e.to_event_data())
        except Exception as e:
            logger.exception("Unexpected deployment failure")
            stream.write(f"Deployment failed: {e}", level=StatusLevel.ERROR)
        finally:
            stream.close()

    def init(self) -> bool:
        """
        Prepares the cluster. Returns False when swarm support is disabled.
        """
        return self.network.ensure_cluster_ready()

    def deploy_service(self, spec: ServiceSpec, user: str, project: str,
                       stream: ResultStream) -> Optional[List[ServiceRecord]]:
        """
        Creates or updates one service and reports the result.

        :return: The deployed records, or None if the deploy failed.
        """
        deployments = None
        with self._operation(stream):
            deployments = [self.services.reconcile(spec, user, project, stream)]
            stream.write("Deployment success!", level=StatusLevel.INFO, deployments=deployments)
        return deployments

    def deploy_stack(self,
                     compose_path: str,
                     base_name: str,
                     images: Sequence[str],
                     stream: ResultStream,
                     working_dir: Optional[str] = None,
                     cancel: Optional[threading.Event] = None) -> Optional[List[ServiceRecord]]:
        """
        Deploys a compose stack and reports the result.

        :return: The deployed records, or None if the deploy failed.
        """
        deployments = None
        with self._operation(stream):
            deployments = self.stacks.deploy(compose_path, base_name, images, stream, working_dir, cancel)
            stream.write("Deployment success!", level=StatusLevel.INFO, deployments=deployments)
        return deployments

    def list(self, user: str) -> List[ServiceRecord]:
        return self.query.list_services(user)

    def logs(self, identifier: str, user: str, follow: bool = False) -> Iterator[bytes]:
        return self.logs_aggregator.fetch_logs(identifier, user, follow)

    def remove(self, identifier: str, user: str) -> int:
        return self.remover.remove(identifier, user)
