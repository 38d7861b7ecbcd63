import threading
import time

import pytest
from swarmdeploy.CONVERTERS.to_stack import StackConverter
from swarmdeploy.MANAGERS.service_orchestrator import ServiceOrchestrator
from swarmdeploy.MODELS.labels import identity_labels
from swarmdeploy.MODELS.swarm_config import SwarmConfig
from swarmdeploy.PARSERS.compose_parser import ComposeCodec

def test_concurrent_reconcile_creates_once(client, config):
    """
    Twenty simultaneous deploys of the same image must end in one service.
    """
    orchestrator = ServiceOrchestrator(client, config)
    results = []

    def deploy(i):
        name = f"exo-admin-shop-{i}"
        spec = orchestrator.build_spec(name, "shop:1", labels=identity_labels("admin", "shop", name))
        results.append(orchestrator.reconcile(spec, "admin", "shop"))

    threads = [threading.Thread(target=deploy, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(client.services) == 1
    assert len({r["ID"] for r in results}) == 1
    assert len(results) == 20

def test_large_stack_conversion():
    # Generate a large compose file
    content = "version: '3'\nservices:\n"
    images = []
    for i in range(1000):
        content += f"  service_{i}:\n"
        content += f"    build: ./service_{i}\n"
        content += f"    networks: [exoframe]\n"
        content += f"    labels:\n"
        content += f"      exoframe.name: stack-{i}\n"
        images.append(f"stack_service_{i}:latest")

    start_time = time.time()
    stack = StackConverter(SwarmConfig()).convert(ComposeCodec.parse(content), "stack", images)
    end_time = time.time()

    assert len(stack["services"]) == 1000
    assert end_time - start_time < 2.0  # Should convert 1000 services in less than 2 seconds
