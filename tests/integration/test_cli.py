import json

import pytest
from click.testing import CliRunner
from swarmdeploy.CLI.main import cli
from swarmdeploy.MANAGERS.deployment_manager import DeploymentManager


@pytest.fixture
def manager(client, config):
    return DeploymentManager(client, config)


def invoke(manager, args):
    runner = CliRunner()
    return runner.invoke(cli, args, obj={'manager': manager})


def test_cli_help():
    runner = CliRunner()
    result = runner.invoke(cli, ['--help'])
    assert result.exit_code == 0
    assert 'Docker Swarm' in result.output

def test_cli_stack_help():
    runner = CliRunner()
    result = runner.invoke(cli, ['stack', '--help'])
    assert result.exit_code == 0
    assert '--image' in result.output

def test_cli_deploy_prints_events(manager, client):
    result = invoke(manager, ['deploy', 'shop:1', '-u', 'admin', '-p', 'shop', '-n', 'exo-admin-shop-1'])
    assert result.exit_code == 0
    events = [json.loads(line) for line in result.output.splitlines() if line.startswith('{')]
    assert events[-1]['message'] == 'Deployment success!'
    assert len(client.services) == 1

def test_cli_deploy_bad_restart(manager):
    result = invoke(manager, ['deploy', 'shop:1', '-u', 'admin', '-p', 'shop', '--restart', 'sometimes'])
    assert result.exit_code != 0
    assert 'Unknown restart policy' in result.output

def test_cli_logs_not_found(manager):
    result = invoke(manager, ['logs', 'missing', '-u', 'admin'])
    assert result.exit_code == 1
    assert '{"error": "Service not found!"}' in result.output

def test_cli_logs(manager, client):
    service_id = client.add_service('web', labels={'exoframe.user': 'admin'})
    client.logs[service_id] = [b'hello\n']
    result = invoke(manager, ['logs', 'web', '-u', 'admin'])
    assert result.exit_code == 0
    assert result.output == 'hello\n'

def test_cli_rm(manager, client):
    client.add_service('web', labels={'exoframe.user': 'admin', 'exoframe.project': 'shop'})
    result = invoke(manager, ['rm', 'shop', '-u', 'admin'])
    assert result.exit_code == 0
    assert 'Removed 1 service(s).' in result.output
    assert client.services == {}

def test_cli_list(manager, client):
    client.add_service('web', image='nginx:1', labels={'exoframe.user': 'admin'})
    result = invoke(manager, ['list', '-u', 'admin'])
    assert result.exit_code == 0
    assert 'web' in result.output
    assert 'nginx:1' in result.output
