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
Command Line Interface for SwarmDeploy.
"""
import json
import logging
import secrets
import sys

import click

from ..CLIENTS.orchestrator_client import DockerOrchestratorClient
from ..MANAGERS.deployment_manager import DeploymentManager
from ..MODELS.labels import deployment_name, identity_labels
from ..MODELS.status_event import ResultStream
from ..MODELS.swarm_config import SwarmConfig
from ..errors import RemovalError, ServiceNotFoundError


def _pairs(values, option):
    result = {}
    for value in values:
        if '=' not in value:
            raise click.BadParameter(f"expected KEY=VALUE, got {value!r}", param_hint=option)
        key, val = value.split('=', 1)
        result[key] = val
    return result


def _manager(ctx) -> DeploymentManager:
    obj = ctx.obj
    if 'manager' not in obj:
        client = DockerOrchestratorClient(base_url=obj['docker_url'])
        obj['manager'] = DeploymentManager(client, obj['config'])
    return obj['manager']


def _not_found(ctx, e: ServiceNotFoundError):
    click.echo(json.dumps(e.payload), err=True)
    ctx.exit(1)


@click.group()
@click.option('--config', '-c', 'config_file', type=click.Path(dir_okay=False), help='Server config YAML')
@click.option('--env-file', type=click.Path(dir_okay=False), help='.env file with SWARMDEPLOY_* overrides')
@click.option('--docker-url', default=None, help='Docker daemon URL')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
@click.pass_context
def cli(ctx, config_file, env_file, docker_url, verbose):
    """
    SwarmDeploy - deploy projects as Docker Swarm services.

    Creates or updates services, deploys compose stacks, and fetches logs
    or removes services by name or project.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    base = SwarmConfig.from_file(config_file) if config_file else None
    ctx.obj['config'] = SwarmConfig.from_env(env_file, base=base)
    ctx.obj['docker_url'] = docker_url


@cli.command()
@click.pass_context
def init(ctx):
    """Create the swarm network and the routing proxy."""
    if _manager(ctx).init():
        click.echo("Swarm ready.")
    else:
        click.echo("Swarm support is disabled.")


@cli.command()
@click.argument('image')
@click.option('--user', '-u', required=True, help='Owner of the deployment')
@click.option('--project', '-p', required=True, help='Project name')
@click.option('--name', '-n', default=None, help='Service name, generated when omitted')
@click.option('--env', '-e', multiple=True, help='KEY=VALUE environment entry')
@click.option('--label', '-l', multiple=True, help='KEY=VALUE service label')
@click.option('--restart', default='on-failure:2', show_default=True, help='none, any or on-failure[:N]')
@click.option('--hostname', default=None, help='Routing host name')
@click.pass_context
def deploy(ctx, image, user, project, name, env, label, restart, hostname):
    """Deploy a single service from IMAGE."""
    manager = _manager(ctx)
    name = name or deployment_name(user, project, secrets.token_hex(3))
    labels = identity_labels(user, project, name, host=hostname, extra=_pairs(label, '--label'))
    stream = ResultStream(sink=sys.stdout)
    try:
        spec = manager.services.build_spec(
            name,
            image,
            labels=labels,
            env=[f"{k}={v}" for k, v in _pairs(env, '--env').items()],
            restart=restart,
            hostname=hostname,
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--restart')
    if manager.deploy_service(spec, user, project, stream) is None:
        ctx.exit(1)


@cli.command()
@click.argument('compose_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--name', '-n', 'base_name', required=True, help='Stack name')
@click.option('--image', '-i', 'images', multiple=True, help='Pre-built image name')
@click.option('--timeout', type=float, default=None, help='Seconds to wait for stack services')
@click.pass_context
def stack(ctx, compose_file, base_name, images, timeout):
    """Deploy the compose stack in COMPOSE_FILE."""
    if timeout is not None:
        ctx.obj['config'] = ctx.obj['config'].model_copy(update={'stack_timeout': timeout})
    manager = _manager(ctx)
    stream = ResultStream(sink=sys.stdout)
    if manager.deploy_stack(compose_file, base_name, list(images), stream) is None:
        ctx.exit(1)


@cli.command(name='list')
@click.option('--user', '-u', required=True)
@click.pass_context
def list_services(ctx, user):
    """List services owned by a user"""
    services = _manager(ctx).list(user)
    click.echo(f"{'SERVICE':40} {'IMAGE':30}")
    click.echo("-" * 71)
    for svc in services:
        spec = svc.get('Spec', {})
        image = spec.get('TaskTemplate', {}).get('ContainerSpec', {}).get('Image', '')
        click.echo(f"{spec.get('Name', ''):40} {image:30}")


@cli.command()
@click.argument('identifier')
@click.option('--user', '-u', required=True)
@click.option('--follow', '-f', is_flag=True, help='Keep streaming')
@click.pass_context
def logs(ctx, identifier, user, follow):
    """Show logs for a service or a whole project"""
    try:
        chunks = _manager(ctx).logs(identifier, user, follow)
    except ServiceNotFoundError as e:
        _not_found(ctx, e)
        return
    out = click.get_binary_stream('stdout')
    for chunk in chunks:
        out.write(chunk if isinstance(chunk, bytes) else str(chunk).encode())
        out.flush()


@cli.command()
@click.argument('identifier')
@click.option('--user', '-u', required=True)
@click.pass_context
def rm(ctx, identifier, user):
    """Remove a service or a whole project"""
    try:
        count = _manager(ctx).remove(identifier, user)
    except ServiceNotFoundError as e:
        _not_found(ctx, e)
        return
    except RemovalError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
        return
    click.echo(f"Removed {count} service(s).")


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
