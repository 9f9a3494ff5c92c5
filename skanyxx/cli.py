"""Command-line entry point: ``skanyxx`` or ``python -m skanyxx``."""

import asyncio
import json
import logging
import os
import sys

import click

from .client.api import KagentClient
from .config.settings import get_config, get_redis_url, validate_config
from .errors import SkanyxxError
from .models.alerts import Alert
from .observability.logging_config import configure_logging
from .services.alert_store import AlertStore
from .services.chat_service import ChatService
from .services.chat_store import ChatHistoryStore
from .storage.redis_helper import InvestigationRepository

logger = logging.getLogger(__name__)


def _build_client() -> KagentClient:
    try:
        config = get_config()
    except ValueError as e:
        raise click.ClickException(str(e))
    errors = validate_config(config)
    if errors:
        raise click.ClickException(f"Invalid configuration: {'; '.join(errors)}")
    return KagentClient(config)


def _run(coro):
    try:
        return asyncio.run(coro)
    except SkanyxxError as e:
        logger.error(f"{type(e).__name__}: {e}")
        raise click.ClickException(str(e))


def _print_alert(alert: Alert) -> None:
    click.echo(
        f"[{alert.severity.upper():8}] {alert.status:12} {alert.eventType:13} "
        f"{alert.namespace}/{alert.resourceName} - {alert.message}"
    )


@click.group()
@click.option('--environment', 'environment', default=None, help='Configuration preset (local, development, staging, production)')
@click.option('--runtime', 'runtime', default=None, type=click.Choice(['native', 'browser', 'dev_server']))
@click.option('--log-level', 'log_level', default=None, help='Logging level')
def main(environment, runtime, log_level):
    """KAgent backend client."""
    if environment:
        os.environ['KAGENT_ENVIRONMENT'] = environment
    if runtime:
        os.environ['SKANYXX_RUNTIME'] = runtime
    configure_logging(log_level)


@main.command()
def ping():
    """Check that the primary backend answers."""
    async def _ping():
        async with _build_client() as client:
            return await client.ping()

    if _run(_ping()):
        click.echo("KAgent backend is reachable")
    else:
        click.echo("KAgent backend is not reachable")
        sys.exit(1)


@main.command()
def agents():
    """List agents."""
    async def _agents():
        async with _build_client() as client:
            return await client.get_agents()

    for agent in _run(_agents()):
        state = "ready" if agent.ready else "not ready"
        click.echo(f"{agent.ref:40} {agent.type:12} {state:10} {agent.description}")


@main.command()
@click.argument('agent')
@click.argument('message')
def chat(agent, message):
    """Send MESSAGE to AGENT and print the reply."""
    async def _chat():
        async with _build_client() as client:
            service = ChatService(client, ChatHistoryStore())
            await service.start_chat(agent)
            return await service.send(agent, message)

    result = _run(_chat())
    click.echo(result.value.message)
    if result.is_fallback:
        sys.exit(1)


@main.group()
def alerts():
    """khook alerts."""


@alerts.command('list')
def list_alerts():
    async def _list():
        async with _build_client() as client:
            return await client.get_alerts()

    for alert in _run(_list()):
        _print_alert(alert)


@alerts.command()
def summary():
    async def _summary():
        async with _build_client() as client:
            return await client.get_alert_summary()

    click.echo(json.dumps(_run(_summary()).model_dump(by_alias=True), indent=2))


@alerts.command()
def watch():
    """Print alerts as they are pushed until the stream ends."""
    async def _watch():
        async with _build_client() as client:
            store = AlertStore()

            def on_alert(alert: Alert) -> None:
                store.upsert(alert)
                _print_alert(alert)

            def on_error(error: Exception) -> None:
                store.error = str(error)
                click.echo(f"Alert stream error: {error}", err=True)

            subscription = await client.subscribe_to_alerts(on_alert, on_error)
            try:
                await subscription.wait()
            finally:
                subscription.close()
            return store

    store = _run(_watch())
    if store.error:
        sys.exit(1)


@main.group()
def hooks():
    """khook hook definitions."""


@hooks.command('list')
def list_hooks():
    async def _list():
        async with _build_client() as client:
            return await client.get_hooks()

    for hook in _run(_list()):
        event_types = ", ".join(c.eventType for c in hook.spec.eventConfigurations)
        click.echo(f"{hook.namespace}/{hook.name:30} {event_types}")


@main.command()
def investigations():
    """List saved investigations (requires REDIS_URL)."""
    repository = InvestigationRepository.from_url(get_redis_url())
    if not repository.enabled:
        raise click.ClickException("REDIS_URL is not set")

    active = repository.load_active()
    if active is not None:
        click.echo(f"{active.id}  {active.status.value:10} {active.name} (step {active.current_step + 1}/{len(active.agents)})")
    for investigation in repository.load_history():
        click.echo(f"{investigation.id}  {investigation.status.value:10} {investigation.name} ended {investigation.end_time}")


if __name__ == '__main__':
    main()
