"""Console script for kiroku."""
from __future__ import annotations

import asyncio
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ._api import setup_logging
from ._env_helpers import parse_attr
from ._forwarder import Forwarder
from ._models import DeliveryResult, ForwarderConfig
from ._redact import REDACTED, redact

app = typer.Typer(help='Ship structured log events to the ingest API.')
console = Console()


async def _send_one(config: ForwarderConfig,
                    message: str,
                    severity: str,
                    attributes: dict[str, str]) -> DeliveryResult:
    async with Forwarder(config) as fwd:
        event = fwd.build_event(message, severity, attributes)
        return await fwd.deliver(event)


@app.command()
def send(
    message: str = typer.Argument(..., help='Event content.'),
    severity: str = typer.Option('INFO', '--severity', '-s'),
    attr: Optional[List[str]] = typer.Option(
        None, '--attr', '-a', help='Extra attribute, as key=value.'),
):
    """Send a single event and report the outcome."""
    try:
        attributes = dict(parse_attr(a) for a in attr or ())
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint='--attr')

    config = ForwarderConfig.from_env()
    if not config.enabled:
        console.print('[yellow]Delivery disabled[/yellow]: set '
                      'KIROKU_ENDPOINT and KIROKU_API_TOKEN.')
        return

    result = asyncio.run(_send_one(config, message, severity, attributes))

    if result.failed:
        status = f' ({result.status_code})' if result.status_code else ''
        console.print(f'[red]{result.outcome.value}{status}[/red] '
                      f'{escape(redact(result.detail) or "")}')
        raise typer.Exit(code=1)

    console.print(f'[green]{result.outcome.value}[/green] '
                  f'-> {config.ingest_url}')


@app.command('config')
def show_config():
    """Print the effective configuration (token redacted)."""
    config = ForwarderConfig.from_env()
    values = redact({
        'endpoint': config.endpoint,
        'ingest_url': config.ingest_url if config.endpoint else None,
        'timeout': config.timeout,
        'enabled': config.enabled,
        **config.base_attributes(),
    })

    values['api_token'] = REDACTED if config.api_token else None

    table = Table(title='kiroku')
    table.add_column('key')
    table.add_column('value')
    for k, v in values.items():
        table.add_row(k, '-' if v is None else escape(str(v)))
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option('127.0.0.1', '--host'),
    port: int = typer.Option(8000, '--port', '-p'),
):
    """Run the demo HTTP service."""
    import uvicorn

    setup_logging('kiroku')
    uvicorn.run('kiroku.app:create_app', factory=True,
                host=host, port=port)


if __name__ == '__main__':
    app()
