"""Command line interface entry point."""

import asyncio
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
import structlog
from rich.console import Console
from rich.table import Table

from mtls_kafka.connectors.kafka.batch import (
    DEFAULT_KEY_TEMPLATE,
    DEFAULT_PAYLOAD_TEMPLATE,
    BatchResult,
    build_demo_batch,
)
from mtls_kafka.connectors.kafka.config import ConsumerConfig, ProducerConfig, SecurityMode
from mtls_kafka.core.config import ConfigManager
from mtls_kafka.core.exceptions import ConfigurationError, ConnectError, TemplateError
from mtls_kafka.core.logging import LOG_FORMATS, configure_logging
from mtls_kafka.runner import run_consumer, run_producer

logger = structlog.get_logger()

DEFAULT_BROKERS = "localhost:9092"
DEFAULT_GROUP_ID = "example_consumer_group_id"
DEFAULT_CA_PATH = "./kubernetes/tls/ca.pem"
DEFAULT_KEY_PATH = "./kubernetes/tls/client-key.pem"
DEFAULT_CERT_PATH = "./kubernetes/tls/client.pem"

FATAL_ERRORS = (ConfigurationError, ConnectError, TemplateError)


def connection_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by both roles."""
    options = [
        click.option(
            "-b",
            "--brokers",
            default=None,
            help=f"Comma-delimited broker list [env: KAFKA_BROKERS, default: {DEFAULT_BROKERS}]",
        ),
        click.option(
            "--plaintext/--mutual-tls",
            "plaintext",
            default=None,
            help="Disable TLS (local development only)",
        ),
        click.option(
            "--verify/--no-verify",
            "verify",
            default=None,
            help="Verify the broker certificate",
        ),
        click.option(
            "--config",
            "config_file",
            type=click.Path(path_type=Path, dir_okay=False),
            default=None,
            help="YAML profile with 'consumer' and 'producer' sections",
        ),
        click.option(
            "--env-file",
            type=click.Path(path_type=Path, dir_okay=False),
            default=None,
            help=".env file to read before the process environment",
        ),
        click.option(
            "--log-level",
            envvar="LOG_LEVEL",
            default="INFO",
            show_default=True,
            help="Application log level",
        ),
        click.option(
            "--log-conf",
            "library_log_level",
            default=None,
            help="Log level for the aiokafka client library",
        ),
        click.option(
            "--log-format",
            type=click.Choice(LOG_FORMATS),
            default="console",
            show_default=True,
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def connection_defaults(manager: ConfigManager) -> dict[str, Any]:
    """Connection settings taken from the environment."""
    return {
        "brokers": manager.get_env("KAFKA_BROKERS", DEFAULT_BROKERS),
        "ca_path": manager.get_env("KAFKA_TLS_CLIENT_CA", DEFAULT_CA_PATH),
        "key_path": manager.get_env("KAFKA_TLS_CLIENT_KEY", DEFAULT_KEY_PATH),
        "cert_path": manager.get_env("KAFKA_TLS_CLIENT_CERT", DEFAULT_CERT_PATH),
    }


def connection_overrides(
    brokers: str | None,
    plaintext: bool | None,
    verify: bool | None,
) -> dict[str, Any]:
    return {
        "brokers": brokers,
        "security_mode": (
            None
            if plaintext is None
            else SecurityMode.PLAINTEXT if plaintext else SecurityMode.MUTUAL_TLS
        ),
        "verify_server_cert": verify,
    }


def parse_header(value: str) -> tuple[str, str]:
    name, sep, header_value = value.partition("=")
    if not sep or not name:
        raise click.BadParameter(f"expected NAME=VALUE, got {value!r}")
    return name, header_value


def print_outcomes(result: BatchResult, console: Console | None = None) -> None:
    """Render delivery outcomes as a table."""
    console = console or Console()

    table = Table(show_header=True, title="Delivery outcomes")
    table.add_column("#", justify="right")
    table.add_column("Key")
    table.add_column("Status")
    table.add_column("Partition", justify="right")
    table.add_column("Offset", justify="right")
    table.add_column("Error")

    for outcome in result:
        table.add_row(
            str(outcome.index),
            outcome.record.key if outcome.record else "",
            "[green]OK[/green]" if outcome.success else "[red]FAIL[/red]",
            "" if outcome.partition is None else str(outcome.partition),
            "" if outcome.offset is None else str(outcome.offset),
            str(outcome.error) if outcome.error else "",
        )

    console.print(table)
    console.print(
        f"{result.successful}/{result.total} delivered ({result.success_rate:.1f}%) "
        f"in {result.duration_ms:.2f}ms"
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="mtls-kafka")
def cli() -> None:
    """Kafka consumer and producer over mutual TLS."""


@cli.command()
@click.option(
    "-g",
    "--group-id",
    default=None,
    help=f"Consumer group id [default: {DEFAULT_GROUP_ID}]",
)
@click.option(
    "-t",
    "--topics",
    multiple=True,
    help="Topic to subscribe to (repeatable)",
)
@click.option("--partition-eof/--no-partition-eof", default=None, help="Log partition EOF")
@connection_options
def consume(
    group_id: str | None,
    topics: tuple[str, ...],
    partition_eof: bool | None,
    brokers: str | None,
    plaintext: bool | None,
    verify: bool | None,
    config_file: Path | None,
    env_file: Path | None,
    log_level: str,
    library_log_level: str | None,
    log_format: str,
) -> None:
    """Join a consumer group and log every record until interrupted."""
    configure_logging(log_level, log_format, library_log_level)

    try:
        manager = ConfigManager(env_file=env_file)
        config = manager.load_config(
            config_file,
            ConsumerConfig,
            section="consumer",
            defaults={**connection_defaults(manager), "group_id": DEFAULT_GROUP_ID},
            overrides={
                **connection_overrides(brokers, plaintext, verify),
                "group_id": group_id,
                "topics": list(topics) or None,
                "partition_eof_enabled": partition_eof,
            },
        )
        asyncio.run(run_consumer(config))
    except FATAL_ERRORS as e:
        logger.error("consumer_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


@cli.command()
@click.option("-t", "--topic", required=True, help="Destination topic")
@click.option("-n", "--count", type=click.IntRange(min=0), default=5, show_default=True)
@click.option("--key-template", default=DEFAULT_KEY_TEMPLATE, show_default=True)
@click.option("--payload-template", default=DEFAULT_PAYLOAD_TEMPLATE, show_default=True)
@click.option(
    "-H",
    "--header",
    "headers",
    multiple=True,
    help="Header NAME=VALUE added to every record (repeatable) [default: header_key=header_value]",
)
@click.option("--delivery-timeout-ms", type=click.IntRange(min=1), default=None)
@click.option(
    "--queue-timeout-ms",
    type=click.IntRange(min=0),
    default=0,
    show_default=True,
    help="Bound on queueing each record; 0 queues immediately",
)
@connection_options
def produce(
    topic: str,
    count: int,
    key_template: str,
    payload_template: str,
    headers: tuple[str, ...],
    delivery_timeout_ms: int | None,
    queue_timeout_ms: int,
    brokers: str | None,
    plaintext: bool | None,
    verify: bool | None,
    config_file: Path | None,
    env_file: Path | None,
    log_level: str,
    library_log_level: str | None,
    log_format: str,
) -> None:
    """Publish a batch of records and report every delivery outcome."""
    configure_logging(log_level, log_format, library_log_level)
    parsed_headers = [parse_header(h) for h in headers] if headers else None

    try:
        manager = ConfigManager(env_file=env_file)
        config = manager.load_config(
            config_file,
            ProducerConfig,
            section="producer",
            defaults=connection_defaults(manager),
            overrides={
                **connection_overrides(brokers, plaintext, verify),
                "delivery_timeout_ms": delivery_timeout_ms,
            },
        )
        records = build_demo_batch(
            count=count,
            key_template=key_template,
            payload_template=payload_template,
            headers=parsed_headers,
            template_engine=manager.template_engine,
        )
        result = asyncio.run(run_producer(config, topic, records, queue_timeout_ms))
    except FATAL_ERRORS as e:
        logger.error("producer_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)

    print_outcomes(result)


def main() -> None:
    cli()
