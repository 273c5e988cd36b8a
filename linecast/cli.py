"""Command line entry points.

    linecast server --addr :8080 --file sample.txt --delay 1000 [--stun URL]
    linecast client --server http://localhost:8080/offer --output out.txt [--stun URL]
    linecast config init config.yaml
    linecast selftest
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

from loguru import logger

from linecast.app_config import ClientSettings, ServerSettings, load_settings, save_settings
from linecast.domain.lifecycle.client_lifecycle import ClientLifecycle
from linecast.main import serve
from linecast.services.integrations.rtc_transport import create_rtc_transport
from linecast.services.selftest import DEFAULT_SELFTEST_TIMEOUT, run_selftest
from linecast.services.signaling_client import SignalingClient
from linecast.shared.api.utils import init_logger
from linecast.utils.app_errors import AppError, ConfigError
from linecast.utils.signals import announce, install_shutdown_handlers


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--stun", default=None, help="STUN server URL (empty for host candidates only)")
    parser.add_argument("--config", default=None, help="YAML config file (default: ./config.yaml)")
    parser.add_argument("--debug", action="store_true", default=None, help="Enable debug logging")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linecast",
        description="Stream a text file line by line over a WebRTC data channel",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    server = commands.add_parser("server", help="Serve a file to every client that connects")
    server.add_argument("--addr", default=None, help="Listen address, e.g. :8080 or 127.0.0.1:8080")
    server.add_argument("--file", default=None, help="File to stream")
    server.add_argument("--delay", type=int, default=None, help="Delay between lines in milliseconds")
    _add_common_arguments(server)
    server.set_defaults(handler=run_server)

    client = commands.add_parser("client", help="Receive a file from a server")
    client.add_argument("--server", default=None, help="Signaling server offer URL")
    client.add_argument("--output", default=None, help="Output file (leave empty for stdout)")
    _add_common_arguments(client)
    client.set_defaults(handler=run_client)

    config = commands.add_parser("config", help="Configuration file helpers")
    config_commands = config.add_subparsers(dest="config_command", required=True)
    config_init = config_commands.add_parser("init", help="Write the effective configuration as YAML")
    config_init.add_argument("path", help="Where to write the config file")
    config_init.add_argument("--config", default=None, help="Existing config file to start from")
    config_init.set_defaults(handler=run_config_init)

    selftest = commands.add_parser("selftest", help="Connect two local peers and exchange a message")
    selftest.add_argument("--stun", default=None, help="STUN server URL")
    selftest.add_argument(
        "--timeout", type=float, default=DEFAULT_SELFTEST_TIMEOUT, help="Give up after this many seconds"
    )
    selftest.set_defaults(handler=run_selftest_command)

    return parser


def resolve_server_settings(args: argparse.Namespace) -> ServerSettings:
    overrides = {
        "addr": args.addr,
        "file": args.file,
        "delay": args.delay,
        "stun": args.stun,
        "debug": args.debug,
    }
    return load_settings(args.config, server=overrides).server


def resolve_client_settings(args: argparse.Namespace) -> ClientSettings:
    overrides = {
        "server": args.server,
        "output": args.output,
        "stun": args.stun,
        "debug": args.debug,
    }
    return load_settings(args.config, client=overrides).client


def run_server(args: argparse.Namespace) -> int:
    settings = resolve_server_settings(args)
    init_logger(settings.debug)

    logger.info("Starting WebRTC file streaming server")

    host, port = settings.listen
    logger.info("Listen address: {}:{}", host, port)

    if not Path(settings.file).is_file():
        logger.error("File not found: {}", settings.file)
        return 1

    return asyncio.run(serve(settings))


async def _client_main(settings: ClientSettings) -> int:
    transport = create_rtc_transport(settings.stun or None)
    lifecycle = ClientLifecycle(
        transport=transport,
        signaling=SignalingClient(settings.server, timeout=settings.http_timeout),
        output=settings.output,
        gathering_timeout=settings.gathering_timeout,
        on_ready=lambda: announce(f"CLIENT_PID={os.getpid()}"),
    )

    remove_handlers = install_shutdown_handlers(lifecycle.request_shutdown)
    try:
        stats = await lifecycle.run()
    except AppError as exc:
        logger.error("Client failed: {}", exc)
        return 1
    finally:
        remove_handlers()

    return 0 if stats.ok else 1


def run_client(args: argparse.Namespace) -> int:
    settings = resolve_client_settings(args)
    init_logger(settings.debug)

    logger.info("Starting WebRTC file streaming client")
    logger.info("Connecting to server: {}", settings.server)

    return asyncio.run(_client_main(settings))


def run_config_init(args: argparse.Namespace) -> int:
    init_logger()
    settings = load_settings(args.config)
    path = save_settings(settings, args.path)
    print(f"Configuration written to {path}")
    return 0


def run_selftest_command(args: argparse.Namespace) -> int:
    init_logger()
    try:
        ok = asyncio.run(run_selftest(args.stun or None, timeout=args.timeout))
    except AppError as exc:
        logger.error("Connection test failed: {}", exc)
        return 1
    return 0 if ok else 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return args.handler(args)
    except ConfigError as exc:
        logger.error("Configuration error: {}", exc)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
