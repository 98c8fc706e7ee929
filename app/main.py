#!/usr/bin/env python3
"""
AKV Gateway - Entry Point

Runs the MCP server (stdio or streamable-http), or executes a single
command through the gateway and exits.
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

# Add app directory to path for imports when running directly
APP_DIR = Path(__file__).parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from akv_gateway import __version__
from akv_gateway.config import GatewayConfig, load_config, reload_config
from akv_gateway.executor.platform import UnifiedCliAdapter
from akv_gateway.server import create_server
from akv_gateway.utils.logging import LogBuffer, setup_logging


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Secure Azure CLI gateway for Key Vault management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with stdio transport (default for local dev)
  python main.py --transport stdio

  # Start with HTTP transport
  python main.py --transport streamable-http --port 8080

  # Run one command and exit
  python main.py --exec "az keyvault list --output table"

  # Check that az is installed and signed in
  python main.py --check
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"akv-gateway {__version__}",
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        help="Configuration directory path (default: ~/.akv-gateway/)",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "streamable-http"],
        help="Transport protocol (overrides config)",
    )
    parser.add_argument(
        "--host",
        type=str,
        help="Host to bind to (for HTTP transport, overrides config)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (for HTTP transport, overrides config)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--exec",
        dest="exec_command",
        metavar="COMMAND",
        help="Execute one command through the gateway and exit with its status",
    )
    mode.add_argument(
        "--check",
        action="store_true",
        help="Report whether the tool is installed and signed in, then exit",
    )
    return parser.parse_args()


def make_sighup_handler(adapter: UnifiedCliAdapter, config_dir: str | None):
    """Build a SIGHUP handler that reloads configuration into ``adapter``."""

    def handle_sighup(signum, frame):
        print("Received SIGHUP, reloading configuration...", file=sys.stderr)
        adapter.apply_config(reload_config(adapter.config, config_dir))

    return handle_sighup


def setup_signal_handlers(adapter: UnifiedCliAdapter, config_dir: str | None) -> None:
    """Setup signal handlers for config reload."""
    # Only setup SIGHUP on Unix systems
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, make_sighup_handler(adapter, config_dir))


def run_once(config: GatewayConfig, command: str) -> int:
    """Execute one command, print its output and return a process exit code."""
    adapter = UnifiedCliAdapter(config)
    result = asyncio.run(adapter.execute(command))

    if result.output:
        print(result.output, end="" if result.output.endswith("\n") else "\n")
    if result.error:
        print(result.error, end="" if result.error.endswith("\n") else "\n", file=sys.stderr)

    if result.succeeded:
        return 0
    return result.exit_code if result.exit_code > 0 else 1


def run_check(config: GatewayConfig) -> int:
    """Print the readiness check and return 0 only when fully ready."""
    adapter = UnifiedCliAdapter(config)
    check = asyncio.run(adapter.check_readiness())

    print(check.message)
    if check.version:
        print(f"Version: {check.version}")
    return 0 if check.available and check.authenticated else 1


def main() -> int:
    """Main entry point."""
    args = parse_args()

    # Load configuration
    try:
        config = load_config(args.config_dir)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    # Apply CLI overrides
    if args.transport:
        config.server.transport = args.transport
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port

    log_buffer = LogBuffer(capacity=config.logging.buffer_size) if config.logging.buffer_size else None
    setup_logging(config.server.log_level, config.logging.log_file, log_buffer)

    if args.exec_command is not None:
        return run_once(config, args.exec_command)
    if args.check:
        return run_check(config)

    try:
        bundle = create_server(config, log_buffer=log_buffer)
        setup_signal_handlers(bundle.adapter, args.config_dir)

        print(f"Starting AKV Gateway v{__version__}", file=sys.stderr)
        print(f"Transport: {config.server.transport}", file=sys.stderr)

        if config.server.transport == "stdio":
            print("Running in stdio mode...", file=sys.stderr)
            bundle.server.run(transport="stdio")
        else:
            print(
                f"Running on http://{config.server.host}:{config.server.port}",
                file=sys.stderr,
            )
            import uvicorn

            app = bundle.server.http_app()
            uvicorn.run(
                app,
                host=config.server.host,
                port=config.server.port,
                log_level=config.server.log_level,
            )
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Server error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
