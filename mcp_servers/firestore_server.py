import os
import sys
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from core.project_config import CHECKED_SOURCES, resolve_project_id
from firestore_client import create_firestore_client, probe_connection
from mcp_servers.firestore_tools import FirestoreToolDispatcher

SERVER_NAME = "firestore-mcp-server"
SERVER_VERSION = "1.0.0"

logger = logging.getLogger("mcp-firestore")


class StartupError(RuntimeError):
    """The server cannot start: no project ID, or Firestore is unreachable."""


class ToolInvocationError(Exception):
    """Carries the JSON error body of a failed tool call to the MCP layer."""


def create_server(dispatcher: FirestoreToolDispatcher) -> Server:
    server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def handle_list_tools() -> List[types.Tool]:
        return dispatcher.tools()

    @server.call_tool(validate_input=False)
    async def handle_call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> List[types.TextContent]:
        result = await dispatcher.call(name, arguments)
        if result.is_error:
            # the low-level server turns a raised exception into isError=True with str(exc) as text
            raise ToolInvocationError(result.text)
        return [types.TextContent(type="text", text=result.text)]

    logger.info("Tools registered")
    return server


def _missing_project_message() -> str:
    lines = ["No Firestore project ID found. Checked, in order:"]
    lines += [f"  - {source}" for source in CHECKED_SOURCES]
    lines.append("Set GOOGLE_CLOUD_PROJECT (or FIREBASE_PROJECT_ID / GCLOUD_PROJECT) to choose a project.")
    return "\n".join(lines)


async def build_server(
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
) -> Tuple[Server, FirestoreToolDispatcher]:
    """Resolve the project, connect and probe Firestore, then register the tools.

    Raises StartupError before anything is registered when the project ID
    cannot be found or the connectivity probe fails.
    """
    env = os.environ if environ is None else environ

    resolution = resolve_project_id(cwd=cwd, environ=env)
    if resolution is None:
        raise StartupError(_missing_project_message())
    logger.info("Project ID: %s (from %s)", resolution.project_id, resolution.source)

    emulator_host = env.get("FIRESTORE_EMULATOR_HOST")
    try:
        db = create_firestore_client(resolution.project_id, emulator_host=emulator_host, environ=env)
        await probe_connection(db)
    except Exception as e:
        msg = f"Failed to connect to Firestore: {e}"
        if emulator_host:
            msg += f"\nMake sure the Firestore emulator is running on {emulator_host}"
        raise StartupError(msg) from e

    dispatcher = FirestoreToolDispatcher(db)
    return create_server(dispatcher), dispatcher


async def run(environ: Optional[Mapping[str, str]] = None, cwd: Optional[str] = None) -> None:
    """Serve the Firestore tools over stdio until the client disconnects."""
    server, _ = await build_server(environ=environ, cwd=cwd)
    async with stdio_server() as (read_stream, write_stream):
        logger.info("Firestore MCP Server started successfully and connected")
        await server.run(read_stream, write_stream, server.create_initialization_options())
    logger.info("Transport closed")


def _on_loop_exception(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    exc = context.get("exception")
    if exc is None:
        logger.warning("Event loop: %s", context.get("message"))
        return
    logger.critical("Unhandled exception in event loop: %s", context.get("message"), exc_info=exc)
    logging.shutdown()
    os._exit(1)


async def _serve() -> None:
    asyncio.get_running_loop().set_exception_handler(_on_loop_exception)
    await run()


def configure_logging() -> None:
    # stdout carries the protocol; basicConfig logs to stderr
    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main() -> None:
    configure_logging()
    logger.info("Starting Firestore MCP Server...")
    try:
        asyncio.run(_serve())
    except StartupError as e:
        logger.error("%s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except Exception:
        logger.exception("Failed to start server")
        sys.exit(1)


if __name__ == "__main__":
    main()
