"""Newline-delimited JSON-RPC server over stdin/stdout.

stdout carries protocol messages only; logging goes to stderr.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import IO, Any

from perplexity_bridge.config.settings import Settings
from perplexity_bridge.observability.logger import get_logger
from perplexity_bridge.pipeline.dispatcher import RequestDispatcher
from perplexity_bridge.pipeline.protocol import McpProtocol
from perplexity_bridge.transport.client import UpstreamClient

logger = get_logger("stdio")

SERVER_NAME = "perplexity-completions"
SERVER_VERSION = "0.1.0"


def read_message(stream: IO[bytes]) -> Any | None:
    """Read the next JSON message. Returns None at end of input."""
    while True:
        line = stream.readline()
        if not line:
            return None
        line = line.strip()
        if not line:
            continue
        try:
            return json.loads(line)
        except json.JSONDecodeError:
            logger.warning("skipping_non_json_line", line=line[:100].decode("utf-8", "replace"))
            continue


def write_message(stream: IO[bytes], message: dict) -> None:
    data = json.dumps(message, separators=(",", ":"), ensure_ascii=False) + "\n"
    stream.write(data.encode("utf-8"))
    stream.flush()


async def serve(
    protocol: McpProtocol,
    stdin: IO[bytes] | None = None,
    stdout: IO[bytes] | None = None,
) -> None:
    """Handle messages until stdin closes. Calls run concurrently; replies are written as they finish."""
    stdin = stdin or sys.stdin.buffer
    stdout = stdout or sys.stdout.buffer
    write_lock = asyncio.Lock()
    pending: set[asyncio.Task] = set()

    async def handle(message: Any) -> None:
        response = await protocol.handle_message(message)
        if response is None:
            return
        async with write_lock:
            await asyncio.to_thread(write_message, stdout, response)

    while True:
        message = await asyncio.to_thread(read_message, stdin)
        if message is None:
            break
        task = asyncio.create_task(handle(message))
        pending.add(task)
        task.add_done_callback(pending.discard)

    if pending:
        await asyncio.gather(*pending)
    logger.info("stdin_closed")


async def run(settings: Settings) -> None:
    client = UpstreamClient.from_settings(settings)
    profile = settings.tool_profile("stdio")
    protocol = McpProtocol(
        RequestDispatcher(client, profile),
        server_name=SERVER_NAME,
        server_version=SERVER_VERSION,
    )
    logger.info("stdio_server_running", profile=profile.name)
    try:
        await serve(protocol)
    finally:
        await client.close()
