"""Stdio entry point serving the database handlers as JSON lines."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence, TextIO

import pydantic
from pydantic import BaseModel

from .config import AppConfig, load_config
from .handlers import DatabaseHandlers
from .registry import ConnectionRegistry

LOG = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Envelope(BaseModel):
    """One request line: `{"id", "channel", "payload"}`."""

    id: str | int | None = None
    channel: str
    payload: Any = None


async def serve(handlers: DatabaseHandlers, reader: TextIO, writer: TextIO) -> int:
    """Answer requests from `reader` until EOF; returns the number handled."""

    handled = 0
    while True:
        line = await asyncio.to_thread(reader.readline)
        if not line:
            break
        if not line.strip():
            continue
        reply = await _dispatch(handlers, line)
        writer.write(_encode(reply) + "\n")
        writer.flush()
        handled += 1
    return handled


async def _dispatch(handlers: DatabaseHandlers, line: str) -> dict[str, Any]:
    try:
        envelope = Envelope.model_validate_json(line)
    except pydantic.ValidationError as exc:
        LOG.warning("Malformed request line", extra={"errors": exc.error_count()})
        return {"id": _request_id(line), "response": {"success": False, "error": f"Malformed request: {exc}"}}
    response = await handlers.handle(envelope.channel, envelope.payload)
    return {"id": envelope.id, "response": response}


def _encode(reply: dict[str, Any]) -> str:
    try:
        return json.dumps(reply, default=str, allow_nan=False)
    except ValueError as exc:
        LOG.error("Response is not valid JSON", extra={"id": reply.get("id"), "error": str(exc)})
        failure = {"success": False, "error": f"Response could not be encoded: {exc}"}
        return json.dumps({"id": reply.get("id"), "response": failure}, default=str)


def _request_id(line: str) -> Any:
    try:
        raw = json.loads(line)
    except ValueError:
        return None
    return raw.get("id") if isinstance(raw, dict) else None


async def run(config: AppConfig, reader: TextIO, writer: TextIO) -> None:
    """Load saved connections, serve requests, then release every client."""

    registry = ConnectionRegistry.from_config(config)
    await registry.load()
    try:
        await serve(DatabaseHandlers(registry), reader, writer)
    finally:
        await registry.shutdown()


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="dbdesk", description="Serve database requests over stdio.")
    parser.add_argument("--config", type=Path, help="Path to config.toml")
    parser.add_argument("--data-dir", type=Path, help="Directory for saved connections")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the stdio server until stdin closes."""

    args = _parse_args(argv)
    config = load_config(args.config).with_overrides(
        data_dir=args.data_dir.expanduser() if args.data_dir else None,
        log_level=args.log_level.upper() if args.log_level else None,
    )
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT, stream=sys.stderr)
    LOG.info("Starting dbdesk", extra={"data_dir": str(config.data_dir)})
    try:
        asyncio.run(run(config, sys.stdin, sys.stdout))
    except KeyboardInterrupt:
        return 130
    return 0


__all__ = ["Envelope", "main", "run", "serve"]
