"""Command line interface for the switchyard developer tools."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, AsyncIterator, Mapping, Sequence

from .config import ProviderConfig
from .core.adapters.events import event_to_dict
from .core.adapters.registry import backend_names, create_adapter, default_base_url
from .core.errors import AdapterError
from .core.message import Message, MessageRole

REPLAY_PROMPT = "(replay)"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Developer tools for switchyard backend adapters")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log request shapes at DEBUG level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    replay_parser = subparsers.add_parser(
        "replay", help="run recorded backend frames through a backend's stream pipeline"
    )
    replay_parser.add_argument("frames", type=Path, help="JSONL file with one raw backend frame per line")
    replay_parser.add_argument(
        "-b",
        "--backend",
        required=True,
        choices=backend_names(),
        help="Backend whose stream grammar the frames follow",
    )
    replay_parser.add_argument("-m", "--model", help="Model id; selects model-specific parsing")

    subparsers.add_parser("backends", help="list supported backends and their default endpoints")

    return parser


def _read_frames(path: Path) -> list[Mapping[str, Any]]:
    frames: list[Mapping[str, Any]] = []
    with path.open(encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                frame = json.loads(line)
            except json.JSONDecodeError as exc:
                msg = f"{path}:{number}: invalid JSON frame"
                raise AdapterError(msg) from exc
            if not isinstance(frame, dict):
                msg = f"{path}:{number}: frame must be a JSON object"
                raise AdapterError(msg)
            frames.append(frame)
    return frames


async def _emit_frames(frames: Sequence[Mapping[str, Any]]) -> AsyncIterator[Mapping[str, Any]]:
    for frame in frames:
        yield frame


async def _replay(config: ProviderConfig, frames: Sequence[Mapping[str, Any]]) -> int:
    adapter = create_adapter(
        config,
        None,
        stream_factory=lambda _client, _request: _emit_frames(frames),
    )
    iterator = adapter.stream("", [Message(role=MessageRole.USER, content=REPLAY_PROMPT)])
    try:
        async for event in iterator:
            sys.stdout.write(json.dumps(event_to_dict(event), ensure_ascii=False))
            sys.stdout.write("\n")
    finally:
        await iterator.aclose()
    return 0


def _handle_replay(args: argparse.Namespace) -> int:
    frames = _read_frames(args.frames)
    config = ProviderConfig(backend=args.backend, model_id=args.model)
    return asyncio.run(_replay(config, frames))


def _handle_backends(args: argparse.Namespace) -> int:
    for name in backend_names():
        sys.stdout.write(f"{name}\t{default_base_url(name)}\n")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        if args.command == "replay":
            return _handle_replay(args)
        if args.command == "backends":
            return _handle_backends(args)
    except (AdapterError, OSError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 1
    parser.error("no command provided")
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
