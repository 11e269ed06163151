from __future__ import annotations

import json
from typing import Generator, Iterable, TextIO

from instrumentlog.errors import EventParseError

from .events import LifecycleEvent, parse_event

_MAX_LINE_ECHO = 200


def _decode(line: str | bytes, line_number: int) -> str:
    if isinstance(line, str):
        return line
    try:
        return line.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EventParseError(
            message=f"Event line is not valid UTF-8 ({exc.reason} at byte {exc.start})",
            line=line[:_MAX_LINE_ECHO].decode("utf-8", errors="replace").strip(),
            line_number=line_number,
        ) from exc


def iter_events(stream: Iterable[str] | Iterable[bytes]) -> Generator[LifecycleEvent, None, None]:
    """Replay a recorded device event log, one lifecycle event object per line.

    Accepts text or binary streams. Binary lines are decoded one at a time so an
    undecodable line is reported with its own line number, after every event
    before it has already been yielded to the listener. Blank lines are skipped.
    Anything that is not a known lifecycle event raises EventParseError.
    """
    for line_number, line in enumerate(stream, start=1):
        stripped = _decode(line, line_number).strip()
        if not stripped:
            continue
        try:
            raw = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise EventParseError(
                message=f"Event line is not valid JSON ({exc.msg})",
                line=stripped[:_MAX_LINE_ECHO],
                line_number=line_number,
            ) from exc
        try:
            event = parse_event(raw)
        except ValueError as exc:
            raise EventParseError(
                message=f"Unrecognized lifecycle event: {exc}",
                line=stripped[:_MAX_LINE_ECHO],
                line_number=line_number,
            ) from exc
        yield event


def write_event(stream: TextIO, event: dict[str, object] | LifecycleEvent) -> None:
    """Append one lifecycle event to a device event log."""
    if hasattr(event, "model_dump"):
        data = event.model_dump()
    else:
        data = event
    stream.write(json.dumps(data, separators=(",", ":")))
    stream.write("\n")
