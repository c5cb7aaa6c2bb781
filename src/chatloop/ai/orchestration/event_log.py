"""JSONL event logs for generation runs."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Mapping, Sequence

from ...utils import logging as logging_utils
from .types import Message, ToolCallPart

LOGGER = logging.getLogger(__name__)


def _default_event_dir() -> Path:
    log_path = logging_utils.get_log_path()
    if log_path is not None:
        return log_path.parent / "events"
    return Path.home() / ".chatloop" / "logs" / "events"


@dataclass(slots=True)
class _NullGenerationEventLogRun:
    """Stand-in used when event logging is disabled."""

    path: Path | None = None

    def __enter__(self) -> "_NullGenerationEventLogRun":  # noqa: D401
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # noqa: D401
        return False

    def log_request(self, *_: Any, **__: Any) -> None:
        return

    def log_tools(self, *_: Any, **__: Any) -> None:
        return

    def log_suspended(self, *_: Any, **__: Any) -> None:
        return

    def log_completion(self, *_: Any, **__: Any) -> None:
        return

    def log_failure(self, *_: Any, **__: Any) -> None:
        return


class GenerationEventLogRun:
    """Context manager writing one JSONL entry per orchestrator event.

    Leaving the context without :meth:`log_completion` records a failure,
    so a cancelled or crashed run is still visible in the log.
    """

    def __init__(self, path: Path, *, context: Mapping[str, Any]) -> None:
        self.path = path
        self._file = path.open("w", encoding="utf-8")
        self._finalized = False
        self._write_entry("start", context)

    def __enter__(self) -> "GenerationEventLogRun":  # noqa: D401
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # noqa: D401
        if exc is not None and not self._finalized:
            self.log_failure(message=f"[{type(exc).__name__}] {exc}".rstrip())
        elif not self._finalized:
            self.log_failure(message="run aborted without completion")
        return False

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def log_request(
        self,
        *,
        step: int,
        messages: Sequence[Message],
        tool_names: Sequence[str],
        stream: bool,
    ) -> None:
        payload = {
            "step": step,
            "stream": stream,
            "tool_names": list(tool_names),
            "messages": [message.to_dict() for message in messages],
        }
        self._write_entry("request", payload)

    def log_tools(self, *, step: int, calls: Sequence[ToolCallPart]) -> None:
        if not calls:
            return
        self._write_entry("tools", {"step": step, "calls": [call.to_dict() for call in calls]})

    def log_suspended(self, *, step: int, pending: Sequence[ToolCallPart]) -> None:
        self._write_entry(
            "suspended",
            {"step": step, "pending": [call.call_id for call in pending]},
        )

    def log_completion(self, *, steps: int, message: Message | None, reason: str) -> None:
        if self._finalized:
            return
        payload = {
            "status": "success",
            "steps": steps,
            "reason": reason,
            "message": message.to_dict() if message is not None else None,
        }
        self._write_entry("completion", payload)
        self._finalized = True
        self.close()

    def log_failure(self, *, message: str, details: Mapping[str, Any] | None = None) -> None:
        if self._finalized:
            return
        payload: dict[str, Any] = {
            "status": "failure",
            "message": message,
        }
        if details:
            payload["details"] = dict(details)
        self._write_entry("failure", payload)
        self._finalized = True
        self.close()

    def _write_entry(self, event: str, payload: Mapping[str, Any] | None = None) -> None:
        entry: dict[str, Any] = {
            "event": event,
            "timestamp": time.time(),
        }
        if payload:
            for key, value in payload.items():
                entry[key] = self._safe_json(value)
        json.dump(entry, self._file, ensure_ascii=False)
        self._file.write("\n")
        self._file.flush()

    def _safe_json(self, value: Any, *, depth: int = 0) -> Any:
        if depth > 8:
            return repr(value)
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, Mapping):
            return {str(key): self._safe_json(val, depth=depth + 1) for key, val in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [self._safe_json(item, depth=depth + 1) for item in value]
        if isinstance(value, datetime):
            return value.isoformat()
        return repr(value)


class GenerationEventLogger:
    """Creates one event log per generation run when enabled."""

    def __init__(self, *, enabled: bool, base_dir: Path | str | None = None) -> None:
        self.enabled = bool(enabled)
        self._base_dir = Path(base_dir) if base_dir else _default_event_dir()

    def start_run(
        self,
        *,
        run_id: str,
        model_id: str,
        assistant_id: str,
        conversation_id: str,
        workflow_phase: str | None,
        max_steps: int,
    ) -> GenerationEventLogRun | _NullGenerationEventLogRun:
        if not self.enabled:
            return _NullGenerationEventLogRun()
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
            path = self._allocate_path(run_id)
            context = {
                "run_id": run_id,
                "model_id": model_id,
                "assistant_id": assistant_id,
                "conversation_id": conversation_id,
                "workflow_phase": workflow_phase,
                "max_steps": max_steps,
            }
            log_run = GenerationEventLogRun(path, context=context)
        except OSError:
            LOGGER.warning("Failed to start generation event log", exc_info=True)
            return _NullGenerationEventLogRun()
        LOGGER.debug("Generation event log started: %s", path)
        return log_run

    def _allocate_path(self, run_id: str) -> Path:
        timestamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
        safe_run_id = "".join(ch for ch in run_id if ch.isalnum())[:12] or "run"
        return self._base_dir / f"generation-{timestamp}-{safe_run_id}.jsonl"


__all__ = [
    "GenerationEventLogger",
    "GenerationEventLogRun",
]
