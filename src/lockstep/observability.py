"""Structured logging and progress reporting helpers."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO

from lockstep.config import ProgressConfig


@dataclass(slots=True)
class StructuredLogger:
    records: list[dict[str, Any]] = field(default_factory=list)

    def log(
        self,
        *,
        operation: str,
        message: str,
        environment: str | None = None,
        platform: str | None = None,
        task: str | None = None,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "environment": environment,
            "platform": platform,
            "task": task,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)

    def records_for_environment(self, environment: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("environment") == environment]

    def records_for_task(self, task: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("task") == task]

    def records_for_operation(self, operation: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("operation") == operation]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path


@dataclass(slots=True)
class Progress:
    """Line-oriented progress output, silenced by ``ProgressConfig(visible=False)``."""

    config: ProgressConfig = field(default_factory=ProgressConfig)
    stream: TextIO | None = None

    def message(self, text: str) -> None:
        if not self.config.visible:
            return
        stream = self.stream if self.stream is not None else sys.stderr
        stream.write(f"{self.config.prefix}{text}\n")
        stream.flush()


__all__ = ["Progress", "StructuredLogger"]
