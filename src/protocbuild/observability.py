"""Structured logging and observability helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

Level = Literal["debug", "info", "warn", "error"]


@dataclass(slots=True)
class StructuredLogger:
    records: list[dict[str, Any]] = field(default_factory=list)
    debug_enabled: bool = True

    def log(
        self,
        *,
        operation: str,
        component: str,
        message: str,
        phase: str | None = None,
        plugin: str | None = None,
        level: Level = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        if level == "debug" and not self.debug_enabled:
            return
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "phase": phase,
            "component": component,
            "plugin": plugin,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)

    def records_for(
        self,
        *,
        operation: str | None = None,
        level: Level | None = None,
    ) -> list[dict[str, Any]]:
        return [
            record
            for record in self.records
            if (operation is None or record.get("operation") == operation)
            and (level is None or record.get("level") == level)
        ]

    def messages(self, level: Level | None = None) -> list[str]:
        return [str(record["message"]) for record in self.records_for(level=level)]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True, default=str) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path
