"""Run-scoped logging helpers: env-driven sinks, bound run context, harvest lines."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any

from loguru import logger

TRUTHY = {"1", "true", "yes", "on"}
JSON_SINK_NAME = "court_auction_{run_id}.jsonl"


def env_log_level(default: str = "INFO") -> str:
    """Return log level string from LOG_LEVEL env (fallback to ``default``)."""
    return os.getenv("LOG_LEVEL", default).upper()


def json_sink_path(log_dir: str | Path, run_id: str | None = None) -> Path:
    # loguru fills {time} itself when no run id is known yet
    return Path(log_dir) / JSON_SINK_NAME.format(run_id=run_id or "{time}")


def add_optional_sinks(run_id: str | None = None, log_dir: str | Path = "logs") -> Path | None:
    """Attach sinks switched on by env vars; returns the JSON sink path when one is added.

    - ``LOG_DEBUG_FILE``: path for a DEBUG sink.
    - ``LOG_JSON``: structured lines for one run in ``<log_dir>/court_auction_<run_id>.jsonl``.
      Records bound to another run are left out.
    """

    debug_file = os.getenv("LOG_DEBUG_FILE")
    if debug_file:
        logger.add(debug_file, level="DEBUG", backtrace=True, diagnose=True, enqueue=False)

    if os.getenv("LOG_JSON", "0").lower() not in TRUTHY:
        return None

    path = json_sink_path(log_dir, run_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(path),
        level="DEBUG",
        serialize=True,
        filter=lambda record: record["extra"].get("run_id") in (None, run_id),
        enqueue=False,
    )
    return path


def bind_run(run_id: str | None = None, **context: Any):
    """Return a logger with bound run context (run_id/court/state)."""
    return logger.bind(run_id=run_id, **{k: v for k, v in context.items() if v is not None})


def log_harvest(
    *,
    stage: str,
    query: Any,
    rows: int,
    kept: int | None = None,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """One structured line per harvested results page or finished run.

    ``rows`` counts table rows before normalization, ``kept`` the records left
    after de-duplication. ``None`` context values are dropped.
    """

    payload: dict[str, Any] = {"stage": stage, "query": query, "rows": rows}
    if kept is not None:
        payload["kept"] = kept
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 1)
    payload.update({k: v for k, v in context.items() if v is not None})
    logger.bind(**payload).info("harvest {stage}: {rows} rows", stage=stage, rows=rows)


class Timer:
    """Context timer; ``elapsed_ms`` is set on exit."""

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
