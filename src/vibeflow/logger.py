"""Structured JSON logger for generation and error tracking."""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from vibeflow.constants import ERROR_TRUNCATION_CHARS
from vibeflow.logging_config import LOG_DATEFMT, LOG_FORMAT

__all__ = ["GenerationLogger", "LOG_FORMAT", "LOG_DATEFMT"]


class GenerationLogger:
    """Structured JSON-lines logger with request_id correlation."""

    def __init__(self, log_dir: Path, level: str = "INFO") -> None:
        self._log_dir = log_dir
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._logger = logging.getLogger("vibeflow.generation")
        self._logger.setLevel(getattr(logging, level.upper()))

        if not self._logger.handlers:
            handler = logging.FileHandler(log_dir / "generation.log")
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)

    def log_generation(
        self,
        request_id: str,
        section: str,
        provider: str,
        model: str,
        outcome: str,
        input_tokens: int,
        output_tokens: int,
        duration_ms: float,
    ) -> None:
        self._logger.info(
            json.dumps({
                "type": "generation",
                "timestamp": datetime.now(UTC).isoformat(),
                "request_id": request_id,
                "section": section,
                "provider": provider,
                "model": model,
                "outcome": outcome,
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "duration_ms": duration_ms,
            })
        )

    def log_error(
        self,
        request_id: str,
        component: str,
        error: str,
    ) -> None:
        self._logger.error(
            json.dumps({
                "type": "error",
                "timestamp": datetime.now(UTC).isoformat(),
                "request_id": request_id,
                "component": component,
                "error": error[:ERROR_TRUNCATION_CHARS],
            })
        )
