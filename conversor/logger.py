from __future__ import annotations

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

from . import config

_CONFIGURED = False


def _ensure_logs_dir() -> None:
    config.LOGS_DIR.mkdir(parents=True, exist_ok=True)


def _rotating_handler(log_file: str | Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        Path(log_file),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    return handler


def _configure_default_handlers() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    _ensure_logs_dir()

    root = logging.getLogger("conversor")
    root.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))

    root.addHandler(_rotating_handler(config.MAIN_LOG, logging.DEBUG))
    root.addHandler(_rotating_handler(config.ERROR_LOG, logging.ERROR))
    root.addHandler(console_handler)
    root.propagate = False

    _CONFIGURED = True


def get_logger(module_name: str) -> logging.Logger:
    """Returns a child of the ``conversor`` logger, installing handlers on first use.

    Library modules log through ``logging.getLogger(__name__)``; since they live
    under the ``conversor`` package their records reach the same handlers.
    """
    _configure_default_handlers()
    if module_name.startswith("conversor"):
        return logging.getLogger(module_name)
    return logging.getLogger(f"conversor.{module_name}")


def log_processing_summary(
    stats: Dict[str, Any],
    title: str = "Processing Summary",
    filename: str = "processing_summary.txt",
) -> Path:
    """
    Writes run statistics to a text file in the reports folder.

    Args:
        stats: Counters and timings of the run
        title: First line of the file
        filename: File name under ``config.REPORTS_DIR``

    Returns:
        Path of the written summary
    """
    config.REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    output_path = config.REPORTS_DIR / filename

    lines = [title, f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}", ""]
    for key in sorted(stats.keys()):
        lines.append(f"{key}: {stats[key]}")
    lines.append("")

    output_path.write_text("\n".join(lines), encoding="utf-8")
    logging.getLogger(__name__).info(f"Processing summary saved to {output_path}")
    return output_path
