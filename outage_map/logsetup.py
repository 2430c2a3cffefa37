from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

LOG_DIR = Path("logs")

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Path] = LOG_DIR,
) -> None:
    """Log to stderr and, when *log_dir* is given, to ``outage_map.log``."""
    handlers: list = [logging.StreamHandler()]
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "outage_map.log"))
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=_FORMAT, handlers=handlers)
