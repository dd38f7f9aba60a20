import json
import logging
from typing import Any, Dict

from .config import RuntimeConfig


def build_logger(config: RuntimeConfig) -> logging.Logger:
    config.ensure_paths()
    logger = logging.getLogger("gatekeeper.audit")
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    handler = logging.FileHandler(config.audit_log_path, encoding="utf-8")
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


def log_attempt(logger: logging.Logger, attempt: Dict[str, Any]) -> None:
    logger.info(json.dumps({"verification": attempt}, default=str))
