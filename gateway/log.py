import json
import logging
import os
import sys

logger = logging.getLogger("analysis-gateway")
logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(logging.Formatter("%(message)s"))
logger.addHandler(_handler)
logger.propagate = False


def log_event(level: int, message: str, **fields) -> None:
    payload = {"message": message, **fields}
    logger.log(level, json.dumps(payload, separators=(",", ":"), default=str))
