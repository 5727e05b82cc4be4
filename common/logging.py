"""
Stdout logging shared by every service in the chain.

Each record carries the emitting service's name so interleaved container
logs from the gateway, order, inventory and notification services can be told
apart. The level comes from LOG_LEVEL unless a caller passes one.
"""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(service_name)s %(name)s %(message)s"

# Client libraries that log every request or frame at INFO.
CHATTY_LOGGERS = ("httpx", "httpcore", "aio_pika", "aiormq")


class _ServiceFormatter(logging.Formatter):
    def __init__(self, service_name: str, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "service_name"):
            record.service_name = self.service_name
        return super().format(record)


def setup_logging(service_name: str, level: str | None = None) -> None:
    """
    Point the root logger at stdout, tagged with service_name.

    Calling it again (each service module does on import) swaps the formatter
    on the existing handlers instead of stacking new ones. Below DEBUG the
    HTTP and AMQP client loggers are held at WARNING.
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger()
    root.setLevel(level_name)

    formatter = _ServiceFormatter(service_name, fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    if not root.handlers:
        root.addHandler(logging.StreamHandler(sys.stdout))
    for handler in root.handlers:
        handler.setFormatter(formatter)

    chatty_level = logging.DEBUG if root.level <= logging.DEBUG else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)
