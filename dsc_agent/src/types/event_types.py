# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import logging

from enum import Enum
from datetime import datetime
from dataclasses import field, dataclass


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    DEBUG = "debug"

    @property
    def logging_level(self) -> int:
        return {
            LogLevel.INFO: logging.INFO,
            LogLevel.WARNING: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
            LogLevel.DEBUG: logging.DEBUG,
        }[self]


@dataclass
class LogEvent:
    """A timestamped, leveled progress event emitted by an agent loop"""

    level: LogLevel
    message: str
    source: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "source": self.source,
        }

    def __str__(self) -> str:
        return f"[{self.timestamp.isoformat()}] {self.level.value.upper()} {self.message}"
