"""
Multi-component logger for bundlespy. Every component receives an instance
explicitly and logs through it, so records share one JSON line format.
"""

import inspect
import logging
from datetime import datetime

from pydantic import BaseModel


class LogLine(BaseModel):
    """
    Represents a line in the bundlespy log
    """

    time: str
    level: str
    caller_file: str
    caller_name: str
    caller_line: int
    message: str


class BundlespyLogger:
    """
    Logger class
    """

    def __init__(self, name: str = "bundlespy") -> None:
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

    def log(self, debug_message: str, level: int) -> None:
        """
        Log the debug message as a single JSON line
        """
        if not self.logger.isEnabledFor(level):
            return
        debug_message = debug_message.replace("\n", " ")

        caller_frame = inspect.getframeinfo(inspect.currentframe().f_back, context=0)
        caller_file = caller_frame.filename.replace("\\", "/").split("/")[-1]

        self.logger.log(
            level=level,
            msg=LogLine(
                time=str(datetime.now()),
                level=logging.getLevelName(level),
                caller_file=caller_file,
                caller_name=caller_frame.function,
                caller_line=caller_frame.lineno,
                message=debug_message,
            ).model_dump_json(),
        )
