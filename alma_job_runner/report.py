from datetime import datetime

from loguru import logger
from pydantic import BaseModel


class ReportEntry(BaseModel):
    timestamp: datetime
    level: str
    message: str

    def format(self) -> str:
        return f"{self.timestamp.isoformat(timespec='seconds')} {self.level}: {self.message}"


class Report:
    """Log trail of a single run.

    Every entry is forwarded to loguru and kept so it can be mailed once the
    run is over.
    """

    def __init__(self):
        self.entries: list[ReportEntry] = []
        self.logger = logger

    def _add(self, level: str, message: str) -> None:
        self.entries.append(
            ReportEntry(timestamp=datetime.now().astimezone(), level=level, message=message)
        )
        self.logger.opt(depth=2).log(level, message)

    def debug(self, message: str) -> None:
        self._add("DEBUG", message)

    def info(self, message: str) -> None:
        self._add("INFO", message)

    def warning(self, message: str) -> None:
        self._add("WARNING", message)

    def error(self, message: str) -> None:
        self._add("ERROR", message)

    def text(self) -> str:
        return "\n".join(entry.format() for entry in self.entries)
