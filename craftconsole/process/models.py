from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from craftconsole.contracts import STDERR_PREFIX


class ProcessState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class LogOrigin(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class LogLine:
    """One captured output line tagged with the stream it came from."""

    text: str
    origin: LogOrigin = LogOrigin.STDOUT

    def render(self) -> str:
        if self.origin == LogOrigin.STDERR:
            return f"{STDERR_PREFIX}{self.text}"
        return self.text


class StartRequest(BaseModel):
    file_path: Optional[str] = None
    working_dir: Optional[str] = None
