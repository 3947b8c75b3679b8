import logging
from dataclasses import dataclass, field
from typing import Optional, List

logger = logging.getLogger("snapclassify.status")

MAX_LOGS = 200

@dataclass
class StatusStore:
    last_error: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    def log(self, msg: str):
        logger.info(msg)
        self.logs.append(msg)
        if len(self.logs) > MAX_LOGS:
            self.logs = self.logs[-MAX_LOGS:]

    def set_error(self, code: Optional[str]):
        self.last_error = code
