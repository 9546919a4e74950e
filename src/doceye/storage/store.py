"""JSON state file persistence."""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..utils.logging import get_structured_logger
from .types import MonitorState, StorageError

logger = get_structured_logger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateStore:
    """Reads the state file once per run and writes it back atomically."""

    def __init__(self, state_file: Path):
        self.state_file = Path(state_file)
        self.state: Optional[MonitorState] = None

    def load(self) -> MonitorState:
        """Load state; a missing or unreadable file starts from empty state."""
        try:
            with open(self.state_file, encoding="utf-8") as f:
                self.state = MonitorState.from_dict(json.load(f))
        except FileNotFoundError:
            logger.info("No state file yet, starting fresh", state_file=str(self.state_file))
            self.state = MonitorState()
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(
                "Unreadable state file, starting fresh",
                state_file=str(self.state_file),
                error=str(e),
            )
            self.state = MonitorState()

        logger.info(
            "State loaded",
            sites=len(self.state.sites),
            documents=self.state.total_documents,
        )
        return self.state

    def save(self) -> None:
        """Write the state file through a temporary file and an atomic rename."""
        if self.state is None:
            raise StorageError("State not loaded")

        self.state.last_updated = utc_now()
        self.state_file.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            dir=self.state_file.parent, prefix=".state-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.state.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.state_file)
        except OSError as e:
            Path(temp_path).unlink(missing_ok=True)
            raise StorageError(f"Failed to save state: {str(e)}") from e

        logger.info("State saved", state_file=str(self.state_file))
