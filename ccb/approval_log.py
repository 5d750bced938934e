"""Append-only approval audit log (approval.jsonl).

Many hook processes may append at once. Each entry is serialized to one
line and written with a single ``os.write`` on an ``O_APPEND`` descriptor,
so lines from different processes never interleave and nothing is ever
rewritten in place.

Logging never raises to the caller: an audit-log outage must not stop the
tool call.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

from ccb.config import get_log_path
from ccb.errors import LogError
from ccb.models import Decision, HookRequest, LogEntry

logger = logging.getLogger(__name__)


class ApprovalLogger:
    """Writes LogEntry lines. One write per (session_id, datetime) per instance.

    A second attempt for a key already in flight waits for the first to
    finish and then returns without writing.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_log_path()
        self._lock = threading.Lock()
        self._attempts: dict[tuple[str, str], threading.Event] = {}

    def log(self, entry: LogEntry):
        key = (entry.session_id, entry.datetime)
        with self._lock:
            in_flight = self._attempts.get(key)
            if in_flight is None:
                done = threading.Event()
                self._attempts[key] = done

        if in_flight is not None:
            in_flight.wait()
            return

        try:
            self._append(entry)
        except LogError as e:
            logger.debug("Approval log write dropped: %s", e)
        except Exception as e:
            logger.debug("Approval log write dropped (unexpected): %s", e)
        finally:
            # Left in the table so later repeats of this key are no-ops too
            done.set()

    def _append(self, entry: LogEntry):
        # backslashreplace writes a lone surrogate as its JSON \uXXXX escape
        line = (json.dumps(entry.model_dump(), ensure_ascii=False, default=str) + "\n").encode(
            "utf-8", "backslashreplace"
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        except OSError as e:
            raise LogError(f"Unable to open approval log {self.path}: {e}") from e
        try:
            written = os.write(fd, line)
            if written != len(line):
                raise LogError(f"Short write to approval log ({written}/{len(line)} bytes)")
        except OSError as e:
            raise LogError(f"Unable to write approval log {self.path}: {e}") from e
        finally:
            os.close(fd)

    def log_approval(self, request: HookRequest, decision: Decision):
        """Build and write the entry for a final decision."""
        try:
            entry = LogEntry.for_decision(request, decision)
        except Exception as e:
            logger.debug("Approval log entry could not be built: %s", e)
            return
        self.log(entry)
