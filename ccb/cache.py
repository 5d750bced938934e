"""Directory-scoped decision cache.

One JSON document maps working directory -> request hash -> CacheEntry.
Lookups are scoped to the exact working-directory string: a command judged
safe in one project is never reused in another.

Caching is best-effort. A missing or corrupt file reads as empty, and a
failed write is logged and dropped. The whole document is rewritten on
every mutation; concurrent hook processes can lose each other's writes,
which only costs a repeat model call later.
"""

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from ccb.config import get_cache_path
from ccb.errors import CacheError
from ccb.models import CacheEntry, Decision, utc_now_iso

logger = logging.getLogger(__name__)

CacheStore = dict[str, dict[str, CacheEntry]]

_STORE_ADAPTER = TypeAdapter(CacheStore)


def generate_cache_key(tool_name: str, tool_input: Mapping[str, Any]) -> str:
    """SHA-256 over a canonical (sorted-key, compact) serialization.

    >>> a = generate_cache_key("Bash", {"command": "ls", "timeout": 5})
    >>> b = generate_cache_key("Bash", {"timeout": 5, "command": "ls"})
    >>> a == b, len(a)
    (True, 64)
    >>> a == generate_cache_key("Bash", {"command": "ls -la", "timeout": 5})
    False
    """
    canonical = json.dumps(
        {"toolName": tool_name, "toolInput": tool_input},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    # Lone surrogates are legal in decoded JSON strings
    return hashlib.sha256(canonical.encode("utf-8", "surrogatepass")).hexdigest()


# --- Legacy migration ---

_LEGACY_DECISION_LABELS = {"approve": "allow", "block": "deny"}


def _migrate_v1_decision_labels(raw: dict) -> dict:
    """v1 stored approve/block; current labels are allow/deny."""
    migrated: dict = {}
    for cwd, entries in raw.items():
        if not isinstance(entries, dict):
            continue
        out: dict = {}
        for key, entry in entries.items():
            if not isinstance(entry, dict):
                continue
            entry = dict(entry)
            label = entry.get("decision")
            entry["decision"] = _LEGACY_DECISION_LABELS.get(label, label)
            out[key] = entry
        migrated[cwd] = out
    return migrated


# Applied in order; each takes the raw document and returns the next version
MIGRATIONS: list[tuple[int, Callable[[dict], dict]]] = [
    (1, _migrate_v1_decision_labels),
]


def migrate_cache(raw: Any) -> tuple[CacheStore, int]:
    """Run every migration, then keep only entries valid under the current schema.

    Returns (store, dropped_count). Directories left with no entries are
    removed. ``ask`` or unknown labels never survive validation.

    >>> store, dropped = migrate_cache({"/p": {
    ...     "k1": {"toolName": "Bash", "toolInput": {}, "decision": "approve",
    ...            "reason": "ok", "timestamp": "2025-01-01T00:00:00.000Z"},
    ...     "k2": {"toolName": "Bash", "decision": "ask"}}})
    >>> store["/p"]["k1"].decision, dropped
    ('allow', 1)
    """
    if not isinstance(raw, dict):
        return {}, 0

    document = raw
    for version, migration in MIGRATIONS:
        document = migration(document)
        logger.debug("Applied cache migration v%d", version)

    store: CacheStore = {}
    dropped = 0
    for cwd, entries in document.items():
        valid: dict[str, CacheEntry] = {}
        for key, entry in entries.items():
            try:
                valid[key] = CacheEntry.model_validate(entry)
            except ValidationError:
                dropped += 1
        if valid:
            store[cwd] = valid
    return store, dropped


# --- Cache ---


class DecisionCache:
    """Persistent verdict store backed by a single JSON file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_cache_path()

    def load(self) -> CacheStore:
        """Load the whole store. Never raises; problems read as empty."""
        try:
            return self._load()
        except CacheError as e:
            logger.warning("%s. Starting fresh.", e)
            return {}

    def _load(self) -> CacheStore:
        if not self.path.exists():
            return {}

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (ValueError, RecursionError) as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            raise CacheError(f"Invalid JSON in approval cache {self.path}") from e
        except OSError as e:
            raise CacheError(f"Unable to read approval cache {self.path}: {e}") from e

        try:
            return _STORE_ADAPTER.validate_python(raw)
        except ValidationError:
            pass

        logger.warning("Migrating legacy approval cache format.")
        store, dropped = migrate_cache(raw)
        if dropped:
            logger.warning("Dropped %d cache entries that failed validation after migration", dropped)
        if store:
            try:
                self.save(store)
            except CacheError as e:
                logger.warning("%s", e)
        return store

    def save(self, store: CacheStore):
        """Rewrite the whole document via temp file + replace. Raises CacheError."""
        try:
            data = {
                cwd: {key: entry.model_dump(mode="json", by_alias=True) for key, entry in entries.items()}
                for cwd, entries in store.items()
            }
            text = json.dumps(data, indent=2, ensure_ascii=False)
        except ValueError as e:
            raise CacheError(f"Unable to serialize approval cache: {e}") from e
        self._write(text)

    def _write(self, text: str):
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".cache-", suffix=".tmp")
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except (OSError, UnicodeEncodeError) as e:
            raise CacheError(f"Unable to write approval cache {self.path}: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

    def get(self, tool_name: str, tool_input: Mapping[str, Any], cwd: str) -> Optional[CacheEntry]:
        """Return the entry for this exact (cwd, request) pair, if any."""
        store = self.load()
        return store.get(cwd, {}).get(generate_cache_key(tool_name, tool_input))

    def put(self, tool_name: str, tool_input: Mapping[str, Any], cwd: str, decision: str, reason: str):
        """Record a definite verdict. ``ask`` is refused; write failures are logged."""
        if decision not in ("allow", "deny"):
            raise ValueError(f"only allow/deny decisions are cached, got {decision!r}")

        store = self.load()
        try:
            entry = CacheEntry(
                tool_name=tool_name,
                tool_input=dict(tool_input),
                decision=decision,
                reason=reason,
                timestamp=utc_now_iso(),
            )
        except ValidationError as e:
            logger.warning("Approval cache entry for %s not recorded: %s", tool_name, e)
            return
        store.setdefault(cwd, {})[generate_cache_key(tool_name, tool_input)] = entry
        try:
            self.save(store)
        except CacheError as e:
            logger.warning("%s", e)

    def put_decision(self, tool_name: str, tool_input: Mapping[str, Any], cwd: str, decision: Decision):
        self.put(tool_name, tool_input, cwd, decision.verdict.value, decision.reason)

    def clear(self):
        """Overwrite the store with an empty document. Raises CacheError."""
        self._write(json.dumps({}, indent=2))

    def stats(self) -> dict[str, int]:
        """Entry counts per working directory."""
        return {cwd: len(entries) for cwd, entries in self.load().items()}
