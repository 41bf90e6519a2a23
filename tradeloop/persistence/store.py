"""JSON-file backed store for TradingState.

``load`` fails open: a missing or unreadable file yields an empty state.
``save`` never leaves a partial file as the primary: content goes to a temp
file in the same directory, the previous primary is copied to
``<path>.bak``, then the temp file atomically replaces the primary.

All read-modify-write sequences go through one ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from tradeloop.persistence.models import SymbolHistory, TradingDecision, TradingState

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Reading or writing the state document failed."""


class PersistenceStore:
    """Owns the in-memory TradingState and its backing file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._state: Optional[TradingState] = None

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".bak")

    @property
    def state(self) -> TradingState:
        """Current in-memory state, loaded from disk on first access."""
        if self._state is None:
            self._state = self.load()
        return self._state

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def load(self) -> TradingState:
        """Read the state document; never raises."""
        if not self.path.exists():
            logger.info("No state file at %s, starting with empty state", self.path)
            self._state = TradingState()
            return self._state
        try:
            raw = self.path.read_text(encoding="utf-8")
            state = TradingState.from_dict(json.loads(raw))
        except (OSError, ValueError, TypeError, OverflowError) as exc:
            logger.warning("Could not read state file %s (%s), starting with empty state", self.path, exc)
            state = TradingState()
        else:
            logger.info(
                "Loaded state from %s: %d symbol(s), %d run(s)",
                self.path,
                len(state.symbols),
                state.total_runs,
            )
        self._state = state
        return state

    def save(self, state: Optional[TradingState] = None) -> None:
        """Atomically persist ``state`` (defaults to the in-memory state).

        Raises:
            PersistenceError: If serialisation or any file operation fails.
        """
        state = self.state if state is None else state
        self._write_document(self._serialize(state))

    def _serialize(self, state: TradingState) -> str:
        try:
            return json.dumps(state.to_dict(), indent=2)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Could not serialise trading state: {exc}") from exc

    def _write_document(self, content: str) -> None:
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            if self.path.exists():
                shutil.copy2(self.path, self.backup_path)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise PersistenceError(f"Could not write state file {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def backup(self) -> Optional[Path]:
        """Copy the state file to ``<path>.backup.<YYYYmmdd_HHMMSS>``.

        Returns the backup path, or ``None`` when there is nothing to back up.

        Raises:
            PersistenceError: If the copy fails.
        """
        if not self.path.exists():
            return None
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        target = self.path.with_name(f"{self.path.name}.backup.{stamp}")
        try:
            shutil.copy2(self.path, target)
        except OSError as exc:
            raise PersistenceError(f"Could not back up {self.path}: {exc}") from exc
        logger.info("Backed up state file to %s", target)
        return target

    # ------------------------------------------------------------------
    # Locked mutations
    # ------------------------------------------------------------------

    async def record_decision(self, symbol: str, decision: TradingDecision) -> SymbolHistory:
        """Append ``decision`` to ``symbol``'s history and persist.

        A failed save is logged and the in-memory mutation is kept.
        """
        if decision.symbol != symbol:
            decision = dataclasses.replace(decision, symbol=symbol)
        async with self._lock:
            history = self.state.add_decision(decision)
            logger.info(
                "Recorded %s for %s (confidence %d%%, %d total)",
                decision.action,
                symbol,
                decision.confidence,
                history.total_decisions,
            )
            await self._persist_locked()
            return history

    async def increment_runs(self) -> int:
        """Bump the run counter and persist; returns the new count."""
        async with self._lock:
            total = self.state.increment_runs()
            await self._persist_locked()
            return total

    async def _persist_locked(self) -> None:
        try:
            content = self._serialize(self.state)
            await asyncio.to_thread(self._write_document, content)
        except PersistenceError as exc:
            logger.warning("State not persisted, keeping in-memory changes: %s", exc)
