"""
FileSessionStore
- Directory-of-records implementation of domain/ports/session_store.SessionStore.
- One `<user_id>.json` per user; blocking file I/O runs on a worker thread.
- Writes land in a temp file first and are swapped in with os.replace.
"""
from __future__ import annotations

import asyncio
import os
import re
import tempfile
from logging import getLogger
from pathlib import Path
from typing import Dict
from urllib.parse import quote

from pydantic import ValidationError

from relay_worker.domain.entities import Session
from relay_worker.domain.ports.session_store import SessionStore

logger = getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")
SUFFIX = ".json"


def record_name(user_id: str) -> str:
    """File name for a user's record.

    Ids outside [A-Za-z0-9_.-] are percent-encoded and a leading dot is encoded
    too, so a record name never collides with dotfiles or leaves the directory.
    """
    if _SAFE_NAME.match(user_id) and not user_id.startswith("."):
        return f"{user_id}{SUFFIX}"
    encoded = quote(user_id, safe="")
    if encoded.startswith("."):
        encoded = "%2E" + encoded[1:]
    return f"{encoded}{SUFFIX}"


class FileSessionStore(SessionStore):
    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def path_for(self, user_id: str) -> Path:
        return self.directory / record_name(user_id)

    # --- Reading ---

    async def load_all(self) -> Dict[str, Session]:
        return await asyncio.to_thread(self._load_all_sync)

    def _load_all_sync(self) -> Dict[str, Session]:
        sessions: Dict[str, Session] = {}
        if not self.directory.is_dir():
            logger.info("📂 No existing sessions found in %s", self.directory)
            return sessions

        for path in sorted(self.directory.iterdir()):
            # dotfiles are leftovers of interrupted writes
            if path.suffix != SUFFIX or path.name.startswith(".") or not path.is_file():
                continue
            try:
                session = Session.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, ValidationError) as e:
                logger.warning("⚠️ Skipping unreadable session record %s: %s", path.name, e)
                continue
            sessions[session.user_id] = session

        logger.info("📂 Loaded %d session(s) from %s", len(sessions), self.directory)
        return sessions

    # --- Writing ---

    async def save(self, session: Session) -> None:
        payload = session.to_json(indent=2)
        await asyncio.to_thread(self._write_sync, self.path_for(session.user_id), payload)

    def _write_sync(self, path: Path, payload: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise

    async def delete(self, user_id: str) -> None:
        await asyncio.to_thread(self.path_for(user_id).unlink, missing_ok=True)
