"""Persisted browser sessions.

A session snapshot holds the cookies and per-origin localStorage of a
browsing context, tagged with an expiry. Snapshots live under a sessions
directory as ``{name}.json``.

The SessionStore is an explicit handle: the orchestrator creates it and
passes it to the action interpreter. Loading fails closed, returning False
for a missing file, a malformed snapshot or an expired one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from stepwright.common.exceptions import SessionStoreError
from stepwright.common.page_handle import ContextHandle

logger = logging.getLogger(__name__)

DEFAULT_SESSIONS_DIR = "./sessions"
DEFAULT_MAX_AGE = 86400  # seconds

_SET_LOCAL_STORAGE = """(items) => {
    for (const [key, value] of Object.entries(items)) {
        try { localStorage.setItem(key, value); } catch (e) {}
    }
}"""


class OriginState(BaseModel):
    """localStorage contents of one origin."""

    model_config = ConfigDict(populate_by_name=True)

    origin: str
    local_storage: dict[str, str] = Field(
        default_factory=dict, alias="localStorage"
    )


class SessionSnapshot(BaseModel):
    """On-disk session format."""

    model_config = ConfigDict(populate_by_name=True)

    cookies: list[dict[str, Any]] = Field(default_factory=list)
    origins: list[OriginState] = Field(default_factory=list)
    saved_at: datetime = Field(alias="savedAt")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at < (now or datetime.now(timezone.utc))


class SessionStore:
    """Saves and restores session snapshots in one directory.

    Args:
        sessions_dir: Directory holding ``{name}.json`` snapshots.
        max_age: Lifetime in seconds given to newly saved snapshots.
    """

    def __init__(
        self,
        sessions_dir: str | Path = DEFAULT_SESSIONS_DIR,
        max_age: int = DEFAULT_MAX_AGE,
    ) -> None:
        self.sessions_dir = Path(sessions_dir)
        self.max_age = max_age

    def for_directory(self, sessions_dir: str | Path | None) -> SessionStore:
        """Return a store for ``sessions_dir`` sharing this store's settings."""
        if sessions_dir is None or Path(sessions_dir) == self.sessions_dir:
            return self
        return SessionStore(sessions_dir, self.max_age)

    def path_for(self, session_name: str) -> Path:
        return self.sessions_dir / f"{session_name}.json"

    def read_snapshot(self, session_name: str) -> SessionSnapshot | None:
        """Read a snapshot, or None when it is missing or malformed."""
        path = self.path_for(session_name)
        if not path.exists():
            return None
        try:
            return SessionSnapshot.model_validate_json(
                path.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as e:
            logger.warning(f"Unreadable session snapshot {path}: {e}")
            return None

    async def save_session(
        self, context: ContextHandle, session_name: str
    ) -> Path:
        """Persist the cookies and localStorage of ``context``.

        Returns:
            Path of the written snapshot.

        Raises:
            SessionStoreError: If the snapshot cannot be written.
        """
        cookies = await context.cookies()
        storage_state = await context.storage_state()

        origins = [
            OriginState(
                origin=origin["origin"],
                local_storage={
                    item["name"]: item["value"]
                    for item in origin.get("localStorage", [])
                },
            )
            for origin in storage_state.get("origins", [])
        ]

        saved_at = datetime.now(timezone.utc)
        snapshot = SessionSnapshot(
            cookies=cookies,
            origins=origins,
            saved_at=saved_at,
            expires_at=saved_at + timedelta(seconds=self.max_age),
        )

        path = self.path_for(session_name)
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(
                snapshot.model_dump_json(by_alias=True, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            raise SessionStoreError(session_name, str(path), e) from e

        logger.info(f"Session saved: {path}")
        return path

    async def load_session(
        self, context: ContextHandle, session_name: str
    ) -> bool:
        """Restore a snapshot into ``context``.

        Returns:
            True if the session was restored, False if it is missing,
            malformed or expired.
        """
        snapshot = self.read_snapshot(session_name)
        if snapshot is None:
            logger.info(f"Session not found: {self.path_for(session_name)}")
            return False
        if snapshot.is_expired():
            logger.info(f"Session expired: {session_name}")
            return False

        if snapshot.cookies:
            await context.add_cookies(snapshot.cookies)

        for origin in snapshot.origins:
            if not origin.local_storage:
                continue
            await self._restore_local_storage(context, origin)

        logger.info(f"Session loaded: {self.path_for(session_name)}")
        return True

    async def _restore_local_storage(
        self, context: ContextHandle, origin: OriginState
    ) -> None:
        # localStorage is only writable from a page on the origin itself
        page = await context.new_page()
        try:
            await page.goto(origin.origin, wait_until="commit")
            await page.evaluate(_SET_LOCAL_STORAGE, origin.local_storage)
        except Exception as e:
            logger.warning(
                f"Could not restore localStorage for {origin.origin}: {e}"
            )
        finally:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Ignoring page close error: {e}")

    def has_valid_session(self, session_name: str) -> bool:
        """Whether a non-expired snapshot with at least one cookie exists."""
        snapshot = self.read_snapshot(session_name)
        return (
            snapshot is not None
            and not snapshot.is_expired()
            and bool(snapshot.cookies)
        )

    def delete_session(self, session_name: str) -> bool:
        path = self.path_for(session_name)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Session deleted: {session_name}")
        return True

    def list_sessions(self) -> list[str]:
        if not self.sessions_dir.exists():
            return []
        return sorted(path.stem for path in self.sessions_dir.glob("*.json"))

    def cleanup_expired_sessions(self) -> int:
        """Delete every snapshot that is not a valid session.

        Returns:
            Number of deleted snapshots.
        """
        removed = 0
        for session_name in self.list_sessions():
            if not self.has_valid_session(session_name):
                self.delete_session(session_name)
                removed += 1
        if removed:
            logger.info(f"Removed {removed} expired session(s)")
        return removed
