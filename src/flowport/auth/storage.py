"""Session persistence for the CLI.

Stores the session in ~/.flowport/session.json with restrictive file
permissions (0o600). Tokens are kept in plaintext and protected by those
permissions only.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from .session import FlowSession, HelpdeskCredentials

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".flowport"


class SessionStore:
    """File-backed store for one FlowSession.

    Usage:
        store = SessionStore()
        store.save(session)
        session = store.load()
    """

    def __init__(self, config_dir: Path | str | None = None):
        self.config_dir = Path(config_dir).expanduser() if config_dir else DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.session_file = self.config_dir / "session.json"

    def load(self) -> FlowSession | None:
        if not self.session_file.exists():
            return None

        try:
            with open(self.session_file) as f:
                data = json.load(f)
            return FlowSession.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning("Could not load session from %s: %s", self.session_file, e)
            return None

    def save(self, session: FlowSession) -> None:
        with open(self.session_file, "w") as f:
            json.dump(session.to_dict(), f, indent=2)
        os.chmod(self.session_file, 0o600)

    def save_credentials(self, credentials: HelpdeskCredentials) -> FlowSession | None:
        """Attach helpdesk credentials to the stored session."""
        session = self.load()
        if session is None:
            return None
        session.helpdesk = credentials
        self.save(session)
        return session

    def clear(self) -> None:
        if self.session_file.exists():
            self.session_file.unlink()

    def get_status(self) -> dict[str, Any]:
        session = self.load()
        return {
            "config_dir": str(self.config_dir),
            "session": session.summary() if session else None,
            "expired": session.is_expired if session else None,
        }
