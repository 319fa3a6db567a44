"""Session credentials and the relogin collaborator.

The GeoPixels placement endpoint authenticates every request with the
session ``Token`` plus the account's ``Subject`` and ``UserId``.  One
:class:`Session` instance is shared by the HTTP client (reads it), the
relogin collaborator (refreshes it) and the engine (treats an empty token
as "logged out").

Credentials file (YAML)::

    token: "eyJhbGciOi..."
    subject: "1234567890"
    user_id: 42
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ghostpixel.errors import ConfigError
from ghostpixel.utils.fs import load_yaml

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Mutable session credentials."""

    token: str = ""
    subject: str | None = None
    user_id: int | str | None = None

    @property
    def logged_in(self) -> bool:
        return bool(self.token)

    def clear_token(self) -> None:
        self.token = ""

    def update(self, other: Session) -> None:
        self.token = other.token
        self.subject = other.subject
        self.user_id = other.user_id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            token=str(data.get("token") or ""),
            subject=(
                str(data["subject"]) if data.get("subject") is not None else None
            ),
            user_id=data.get("user_id"),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> Session:
        """Read credentials from a YAML file.

        Raises
        ------
        ConfigError
            If the file is empty or not a mapping.
        FileNotFoundError
            If *path* does not exist.
        """
        data = load_yaml(path)
        if not isinstance(data, dict):
            raise ConfigError(f"Credentials file {path} must contain a mapping")
        return cls.from_dict(data)


class CredentialFileRelogin:
    """Relogin by re-reading the credentials file.

    The operator (or an external sign-in helper) refreshes the file when
    the token expires.  A relogin succeeds only if the file now holds a
    token different from the one the server just rejected.

    Parameters
    ----------
    session : Session
        Shared session to refresh.
    path : str | Path
        Credentials YAML file.
    """

    def __init__(self, session: Session, path: str | Path) -> None:
        self._session = session
        self._path = Path(path)

    async def __call__(self) -> bool:
        rejected = self._session.token
        self._session.clear_token()
        logger.info("Attempting relog from %s", self._path)

        try:
            fresh = Session.from_file(self._path)
        except (FileNotFoundError, ConfigError, OSError) as exc:
            logger.error("Could not read credentials: %s", exc)
            fresh = Session()
        except yaml.YAMLError as exc:
            logger.error("Credentials file is not valid YAML: %s", exc)
            fresh = Session()

        if fresh.token and fresh.token != rejected:
            self._session.update(fresh)

        logger.info(
            "Relog %s", "successful" if self._session.logged_in else "failed",
        )
        return self._session.logged_in
