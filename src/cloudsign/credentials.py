"""
Credentials and credentials sources

Signers never hold credentials themselves: each signing call asks its
``CredentialsSource`` for one immutable ``Credentials`` snapshot and uses
only that snapshot for the whole computation.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Union

from .exceptions import MissingCredentialsError, SigningErrorCodes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """
    Snapshot of the credentials used for one signing call

    Attributes:
        identity: Access key id (AWS) or user/client name (Chef)
        secret: Secret access key (AWS) or PEM private key (Chef)
        session_token: Session token for temporary AWS credentials
        expiration: When temporary credentials stop being valid
    """
    identity: str
    secret: str = field(repr=False)
    session_token: Optional[str] = field(default=None, repr=False)
    expiration: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        if self.expiration is None:
            return False
        return datetime.now(timezone.utc) >= _as_utc(self.expiration)

    def __repr__(self) -> str:
        return (
            f"Credentials(identity={self.identity!r}, secret={mask_secret(self.secret)}, "
            f"session_token={'<set>' if self.session_token else None}, "
            f"expiration={self.expiration!r})"
        )


class CredentialsSource(Protocol):
    """Anything that can hand out a credentials snapshot."""

    def get_credentials(self) -> Credentials:
        ...


class StaticCredentialsSource:
    """Always returns the same credentials."""

    def __init__(self, identity: str, secret: str, session_token: Optional[str] = None):
        self._credentials = Credentials(identity, secret, session_token)

    def get_credentials(self) -> Credentials:
        return self._credentials


class EnvironmentCredentialsSource:
    """
    Reads credentials from environment variables on every call.

    Defaults to the standard AWS variable names. Use ``for_chef()`` for the
    Chef client variables.
    """

    def __init__(
        self,
        identity_var: str = "AWS_ACCESS_KEY_ID",
        secret_var: str = "AWS_SECRET_ACCESS_KEY",
        token_var: Optional[str] = "AWS_SESSION_TOKEN",
        secret_may_be_path: bool = False,
    ):
        self.identity_var = identity_var
        self.secret_var = secret_var
        self.token_var = token_var
        self.secret_may_be_path = secret_may_be_path

    @classmethod
    def for_chef(cls) -> "EnvironmentCredentialsSource":
        """``CHEF_USER_ID`` plus ``CHEF_CLIENT_KEY`` (PEM text or a path to a PEM file)."""
        return cls("CHEF_USER_ID", "CHEF_CLIENT_KEY", token_var=None, secret_may_be_path=True)

    def get_credentials(self) -> Credentials:
        identity = os.environ.get(self.identity_var)
        secret = os.environ.get(self.secret_var)
        if not identity or not secret:
            missing = [name for name, value in ((self.identity_var, identity), (self.secret_var, secret)) if not value]
            raise MissingCredentialsError(
                f"Credentials not found in environment: {', '.join(missing)}",
                details={"missing_variables": missing}
            )

        if self.secret_may_be_path and "-----BEGIN" not in secret:
            secret = self._read_secret_file(secret)

        token = os.environ.get(self.token_var) if self.token_var else None
        return Credentials(identity, secret, token or None)

    def _read_secret_file(self, path: str) -> str:
        try:
            with open(os.path.expanduser(path), "r", encoding="utf-8") as fh:
                return fh.read()
        except OSError as e:
            raise MissingCredentialsError(
                f"Cannot read key file {path}: {e}",
                details={"path": path, "original_error": str(e)}
            )


class RefreshingCredentialsSource:
    """
    Caches temporary credentials and refreshes them before they expire.

    ``fetch`` is called when there is no cached snapshot, or when the cached
    one expires within ``refresh_margin``. A lock serializes refreshes so
    concurrent callers all observe one consistent snapshot.
    """

    def __init__(
        self,
        fetch: Callable[[], Credentials],
        refresh_margin: timedelta = timedelta(minutes=5),
    ):
        self._fetch = fetch
        self._refresh_margin = refresh_margin
        self._cached: Optional[Credentials] = None
        self._lock = threading.Lock()

    def get_credentials(self) -> Credentials:
        with self._lock:
            if self._needs_refresh(self._cached):
                logger.debug("Refreshing temporary credentials")
                fresh = self._fetch()
                if not isinstance(fresh, Credentials):
                    raise MissingCredentialsError(
                        f"Credentials fetcher returned {type(fresh).__name__}, expected Credentials"
                    )
                self._cached = fresh
            return self._cached

    def _needs_refresh(self, credentials: Optional[Credentials]) -> bool:
        if credentials is None:
            return True
        if credentials.expiration is None:
            return False
        refresh_at = _as_utc(credentials.expiration) - self._refresh_margin
        return datetime.now(timezone.utc) >= refresh_at


class _CallableCredentialsSource:
    def __init__(self, supplier: Callable[[], Credentials]):
        self._supplier = supplier

    def get_credentials(self) -> Credentials:
        return self._supplier()


CredentialsLike = Union[CredentialsSource, Credentials, Callable[[], Credentials]]


def as_credentials_source(credentials: CredentialsLike) -> CredentialsSource:
    """
    Adapt a ``Credentials`` value or a zero-argument callable to a source.

    Objects that already have ``get_credentials`` are returned unchanged.
    """
    if hasattr(credentials, "get_credentials"):
        return credentials  # type: ignore[return-value]
    if isinstance(credentials, Credentials):
        snapshot = credentials
        return _CallableCredentialsSource(lambda: snapshot)
    if callable(credentials):
        return _CallableCredentialsSource(credentials)
    raise TypeError(f"Cannot use {type(credentials).__name__} as a credentials source")


def snapshot_credentials(source: CredentialsSource, require_secret: bool = True) -> Credentials:
    """
    Take one credentials snapshot and check it is usable.

    Args:
        source: Where to get the credentials from
        require_secret: Whether an empty secret is an error

    Returns:
        Credentials: The snapshot

    Raises:
        MissingCredentialsError: If identity/secret are absent or the snapshot expired
    """
    credentials = source.get_credentials()
    if credentials is None:
        raise MissingCredentialsError("Credentials source returned no credentials")
    if not credentials.identity:
        raise MissingCredentialsError("Credentials identity is missing")
    if require_secret and not credentials.secret:
        raise MissingCredentialsError(
            "Credentials secret is missing",
            details={"identity": credentials.identity}
        )
    if credentials.is_expired:
        raise MissingCredentialsError(
            f"Credentials for {credentials.identity} expired at {credentials.expiration}",
            SigningErrorCodes.EXPIRED_CREDENTIALS,
            {"identity": credentials.identity}
        )
    return credentials


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret for display, keeping only its length visible."""
    if not value:
        return "<empty>"
    return f"<{len(value)} chars>"


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
