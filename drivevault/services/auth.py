"""OAuth credentials for the Drive API.

Saved credentials are checked first and classified into a typed outcome, so
callers never inspect raw error payloads: an ``invalid_grant`` refresh failure
means the stored token is dead and the installed-app flow must run again.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from drivevault.core.logging import get_logger
from drivevault.exceptions import AuthError

logger = get_logger(__name__)

DEFAULT_SCOPES = ("https://www.googleapis.com/auth/drive.readonly",)


@dataclass(frozen=True)
class Authorized:
    """Saved credentials are valid (possibly after a refresh)."""

    credentials: Any


@dataclass(frozen=True)
class NoCredentials:
    """No usable token is stored: no token file, or one without a refresh token."""

    reason: str = "no token file"


@dataclass(frozen=True)
class InvalidGrant:
    """The refresh token was revoked or expired; re-authorization is required."""

    reason: str


@dataclass(frozen=True)
class AuthFailure:
    """Loading or refreshing failed for another reason."""

    error: Exception


AuthOutcome = Authorized | NoCredentials | InvalidGrant | AuthFailure


def classify_refresh_error(error: Exception) -> InvalidGrant | AuthFailure:
    """Classify a ``google.auth.exceptions.RefreshError``."""
    parts: list[str] = [str(arg) for arg in getattr(error, "args", ())]
    for arg in getattr(error, "args", ()):
        if isinstance(arg, dict):
            parts.append(str(arg.get("error", "")))
    if any("invalid_grant" in part for part in parts):
        return InvalidGrant(reason=str(error))
    return AuthFailure(error=error)


class GoogleAuthProvider:
    """Provide OAuth credentials backed by a token file."""

    def __init__(
        self,
        credentials_path: Path,
        token_path: Path,
        scopes: Sequence[str] = DEFAULT_SCOPES,
    ):
        """Initialize the provider.

        Args:
            credentials_path: OAuth client secrets JSON (installed app).
            token_path: Authorized-user token JSON, created on first authorization.
            scopes: OAuth scopes.
        """
        self.credentials_path = Path(credentials_path)
        self.token_path = Path(token_path)
        self.scopes = list(scopes)

    def check_saved_credentials(self) -> AuthOutcome:
        """Load the token file and refresh it if needed."""
        from google.auth.exceptions import RefreshError
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials

        if not self.token_path.exists():
            return NoCredentials()

        try:
            creds = Credentials.from_authorized_user_file(str(self.token_path), scopes=self.scopes)
        except (ValueError, OSError) as e:
            return AuthFailure(error=e)

        if creds.valid:
            return Authorized(credentials=creds)

        if not creds.refresh_token:
            return NoCredentials(reason="stored token has no refresh token")

        try:
            creds.refresh(Request())
        except RefreshError as e:
            return classify_refresh_error(e)
        except Exception as e:
            return AuthFailure(error=e)

        self._save_credentials(creds)
        logger.info("credentials_refreshed", token_path=str(self.token_path))
        return Authorized(credentials=creds)

    def get_client(self) -> Any:
        """Return valid credentials, running the OAuth flow when required.

        Raises:
            AuthError: If credentials cannot be loaded or obtained.
        """
        outcome = self.check_saved_credentials()

        if isinstance(outcome, Authorized):
            logger.info("credentials_loaded", token_path=str(self.token_path))
            return outcome.credentials

        if isinstance(outcome, AuthFailure):
            logger.error("credentials_load_failed", error=str(outcome.error))
            raise AuthError(f"Failed to load saved credentials: {outcome.error}")

        if isinstance(outcome, InvalidGrant):
            logger.warning("credentials_invalid_grant", reason=outcome.reason)
            self.token_path.unlink(missing_ok=True)
        else:
            logger.info(
                "credentials_not_found",
                token_path=str(self.token_path),
                reason=outcome.reason,
            )

        return self._authorize_interactively()

    def _authorize_interactively(self) -> Any:
        from google_auth_oauthlib.flow import InstalledAppFlow

        if not self.credentials_path.exists():
            raise AuthError(f"OAuth client secrets not found at {self.credentials_path}")

        try:
            flow = InstalledAppFlow.from_client_secrets_file(
                str(self.credentials_path), scopes=self.scopes
            )
            creds = flow.run_local_server(port=0)
        except Exception as e:
            logger.error("oauth_flow_failed", error=str(e))
            raise AuthError(f"OAuth authorization flow failed: {e}") from e

        self._save_credentials(creds)
        logger.info("credentials_authorized", token_path=str(self.token_path))
        return creds

    def _save_credentials(self, creds: Any) -> None:
        try:
            self.token_path.parent.mkdir(parents=True, exist_ok=True)
            self.token_path.write_text(creds.to_json(), encoding="utf-8")
        except OSError as e:
            raise AuthError(f"Failed to save OAuth token file: {e}") from e
