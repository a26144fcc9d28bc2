"""
Microsoft Graph authentication for reading the business calendar (MSAL device code flow).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import keyring
import msal
from keyring.errors import KeyringError
from rich.console import Console

from ..domain.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

console = Console()


KEYRING_SERVICE_NAME = "walkscheduler"


class GraphAuthenticator:
    """
    Obtains an access token for the walker's calendar.

    Tokens are cached in the system keyring and fall back to a file in the
    home directory (mode 0600) when no keyring backend is usable.
    """

    # Read access to the walker's own calendar is all the feed needs
    SCOPES = ["Calendars.Read"]

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        authority_url: str | None = None,
        cache_file: Path | None = None
    ):
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.authority = authority_url or f"https://login.microsoftonline.com/{tenant_id}"

        self.cache_file = cache_file or Path.home() / ".walkscheduler_token_cache.json"
        self._key_identifier = f"{self.client_id}:{self.tenant_id}"
        self._use_keyring = True
        self.cache = self._load_cache()

        self.app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
            token_cache=self.cache
        )

    @property
    def cache_backend(self) -> str:
        """Return the active cache backend (keyring or file)."""
        return "keyring" if self._use_keyring else "file"

    def _load_cache(self) -> msal.SerializableTokenCache:
        cache = msal.SerializableTokenCache()

        serialized = self._read_keyring()
        if serialized is None and self.cache_file.exists():
            try:
                serialized = self.cache_file.read_text(encoding="utf-8")
            except OSError as exc:
                logger.warning("Could not load token cache file %s: %s", self.cache_file, exc)

        if serialized:
            try:
                cache.deserialize(serialized)
            except ValueError as exc:
                logger.warning("Could not deserialize token cache: %s", exc)

        return cache

    def _read_keyring(self) -> Optional[str]:
        if not self._use_keyring:
            return None
        try:
            return keyring.get_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._disable_keyring(f"reading credentials failed: {exc}")
            return None

    def _save_cache(self) -> None:
        """Persist the token cache if MSAL changed it."""
        if not self.cache.has_state_changed:
            return

        serialized = self.cache.serialize()

        if self._use_keyring:
            try:
                keyring.set_password(KEYRING_SERVICE_NAME, self._key_identifier, serialized)
                return
            except KeyringError as exc:  # pragma: no cover - environment dependent
                self._disable_keyring(f"writing credentials failed: {exc}")

        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_text(serialized, encoding="utf-8")
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save token cache to %s: %s", self.cache_file, exc)

    def _disable_keyring(self, reason: str) -> None:
        logger.warning(
            "Secure credential storage unavailable (%s). Falling back to plaintext cache at %s.",
            reason, self.cache_file,
        )
        self._use_keyring = False

    def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Get a valid access token, using the cache or signing in again.

        Raises:
            AuthenticationError: If authentication fails
        """
        if not force_refresh:
            accounts = self.app.get_accounts()
            if accounts:
                result = self.app.acquire_token_silent(scopes=self.SCOPES, account=accounts[0])
                if result and "access_token" in result:
                    self._save_cache()
                    return result["access_token"]

        return self._authenticate_device_code_flow()

    def _authenticate_device_code_flow(self) -> str:
        console.print("\n[bold cyan]Calendar sign-in required[/bold cyan]")

        try:
            flow = self.app.initiate_device_flow(scopes=self.SCOPES)
        except Exception as exc:  # pragma: no cover - MSAL internal failure
            raise AuthenticationError(f"Failed to initiate device flow: {exc}") from exc

        if "user_code" not in flow:
            raise AuthenticationError(
                f"Failed to initiate device flow: {flow.get('error_description', 'Unknown error')}"
            )

        console.print(f"Open [bold cyan]{flow['verification_uri']}[/bold cyan] "
                      f"and enter the code [bold yellow]{flow['user_code']}[/bold yellow]")
        console.print("[dim]Waiting for authentication...[/dim]\n")

        result = self.app.acquire_token_by_device_flow(flow)

        if "access_token" not in result:
            error = result.get("error_description", "Unknown error")
            raise AuthenticationError(f"Authentication failed: {error}")

        console.print("[bold green]✓ Signed in[/bold green]\n")
        self._save_cache()

        return result["access_token"]

    def clear_cache(self) -> None:
        """Clear the token cache (force re-authentication next time)."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        try:
            keyring.delete_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            logger.warning("Could not remove credentials from keyring: %s", exc)
        self.cache = msal.SerializableTokenCache()
