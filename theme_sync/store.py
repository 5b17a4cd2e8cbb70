"""Remote theme store sessions.

``ThemeStore`` pushes output-tree files to a Shopify theme through the
Admin asset API. ``NullStore`` is the local-only mode: both operations
return straight away without contacting anything.
"""

from __future__ import annotations

import base64
import logging
from enum import Enum
from pathlib import Path
from typing import Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from theme_sync.config import MODE_LOCAL, ThemeConfig
from theme_sync.errors import ErrorKind, PipelineError

logger = logging.getLogger(__name__)

# Extensions the asset API accepts as plain text "value"
TEXT_EXTENSIONS = {
    ".liquid", ".json", ".js", ".css", ".scss", ".html", ".svg", ".txt", ".md",
}


class SyncMode(Enum):
    REMOTE = "remote"
    LOCAL = "local"


class RemoteStore(Protocol):
    mode: SyncMode

    def sync(self, dest_path: str) -> None: ...

    def unsync(self, dest_path: str) -> None: ...

    def close(self) -> None: ...


class NullStore:
    """Local-only store: nothing leaves the machine."""

    mode = SyncMode.LOCAL

    def sync(self, dest_path: str) -> None:
        return None

    def unsync(self, dest_path: str) -> None:
        return None

    def close(self) -> None:
        return None


class ThemeStore:
    """Shopify Admin API asset client for one theme."""

    mode = SyncMode.REMOTE

    def __init__(
        self,
        root: Path,
        store: str,
        password: str,
        theme_id: int,
        api_version: str = "2024-01",
        timeout: float = 30,
        max_retries: int = 3,
        session: requests.Session | None = None,
    ):
        self.root = Path(root)
        self.store = store.removeprefix("https://").removeprefix("http://").rstrip("/")
        self.theme_id = theme_id
        self.timeout = timeout
        self.url = (
            f"https://{self.store}/admin/api/{api_version}/themes/{theme_id}/assets.json"
        )

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["PUT", "DELETE"],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        session.headers.update({
            "X-Shopify-Access-Token": password,
            "Accept": "application/json",
        })
        self.session = session

    def key_for(self, dest_path: str) -> str:
        try:
            return Path(dest_path).relative_to(self.root).as_posix()
        except ValueError:
            raise PipelineError(
                ErrorKind.OUTSIDE_ROOT, f"not under {self.root}", key=dest_path
            ) from None

    def _asset_payload(self, path: Path, key: str) -> dict:
        data = path.read_bytes()
        if path.suffix.lower() in TEXT_EXTENSIONS:
            try:
                return {"key": key, "value": data.decode("utf-8")}
            except UnicodeDecodeError:
                pass
        return {"key": key, "attachment": base64.b64encode(data).decode("ascii")}

    def sync(self, dest_path: str) -> None:
        """Upload the output file at *dest_path*."""
        key = self.key_for(dest_path)
        try:
            asset = self._asset_payload(Path(dest_path), key)
        except OSError as exc:
            raise PipelineError(ErrorKind.REMOTE_SYNC, str(exc), key=key) from exc

        try:
            response = self.session.put(
                self.url, json={"asset": asset}, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise PipelineError(
                ErrorKind.REMOTE_SYNC, _describe(exc), key=key
            ) from exc
        logger.debug("PUT %s (%s)", key, response.status_code)

    def unsync(self, dest_path: str) -> None:
        """Delete the remote asset that mirrors *dest_path*."""
        key = self.key_for(dest_path)
        try:
            response = self.session.delete(
                self.url, params={"asset[key]": key}, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise PipelineError(
                ErrorKind.REMOTE_UNSYNC, _describe(exc), key=key
            ) from exc
        logger.debug("DELETE %s (%s)", key, response.status_code)

    def close(self) -> None:
        self.session.close()


def _describe(exc: requests.RequestException) -> str:
    """Prefer the API's own error text over the generic HTTP message."""
    response = exc.response
    if response is None:
        return str(exc)
    try:
        body = response.json()
    except ValueError:
        body = None
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        return f"{response.status_code}: {errors}"
    return f"{response.status_code}: {response.reason}"


def open_store(theme: ThemeConfig, root: Path) -> ThemeStore | NullStore:
    """Return the store session for *theme*'s configured mode."""
    if theme.mode == MODE_LOCAL:
        return NullStore()
    return ThemeStore(
        root=root,
        store=theme.store,
        password=theme.password,
        theme_id=theme.theme_id,
        api_version=theme.api_version,
        timeout=theme.timeout,
        max_retries=theme.max_retries,
    )
