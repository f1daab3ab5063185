"""GitHub-hosted plugin packages.

Plugins are declared by their archive URL, e.g.
``https://github.com/owner/repo/archive/refs/heads/main.zip``. The version
file is read through the contents API at the same ref before anything is
downloaded.
"""

from __future__ import annotations

import base64
import re
from pathlib import Path
from urllib.parse import urlparse

import httpx
import orjson
import structlog

from Recipeweaver.config import Settings
from Recipeweaver.errors import PackageSourceError

log = structlog.get_logger()

_ARCHIVE_REF = re.compile(r"/archive/refs/(heads|tags)/.*$")


def git_remote_url(archive_url: str) -> str:
    """``.../archive/refs/heads/main.zip`` -> ``.../repo.git``."""
    return _ARCHIVE_REF.sub(".git", archive_url)


def contents_api_url(archive_url: str, api_base: str, path: str = "version.php") -> str:
    parts = [p for p in urlparse(archive_url).path.split("/") if p]
    if len(parts) < 2:
        raise PackageSourceError(f"cannot derive repository from {archive_url}")
    owner, repo = parts[0], parts[1]
    ref = None
    if len(parts) >= 5 and parts[2] == "archive" and parts[3] == "refs":
        name = "/".join(parts[5:]).removesuffix(".zip")
        ref = f"refs/tags/{name}" if parts[4] == "tags" else name
    elif len(parts) >= 4 and parts[2] == "archive":
        ref = "/".join(parts[3:]).removesuffix(".zip")
    url = f"{api_base.rstrip('/')}/repos/{owner}/{repo}/contents/{path}"
    return f"{url}?ref={ref}" if ref else url


class GithubPackageSource:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        headers = {"User-Agent": "recipeweaver", "Accept": "application/vnd.github+json"}
        if settings.github_api_token is not None:
            headers["Authorization"] = f"token {settings.github_api_token.get_secret_value()}"
        self._client = client or httpx.AsyncClient(
            timeout=settings.http_timeout_seconds, headers=headers, follow_redirects=True
        )

    async def fetch_version_file(self, url: str) -> str:
        api_url = contents_api_url(url, self.settings.github_api_url)
        try:
            resp = await self._client.get(api_url)
            resp.raise_for_status()
            data = orjson.loads(resp.content)
        except httpx.HTTPError as e:
            raise PackageSourceError(f"cannot read version file for {url}: {e}") from e
        except orjson.JSONDecodeError as e:
            raise PackageSourceError(f"unexpected response for {url}") from e
        content = data.get("content") if isinstance(data, dict) else None
        if not content:
            raise PackageSourceError(f"no version file found for {url}")
        return base64.b64decode(content).decode("utf-8", errors="replace")

    async def download(self, url: str, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with self._client.stream(
                "GET", url, timeout=self.settings.download_timeout_seconds
            ) as resp:
                resp.raise_for_status()
                with destination.open("wb") as fh:
                    async for chunk in resp.aiter_bytes():
                        fh.write(chunk)
        except httpx.HTTPError as e:
            raise PackageSourceError(f"download of {url} failed: {e}") from e
        log.info("github.package.downloaded", url=url, bytes=destination.stat().st_size)
        return destination

    async def close(self) -> None:
        await self._client.aclose()
