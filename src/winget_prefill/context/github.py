"""GitHub API client for the hosting platform and the package registry.

Both remote sources of the pre-fill pipeline live on GitHub:
- The release an installer URL points at (detection)
- The registry repository holding previous manifests (microsoft/winget-pkgs)

Design notes:
- Uses httpx for async HTTP requests
- 404 responses become NotFoundError; rate limits, 5xx responses and
  transport errors become TransientFetchError and are retried with tenacity
- Timeouts are bounded by the httpx client timeout and surface as
  TransientFetchError once retries are exhausted
- Uses a Protocol so the pipeline doesn't depend on the concrete
  implementation (makes testing with mocks easy)

GitHub API docs: https://docs.github.com/en/rest
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Protocol

import httpx
import yaml
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from winget_prefill.logging_config import get_logger
from winget_prefill.outcome import NotFoundError, TransientFetchError
from winget_prefill.schemas import (
    FileEntry,
    LicenseContent,
    Owner,
    Release,
    ReleaseAsset,
    Repository,
)

logger = get_logger(__name__)

GITHUB_WEBSITE = "github.com"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class GitHubConfig(BaseModel):
    """Configuration for the GitHub client.

    Attributes:
        token: Personal access token (loaded from GITHUB_TOKEN if not provided)
        base_url: REST API root
        timeout: Per-request timeout in seconds
        max_attempts: Attempts per request before a transient failure is final
        backoff_multiplier: Multiplier for exponential backoff between attempts
        registry: Repository holding the package manifests
    """

    token: str | None = None
    base_url: str = "https://api.github.com"
    timeout: float = 30.0
    max_attempts: int = 3
    backoff_multiplier: float = 1.0
    registry: str = "microsoft/winget-pkgs"


def load_config(path: str | Path) -> GitHubConfig:
    """Load and validate a YAML client config file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A validated GitHubConfig. Returns defaults if the file doesn't exist.

    Raises:
        ValueError: If the YAML content is invalid or fails validation.
    """
    config_path = Path(path)
    if not config_path.exists():
        return GitHubConfig()

    try:
        raw = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    try:
        return GitHubConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid client config in {path}: {exc}") from exc


def get_package_path(identifier: str, version: str | None = None) -> str:
    """Registry directory of a package, optionally of one of its versions.

    >>> get_package_path("Package.Identifier", "1.2.3")
    'manifests/p/Package/Identifier/1.2.3'
    """
    parts = ["manifests", identifier[0].lower(), *identifier.split(".")]
    if version is not None:
        parts.append(version)
    return "/".join(parts)


# ---------------------------------------------------------------------------
# Protocol (Interface)
# ---------------------------------------------------------------------------


class GitHubClientProtocol(Protocol):
    """Remote capabilities used by the pipeline.

    Every method raises NotFoundError when the resource does not exist and
    TransientFetchError when the API cannot be reached.
    """

    async def get_repository(self, full_name: str) -> Repository: ...

    async def get_release(self, full_name: str, tag: str) -> Release: ...

    async def list_release_assets(
        self, full_name: str, release: Release
    ) -> list[ReleaseAsset]: ...

    async def get_directory(self, full_name: str, path: str) -> list[FileEntry]: ...

    async def get_file_content(self, full_name: str, path: str) -> bytes: ...

    async def get_user(self, login: str) -> Owner: ...

    async def get_license(self, full_name: str) -> LicenseContent: ...


# ---------------------------------------------------------------------------
# Concrete Implementation
# ---------------------------------------------------------------------------


class GitHubClient:
    """Real GitHub API client using httpx.

    Usage:
        client = GitHubClient(GitHubConfig(token="ghp_..."))
        repository = await client.get_repository("owner/app")
    """

    def __init__(
        self,
        config: GitHubConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            config: Client configuration. Uses defaults if None.
            transport: Optional httpx transport (used by tests)
        """
        self.config = config or GitHubConfig()
        self._transport = transport
        self._token = self.config.token or os.environ.get("GITHUB_TOKEN", "")
        self._headers: dict[str, str] = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            headers=self._headers,
            timeout=self.config.timeout,
            transport=self._transport,
        )

    async def _get(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET with status mapping and retries for transient failures."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(multiplier=self.config.backoff_multiplier, max=30),
            retry=retry_if_exception_type(TransientFetchError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                async with self._client() as client:
                    try:
                        resp = await client.get(url, **kwargs)
                    except httpx.TransportError as exc:
                        raise TransientFetchError(f"GET {url} failed: {exc!r}") from exc
                self._check_status(url, resp)
                return resp
        raise AssertionError("unreachable")

    @staticmethod
    def _check_status(url: str, resp: httpx.Response) -> None:
        status = resp.status_code
        if status == 404:
            raise NotFoundError(f"GET {url} returned 404")
        rate_limited = status == 403 and resp.headers.get("x-ratelimit-remaining") == "0"
        if status == 429 or status >= 500 or rate_limited:
            logger.warning("github_transient_status", url=url, status=status)
            raise TransientFetchError(f"GET {url} returned {status}")
        resp.raise_for_status()

    async def get_repository(self, full_name: str) -> Repository:
        resp = await self._get(f"/repos/{full_name}")
        return Repository.model_validate(resp.json())

    async def get_release(self, full_name: str, tag: str) -> Release:
        resp = await self._get(f"/repos/{full_name}/releases/tags/{tag}")
        return Release.model_validate(resp.json())

    async def list_release_assets(
        self, full_name: str, release: Release
    ) -> list[ReleaseAsset]:
        items = await self._handle_pagination(
            f"/repos/{full_name}/releases/{release.id}/assets"
        )
        return [ReleaseAsset.model_validate(item) for item in items]

    async def get_directory(self, full_name: str, path: str) -> list[FileEntry]:
        """List a directory through the contents API.

        Raises:
            NotFoundError: If the path does not exist or is a file
        """
        resp = await self._get(f"/repos/{full_name}/contents/{path}")
        data = resp.json()
        if not isinstance(data, list):
            raise NotFoundError(f"{full_name}/{path} is not a directory")
        return [FileEntry.model_validate(item) for item in data]

    async def get_file_content(self, full_name: str, path: str) -> bytes:
        resp = await self._get(
            f"/repos/{full_name}/contents/{path}",
            headers={"Accept": "application/vnd.github.raw+json"},
        )
        return resp.content

    async def get_user(self, login: str) -> Owner:
        resp = await self._get(f"/users/{login}")
        return Owner.model_validate(resp.json())

    async def get_license(self, full_name: str) -> LicenseContent:
        resp = await self._get(f"/repos/{full_name}/license")
        return LicenseContent.model_validate(resp.json())

    async def _handle_pagination(self, url: str) -> list[dict]:
        """Handle GitHub API pagination for endpoints that return lists.

        GitHub returns a 'Link' header with next/prev/last URLs for
        paginated responses.

        Args:
            url: The initial URL to fetch

        Returns:
            All items across all pages
        """
        all_items: list[dict] = []
        resp = await self._get(url, params={"per_page": 100})

        while True:
            all_items.extend(resp.json())
            # next links already carry the full query
            next_url = self._parse_next_link(resp.headers.get("link", ""))
            if not next_url:
                break
            resp = await self._get(next_url)

        return all_items

    @staticmethod
    def _parse_next_link(link_header: str) -> str | None:
        """Extract the 'next' URL from a GitHub Link header."""
        if not link_header:
            return None
        for part in link_header.split(","):
            if 'rel="next"' in part:
                return part.split(";")[0].strip().strip("<>")
        return None


# ---------------------------------------------------------------------------
# Mock Implementation (for testing)
# ---------------------------------------------------------------------------


class MockGitHubClient:
    """Mock GitHub client serving predefined data.

    Directory listings are derived from the keys of ``files``. Every call is
    recorded in ``calls`` as ``"start:<method>:<key>"`` and
    ``"end:<method>:<key>"`` so tests can assert on ordering.

    Usage:
        client = MockGitHubClient(
            files={("microsoft/winget-pkgs", "manifests/o/Owner/App/1.0/Owner.App.yaml"): "..."},
        )
        content = await client.get_file_content("microsoft/winget-pkgs", "manifests/...")
    """

    def __init__(
        self,
        repositories: dict[str, Any] | None = None,
        releases: dict[tuple[str, str], Any] | None = None,
        files: dict[tuple[str, str], str | bytes] | None = None,
        users: dict[str, Any] | None = None,
        licenses: dict[str, Any] | None = None,
        delays: dict[str, float] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        """Initialize with optional predefined data.

        Args:
            repositories: full_name -> Repository data
            releases: (full_name, tag) -> Release data
            files: (full_name, path) -> file content
            users: login -> Owner data
            licenses: full_name -> LicenseContent data
            delays: call key -> seconds to sleep before answering
            failures: call key -> exception to raise
        """
        self._repositories = {
            name: Repository.model_validate(data)
            for name, data in (repositories or {}).items()
        }
        self._releases = {
            key: Release.model_validate(data) for key, data in (releases or {}).items()
        }
        self._files = {
            key: content.encode() if isinstance(content, str) else content
            for key, content in (files or {}).items()
        }
        self._users = {
            login: Owner.model_validate(data) for login, data in (users or {}).items()
        }
        self._licenses = {
            name: LicenseContent.model_validate(data)
            for name, data in (licenses or {}).items()
        }
        self._delays = delays or {}
        self._failures = failures or {}
        self.calls: list[str] = []

    async def _enter(self, method: str, key: str) -> None:
        self.calls.append(f"start:{method}:{key}")
        if key in self._delays:
            await asyncio.sleep(self._delays[key])
        if key in self._failures:
            self.calls.append(f"end:{method}:{key}")
            raise self._failures[key]

    def _exit(self, method: str, key: str) -> None:
        self.calls.append(f"end:{method}:{key}")

    async def get_repository(self, full_name: str) -> Repository:
        await self._enter("get_repository", full_name)
        self._exit("get_repository", full_name)
        if full_name not in self._repositories:
            raise NotFoundError(f"repository {full_name} not found")
        return self._repositories[full_name]

    async def get_release(self, full_name: str, tag: str) -> Release:
        key = f"{full_name}@{tag}"
        await self._enter("get_release", key)
        self._exit("get_release", key)
        if (full_name, tag) not in self._releases:
            raise NotFoundError(f"release {key} not found")
        return self._releases[(full_name, tag)]

    async def list_release_assets(
        self, full_name: str, release: Release
    ) -> list[ReleaseAsset]:
        key = f"{full_name}@{release.tag_name}"
        await self._enter("list_release_assets", key)
        self._exit("list_release_assets", key)
        return list(release.assets)

    async def get_directory(self, full_name: str, path: str) -> list[FileEntry]:
        await self._enter("get_directory", path)
        self._exit("get_directory", path)
        prefix = f"{path.strip('/')}/" if path.strip("/") else ""
        entries: dict[str, FileEntry] = {}
        for repo, file_path in self._files:
            if repo != full_name or not file_path.startswith(prefix):
                continue
            name, _, rest = file_path[len(prefix) :].partition("/")
            entries.setdefault(
                name,
                FileEntry(
                    name=name,
                    path=prefix + name,
                    type="dir" if rest else "file",
                    html_url=f"https://{GITHUB_WEBSITE}/{full_name}/blob/HEAD/{prefix}{name}",
                ),
            )
        if not entries:
            raise NotFoundError(f"{full_name}/{path} not found")
        return list(entries.values())

    async def get_file_content(self, full_name: str, path: str) -> bytes:
        await self._enter("get_file_content", path)
        self._exit("get_file_content", path)
        if (full_name, path) not in self._files:
            raise NotFoundError(f"{full_name}/{path} not found")
        return self._files[(full_name, path)]

    async def get_user(self, login: str) -> Owner:
        await self._enter("get_user", login)
        self._exit("get_user", login)
        if login not in self._users:
            raise NotFoundError(f"user {login} not found")
        return self._users[login]

    async def get_license(self, full_name: str) -> LicenseContent:
        await self._enter("get_license", full_name)
        self._exit("get_license", full_name)
        if full_name not in self._licenses:
            raise NotFoundError(f"license of {full_name} not found")
        return self._licenses[full_name]
