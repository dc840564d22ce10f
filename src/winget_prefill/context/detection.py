"""Metadata detection from a GitHub release asset URL.

Given the download URL of an installer attached to a GitHub release, this
module infers default-locale fields from the repository and the release:
license, description, project URLs, release notes, topics and the release
date.

Each field is computed by its own task, so a caller can await the license
without waiting for the privacy-policy directory scan. The repository and
release lookups are shared by the fields that need them. A field task never
raises: it settles to an Outcome, and a failure in one field leaves its
siblings untouched.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, fields
from datetime import UTC, date
from typing import Any

import httpx

from winget_prefill.context.github import GITHUB_WEBSITE, GitHubClientProtocol
from winget_prefill.logging_config import get_logger
from winget_prefill.outcome import DetectionHostError, NotFoundError, Outcome, capture
from winget_prefill.schemas import DEFAULT_LOCALE_SCHEMA, ManifestSchema, Release, Repository
from winget_prefill.text import format_release_notes
from winget_prefill.validation import parse_web_url, validate_url

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReleaseTarget:
    """Repository and tag addressed by a release asset URL.

    Asset URLs look like
    ``https://github.com/{owner}/{repo}/releases/download/{tag}/{file}``.
    """

    url: str
    full_name: str | None
    tag: str | None

    @classmethod
    def from_url(cls, url: str) -> ReleaseTarget:
        """Parse an asset URL.

        Raises:
            DetectionHostError: If the URL is not hosted on github.com
        """
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as exc:
            raise DetectionHostError(f"Url must be a GitHub Url: {url}") from exc
        if parsed.host.lower() != GITHUB_WEBSITE:
            raise DetectionHostError(f"Url must be a GitHub Url: {url}")

        segments = [segment for segment in parsed.path.split("/") if segment]
        full_name = "/".join(segments[:2]) if len(segments) >= 2 else None
        tag = segments[-2] if len(segments) >= 4 else None
        return cls(url=url, full_name=full_name, tag=tag)


@dataclass(frozen=True)
class DetectionBundle:
    """One pending task per detected field.

    Build it with ``DetectionBundle.start`` from inside a running event loop.
    Awaiting a field yields an ``Outcome``: ``Outcome.absent()`` when the
    field does not apply (no license, no privacy file), ``Outcome.failed``
    when a lookup failed.
    """

    target: ReleaseTarget
    publisher_url: asyncio.Task[Outcome[str]]
    publisher_support_url: asyncio.Task[Outcome[str]]
    privacy_url: asyncio.Task[Outcome[str]]
    license: asyncio.Task[Outcome[str]]
    license_url: asyncio.Task[Outcome[str]]
    package_url: asyncio.Task[Outcome[str]]
    release_date: asyncio.Task[Outcome[date]]
    release_notes_url: asyncio.Task[Outcome[str]]
    release_notes: asyncio.Task[Outcome[str]]
    short_description: asyncio.Task[Outcome[str]]
    topics: asyncio.Task[Outcome[list[str]]]

    @classmethod
    def start(
        cls,
        url: str,
        client: GitHubClientProtocol,
        schema: ManifestSchema = DEFAULT_LOCALE_SCHEMA,
    ) -> DetectionBundle:
        """Validate the asset URL and launch every detection task.

        Args:
            url: Release asset download URL
            client: GitHub client shared by all tasks
            schema: Default-locale schema used to validate the support URL

        Raises:
            DetectionHostError: If the URL is not a GitHub URL. No task is
                scheduled in that case.
        """
        target = ReleaseTarget.from_url(url)
        lookups = _Lookups(target, client)
        logger.debug("detection_started", url=url, repository=target.full_name, tag=target.tag)

        def spawn(name: str, work: Coroutine[Any, Any, Any]) -> asyncio.Task[Outcome[Any]]:
            return asyncio.create_task(capture(name, work), name=f"detect:{name}")

        return cls(
            target=target,
            publisher_url=spawn("publisher_url", lookups.publisher_url()),
            publisher_support_url=spawn(
                "publisher_support_url", lookups.publisher_support_url(schema)
            ),
            privacy_url=spawn("privacy_url", lookups.privacy_url()),
            license=spawn("license", lookups.license()),
            license_url=spawn("license_url", lookups.license_url()),
            package_url=spawn("package_url", lookups.package_url()),
            release_date=spawn("release_date", lookups.release_date()),
            release_notes_url=spawn("release_notes_url", lookups.release_notes_url()),
            release_notes=spawn("release_notes", lookups.release_notes()),
            short_description=spawn("short_description", lookups.short_description()),
            topics=spawn("topics", lookups.topics()),
        )

    def tasks(self) -> dict[str, asyncio.Task[Outcome[Any]]]:
        """Field name -> task, for every detected field."""
        return {
            field.name: getattr(self, field.name)
            for field in fields(self)
            if field.name != "target"
        }

    async def settle(self) -> dict[str, Outcome[Any]]:
        """Wait for every field and return its outcome."""
        tasks = self.tasks()
        outcomes = await asyncio.gather(*tasks.values())
        return dict(zip(tasks, outcomes))


class _Lookups:
    """Field computations over shared repository and release lookups."""

    def __init__(self, target: ReleaseTarget, client: GitHubClientProtocol) -> None:
        self._target = target
        self._client = client
        self._repository = asyncio.create_task(self._fetch_repository())
        self._release = asyncio.create_task(self._fetch_release())

    @property
    def full_name(self) -> str:
        if self._target.full_name is None:
            raise NotFoundError(f"{self._target.url} does not name a repository")
        return self._target.full_name

    async def _fetch_repository(self) -> Repository:
        return await self._client.get_repository(self.full_name)

    async def _fetch_release(self) -> Release:
        if self._target.tag is None:
            raise NotFoundError(f"{self._target.url} does not name a release")
        return await self._client.get_release(self.full_name, self._target.tag)

    async def publisher_url(self) -> str | None:
        repository = await self._repository
        owner = await self._client.get_user(repository.owner.login)
        return parse_web_url(owner.blog)

    async def publisher_support_url(self, schema: ManifestSchema) -> str | None:
        candidate = f"{self._target.url}/support"
        if validate_url(candidate, schema, can_be_blank=False) is None:
            return candidate
        repository = await self._repository
        if repository.has_issues:
            return f"https://{GITHUB_WEBSITE}/{repository.full_name}/issues"
        return None

    async def privacy_url(self) -> str | None:
        entries = await self._client.get_directory(self.full_name, "")
        for entry in entries:
            if "privacy" in entry.name.lower():
                return entry.html_url
        return None

    async def license(self) -> str | None:
        repository = await self._repository
        if repository.license is None or not repository.license.key:
            return None
        return repository.license.key.upper()

    async def license_url(self) -> str | None:
        content = await self._client.get_license(self.full_name)
        return content.html_url

    async def package_url(self) -> str | None:
        repository = await self._repository
        return repository.html_url

    async def release_date(self) -> date | None:
        release = await self._release
        assets = await self._client.list_release_assets(self.full_name, release)
        for asset in assets:
            if asset.browser_download_url == self._target.url:
                return asset.created_at.astimezone(UTC).date()
        raise NotFoundError(f"{self._target.url} is not an asset of {release.tag_name}")

    async def release_notes_url(self) -> str | None:
        release = await self._release
        return release.html_url

    async def release_notes(self) -> str | None:
        release = await self._release
        return format_release_notes(release.body)

    async def short_description(self) -> str | None:
        repository = await self._repository
        return repository.description

    async def topics(self) -> list[str] | None:
        repository = await self._repository
        return repository.topics or None
