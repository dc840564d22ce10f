"""Previous-version manifests from the package registry.

The registry stores one directory per package version holding:
- ``{identifier}.installer.yaml``
- ``{identifier}.yaml`` (the version manifest, which names the default locale)
- ``{identifier}.locale.{locale}.yaml`` for the default and any other locales

Stages run as concurrent tasks over one shared directory listing:
1. Installer manifest
2. Version manifest. On completion the package context's default locale is
   updated from it, before the task finishes.
3. Default-locale manifest, which joins stage 2 first because its filename
   embeds the default locale
4. Every other locale manifest, which also joins stage 2

No stage raises. A missing directory settles every stage to
``Outcome.absent()``; a missing or malformed file settles that stage to
``Outcome.failed``.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Coroutine
from dataclasses import dataclass, fields
from typing import Any, TypeVar

import yaml
from pydantic import ValidationError

from winget_prefill.context.github import GitHubClientProtocol, get_package_path
from winget_prefill.logging_config import get_logger
from winget_prefill.outcome import ManifestParseError, NotFoundError, Outcome, capture
from winget_prefill.schemas import (
    DefaultLocaleManifest,
    FileEntry,
    InstallerManifest,
    LocaleManifest,
    Manifest,
    PackageContext,
    VersionManifest,
)

logger = get_logger(__name__)

M = TypeVar("M", bound=Manifest)

DEFAULT_REGISTRY = "microsoft/winget-pkgs"

_NUMBER_TAGS = frozenset({"tag:yaml.org,2002:int", "tag:yaml.org,2002:float"})


class ManifestLoader(yaml.SafeLoader):
    """Safe loader that reads unquoted numbers as strings.

    Versions such as ``1.10`` and numeric tags would otherwise lose digits
    on the way through float. Dates and booleans still resolve.
    """


ManifestLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag not in _NUMBER_TAGS]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def parse_manifest(raw: bytes, model: type[M]) -> M:
    """Decode a YAML manifest file into ``model``.

    Raises:
        ManifestParseError: If the content is not YAML or fails validation
    """
    try:
        data = yaml.load(raw, Loader=ManifestLoader)
    except yaml.YAMLError as exc:
        raise ManifestParseError(f"Invalid YAML for {model.__name__}: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestParseError(f"{model.__name__} must be a mapping")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ManifestParseError(f"Invalid {model.__name__}: {exc}") from exc


def version_key(version: str) -> list[tuple[int, int | str]]:
    """Sort key comparing numeric version parts as numbers."""
    key: list[tuple[int, int | str]] = []
    for part in re.split(r"[.\-_+]", version):
        key.append((1, int(part)) if part.isdigit() else (0, part.lower()))
    return key


@dataclass(frozen=True)
class PreviousManifestBundle:
    """One pending task per previous-manifest stage.

    Build it with ``PreviousManifestBundle.start`` from inside a running
    event loop.
    """

    directory: asyncio.Task[Outcome[list[FileEntry]]]
    installer: asyncio.Task[Outcome[InstallerManifest]]
    version: asyncio.Task[Outcome[VersionManifest]]
    default_locale: asyncio.Task[Outcome[DefaultLocaleManifest]]
    locales: asyncio.Task[Outcome[list[LocaleManifest]]]

    @classmethod
    def start(
        cls,
        context: PackageContext,
        client: GitHubClientProtocol,
        registry: str = DEFAULT_REGISTRY,
    ) -> PreviousManifestBundle:
        """Launch every stage and return immediately.

        Args:
            context: Package identity; its default locale may be updated
                by stage 2
            client: GitHub client shared by all stages
            registry: Repository holding the manifests
        """
        stages = _Stages(context, client, registry)

        def spawn(name: str, work: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
            return asyncio.create_task(work, name=f"previous:{name}")

        directory = spawn("directory", capture("previous_directory", stages.list_directory()))
        version = spawn("version", stages.version(directory))
        return cls(
            directory=directory,
            installer=spawn(
                "installer", capture("installer_manifest", stages.installer(directory))
            ),
            version=version,
            default_locale=spawn(
                "default_locale",
                capture("default_locale_manifest", stages.default_locale(directory, version)),
            ),
            locales=spawn(
                "locales", capture("locale_manifests", stages.locales(directory, version))
            ),
        )

    async def settle(self) -> dict[str, Outcome[Any]]:
        """Wait for every stage and return its outcome."""
        tasks = {field.name: getattr(self, field.name) for field in fields(self)}
        outcomes = await asyncio.gather(*tasks.values())
        return dict(zip(tasks, outcomes))


class _Stages:
    def __init__(
        self,
        context: PackageContext,
        client: GitHubClientProtocol,
        registry: str,
    ) -> None:
        self._context = context
        self._client = client
        self._registry = registry

    @property
    def _identifier(self) -> str:
        return self._context.identifier

    async def list_directory(self) -> list[FileEntry] | None:
        version = self._context.latest_version
        if version is None:
            return await self._discover_latest_listing()
        path = get_package_path(self._identifier, version)
        try:
            return await self._client.get_directory(self._registry, path)
        except NotFoundError:
            logger.info("previous_version_missing", identifier=self._identifier, version=version)
            return None

    async def _discover_latest_listing(self) -> list[FileEntry] | None:
        """List the highest version directory that holds a version manifest."""
        try:
            entries = await self._client.get_directory(
                self._registry, get_package_path(self._identifier)
            )
        except NotFoundError:
            logger.info("package_not_in_registry", identifier=self._identifier)
            return None
        # Sub-packages share the parent directory and can have numeric names
        candidates = sorted(
            (
                entry.name
                for entry in entries
                if entry.type == "dir" and any(char.isdigit() for char in entry.name)
            ),
            key=version_key,
            reverse=True,
        )
        manifest_name = f"{self._identifier}.yaml"
        for version in candidates:
            path = get_package_path(self._identifier, version)
            try:
                listing = await self._client.get_directory(self._registry, path)
            except NotFoundError:
                continue
            if any(entry.name == manifest_name for entry in listing):
                logger.debug(
                    "latest_version_discovered", identifier=self._identifier, version=version
                )
                return listing
        return None

    async def _read(
        self,
        directory: asyncio.Task[Outcome[list[FileEntry]]],
        filename: str,
        model: type[M],
    ) -> M | None:
        listing = await directory
        if listing.value is None:
            return None
        entry = next((entry for entry in listing.value if entry.name == filename), None)
        if entry is None:
            raise NotFoundError(f"{filename} is not in the previous version")
        return await self._fetch(entry, model)

    async def _fetch(self, entry: FileEntry, model: type[M]) -> M:
        raw = await self._client.get_file_content(self._registry, entry.path)
        return parse_manifest(raw, model)

    async def installer(
        self, directory: asyncio.Task[Outcome[list[FileEntry]]]
    ) -> InstallerManifest | None:
        return await self._read(directory, f"{self._identifier}.installer.yaml", InstallerManifest)

    async def version(
        self, directory: asyncio.Task[Outcome[list[FileEntry]]]
    ) -> Outcome[VersionManifest]:
        outcome = await capture(
            "version_manifest",
            self._read(directory, f"{self._identifier}.yaml", VersionManifest),
        )
        default_locale = outcome.value.default_locale.strip() if outcome.value else ""
        if default_locale:
            self._context.default_locale = default_locale
            logger.debug("default_locale_updated", default_locale=default_locale)
        return outcome

    async def default_locale(
        self,
        directory: asyncio.Task[Outcome[list[FileEntry]]],
        version_done: asyncio.Task[Outcome[VersionManifest]],
    ) -> DefaultLocaleManifest | None:
        await asyncio.wait([version_done])
        filename = f"{self._identifier}.locale.{self._context.default_locale}.yaml"
        return await self._read(directory, filename, DefaultLocaleManifest)

    async def locales(
        self,
        directory: asyncio.Task[Outcome[list[FileEntry]]],
        version_done: asyncio.Task[Outcome[VersionManifest]],
    ) -> list[LocaleManifest] | None:
        await asyncio.wait([version_done])
        listing = await directory
        if listing.value is None:
            return None

        pattern = re.compile(rf"{re.escape(self._identifier)}\.locale\..+\.yaml")
        default_name = f"{self._identifier}.locale.{self._context.default_locale}.yaml"
        entries = {
            entry.name: entry
            for entry in listing.value
            if pattern.fullmatch(entry.name) and entry.name != default_name
        }
        outcomes = await asyncio.gather(
            *(
                capture(f"locale_manifest:{name}", self._fetch(entry, LocaleManifest))
                for name, entry in entries.items()
            )
        )
        manifests = [outcome.value for outcome in outcomes if outcome.value is not None]
        return manifests or None
