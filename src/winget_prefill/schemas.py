"""Pydantic models for the pre-fill pipeline.

Three groups of models live here:
- Manifest documents, keyed by the registry's PascalCase YAML keys
- Payloads returned by the hosting platform's REST API
- Session inputs (PackageContext, PrefillInput) and schema constants

Manifest models keep unknown keys (``extra="allow"``) so fields this
pipeline does not resolve survive from the previous version untouched.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal


# ---------------------------------------------------------------------------
# Session inputs
# ---------------------------------------------------------------------------


class PackageContext(BaseModel):
    """Identity of the package being submitted.

    Shared by every component of a run. ``default_locale`` is the only field
    written during a run: the previous version manifest may overwrite it
    before any locale manifest is looked up.

    Attributes:
        identifier: Package identifier (e.g., "Owner.App")
        version: Version being submitted
        default_locale: Primary locale of the textual metadata
        package_name: Display name, if the user supplied one
        latest_version: Registry version to pre-fill from. Discovered from
            the registry listing when not set.
    """

    model_config = ConfigDict(validate_assignment=True)

    identifier: str = Field(..., min_length=1, frozen=True)
    version: str = Field(..., min_length=1)
    default_locale: str = "en-US"
    package_name: str | None = None
    latest_version: str | None = None


class PrefillInput(BaseModel):
    """Values typed by the user for this run. Every field is optional.

    A blank string is treated the same as a missing value.
    """

    publisher: str | None = None
    publisher_url: str | None = None
    publisher_support_url: str | None = None
    privacy_url: str | None = None
    author: str | None = None
    package_url: str | None = None
    license: str | None = None
    license_url: str | None = None
    copyright: str | None = None
    copyright_url: str | None = None
    short_description: str | None = None
    description: str | None = None
    moniker: str | None = None
    tags: list[str] | None = None
    release_notes_url: str | None = None
    release_date: date | None = None


# ---------------------------------------------------------------------------
# Schema constants
# ---------------------------------------------------------------------------


class ManifestSchema(BaseModel):
    """The parts of a manifest JSON schema the pipeline reads.

    Attributes:
        manifest_type: Value of the ManifestType const
        manifest_version: Default of the ManifestVersion property
        url_pattern: Pattern every URL property must match
        url_max_length: Max length of every URL property
    """

    model_config = ConfigDict(frozen=True)

    manifest_type: str
    manifest_version: str = "1.6.0"
    url_pattern: str = r"^([Hh][Tt][Tt][Pp][Ss]?)://.+$"
    url_max_length: int = 2048


INSTALLER_SCHEMA = ManifestSchema(manifest_type="installer")
VERSION_SCHEMA = ManifestSchema(manifest_type="version")
DEFAULT_LOCALE_SCHEMA = ManifestSchema(manifest_type="defaultLocale")
LOCALE_SCHEMA = ManifestSchema(manifest_type="locale")


# ---------------------------------------------------------------------------
# Manifest documents
# ---------------------------------------------------------------------------


class Manifest(BaseModel):
    """Base for manifest documents stored as YAML in the registry."""

    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        extra="allow",
    )

    package_identifier: str
    package_version: str
    manifest_type: str
    manifest_version: str

    def to_document(self) -> dict[str, Any]:
        """Dump as a YAML-ready mapping with registry key names."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class InstallerManifest(Manifest):
    release_date: date | None = None
    installers: list[dict[str, Any]] = Field(default_factory=list)


class VersionManifest(Manifest):
    default_locale: str


class LocaleManifest(Manifest):
    """A non-default locale manifest. Every text field is optional."""

    package_locale: str
    publisher: str | None = None
    publisher_url: str | None = None
    publisher_support_url: str | None = None
    privacy_url: str | None = None
    author: str | None = None
    package_name: str | None = None
    package_url: str | None = None
    license: str | None = None
    license_url: str | None = None
    copyright: str | None = None
    copyright_url: str | None = None
    short_description: str | None = None
    description: str | None = None
    moniker: str | None = None
    tags: list[str] | None = None
    release_notes: str | None = None
    release_notes_url: str | None = None


class DefaultLocaleManifest(LocaleManifest):
    """The default-locale manifest. Publisher, name, license and short
    description are required by the registry schema."""

    publisher: str
    package_name: str
    license: str
    short_description: str


# ---------------------------------------------------------------------------
# Hosting platform payloads
# ---------------------------------------------------------------------------


class Owner(BaseModel):
    login: str
    html_url: str | None = None
    blog: str | None = None


class License(BaseModel):
    key: str | None = None
    spdx_id: str | None = None
    name: str | None = None


class Repository(BaseModel):
    """Repository metadata from GET /repos/{owner}/{repo}."""

    full_name: str
    html_url: str
    description: str | None = None
    has_issues: bool = False
    topics: list[str] = Field(default_factory=list)
    license: License | None = None
    owner: Owner


class ReleaseAsset(BaseModel):
    name: str
    browser_download_url: str
    created_at: datetime


class Release(BaseModel):
    """A release from GET /repos/{owner}/{repo}/releases/tags/{tag}."""

    id: int
    tag_name: str
    html_url: str
    body: str | None = None
    assets: list[ReleaseAsset] = Field(default_factory=list)


class FileEntry(BaseModel):
    """One item of a directory listing from the contents API."""

    name: str
    path: str
    type: str = "file"
    html_url: str | None = None


class LicenseContent(BaseModel):
    """The license file from GET /repos/{owner}/{repo}/license."""

    name: str
    path: str
    html_url: str
    license: License | None = None
