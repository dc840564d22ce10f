"""Field precedence for the resolved manifests.

Each output field is taken from the first usable candidate among, in a
per-field order: the user's input, detected metadata, the previous version's
manifest, and a fallback. A candidate is usable when it is not None, not a
blank string and not an empty list.

The order is deliberately not the same for every field. Licenses prefer
detection over the previous manifest, while most URLs prefer the previous
manifest over detection. The table lives in ``resolve_default_locale``.

Everything here is synchronous and free of shared state. The async
``gather`` helpers await the remote sources first; the resolve functions
then only read plain values.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Any, TypeVar

from pydantic import BaseModel

from winget_prefill.context.detection import DetectionBundle
from winget_prefill.context.previous import PreviousManifestBundle
from winget_prefill.logging_config import get_logger
from winget_prefill.outcome import Outcome
from winget_prefill.schemas import (
    DEFAULT_LOCALE_SCHEMA,
    INSTALLER_SCHEMA,
    LOCALE_SCHEMA,
    VERSION_SCHEMA,
    DefaultLocaleManifest,
    FileEntry,
    InstallerManifest,
    LocaleManifest,
    ManifestSchema,
    PackageContext,
    PrefillInput,
    VersionManifest,
)
from winget_prefill.text import format_description

logger = get_logger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Candidate selection
# ---------------------------------------------------------------------------


def is_usable(value: Any) -> bool:
    """Whether a candidate value can be used for a field."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return bool(value)
    return True


def first_usable(*candidates: Any | Callable[[], Any], default: Any = None) -> Any:
    """Return the first usable candidate, or ``default``.

    Candidates may be plain values or zero-argument callables; a callable is
    only invoked when every earlier candidate was unusable.
    """
    for candidate in candidates:
        value = candidate() if callable(candidate) else candidate
        if is_usable(value):
            return value
    return default


def collapse(outcome: Outcome[T], field: str) -> T | None:
    """Turn a settled lookup into a plain value, logging failures."""
    if outcome.error is not None:
        logger.warning(
            "field_unavailable",
            field=field,
            error_kind=outcome.error.value,
            detail=outcome.detail,
        )
        return None
    return outcome.value


# ---------------------------------------------------------------------------
# Awaited inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DetectedFields:
    """Plain values of every detected field, None where unavailable."""

    publisher_url: str | None = None
    publisher_support_url: str | None = None
    privacy_url: str | None = None
    license: str | None = None
    license_url: str | None = None
    package_url: str | None = None
    release_date: date | None = None
    release_notes_url: str | None = None
    release_notes: str | None = None
    short_description: str | None = None
    topics: list[str] | None = None

    @classmethod
    async def gather(cls, bundle: DetectionBundle | None) -> DetectedFields:
        """Await every detection task. A missing bundle detects nothing."""
        if bundle is None:
            return cls()
        outcomes = await bundle.settle()
        return cls(
            **{name: collapse(outcome, f"detection.{name}") for name, outcome in outcomes.items()}
        )


@dataclass(frozen=True)
class PreviousManifests:
    """Plain values of the previous version's manifests."""

    directory: list[FileEntry] | None = None
    installer: InstallerManifest | None = None
    version: VersionManifest | None = None
    default_locale: DefaultLocaleManifest | None = None
    locales: list[LocaleManifest] | None = None

    @classmethod
    async def gather(cls, bundle: PreviousManifestBundle) -> PreviousManifests:
        outcomes = await bundle.settle()
        return cls(
            directory=collapse(outcomes["directory"], "previous.directory"),
            installer=collapse(outcomes["installer"], "previous.installer"),
            version=collapse(outcomes["version"], "previous.version"),
            default_locale=collapse(outcomes["default_locale"], "previous.default_locale"),
            locales=collapse(outcomes["locales"], "previous.locales"),
        )


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _carried(previous: BaseModel | None) -> dict[str, Any]:
    """Keys of a previous manifest that no model field declares."""
    if previous is None:
        return {}
    return dict(previous.model_extra or {})


def resolve_default_locale(
    user: PrefillInput,
    detected: DetectedFields,
    previous: DefaultLocaleManifest | None,
    context: PackageContext,
    schema: ManifestSchema = DEFAULT_LOCALE_SCHEMA,
) -> DefaultLocaleManifest:
    """Resolve every default-locale field.

    Keys of the previous manifest this pipeline does not know about are
    carried over unchanged.
    """

    def prev(name: str) -> Callable[[], Any]:
        return lambda: getattr(previous, name) if previous is not None else None

    description = first_usable(user.description, prev("description"))
    release_notes = detected.release_notes.strip() if detected.release_notes else None
    carried = _carried(previous)

    return DefaultLocaleManifest(
        **carried,
        package_identifier=context.identifier,
        package_version=context.version,
        package_locale=context.default_locale,
        publisher=first_usable(user.publisher, prev("publisher"), default=""),
        publisher_url=first_usable(
            user.publisher_url, prev("publisher_url"), detected.publisher_url
        ),
        publisher_support_url=first_usable(
            user.publisher_support_url,
            prev("publisher_support_url"),
            detected.publisher_support_url,
        ),
        privacy_url=first_usable(user.privacy_url, prev("privacy_url"), detected.privacy_url),
        author=first_usable(user.author, prev("author")),
        package_name=first_usable(context.package_name, prev("package_name"), default=""),
        package_url=first_usable(user.package_url, detected.package_url, prev("package_url")),
        license=first_usable(user.license, detected.license, prev("license"), default=""),
        license_url=first_usable(user.license_url, prev("license_url"), detected.license_url),
        copyright=first_usable(user.copyright, prev("copyright")),
        copyright_url=first_usable(user.copyright_url, prev("copyright_url")),
        short_description=first_usable(
            user.short_description,
            prev("short_description"),
            detected.short_description,
            default="",
        ),
        description=format_description(description) if description is not None else None,
        moniker=first_usable(user.moniker, prev("moniker")),
        tags=first_usable(user.tags, prev("tags"), detected.topics),
        release_notes_url=first_usable(user.release_notes_url, detected.release_notes_url),
        release_notes=release_notes or None,
        manifest_type=schema.manifest_type,
        manifest_version=schema.manifest_version,
    )


def resolve_version(
    context: PackageContext,
    schema: ManifestSchema = VERSION_SCHEMA,
) -> VersionManifest:
    return VersionManifest(
        package_identifier=context.identifier,
        package_version=context.version,
        default_locale=context.default_locale,
        manifest_type=schema.manifest_type,
        manifest_version=schema.manifest_version,
    )


def resolve_installer(
    user: PrefillInput,
    detected: DetectedFields,
    previous: InstallerManifest | None,
    context: PackageContext,
    schema: ManifestSchema = INSTALLER_SCHEMA,
) -> InstallerManifest:
    """Resolve the installer-level fields.

    Installer entries are version specific and are left empty; top-level
    keys of the previous manifest (installer type, scope and the like) are
    carried over.
    """
    carried = _carried(previous)
    return InstallerManifest(
        **carried,
        package_identifier=context.identifier,
        package_version=context.version,
        release_date=first_usable(
            user.release_date,
            detected.release_date,
            lambda: previous.release_date if previous is not None else None,
        ),
        installers=[],
        manifest_type=schema.manifest_type,
        manifest_version=schema.manifest_version,
    )


def resolve_locales(
    previous: list[LocaleManifest] | None,
    context: PackageContext,
    schema: ManifestSchema = LOCALE_SCHEMA,
) -> list[LocaleManifest]:
    """Re-version the previous non-default locale manifests, sorted by locale."""
    updated = [
        manifest.model_copy(
            update={
                "package_identifier": context.identifier,
                "package_version": context.version,
                "manifest_type": schema.manifest_type,
                "manifest_version": schema.manifest_version,
            }
        )
        for manifest in previous or []
    ]
    return sorted(updated, key=lambda manifest: manifest.package_locale)
