"""Pre-fill session orchestrator.

This module ties together all the components:
- Previous manifests from the registry (context/previous.py)
- Detection from the release asset URL (context/detection.py)
- Field precedence (resolver.py)

The session follows this flow:
1. Start the previous-manifest stages and the detection tasks; both run
   concurrently
2. Await every stage and field
3. Resolve the default-locale, version, installer and locale fields
4. Return the resolved manifests together with the raw bundles
"""

from __future__ import annotations

from dataclasses import dataclass

from winget_prefill.context.detection import DetectionBundle
from winget_prefill.context.github import GitHubClient, GitHubClientProtocol, GitHubConfig
from winget_prefill.context.previous import PreviousManifestBundle
from winget_prefill.logging_config import bind_package, get_logger
from winget_prefill.resolver import (
    DetectedFields,
    PreviousManifests,
    resolve_default_locale,
    resolve_installer,
    resolve_locales,
    resolve_version,
)
from winget_prefill.schemas import (
    DEFAULT_LOCALE_SCHEMA,
    DefaultLocaleManifest,
    InstallerManifest,
    LocaleManifest,
    PackageContext,
    PrefillInput,
    VersionManifest,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class PrefillResult:
    """Resolved manifests plus the raw sources they were resolved from.

    Attributes:
        default_locale: Resolved default-locale manifest
        version: Resolved version manifest
        installer: Resolved installer-level fields
        locales: Previous non-default locale manifests, re-versioned
        detected: Collapsed detection values
        previous: Collapsed previous manifests
        detection: The detection tasks, None without an asset URL
        previous_bundle: The previous-manifest tasks
    """

    default_locale: DefaultLocaleManifest
    version: VersionManifest
    installer: InstallerManifest
    locales: list[LocaleManifest]
    detected: DetectedFields
    previous: PreviousManifests
    detection: DetectionBundle | None
    previous_bundle: PreviousManifestBundle

    def to_documents(self) -> dict[str, object]:
        """Registry documents keyed by manifest kind."""
        return {
            "installer": self.installer.to_document(),
            "version": self.version.to_document(),
            "defaultLocale": self.default_locale.to_document(),
            "locales": [manifest.to_document() for manifest in self.locales],
        }


class ManifestPrefill:
    """Runs one pre-fill session per call to ``run``.

    Usage:
        prefill = ManifestPrefill()
        result = await prefill.run(
            PackageContext(identifier="Owner.App", version="1.2.3"),
            PrefillInput(publisher="Owner"),
            asset_url="https://github.com/owner/app/releases/download/v1.2.3/app.exe",
        )
    """

    def __init__(
        self,
        client: GitHubClientProtocol | None = None,
        config: GitHubConfig | None = None,
    ) -> None:
        """Initialize the session with its dependencies.

        Args:
            client: GitHub client. A GitHubClient built from ``config`` if None.
            config: Client configuration. Uses defaults if None.
        """
        self.config = config or GitHubConfig()
        self.client = client or GitHubClient(config=self.config)

    async def run(
        self,
        context: PackageContext,
        user: PrefillInput | None = None,
        asset_url: str | None = None,
    ) -> PrefillResult:
        """Resolve every manifest field for ``context``.

        Args:
            context: Package identity. Its default locale may be replaced
                by the previous version's.
            user: Values the user typed for this run
            asset_url: Release asset URL to detect metadata from

        Returns:
            The resolved manifests

        Raises:
            DetectionHostError: If ``asset_url`` is not a GitHub URL. Raised
                before any lookup starts.
        """
        user = user or PrefillInput()
        with bind_package(context.identifier, context.version):
            logger.info("prefill_started", asset_url=asset_url)

            detection = (
                DetectionBundle.start(asset_url, self.client, DEFAULT_LOCALE_SCHEMA)
                if asset_url
                else None
            )
            previous_bundle = PreviousManifestBundle.start(
                context, self.client, registry=self.config.registry
            )

            previous = await PreviousManifests.gather(previous_bundle)
            detected = await DetectedFields.gather(detection)

            result = PrefillResult(
                default_locale=resolve_default_locale(
                    user, detected, previous.default_locale, context
                ),
                version=resolve_version(context),
                installer=resolve_installer(user, detected, previous.installer, context),
                locales=resolve_locales(previous.locales, context),
                detected=detected,
                previous=previous,
                detection=detection,
                previous_bundle=previous_bundle,
            )

            logger.info(
                "prefill_complete",
                default_locale=context.default_locale,
                has_previous=previous.version is not None,
                detected_fields=sum(
                    value is not None for value in vars(detected).values()
                ),
            )
        return result
