"""Tests for the previous-manifest stages.

The stage ordering tests delay the version manifest in the mock client and
inspect the recorded call log.

Run with: pytest tests/test_previous.py -v
"""

from __future__ import annotations

from datetime import date

import pytest

from conftest import (
    INSTALLER_YAML,
    PACKAGE_DIR,
    REGISTRY,
    VERSION_YAML,
    make_client,
    registry_files,
)
from winget_prefill.context.github import MockGitHubClient
from winget_prefill.context.previous import (
    PreviousManifestBundle,
    parse_manifest,
    version_key,
)
from winget_prefill.outcome import ErrorKind, ManifestParseError, TransientFetchError
from winget_prefill.schemas import (
    FileEntry,
    InstallerManifest,
    LocaleManifest,
    PackageContext,
    VersionManifest,
)

VERSION_PATH = f"{PACKAGE_DIR}/Owner.App.yaml"
DEFAULT_LOCALE_PATH = f"{PACKAGE_DIR}/Owner.App.locale.de-DE.yaml"
EN_US_PATH = f"{PACKAGE_DIR}/Owner.App.locale.en-US.yaml"
SUB_PACKAGE_DIR = "manifests/o/Owner/App/2022/Edition/1.0"


@pytest.fixture
def context() -> PackageContext:
    return PackageContext(identifier="Owner.App", version="1.1.0", latest_version="1.0.0")


def index_of(calls: list[str], entry: str) -> int:
    return calls.index(entry)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


class TestParseManifest:
    def test_parses_pascal_case_keys(self) -> None:
        manifest = parse_manifest(
            registry_files()[(REGISTRY, VERSION_PATH)].encode(), VersionManifest
        )
        assert manifest.default_locale == "de-DE"
        assert manifest.package_identifier == "Owner.App"

    def test_non_mapping_is_parse_error(self) -> None:
        with pytest.raises(ManifestParseError):
            parse_manifest(b"- just\n- a list\n", VersionManifest)

    def test_invalid_yaml_is_parse_error(self) -> None:
        with pytest.raises(ManifestParseError):
            parse_manifest(b"PackageIdentifier: [unclosed\n", VersionManifest)

    def test_missing_required_key_is_parse_error(self) -> None:
        with pytest.raises(ManifestParseError):
            parse_manifest(b"PackageIdentifier: Owner.App\n", VersionManifest)

    def test_unquoted_numbers_stay_text(self) -> None:
        raw = (
            b"PackageIdentifier: Owner.App\n"
            b"PackageVersion: 1.10\n"
            b"PackageLocale: en-US\n"
            b"Tags:\n  - 2022\n  - 1.0\n"
            b"ManifestType: locale\n"
            b"ManifestVersion: 1.6.0\n"
        )
        manifest = parse_manifest(raw, LocaleManifest)
        assert manifest.package_version == "1.10"
        assert manifest.tags == ["2022", "1.0"]

    def test_release_date_still_parsed_as_date(self) -> None:
        manifest = parse_manifest(INSTALLER_YAML.encode(), InstallerManifest)
        assert manifest.release_date == date(2024, 1, 15)


class TestVersionKey:
    def test_numeric_parts_compare_as_numbers(self) -> None:
        assert max(["1.9.0", "1.10.0", "1.2"], key=version_key) == "1.10.0"

    def test_prerelease_sorts_before_number(self) -> None:
        assert version_key("1.0-beta") < version_key("1.0-1")


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


class TestStages:
    @pytest.mark.asyncio
    async def test_every_stage_resolved(self, client: MockGitHubClient, context) -> None:
        outcomes = await PreviousManifestBundle.start(context, client).settle()

        assert outcomes["installer"].value.release_date.isoformat() == "2024-01-15"
        assert outcomes["version"].value.default_locale == "de-DE"
        assert outcomes["default_locale"].value.publisher == "Owner Ltd"
        locales = {manifest.package_locale for manifest in outcomes["locales"].value}
        assert locales == {"en-US", "fr-FR"}
        assert context.default_locale == "de-DE"

    @pytest.mark.asyncio
    async def test_latest_version_discovered(self, client: MockGitHubClient) -> None:
        context = PackageContext(identifier="Owner.App", version="1.1.0")
        outcomes = await PreviousManifestBundle.start(context, client).settle()

        assert outcomes["version"].value.package_version == "1.0.0"
        assert f"start:get_directory:{PACKAGE_DIR}" in client.calls

    @pytest.mark.asyncio
    async def test_unknown_package_resolves_to_nothing(self) -> None:
        client = make_client(files={})
        context = PackageContext(identifier="Nobody.Nothing", version="1.0")
        outcomes = await PreviousManifestBundle.start(context, client).settle()

        for outcome in outcomes.values():
            assert outcome.ok
            assert outcome.value is None

    @pytest.mark.asyncio
    async def test_unknown_version_resolves_to_nothing(self, client: MockGitHubClient) -> None:
        context = PackageContext(identifier="Owner.App", version="2.0", latest_version="0.1")
        outcomes = await PreviousManifestBundle.start(context, client).settle()
        assert all(outcome.value is None for outcome in outcomes.values())

    @pytest.mark.asyncio
    async def test_malformed_installer_leaves_other_stages(self, context) -> None:
        files = registry_files()
        files[(REGISTRY, f"{PACKAGE_DIR}/Owner.App.installer.yaml")] = "Installers: {{"
        client = make_client(files=files)

        outcomes = await PreviousManifestBundle.start(context, client).settle()

        assert outcomes["installer"].error is ErrorKind.PARSE_ERROR
        assert outcomes["default_locale"].value.publisher == "Owner Ltd"

    @pytest.mark.asyncio
    async def test_numeric_sub_package_not_taken_for_a_version(self) -> None:
        files = registry_files()
        files[(REGISTRY, f"{SUB_PACKAGE_DIR}/Owner.App.2022.Edition.yaml")] = VERSION_YAML
        client = make_client(files=files)
        context = PackageContext(identifier="Owner.App", version="1.1.0")

        outcomes = await PreviousManifestBundle.start(context, client).settle()

        assert outcomes["version"].value.package_version == "1.0.0"
        assert outcomes["default_locale"].value.publisher == "Owner Ltd"

    @pytest.mark.asyncio
    async def test_blank_default_locale_keeps_context_locale(self, context) -> None:
        files = registry_files()
        files[(REGISTRY, VERSION_PATH)] = VERSION_YAML.replace(
            "DefaultLocale: de-DE", 'DefaultLocale: ""'
        )
        client = make_client(files=files)

        outcomes = await PreviousManifestBundle.start(context, client).settle()

        assert outcomes["version"].ok
        assert context.default_locale == "en-US"
        fetched = [call for call in client.calls if call.startswith("start:get_file_content:")]
        assert f"start:get_file_content:{PACKAGE_DIR}/Owner.App.locale..yaml" not in fetched
        assert f"start:get_file_content:{EN_US_PATH}" in fetched


class TestStageOrdering:
    @pytest.mark.asyncio
    async def test_locale_fetches_wait_for_version_manifest(self, context) -> None:
        client = make_client(delays={VERSION_PATH: 0.05})

        await PreviousManifestBundle.start(context, client).settle()

        version_end = index_of(client.calls, f"end:get_file_content:{VERSION_PATH}")
        locale_starts = [
            index
            for index, call in enumerate(client.calls)
            if call.startswith("start:get_file_content:") and ".locale." in call
        ]
        assert len(locale_starts) == 3
        assert all(index > version_end for index in locale_starts)

    @pytest.mark.asyncio
    async def test_locale_fetches_wait_even_when_version_fails(self, context) -> None:
        client = make_client(
            delays={VERSION_PATH: 0.05},
            failures={VERSION_PATH: TransientFetchError("boom")},
        )

        outcomes = await PreviousManifestBundle.start(context, client).settle()

        assert outcomes["version"].error is ErrorKind.TRANSIENT
        assert context.default_locale == "en-US"
        version_end = index_of(client.calls, f"end:get_file_content:{VERSION_PATH}")
        default_start = index_of(client.calls, f"start:get_file_content:{EN_US_PATH}")
        assert default_start > version_end
        # en-US has no publisher, so it cannot be read as a default-locale manifest
        assert outcomes["default_locale"].error is ErrorKind.PARSE_ERROR
        locales = {manifest.package_locale for manifest in outcomes["locales"].value}
        assert locales == {"de-DE", "fr-FR"}


class TestLocaleSelection:
    @pytest.mark.asyncio
    async def test_default_locale_file_excluded(self, client, context) -> None:
        outcomes = await PreviousManifestBundle.start(context, client).settle()
        fetched = [call for call in client.calls if call.startswith("start:get_file_content:")]
        assert fetched.count(f"start:get_file_content:{DEFAULT_LOCALE_PATH}") == 1
        assert all(
            manifest.package_locale != "de-DE" for manifest in outcomes["locales"].value
        )

    @pytest.mark.asyncio
    async def test_duplicate_filenames_fetched_once(self, context) -> None:
        class DuplicatingClient(MockGitHubClient):
            async def get_directory(self, full_name: str, path: str) -> list[FileEntry]:
                entries = await super().get_directory(full_name, path)
                return entries + entries

        client = DuplicatingClient(files=registry_files())
        outcomes = await PreviousManifestBundle.start(context, client).settle()

        assert len(outcomes["locales"].value) == 2
        fetched = [call for call in client.calls if call == f"start:get_file_content:{EN_US_PATH}"]
        assert len(fetched) == 1

    @pytest.mark.asyncio
    async def test_failed_locale_file_dropped(self, context) -> None:
        client = make_client(failures={EN_US_PATH: TransientFetchError("boom")})
        outcomes = await PreviousManifestBundle.start(context, client).settle()
        assert [manifest.package_locale for manifest in outcomes["locales"].value] == ["fr-FR"]
