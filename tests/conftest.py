"""Shared fixtures: a registry holding Owner.App 1.0.0 and its GitHub repository."""

from __future__ import annotations

import pytest

from winget_prefill.context.github import MockGitHubClient

REGISTRY = "microsoft/winget-pkgs"
PACKAGE_DIR = "manifests/o/Owner/App/1.0.0"
ASSET_URL = "https://github.com/owner/app/releases/download/v1.1.0/app-setup.exe"

INSTALLER_YAML = """\
PackageIdentifier: Owner.App
PackageVersion: 1.0.0
InstallerType: inno
ReleaseDate: 2024-01-15
Installers:
  - Architecture: x64
    InstallerUrl: https://github.com/owner/app/releases/download/v1.0.0/app-setup.exe
    InstallerSha256: 0000000000000000000000000000000000000000000000000000000000000000
ManifestType: installer
ManifestVersion: 1.6.0
"""

VERSION_YAML = """\
PackageIdentifier: Owner.App
PackageVersion: 1.0.0
DefaultLocale: de-DE
ManifestType: version
ManifestVersion: 1.6.0
"""

DEFAULT_LOCALE_YAML = """\
PackageIdentifier: Owner.App
PackageVersion: 1.0.0
PackageLocale: de-DE
Publisher: Owner Ltd
PublisherUrl: https://owner.example/previous
Author: Jane Owner
PackageName: App
License: MIT
Copyright: Copyright (c) Owner
ShortDescription: An app from the previous manifest
Description: First sentence. Second sentence.
Moniker: app
Tags:
  - tool
Agreements:
  - AgreementLabel: EULA
    AgreementUrl: https://owner.example/eula
ManifestType: defaultLocale
ManifestVersion: 1.6.0
"""

EN_US_YAML = """\
PackageIdentifier: Owner.App
PackageVersion: 1.0.0
PackageLocale: en-US
ShortDescription: An app
ManifestType: locale
ManifestVersion: 1.6.0
"""

FR_FR_YAML = """\
PackageIdentifier: Owner.App
PackageVersion: 1.0.0
PackageLocale: fr-FR
ShortDescription: Une application
ManifestType: locale
ManifestVersion: 1.6.0
"""

RELEASE_BODY = """\
## What's Changed
* Added **dark mode**. Works on every page.
* Fixed a crash in `settings` ([#12](https://github.com/owner/app/pull/12))
Some prose that is not a bullet.
<details>
<summary>Full log</summary>
- hidden bullet
</details>
"""


def registry_files() -> dict[tuple[str, str], str]:
    return {
        (REGISTRY, f"{PACKAGE_DIR}/Owner.App.installer.yaml"): INSTALLER_YAML,
        (REGISTRY, f"{PACKAGE_DIR}/Owner.App.yaml"): VERSION_YAML,
        (REGISTRY, f"{PACKAGE_DIR}/Owner.App.locale.de-DE.yaml"): DEFAULT_LOCALE_YAML,
        (REGISTRY, f"{PACKAGE_DIR}/Owner.App.locale.en-US.yaml"): EN_US_YAML,
        (REGISTRY, f"{PACKAGE_DIR}/Owner.App.locale.fr-FR.yaml"): FR_FR_YAML,
        (REGISTRY, "manifests/o/Owner/App/0.9.0/Owner.App.yaml"): VERSION_YAML,
    }


def repository_files() -> dict[tuple[str, str], str]:
    return {
        ("owner/app", "README.md"): "# App",
        ("owner/app", "PRIVACY.md"): "# Privacy",
        ("owner/app", "LICENSE"): "MIT License",
    }


def repository_data() -> dict:
    return {
        "full_name": "owner/app",
        "html_url": "https://github.com/owner/app",
        "description": "A detected description",
        "has_issues": True,
        "topics": ["cli", "productivity"],
        "license": {"key": "mit", "spdx_id": "MIT", "name": "MIT License"},
        "owner": {"login": "owner"},
    }


def release_data() -> dict:
    return {
        "id": 7,
        "tag_name": "v1.1.0",
        "html_url": "https://github.com/owner/app/releases/tag/v1.1.0",
        "body": RELEASE_BODY,
        "assets": [
            {
                "name": "app-setup.exe",
                "browser_download_url": ASSET_URL,
                "created_at": "2024-03-02T10:00:00Z",
            }
        ],
    }


def make_client(**overrides) -> MockGitHubClient:
    """A mock client serving both the registry and the app repository."""
    options = {
        "repositories": {"owner/app": repository_data()},
        "releases": {("owner/app", "v1.1.0"): release_data()},
        "files": {**registry_files(), **repository_files()},
        "users": {"owner": {"login": "owner", "blog": "owner.example"}},
        "licenses": {
            "owner/app": {
                "name": "LICENSE",
                "path": "LICENSE",
                "html_url": "https://github.com/owner/app/blob/main/LICENSE",
            }
        },
    }
    options.update(overrides)
    return MockGitHubClient(**options)


@pytest.fixture
def client() -> MockGitHubClient:
    return make_client()
