"""
Tests for the package validator.

Verifies:
- A well-formed package validates and is normalized
- Every hard-error rule blocks, every soft rule only warns
- Errors are collected exhaustively, not fail-fast
"""

import pytest

from toolbox_intake.schemas.package import PackageMetadata
from toolbox_intake.validation.validator import APPROVED_LICENSES, PackageValidator

from conftest import version_document


def metadata(**overrides) -> PackageMetadata:
    return PackageMetadata.from_version_document(version_document("pptb-sample-tool", **overrides))


def configurations(**overrides):
    base = dict(version_document("x")["configurations"])
    base.update(overrides)
    return {k: v for k, v in base.items() if v is not None}


@pytest.fixture
def validator(probe) -> PackageValidator:
    return PackageValidator(probe)


class TestValidPackage:
    @pytest.mark.asyncio
    async def test_valid_package_passes(self, validator):
        result = await validator.validate(metadata())

        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []
        assert result.package.name == "pptb-sample-tool"
        assert result.package.display_name == "Sample Tool"
        assert result.package.contributors == [
            {"name": "Ada Lovelace", "url": "https://github.com/ada"}
        ]

    @pytest.mark.asyncio
    async def test_probes_every_declared_url(self, validator, probe):
        await validator.validate(metadata())

        assert set(probe.calls) == {
            "https://github.com/example/sample-tool",
            "https://sample-tool.example.com",
            "https://raw.githubusercontent.com/example/sample-tool/main/README.md",
        }

    @pytest.mark.asyncio
    async def test_validation_is_repeatable(self, validator):
        meta = metadata(license="WTFPL", contributors=[{"name": "A", "url": "nope"}])

        first = await validator.validate(meta)
        second = await validator.validate(meta)

        assert (first.valid, first.errors, first.warnings) == (
            second.valid,
            second.errors,
            second.warnings,
        )

    @pytest.mark.asyncio
    async def test_to_dict_shape(self, validator):
        body = (await validator.validate(metadata())).to_dict()

        assert body["valid"] is True
        assert body["packageInfo"]["license"] == "MIT"


class TestRequiredFields:
    @pytest.mark.asyncio
    async def test_collects_all_missing_fields(self, validator):
        result = await validator.validate(metadata(displayName="", description=None, version=" "))

        assert result.valid is False
        assert "displayName is required and must be a string" in result.errors
        assert "description is required and must be a string" in result.errors
        assert "Package version is required and must be a string" in result.errors
        assert result.package is None


class TestLicense:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("license_value", ["WTFPL", "mit", "Proprietary", "GPL-3.0-or-later"])
    async def test_unapproved_license_is_an_error(self, validator, license_value):
        result = await validator.validate(metadata(license=license_value))

        assert result.valid is False
        assert result.errors[0].startswith(f'License "{license_value}" is not in the approved list.')
        assert "Approved licenses: MIT, Apache-2.0" in result.errors[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("license_value", APPROVED_LICENSES)
    async def test_approved_licenses_pass(self, validator, license_value):
        result = await validator.validate(metadata(license=license_value))

        assert result.valid is True

    @pytest.mark.asyncio
    async def test_missing_license(self, validator):
        result = await validator.validate(metadata(license=None))

        assert result.errors == ["license is required"]


class TestIcon:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path",
        [
            "/icons/dark.svg",
            "../icons/dark.svg",
            "icons/../../dark.svg",
            "https://cdn.example.com/dark.svg",
            "http://cdn.example.com/dark.svg",
            "icons/dark.png",
        ],
    )
    async def test_rejected_icon_paths(self, validator, path):
        result = await validator.validate(
            metadata(icon={"dark": path, "light": "icons/light.svg"})
        )

        assert result.valid is False
        assert len(result.errors) == 1
        assert result.errors[0].startswith(f'icon.dark "{path}"')

    @pytest.mark.asyncio
    async def test_icon_must_be_object(self, validator):
        result = await validator.validate(metadata(icon="icon.svg"))

        assert result.errors == [
            "icon is required and must be an object with dark and light SVG paths"
        ]

    @pytest.mark.asyncio
    async def test_both_variants_required(self, validator):
        result = await validator.validate(metadata(icon={"dark": "icons/dark.svg"}))

        assert result.errors == ["icon.light is required and must be a string"]


class TestContributors:
    @pytest.mark.asyncio
    async def test_empty_contributors(self, validator):
        result = await validator.validate(metadata(contributors=[]))

        assert result.errors == ["At least one contributor is required"]

    @pytest.mark.asyncio
    async def test_contributor_without_name(self, validator):
        result = await validator.validate(metadata(contributors=[{"url": "https://x.dev"}]))

        assert result.errors == ["Contributor at index 0 must have a name"]

    @pytest.mark.asyncio
    async def test_invalid_contributor_url_is_a_warning(self, validator):
        result = await validator.validate(
            metadata(contributors=[{"name": "Grace", "url": "not a url"}])
        )

        assert result.valid is True
        assert result.warnings == ['Contributor "Grace" has an invalid URL']
        assert result.package.contributors == [{"name": "Grace", "url": None}]


class TestConfigurations:
    @pytest.mark.asyncio
    async def test_unreachable_repository_is_an_error(self, validator, probe):
        probe.unreachable.add("https://github.com/example/sample-tool")

        result = await validator.validate(metadata())

        assert result.valid is False
        assert result.errors == [
            "configurations.repository is not reachable: https://github.com/example/sample-tool"
        ]

    @pytest.mark.asyncio
    async def test_repository_with_control_character_is_invalid(self, validator, probe):
        repository = "https://git\thub.com/example/sample-tool"

        result = await validator.validate(
            metadata(configurations=configurations(repository=repository))
        )

        assert result.valid is False
        assert "configurations.repository has an invalid URL format" in result.errors
        assert repository not in probe.calls

    @pytest.mark.asyncio
    async def test_repository_required(self, validator):
        result = await validator.validate(metadata(configurations=configurations(repository=None)))

        assert "configurations.repository is required and must be a URL" in result.errors

    @pytest.mark.asyncio
    async def test_unreachable_website_is_a_warning(self, validator, probe):
        probe.unreachable.add("https://sample-tool.example.com")

        result = await validator.validate(metadata())

        assert result.valid is True
        assert result.warnings == [
            "configurations.website is not reachable: https://sample-tool.example.com"
        ]

    @pytest.mark.asyncio
    async def test_malformed_funding_is_a_warning(self, validator):
        result = await validator.validate(
            metadata(configurations=configurations(funding="ko-fi/someone"))
        )

        assert result.valid is True
        assert result.warnings == ["configurations.funding has an invalid URL format"]

    @pytest.mark.asyncio
    async def test_readme_on_source_host_rejected(self, validator):
        result = await validator.validate(
            metadata(
                configurations=configurations(
                    readmeUrl="https://github.com/example/sample-tool/blob/main/README.md"
                )
            )
        )

        assert result.valid is False
        assert result.errors[0].startswith("configurations.readmeUrl cannot be hosted on github.com")

    @pytest.mark.asyncio
    async def test_readme_required(self, validator):
        result = await validator.validate(metadata(configurations=configurations(readmeUrl=None)))

        assert result.errors == ["configurations.readmeUrl is required and must be a URL"]

    @pytest.mark.asyncio
    async def test_icon_url_accepted_on_raw_host(self, validator, probe):
        url = "https://raw.githubusercontent.com/example/sample-tool/main/icon.png"

        result = await validator.validate(metadata(configurations=configurations(iconUrl=url)))

        assert result.valid is True
        assert url in probe.calls

    @pytest.mark.asyncio
    async def test_icon_url_wrong_host_and_extension(self, validator, probe):
        url = "https://cdn.example.com/icon.gif"

        result = await validator.validate(metadata(configurations=configurations(iconUrl=url)))

        assert result.errors == [
            "configurations.iconUrl must be hosted on raw.githubusercontent.com",
            "configurations.iconUrl must point to a .png, .jpg or .jpeg file",
        ]
        assert url not in probe.calls

    @pytest.mark.asyncio
    async def test_unreachable_icon_url(self, validator, probe):
        url = "https://raw.githubusercontent.com/example/sample-tool/main/icon.jpg"
        probe.unreachable.add(url)

        result = await validator.validate(metadata(configurations=configurations(iconUrl=url)))

        assert result.errors == [f"configurations.iconUrl is not reachable: {url}"]


class TestCspExceptions:
    @pytest.mark.asyncio
    async def test_empty_mapping_rejected(self, validator):
        result = await validator.validate(metadata(cspExceptions={}))

        assert result.errors == ["cspExceptions must not be empty when provided"]

    @pytest.mark.asyncio
    async def test_directive_values_must_be_string_arrays(self, validator):
        result = await validator.validate(
            metadata(cspExceptions={"connect-src": [], "img-src": "https://img.example.com"})
        )

        assert result.errors == [
            'CSP directive "connect-src" must be a non-empty array of strings',
            'CSP directive "img-src" must be a non-empty array of strings',
        ]

    @pytest.mark.asyncio
    async def test_unknown_directive_is_a_warning(self, validator):
        result = await validator.validate(
            metadata(cspExceptions={"worker-src": ["https://w.example.com"]})
        )

        assert result.valid is True
        assert result.warnings == ["Unknown CSP directive: worker-src"]

    @pytest.mark.asyncio
    async def test_absent_csp_is_fine(self, validator):
        result = await validator.validate(metadata(cspExceptions=None))

        assert result.valid is True
        assert result.package.csp_exceptions is None


class TestFeatures:
    @pytest.mark.asyncio
    async def test_unknown_feature_key_rejected(self, validator):
        result = await validator.validate(
            metadata(features={"multiConnection": "required", "extra": True})
        )

        assert result.valid is False
        assert len(result.errors) == 1
        assert '"extra"' in result.errors[0]

    @pytest.mark.asyncio
    async def test_multi_connection_required_when_features_present(self, validator):
        result = await validator.validate(metadata(features={}))

        assert result.errors == ["features.multiConnection is required when features is provided"]

    @pytest.mark.asyncio
    async def test_invalid_multi_connection_value(self, validator):
        result = await validator.validate(metadata(features={"multiConnection": "sometimes"}))

        assert result.errors == ["features.multiConnection must be one of: required, optional, none"]

    @pytest.mark.asyncio
    async def test_min_api_marker_allowed(self, validator):
        result = await validator.validate(
            metadata(features={"multiConnection": "none", "minAPI": "1.0.0"})
        )

        assert result.valid is True

    @pytest.mark.asyncio
    async def test_features_optional(self, validator):
        result = await validator.validate(metadata(features=None))

        assert result.valid is True
