"""Tests for manifest validation and integrity checks."""

import pytest

from aniext.core.exceptions import BackendLoadError, ValidationError
from aniext.core.manifest import (
    BackendFormat,
    ManifestValidationResult,
    ManifestValidator,
    compute_integrity_hash,
    parse_manifest,
    verify_integrity,
)
from aniext.core.models import ExtensionKind


@pytest.fixture
def validator():
    return ManifestValidator()


def _fields(result):
    return {issue.field for issue in result.errors}


class TestRequiredFields:
    @pytest.mark.parametrize(
        "field",
        ["id", "name", "version", "kind", "capabilities", "targetVersionRange", "locator"],
    )
    def test_missing_field_is_named(self, validator, make_manifest, field):
        data = make_manifest()
        del data[field]
        result = validator.validate(data)
        assert not result.valid
        assert field in _fields(result)

    def test_non_object_manifest(self, validator):
        result = validator.validate(["not", "a", "manifest"])
        assert not result.valid
        assert _fields(result) == {"manifest"}

    def test_valid_manifest(self, validator, make_manifest):
        result = validator.validate(make_manifest())
        assert result.valid
        assert result.errors == []


class TestFieldRules:
    def test_unknown_capability_fails(self, validator, make_manifest):
        result = validator.validate(make_manifest(capabilities={"search": True, "mineCrypto": True}))
        assert not result.valid
        assert "capabilities.mineCrypto" in _fields(result)

    def test_capability_flags_must_be_boolean(self, validator, make_manifest):
        result = validator.validate(make_manifest(capabilities={"search": "yes"}))
        assert "capabilities.search" in _fields(result)

    def test_bad_id(self, validator, make_manifest):
        assert "id" in _fields(validator.validate(make_manifest(id="a b")))
        assert "id" in _fields(validator.validate(make_manifest(id="ab")))

    def test_bad_version(self, validator, make_manifest):
        assert "version" in _fields(validator.validate(make_manifest(version="1.0")))

    def test_unknown_kind(self, validator, make_manifest):
        assert "kind" in _fields(validator.validate(make_manifest(kind="scraper")))

    def test_unknown_permission(self, validator, make_manifest):
        assert "permissions" in _fields(validator.validate(make_manifest(permissions=["root"])))

    def test_max_older_than_min(self, validator, make_manifest):
        result = validator.validate(make_manifest(targetVersionRange={"min": "1.2.0", "max": "1.1.0"}))
        assert "targetVersionRange.max" in _fields(result)

    def test_locator_needs_exactly_one_form(self, validator, make_manifest):
        result = validator.validate(make_manifest(locator={"script": "a.py", "module": "a.wasm"}))
        assert "locator" in _fields(result)

    def test_unknown_platform(self, validator, make_manifest):
        result = validator.validate(make_manifest(locator={"libraries": {"amiga": "lib.so"}}))
        assert "locator.libraries" in _fields(result)

    def test_invalid_domain_pattern(self, validator, make_manifest):
        result = validator.validate(make_manifest(security={"allowedDomains": ["https://example.com/"]}))
        assert "security.allowedDomains" in _fields(result)

    def test_wildcard_domain_is_accepted(self, validator, make_manifest):
        result = validator.validate(make_manifest(security={"allowedDomains": ["*.example.com", "api.site.org"]}))
        assert result.valid

    def test_malformed_integrity_hash(self, validator, make_manifest):
        result = validator.validate(make_manifest(security={"allowedDomains": [], "integrityHash": "md5-abc"}))
        assert "security.integrityHash" in _fields(result)

    def test_negative_rate_limit(self, validator, make_manifest):
        assert "rateLimitMs" in _fields(validator.validate(make_manifest(rateLimitMs=-5)))

    @pytest.mark.parametrize(
        "field,value",
        [
            ("description", 5),
            ("author", {"x": 1}),
            ("icon", ["icon.png"]),
            ("homepage", 3.5),
            ("keywords", [1]),
            ("keywords", "anime"),
        ],
    )
    def test_optional_metadata_must_be_strings(self, validator, make_manifest, field, value):
        assert field in _fields(validator.validate(make_manifest(**{field: value})))

    def test_kind_must_be_a_string(self, validator, make_manifest):
        assert "kind" in _fields(validator.validate(make_manifest(kind=["media-provider"])))


class TestWarnings:
    def test_missing_icon_and_description_warn(self, validator, make_manifest):
        data = make_manifest()
        del data["icon"]
        del data["description"]
        result = validator.validate(data)
        assert result.valid
        assert {issue.field for issue in result.warnings} >= {"icon", "description"}

    def test_network_capability_without_permission_warns(self, validator, make_manifest):
        result = validator.validate(make_manifest(permissions=[]))
        assert result.valid
        assert "permissions" in {issue.field for issue in result.warnings}

    def test_no_advertised_capabilities_warns(self, validator, make_manifest):
        result = validator.validate(make_manifest(capabilities={"search": False}))
        assert result.valid
        assert "capabilities" in {issue.field for issue in result.warnings}


class TestParseManifest:
    def test_parse_builds_immutable_manifest(self, make_manifest):
        manifest = parse_manifest(make_manifest(rateLimitMs=250))
        assert manifest.kind == ExtensionKind.MEDIA_PROVIDER
        assert manifest.backend_format == BackendFormat.SCRIPT
        assert manifest.rate_limit_ms == 250
        with pytest.raises(Exception):
            manifest.id = "other"

    def test_parse_raises_with_first_field(self, make_manifest):
        data = make_manifest()
        del data["name"]
        with pytest.raises(ValidationError) as exc_info:
            parse_manifest(data)
        assert exc_info.value.field_name == "name"

    def test_schema_errors_become_validation_errors(self, make_manifest):
        class Permissive(ManifestValidator):
            def validate(self, data):
                return ManifestValidationResult(valid=True)

        with pytest.raises(ValidationError) as exc_info:
            parse_manifest(make_manifest(description=5), Permissive())
        assert exc_info.value.field_name == "description"

    def test_advertised_ignores_false_flags(self, make_manifest):
        manifest = parse_manifest(make_manifest(capabilities={"search": True, "getPopular": False}))
        assert [cap.value for cap in manifest.advertised] == ["search"]
        assert not manifest.advertises("getPopular")

    def test_to_dict_round_trips(self, make_manifest):
        data = make_manifest(security={"allowedDomains": ["example.com"]})
        manifest = parse_manifest(data)
        assert parse_manifest(manifest.to_dict()) == manifest


class TestIntegrity:
    def test_matching_hash(self, make_manifest):
        payload = b"def search(query, page=1):\n    return []\n"
        manifest = parse_manifest(make_manifest(security={"integrityHash": compute_integrity_hash(payload)}))
        verify_integrity(manifest, payload)

    def test_mismatched_hash(self, make_manifest):
        manifest = parse_manifest(make_manifest(security={"integrityHash": compute_integrity_hash(b"original")}))
        with pytest.raises(BackendLoadError):
            verify_integrity(manifest, b"tampered")

    def test_no_hash_accepts_anything(self, make_manifest):
        verify_integrity(parse_manifest(make_manifest()), b"anything")
