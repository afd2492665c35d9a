"""Tests for provider address parsing, version validation and package naming."""

from __future__ import annotations

import pytest

from providermirror.errors import ErrorCode, MirrorError
from providermirror.models.provider import (
    package_name,
    parse_provider_fqn,
    parse_semantic_version,
    platform_key,
    semver_sort_key,
    validate_platform_part,
)


class TestParseProviderFqn:
    def test_canonicalizes_case(self):
        p = parse_provider_fqn("Registry.Terraform.IO", "HashiCorp", "AWS")
        assert p.hostname == "registry.terraform.io"
        assert p.namespace == "hashicorp"
        assert p.type == "aws"
        assert str(p) == "registry.terraform.io/hashicorp/aws"

    def test_hostname_with_port(self):
        p = parse_provider_fqn("localhost:8443", "acme", "widget")
        assert p.hostname == "localhost:8443"

    def test_idna_hostname(self):
        p = parse_provider_fqn("bücher.example", "acme", "widget")
        assert p.hostname == "xn--bcher-kva.example"

    @pytest.mark.parametrize("hostname", ["", "bad host", "-lead.example.com", "host:notaport", "host:70000"])
    def test_bad_hostname_is_invalid(self, hostname):
        with pytest.raises(MirrorError) as exc_info:
            parse_provider_fqn(hostname, "acme", "widget")
        assert exc_info.value.code == ErrorCode.INVALID

    @pytest.mark.parametrize("namespace", ["", "-acme", "acme-", "ac--me", "ac_me", "ac.me"])
    def test_bad_namespace_is_invalid(self, namespace):
        with pytest.raises(MirrorError) as exc_info:
            parse_provider_fqn("registry.terraform.io", namespace, "widget")
        assert exc_info.value.code == ErrorCode.INVALID

    def test_empty_type_is_invalid(self):
        with pytest.raises(MirrorError, match="provider type"):
            parse_provider_fqn("registry.terraform.io", "acme", "")


class TestParseSemanticVersion:
    @pytest.mark.parametrize("value", ["1.2.3", "0.0.1", "1.0.0-beta.1", "2.0.0+build.5", "1.0.0-rc.1+meta"])
    def test_accepts_strict_semver(self, value):
        assert parse_semantic_version(value) == value

    @pytest.mark.parametrize("value", ["v1.2.3", "1.2", "01.2.3", "1.2.3.4", "", "latest"])
    def test_rejects_non_semver(self, value):
        with pytest.raises(MirrorError) as exc_info:
            parse_semantic_version(value)
        assert exc_info.value.code == ErrorCode.INVALID

    def test_sort_key_orders_by_precedence(self):
        versions = ["1.10.0", "1.2.0", "1.2.0-beta.2", "1.2.0-beta.10", "1.2.0-alpha", "0.9.9"]
        ordered = sorted(versions, key=semver_sort_key)
        assert ordered == ["0.9.9", "1.2.0-alpha", "1.2.0-beta.2", "1.2.0-beta.10", "1.2.0", "1.10.0"]


class TestPackageName:
    def test_canonical_filename(self):
        assert (
            package_name("aws", "5.0.0", "linux", "amd64")
            == "terraform-provider-aws_5.0.0_linux_amd64.zip"
        )

    def test_deterministic(self):
        assert package_name("a", "1.0.0", "b", "c") == package_name("a", "1.0.0", "b", "c")

    def test_platform_key(self):
        assert platform_key("darwin", "arm64") == "darwin_arm64"


class TestValidatePlatformPart:
    def test_accepts_lowercase_alnum(self):
        assert validate_platform_part("amd64", "architecture") == "amd64"

    @pytest.mark.parametrize("value", ["", "Linux", "linux_amd64", "x86-64", "../etc"])
    def test_rejects_everything_else(self, value):
        with pytest.raises(MirrorError) as exc_info:
            validate_platform_part(value, "operating system")
        assert exc_info.value.code == ErrorCode.INVALID
