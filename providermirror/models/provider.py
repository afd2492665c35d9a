"""Provider coordinates, strict semantic versions, and package naming.

``package_name`` is a cross-component contract: the same filename is the
key into a version mirror's digest table when a package is uploaded and
when it is served.  It must never change shape.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict

from providermirror.errors import invalid

# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

_PROVIDER_PART_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,62}[a-z0-9])?$")
_HOST_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_PLATFORM_PART_RE = re.compile(r"^[a-z0-9]+$")


class Provider(BaseModel):
    """Fully-qualified upstream provider address.

    Examples
    --------
    >>> p = parse_provider_fqn("Registry.Terraform.io", "HashiCorp", "aws")
    >>> str(p)
    'registry.terraform.io/hashicorp/aws'
    """

    model_config = ConfigDict(frozen=True)

    hostname: str
    namespace: str
    type: str

    def __str__(self) -> str:
        return f"{self.hostname}/{self.namespace}/{self.type}"


def _normalize_hostname(hostname: str) -> str:
    host, sep, port = hostname.strip().partition(":")
    if sep and (not port.isdigit() or not 0 < int(port) < 65536):
        raise invalid(f"Invalid registry hostname {hostname!r}: bad port")
    try:
        ascii_host = host.encode("idna").decode("ascii").lower()
    except UnicodeError as exc:
        raise invalid(f"Invalid registry hostname {hostname!r}: {exc}") from exc
    labels = ascii_host.rstrip(".").split(".")
    if not ascii_host or not all(_HOST_LABEL_RE.match(label) for label in labels):
        raise invalid(f"Invalid registry hostname {hostname!r}")
    normalized = ".".join(labels)
    return f"{normalized}:{port}" if sep else normalized


def _normalize_provider_part(value: str, label: str) -> str:
    part = value.strip().lower()
    if not part:
        raise invalid(f"Invalid {label}: must not be empty")
    if not _PROVIDER_PART_RE.match(part) or "--" in part:
        raise invalid(
            f"Invalid {label} {value!r}: only letters, digits and single dashes "
            "are allowed, and it may not start or end with a dash"
        )
    return part


def parse_provider_fqn(hostname: str, namespace: str, provider_type: str) -> Provider:
    """Validate and canonicalize a provider address.

    Raises
    ------
    MirrorError
        With code ``invalid`` when any component is malformed.
    """
    return Provider(
        hostname=_normalize_hostname(hostname),
        namespace=_normalize_provider_part(namespace, "registry namespace"),
        type=_normalize_provider_part(provider_type, "provider type"),
    )


def parse_semantic_version(value: str) -> str:
    """Return *value* if it is a strict SemVer 2.0.0 string."""
    if not _SEMVER_RE.match(value):
        raise invalid(f"Invalid provider version {value!r}: not a strict semantic version")
    return value


def semver_sort_key(value: str) -> tuple:
    """Sort key ordering versions by SemVer precedence."""
    match = _SEMVER_RE.match(value)
    if match is None:
        return ((0, 0, 0), 1, ())
    major, minor, patch, pre, _build = match.groups()
    prerelease: tuple = ()
    if pre:
        prerelease = tuple(
            (0, int(p), "") if p.isdigit() else (1, 0, p) for p in pre.split(".")
        )
    # Releases sort after their pre-releases.
    return ((int(major), int(minor), int(patch)), 0 if pre else 1, prerelease)


def validate_platform_part(value: str, label: str) -> str:
    """Check an OS or architecture name such as ``linux`` or ``amd64``."""
    if not _PLATFORM_PART_RE.match(value):
        raise invalid(f"Invalid {label} {value!r}: must be lower-case letters and digits")
    return value


def package_name(provider_type: str, version: str, os: str, arch: str) -> str:
    """Canonical provider package filename.

    Matches the naming used in upstream ``SHA256SUMS`` files:
    ``terraform-provider-<type>_<version>_<os>_<arch>.zip``.
    """
    return f"terraform-provider-{provider_type}_{version}_{os}_{arch}.zip"


def platform_key(os: str, arch: str) -> str:
    """Platform identifier in ``os_arch`` form."""
    return f"{os}_{arch}"
