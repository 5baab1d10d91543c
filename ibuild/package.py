"""Package manifests and the locations their sources are fetched from."""

import hashlib
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from .errors import InvalidLocationError, ManifestError

BUILD_SYSTEMS = ("cmake", "make", "xcode", "custom")


def _validate_url(url):
    parsed = urlparse(url)
    if parsed.scheme == "file" and parsed.path:
        return url
    if parsed.scheme and parsed.netloc:
        return url
    # scp-like git remotes, e.g. git@github.com:org/repo.git
    if "@" in url and ":" in url.split("@", 1)[1]:
        return url
    raise InvalidLocationError(f"Invalid URL found while parsing: {url}")


@dataclass(frozen=True)
class Location:
    """Where a package's sources live.

    ``kind`` is one of ``github``, ``git``, ``tar`` or ``local``. The
    ``value`` is the GitHub ``org/repo`` path, the URL, or the filesystem
    path; ``branch`` is only meaningful for the version-controlled kinds.
    """

    kind: str
    value: str
    branch: Optional[str] = None

    KINDS = ("github", "git", "tar", "local")

    def __post_init__(self):
        if self.kind not in self.KINDS:
            raise InvalidLocationError(f"Unknown location type: {self.kind}")
        if not self.value:
            raise InvalidLocationError(f"Empty {self.kind} location")
        if self.is_version_controlled and not self.branch:
            raise InvalidLocationError(f"A branch or tag is required for {self.kind} location {self.value}")
        if not self.is_version_controlled and self.branch is not None:
            raise InvalidLocationError(f"{self.kind} locations do not take a branch: {self.value}")
        if self.kind in ("git", "tar"):
            _validate_url(self.value)

    @classmethod
    def github(cls, path, branch):
        return cls("github", path, branch)

    @classmethod
    def git(cls, url, branch):
        return cls("git", url, branch)

    @classmethod
    def tar(cls, url):
        return cls("tar", url)

    @classmethod
    def local(cls, path):
        return cls("local", path)

    @property
    def is_version_controlled(self):
        return self.kind in ("github", "git")

    def as_key_sequence(self) -> List[str]:
        """Canonical, order-sensitive token sequence identifying this location."""
        if self.is_version_controlled:
            return [self.kind, self.value, self.branch]
        return [self.kind, self.value]

    @classmethod
    def from_key_sequence(cls, sequence):
        if not sequence:
            raise InvalidLocationError("Empty location key sequence")
        kind, *rest = sequence
        if kind in ("github", "git"):
            if len(rest) != 2:
                raise InvalidLocationError(f"Malformed {kind} key sequence: {sequence}")
            return cls(kind, rest[0], rest[1])
        if kind in ("tar", "local"):
            if len(rest) != 1:
                raise InvalidLocationError(f"Malformed {kind} key sequence: {sequence}")
            return cls(kind, rest[0])
        raise InvalidLocationError(f"Unknown location type in key sequence: {kind}")

    @property
    def sha1(self):
        """Stable content hash, used as the cache directory name."""
        digest = hashlib.sha1()
        digest.update("\0".join(self.as_key_sequence()).encode("utf-8"))
        return digest.hexdigest()

    def remote_location(self, package_root):
        """Resolved absolute URL or path this location fetches from."""
        if self.kind == "github":
            return f"https://github.com/{self.value}.git"
        if self.kind in ("git", "tar"):
            return self.value
        return os.path.normpath(os.path.join(package_root, os.path.expanduser(self.value)))

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ManifestError(f"A location must be a table, got: {data!r}")
        kind = data.get("type")
        try:
            if kind == "github":
                return cls.github(data["path"], data["branch"])
            if kind == "git":
                return cls.git(data["url"], data["branch"])
            if kind == "tar":
                return cls.tar(data["url"])
            if kind == "local":
                return cls.local(data["path"])
        except KeyError as e:
            raise ManifestError(f"Missing key {e} in {kind} location: {data!r}") from e
        raise InvalidLocationError(f"Unknown location type: {kind!r}")

    def __str__(self):
        if self.branch:
            return f"{self.kind}:{self.value}@{self.branch}"
        return f"{self.kind}:{self.value}"


@dataclass(frozen=True)
class CustomBuildProperties:
    configure: str
    make: str
    install: str
    env: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data):
        try:
            return cls(
                configure=data["configure"],
                make=data["make"],
                install=data["install"],
                env=dict(data.get("env", {})),
            )
        except KeyError as e:
            raise ManifestError(f"Missing custom build command {e}") from e


@dataclass(frozen=True)
class BuildProperties:
    build_system: str
    location: Optional[Location] = None
    patches: Tuple[str, ...] = ()
    build_args: Tuple[str, ...] = ()
    # platform -> architecture -> arguments
    build_arch_specific_args: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)
    install_command: Optional[str] = None
    outputs: Tuple[str, ...] = ()
    auxiliary_files: Dict[str, str] = field(default_factory=dict)
    custom_properties: Optional[CustomBuildProperties] = None

    def __post_init__(self):
        if self.build_system not in BUILD_SYSTEMS:
            raise ManifestError(
                f"Unknown build system: {self.build_system!r}",
                hint=f"Expected one of: {', '.join(BUILD_SYSTEMS)}",
            )
        if self.build_system == "custom" and self.custom_properties is None:
            raise ManifestError("The custom build system requires [build.custom_properties]")

    def arch_specific_args(self, platform, architecture):
        return list(self.build_arch_specific_args.get(platform, {}).get(architecture, []))

    @classmethod
    def from_dict(cls, data):
        if "build_system" not in data:
            raise ManifestError("Missing build_system in [build]")
        location = data.get("location")
        custom = data.get("custom_properties")
        return cls(
            build_system=data["build_system"],
            location=Location.from_dict(location) if location is not None else None,
            patches=tuple(data.get("patches", ())),
            build_args=tuple(data.get("build_args", ())),
            build_arch_specific_args={
                platform: {arch: list(args) for arch, args in archs.items()}
                for platform, archs in data.get("build_arch_specific_args", {}).items()
            },
            install_command=data.get("install_command"),
            outputs=tuple(data.get("outputs", ())),
            auxiliary_files=dict(data.get("auxiliary_files", {})),
            custom_properties=CustomBuildProperties.from_dict(custom) if custom is not None else None,
        )


@dataclass(frozen=True)
class Package:
    name: str
    build: Optional[BuildProperties] = None
    dependencies: Tuple[Location, ...] = ()

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict) or not data.get("name"):
            raise ManifestError("A package manifest must declare a name")
        build = data.get("build")
        return cls(
            name=data["name"],
            build=BuildProperties.from_dict(build) if build is not None else None,
            dependencies=tuple(Location.from_dict(item) for item in data.get("dependencies", ())),
        )

    @classmethod
    def in_project(cls, path):
        """Load the package whose manifest sits at ``path``, or None."""
        from .config import load_manifest

        data = load_manifest(path)
        if data is None:
            return None
        try:
            return cls.from_dict(data)
        except (TypeError, AttributeError, ValueError) as e:
            raise ManifestError(f"Error parsing package manifest at {path}: {e}") from e
