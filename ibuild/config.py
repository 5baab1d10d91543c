import toml
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple
from .cli_logger import logger
from .errors import ManifestError, IBuildError
from .utils.command_executor import run_checked

MANIFEST_FILE = "ibuild.toml"
FILES_DIR = ".ibuild"

DEFAULT_ARCHITECTURES = ("arm64", "armv7")
DEFAULT_PLATFORM = "iphoneos"
DEFAULT_DEPLOYMENT_TARGET = "-miphoneos-version-min=9.0"

def load_manifest(path="."):
    """Return the decoded manifest at ``path``, or None when there is none."""
    manifest_path = os.path.join(path, MANIFEST_FILE)
    if not os.path.exists(manifest_path):
        return None
    logger.debug(f"Loading manifest from {manifest_path}")
    try:
        with open(manifest_path, "r") as f:
            return toml.load(f)
    except toml.TomlDecodeError as e:
        raise ManifestError(
            f"Error decoding TOML file at {manifest_path}: {e}",
            hint="Please check the file's format for syntax errors.",
        ) from e
    except IOError as e:
        raise ManifestError(
            f"Error reading manifest at {manifest_path}: {e}",
            hint="Please check file permissions.",
        ) from e


@dataclass(frozen=True)
class Toolchain:
    """Absolute paths of the compiler tools used for every architecture."""

    cc: str
    cxx: str
    ar: str
    ranlib: str
    sdk_path: str
    lipo: str = "lipo"

    @classmethod
    def resolve(cls, platform, environ=None):
        """Resolve tools through ``xcrun`` unless the environment overrides them."""
        environ = os.environ if environ is None else environ

        def find(env_name, tool):
            if environ.get(env_name):
                return environ[env_name]
            return run_checked(["xcrun", "-sdk", platform, "-find", tool])

        try:
            sdk_path = environ.get("SDKROOT") or run_checked(["xcrun", "-sdk", platform, "--show-sdk-path"])
            return cls(
                cc=find("CC", "clang"),
                cxx=find("CXX", "clang++"),
                ar=find("AR", "ar"),
                ranlib=find("RANLIB", "ranlib"),
                sdk_path=sdk_path,
                lipo=find("LIPO", "lipo"),
            )
        except IBuildError as e:
            raise IBuildError(
                f"Unable to resolve the {platform} toolchain: {e}",
                hint="Install the Xcode command line tools or set CC, CXX, AR, RANLIB, SDKROOT and LIPO.",
            ) from e


@dataclass(frozen=True)
class BuildConfig:
    """Settings for one invocation, read once from the environment."""

    package_root: str
    toolchain: Toolchain
    architectures: Tuple[str, ...] = DEFAULT_ARCHITECTURES
    platform: str = DEFAULT_PLATFORM
    deployment_target: str = DEFAULT_DEPLOYMENT_TARGET
    build_root: Optional[str] = None
    dependencies_only: bool = False
    project_dir: Optional[str] = None
    jobs: int = field(default_factory=lambda: os.cpu_count() or 1)

    def __post_init__(self):
        object.__setattr__(self, "package_root", os.path.abspath(self.package_root))
        if self.build_root is None:
            object.__setattr__(self, "build_root", os.path.join(self.files_root, "build"))

    @property
    def files_root(self):
        return os.path.join(self.package_root, FILES_DIR)

    @property
    def checkout_root(self):
        return os.path.join(self.files_root, "checkout")

    @property
    def source_map_path(self):
        return os.path.join(self.files_root, "dependencies.json")

    @property
    def result_store_path(self):
        return os.path.join(self.files_root, "build-results.json")

    @property
    def products_root(self):
        return os.path.join(self.build_root, "Products")

    @property
    def intermediates_root(self):
        return os.path.join(self.build_root, "Intermediates")

    @classmethod
    def from_environment(cls, package_root, environ: Optional[Mapping[str, str]] = None, toolchain=None, jobs=None):
        environ = os.environ if environ is None else environ

        archs = tuple(environ.get("ARCHS", "").split()) or DEFAULT_ARCHITECTURES
        platform = environ.get("PLATFORM_NAME") or DEFAULT_PLATFORM

        deployment_target = DEFAULT_DEPLOYMENT_TARGET
        flag_name = environ.get("DEPLOYMENT_TARGET_CLANG_FLAG_NAME")
        env_name = environ.get("DEPLOYMENT_TARGET_CLANG_ENV_NAME")
        if flag_name and env_name and environ.get(env_name):
            deployment_target = f"{flag_name}={environ[env_name]}"

        build_root = build_root_from_environment(package_root, environ)

        project_dir = environ.get("PROJECT_DIR")

        if toolchain is None:
            toolchain = Toolchain.resolve(platform, environ)

        return cls(
            package_root=package_root,
            toolchain=toolchain,
            architectures=archs,
            platform=platform,
            deployment_target=deployment_target,
            build_root=build_root,
            dependencies_only=environ.get("IBUILD_DEPENDENCIES_ONLY") == "YES",
            project_dir=os.path.abspath(project_dir) if project_dir else None,
            jobs=jobs or os.cpu_count() or 1,
        )


def build_root_from_environment(package_root, environ=None):
    """Products and intermediates root, honouring an IDE's CONFIGURATION_BUILD_DIR."""
    environ = os.environ if environ is None else environ
    if environ.get("CONFIGURATION_BUILD_DIR"):
        return os.path.join(environ["CONFIGURATION_BUILD_DIR"], "ibuild")
    return os.path.join(os.path.abspath(package_root), FILES_DIR, "build")


def is_nested_invocation(package_root, environ=None):
    """True when ibuild is already building ``package_root`` further up the process tree."""
    environ = os.environ if environ is None else environ
    marker = environ.get("IBUILD_CURRENT_PACKAGE_ROOT")
    return bool(marker) and os.path.abspath(marker) == os.path.abspath(package_root)
