import os
from ..errors import ManifestNotFoundError, TaskProtocolError
from ..package import Location, Package
from .core import Key
from . import rules

# Kinds parameterised by a location's key sequence
PACKAGE = "P"
DOWNLOAD_LOCATION = "DL"

# Kinds parameterised by a package root followed by rule parameters
PACKAGE_DEPENDENCIES = "PD"
BUILD_PACKAGE = "BP"
PATCH_SOURCES = "PS"
BUILD = "B"
BUILD_ARCHITECTURE = "BA"

LOCATION_RULES = {
    PACKAGE: rules.PackageRule,
    DOWNLOAD_LOCATION: rules.DownloadPackageLocationRule,
}

PACKAGE_RULES = {
    PACKAGE_DEPENDENCIES: rules.PackageDependenciesRule,
    BUILD_PACKAGE: rules.BuildPackageRule,
    PATCH_SOURCES: rules.PatchSourcesRule,
    BUILD: rules.BuildRule,
    BUILD_ARCHITECTURE: rules.BuildArchitectureRule,
}


class BuildSystem:
    """Builds keys for the ibuild graph and maps each key back to its rule.

    Acts as the engine's delegate. Every rule reaches the fetcher, the
    artifact merger and the build configuration through this object.
    """

    def __init__(self, config, fetcher, merger):
        self.config = config
        self.fetcher = fetcher
        self.merger = merger

    @property
    def package_root(self):
        return self.config.package_root

    def key_for_package(self, location):
        return Key(PACKAGE, location.as_key_sequence())

    def key_for_downloading_location(self, location):
        return Key(DOWNLOAD_LOCATION, location.as_key_sequence())

    def key_for_package_dependencies(self, path):
        return Key(PACKAGE_DEPENDENCIES, [os.path.abspath(path)])

    def key_for_building_package(self, path):
        return Key(BUILD_PACKAGE, [os.path.abspath(path)])

    def key_for_patching(self, source_root, path):
        return Key(PATCH_SOURCES, [os.path.abspath(path), os.path.abspath(source_root)])

    def key_for_building(self, source_root, path):
        return Key(BUILD, [os.path.abspath(path), self.config.platform, os.path.abspath(source_root)])

    def key_for_building_architecture(self, architecture, source_root, path):
        parameters = [os.path.abspath(path), self.config.platform, architecture, os.path.abspath(source_root)]
        return Key(BUILD_ARCHITECTURE, parameters)

    def lookup_rule(self, key):
        if key.kind in LOCATION_RULES:
            location = Location.from_key_sequence(list(key.parameters))
            return LOCATION_RULES[key.kind](location, self)

        if key.kind in PACKAGE_RULES:
            if not key.parameters:
                raise TaskProtocolError(f"Key {key} does not name a package root")
            path, *parameters = key.parameters
            package = Package.in_project(path)
            if package is None:
                raise ManifestNotFoundError(path)
            return PACKAGE_RULES[key.kind](package, path, parameters, self)

        raise TaskProtocolError(f"Unknown rule kind in key {key}")
