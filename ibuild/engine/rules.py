"""The rules behind each kind of ibuild key.

``P``  fetch a location, build its dependencies, then the package itself.
``DL`` fetch a location into the checkout cache; the value is its path.
``PD`` build every dependency of a package.
``BP`` fetch and patch a package's build sources, then build them.
``PS`` apply a package's patches to its fetched sources; the value is the source root.
``B``  build every architecture of one platform and merge the results into the products.
``BA`` build a single platform and architecture; the value is its build output directory.
"""

import os
from ..builder import ArchitectureBuilder
from ..cli_logger import logger
from ..merger import assemble_products
from ..utils import apply_patches
from .core import Rule, Task


class LocationRule(Rule):
    def __init__(self, location, build_system):
        self.location = location
        self.build_system = build_system


class PackageRuleBase(Rule):
    def __init__(self, package, package_path, parameters, build_system):
        self.package = package
        self.package_path = package_path
        self.parameters = list(parameters)
        self.build_system = build_system

    @property
    def config(self):
        return self.build_system.config


# -- P ---------------------------------------------------------------------

class PackageRule(LocationRule):
    def create_task(self):
        return PackageTask(self)


class PackageTask(Task):
    DOWNLOAD = 0
    DEPENDENCIES = 1
    BUILD = 2

    def __init__(self, rule):
        self.rule = rule
        self.package_path = None
        self.build_value = None

    def start(self, engine):
        engine.needs_input(self.rule.build_system.key_for_downloading_location(self.rule.location), self.DOWNLOAD)

    def provide_value(self, engine, input_id, value):
        build_system = self.rule.build_system
        if input_id == self.DOWNLOAD:
            self.package_path = value
            engine.needs_input(build_system.key_for_package_dependencies(value), self.DEPENDENCIES)
        elif input_id == self.DEPENDENCIES:
            engine.needs_input(build_system.key_for_building_package(self.package_path), self.BUILD)
        elif input_id == self.BUILD:
            self.build_value = value

    def inputs_available(self, engine):
        engine.complete(self.build_value)


# -- DL --------------------------------------------------------------------

class DownloadPackageLocationRule(LocationRule):
    def is_result_valid(self, prior_value):
        return bool(prior_value) and os.path.exists(prior_value)

    def create_task(self):
        return DownloadPackageLocationTask(self)


class DownloadPackageLocationTask(Task):
    def __init__(self, rule):
        self.rule = rule

    def inputs_available(self, engine):
        fetcher = self.rule.build_system.fetcher
        location = self.rule.location
        engine.run_in_background(lambda: fetcher.fetch_location(location))


# -- PD --------------------------------------------------------------------

class PackageDependenciesRule(PackageRuleBase):
    def create_task(self):
        return PackageDependenciesTask(self)


class PackageDependenciesTask(Task):
    def __init__(self, rule):
        self.rule = rule

    def start(self, engine):
        for index, location in enumerate(self.rule.package.dependencies):
            engine.needs_input(self.rule.build_system.key_for_package(location), index)

    def inputs_available(self, engine):
        engine.complete("")


# -- BP --------------------------------------------------------------------

class BuildPackageRule(PackageRuleBase):
    def create_task(self):
        return BuildPackageTask(self)


class BuildPackageTask(Task):
    DOWNLOAD = 0
    BUILD = 1
    PATCH = 2

    def __init__(self, rule):
        self.rule = rule
        self.build_value = ""

    def start(self, engine):
        rule = self.rule
        build = rule.package.build
        if build is None:
            return
        if build.location is not None:
            engine.needs_input(rule.build_system.key_for_downloading_location(build.location), self.DOWNLOAD)
        else:
            # The package root holds its own sources
            engine.needs_input(rule.build_system.key_for_building(rule.package_path, rule.package_path), self.BUILD)

    def provide_value(self, engine, input_id, value):
        rule = self.rule
        if input_id == self.DOWNLOAD and rule.package.build.patches:
            # Patched before any architecture of this package starts building
            engine.needs_input(rule.build_system.key_for_patching(value, rule.package_path), self.PATCH)
        elif input_id in (self.DOWNLOAD, self.PATCH):
            engine.needs_input(rule.build_system.key_for_building(value, rule.package_path), self.BUILD)
        elif input_id == self.BUILD:
            logger.success(f"Finished building package: {rule.package.name}")
            self.build_value = value

    def inputs_available(self, engine):
        engine.complete(self.build_value)


# -- PS --------------------------------------------------------------------

class PatchSourcesRule(PackageRuleBase):
    def __init__(self, package, package_path, parameters, build_system):
        super().__init__(package, package_path, parameters, build_system)
        self.source_root = parameters[0]

    def create_task(self):
        return PatchSourcesTask(self)


class PatchSourcesTask(Task):
    def __init__(self, rule):
        self.rule = rule

    def apply(self):
        rule = self.rule
        patches = list(rule.package.build.patches)
        logger.info(f"  - Applying patches to {rule.package.name}: {', '.join(patches)}")
        apply_patches(patches, rule.package_path, rule.source_root)
        return rule.source_root

    def inputs_available(self, engine):
        engine.run_in_background(self.apply)


# -- B ---------------------------------------------------------------------

class BuildRule(PackageRuleBase):
    def __init__(self, package, package_path, parameters, build_system):
        super().__init__(package, package_path, parameters, build_system)
        self.platform = parameters[0]
        self.source_root = parameters[1]
        self.architectures = list(build_system.config.architectures)

    @property
    def is_hosted_by_ide(self):
        """The IDE builds its own project; ibuild only provides its dependencies."""
        build = self.package.build
        project_dir = self.config.project_dir
        return (
            build is not None
            and build.build_system == "xcode"
            and project_dir is not None
            and os.path.abspath(self.package_path) == project_dir
        )

    def create_task(self):
        return BuildTask(self)


class BuildTask(Task):
    def __init__(self, rule):
        self.rule = rule
        self.results = {}
        self.skipped = False

    def start(self, engine):
        rule = self.rule
        if rule.package.build is None or rule.is_hosted_by_ide:
            self.skipped = True
            return
        for index, architecture in enumerate(rule.architectures):
            key = rule.build_system.key_for_building_architecture(architecture, rule.source_root, rule.package_path)
            engine.needs_input(key, index)

    def provide_value(self, engine, input_id, value):
        self.results[self.rule.architectures[input_id]] = value

    def inputs_available(self, engine):
        if self.skipped:
            logger.info(f"Skipping build of {self.rule.package.name}")
            engine.complete("")
            return

        rule = self.rule
        arch_outputs = [(architecture, self.results[architecture]) for architecture in rule.architectures]
        engine.run_in_background(lambda: assemble_products(
            rule.package.name,
            rule.package.build,
            rule.package_path,
            arch_outputs,
            rule.config.products_root,
            rule.build_system.merger,
        ))


# -- BA --------------------------------------------------------------------

class BuildArchitectureRule(PackageRuleBase):
    def __init__(self, package, package_path, parameters, build_system):
        super().__init__(package, package_path, parameters, build_system)
        self.platform = parameters[0]
        self.architecture = parameters[1]
        self.source_root = parameters[2]

    def is_result_valid(self, prior_value):
        outputs = self.package.build.outputs if self.package.build is not None else ()
        if not prior_value or not outputs:
            return False
        return all(os.path.exists(os.path.join(prior_value, output)) for output in outputs)

    def create_task(self):
        return BuildArchitectureTask(self)


class BuildArchitectureTask(Task):
    def __init__(self, rule):
        self.rule = rule

    def inputs_available(self, engine):
        rule = self.rule
        if rule.package.build is None:
            engine.complete("")
            return

        builder = ArchitectureBuilder(
            rule.package.name,
            rule.package.build,
            rule.package_path,
            rule.source_root,
            rule.config,
            rule.architecture,
        )
        engine.run_in_background(builder.build)
