import click
import os
from ..cli_logger import logger
from ..config import BuildConfig, is_nested_invocation
from ..decorators import handle_exceptions
from ..dependency_resolver import DependencyResolver
from ..engine import BuildEngine, BuildSystem, ResultStore
from ..errors import ManifestNotFoundError
from ..fetcher import Fetcher
from ..merger import ArtifactMerger
from ..package import Location, Package
from ..source_map import SourceMap

MODES = ("graph", "linear")


def run_build(package_root, mode="graph", jobs=None, environ=None, toolchain=None):
    """Fetch and build every dependency of the package at ``package_root``, then the package.

    Returns False when the invocation is nested inside a build of the same
    package and nothing was done.
    """
    package_root = os.path.abspath(package_root)
    if is_nested_invocation(package_root, environ):
        logger.info(f"ibuild is already building {package_root}; nothing to do.")
        return False

    package = Package.in_project(package_root)
    if package is None:
        raise ManifestNotFoundError(package_root)

    config = BuildConfig.from_environment(package_root, environ=environ, toolchain=toolchain, jobs=jobs)
    logger.info(f"Building {package.name} for {config.platform} ({', '.join(config.architectures)})...")

    source_map = SourceMap.load(config.source_map_path)
    fetcher = Fetcher(config.checkout_root, source_map, package_root)
    build_system = BuildSystem(config, fetcher, ArtifactMerger(config.toolchain.lipo))
    engine = BuildEngine(build_system, ResultStore(config.result_store_path), max_workers=config.jobs)

    if mode == "linear":
        order = DependencyResolver(fetcher).resolve(package, package_root)
        logger.info(f"Build order: {', '.join(dependency.name for dependency, _ in order) or '(none)'}")
        for dependency, path in order:
            logger.step_info(f"- {dependency.name}", indent=2)
            engine.build(build_system.key_for_building_package(path))
        if not config.dependencies_only:
            engine.build(build_system.key_for_building_package(package_root))
    elif config.dependencies_only:
        engine.build(build_system.key_for_package_dependencies(package_root))
    else:
        engine.build(build_system.key_for_package(Location.local(package_root)))

    logger.success(f"Products are in {config.products_root}")
    return True


def _build_command(name, help_text):
    @click.command(name=name, help=help_text)
    @click.option("--mode", type=click.Choice(MODES), default="graph", show_default=True,
                  help="Evaluate the dependency graph incrementally, or fetch everything first and build in order.")
    @click.option("--jobs", "-j", type=int, default=None, help="Number of concurrent build tasks.")
    @click.pass_context
    @handle_exceptions
    def command(ctx, mode, jobs):
        run_build(ctx.obj["path"], mode=mode, jobs=jobs)

    return command


# IDE build actions all resolve to the same build
build = _build_command("build", "Fetch and build all dependencies, then the package itself.")
archive = _build_command("archive", "Same as build; invoked for archive actions.")
install = _build_command("install", "Same as build; invoked for install actions.")
test = _build_command("test", "Same as build; invoked for test actions.")
