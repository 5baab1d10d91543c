import os
import shutil
from .cli_logger import logger
from .errors import CommandError, MergeError
from .utils import run_checked, copy_path, remove_path

BUNDLE_EXTENSIONS = (".framework",)
LIBRARY_EXTENSIONS = (".a", ".dylib", ".so")


def _copy_missing(source, destination):
    """Copy a tree into ``destination`` without replacing files already there."""
    for root, _, files in os.walk(source):
        target_root = os.path.join(destination, os.path.relpath(root, source))
        os.makedirs(target_root, exist_ok=True)
        for name in files:
            target = os.path.join(target_root, name)
            if not os.path.lexists(target):
                shutil.copy2(os.path.join(root, name), target)


class ArtifactMerger:
    """Merges per-architecture build outputs into universal artifacts."""

    def __init__(self, lipo="lipo"):
        self.lipo = lipo

    def merge(self, name, arch_paths, destination):
        """Produce ``destination`` from ``arch_paths``, a list of ``(architecture, path)``."""
        if not arch_paths:
            raise MergeError(f"No architectures were built for {name}")
        missing = [f"{path} ({arch})" for arch, path in arch_paths if not os.path.exists(path)]
        if missing:
            raise MergeError(f"Missing per-architecture inputs for {name}: {', '.join(missing)}")

        if name.endswith(BUNDLE_EXTENSIONS):
            self._merge_bundle(arch_paths, destination)
        elif name.endswith(LIBRARY_EXTENSIONS):
            self._merge_binary(arch_paths, destination)
        else:
            # Plain files come from the first architecture as-is
            remove_path(destination)
            copy_path(arch_paths[0][1], destination)
        return destination

    def _merge_binary(self, arch_paths, destination):
        os.makedirs(os.path.dirname(destination), exist_ok=True)
        logger.info(f"  - Merging {', '.join(arch for arch, _ in arch_paths)} into {destination}")
        command = [self.lipo, "-create", "-output", destination]
        for arch, path in arch_paths:
            command += ["-arch", arch, path]
        try:
            run_checked(command)
        except CommandError as e:
            raise MergeError(f"Failed to merge {destination}: {e}") from e

    def _merge_bundle(self, arch_paths, destination):
        # The bundle layout comes from the first architecture; only its binary is merged
        remove_path(destination)
        shutil.copytree(arch_paths[0][1], destination, symlinks=True)

        binary_name = os.path.splitext(os.path.basename(destination.rstrip(os.sep)))[0]
        self._merge_binary(
            [(arch, os.path.join(path, binary_name)) for arch, path in arch_paths],
            os.path.join(destination, binary_name),
        )

        modules_dir = os.path.join(destination, "Modules")
        for _, path in arch_paths:
            swiftmodule = os.path.join(path, "Modules", f"{binary_name}.swiftmodule")
            if os.path.isdir(swiftmodule):
                _copy_missing(swiftmodule, os.path.join(modules_dir, f"{binary_name}.swiftmodule"))


def copy_headers_and_metadata(source, destination):
    """Copy headers, pkg-config files and swiftmodules from one architecture's output.

    Paths inside the copied pkg-config files are rewritten from ``source``
    to ``destination``.
    """
    os.makedirs(destination, exist_ok=True)

    headers = os.path.join(source, "include")
    if os.path.isdir(headers):
        copy_path(headers, os.path.join(destination, "include"))

    pkgconfig = os.path.join(source, "lib", "pkgconfig")
    if os.path.isdir(pkgconfig):
        pkgconfig_root = os.path.join(destination, "lib", "pkgconfig")
        os.makedirs(pkgconfig_root, exist_ok=True)
        for name in os.listdir(pkgconfig):
            source_file = os.path.join(pkgconfig, name)
            if not os.path.isfile(source_file):
                continue
            with open(source_file, "r") as f:
                content = f.read()
            with open(os.path.join(pkgconfig_root, name), "w") as f:
                f.write(content.replace(source, destination))

    swiftmodules = os.path.join(source, "swiftmodules")
    if os.path.isdir(swiftmodules):
        copy_path(swiftmodules, os.path.join(destination, "swiftmodules"))


def assemble_products(package_name, properties, package_root, arch_outputs, products_root, merger):
    """Publish a package's per-architecture outputs into the product root.

    ``arch_outputs`` is an ordered list of ``(architecture, build output dir)``.
    Every declared output is merged into ``products_root`` and copied into
    ``products_root/<package_name>``, followed by headers and metadata from
    the first architecture and the package's auxiliary files.

    Returns the package-scoped product directory.
    """
    package_products = os.path.join(products_root, package_name)
    os.makedirs(package_products, exist_ok=True)

    for output in properties.outputs:
        destination = os.path.join(products_root, output)
        merger.merge(output, [(arch, os.path.join(path, output)) for arch, path in arch_outputs], destination)
        package_copy = os.path.join(package_products, output)
        remove_path(package_copy)
        copy_path(destination, package_copy)

    if arch_outputs:
        first_output = arch_outputs[0][1]
        copy_headers_and_metadata(first_output, products_root)
        copy_headers_and_metadata(first_output, package_products)

    for source, destination in properties.auxiliary_files.items():
        source_path = os.path.join(package_root, source)
        if not os.path.exists(source_path):
            raise MergeError(f"Auxiliary file {source} not found in {package_root}")
        copy_path(source_path, os.path.join(package_products, destination))

    logger.success(f"  - Products of {package_name} are in {package_products}")
    return package_products
