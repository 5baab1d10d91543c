import os
import shutil
from .cli_logger import logger
from .errors import CommandError, FetchError
from .package import Package
from .utils import run_checked, download_and_extract, remove_path, apply_patches


class Fetcher:
    """Materialises package locations into the checkout cache.

    Checkouts live in ``checkout_root/<location sha1>`` and are recorded in
    the SourceMap under the location's remote identity, so a location is
    cloned, downloaded or copied at most once and updated afterwards.
    """

    def __init__(self, checkout_root, source_map, package_root):
        self.checkout_root = checkout_root
        self.source_map = source_map
        self.package_root = os.path.abspath(package_root)

    def fetch(self, location, patches=(), patch_root=None):
        """Return ``(local_path, package)`` for ``location``.

        ``package`` is None when the checkout carries no manifest. Patches
        are resolved relative to ``patch_root``, the requesting package.
        """
        local_path = self.fetch_location(location)
        if patches:
            apply_patches(list(patches), patch_root or self.package_root, local_path)
        return local_path, Package.in_project(local_path)

    def fetch_location(self, location):
        remote = location.remote_location(self.package_root)

        # Never copy the root package into its own cache
        if location.kind == "local" and remote == self.package_root:
            self.source_map.set(remote, remote)
            return remote

        logger.info(f"  - Retrieving package from: {remote}")
        existing = self.source_map.get(remote)
        try:
            if existing and os.path.exists(existing):
                logger.info(f"    - {remote} already downloaded to {existing}")
                if location.is_version_controlled:
                    self._update_git(existing, location.branch)
                return existing

            destination = os.path.join(self.checkout_root, location.sha1)
            if location.is_version_controlled:
                self._fetch_git(remote, location.branch, destination)
            elif location.kind == "tar":
                self._fetch_tar(remote, destination)
            else:
                self._copy_local(remote, destination)
        except CommandError as e:
            raise FetchError(f"Failed to retrieve {location}: {e}") from e
        except OSError as e:
            raise FetchError(f"Failed to retrieve {location}: {e}") from e

        self.source_map.set(remote, destination)
        return destination

    def _fetch_git(self, url, branch, destination):
        if os.path.exists(destination):
            # Left behind by an earlier run
            self._update_git(destination, branch)
            return
        logger.info(f"    - Cloning with git: {url}")
        os.makedirs(os.path.dirname(destination), exist_ok=True)
        run_checked(["git", "clone", "--recursive", url, destination])
        run_checked(["git", "checkout", branch], cwd=destination)

    def _update_git(self, repository, branch):
        logger.info(f"    - Updating {repository} to {branch}")
        run_checked(["git", "reset", "--hard"], cwd=repository)
        run_checked(["git", "checkout", branch], cwd=repository)
        run_checked(["git", "pull", "origin", branch], cwd=repository)
        run_checked(["git", "submodule", "update", "--init", "--recursive"], cwd=repository)

    def _fetch_tar(self, url, destination):
        logger.info(f"    - Downloading tar: {url}")
        remove_path(destination)
        os.makedirs(destination)
        download_and_extract(url, destination, strip_components=1)

    def _copy_local(self, path, destination):
        if not os.path.isdir(path):
            raise FetchError(f"Local package not found: {path}")
        logger.info(f"    - Copying local package: {path}")
        remove_path(destination)
        os.makedirs(os.path.dirname(destination), exist_ok=True)
        shutil.copytree(path, destination, symlinks=True, ignore=shutil.ignore_patterns(".ibuild"))
