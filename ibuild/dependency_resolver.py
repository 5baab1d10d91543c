from .cli_logger import logger
from .errors import DependencyCycleError, DependencyNotFoundError


class DependencyResolver:
    """Walks a package's dependency graph and orders it for building."""

    def __init__(self, fetcher):
        self.fetcher = fetcher

    def download_dependencies(self, package, package_root, _stack=None):
        """Fetch every dependency of ``package``, depth first, pre-order.

        Returns the visited ``(package, path)`` pairs in visitation order.
        Shared dependencies are visited once per path that reaches them.
        """
        stack = _stack if _stack is not None else [package_root]
        visited = []
        for location in package.dependencies:
            path, dependency = self.fetcher.fetch(location)
            if dependency is None:
                raise DependencyNotFoundError(
                    f"Dependency {location} of {package.name} has no manifest at {path}"
                )
            if path in stack:
                cycle = " -> ".join(stack[stack.index(path):] + [path])
                raise DependencyCycleError(f"Dependency cycle detected: {cycle}")

            visited.append((dependency, path))
            stack.append(path)
            visited.extend(self.download_dependencies(dependency, path, stack))
            stack.pop()
        return visited

    @staticmethod
    def build_order(visited):
        """Reverse the visitation sequence and keep the first occurrence of each name.

        The result lists every dependency before the packages that depend on it.
        """
        order = []
        seen = {}
        for package, path in reversed(visited):
            if package.name in seen:
                kept, kept_path = seen[package.name]
                if kept.build != package.build:
                    logger.warning(
                        f"Package {package.name} is declared with different build properties; "
                        f"using the one at {kept_path}"
                    )
                continue
            seen[package.name] = (package, path)
            order.append((package, path))
        return order

    def resolve(self, package, package_root):
        return self.build_order(self.download_dependencies(package, package_root))
