import unittest
from unittest.mock import MagicMock, patch
from ibuild.dependency_resolver import DependencyResolver
from ibuild.errors import DependencyCycleError, DependencyNotFoundError
from ibuild.package import BuildProperties, Location, Package


def make_package(name, dependencies=(), build_system="make"):
    return Package(
        name=name,
        build=BuildProperties(build_system, outputs=(f"lib{name}.a",)),
        dependencies=tuple(Location.local(f"../{dependency}") for dependency in dependencies),
    )


def make_fetcher(packages):
    """A fetcher serving ``packages`` (name -> Package) from /cache/<name>."""
    fetcher = MagicMock()

    def fetch(location, patches=(), patch_root=None):
        name = location.value.split("/")[-1]
        return f"/cache/{name}", packages.get(name)

    fetcher.fetch.side_effect = fetch
    return fetcher


class TestDependencyResolver(unittest.TestCase):

    def test_diamond(self):
        packages = {
            "a": make_package("a", ["c"]),
            "b": make_package("b", ["c"]),
            "c": make_package("c"),
        }
        root = make_package("root", ["a", "b"])
        resolver = DependencyResolver(make_fetcher(packages))

        order = resolver.resolve(root, "/root")
        names = [package.name for package, _ in order]

        self.assertEqual(sorted(names), ["a", "b", "c"])
        self.assertLess(names.index("c"), names.index("a"))
        self.assertLess(names.index("c"), names.index("b"))
        self.assertEqual(dict((package.name, path) for package, path in order)["c"], "/cache/c")

    def test_transitive_dependencies_come_first(self):
        packages = {
            "a": make_package("a", ["b"]),
            "b": make_package("b", ["c", "d"]),
            "c": make_package("c", ["d"]),
            "d": make_package("d"),
        }
        order = DependencyResolver(make_fetcher(packages)).resolve(make_package("root", ["a"]), "/root")
        names = [package.name for package, _ in order]

        self.assertEqual(len(names), len(set(names)))
        for package, _ in order:
            for location in package.dependencies:
                dependency = location.value.split("/")[-1]
                self.assertLess(names.index(dependency), names.index(package.name))

    def test_visitation_is_pre_order(self):
        packages = {
            "a": make_package("a", ["c"]),
            "b": make_package("b"),
            "c": make_package("c"),
        }
        visited = DependencyResolver(make_fetcher(packages)).download_dependencies(
            make_package("root", ["a", "b"]), "/root")
        self.assertEqual([package.name for package, _ in visited], ["a", "c", "b"])

    def test_missing_manifest(self):
        resolver = DependencyResolver(make_fetcher({}))
        with self.assertRaises(DependencyNotFoundError):
            resolver.resolve(make_package("root", ["ghost"]), "/root")

    def test_cycle(self):
        packages = {
            "a": make_package("a", ["b"]),
            "b": make_package("b", ["a"]),
        }
        with self.assertRaises(DependencyCycleError):
            DependencyResolver(make_fetcher(packages)).resolve(make_package("root", ["a"]), "/root")

    @patch('ibuild.dependency_resolver.logger')
    def test_conflicting_recipes_are_reported(self, mock_logger):
        visited = [
            (make_package("c", build_system="make"), "/cache/c1"),
            (make_package("c", build_system="cmake"), "/cache/c2"),
        ]
        order = DependencyResolver.build_order(visited)

        self.assertEqual([(package.build.build_system, path) for package, path in order], [("cmake", "/cache/c2")])
        mock_logger.warning.assert_called_once()
        self.assertIn("c", mock_logger.warning.call_args[0][0])

if __name__ == '__main__':
    unittest.main()
