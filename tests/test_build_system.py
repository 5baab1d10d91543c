import os
import tempfile
import unittest
from unittest.mock import MagicMock
from ibuild.engine import BuildSystem, Key
from ibuild.engine import rules
from ibuild.errors import ManifestNotFoundError, TaskProtocolError
from ibuild.package import Location
from helpers import make_config, write_file

MANIFEST = """
name = "foo"

[build]
build_system = "xcode"
outputs = ["Foo.framework"]
"""


class TestBuildSystem(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.package = os.path.join(self.tmp.name, "foo")
        write_file(os.path.join(self.package, "ibuild.toml"), MANIFEST)
        self.build_system = BuildSystem(make_config(self.package), MagicMock(), MagicMock())

    def tearDown(self):
        self.tmp.cleanup()

    def test_keys(self):
        location = Location.github("org/repo", "main")
        self.assertEqual(str(self.build_system.key_for_package(location)), "<P | github | org/repo | main>")
        self.assertEqual(str(self.build_system.key_for_downloading_location(location)), "<DL | github | org/repo | main>")
        self.assertEqual(str(self.build_system.key_for_package_dependencies("/pkg")), "<PD | /pkg>")
        self.assertEqual(str(self.build_system.key_for_building_package("/pkg")), "<BP | /pkg>")
        self.assertEqual(str(self.build_system.key_for_building("/src", "/pkg")), "<B | /pkg | iphoneos | /src>")
        self.assertEqual(str(self.build_system.key_for_building_architecture("arm64", "/src", "/pkg")),
                         "<BA | /pkg | iphoneos | arm64 | /src>")
        self.assertEqual(str(self.build_system.key_for_patching("/src", "/pkg")), "<PS | /pkg | /src>")

    def test_lookup_rule(self):
        location = Location.tar("https://example.com/foo.tar.gz")
        rule = self.build_system.lookup_rule(self.build_system.key_for_package(location))
        self.assertIsInstance(rule, rules.PackageRule)
        self.assertEqual(rule.location, location)

        rule = self.build_system.lookup_rule(
            self.build_system.key_for_building_architecture("armv7", "/src", self.package))
        self.assertIsInstance(rule, rules.BuildArchitectureRule)
        self.assertEqual(rule.package.name, "foo")
        self.assertEqual(rule.platform, "iphoneos")
        self.assertEqual(rule.architecture, "armv7")
        self.assertEqual(rule.source_root, "/src")

    def test_lookup_without_manifest(self):
        with self.assertRaises(ManifestNotFoundError):
            self.build_system.lookup_rule(self.build_system.key_for_building_package(self.tmp.name))

    def test_unknown_kind(self):
        with self.assertRaises(TaskProtocolError):
            self.build_system.lookup_rule(Key("X", ["a"]))

    def test_download_result_validity(self):
        rule = self.build_system.lookup_rule(
            self.build_system.key_for_downloading_location(Location.local("../foo")))
        self.assertTrue(rule.is_result_valid(self.package))
        self.assertFalse(rule.is_result_valid(os.path.join(self.tmp.name, "gone")))
        self.assertFalse(rule.is_result_valid(""))

    def test_architecture_result_validity(self):
        rule = self.build_system.lookup_rule(
            self.build_system.key_for_building_architecture("arm64", self.package, self.package))
        output = os.path.join(self.tmp.name, "out")
        self.assertFalse(rule.is_result_valid(output))
        os.makedirs(os.path.join(output, "Foo.framework"))
        self.assertTrue(rule.is_result_valid(output))
        self.assertFalse(rule.is_result_valid(""))

    def test_build_keys_differ_per_platform(self):
        simulator = BuildSystem(make_config(self.package, platform="iphonesimulator"), MagicMock(), MagicMock())
        self.assertNotEqual(simulator.key_for_building("/src", "/pkg"), self.build_system.key_for_building("/src", "/pkg"))
        self.assertNotEqual(simulator.key_for_building_architecture("arm64", "/src", "/pkg"),
                            self.build_system.key_for_building_architecture("arm64", "/src", "/pkg"))

    def test_architecture_without_outputs_is_never_valid(self):
        bare = os.path.join(self.tmp.name, "bare")
        write_file(os.path.join(bare, "ibuild.toml"), 'name = "bare"\n\n[build]\nbuild_system = "make"\n')
        rule = self.build_system.lookup_rule(self.build_system.key_for_building_architecture("arm64", bare, bare))
        output = os.path.join(self.tmp.name, "out")
        os.makedirs(output)
        self.assertFalse(rule.is_result_valid(output))

    def test_ide_hosted_package_is_not_built(self):
        build_system = BuildSystem(make_config(self.package, project_dir=self.package), MagicMock(), MagicMock())
        rule = build_system.lookup_rule(build_system.key_for_building(self.package, self.package))
        self.assertTrue(rule.is_hosted_by_ide)

        rule = self.build_system.lookup_rule(self.build_system.key_for_building(self.package, self.package))
        self.assertFalse(rule.is_hosted_by_ide)

if __name__ == '__main__':
    unittest.main()
