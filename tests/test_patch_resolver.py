import os
import tempfile
import unittest
from unittest.mock import patch
from ibuild.errors import PatchError
from ibuild.utils.patch_resolver import apply_patches


class TestApplyPatches(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.patch_root = self.tmp.name
        os.makedirs(os.path.join(self.patch_root, "patches"))
        self.patch_path = os.path.join(self.patch_root, "patches", "fix.patch")
        with open(self.patch_path, "w") as f:
            f.write("--- a/foo.c\n+++ b/foo.c\n")

    def tearDown(self):
        self.tmp.cleanup()

    @patch('ibuild.utils.patch_resolver.run_shell_command')
    def test_applies_patch(self, mock_run):
        mock_run.side_effect = [("", "", 1), ("patching file foo.c", "", 0)]
        apply_patches(["patches/fix.patch"], self.patch_root, "/src")

        self.assertEqual(mock_run.call_count, 2)
        mock_run.assert_called_with(["patch", "-p1", "-f", "-i", self.patch_path], cwd="/src")

    @patch('ibuild.utils.patch_resolver.run_shell_command')
    def test_already_applied_patch_is_skipped(self, mock_run):
        mock_run.return_value = ("", "", 0)
        apply_patches(["patches/fix.patch"], self.patch_root, "/src")

        mock_run.assert_called_once_with(
            ["patch", "-p1", "-R", "--dry-run", "-s", "-f", "-i", self.patch_path], cwd="/src")

    @patch('ibuild.utils.patch_resolver.run_shell_command')
    def test_failing_patch(self, mock_run):
        mock_run.side_effect = [("", "", 1), ("Hunk #1 FAILED", "", 1)]
        with self.assertRaises(PatchError) as context:
            apply_patches(["patches/fix.patch"], self.patch_root, "/src")
        self.assertIn("Hunk #1 FAILED", str(context.exception))

    def test_missing_patch_file(self):
        with self.assertRaises(PatchError):
            apply_patches(["patches/missing.patch"], self.patch_root, "/src")

if __name__ == '__main__':
    unittest.main()
