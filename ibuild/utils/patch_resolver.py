import os
from ..cli_logger import logger
from ..errors import PatchError
from .command_executor import run_shell_command

def apply_patches(patches, patch_root: str, source_path: str) -> None:
    """
    Applies unified-diff patches to a source checkout with strip level 1.

    Args:
        patches: Patch file paths, relative to ``patch_root``.
        patch_root: Root of the package that declared the patches.
        source_path: The checkout the patches apply to.

    A patch whose reverse applies cleanly is already present and is skipped.
    Raises PatchError when a patch is missing or does not apply.
    """
    if not patches:
        return

    logger.info(f"  - Applying patches: {', '.join(patches)}")
    for relative_path in patches:
        patch_path = os.path.join(patch_root, relative_path)
        if not os.path.isfile(patch_path):
            raise PatchError(f"Patch file not found: {patch_path}")

        _, _, returncode = run_shell_command(
            ["patch", "-p1", "-R", "--dry-run", "-s", "-f", "-i", patch_path],
            cwd=source_path
        )
        if returncode == 0:
            logger.info(f"    - Patch already applied: {relative_path}")
            continue

        stdout, stderr, returncode = run_shell_command(
            ["patch", "-p1", "-f", "-i", patch_path],
            cwd=source_path
        )
        if returncode != 0:
            output = "\n".join(part.rstrip() for part in (stdout, stderr) if part)
            raise PatchError(
                f"Failed to apply patch {relative_path} to {source_path} (Exit Code: {returncode})\n{output}"
            )
        logger.success(f"    - Successfully applied patch: {relative_path}")
