from .command_executor import run_shell_command, run_checked
from .file_manager import download_and_extract, extract, copy_path, remove_path
from .patch_resolver import apply_patches
from .templating import expand, expand_all
