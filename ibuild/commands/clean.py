import click
import os
import shutil
from ..cli_logger import logger
from ..config import build_root_from_environment
from ..decorators import handle_exceptions


def clean_build_root(package_root, environ=None):
    """Delete the build products and intermediates of ``package_root``.

    The checkout cache and the source map are kept. Returns True when
    something was removed.
    """
    build_root = build_root_from_environment(package_root, environ)
    if not os.path.exists(build_root):
        logger.info("Project is already clean.")
        return False

    logger.info(f"Attempting to remove directory {build_root}...")
    shutil.rmtree(build_root)
    logger.success(f"Removed directory {build_root}")
    return True


@click.command()
@click.pass_context
@handle_exceptions
def clean(ctx):
    """Remove build products and intermediates."""
    logger.info("Cleaning build artifacts...")
    clean_build_root(ctx.obj["path"])
