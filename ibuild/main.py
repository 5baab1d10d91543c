import click
from . import __version__
from .commands import build, archive, install, test, clean


@click.group()
@click.version_option(__version__, prog_name="ibuild")
@click.option("--path", "-p", default=".", help="Path to the package root.")
@click.pass_context
def cli(ctx, path):
    """ibuild: fetch, build and merge native library dependencies."""
    ctx.obj = {"path": path}

cli.add_command(build)
cli.add_command(archive)
cli.add_command(install)
cli.add_command(test)
cli.add_command(clean)

if __name__ == '__main__':
    cli()
