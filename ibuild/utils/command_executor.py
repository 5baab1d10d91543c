import subprocess
from ..cli_logger import logger
from ..errors import CommandError

def run_shell_command(command, env=None, cwd=None):
    """
    Executes a command and captures its output.

    Args:
        command (list): The command to execute as a list of strings.
        env (dict, optional): A dictionary of environment variables.
        cwd (str, optional): The working directory for the command.

    Returns:
        A tuple (stdout, stderr, return_code). A missing executable is
        reported as return code -1 with the error in stderr.
    """
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            env=env,
            check=False,
            cwd=cwd
        )
        return result.stdout, result.stderr, result.returncode
    except FileNotFoundError as e:
        logger.error(f"Command not found: {e.filename}")
        return "", str(e), -1
    except NotADirectoryError as e:
        return "", str(e), -1


def run_checked(command, env=None, cwd=None):
    """Run ``command`` and return its stdout, raising CommandError on failure.

    The raised error carries the combined stdout and stderr of the command.
    """
    logger.debug(f"Running: {' '.join(command)}" + (f" (in {cwd})" if cwd else ""))
    stdout, stderr, returncode = run_shell_command(command, env=env, cwd=cwd)
    if returncode != 0:
        output = "\n".join(part.rstrip() for part in (stdout, stderr) if part)
        raise CommandError(command, returncode, output)
    return stdout.strip()
