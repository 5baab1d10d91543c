"""Error taxonomy shared by every ibuild component."""


class IBuildError(Exception):
    """Base class for all errors ibuild reports to the user."""

    def __init__(self, message, hint=None):
        super().__init__(message)
        self.hint = hint

    def __str__(self):
        message = super().__str__()
        if self.hint:
            return f"{message}\nHint: {self.hint}"
        return message


class CommandError(IBuildError):
    """An external command exited with a non-zero status."""

    def __init__(self, command, returncode, output=""):
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        message = f"Error while running external command: {' '.join(self.command)}. Return code: {returncode}"
        if output:
            message += f"\nOutput:\n{output.rstrip()}"
        super().__init__(message)


# Resolution errors

class ResolutionError(IBuildError):
    pass


class InvalidLocationError(ResolutionError):
    pass


class ManifestError(ResolutionError):
    pass


class ManifestNotFoundError(ManifestError):
    def __init__(self, path):
        self.path = path
        super().__init__(
            f"No package manifest found at {path}",
            hint="Every package root must contain an ibuild.toml file.",
        )


class DependencyNotFoundError(ResolutionError):
    pass


class DependencyCycleError(ResolutionError):
    pass


# Fetch errors

class FetchError(IBuildError):
    pass


class PatchError(FetchError):
    pass


# Build errors

class BuildError(IBuildError):
    pass


class MissingOutputError(BuildError):
    pass


class TemplateError(BuildError):
    pass


class MergeError(IBuildError):
    pass


# Engine errors

class EngineError(IBuildError):
    pass


class CycleError(EngineError):
    pass


class TaskProtocolError(EngineError):
    pass


class TaskFailedError(EngineError):
    """Raised by the engine when the requested key could not be produced."""

    def __init__(self, key, cause):
        self.key = key
        self.cause = cause
        super().__init__(f"Failed to build {key}: {cause}")
