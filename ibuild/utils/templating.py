"""Expansion of ``$#NAME#`` tokens against a build environment."""

import re

from ..errors import TemplateError

TOKEN_PATTERN = re.compile(r"\$#([A-Za-z0-9_]*?)#")

# Substituted values may contain further tokens
MAX_EXPANSION_PASSES = 32


def expand(value, env):
    """Replace every ``$#NAME#`` token in ``value`` with ``env[NAME]``.

    Expansion repeats until no token is left. Unknown names expand to the
    empty string. A self-referencing value raises TemplateError.
    """
    for _ in range(MAX_EXPANSION_PASSES):
        if not TOKEN_PATTERN.search(value):
            return value
        value = TOKEN_PATTERN.sub(lambda match: env.get(match.group(1), ""), value)
    raise TemplateError(f"Environment template did not converge: {value}")


def expand_all(values, env):
    return [expand(value, env) for value in values]
