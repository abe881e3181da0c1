"""
`${{ context.property }}` expressions.

Only single dotted lookups are supported (github.sha, runner.os, env.FOO).
No operators, functions, literals or nesting.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Mapping

from .context import GitHubContext, RunnerContext
from .errors import ExpressionError

logger = logging.getLogger(__name__)

OPEN = "${{"
CLOSE = "}}"

GITHUB_PROPERTIES = frozenset(f.name for f in fields(GitHubContext))
RUNNER_PROPERTIES = frozenset(f.name for f in fields(RunnerContext))


class ExpressionEvaluator:
    """Evaluates one expression token against read-only context snapshots."""

    def __init__(self, github: GitHubContext, runner: RunnerContext, env: Mapping[str, str]):
        self.github = github
        self.runner = runner
        self.env = env

    def evaluate(self, token: str) -> str:
        """
        Evaluate `${{ ctx.prop }}`. Anything not wrapped in ${{ }} comes back as-is.

        Raises:
          ExpressionError: bad shape, unknown context, unknown property,
            or an env name that is not set
        """
        if not (token.startswith(OPEN) and token.endswith(CLOSE)):
            return token
        inner = token[len(OPEN):-len(CLOSE)].strip()
        return self._lookup(inner)

    def _lookup(self, expr: str) -> str:
        parts = expr.split(".")
        if len(parts) != 2 or not all(p.strip() for p in parts):
            raise ExpressionError(
                f"unsupported expression format: {expr}",
                details={"expression": expr},
            )

        context_name = parts[0].strip().lower()
        prop = parts[1].strip()

        if context_name == "github":
            if prop not in GITHUB_PROPERTIES:
                raise ExpressionError(f"unknown github property: {prop}")
            return getattr(self.github, prop)
        if context_name == "runner":
            if prop not in RUNNER_PROPERTIES:
                raise ExpressionError(f"unknown runner property: {prop}")
            return getattr(self.runner, prop)
        if context_name == "env":
            if prop not in self.env:
                raise ExpressionError(f"environment variable {prop} not found")
            return self.env[prop]

        raise ExpressionError(f"unknown context: {context_name}", details={"expression": expr})


def substitute_expressions(text: str, evaluator: ExpressionEvaluator) -> str:
    """
    Replace every ${{ ... }} in `text`, left to right.

    The first expression that fails to evaluate stops the scan: it and
    everything after it are returned untouched. The error is logged, not raised.
    """
    out = []
    pos = 0
    while True:
        start = text.find(OPEN, pos)
        if start == -1:
            break
        end = text.find(CLOSE, start + len(OPEN))
        if end == -1:
            break
        end += len(CLOSE)

        try:
            value = evaluator.evaluate(text[start:end])
        except ExpressionError as e:
            logger.warning("expression substitution stopped at %r: %s", text[start:end], e.message)
            break

        out.append(text[pos:start])
        out.append(value)
        pos = end

    out.append(text[pos:])
    return "".join(out)
