# actions/checkout.py
from __future__ import annotations

import shlex
from typing import Mapping

from ..container.driver import LineSink
from ..errors import SandboxError
from .base import ActionContext, ActionExecutor, ActionResult


class CheckoutAction(ActionExecutor):
    """
    actions/checkout

    The project directory is already mounted at the workspace, so there is
    nothing to clone. This only marks the environment and checks that the
    workspace is visible from inside the sandbox.
    """

    name = "actions/checkout"

    def validate_inputs(self, inputs: Mapping[str, str]) -> None:
        # ref, path, fetch-depth, ... have no effect on a mounted workspace
        return None

    def execute(self, ctx: ActionContext, sink: LineSink) -> ActionResult:
        sink("Setting up workspace for checkout...")
        workspace = ctx.github.workspace or ctx.workspace_dir

        markers = {
            "GITHUB_WORKSPACE": workspace,
            "GITHUB_REPOSITORY": ctx.github.repository,
            "GITHUB_SHA": ctx.github.sha,
            "GITHUB_REF": ctx.github.ref,
        }

        try:
            for key, value in markers.items():
                result = ctx.run(f"export {key}={shlex.quote(value)}", sink)
                if not result.success:
                    sink(f"Warning: could not set {key} (exit code {result.exit_code})")

            listing = ctx.run(f"ls -la {shlex.quote(workspace)}", sink)
            if not listing.success:
                sink("Warning: Could not verify workspace contents")
        except SandboxError as e:
            return ActionResult.failed(e)

        sink("Checkout completed - workspace is ready")
        return ActionResult(success=True, outputs={"path": workspace})
