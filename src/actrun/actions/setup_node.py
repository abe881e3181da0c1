# actions/setup_node.py
from __future__ import annotations

from typing import Dict, Mapping

from ..container.driver import LineSink
from ..errors import InputValidationError, SandboxError, StepError
from .base import ActionContext, ActionExecutor, ActionResult

DEFAULT_NODE_VERSION = "18"

# may already be present in the image, so failures here are tolerated
PREREQUISITE_COMMANDS = (
    "apt-get update",
    "apt-get install -y curl ca-certificates gnupg",
)


def install_commands(node_version: str) -> tuple[str, ...]:
    return (
        f"curl -fsSL https://deb.nodesource.com/setup_{node_version}.x | bash -",
        "apt-get install -y nodejs",
    )


class SetupNodeAction(ActionExecutor):
    """
    actions/setup-node

    Installs Node.js from NodeSource inside the sandbox, then reports the
    installed node/npm versions as outputs.
    """

    name = "actions/setup-node"

    def validate_inputs(self, inputs: Mapping[str, str]) -> None:
        if "node-version" in inputs and not inputs["node-version"].strip():
            raise InputValidationError("node-version cannot be empty")

    def execute(self, ctx: ActionContext, sink: LineSink) -> ActionResult:
        node_version = (ctx.inputs.get("node-version") or DEFAULT_NODE_VERSION).strip()
        sink(f"Setting up Node.js {node_version}")
        outputs: Dict[str, str] = {}

        try:
            for cmd in PREREQUISITE_COMMANDS:
                sink(f"Installing prerequisites: {cmd}")
                if not ctx.run(cmd, sink).success:
                    sink(f"Warning: prerequisite command failed but continuing: {cmd}")

            for cmd in install_commands(node_version):
                sink(f"Running: {cmd}")
                result = ctx.run(cmd, sink)
                if not result.success:
                    return ActionResult.failed(StepError(
                        "failed to install Node.js",
                        details={"command": cmd, "exit_code": result.exit_code, "output": result.tail()},
                    ))

            node = ctx.run("node --version")
            if not node.success:
                return ActionResult.failed(StepError(
                    "Node.js installation verification failed",
                    details={"command": "node --version", "exit_code": node.exit_code, "output": node.tail()},
                ))
            outputs["node-version"] = node.stdout.strip()
            sink(f"Node.js installed: {outputs['node-version']}")

            npm = ctx.run("npm --version")
            if npm.success:
                outputs["npm-version"] = npm.stdout.strip()
                sink(f"npm installed: {outputs['npm-version']}")

            cache = ctx.run("mkdir -p /home/runner/.npm && npm config set cache /home/runner/.npm", sink)
            if not cache.success:
                sink("Warning: could not configure npm cache directory")
        except SandboxError as e:
            return ActionResult.failed(e, outputs)

        sink("Node.js setup completed")
        return ActionResult(success=True, outputs=outputs)
