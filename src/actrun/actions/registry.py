# actions/registry.py
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from ..container.driver import LineSink
from ..errors import ActionNotFoundError, InputValidationError, StepError
from .base import ActionContext, ActionExecutor, ActionResult

logger = logging.getLogger(__name__)


def normalize_action_ref(action_ref: str) -> str:
    """actions/checkout@v4 -> actions/checkout"""
    return action_ref.split("@", 1)[0].strip()


class ActionRegistry:
    """Canonical action name -> executor. Built once per process and passed around."""

    def __init__(self, executors: Optional[List[ActionExecutor]] = None):
        self._executors: Dict[str, ActionExecutor] = {}
        for executor in executors or []:
            self.register(executor)

    def register(self, executor: ActionExecutor) -> None:
        if not executor.name:
            raise ValueError(f"{type(executor).__name__} has no name")
        if executor.name in self._executors:
            raise ValueError(f"action already registered: {executor.name}")
        self._executors[executor.name] = executor

    def get(self, name: str) -> Optional[ActionExecutor]:
        return self._executors.get(name)

    def names(self) -> List[str]:
        return sorted(self._executors)

    def __contains__(self, name: str) -> bool:
        return name in self._executors

    def __len__(self) -> int:
        return len(self._executors)


def default_registry() -> ActionRegistry:
    """Registry holding every built-in action."""
    from .checkout import CheckoutAction
    from .setup_node import SetupNodeAction

    return ActionRegistry([CheckoutAction(), SetupNodeAction()])


class ActionDispatcher:
    """Turns `uses:` references into executors and runs them. No retries."""

    def __init__(self, registry: ActionRegistry):
        self.registry = registry

    def resolve(self, action_ref: str, inputs: Mapping[str, str]) -> ActionExecutor:
        """
        Raises:
          ActionNotFoundError: nothing registered under the canonical name
          InputValidationError: found, but the inputs were rejected
        """
        name = normalize_action_ref(action_ref)
        executor = self.registry.get(name)
        if executor is None:
            supported = ", ".join(self.registry.names())
            raise ActionNotFoundError(
                f"action '{action_ref}' not supported (built-in actions available: {supported})",
                details={"supported": self.registry.names()},
            )

        try:
            executor.validate_inputs(inputs)
        except InputValidationError as e:
            e.message = f"invalid inputs for {action_ref}: {e.message}"
            raise
        return executor

    def dispatch(self, executor: ActionExecutor, ctx: ActionContext, sink: LineSink) -> ActionResult:
        """Execute a resolved action; a failed result becomes a StepError."""
        logger.debug("dispatching %s to %s", ctx.action_ref, type(executor).__name__)
        result = executor.execute(ctx, sink)
        if result.success:
            return result

        cause = result.error
        details: Dict[str, object] = {"action": ctx.action_ref}
        output = getattr(cause, "details", {}).get("output") if cause is not None else None
        if output:
            details["output"] = output
        raise StepError(
            f"action {ctx.action_ref} failed: {getattr(cause, 'message', cause) or 'unknown error'}",
            details=details,
        ) from cause
