from .base import ActionContext, ActionExecutor, ActionResult
from .registry import ActionDispatcher, ActionRegistry, default_registry, normalize_action_ref

__all__ = [
    "ActionContext",
    "ActionDispatcher",
    "ActionExecutor",
    "ActionRegistry",
    "ActionResult",
    "default_registry",
    "normalize_action_ref",
]
