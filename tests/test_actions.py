import pytest

from actrun.actions import (
    ActionContext,
    ActionDispatcher,
    ActionExecutor,
    ActionRegistry,
    ActionResult,
    default_registry,
    normalize_action_ref,
)
from actrun.actions.checkout import CheckoutAction
from actrun.actions.setup_node import SetupNodeAction
from actrun.container.driver import ExecResult, Sandbox
from actrun.errors import ActionNotFoundError, InputValidationError, SandboxError, StepError


@pytest.fixture
def dispatcher():
    return ActionDispatcher(default_registry())


@pytest.fixture
def make_ctx(driver, github, runner_ctx):
    def _make(ref, inputs=None):
        return ActionContext(
            action_ref=ref,
            inputs=inputs or {},
            workspace_dir="/workspace",
            sandbox=Sandbox(id="sandbox-1", image="ubuntu:latest", mount_path="/workspace"),
            driver=driver,
            github=github,
            runner=runner_ctx,
            env={"CI": "true"},
        )
    return _make


def test_normalize_action_ref():
    assert normalize_action_ref("actions/checkout@v4") == "actions/checkout"
    assert normalize_action_ref("actions/checkout") == "actions/checkout"
    assert normalize_action_ref("owner/repo@feature@x") == "owner/repo"


def test_version_suffix_resolves_to_same_executor(dispatcher):
    v3 = dispatcher.resolve("actions/checkout@v3", {})
    v4 = dispatcher.resolve("actions/checkout@v4", {})
    assert v3 is v4
    assert isinstance(v4, CheckoutAction)


def test_unknown_action_lists_supported(dispatcher):
    with pytest.raises(ActionNotFoundError) as exc:
        dispatcher.resolve("actions/cache@v3", {})
    assert "actions/cache@v3" in exc.value.message
    assert "actions/checkout, actions/setup-node" in exc.value.message
    assert exc.value.details["supported"] == ["actions/checkout", "actions/setup-node"]


def test_invalid_inputs_are_rejected_before_execution(dispatcher):
    with pytest.raises(InputValidationError) as exc:
        dispatcher.resolve("actions/setup-node@v4", {"node-version": "  "})
    assert exc.value.message.startswith("invalid inputs for actions/setup-node@v4")


def test_registry_rejects_duplicates_and_nameless():
    registry = ActionRegistry([CheckoutAction()])
    with pytest.raises(ValueError):
        registry.register(CheckoutAction())

    class Nameless(ActionExecutor):
        def validate_inputs(self, inputs):
            pass

        def execute(self, ctx, sink):
            return ActionResult(True)

    with pytest.raises(ValueError):
        registry.register(Nameless())

    assert registry.names() == ["actions/checkout"]
    assert "actions/checkout" in registry
    assert len(registry) == 1


def test_custom_action_registration(make_ctx):
    class Hello(ActionExecutor):
        name = "local/hello"

        def validate_inputs(self, inputs):
            if "who" not in inputs:
                raise InputValidationError("who is required")

        def execute(self, ctx, sink):
            sink(f"hello {ctx.inputs['who']}")
            return ActionResult(True, {"greeted": ctx.inputs["who"]})

    dispatcher = ActionDispatcher(ActionRegistry([Hello()]))
    lines = []
    executor = dispatcher.resolve("local/hello@main", {"who": "world"})
    result = dispatcher.dispatch(executor, make_ctx("local/hello@main", {"who": "world"}), lines.append)
    assert result.outputs == {"greeted": "world"}
    assert lines == ["hello world"]


def test_failed_result_becomes_step_error(make_ctx):
    class Broken(ActionExecutor):
        name = "local/broken"

        def validate_inputs(self, inputs):
            pass

        def execute(self, ctx, sink):
            return ActionResult.failed(StepError("boom", details={"output": "last words"}))

    dispatcher = ActionDispatcher(ActionRegistry([Broken()]))
    with pytest.raises(StepError) as exc:
        dispatcher.dispatch(Broken(), make_ctx("local/broken@v1"), lambda line: None)
    assert exc.value.message == "action local/broken@v1 failed: boom"
    assert exc.value.details == {"action": "local/broken@v1", "output": "last words"}
    assert isinstance(exc.value.__cause__, StepError)


# ---- checkout ----

def test_checkout_marks_workspace(driver, make_ctx):
    lines = []
    result = CheckoutAction().execute(make_ctx("actions/checkout@v4"), lines.append)

    assert result.success
    assert result.outputs == {"path": "/workspace"}
    assert driver.commands[:4] == [
        "export GITHUB_WORKSPACE=/workspace",
        "export GITHUB_REPOSITORY=octo/hello",
        f"export GITHUB_SHA={'a' * 40}",
        "export GITHUB_REF=refs/heads/main",
    ]
    assert driver.commands[4] == "ls -la /workspace"


def test_checkout_tolerates_listing_failure(driver, make_ctx):
    driver.results["ls -la"] = ExecResult(2, stderr="ls: cannot access")
    lines = []
    result = CheckoutAction().execute(make_ctx("actions/checkout@v4"), lines.append)
    assert result.success
    assert "Warning: Could not verify workspace contents" in lines


def test_checkout_fails_when_sandbox_unreachable(driver, make_ctx):
    driver.results["export"] = SandboxError("container sandbox-1 is not running")
    result = CheckoutAction().execute(make_ctx("actions/checkout@v4"), lambda line: None)
    assert not result.success
    assert isinstance(result.error, SandboxError)


# ---- setup-node ----

def test_setup_node_tolerates_prerequisite_failures(driver, make_ctx):
    driver.results["apt-get update"] = ExecResult(100, stderr="no network")
    driver.results["node --version"] = ExecResult(0, stdout="v20.11.0")
    driver.results["npm --version"] = ExecResult(0, stdout="10.2.4")

    lines = []
    result = SetupNodeAction().execute(make_ctx("actions/setup-node@v4", {"node-version": "20"}), lines.append)

    assert result.success
    assert result.outputs == {"node-version": "v20.11.0", "npm-version": "10.2.4"}
    assert any("setup_20.x" in cmd for cmd in driver.commands)
    assert "Warning: prerequisite command failed but continuing: apt-get update" in lines


def test_setup_node_default_version(driver, make_ctx):
    SetupNodeAction().execute(make_ctx("actions/setup-node@v4"), lambda line: None)
    assert any("setup_18.x" in cmd for cmd in driver.commands)


def test_setup_node_install_failure_aborts(driver, make_ctx):
    driver.results["apt-get install -y nodejs"] = ExecResult(1, stderr="E: Unable to locate package nodejs")
    result = SetupNodeAction().execute(make_ctx("actions/setup-node@v4"), lambda line: None)

    assert not result.success
    assert "Unable to locate package" in result.error.details["output"]
    assert "node --version" not in driver.commands


def test_setup_node_verification_failure(driver, make_ctx):
    driver.results["node --version"] = ExecResult(127, stderr="node: not found")
    result = SetupNodeAction().execute(make_ctx("actions/setup-node@v4"), lambda line: None)
    assert not result.success
    assert result.error.message == "Node.js installation verification failed"


def test_setup_node_npm_is_best_effort(driver, make_ctx):
    driver.results["node --version"] = ExecResult(0, stdout="v18.19.0")
    driver.results["npm"] = ExecResult(1)
    result = SetupNodeAction().execute(make_ctx("actions/setup-node@v4"), lambda line: None)
    assert result.success
    assert result.outputs == {"node-version": "v18.19.0"}
