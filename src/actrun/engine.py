# engine.py
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .actions import ActionContext, ActionDispatcher, ActionRegistry, default_registry
from .container.driver import ContainerDriver, Sandbox, masked_environment
from .config import RunnerConfig
from .context import GitHubContext, RunnerContext, github_context_for, runner_context_for
from .dag import build_execution_plan
from .environment import EnvironmentResolver
from .errors import CIError, GraphError, SandboxError, StepError
from .expressions import ExpressionEvaluator, substitute_expressions
from .model import Job, Step, Workflow
from .runlog import JobLogger, WorkflowLogger
from .state import ExecutionState, Listener, Status

logger = logging.getLogger(__name__)


class WorkflowExecutor:
    """
    Runs a workflow start to finish.

    Jobs run one at a time in plan order, steps one at a time in declared
    order. The first failure anywhere stops the whole run (fail-fast at the
    run level, not just the job). Nothing is retried.
    """

    def __init__(
        self,
        workflow: Workflow,
        config: RunnerConfig,
        *,
        driver: ContainerDriver,
        registry: Optional[ActionRegistry] = None,
        run_logger: Optional[WorkflowLogger] = None,
        github: Optional[GitHubContext] = None,
        runner: Optional[RunnerContext] = None,
        listeners: Iterable[Listener] = (),
    ):
        self.workflow = workflow
        self.config = config
        self.driver = driver
        self.dispatcher = ActionDispatcher(registry if registry is not None else default_registry())
        self.github = github or github_context_for(config.project_dir, config)
        self.runner = runner or runner_context_for(config)
        self.environment = EnvironmentResolver(workflow.env, self.github, self.runner)
        self.run_logger = run_logger or WorkflowLogger(workflow.name, config.log_root)
        self.state = ExecutionState.for_workflow(workflow, log_path=self.run_logger.log_path)
        self.plan: List[str] = []
        for listener in listeners:
            self.state.subscribe(listener)

    # ------------------------------------------------------------------
    # Run level
    # ------------------------------------------------------------------

    def execute(self) -> ExecutionState:
        """
        Run every job. Returns the final state when all jobs succeeded.

        Raises the first fatal error (GraphError, SandboxError, StepError)
        with job/step context filled in; the state reflects where it stopped.
        """
        started = time.monotonic()
        try:
            self.run_logger.log_workflow_start(self.workflow.name)
            self.state.set_workflow_status(Status.RUNNING)

            try:
                self.plan = build_execution_plan(self.workflow)
            except GraphError as e:
                self._fail_workflow(e)
                raise

            self.run_logger.log_execution_plan(self.plan)
            self.state.add_jobs(self.workflow, self.plan)

            for job_id in self.plan:
                try:
                    self._execute_job(self.workflow.jobs[job_id])
                except CIError as e:
                    self._fail_workflow(e)
                    raise

            self.state.set_workflow_status(Status.SUCCESS)
            self.run_logger.log_workflow_complete(time.monotonic() - started)
            return self.state
        finally:
            self.run_logger.close()

    def _fail_workflow(self, err: CIError) -> None:
        self.state.set_workflow_status(Status.FAILURE)
        self.run_logger.log_workflow_error(err)

    # ------------------------------------------------------------------
    # Job level
    # ------------------------------------------------------------------

    def _execute_job(self, job: Job) -> None:
        job_log = self.run_logger.job_logger(job.id)
        self.environment.set_job_environment(job.id, job.env)

        self.state.set_job_status(job.id, Status.RUNNING)
        job_log.log_job_start(job.id, job.runs_on)
        started = time.monotonic()

        try:
            with self._sandbox(job, job_log) as sandbox:
                self._log_job_inputs(job, job_log)
                for index, step in enumerate(job.steps):
                    self._execute_step(job, index, step, sandbox, job_log)
        except CIError as e:
            self._fail_job(job, job_log, e.with_context(job=job.id))
            raise
        except Exception as e:
            # steps wrap their own errors; what is left came from sandbox setup/teardown
            err = SandboxError(f"unexpected error: {e}", job=job.id)
            self._fail_job(job, job_log, err)
            raise err from e

        self.state.set_job_status(job.id, Status.SUCCESS)
        job_log.log_job_complete(job.id, time.monotonic() - started)

    def _fail_job(self, job: Job, job_log: JobLogger, err: CIError) -> None:
        self.state.set_job_status(job.id, Status.FAILURE)
        job_log.log_job_error(job.id, err)

    @contextmanager
    def _sandbox(self, job: Job, job_log: JobLogger) -> Iterator[Sandbox]:
        """
        The job's sandbox, stopped exactly once however the block exits.

        A stop failure after an error is only logged so the original error
        survives; after a clean run it fails the job.
        """
        try:
            sandbox = self.driver.start(job.image, str(self.config.project_dir), self.config.workspace_dir)
        except SandboxError as e:
            raise e.with_context(job=job.id)
        job_log.log_container_start(sandbox.image, sandbox.id)
        logger.debug("job %s: sandbox %s (%s) started", job.id, sandbox.id, sandbox.image)

        try:
            yield sandbox
        except BaseException:
            self._release(job, sandbox, job_log, reraise=False)
            raise
        self._release(job, sandbox, job_log, reraise=True)

    def _release(self, job: Job, sandbox: Sandbox, job_log: JobLogger, *, reraise: bool) -> None:
        try:
            self.driver.stop(sandbox)
        except SandboxError as e:
            e.with_context(job=job.id)
            if reraise:
                raise
            job_log.log_job_error(job.id, e)
            logger.warning("job %s: could not stop sandbox %s: %s", job.id, sandbox.id, e.message)
        else:
            logger.debug("job %s: sandbox %s stopped", job.id, sandbox.id)

    def _log_job_inputs(self, job: Job, job_log: JobLogger) -> None:
        if not job.with_:
            return
        env = self.environment.build_step_environment(None)
        evaluator = ExpressionEvaluator(self.environment.github, self.runner, env)
        job_log.log_step_output("Job-level inputs:")
        for key in sorted(job.with_):
            job_log.log_step_output(f"  {key}: {substitute_expressions(job.with_[key], evaluator)}")

    # ------------------------------------------------------------------
    # Step level
    # ------------------------------------------------------------------

    def _execute_step(self, job: Job, index: int, step: Step, sandbox: Sandbox, job_log: JobLogger) -> None:
        name = step.display_name(index)
        self.state.set_step_status(job.id, index, Status.RUNNING)
        started = time.monotonic()

        env = self.environment.build_step_environment(step.env, action=step.uses or None)
        logger.debug("job %s step %r env:\n  %s", job.id, name, "\n  ".join(masked_environment(env)))

        try:
            if step.is_action:
                outputs = self._run_action_step(name, step, sandbox, env, job_log)
            else:
                outputs = self._run_shell_step(name, step, sandbox, env, job_log)
        except CIError as e:
            self._fail_step(job, index, name, started, job_log, e)
            raise e.with_context(job=job.id, step=name)
        except Exception as e:
            err = StepError(f"unexpected error: {e}", job=job.id, step=name)
            self._fail_step(job, index, name, started, job_log, err)
            raise err from e

        self.state.set_step_status(job.id, index, Status.SUCCESS, exit_code=0, outputs=outputs)
        job_log.log_step_complete(name, time.monotonic() - started, 0)

    def _fail_step(
        self,
        job: Job,
        index: int,
        name: str,
        started: float,
        job_log: JobLogger,
        err: CIError,
    ) -> None:
        exit_code = err.details.get("exit_code")
        if not isinstance(exit_code, int) or exit_code == 0:
            exit_code = 1
        self.state.set_step_status(job.id, index, Status.FAILURE, exit_code=exit_code)
        job_log.log_step_complete(name, time.monotonic() - started, exit_code)

    def _evaluator(self, env: Dict[str, str], action: str = "") -> ExpressionEvaluator:
        github = self.environment.github
        if action:
            github = github.for_action(action)
        return ExpressionEvaluator(github, self.runner, env)

    def _run_shell_step(
        self,
        name: str,
        step: Step,
        sandbox: Sandbox,
        env: Dict[str, str],
        job_log: JobLogger,
    ) -> Dict[str, str]:
        command = substitute_expressions(step.run, self._evaluator(env))
        job_log.log_step_start(name, command)

        result = self.driver.exec(
            sandbox,
            command,
            env,
            on_stdout=job_log.log_step_output,
            on_stderr=job_log.log_step_output,
            timeout=self.config.step_timeout,
        )
        if not result.success:
            raise StepError(
                f"Command exited with code {result.exit_code}",
                details={
                    "command": command,
                    "exit_code": result.exit_code,
                    "log_tail": result.tail(),
                },
            )
        return {}

    def _run_action_step(
        self,
        name: str,
        step: Step,
        sandbox: Sandbox,
        env: Dict[str, str],
        job_log: JobLogger,
    ) -> Dict[str, str]:
        evaluator = self._evaluator(env, step.uses)
        inputs = {key: substitute_expressions(step.with_[key], evaluator) for key in sorted(step.with_)}

        job_log.log_step_output("Action inputs:")
        for key, value in inputs.items():
            job_log.log_step_output(f"  {key}: {value}")

        executor = self.dispatcher.resolve(step.uses, inputs)
        job_log.log_step_start(name, f"uses: {step.uses}")

        ctx = ActionContext(
            action_ref=step.uses,
            inputs=inputs,
            workspace_dir=self.config.workspace_dir,
            sandbox=sandbox,
            driver=self.driver,
            github=evaluator.github,
            runner=self.runner,
            env=env,
        )
        result = self.dispatcher.dispatch(executor, ctx, job_log.log_step_output)
        return dict(result.outputs)


def run_workflow(
    workflow: Workflow,
    config: RunnerConfig,
    *,
    driver: ContainerDriver,
    listeners: Iterable[Listener] = (),
) -> Tuple[ExecutionState, Optional[CIError]]:
    """
    Convenience wrapper: run and return (state, first error or None)
    instead of raising.
    """
    executor = WorkflowExecutor(workflow, config, driver=driver, listeners=listeners)
    try:
        executor.execute()
    except CIError as e:
        return executor.state, e
    return executor.state, None
