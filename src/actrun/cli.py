# cli.py
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from actrun.config import RunnerConfig, project_dir_for
from actrun.container import DockerDriver
from actrun.dag import plan_stages
from actrun.engine import WorkflowExecutor
from actrun.errors import CIError, GraphError
from actrun.parser import load_workflow
from actrun.ui.console import Console, get_console, set_console


def _error_details(err: CIError) -> list[str]:
    details = []
    if err.job:
        details.append(f"job: {err.job}")
    if err.step:
        details.append(f"step: {err.step}")
    for key, value in err.details.items():
        if key == "log_tail":
            continue
        details.append(f"{key}: {value}")
    return details


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """actrun: run GitHub Actions workflows locally in Docker."""
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("workflow_file", type=click.Path(dir_okay=False))
@click.option("--log-dir", default=None, help="Where run logs go (defaults to <project>/actrun-logs)")
@click.option("--timeout", default=None, type=float, help="Per-step timeout in seconds")
@click.option("--event", default=None, help="Event name exposed as GITHUB_EVENT_NAME")
@click.option("--print-plan/--no-print-plan", default=True, show_default=True, help="Print job stages before running")
@click.pass_context
def run(ctx, workflow_file, log_dir, timeout, event, print_plan):
    """Run a workflow file."""
    console = get_console()
    workflow_path = Path(workflow_file)

    try:
        workflow = load_workflow(workflow_path)
        config = RunnerConfig.from_env(
            project_dir_for(workflow_path),
            log_root=Path(log_dir) if log_dir else None,
            step_timeout=timeout,
            event_name=event,
        )

        executor = WorkflowExecutor(
            workflow,
            config,
            driver=DockerDriver(config.docker_bin),
            listeners=[console.on_status_change],
        )

        console.print_run_started(
            repository=executor.github.repository,
            workflow=workflow.name,
            job_count=len(workflow.jobs),
        )
        if print_plan:
            try:
                console.print_plan(plan_stages(workflow))
            except GraphError:
                pass  # reported (and logged) by the executor below

        try:
            executor.execute()
        finally:
            console.print_results(executor.state)

    except FileNotFoundError as e:
        console.print_error(
            "Workflow file not found",
            str(e),
            suggestion="Pass the path to a .yml/.yaml workflow:\n  actrun run .github/workflows/ci.yml",
        )
        sys.exit(1)
    except CIError as e:
        console.print_error(e.kind, e.message, details=_error_details(e))
        console.print_debug(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


if __name__ == "__main__":
    cli()
