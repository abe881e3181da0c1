import re
from datetime import datetime, timezone

from actrun.errors import StepError
from actrun.runlog import WorkflowLogger, format_record, timestamp

RECORD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{7}Z (.*)$")


def _messages(path):
    lines = path.read_text().splitlines()
    return [m.group(1) for m in map(RECORD_RE.match, lines) if m]


def test_timestamp_has_seven_fractional_digits():
    when = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
    assert timestamp(when) == "2024-05-01T12:00:00.1234560Z"


def test_format_record():
    when = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert format_record("hello", when) == "2024-05-01T12:00:00.0000000Z hello\n"


def test_layout_and_markers(tmp_path):
    run_log = WorkflowLogger("CI", tmp_path)
    run_log.log_workflow_start("CI")
    run_log.log_execution_plan(["build", "test"])

    job_log = run_log.job_logger("build")
    assert run_log.job_logger("build") is job_log
    job_log.log_job_start("build", "ubuntu-latest")
    job_log.log_container_start("ubuntu:latest", "abc123")
    job_log.log_step_start("Compile", "make")
    job_log.log_step_output("cc -o app main.c")
    job_log.log_step_complete("Compile", 1.5, 0)
    job_log.log_step_start("Test", "make test")
    job_log.log_step_complete("Test", 0.25, 2)
    job_log.log_job_error("build", StepError("Command exited with code 2", step="Test"))
    run_log.log_workflow_error(StepError("Command exited with code 2", job="build"))
    run_log.close()
    run_log.close()

    run_dir = tmp_path / next(p.name for p in tmp_path.iterdir())
    assert run_dir.name.startswith("workflow-")
    assert run_log.log_path == str(run_dir)

    workflow_text = (run_dir / "workflow.log").read_text()
    assert "Workflow: CI" in workflow_text.splitlines()[4]
    workflow_msgs = _messages(run_dir / "workflow.log")
    assert workflow_msgs[:5] == [
        "##[group]Starting workflow execution",
        "Workflow: CI",
        "##[endgroup]",
        "##[group]Execution Plan",
        "Job execution order: [build test]",
    ]
    assert "##[error]Workflow failed" in workflow_msgs
    assert workflow_msgs[-1] == "=== Workflow logging completed ==="
    assert workflow_msgs.count("=== Workflow logging completed ===") == 1

    job_files = [p for p in run_dir.iterdir() if p.name.startswith("build-")]
    assert len(job_files) == 1
    job_msgs = _messages(job_files[0])
    assert job_msgs[:3] == ["##[group]Job Setup", "Job ID: build", "Runner: ubuntu-latest"]
    assert "Docker image: ubuntu:latest" in job_msgs
    assert "Container ID: abc123" in job_msgs
    assert "##[group]Run Compile" in job_msgs
    assert "cc -o app main.c" in job_msgs
    assert "##[section]Step 'Compile' completed successfully in 1.500s" in job_msgs
    assert "##[error]Step 'Test' failed in 0.250s (exit code: 2)" in job_msgs
    assert "##[error]Job 'build' failed" in job_msgs
    assert "Error: StepError: Command exited with code 2" in job_msgs
    assert "  step=Test" in job_msgs
    assert job_msgs[-1] == "=== Job 'build' logging completed ==="


def test_writes_after_close_are_dropped(tmp_path):
    run_log = WorkflowLogger("CI", tmp_path)
    job_log = run_log.job_logger("build")
    run_log.close()
    job_log.log_step_output("late line")
    assert "late line" not in job_log.path.read_text()


def test_multiline_messages_become_one_record_per_line(tmp_path):
    run_log = WorkflowLogger("CI", tmp_path)
    job_log = run_log.job_logger("build")
    job_log.log_step_start("Build", "echo one\necho two")
    job_log.log_step_output("  node-version: 20\n  cache: npm")
    run_log.close()

    lines = job_log.path.read_text().splitlines()
    assert all(RECORD_RE.match(line) for line in lines)
    assert _messages(job_log.path)[:3] == ["##[group]Run Build", "echo one", "echo two"]
    assert "  cache: npm" in _messages(job_log.path)
