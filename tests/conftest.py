import textwrap
from typing import Dict, List, Optional

import pytest

from actrun.config import RunnerConfig
from actrun.container.driver import ExecResult, Sandbox
from actrun.context import GitHubContext, RunnerContext
from actrun.errors import SandboxError


class FakeDriver:
    """
    In-memory container driver.

    `results` maps a command substring to an ExecResult (first match wins);
    anything else exits 0 with no output.
    """

    def __init__(self, results: Optional[Dict[str, ExecResult]] = None):
        self.results = results or {}
        self.calls: List[tuple] = []
        self.started: List[Sandbox] = []
        self.stopped: List[str] = []
        self.commands: List[str] = []
        self.envs: List[Dict[str, str]] = []
        self.timeouts: List[Optional[float]] = []
        self.fail_start = False
        self.fail_stop = False

    def start(self, image, host_path, mount_path):
        self.calls.append(("start", image))
        if self.fail_start:
            raise SandboxError(f"failed to start container from image {image}")
        sandbox = Sandbox(id=f"sandbox-{len(self.started) + 1}", image=image, mount_path=mount_path)
        self.started.append(sandbox)
        return sandbox

    def exec(self, sandbox, command, env, *, on_stdout=None, on_stderr=None, timeout=None):
        self.calls.append(("exec", command))
        self.commands.append(command)
        self.envs.append(dict(env))
        self.timeouts.append(timeout)
        result = ExecResult(0)
        for pattern, scripted in self.results.items():
            if pattern in command:
                result = scripted
                break
        if isinstance(result, Exception):
            raise result
        for line in result.stdout.splitlines():
            if on_stdout:
                on_stdout(line)
        for line in result.stderr.splitlines():
            if on_stderr:
                on_stderr(line)
        return result

    def stop(self, sandbox):
        self.calls.append(("stop", sandbox.id))
        self.stopped.append(sandbox.id)
        if self.fail_stop:
            raise SandboxError(f"failed to stop container {sandbox.id}")


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def config(tmp_path):
    return RunnerConfig(project_dir=tmp_path, log_root=tmp_path / "logs")


@pytest.fixture
def github():
    return GitHubContext(
        repository="octo/hello",
        sha="a" * 40,
        ref="refs/heads/main",
        workspace="/workspace",
        event_name="push",
        actor="octocat",
        run_id="1700000000",
        run_number="7",
    )


@pytest.fixture
def runner_ctx():
    return RunnerContext()


# Stands in for the docker CLI: `run` prints a fresh id (counter kept next
# to $FAKE_DOCKER_STOPS), `exec` applies the -e pairs and runs the command on
# the host, `stop` appends the id to $FAKE_DOCKER_STOPS.
FAKE_DOCKER = textwrap.dedent("""\
    #!/bin/sh
    sub="$1"; shift
    case "$sub" in
      run)
        if [ -n "$FAKE_DOCKER_FAIL_RUN" ]; then
          echo "Unable to find image" >&2
          exit 125
        fi
        count_file="$FAKE_DOCKER_STOPS.count"
        n=$(( $(cat "$count_file" 2>/dev/null || echo 0) + 1 ))
        echo "$n" > "$count_file"
        echo "fake-container-$n"
        ;;
      exec)
        while [ "$1" = "-e" ]; do
          export "$2"
          shift 2
        done
        shift      # container id
        shift 2    # shell and -c
        exec sh -c "$1"
        ;;
      stop)
        echo "$1" >> "$FAKE_DOCKER_STOPS"
        if [ -n "$FAKE_DOCKER_GONE" ]; then
          echo "Error: No such container: $1" >&2
          exit 1
        fi
        ;;
    esac
""")


@pytest.fixture
def fake_docker(tmp_path, monkeypatch):
    path = tmp_path / "bin" / "docker"
    path.parent.mkdir()
    path.write_text(FAKE_DOCKER)
    path.chmod(0o755)
    monkeypatch.setenv("FAKE_DOCKER_STOPS", str(tmp_path / "stops.txt"))
    return path
