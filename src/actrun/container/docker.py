# container/docker.py
from __future__ import annotations

import logging
import subprocess
import threading
from typing import IO, List, Mapping, Optional, Set

from ..errors import ExecTimeoutError, SandboxError
from .driver import ExecResult, LineSink, Sandbox

logger = logging.getLogger(__name__)

DOCKER_HINT = "Install Docker and ensure the daemon is running."

# keeps an otherwise idle container alive while steps are exec'd into it
KEEPALIVE = ("sleep", "3600")


def _drain(stream: IO[str], sink: Optional[LineSink], captured: List[str]) -> None:
    """Read one pipe to EOF, forwarding each line as it arrives."""
    try:
        for raw in iter(stream.readline, ""):
            line = raw.rstrip("\r\n")
            captured.append(line)
            if sink is not None:
                sink(line)
    finally:
        stream.close()


class DockerDriver:
    """
    Sandbox backend on top of the docker CLI.

    One long-lived container per job with the project mounted at the
    workspace path; each step is a `docker exec` into it.
    """

    shell = ("bash", "-c")

    def __init__(self, docker_bin: str = "docker"):
        self.docker_bin = docker_bin
        self._stopped: Set[Sandbox] = set()

    # ---- lifecycle ----

    def start(self, image: str, host_path: str, mount_path: str) -> Sandbox:
        cmd = [
            self.docker_bin, "run",
            "-d",                                   # detached
            "--rm",                                 # removed once stopped
            "-v", f"{host_path}:{mount_path}",
            "-w", mount_path,
            image,
            *KEEPALIVE,
        ]
        logger.debug("starting sandbox: %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise SandboxError(
                f"could not run docker executable {self.docker_bin}: {e}",
                details={"hint": DOCKER_HINT},
            ) from e

        if proc.returncode != 0:
            raise SandboxError(
                f"failed to start container from image {image}",
                details={
                    "exit_code": proc.returncode,
                    "output": (proc.stderr or proc.stdout).strip(),
                    "hint": DOCKER_HINT,
                },
            )

        container_id = proc.stdout.strip()
        if not container_id:
            raise SandboxError(f"docker run returned no container id for image {image}")
        return Sandbox(id=container_id, image=image, mount_path=mount_path)

    def stop(self, sandbox: Sandbox) -> None:
        if sandbox in self._stopped:
            return
        try:
            proc = subprocess.run(
                [self.docker_bin, "stop", sandbox.id],
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise SandboxError(f"could not run docker executable {self.docker_bin}: {e}") from e

        # already gone (--rm, or removed by hand) counts as stopped
        if proc.returncode != 0 and "No such container" not in (proc.stderr or ""):
            raise SandboxError(
                f"failed to stop container {sandbox.id}",
                details={"exit_code": proc.returncode, "output": proc.stderr.strip()},
            )
        self._stopped.add(sandbox)

    # ---- execution ----

    def exec(
        self,
        sandbox: Sandbox,
        command: str,
        env: Mapping[str, str],
        *,
        on_stdout: Optional[LineSink] = None,
        on_stderr: Optional[LineSink] = None,
        timeout: Optional[float] = None,
    ) -> ExecResult:
        """
        Run `command` inside the sandbox with `env`.

        stdout and stderr are drained by one thread each; the call returns
        only after the process exited and both streams hit EOF.
        """
        if sandbox in self._stopped:
            raise SandboxError(f"container {sandbox.id} is not running")

        cmd = [self.docker_bin, "exec"]
        for key in sorted(env):
            cmd.extend(["-e", f"{key}={env[key]}"])
        cmd.append(sandbox.id)
        cmd.extend(self.shell)
        cmd.append(command)

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise SandboxError(
                f"could not exec into container {sandbox.id}: {e}",
                details={"hint": DOCKER_HINT},
            ) from e

        out_lines: List[str] = []
        err_lines: List[str] = []
        readers = [
            threading.Thread(target=_drain, args=(proc.stdout, on_stdout, out_lines), daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, on_stderr, err_lines), daemon=True),
        ]
        for t in readers:
            t.start()

        try:
            exit_code = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
            for t in readers:
                t.join()
            raise ExecTimeoutError(
                f"command did not finish within {timeout:g}s",
                details={"command": command},
            )

        for t in readers:
            t.join()

        return ExecResult(
            exit_code=exit_code,
            stdout="\n".join(out_lines),
            stderr="\n".join(err_lines),
        )
