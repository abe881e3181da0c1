# driver.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Protocol

LineSink = Callable[[str], None]

SENSITIVE_PATTERNS = ("TOKEN", "SECRET", "KEY", "PASSWORD", "PASS", "AUTH", "CREDENTIAL")


@dataclass(frozen=True, eq=False)
class Sandbox:
    """Handle for one running sandbox (one per job). Compared by identity, not by id."""
    id: str
    image: str
    mount_path: str


@dataclass(frozen=True)
class ExecResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def tail(self, lines: int = 30) -> str:
        return "\n".join(self.output.strip().splitlines()[-lines:])


class ContainerDriver(Protocol):
    """
    What the engine needs from a sandbox backend.

    stop() must be safe to call more than once.
    """

    def start(self, image: str, host_path: str, mount_path: str) -> Sandbox:
        ...

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
        ...

    def stop(self, sandbox: Sandbox) -> None:
        ...


def is_sensitive(name: str) -> bool:
    upper = name.upper()
    return any(p in upper for p in SENSITIVE_PATTERNS)


def masked_environment(env: Mapping[str, str]) -> list[str]:
    """`K=V` lines for logging, values of secret-looking names replaced by ***."""
    return [
        f"{k}=***" if is_sensitive(k) else f"{k}={v}"
        for k, v in sorted(env.items())
    ]
