from .driver import ContainerDriver, ExecResult, Sandbox, masked_environment
from .docker import DockerDriver

__all__ = ["ContainerDriver", "DockerDriver", "ExecResult", "Sandbox", "masked_environment"]
