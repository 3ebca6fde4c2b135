"""Error types for dfirlab."""

from typing import List, Optional


class LabError(RuntimeError):
    """Base error for lab operations."""


class PrerequisiteMissingError(LabError):
    """A required external tool is not installed."""


class ClusterUnreachableError(LabError):
    """The Kubernetes API of the lab cluster cannot be reached."""


class ResourceNotFoundError(LabError):
    """A secret, service, pod or directory the lab expects does not exist."""


class ToolError(LabError):
    """An external tool exited non-zero."""

    def __init__(
        self,
        cmd: List[str],
        returncode: Optional[int],
        output: str = "",
    ) -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"{' '.join(cmd)} failed (exit {returncode}): {output.strip()}"
        )
