"""Terraform invocation for the lab infrastructure."""

import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from dfirlab.config import TIMEOUT_TERRAFORM, Settings
from dfirlab.core.errors import ResourceNotFoundError
from dfirlab.core.utils import log, run, run_json

logger = logging.getLogger(__name__)


class TerraformRunner:
    """Runs terraform init/plan/apply/destroy in the lab's working directory.

    Terraform owns state and locking; this class only builds the command
    lines and reports the exit codes.
    """

    def __init__(
        self,
        workdir: Path,
        variables: Optional[Dict[str, str]] = None,
        timeout: int = TIMEOUT_TERRAFORM,
    ) -> None:
        """Initialize the runner.

        Args:
            workdir: Directory holding the lab's .tf files
            variables: Values passed as ``-var key=value``
            timeout: Timeout for each terraform invocation in seconds

        Raises:
            ResourceNotFoundError: If the working directory does not exist
        """
        self._workdir = Path(workdir)
        if not self._workdir.is_dir():
            raise ResourceNotFoundError(f"Terraform directory not found: {self._workdir}")
        self._variables = dict(variables or {})
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "TerraformRunner":
        """Runner wired to the release, namespace, values file and kubeconfig in settings."""
        variables = {
            "release_name": settings.release_name,
            "namespace": settings.namespace,
            "values_file": str(settings.resolved_values_file),
            "kube_context": settings.context,
        }
        # Unset keeps terraform's default of ~/.kube/config
        if settings.kubeconfig_path:
            variables["kubeconfig_path"] = settings.kubeconfig_path
        return cls(settings.terraform_dir, variables=variables)

    @property
    def workdir(self) -> Path:
        return self._workdir

    def _var_args(self) -> List[str]:
        args = []
        for key, value in sorted(self._variables.items()):
            args.extend(["-var", f"{key}={value}"])
        return args

    def _run(self, args: List[str]) -> int:
        """Run terraform with output streamed to the terminal.

        Returns:
            Terraform's exit code (124 on timeout, 127 if not installed)
        """
        cmd = ["terraform", f"-chdir={self._workdir}"] + args
        logger.debug("terraform: %s", " ".join(cmd))
        try:
            result = run(cmd, check=False, timeout=self._timeout)
        except subprocess.TimeoutExpired:
            log(f"terraform {args[0]} timed out after {self._timeout}s", "error")
            return 124
        except FileNotFoundError:
            log("terraform not found", "error")
            return 127
        return result.returncode

    def init(self, upgrade: bool = False) -> int:
        """Run ``terraform init``."""
        args = ["init", "-input=false"]
        if upgrade:
            args.append("-upgrade")
        return self._run(args)

    def plan(self) -> int:
        """Run ``terraform plan`` (used for dry runs)."""
        return self._run(["plan", "-input=false"] + self._var_args())

    def apply(self, auto_approve: bool = True) -> int:
        """Run ``terraform apply``."""
        args = ["apply", "-input=false"]
        if auto_approve:
            args.append("-auto-approve")
        return self._run(args + self._var_args())

    def destroy(self, auto_approve: bool = True) -> int:
        """Run ``terraform destroy``."""
        args = ["destroy", "-input=false"]
        if auto_approve:
            args.append("-auto-approve")
        return self._run(args + self._var_args())

    def output(self) -> Dict[str, object]:
        """Read ``terraform output -json`` as a flat name -> value mapping."""
        data = run_json(["terraform", f"-chdir={self._workdir}", "output", "-json"])
        if not isinstance(data, dict):
            return {}
        return {
            name: entry.get("value") if isinstance(entry, dict) else entry
            for name, entry in data.items()
        }
