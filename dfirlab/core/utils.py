"""Utility functions for dfirlab."""

import json
import logging
import subprocess
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.logging import RichHandler

from dfirlab.core.errors import ToolError

console = Console()
logger = logging.getLogger(__name__)

LEVEL_STYLES = {
    "info": ("blue", "i"),
    "success": ("green", "+"),
    "warning": ("yellow", "!"),
    "error": ("red", "x"),
    "step": ("cyan", ">"),
}


def setup_logging(verbose: bool = False) -> None:
    """Route diagnostic logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def log(msg: str, level: str = "info") -> None:
    """Print colored log message."""
    color, symbol = LEVEL_STYLES.get(level, ("blue", "*"))
    console.print(f"[{color}]\\[{symbol}][/{color}] {msg}", highlight=False)


def log_header(msg: str) -> None:
    """Print a header message."""
    console.print()
    console.print(f"[bold cyan]=== {msg} ===[/bold cyan]")
    console.print()


def log_subheader(msg: str) -> None:
    """Print a subheader message."""
    console.print(f"[bold]{msg}[/bold]")


def run(
    cmd: List[str],
    check: bool = True,
    capture: bool = False,
    timeout: Optional[int] = None,
) -> subprocess.CompletedProcess:
    """Run a command.

    Args:
        cmd: Command and arguments
        check: Raise exception on non-zero exit
        capture: Capture stdout/stderr
        timeout: Timeout in seconds

    Returns:
        CompletedProcess instance
    """
    logger.debug("run: %s", " ".join(cmd))
    return subprocess.run(
        cmd,
        check=check,
        capture_output=capture,
        text=True,
        timeout=timeout,
    )


def run_quiet(
    cmd: List[str],
    check: bool = True,
    timeout: Optional[int] = None,
) -> tuple[bool, str]:
    """Run command and return success status and output.

    Never raises for a failing, missing or hanging tool.

    Args:
        cmd: Command and arguments
        check: Whether a non-zero exit counts as failure
        timeout: Timeout in seconds

    Returns:
        Tuple of (success, output)
    """
    logger.debug("run_quiet: %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return False, "Command timed out"
    except FileNotFoundError:
        return False, f"{cmd[0]}: command not found"

    if check and result.returncode != 0:
        return False, result.stderr or result.stdout or f"exit code {result.returncode}"
    return True, result.stdout


def run_tool(cmd: List[str], timeout: Optional[int] = None) -> str:
    """Run a tool and return its stdout.

    Raises:
        ToolError: If the tool is missing, times out or exits non-zero
    """
    logger.debug("run_tool: %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise ToolError(cmd, None, f"{cmd[0]}: command not found")
    except subprocess.TimeoutExpired:
        raise ToolError(cmd, None, f"timed out after {timeout}s")

    if result.returncode != 0:
        raise ToolError(cmd, result.returncode, result.stderr or result.stdout)
    return result.stdout


def run_json(cmd: List[str], timeout: Optional[int] = None) -> Optional[Any]:
    """Run a tool in its JSON output mode and parse the result.

    Returns:
        Parsed JSON, or None if the tool failed or printed invalid JSON
    """
    success, output = run_quiet(cmd, timeout=timeout)
    if not success or not output.strip():
        return None
    try:
        return json.loads(output)
    except json.JSONDecodeError:
        logger.debug("Invalid JSON from %s: %.200s", cmd[0], output)
        return None


def confirm(msg: str, default: bool = False) -> bool:
    """Ask for user confirmation.

    Args:
        msg: Message to display
        default: Default value if user just presses Enter

    Returns:
        True if confirmed, False otherwise
    """
    suffix = "[Y/n]" if default else "[y/N]"
    try:
        response = input(f"{msg} {suffix} ").strip().lower()
        if not response:
            return default
        return response in ("y", "yes")
    except (KeyboardInterrupt, EOFError):
        console.print()
        return False


def check_tool(name: str, cmd: List[str]) -> bool:
    """Check if a tool is available.

    Args:
        name: Tool name for display
        cmd: Version probe command

    Returns:
        True if tool is available
    """
    success, _ = run_quiet(cmd, timeout=30)
    if success:
        log(f"{name} found", "success")
    else:
        log(f"{name} not found", "error")
    return success


def check_prerequisites(tools: Dict[str, List[str]]) -> bool:
    """Check that required tools are installed.

    Returns:
        True if all prerequisites are met
    """
    log_subheader("Checking prerequisites...")

    all_found = True
    for tool, cmd in tools.items():
        if not check_tool(tool, cmd):
            all_found = False

    return all_found
