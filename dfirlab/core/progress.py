"""Coarse progress from the Ollama model download log.

Ollama's pull output is meant for a terminal, not for machines. Everything
that knows its format lives here.
"""

import re
from typing import Iterable, Optional

GENERIC_MESSAGE = "Model download still in progress..."

_PERCENT_RE = re.compile(r"(\d{1,3})%")
_SIZES_RE = re.compile(
    r"(\d+(?:\.\d+)?\s*[KMGT]?B)\s*/\s*(\d+(?:\.\d+)?\s*[KMGT]?B)"
)
_DONE_RE = re.compile(r"^\s*success\s*$|already exists", re.IGNORECASE)


def _lines(log_text: str) -> Iterable[str]:
    # Progress bars redraw with carriage returns
    for line in re.split(r"[\r\n]+", log_text or ""):
        line = line.strip()
        if line:
            yield line


def _describe_line(line: str) -> Optional[str]:
    lowered = line.lower()
    if _DONE_RE.search(line):
        return "Model download complete"
    if "writing manifest" in lowered:
        return "Writing model manifest"
    if "verifying sha256 digest" in lowered:
        return "Verifying model digest"
    if "pulling manifest" in lowered:
        return "Fetching model manifest"

    percent = _PERCENT_RE.search(line)
    if percent and "pulling" in lowered:
        message = f"Downloading model: {percent.group(1)}%"
        sizes = _SIZES_RE.search(line)
        if sizes:
            message += f" ({sizes.group(1)}/{sizes.group(2)})"
        return message
    return None


def describe_model_pull(log_text: str) -> str:
    """Summarise the latest recognisable step of a model download.

    Args:
        log_text: Tail of the model download container's log

    Returns:
        Human-readable progress, or a generic message when nothing matches
    """
    for line in reversed(list(_lines(log_text))):
        message = _describe_line(line)
        if message:
            return message
    return GENERIC_MESSAGE
