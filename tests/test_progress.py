"""Tests for model download progress messages."""

import pytest

from dfirlab.core.progress import GENERIC_MESSAGE, describe_model_pull


@pytest.mark.parametrize(
    "log_text, expected",
    [
        ("pulling manifest", "Fetching model manifest"),
        (
            "pulling manifest\rpulling dde5aa3fc5ff...  17% ▕██    ▏ 340 MB/2.0 GB",
            "Downloading model: 17% (340 MB/2.0 GB)",
        ),
        ("pulling dde5aa3fc5ff...  88%", "Downloading model: 88%"),
        ("pulling dde5aa3fc5ff... 100%\nverifying sha256 digest", "Verifying model digest"),
        ("verifying sha256 digest\nwriting manifest", "Writing model manifest"),
        ("writing manifest\nsuccess", "Model download complete"),
        ("model llama3.2:3b already exists", "Model download complete"),
    ],
)
def test_latest_step_wins(log_text, expected) -> None:
    assert describe_model_pull(log_text) == expected


def test_unrecognised_log_is_generic() -> None:
    assert describe_model_pull("time=2024-05-01 level=INFO msg=listening") == GENERIC_MESSAGE


def test_empty_log_is_generic() -> None:
    assert describe_model_pull("") == GENERIC_MESSAGE
    assert describe_model_pull(None) == GENERIC_MESSAGE


def test_trailing_noise_is_skipped() -> None:
    text = "pulling abc...  55% ▕███ ▏\n\n   \r"
    assert describe_model_pull(text) == "Downloading model: 55%"
