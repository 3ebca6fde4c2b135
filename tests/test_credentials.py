"""Tests for credential retrieval."""

import base64

import pytest
from conftest import FakeK8s

from dfirlab.core.credentials import (
    credentials_table,
    decode_secret_field,
    fetch_all,
    fetch_credential,
)
from dfirlab.core.models import CredentialSpec


def _b64(text):
    return base64.b64encode(text.encode()).decode()


@pytest.fixture
def spec():
    return CredentialSpec(
        service="timesketch",
        secret_name="lab-timesketch-secret",
        key="timesketch-user",
        username="timesketch",
        url="http://localhost:5000",
    )


def test_decode_secret_field() -> None:
    assert decode_secret_field(_b64("s3cr3t!")) == "s3cr3t!"


def test_decode_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        decode_secret_field("not*base64")


def test_found(spec) -> None:
    k8s = FakeK8s(secrets={"lab-timesketch-secret": {"timesketch-user": _b64("hunter2")}})
    cred = fetch_credential(k8s, spec, "osdfir")
    assert cred.found
    assert cred.password == "hunter2"
    assert cred.username == "timesketch"


def test_missing_secret_is_not_an_error(spec) -> None:
    cred = fetch_credential(FakeK8s(), spec, "osdfir")
    assert not cred.found
    assert cred.password is None
    assert "not found" in cred.message


def test_missing_key(spec) -> None:
    k8s = FakeK8s(secrets={"lab-timesketch-secret": {"other": _b64("x")}})
    cred = fetch_credential(k8s, spec, "osdfir")
    assert not cred.found
    assert "Key timesketch-user not found" in cred.message


def test_undecodable_value(spec) -> None:
    k8s = FakeK8s(secrets={"lab-timesketch-secret": {"timesketch-user": "%%%"}})
    cred = fetch_credential(k8s, spec, "osdfir")
    assert not cred.found
    assert "unreadable" in cred.message


def test_api_error(spec, api_error) -> None:
    k8s = FakeK8s(secrets={"lab-timesketch-secret": api_error})
    cred = fetch_credential(k8s, spec, "osdfir")
    assert not cred.found
    assert "Could not read secret" in cred.message


def test_fetch_all_filters_by_service(spec) -> None:
    other = spec.model_copy(update={"service": "yeti", "secret_name": "lab-yeti-secret"})
    creds = fetch_all(FakeK8s(), [spec, other], "osdfir", service="yeti")
    assert [c.service for c in creds] == ["yeti"]
    assert len(fetch_all(FakeK8s(), [spec, other], "osdfir")) == 2


def test_table_marks_missing(spec) -> None:
    creds = fetch_all(FakeK8s(), [spec], "osdfir")
    assert credentials_table(creds).row_count == 1
