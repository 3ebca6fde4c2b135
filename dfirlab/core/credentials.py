"""Operator credential retrieval from cluster secrets."""

import base64
import binascii
import logging
from typing import Iterable, List, Optional

from rich.table import Table

from dfirlab.core.k8s_client import API_ERRORS, K8sClientManager
from dfirlab.core.models import Credential, CredentialSpec

logger = logging.getLogger(__name__)


def decode_secret_field(b64_text: str) -> str:
    """Decode a base64-encoded Kubernetes secret value.

    Raises:
        ValueError: If the value is not valid base64 or not UTF-8
    """
    try:
        return base64.b64decode(b64_text, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"Secret value is not decodable: {e}")


def fetch_credential(
    k8s: K8sClientManager, spec: CredentialSpec, namespace: str
) -> Credential:
    """Read and decode one operator credential.

    Never raises: a missing secret, missing key, API error or bad encoding
    yields a Credential with ``found=False`` and a reason.
    """
    result = Credential(service=spec.service, username=spec.username, url=spec.url)

    try:
        data = k8s.read_secret(spec.secret_name, namespace)
    except API_ERRORS as e:
        logger.debug("Reading secret %s failed: %s", spec.secret_name, e)
        result.message = f"Could not read secret {spec.secret_name}: {e}"
        return result

    if data is None:
        result.message = f"Secret {spec.secret_name} not found"
        return result

    value = data.get(spec.key)
    if not value:
        result.message = f"Key {spec.key} not found in secret {spec.secret_name}"
        return result

    try:
        result.password = decode_secret_field(value)
    except ValueError as e:
        result.message = f"Key {spec.key} in {spec.secret_name} is unreadable: {e}"
        return result

    result.found = True
    return result


def fetch_all(
    k8s: K8sClientManager,
    specs: Iterable[CredentialSpec],
    namespace: str,
    service: Optional[str] = None,
) -> List[Credential]:
    """Fetch credentials for every service, or just one."""
    return [
        fetch_credential(k8s, spec, namespace)
        for spec in specs
        if service is None or spec.service == service
    ]


def credentials_table(credentials: List[Credential]) -> Table:
    table = Table(title="Lab credentials")
    table.add_column("Service", style="cyan")
    table.add_column("URL", style="green")
    table.add_column("Username")
    table.add_column("Password")

    for cred in credentials:
        if cred.found:
            password = cred.password
        else:
            password = f"[yellow]not found[/yellow] [dim]({cred.message})[/dim]"
        table.add_row(cred.service, cred.url, cred.username, password)
    return table
