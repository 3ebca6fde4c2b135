"""Kubernetes client manager for dfirlab."""

import logging
from typing import Dict, List, Optional

from kubernetes import client, config
from kubernetes.client import CoreV1Api
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from dfirlab.core.errors import ClusterUnreachableError

logger = logging.getLogger(__name__)

# Errors a query against an unreachable or half-started cluster can raise
API_ERRORS = (ApiException, HTTPError, OSError)


class K8sClientManager:
    """Manages the Kubernetes API client for the lab cluster.

    Wraps the few read-only queries the lab needs so the rest of the code
    works with API objects instead of parsing kubectl text.
    """

    def __init__(
        self,
        kubeconfig_path: Optional[str] = None,
        context: Optional[str] = None,
    ) -> None:
        """Initialize the Kubernetes client manager.

        Args:
            kubeconfig_path: Path to kubeconfig file (default location if not set)
            context: Kube context to use (current context if not set)

        Raises:
            ClusterUnreachableError: If the kubeconfig cannot be loaded
        """
        self._kubeconfig_path = kubeconfig_path
        self._context = context
        self._api_client = self._load_config()

    def _load_config(self) -> client.ApiClient:
        """Load Kubernetes configuration for the configured context."""
        try:
            return config.new_client_from_config(
                config_file=self._kubeconfig_path,
                context=self._context,
            )
        except (config.ConfigException, OSError) as e:
            raise ClusterUnreachableError(
                f"Failed to load kubeconfig for context {self._context or '(current)'}: {e}"
            )

    def get_core_v1_api(self) -> CoreV1Api:
        """Get CoreV1Api client for basic Kubernetes operations.

        Returns:
            CoreV1Api client instance
        """
        return client.CoreV1Api(self._api_client)

    def test_connection(self) -> bool:
        """Test the Kubernetes connection.

        Returns:
            True if the API server answers
        """
        try:
            self.get_core_v1_api().list_namespace(limit=1)
            return True
        except API_ERRORS as e:
            logger.debug("Kubernetes connection test failed: %s", e)
            return False

    def list_pods(
        self, namespace: str, label_selector: Optional[str] = None
    ) -> List[client.V1Pod]:
        """List pods in a namespace.

        Raises:
            ApiException: On API errors (callers decide how to degrade)
        """
        kwargs = {"namespace": namespace}
        if label_selector:
            kwargs["label_selector"] = label_selector
        return self.get_core_v1_api().list_namespaced_pod(**kwargs).items

    def service_exists(self, name: str, namespace: str) -> bool:
        """Check whether a Service object exists.

        Raises:
            ApiException: On API errors other than 404
        """
        try:
            self.get_core_v1_api().read_namespaced_service(name=name, namespace=namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    def read_secret(self, name: str, namespace: str) -> Optional[Dict[str, str]]:
        """Read a secret's data (values still base64-encoded).

        Returns:
            The secret's data mapping, or None if the secret does not exist
        """
        try:
            secret = self.get_core_v1_api().read_namespaced_secret(
                name=name, namespace=namespace
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return secret.data or {}

    def read_container_log(
        self,
        pod_name: str,
        namespace: str,
        container: Optional[str] = None,
        tail_lines: int = 20,
    ) -> str:
        """Get the log tail of one container (init containers included).

        Returns:
            Raw log text
        """
        kwargs = {
            "name": pod_name,
            "namespace": namespace,
            "tail_lines": tail_lines,
        }
        if container:
            kwargs["container"] = container
        return self.get_core_v1_api().read_namespaced_pod_log(**kwargs) or ""
