"""Control-plane client.

Thin wrapper over the kubernetes dynamic client that addresses objects by
GVK + namespace + name and converts library exceptions into
ControlPlaneError. Discovery results are cached by the dynamic client;
reset_mapper() drops the cache after new kinds (CRDs) are registered.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import NotFoundError, ResourceNotFoundError

from cluster.objects import GVK, ManagedObject
from common import ControlPlaneError
from config import DEFAULT_NAMESPACE, ConfigError

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_NAMESPACE = Path('/var/run/secrets/kubernetes.io/serviceaccount/namespace')

_DELETE_OPTIONS = {
    'apiVersion': 'v1',
    'kind': 'DeleteOptions',
    'propagationPolicy': 'Background',
}


def load_api_client(kubeconfig: str = '') -> tuple[Any, str]:
    """Build an ApiClient and resolve the current namespace.

    Tries the kubeconfig (explicit path, then default loading rules) and
    falls back to in-cluster service account credentials.

    Returns:
        (api_client, namespace) tuple

    Raises:
        ConfigError: If no usable credentials are found
    """
    try:
        api_client = k8s_config.new_client_from_config(config_file=kubeconfig or None)
        _, active = k8s_config.list_kube_config_contexts(config_file=kubeconfig or None)
        namespace = (active or {}).get('context', {}).get('namespace') or DEFAULT_NAMESPACE
        return api_client, namespace
    except k8s_config.ConfigException as e:
        if kubeconfig:
            raise ConfigError(f"failed to build the kubeconfig: {e}") from e
        logger.debug(f"No usable kubeconfig ({e}), trying in-cluster config")

    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException as e:
        raise ConfigError(f"failed to build the kubeconfig: {e}") from e

    namespace = DEFAULT_NAMESPACE
    if SERVICE_ACCOUNT_NAMESPACE.exists():
        namespace = SERVICE_ACCOUNT_NAMESPACE.read_text(encoding='utf-8').strip() or DEFAULT_NAMESPACE
    return k8s_client.ApiClient(), namespace


class ClusterClient:
    """Create/get/delete typed objects against the control plane."""

    def __init__(self, dynamic: Any, core: Any):
        """Initialize with already-built clients.

        Args:
            dynamic: kubernetes.dynamic.DynamicClient
            core: kubernetes.client.CoreV1Api
        """
        self.dynamic = dynamic
        self.core = core

    @classmethod
    def from_api_client(cls, api_client: Any) -> 'ClusterClient':
        try:
            dynamic = DynamicClient(api_client)
        except ApiException as e:
            raise ControlPlaneError(f"failed to initialize discovery: {e.reason}") from e
        return cls(dynamic=dynamic, core=k8s_client.CoreV1Api(api_client))

    def reset_mapper(self) -> None:
        """Drop cached discovery so newly registered kinds resolve."""
        logger.debug("Resetting discovery cache")
        self.dynamic.resources.invalidate_cache()

    def _resource(self, gvk: GVK):
        """Resolve the API resource for gvk, refreshing discovery once on a miss."""
        try:
            return self.dynamic.resources.get(api_version=gvk.api_version, kind=gvk.kind)
        except ResourceNotFoundError:
            self.reset_mapper()
        try:
            return self.dynamic.resources.get(api_version=gvk.api_version, kind=gvk.kind)
        except ResourceNotFoundError as e:
            raise ControlPlaneError(f"no matches for kind \"{gvk.kind}\" in version \"{gvk.api_version}\"") from e

    def create(self, obj: ManagedObject) -> dict:
        """Create obj and return the server's representation.

        Raises:
            ControlPlaneError: On discovery or API failure
        """
        resource = self._resource(obj.gvk)
        namespace = obj.namespace if resource.namespaced else None
        body = obj.body
        if namespace:
            body.setdefault('metadata', {})['namespace'] = namespace
        try:
            created = resource.create(body=body, namespace=namespace)
        except ApiException as e:
            raise ControlPlaneError(f"failed to create {obj.identity()}: {e.reason}") from e
        logger.debug(f"Created {obj.identity()}")
        return created.to_dict()

    def get(self, gvk: GVK, name: str, namespace: str = '') -> Optional[dict]:
        """Fetch an object; None if the object or its kind is not found.

        Raises:
            ControlPlaneError: On any other API failure
        """
        try:
            resource = self.dynamic.resources.get(api_version=gvk.api_version, kind=gvk.kind)
        except ResourceNotFoundError:
            return None
        try:
            found = resource.get(name=name, namespace=namespace if resource.namespaced else None)
        except NotFoundError:
            return None
        except ApiException as e:
            raise ControlPlaneError(f"failed to get {gvk.kind} {name}: {e.reason}") from e
        return found.to_dict()

    def delete(self, gvk: GVK, name: str, namespace: str = '') -> bool:
        """Delete an object. Returns False if it was already gone.

        Raises:
            ControlPlaneError: On any API failure other than not-found
        """
        try:
            resource = self.dynamic.resources.get(api_version=gvk.api_version, kind=gvk.kind)
        except ResourceNotFoundError:
            # Kind already unregistered (its CRD was deleted first)
            return False
        try:
            resource.delete(
                name=name,
                namespace=namespace if resource.namespaced else None,
                body=_DELETE_OPTIONS,
            )
        except NotFoundError:
            return False
        except ApiException as e:
            raise ControlPlaneError(f"failed to delete {gvk.kind} {name}: {e.reason}") from e
        logger.debug(f"Deleted {gvk.kind} {name}")
        return True

    def list_pods(self, namespace: str, match_labels: dict[str, str]) -> list[dict]:
        """List pods in namespace matching all of match_labels."""
        label_selector = ','.join(f'{k}={v}' for k, v in sorted(match_labels.items()))
        try:
            pods = self.core.list_namespaced_pod(namespace, label_selector=label_selector)
        except ApiException as e:
            raise ControlPlaneError(f"failed to list pods in {namespace}: {e.reason}") from e
        return [self.core.api_client.sanitize_for_serialization(p) for p in pods.items]

    def read_pod_log(self, name: str, namespace: str, container: str) -> str:
        """Return a container's log."""
        try:
            return self.core.read_namespaced_pod_log(name=name, namespace=namespace, container=container)
        except ApiException as e:
            raise ControlPlaneError(f"failed to read log of {namespace}/{name}: {e.reason}") from e
