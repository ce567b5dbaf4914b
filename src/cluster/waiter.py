"""Convergence waits against asynchronously reconciled objects."""

import logging
from typing import TYPE_CHECKING, Optional

from cluster.objects import GVK, ManagedObject, status_of
from common import DEFAULT_POLL_INTERVAL, ControlPlaneError, ConvergenceTimeoutError, poll_until
from config import ConfigError

if TYPE_CHECKING:
    from cluster.client import ClusterClient

logger = logging.getLogger(__name__)


def wait_for_status(
    client: 'ClusterClient',
    obj: ManagedObject,
    timeout: float,
    interval: float = DEFAULT_POLL_INTERVAL,
) -> dict:
    """Poll obj until the server reports a non-empty status.

    Not-found responses are treated as "not yet" and retried within the
    same deadline.

    Returns:
        The object as last read from the server

    Raises:
        ConvergenceTimeoutError: If no status appears within timeout
        ControlPlaneError: On any other API failure
    """
    logger.info(f"Waiting up to {timeout}s for {obj.identity()} to report status...")

    def probe() -> Optional[dict]:
        current = client.get(obj.gvk, obj.name, obj.namespace)
        if current is None:
            logger.debug(f"{obj.identity()} not found yet")
            return None
        return current if status_of(current) else None

    current = poll_until(probe, timeout, interval, description=f'status on {obj.identity()}')
    if current is None:
        raise ConvergenceTimeoutError(obj.identity(), timeout)
    logger.info(f"{obj.identity()} reported status")
    return current


def find_deployment_pod(
    client: 'ClusterClient',
    deployment_name: str,
    namespace: str,
    timeout: float,
    interval: float = DEFAULT_POLL_INTERVAL,
) -> dict:
    """Wait for a running pod belonging to the named deployment.

    Pods are matched with the deployment's spec.selector.matchLabels.

    Raises:
        ControlPlaneError: If the deployment is missing or no pod runs in time
    """
    deployment = client.get(GVK('apps', 'v1', 'Deployment'), deployment_name, namespace)
    if deployment is None:
        raise ControlPlaneError(f"deployment {namespace}/{deployment_name} not found")
    match_labels = ((deployment.get('spec') or {}).get('selector') or {}).get('matchLabels') or {}
    if not match_labels:
        raise ConfigError(f"deployment {deployment_name} has no spec.selector.matchLabels")

    def probe() -> Optional[dict]:
        for pod in client.list_pods(namespace, match_labels):
            if (pod.get('status') or {}).get('phase') == 'Running':
                return pod
        return None

    pod = poll_until(probe, timeout, interval, description=f'pod of deployment {deployment_name}')
    if pod is None:
        raise ConvergenceTimeoutError(f'pod of Deployment {namespace}/{deployment_name}', timeout)
    logger.info(f"Found pod {pod['metadata']['name']} for deployment {deployment_name}")
    return pod
