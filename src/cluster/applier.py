"""Object applier: create every object in a manifest with tracked cleanup."""

import logging
import time
from typing import TYPE_CHECKING

from cluster.objects import CRD_KIND, ManagedObject, decode_file, inject_proxy
from common import ControlPlaneError

if TYPE_CHECKING:
    from runner import RunContext

logger = logging.getLogger(__name__)


def _delete_fn(ctx: 'RunContext', obj: ManagedObject):
    """Build the reversal for obj."""
    def delete() -> None:
        logger.info(f"Deleting {obj.identity()}")
        if not ctx.client.delete(obj.gvk, obj.name, obj.namespace):
            logger.debug(f"{obj.identity()} was already gone")
    return delete


def create_from_yaml_file(ctx: 'RunContext', manifest_path: str) -> list[ManagedObject]:
    """Create every object in manifest_path in ctx.config.namespace.

    Objects carrying a scorecard-proxy container get the configured proxy
    image and pull policy. Each created object registers one cleanup action
    before the next create is attempted. A create failure stops the whole
    manifest; objects created before it stay registered for cleanup.

    Returns:
        The created objects, in creation order

    Raises:
        DecodeError: If the manifest is unreadable or malformed
        ControlPlaneError: On the first failed create
    """
    config = ctx.config
    objects = decode_file(manifest_path, namespace=config.namespace)
    logger.info(f"Creating {len(objects)} object(s) from {manifest_path}")

    created = []
    for obj in objects:
        inject_proxy(obj, config.proxy_image, config.proxy_pull_policy)
        start = time.time()
        try:
            ctx.client.create(obj)
        except ControlPlaneError:
            logger.error(f"Create failed for {obj.identity()}")
            raise
        ctx.cleanup.register(f"delete {obj.identity()}", _delete_fn(ctx, obj))
        logger.info(f"Created {obj.identity()} ({time.time() - start:.1f}s)")
        created.append(obj)

        if obj.kind == CRD_KIND:
            ctx.client.reset_mapper()
        elif obj.kind == 'Deployment':
            ctx.deployment_name = obj.name
    return created
