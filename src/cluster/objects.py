"""Decoded cluster objects and GVK identity.

Manifests are decoded into plain dicts (the shape the dynamic client
accepts) wrapped in ManagedObject, which carries the object's GVK and
namespace alongside the body.
"""

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml

from common import DecodeError

logger = logging.getLogger(__name__)

# Container name reserved for the scorecard proxy sidecar
PROXY_CONTAINER_NAME = 'scorecard-proxy'

# Kinds whose pod template lives at spec.template
POD_TEMPLATE_KINDS = {'Deployment', 'DaemonSet', 'StatefulSet', 'ReplicaSet', 'Job'}

CRD_KIND = 'CustomResourceDefinition'
CSV_KIND = 'ClusterServiceVersion'


@dataclass(frozen=True)
class GVK:
    """Group/Version/Kind identity. Compared by value."""
    group: str
    version: str
    kind: str

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> 'GVK':
        group, _, version = api_version.rpartition('/')
        return cls(group=group, version=version, kind=kind)

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def __str__(self) -> str:
        return f'{self.api_version}, Kind={self.kind}'


@dataclass
class ManagedObject:
    """A decoded cluster object plus its identity.

    Attributes:
        gvk: Type identity
        body: Full object as a dict
        namespace: Namespace the object is created in ('' for cluster-scoped)
    """
    gvk: GVK
    body: dict[str, Any] = field(repr=False)
    namespace: str = ''

    @property
    def name(self) -> str:
        return self.body['metadata']['name']

    @property
    def kind(self) -> str:
        return self.gvk.kind

    def identity(self) -> str:
        """Human-readable identity for logs and errors."""
        where = f'{self.namespace}/' if self.namespace else ''
        return f'{self.gvk.kind} {where}{self.name}'


def iter_documents(text: str, source: str = '<string>') -> Iterator[dict]:
    """Yield each non-empty YAML document in text.

    Raises:
        DecodeError: If the YAML is malformed or a document is not a mapping
    """
    try:
        docs = list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        raise DecodeError(f"failed to parse YAML in {source}: {e}") from e
    for index, doc in enumerate(docs):
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise DecodeError(f"document {index} in {source} is not a mapping")
        yield doc


def read_manifest(path: str) -> str:
    """Read a manifest file.

    Raises:
        DecodeError: If the file cannot be read
    """
    try:
        return Path(path).read_text(encoding='utf-8')
    except OSError as e:
        raise DecodeError(f"failed to read file: {path}: {e}") from e


def gvk_of(doc: dict, source: str = '<string>') -> GVK:
    """Extract GVK from a document without requiring a known type."""
    api_version, kind = doc.get('apiVersion'), doc.get('kind')
    if not api_version or not kind:
        raise DecodeError(f"object in {source} is missing apiVersion or kind")
    return GVK.from_api_version(str(api_version), str(kind))


def decode_objects(text: str, namespace: str = '', source: str = '<string>') -> list[ManagedObject]:
    """Decode every document in text into a ManagedObject.

    Raises:
        DecodeError: If any document is malformed or lacks metadata.name
    """
    objects = []
    for doc in iter_documents(text, source):
        gvk = gvk_of(doc, source)
        metadata = doc.get('metadata') or {}
        if not metadata.get('name'):
            raise DecodeError(f"{gvk.kind} in {source} has no metadata.name")
        obj_namespace = metadata.get('namespace') or namespace
        objects.append(ManagedObject(gvk=gvk, body=copy.deepcopy(doc), namespace=obj_namespace))
    return objects


def decode_file(path: str, namespace: str = '') -> list[ManagedObject]:
    """Read and decode a manifest file."""
    return decode_objects(read_manifest(path), namespace=namespace, source=path)


def _pod_templates(obj: ManagedObject) -> Iterator[dict]:
    """Yield every pod template spec declared by obj."""
    body = obj.body
    if obj.kind in POD_TEMPLATE_KINDS:
        template = (body.get('spec') or {}).get('template') or {}
        if template:
            yield template
    elif obj.kind == CSV_KIND:
        install = ((body.get('spec') or {}).get('install') or {}).get('spec') or {}
        for dep in install.get('deployments') or []:
            template = (dep.get('spec') or {}).get('template') or {}
            if template:
                yield template


def inject_proxy(obj: ManagedObject, image: str, pull_policy: str) -> int:
    """Set image and pull policy on any scorecard-proxy container in obj.

    Returns:
        Number of containers updated
    """
    updated = 0
    for template in _pod_templates(obj):
        for container in (template.get('spec') or {}).get('containers') or []:
            if container.get('name') == PROXY_CONTAINER_NAME:
                container['image'] = image
                container['imagePullPolicy'] = pull_policy
                updated += 1
    if updated:
        logger.debug(f"Injected proxy image {image} ({pull_policy}) into {obj.identity()}")
    return updated


def status_of(body: Optional[dict]) -> dict:
    """Return the status block of an object body (empty if absent)."""
    if not body:
        return {}
    return body.get('status') or {}
