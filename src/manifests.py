"""Manifest loading for the scorecard.

Generates the combined manifests used when none are given explicitly:
- namespaced: deploy/{service_account,role,role_binding,operator}.yaml
- global: every CRD manifest in the CRDs directory

Also checks CR manifests for duplicate GVKs.
"""

import logging
import os
import tempfile
from pathlib import Path

from cluster.objects import GVK, gvk_of, iter_documents, read_manifest
from common import DecodeError
from config import ConfigError

logger = logging.getLogger(__name__)

NAMESPACED_MANIFEST_FILES = ('service_account.yaml', 'role.yaml', 'role_binding.yaml', 'operator.yaml')


def combine_manifests(paths: list[Path]) -> str:
    """Join manifest files into one multi-document YAML string."""
    parts = []
    for path in paths:
        content = read_manifest(str(path)).strip()
        # Strip a leading separator so joins don't produce empty documents
        if content.startswith('---'):
            content = content[3:].lstrip('\n')
        if content:
            parts.append(content)
    return '\n---\n'.join(parts) + '\n'


def write_temp_manifest(content: str, suffix: str) -> Path:
    """Write content to a unique temporary file. Caller removes it."""
    fd, path = tempfile.mkstemp(suffix=suffix)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        f.write(content)
    return Path(path)


def generate_namespaced_manifest(deploy_dir: str) -> Path:
    """Combine the operator's namespaced deploy manifests into a temp file.

    Raises:
        ConfigError: If none of the expected files exist
    """
    base = Path(deploy_dir)
    paths = [base / name for name in NAMESPACED_MANIFEST_FILES if (base / name).is_file()]
    if not paths:
        raise ConfigError(
            f"no namespaced manifests found in {deploy_dir} "
            f"(expected any of {', '.join(NAMESPACED_MANIFEST_FILES)}); set namespaced-manifest"
        )
    logger.debug(f"Combining namespaced manifests: {', '.join(p.name for p in paths)}")
    return write_temp_manifest(combine_manifests(paths), suffix='.namespaced.yaml')


def generate_global_manifest(crds_dir: str) -> Path:
    """Combine every CRD manifest in crds_dir into a temp file.

    Files named *_crd.yaml are preferred; without any, all *.yaml files
    are used.

    Raises:
        ConfigError: If the directory holds no manifests
    """
    base = Path(crds_dir)
    if not base.is_dir():
        raise ConfigError(f"CRDs directory not found: {crds_dir}; set global-manifest or crds-dir")
    paths = sorted(base.glob('*_crd.yaml')) or sorted(base.glob('*.yaml'))
    if not paths:
        raise ConfigError(f"no CRD manifests found in {crds_dir}")
    logger.debug(f"Combining {len(paths)} CRD manifest(s) from {crds_dir}")
    return write_temp_manifest(combine_manifests(paths), suffix='.global.yaml')


def get_gvks(text: str, source: str = '<string>') -> list[GVK]:
    """Collect the GVK of every object in a manifest, in document order.

    Only apiVersion and kind are read, so unknown kinds decode fine.
    """
    return [gvk_of(doc, source) for doc in iter_documents(text, source)]


def check_duplicates(manifest_paths: list[str]) -> list[GVK]:
    """Warn about GVKs that appear more than once across CR manifests.

    Duplicates are a soft signal: one warning is logged per occurrence
    after the first, and the run continues.

    Returns:
        The duplicate occurrences, in the order they were found

    Raises:
        DecodeError: If a manifest cannot be read or decoded
    """
    gvks: list[GVK] = []
    for path in manifest_paths:
        try:
            text = read_manifest(path)
        except DecodeError as e:
            raise DecodeError(f"failed to read file: {path}") from e
        try:
            gvks.extend(get_gvks(text, source=path))
        except DecodeError as e:
            raise DecodeError(f"could not get GVKs for resource(s) in file: {path}, due to error: ({e})") from e

    seen: set[GVK] = set()
    duplicates = []
    for gvk in gvks:
        if gvk in seen:
            logger.warning(f"Duplicate gvks in CR list detected ({gvk}); results may be inaccurate")
            duplicates.append(gvk)
        seen.add(gvk)
    return duplicates
