"""ClusterServiceVersion and bundle helpers.

In pre-deployed (OLM) mode the CSV is the source of truth: it names the
operator deployment and carries example CRs in the alm-examples
annotation.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from cluster.objects import CSV_KIND, read_manifest
from common import DecodeError
from config import ConfigError
from manifests import write_temp_manifest

logger = logging.getLogger(__name__)

ALM_EXAMPLES_ANNOTATION = 'alm-examples'


@dataclass
class ValidationResult:
    """Outcome of CSV validation."""
    errors: list[str]
    warnings: list[tuple[str, str]]  # (type, detail)


def validate_csv(csv: dict) -> ValidationResult:
    """Check a CSV for required fields.

    Missing identity or install strategy are errors; missing descriptive
    metadata only produces warnings.
    """
    errors: list[str] = []
    warnings: list[tuple[str, str]] = []

    if csv.get('kind') != CSV_KIND:
        errors.append(f"kind must be {CSV_KIND}, got {csv.get('kind')!r}")
    metadata = csv.get('metadata') or {}
    if not metadata.get('name'):
        errors.append("metadata.name is required")

    spec = csv.get('spec') or {}
    install = spec.get('install') or {}
    if not install.get('strategy'):
        errors.append("spec.install.strategy is required")
    if not spec.get('installModes'):
        errors.append("spec.installModes is required")

    for key in ('displayName', 'description', 'version', 'provider', 'maintainers'):
        if not spec.get(key):
            warnings.append(('FieldValueRequired', f"spec.{key} is not set"))
    if not (spec.get('customresourcedefinitions') or {}).get('owned'):
        warnings.append(('FieldValueRequired', "spec.customresourcedefinitions.owned is empty"))

    return ValidationResult(errors=errors, warnings=warnings)


def load_csv(csv_path: str) -> dict:
    """Read, decode and validate a CSV manifest.

    Raises:
        DecodeError: If the file is unreadable or not valid YAML
        ConfigError: If validation reports errors
    """
    text = read_manifest(csv_path)
    try:
        csv = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DecodeError(f"error getting ClusterServiceVersion: {e}") from e
    if not isinstance(csv, dict):
        raise DecodeError(f"error getting ClusterServiceVersion: {csv_path} is not a mapping")

    result = validate_csv(csv)
    if result.errors:
        messages = ''.join(f"{e}\n" for e in result.errors)
        raise ConfigError(f"error validating ClusterServiceVersion: {messages}")
    for warning_type, detail in result.warnings:
        logger.warning(f"CSV validation warning: type [{warning_type}] {detail}")
    return csv


def get_deployment_name(csv: dict) -> str:
    """Return the first deployment named by the CSV's install strategy.

    Raises:
        ConfigError: If the strategy is not 'deployment' or lists no deployments
    """
    install = (csv.get('spec') or {}).get('install') or {}
    strategy = install.get('strategy')
    if strategy != 'deployment':
        raise ConfigError(f"expected install strategy 'deployment', got {strategy!r}")
    deployments = (install.get('spec') or {}).get('deployments') or []
    if not deployments or not deployments[0].get('name'):
        raise ConfigError("CSV install strategy does not name any deployment")
    return deployments[0]['name']


def get_crs_from_csv(csv: dict, cr_manifests: tuple[str, ...]) -> tuple[list[str], list[Path]]:
    """Select the CR manifest to test in pre-deployed mode.

    Only one CR is tested in this mode. Supplied manifests win: the first is
    used. Otherwise the first alm-examples entry is written to a temporary
    *.cr.yaml file.

    Returns:
        (cr_paths, temp_files) tuple; temp_files must be removed by the caller

    Raises:
        ConfigError: If no CR can be derived
    """
    csv_name = (csv.get('metadata') or {}).get('name', '')
    multiple = False
    temp_files: list[Path] = []

    if cr_manifests:
        selected = [cr_manifests[0]]
        multiple = len(cr_manifests) > 1
    else:
        annotations = (csv.get('metadata') or {}).get('annotations') or {}
        examples = annotations.get(ALM_EXAMPLES_ANNOTATION, '')
        if not examples:
            raise ConfigError(
                f"cr-manifest config option must be set if CSV has no "
                f"metadata.annotations['{ALM_EXAMPLES_ANNOTATION}']"
            )
        try:
            crs = json.loads(examples)
        except json.JSONDecodeError as e:
            raise ConfigError(
                f"metadata.annotations['{ALM_EXAMPLES_ANNOTATION}'] in CSV {csv_name} incorrectly formatted: {e}"
            ) from e
        if not isinstance(crs, list) or not crs:
            raise ConfigError(
                f"no CRs found in metadata.annotations['{ALM_EXAMPLES_ANNOTATION}'] "
                f"in CSV {csv_name} and cr-manifest config option not set"
            )
        multiple = len(crs) > 1
        path = write_temp_manifest(yaml.safe_dump(crs[0], default_flow_style=False), suffix='.cr.yaml')
        temp_files.append(path)
        selected = [str(path)]

    if multiple:
        logger.info(
            "The scorecard does not support testing multiple CR's at once when run with --olm-deployed. "
            f"Testing the first CR {selected[0]}"
        )
    return selected, temp_files


def owned_crd(csv: Optional[dict], kind: str, api_version: str = '') -> Optional[dict]:
    """Find the CSV's owned-CRD entry describing kind."""
    owned = (((csv or {}).get('spec') or {}).get('customresourcedefinitions') or {}).get('owned') or []
    version = api_version.rpartition('/')[2]
    for entry in owned:
        if entry.get('kind') != kind:
            continue
        if version and entry.get('version') and entry['version'] != version:
            continue
        return entry
    return None
