"""Run configuration for the scorecard.

Configuration is merged from three sources, lowest precedence first:
- built-in defaults (RunConfig field defaults)
- a YAML config file (.osdk-scorecard.yaml by default)
- command-line flags

Keys in the config file use the dashed flag names (e.g. cr-manifest,
init-timeout). A RunConfig is immutable; resolution steps return new
instances via dataclasses.replace().
"""

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml

from common import ScorecardError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = '.osdk-scorecard.yaml'
DEFAULT_PROXY_IMAGE = 'quay.io/operator-framework/scorecard-proxy:master'
DEFAULT_NAMESPACE = 'default'
VALID_PULL_POLICIES = ('Always', 'Never', 'IfNotPresent')
# Older scorecard configs spell IfNotPresent this way
LEGACY_PULL_POLICIES = {'PullIfNotPresent': 'IfNotPresent'}


class ConfigError(ScorecardError):
    """Configuration error."""


class PluginType(Enum):
    """Internal plugin variants; the value is the suite's short name."""
    BASIC = 'basic'
    OLM = 'olm'

    @classmethod
    def parse(cls, value: str) -> 'PluginType':
        try:
            return cls(value.lower())
        except ValueError:
            valid = ', '.join(p.value for p in cls)
            raise ConfigError(f"invalid plugin type '{value}'; valid values: {valid}") from None


@dataclass(frozen=True)
class RunConfig:
    """Immutable input to a single scorecard run.

    Attributes:
        namespace: Target namespace (empty = kubeconfig's current namespace)
        cr_manifests: Paths to CR manifests, one suite run per entry
        global_manifest: Cluster-scoped resources (CRDs); generated if empty
        namespaced_manifest: Namespaced resources (operator deployment, RBAC); generated if empty
        crds_dir: Directory holding the operator's CRD manifests
        deploy_dir: Directory holding the operator's deploy manifests
        proxy_image: Image injected into the scorecard-proxy sidecar
        proxy_pull_policy: Pull policy injected into the scorecard-proxy sidecar
        init_timeout: Seconds to wait for a CR to report status
        plugin_type: Which suite variant to run
        selector: Label selector restricting which tests run
        olm_deployed: Operator was already deployed via OLM
        csv_path: ClusterServiceVersion manifest path
        bundle: Operator bundle directory (OLM suite)
        kubeconfig: Kubeconfig path (empty = default loading rules)
    """
    namespace: str = ''
    cr_manifests: tuple[str, ...] = ()
    global_manifest: str = ''
    namespaced_manifest: str = ''
    crds_dir: str = 'deploy/crds'
    deploy_dir: str = 'deploy'
    proxy_image: str = DEFAULT_PROXY_IMAGE
    proxy_pull_policy: str = 'Always'
    init_timeout: int = 60
    plugin_type: PluginType = PluginType.BASIC
    selector: str = ''
    olm_deployed: bool = False
    csv_path: str = ''
    bundle: str = ''
    kubeconfig: str = ''

    def replace(self, **changes: Any) -> 'RunConfig':
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)


# Config-file key -> RunConfig field
_FILE_KEYS = {
    'namespace': 'namespace',
    'cr-manifest': 'cr_manifests',
    'global-manifest': 'global_manifest',
    'namespaced-manifest': 'namespaced_manifest',
    'crds-dir': 'crds_dir',
    'deploy-dir': 'deploy_dir',
    'proxy-image': 'proxy_image',
    'proxy-pull-policy': 'proxy_pull_policy',
    'init-timeout': 'init_timeout',
    'plugin': 'plugin_type',
    'selector': 'selector',
    'olm-deployed': 'olm_deployed',
    'csv-path': 'csv_path',
    'bundle': 'bundle',
    'kubeconfig': 'kubeconfig',
}


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', 'false'):
        return value.lower() == 'true'
    raise ConfigError(f"{name.replace('_', '-')} must be true or false, got {value!r}")


def _coerce(name: str, value: Any) -> Any:
    """Normalize a raw config value for the named RunConfig field."""
    if name == 'cr_manifests':
        if isinstance(value, str):
            return (value,)
        return tuple(str(v) for v in value or ())
    if name == 'plugin_type':
        return value if isinstance(value, PluginType) else PluginType.parse(str(value))
    if name == 'init_timeout':
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"init-timeout must be an integer, got {value!r}") from None
    if name == 'olm_deployed':
        return _parse_bool(name, value)
    if name == 'proxy_pull_policy' and value in LEGACY_PULL_POLICIES:
        return LEGACY_PULL_POLICIES[value]
    return '' if value is None else str(value)


def load_config_file(path: Path) -> dict[str, Any]:
    """Parse a scorecard config file into RunConfig field values."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")

    # Accept the nested layout: scorecard: {...}
    data = data.get('scorecard', data)

    values = {}
    for key, value in data.items():
        if key not in _FILE_KEYS:
            logger.warning(f"Ignoring unknown config key '{key}' in {path}")
            continue
        name = _FILE_KEYS[key]
        values[name] = _coerce(name, value)
    return values


def build_run_config(
    config_file: Optional[Path] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> RunConfig:
    """Merge defaults, an optional config file and flag overrides.

    Args:
        config_file: Explicit config file. When None, DEFAULT_CONFIG_FILE is
            read if it exists in the working directory.
        overrides: RunConfig field values from the command line. None values
            mean "not given" and do not override.
    """
    values: dict[str, Any] = {}

    if config_file is None:
        default = Path(DEFAULT_CONFIG_FILE)
        if default.exists():
            config_file = default
    elif not Path(config_file).exists():
        raise ConfigError(f"config file not found: {config_file}")

    if config_file is not None:
        logger.debug(f"Loading config file {config_file}")
        values.update(load_config_file(Path(config_file)))

    for name, value in (overrides or {}).items():
        if value is None:
            continue
        values[name] = _coerce(name, value)

    return RunConfig(**values)


def validate_run_config(config: RunConfig) -> None:
    """Check flag combinations before touching the cluster.

    Raises:
        ConfigError: On the first invalid combination found
    """
    from suites.selector import SelectorError, parse_selector

    if not config.olm_deployed and not config.cr_manifests:
        raise ConfigError("cr-manifest config option must be set")
    if config.plugin_type is PluginType.OLM and not config.csv_path:
        raise ConfigError("csv-path must be set when running the olm plugin")
    if config.olm_deployed and not config.csv_path:
        raise ConfigError("csv-path must be set if olm-deployed is enabled")
    if config.plugin_type is PluginType.OLM and not config.bundle:
        raise ConfigError("bundle must be set when running the olm plugin")
    if config.olm_deployed and (config.global_manifest or config.namespaced_manifest):
        raise ConfigError(
            "global-manifest and namespaced-manifest cannot be set when olm-deployed is enabled"
        )
    if config.proxy_pull_policy not in VALID_PULL_POLICIES:
        raise ConfigError(
            f"invalid proxy pull policy: ({config.proxy_pull_policy}); "
            f"valid values: {', '.join(VALID_PULL_POLICIES)}"
        )
    if config.init_timeout <= 0:
        raise ConfigError(f"init-timeout must be positive, got {config.init_timeout}")
    try:
        parse_selector(config.selector)
    except SelectorError as e:
        raise ConfigError(f"invalid selector: {e}") from e
