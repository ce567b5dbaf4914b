"""Tests for config.py - run configuration loading and validation."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from config import (
    DEFAULT_PROXY_IMAGE,
    ConfigError,
    PluginType,
    RunConfig,
    build_run_config,
    load_config_file,
    validate_run_config,
)


class TestRunConfigDefaults:
    """Test RunConfig default values."""

    def test_defaults(self):
        """Defaults should match the documented flag defaults."""
        config = RunConfig()
        assert config.init_timeout == 60
        assert config.proxy_image == DEFAULT_PROXY_IMAGE
        assert config.proxy_pull_policy == 'Always'
        assert config.plugin_type is PluginType.BASIC
        assert config.crds_dir == 'deploy/crds'
        assert config.olm_deployed is False

    def test_replace_returns_new_instance(self):
        """replace() should not mutate the original."""
        config = RunConfig(namespace='a')
        other = config.replace(namespace='b')
        assert config.namespace == 'a'
        assert other.namespace == 'b'

    def test_frozen(self):
        """RunConfig should be immutable."""
        with pytest.raises(Exception):
            RunConfig().namespace = 'x'


class TestPluginType:
    """Test PluginType parsing."""

    def test_parse_case_insensitive(self):
        assert PluginType.parse('OLM') is PluginType.OLM

    def test_parse_invalid(self):
        with pytest.raises(ConfigError, match='invalid plugin type'):
            PluginType.parse('external')


class TestLoadConfigFile:
    """Test YAML config file loading."""

    def test_dashed_keys(self, tmp_path):
        """Dashed keys should map to RunConfig fields."""
        path = tmp_path / 'scorecard.yaml'
        path.write_text(
            "cr-manifest:\n  - a.yaml\n  - b.yaml\ninit-timeout: 30\nplugin: olm\nolm-deployed: true\n"
        )
        values = load_config_file(path)
        assert values['cr_manifests'] == ('a.yaml', 'b.yaml')
        assert values['init_timeout'] == 30
        assert values['plugin_type'] is PluginType.OLM
        assert values['olm_deployed'] is True

    def test_nested_scorecard_key(self, tmp_path):
        """Values under a top-level 'scorecard' key should be read."""
        path = tmp_path / 'scorecard.yaml'
        path.write_text("scorecard:\n  namespace: ns1\n  cr-manifest: single.yaml\n")
        values = load_config_file(path)
        assert values == {'namespace': 'ns1', 'cr_manifests': ('single.yaml',)}

    def test_unknown_key_warns(self, tmp_path, caplog):
        """Unknown keys should be ignored with a warning."""
        path = tmp_path / 'scorecard.yaml'
        path.write_text("reconcile-period: 5s\n")
        assert load_config_file(path) == {}
        assert "Ignoring unknown config key 'reconcile-period'" in caplog.text

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'scorecard.yaml'
        path.write_text("key: [unclosed\n")
        with pytest.raises(ConfigError, match='failed to parse config file'):
            load_config_file(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / 'scorecard.yaml'
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match='must contain a mapping'):
            load_config_file(path)

    def test_bad_timeout(self, tmp_path):
        path = tmp_path / 'scorecard.yaml'
        path.write_text("init-timeout: soon\n")
        with pytest.raises(ConfigError, match='init-timeout must be an integer'):
            load_config_file(path)

    def test_quoted_bool(self, tmp_path):
        """A quoted 'false' must not switch the flag on."""
        path = tmp_path / 'scorecard.yaml'
        path.write_text('olm-deployed: "false"\n')
        assert load_config_file(path)['olm_deployed'] is False

    def test_bad_bool(self, tmp_path):
        path = tmp_path / 'scorecard.yaml'
        path.write_text("olm-deployed: sometimes\n")
        with pytest.raises(ConfigError, match='olm-deployed must be true or false'):
            load_config_file(path)

    def test_legacy_pull_policy_mapped(self, tmp_path):
        path = tmp_path / 'scorecard.yaml'
        path.write_text("proxy-pull-policy: PullIfNotPresent\n")
        assert load_config_file(path)['proxy_pull_policy'] == 'IfNotPresent'


class TestBuildRunConfig:
    """Test precedence of defaults, file and overrides."""

    def test_overrides_win_over_file(self, tmp_path):
        """Flag values should override config file values."""
        path = tmp_path / 'scorecard.yaml'
        path.write_text("namespace: from-file\ninit-timeout: 30\n")
        config = build_run_config(path, {'namespace': 'from-flag', 'init_timeout': None})
        assert config.namespace == 'from-flag'
        assert config.init_timeout == 30

    def test_default_file_in_cwd(self, tmp_path, monkeypatch):
        """.osdk-scorecard.yaml in the working directory should be read."""
        (tmp_path / '.osdk-scorecard.yaml').write_text("selector: suite=basic\n")
        monkeypatch.chdir(tmp_path)
        assert build_run_config().selector == 'suite=basic'

    def test_no_file(self, tmp_path, monkeypatch):
        """Without any file, defaults apply."""
        monkeypatch.chdir(tmp_path)
        assert build_run_config() == RunConfig()

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match='config file not found'):
            build_run_config(tmp_path / 'missing.yaml')


class TestValidateRunConfig:
    """Test flag combination validation."""

    def test_valid_basic(self):
        validate_run_config(RunConfig(cr_manifests=('cr.yaml',)))

    def test_cr_manifest_required(self):
        with pytest.raises(ConfigError, match='cr-manifest config option must be set'):
            validate_run_config(RunConfig())

    def test_olm_deployed_needs_no_cr(self):
        """Pre-deployed mode can derive CRs from the CSV."""
        validate_run_config(RunConfig(olm_deployed=True, csv_path='csv.yaml'))

    def test_olm_plugin_needs_csv(self):
        config = RunConfig(cr_manifests=('cr.yaml',), plugin_type=PluginType.OLM, bundle='bundle')
        with pytest.raises(ConfigError, match='csv-path must be set'):
            validate_run_config(config)

    def test_olm_plugin_needs_bundle(self):
        config = RunConfig(cr_manifests=('cr.yaml',), plugin_type=PluginType.OLM, csv_path='csv.yaml')
        with pytest.raises(ConfigError, match='bundle must be set'):
            validate_run_config(config)

    def test_olm_deployed_excludes_manifests(self):
        config = RunConfig(olm_deployed=True, csv_path='csv.yaml', global_manifest='global.yaml')
        with pytest.raises(ConfigError, match='cannot be set when olm-deployed'):
            validate_run_config(config)

    def test_invalid_pull_policy(self):
        config = RunConfig(cr_manifests=('cr.yaml',), proxy_pull_policy='Sometimes')
        with pytest.raises(ConfigError, match=r'invalid proxy pull policy: \(Sometimes\)'):
            validate_run_config(config)

    def test_kubernetes_pull_policies_accepted(self):
        for policy in ('Always', 'Never', 'IfNotPresent'):
            validate_run_config(RunConfig(cr_manifests=('cr.yaml',), proxy_pull_policy=policy))

    def test_non_positive_timeout(self):
        config = RunConfig(cr_manifests=('cr.yaml',), init_timeout=0)
        with pytest.raises(ConfigError, match='init-timeout must be positive'):
            validate_run_config(config)

    def test_invalid_selector(self):
        config = RunConfig(cr_manifests=('cr.yaml',), selector='suite in (basic')
        with pytest.raises(ConfigError, match='invalid selector'):
            validate_run_config(config)
