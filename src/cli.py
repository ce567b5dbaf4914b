#!/usr/bin/env python3
"""CLI entry point for the operator scorecard.

Runs the basic or OLM suite against an operator's CR manifests:
- Basic suite:  scorecard --cr-manifest deploy/crds/app_v1_memcached_cr.yaml
- OLM suite:    scorecard --plugin olm --csv-path <csv> --bundle <dir> --cr-manifest <cr>
- Pre-deployed: scorecard --olm-deployed --csv-path <csv>
- List tests:   scorecard --list --selector suite=basic

Flags override values from the config file (.osdk-scorecard.yaml).
"""

import argparse
import logging
import sys
from importlib import metadata
from pathlib import Path

from common import LOG_DATEFMT, LOG_FORMAT, ScorecardError
from config import DEFAULT_CONFIG_FILE, VALID_PULL_POLICIES, PluginType, build_run_config
from runner import list_internal_plugin, run_internal_plugin

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_TEST_FAILURE = 2


def get_version() -> str:
    try:
        return metadata.version('operator-scorecard')
    except metadata.PackageNotFoundError:
        return 'dev'


def configure_logging(verbose: bool = False) -> None:
    """Configure the root logger; logs go to stderr so stdout stays parseable."""
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        stream=sys.stderr,
    )
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='scorecard',
        description='Operator scorecard - runs basic and OLM conformance tests against an operator',
    )
    parser.add_argument('--version', action='version', version=f'scorecard {get_version()}')
    parser.add_argument(
        '--config',
        type=Path,
        help=f'Scorecard config file (default: {DEFAULT_CONFIG_FILE} if present)'
    )
    parser.add_argument('--kubeconfig', help='Path to kubeconfig of the cluster to test against')
    parser.add_argument('--namespace', '-n', help='Namespace to run tests in (default: current context namespace)')
    parser.add_argument(
        '--cr-manifest',
        action='append',
        dest='cr_manifests',
        help='Path to a custom resource manifest (can be repeated)'
    )
    parser.add_argument('--global-manifest', help='Manifest of cluster-scoped resources (CRDs)')
    parser.add_argument('--namespaced-manifest', help='Manifest of namespaced resources (operator, RBAC)')
    parser.add_argument('--crds-dir', help='Directory containing CRD manifests (default: deploy/crds)')
    parser.add_argument('--deploy-dir', help='Directory containing deploy manifests (default: deploy)')
    parser.add_argument('--proxy-image', help='Image of the scorecard-proxy sidecar')
    parser.add_argument(
        '--proxy-pull-policy',
        help=f'Pull policy of the scorecard-proxy sidecar ({", ".join(VALID_PULL_POLICIES)})'
    )
    parser.add_argument(
        '--init-timeout',
        type=int,
        help='Seconds to wait for a CR to report status (default: 60)'
    )
    parser.add_argument(
        '--plugin',
        choices=[p.value for p in PluginType],
        help='Suite to run (default: basic)'
    )
    parser.add_argument('--selector', '-l', help='Label selector restricting which tests run')
    parser.add_argument(
        '--olm-deployed',
        action='store_true',
        default=None,
        help='The operator was already deployed by OLM; only the CSV and CRs are used'
    )
    parser.add_argument('--csv-path', help='Path to the ClusterServiceVersion manifest')
    parser.add_argument('--bundle', help='Path to the operator bundle directory')
    parser.add_argument(
        '--list',
        action='store_true',
        help='List the tests the selector would run and exit'
    )
    parser.add_argument(
        '--output', '-o',
        choices=['text', 'json'],
        default='text',
        help='Output format (default: text)'
    )
    parser.add_argument('--report-dir', '-r', type=Path, help='Also write the JSON report to this directory')
    parser.add_argument(
        '--fail-on-test-failure',
        action='store_true',
        help='Exit 2 if any test does not pass'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    return parser


def _overrides(args: argparse.Namespace) -> dict:
    """Map parsed flags to RunConfig fields; unset flags stay None."""
    return {
        'kubeconfig': args.kubeconfig,
        'namespace': args.namespace,
        'cr_manifests': args.cr_manifests,
        'global_manifest': args.global_manifest,
        'namespaced_manifest': args.namespaced_manifest,
        'crds_dir': args.crds_dir,
        'deploy_dir': args.deploy_dir,
        'proxy_image': args.proxy_image,
        'proxy_pull_policy': args.proxy_pull_policy,
        'init_timeout': args.init_timeout,
        'plugin_type': args.plugin,
        'selector': args.selector,
        'olm_deployed': args.olm_deployed,
        'csv_path': args.csv_path,
        'bundle': args.bundle,
    }


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        0 on success, 1 on error, 2 when --fail-on-test-failure is given
        and any test did not pass
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = build_run_config(args.config, _overrides(args))
        if args.list:
            report = list_internal_plugin(config)
        else:
            report = run_internal_plugin(config)
    except ScorecardError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if args.output == 'json':
        print(report.to_json())
    else:
        print(report.to_text())

    if args.report_dir:
        try:
            path = report.write(args.report_dir)
            logger.info(f"Report written to {path}")
        except OSError as e:
            logger.warning(f"Failed to write report to {args.report_dir}: {e}")

    if args.fail_on_test_failure and not report.success:
        return EXIT_TEST_FAILURE
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
