"""Scorecard run orchestration.

Per CR manifest the run moves through:

    provision (global, namespaced, CR) -> await status -> run suite -> cleanup

Everything created while processing one CR is registered in the run's
cleanup registry, which is drained when that CR finishes or fails. The
first error aborts the whole run after cleanup.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from bundle import get_crs_from_csv, get_deployment_name, load_csv
from cluster.applier import create_from_yaml_file
from cluster.cleanup import CleanupRegistry
from cluster.client import ClusterClient, load_api_client
from cluster.objects import decode_file
from cluster.waiter import find_deployment_pod, wait_for_status
from common import DecodeError, capture_logs, error_context
from config import DEFAULT_NAMESPACE, PluginType, RunConfig, validate_run_config
from manifests import check_duplicates, generate_global_manifest, generate_namespaced_manifest
from reporting import ScorecardReport
from suites import TestSuite, build_and_run, list_suite

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """State threaded through every stage of one run.

    Attributes:
        config: Resolved run configuration
        client: Control-plane client
        cleanup: Reversal actions for objects created for the current CR
        csv: Decoded ClusterServiceVersion (OLM plugin or pre-deployed mode)
        deployment_name: Operator deployment, once known
        proxy_pod: Pod running the scorecard-proxy sidecar, once known
        temp_files: Generated manifests removed when the run ends
    """
    config: RunConfig
    client: ClusterClient
    cleanup: CleanupRegistry = field(default_factory=CleanupRegistry)
    csv: Optional[dict] = None
    deployment_name: str = ''
    proxy_pod: Optional[dict] = None
    temp_files: list[Path] = field(default_factory=list)

    def remove_temp_files(self) -> None:
        for path in self.temp_files:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"Could not delete temporary manifest file {path}: ({e})")
        self.temp_files = []


def connect(config: RunConfig) -> tuple[RunConfig, ClusterClient]:
    """Build the cluster client and fill in the namespace if unset."""
    api_client, namespace = load_api_client(config.kubeconfig)
    client = ClusterClient.from_api_client(api_client)
    if not config.namespace:
        config = config.replace(namespace=namespace)
    return config, client


def resolve_inputs(ctx: RunContext) -> None:
    """Load the CSV and settle which manifests the run applies.

    Pre-deployed mode derives the CR list and operator deployment from the
    CSV; otherwise missing global/namespaced manifests are generated from
    the deploy and CRDs directories.
    """
    config = ctx.config
    if config.plugin_type is PluginType.OLM or config.olm_deployed:
        ctx.csv = load_csv(config.csv_path)

    if config.olm_deployed:
        ctx.deployment_name = get_deployment_name(ctx.csv)
        ctx.proxy_pod = find_deployment_pod(
            ctx.client, ctx.deployment_name, config.namespace, config.init_timeout,
        )
        cr_paths, temp_files = get_crs_from_csv(ctx.csv, config.cr_manifests)
        ctx.temp_files.extend(temp_files)
        ctx.config = config.replace(cr_manifests=tuple(cr_paths))
        return

    if not config.namespaced_manifest:
        path = generate_namespaced_manifest(config.deploy_dir)
        ctx.temp_files.append(path)
        config = config.replace(namespaced_manifest=str(path))
    if not config.global_manifest:
        path = generate_global_manifest(config.crds_dir)
        ctx.temp_files.append(path)
        config = config.replace(global_manifest=str(path))
    ctx.config = config


def run_tests(ctx: RunContext, cr_path: str) -> TestSuite:
    """Provision, wait for, and test a single CR manifest.

    The cleanup registry is drained when this returns or raises.
    """
    config = ctx.config
    with ctx.cleanup.scope(), capture_logs() as capture:
        logger.info(f"Running for cr: {cr_path}")

        if not config.olm_deployed:
            with error_context("failed to create global resources"):
                create_from_yaml_file(ctx, config.global_manifest)
            with error_context("failed to create namespaced resources"):
                create_from_yaml_file(ctx, config.namespaced_manifest)
            if ctx.deployment_name:
                with error_context("failed to find the operator pod"):
                    ctx.proxy_pod = find_deployment_pod(
                        ctx.client, ctx.deployment_name, config.namespace, config.init_timeout,
                    )

        with error_context("failed to create cr resource"):
            create_from_yaml_file(ctx, cr_path)

        with error_context("failed to decode custom resource manifest into object"):
            objects = decode_file(cr_path, namespace=config.namespace)
            if not objects:
                raise DecodeError(f"no objects found in {cr_path}")
            cr = objects[0]

        with error_context("failed waiting to check if CR status exists"):
            wait_for_status(ctx.client, cr, config.init_timeout)

        suite = build_and_run(config.plugin_type, ctx, cr, capture)

    if not config.olm_deployed:
        # Deployment and pod were torn down with this CR's resources
        ctx.deployment_name = ''
        ctx.proxy_pod = None
    return suite


def run_internal_plugin(config: RunConfig, client: Optional[ClusterClient] = None) -> ScorecardReport:
    """Run the configured suite against every CR manifest.

    Args:
        config: Run configuration
        client: Pre-built client; when None one is built from the kubeconfig

    Returns:
        Report with one suite per CR manifest, in order

    Raises:
        ScorecardError: The first failure of any stage, after cleanup ran
    """
    validate_run_config(config)
    if client is None:
        config, client = connect(config)
    elif not config.namespace:
        config = config.replace(namespace=DEFAULT_NAMESPACE)

    ctx = RunContext(config=config, client=client)
    started_at = datetime.now()
    suites: list[TestSuite] = []
    logger.info(f"Starting {config.plugin_type.value} scorecard in namespace {config.namespace}")

    try:
        resolve_inputs(ctx)
        check_duplicates(list(ctx.config.cr_manifests))
        for cr_path in ctx.config.cr_manifests:
            suites.append(run_tests(ctx, cr_path))
    finally:
        ctx.remove_temp_files()

    report = ScorecardReport(suites=tuple(suites), started_at=started_at, finished_at=datetime.now())
    logger.info(f"Scorecard completed in {(report.finished_at - started_at).total_seconds():.1f}s")
    return report


def list_internal_plugin(config: RunConfig) -> ScorecardReport:
    """Report the tests the configured selector would run, without running them."""
    suite = list_suite(config.plugin_type, config.selector)
    return ScorecardReport(suites=(suite,))
