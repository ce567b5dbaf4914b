"""Shared pytest fixtures for scorecard tests."""

import copy
import json
import sys
from pathlib import Path

import pytest
import yaml

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from cluster.cleanup import CleanupRegistry  # noqa: E402
from common import ControlPlaneError  # noqa: E402
from config import RunConfig  # noqa: E402
from runner import RunContext  # noqa: E402


class FakeClusterClient:
    """In-memory stand-in for ClusterClient.

    Records creates and deletes in order. Objects get a status block once
    `statuses` maps their name to one; otherwise get() returns them
    without status. Names in `fail_create` raise ControlPlaneError.
    """

    def __init__(self):
        self.objects: dict[tuple, dict] = {}
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.statuses: dict[str, dict] = {}
        self.fail_create: set[str] = set()
        self.fail_delete: set[str] = set()
        self.pods: list[dict] = []
        self.pod_log = ''
        self.mapper_resets = 0

    @staticmethod
    def _key(gvk, name, namespace):
        return (gvk, name, namespace)

    def reset_mapper(self):
        self.mapper_resets += 1

    def create(self, obj):
        if obj.name in self.fail_create:
            raise ControlPlaneError(f"failed to create {obj.identity()}: Conflict")
        self.objects[self._key(obj.gvk, obj.name, obj.namespace)] = obj.body
        self.created.append(obj.name)
        return obj.body

    def get(self, gvk, name, namespace=''):
        body = self.objects.get(self._key(gvk, name, namespace))
        if body is None:
            return None
        current = dict(body)
        if name in self.statuses:
            current['status'] = self.statuses[name]
        return current

    def delete(self, gvk, name, namespace=''):
        if name in self.fail_delete:
            raise ControlPlaneError(f"failed to delete {gvk.kind} {name}: Forbidden")
        self.deleted.append(name)
        return self.objects.pop(self._key(gvk, name, namespace), None) is not None

    def list_pods(self, namespace, match_labels):
        return [
            p for p in self.pods
            if all((p['metadata'].get('labels') or {}).get(k) == v for k, v in match_labels.items())
        ]

    def read_pod_log(self, name, namespace, container):
        return self.pod_log


class FakeClock:
    """Stand-in for the time module: monotonic() advances only on sleep()."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def write_yaml(path: Path, *docs: dict) -> Path:
    """Write docs as a multi-document YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump_all(docs, default_flow_style=False), encoding='utf-8')
    return path


def widget_cr(name: str, spec: dict | None = None) -> dict:
    return {
        'apiVersion': 'example.com/v1',
        'kind': 'Widget',
        'metadata': {'name': name},
        'spec': {'size': 3} if spec is None else spec,
    }


WIDGET_CRD = {
    'apiVersion': 'apiextensions.k8s.io/v1',
    'kind': 'CustomResourceDefinition',
    'metadata': {'name': 'widgets.example.com'},
    'spec': {
        'group': 'example.com',
        'names': {'kind': 'Widget', 'plural': 'widgets'},
        'scope': 'Namespaced',
        'versions': [{
            'name': 'v1',
            'served': True,
            'storage': True,
            'schema': {'openAPIV3Schema': {
                'type': 'object',
                'properties': {'spec': {'type': 'object', 'properties': {'size': {'type': 'integer'}}}},
            }},
        }],
    },
}

OPERATOR_DEPLOYMENT = {
    'apiVersion': 'apps/v1',
    'kind': 'Deployment',
    'metadata': {'name': 'widget-operator'},
    'spec': {
        'selector': {'matchLabels': {'name': 'widget-operator'}},
        'template': {
            'metadata': {'labels': {'name': 'widget-operator'}},
            'spec': {'containers': [
                {'name': 'operator', 'image': 'example.com/widget-operator:v0.1'},
                {'name': 'scorecard-proxy', 'image': 'placeholder'},
            ]},
        },
    },
}

SERVICE_ACCOUNT = {
    'apiVersion': 'v1',
    'kind': 'ServiceAccount',
    'metadata': {'name': 'widget-operator'},
}

RUNNING_POD = {
    'metadata': {'name': 'widget-operator-abc12', 'namespace': 'test', 'labels': {'name': 'widget-operator'}},
    'status': {'phase': 'Running'},
}


def make_csv(**overrides) -> dict:
    """Complete, valid ClusterServiceVersion for the Widget operator."""
    csv = {
        'apiVersion': 'operators.coreos.com/v1alpha1',
        'kind': 'ClusterServiceVersion',
        'metadata': {
            'name': 'widget-operator.v0.1.0',
            'annotations': {'alm-examples': json.dumps([widget_cr('example-widget')])},
        },
        'spec': {
            'displayName': 'Widget Operator',
            'description': 'Manages widgets',
            'version': '0.1.0',
            'provider': {'name': 'Example'},
            'maintainers': [{'name': 'dev', 'email': 'dev@example.com'}],
            'installModes': [{'type': 'OwnNamespace', 'supported': True}],
            'install': {
                'strategy': 'deployment',
                'spec': {'deployments': [{'name': 'widget-operator', 'spec': copy.deepcopy(OPERATOR_DEPLOYMENT['spec'])}]},
            },
            'customresourcedefinitions': {'owned': [{
                'name': 'widgets.example.com',
                'kind': 'Widget',
                'version': 'v1',
                'resources': [{'kind': 'Deployment', 'version': 'v1'}],
                'specDescriptors': [{'path': 'size'}],
                'statusDescriptors': [{'path': 'nodes'}],
            }]},
        },
    }
    csv.update(overrides)
    return csv


@pytest.fixture
def fake_client():
    """Fresh FakeClusterClient."""
    return FakeClusterClient()


@pytest.fixture
def operator_dir(tmp_path):
    """Create an operator project layout.

    Creates:
    - deploy/service_account.yaml
    - deploy/operator.yaml (Deployment with a scorecard-proxy container)
    - deploy/crds/example_v1_widget_crd.yaml
    - deploy/crds/example_v1_widget_cr.yaml
    """
    deploy = tmp_path / 'deploy'
    write_yaml(deploy / 'service_account.yaml', SERVICE_ACCOUNT)
    write_yaml(deploy / 'operator.yaml', OPERATOR_DEPLOYMENT)
    write_yaml(deploy / 'crds' / 'example_v1_widget_crd.yaml', WIDGET_CRD)
    write_yaml(deploy / 'crds' / 'example_v1_widget_cr.yaml', widget_cr('widget-sample'))
    return tmp_path


@pytest.fixture
def run_context(fake_client):
    """RunContext over a FakeClusterClient in namespace 'test'."""
    return RunContext(
        config=RunConfig(namespace='test', cr_manifests=('cr.yaml',)),
        client=fake_client,
        cleanup=CleanupRegistry(),
    )
