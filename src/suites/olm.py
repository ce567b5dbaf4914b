"""OLM integration suite: packaging and metadata conformance."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from bundle import owned_crd
from cluster.objects import CRD_KIND, CSV_KIND, ManagedObject, iter_documents, read_manifest, status_of
from common import DecodeError
from config import PluginType
from suites import SuiteVariant, Test, TestResult, register_suite

logger = logging.getLogger(__name__)

BUNDLE_ANNOTATIONS_FILE = Path('metadata') / 'annotations.yaml'
BUNDLE_PACKAGE_ANNOTATION = 'operators.operatorframework.io.bundle.package.v1'


@dataclass
class OLMTestConfig:
    """Inputs shared by OLM tests. All None/empty in list mode."""
    client: Any = None
    cr: Optional[ManagedObject] = None
    csv: Optional[dict] = None
    crds_dir: str = ''
    proxy_pod: Optional[dict] = None
    bundle: str = ''


class OLMTest(Test):
    suite = PluginType.OLM.value
    config: OLMTestConfig

    def _owned(self) -> Optional[dict]:
        cr = self.config.cr
        return owned_crd(self.config.csv, cr.kind, cr.gvk.api_version)


def load_bundle_documents(bundle_dir: Path) -> list[dict]:
    """Decode every YAML document under the bundle's manifests directory."""
    docs = []
    for path in sorted((bundle_dir / 'manifests').glob('*.y*ml')):
        docs.extend(iter_documents(read_manifest(str(path)), source=str(path)))
    return docs


class BundleValidationTest(OLMTest):
    name = 'bundlevalidationtest'
    description = 'Validates bundle contents'

    def check(self, result: TestResult) -> None:
        bundle_dir = Path(self.config.bundle)
        if not bundle_dir.is_dir():
            result.error(f"bundle directory not found: {bundle_dir}")
            return

        try:
            docs = load_bundle_documents(bundle_dir)
        except DecodeError as e:
            result.fail(str(e))
            return
        if not any(d.get('kind') == CSV_KIND for d in docs):
            result.fail("bundle manifests contain no ClusterServiceVersion")
        if not any(d.get('kind') == CRD_KIND for d in docs):
            result.fail(
                "bundle manifests contain no CustomResourceDefinition",
                "Include the CRDs your operator owns in the bundle's manifests directory",
            )

        annotations_file = bundle_dir / BUNDLE_ANNOTATIONS_FILE
        if not annotations_file.is_file():
            result.fail(f"bundle is missing {BUNDLE_ANNOTATIONS_FILE}")
            return
        try:
            metadata = next(iter_documents(read_manifest(str(annotations_file)), str(annotations_file)), {})
        except DecodeError as e:
            result.fail(str(e))
            return
        if not (metadata.get('annotations') or {}).get(BUNDLE_PACKAGE_ANNOTATION):
            result.fail(f"{BUNDLE_ANNOTATIONS_FILE} does not set {BUNDLE_PACKAGE_ANNOTATION}")


def find_crd(crds_dir: str, group: str, kind: str) -> Optional[dict]:
    """Find the CRD manifest in crds_dir defining group/kind."""
    for path in sorted(Path(crds_dir).glob('*.y*ml')):
        for doc in iter_documents(read_manifest(str(path)), source=str(path)):
            if doc.get('kind') != CRD_KIND:
                continue
            spec = doc.get('spec') or {}
            if spec.get('group') == group and (spec.get('names') or {}).get('kind') == kind:
                return doc
    return None


def crd_schemas(crd: dict) -> list[dict]:
    """Collect openAPIV3Schema blocks from both CRD layouts."""
    spec = crd.get('spec') or {}
    schemas = []
    if schema := (spec.get('validation') or {}).get('openAPIV3Schema'):
        schemas.append(schema)
    for version in spec.get('versions') or []:
        if schema := (version.get('schema') or {}).get('openAPIV3Schema'):
            schemas.append(schema)
    return schemas


class CRDsHaveValidationTest(OLMTest):
    name = 'crdshavevalidationtest'
    description = 'All CRDs have an OpenAPI validation subsection'

    def check(self, result: TestResult) -> None:
        cr = self.config.cr
        crd = find_crd(self.config.crds_dir, cr.gvk.group, cr.kind)
        if crd is None:
            result.error(f"no CRD for {cr.gvk} found in {self.config.crds_dir}")
            return
        schemas = crd_schemas(crd)
        if not schemas:
            result.fail(
                f"CRD {crd['metadata']['name']} has no OpenAPI validation",
                f"Add CRD validation for {cr.kind}",
            )
            return
        properties: dict = {}
        for schema in schemas:
            spec_schema = (schema.get('properties') or {}).get('spec') or {}
            properties.update(spec_schema.get('properties') or {})
        for key in (cr.body.get('spec') or {}):
            if key not in properties:
                result.fail(
                    f"spec.{key} of {cr.kind} is not covered by the CRD validation",
                    f"Add CRD validation for spec field `{key}` in {cr.kind}",
                )


class CRDsHaveResourcesTest(OLMTest):
    name = 'crdshaveresourcestest'
    description = 'All Owned CRDs contain a resources subsection'

    def check(self, result: TestResult) -> None:
        owned = self._owned()
        if owned is None:
            result.fail(
                f"{self.config.cr.kind} is not listed in spec.customresourcedefinitions.owned",
                f"Add {self.config.cr.kind} to the CSV's owned CRDs",
            )
            return
        if not owned.get('resources'):
            result.fail(
                f"owned CRD {owned.get('name', owned.get('kind'))} has no resources subsection",
                "If it would be helpful to an end-user to understand or troubleshoot your CR, "
                f"consider adding resources to the resources section for owned CRD {owned.get('kind')}",
            )


def _descriptor_paths(owned: Optional[dict], section: str) -> set[str]:
    return {d.get('path', '') for d in (owned or {}).get(section) or []}


class SpecDescriptorsTest(OLMTest):
    name = 'specdescriptorstest'
    description = 'All spec fields have matching descriptors in the CSV'

    def check(self, result: TestResult) -> None:
        paths = _descriptor_paths(self._owned(), 'specDescriptors')
        for key in (self.config.cr.body.get('spec') or {}):
            if key not in paths:
                result.fail(
                    f"spec.{key} has no spec descriptor",
                    f"Add a spec descriptor for {key}",
                )


class StatusDescriptorsTest(OLMTest):
    name = 'statusdescriptorstest'
    description = 'All status fields have matching descriptors in the CSV'

    def check(self, result: TestResult) -> None:
        cr = self.config.cr
        current = self.config.client.get(cr.gvk, cr.name, cr.namespace)
        status = status_of(current)
        if not status:
            result.fail(f"{cr.identity()} has no status block")
            return
        paths = _descriptor_paths(self._owned(), 'statusDescriptors')
        for key in status:
            if key not in paths:
                result.fail(
                    f"status.{key} has no status descriptor",
                    f"Add a status descriptor for {key}",
                )


@register_suite
class OLMSuite(SuiteVariant):
    plugin_type = PluginType.OLM
    description = 'Test suite checks if an operator uses the Operator Lifecycle Manager correctly'
    test_classes = (
        BundleValidationTest,
        CRDsHaveValidationTest,
        CRDsHaveResourcesTest,
        SpecDescriptorsTest,
        StatusDescriptorsTest,
    )

    def build_config(self, ctx, cr) -> OLMTestConfig:
        if ctx is None:
            return OLMTestConfig()
        return OLMTestConfig(
            client=ctx.client,
            cr=cr,
            csv=ctx.csv,
            crds_dir=ctx.config.crds_dir,
            proxy_pod=ctx.proxy_pod,
            bundle=ctx.config.bundle,
        )
