"""Basic operator suite: baseline conduct of the operator toward its CR."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from cluster.objects import PROXY_CONTAINER_NAME, ManagedObject, status_of
from config import PluginType
from suites import SuiteVariant, Test, TestResult, register_suite

logger = logging.getLogger(__name__)

_WRITE_VERBS = ('PUT', 'POST', 'PATCH')
_VERB_RE = re.compile(r'\b(PUT|POST|PATCH)\b')


@dataclass
class BasicTestConfig:
    """Inputs shared by basic tests. All None in list mode."""
    client: Any = None
    cr: Optional[ManagedObject] = None
    proxy_pod: Optional[dict] = None


class BasicTest(Test):
    suite = PluginType.BASIC.value
    config: BasicTestConfig


class CheckSpecTest(BasicTest):
    name = 'checkspectest'
    description = 'Custom Resource has a Spec Block'

    def check(self, result: TestResult) -> None:
        if not self.config.cr.body.get('spec'):
            result.fail(
                f"{self.config.cr.identity()} has no spec block",
                "Add a 'spec' field to your Custom Resource",
            )


class CheckStatusTest(BasicTest):
    name = 'checkstatustest'
    description = 'Custom Resource has a Status Block'

    def check(self, result: TestResult) -> None:
        cr = self.config.cr
        current = self.config.client.get(cr.gvk, cr.name, cr.namespace)
        if current is None:
            result.error(f"{cr.identity()} not found")
            return
        if not status_of(current):
            result.fail(
                f"{cr.identity()} has no status block",
                "Add a 'status' field to your Custom Resource",
            )


def count_write_requests(log: str) -> int:
    """Count API write requests recorded in a proxy log.

    Lines are JSON objects with a 'method' field; plain-text lines are
    scanned for the verb instead.
    """
    count = 0
    for line in log.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            entry = None
        if isinstance(entry, dict):
            if str(entry.get('method', '')).upper() in _WRITE_VERBS:
                count += 1
        elif _VERB_RE.search(line):
            count += 1
    return count


class WritingIntoCRsHasEffectTest(BasicTest):
    name = 'writingintocrshaseffecttest'
    description = 'A CR sends PUT/POST requests to the API server to modify resources in response to spec block changes'

    def check(self, result: TestResult) -> None:
        pod = self.config.proxy_pod
        if not pod:
            result.error(f"no pod with a {PROXY_CONTAINER_NAME} container was found")
            return
        metadata = pod.get('metadata') or {}
        log = self.config.client.read_pod_log(
            metadata.get('name', ''), metadata.get('namespace', ''), PROXY_CONTAINER_NAME,
        )
        writes = count_write_requests(log)
        logger.debug(f"Proxy recorded {writes} write request(s)")
        if writes == 0:
            result.fail(
                "no PUT, POST or PATCH requests from the operator were recorded by the scorecard proxy",
                "The operator should write into objects to update state. "
                "No PUT or POST requests from the operator were recorded by the scorecard.",
            )


@register_suite
class BasicSuite(SuiteVariant):
    plugin_type = PluginType.BASIC
    description = 'Test suite that runs basic, functional operator tests'
    test_classes = (CheckSpecTest, CheckStatusTest, WritingIntoCRsHasEffectTest)

    def build_config(self, ctx, cr) -> BasicTestConfig:
        if ctx is None:
            return BasicTestConfig()
        return BasicTestConfig(client=ctx.client, cr=cr, proxy_pod=ctx.proxy_pod)
