"""Test suite definitions and dispatch.

A suite variant (basic, olm) is registered per PluginType. The dispatcher
builds the variant's configuration from the run context, filters the
suite's tests with the selector, runs the remaining tests in declaration
order and attaches the captured log.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Optional

from config import PluginType
from suites.selector import parse_selector

if TYPE_CHECKING:
    from cluster.objects import ManagedObject
    from common import LogCapture
    from runner import RunContext

logger = logging.getLogger(__name__)


class State(Enum):
    """Outcome of a single test."""
    PASS = 'pass'
    FAIL = 'fail'
    ERROR = 'error'


@dataclass
class TestResult:
    """Result of one executed test. Starts as PASS."""
    __test__ = False
    test: 'Test'
    state: State = State.PASS
    suggestions: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def fail(self, error: str, suggestion: Optional[str] = None) -> None:
        """Record a failed assertion."""
        self.state = State.FAIL
        self.errors.append(error)
        if suggestion:
            self.suggestions.append(suggestion)

    def error(self, error: str) -> None:
        """Record that the test could not run to completion."""
        self.state = State.ERROR
        self.errors.append(error)


class Test:
    """Base class for checks.

    Subclasses set the class attributes and implement check(), which
    mutates the result only when the check does not pass.
    """
    name: ClassVar[str]
    description: ClassVar[str]
    suite: ClassVar[str]
    necessity: ClassVar[str] = 'required'
    __test__ = False

    def __init__(self, config: Any):
        self.config = config

    @property
    def labels(self) -> dict[str, str]:
        return {'necessity': self.necessity, 'suite': self.suite, 'test': self.name}

    def run(self) -> TestResult:
        result = TestResult(test=self)
        self.check(result)
        return result

    def check(self, result: TestResult) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f'<{type(self).__name__} {self.name}>'


@dataclass
class TestSuite:
    """Named collection of tests and, once run, their results."""
    __test__ = False
    name: str
    description: str
    tests: list[Test] = field(default_factory=list)
    results: list[TestResult] = field(default_factory=list)
    log: str = ''

    def apply_selector(self, expr: str) -> None:
        """Keep only tests whose labels match expr. Empty keeps all."""
        selector = parse_selector(expr)
        if selector.empty():
            return
        kept = [t for t in self.tests if selector.matches(t.labels)]
        logger.debug(f"Selector '{expr}' kept {len(kept)}/{len(self.tests)} tests in suite {self.name}")
        self.tests = kept

    def run(self) -> list[TestResult]:
        """Run tests sequentially, one result per test."""
        self.results = []
        for test in self.tests:
            logger.info(f"Running test: {test.name} - {test.description}")
            try:
                result = test.run()
            except Exception as e:
                logger.exception(f"Test {test.name} raised exception")
                result = TestResult(test=test)
                result.error(str(e))
            logger.info(f"Test {test.name}: {result.state.value}")
            self.results.append(result)
        return self.results

    def mark_listed(self) -> None:
        """Record every remaining test as passing without running it."""
        self.results = [TestResult(test=t) for t in self.tests]


class SuiteVariant:
    """Per-plugin suite factory.

    Class attributes:
        plugin_type: PluginType this variant serves
        description: Human-readable suite description
        test_classes: Test classes in declaration order
    """
    plugin_type: ClassVar[PluginType]
    description: ClassVar[str]
    test_classes: ClassVar[tuple[type[Test], ...]] = ()

    @property
    def name(self) -> str:
        return self.plugin_type.value

    def build_config(self, ctx: Optional['RunContext'], cr: Optional['ManagedObject']) -> Any:
        """Build the variant's test config; ctx and cr are None in list mode."""
        raise NotImplementedError

    def new_suite(self, config: Any) -> TestSuite:
        return TestSuite(
            name=self.name,
            description=self.description,
            tests=[cls(config) for cls in self.test_classes],
        )


# Registry of suite variants
_variants: dict[PluginType, type[SuiteVariant]] = {}


def register_suite(cls: type[SuiteVariant]) -> type[SuiteVariant]:
    """Decorator to register a suite variant class."""
    _variants[cls.plugin_type] = cls
    return cls


def get_variant(plugin_type: PluginType) -> SuiteVariant:
    if plugin_type not in _variants:
        raise ValueError(f"No suite registered for plugin type {plugin_type}")
    return _variants[plugin_type]()


def build_and_run(
    plugin_type: PluginType,
    ctx: 'RunContext',
    cr: 'ManagedObject',
    capture: Optional['LogCapture'] = None,
) -> TestSuite:
    """Build the suite for plugin_type, apply the selector, run it.

    The suite's log is read from capture (if given) after the run.
    """
    variant = get_variant(plugin_type)
    suite = variant.new_suite(variant.build_config(ctx, cr))
    suite.apply_selector(ctx.config.selector)
    logger.info(f"Running suite {suite.name} ({len(suite.tests)} tests) for {cr.identity()}")
    suite.run()
    if capture is not None:
        suite.log = capture.read()
    return suite


def list_suite(plugin_type: PluginType, selector: str) -> TestSuite:
    """Build the suite with an empty config and list its selected tests."""
    variant = get_variant(plugin_type)
    suite = variant.new_suite(variant.build_config(None, None))
    suite.apply_selector(selector)
    suite.mark_listed()
    return suite


# Import variants to trigger registration
from suites import basic  # noqa: E402, F401
from suites import olm  # noqa: E402, F401
