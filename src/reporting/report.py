"""Scorecard reporting.

The aggregated report is the ordered list of suites run across all CR
manifests. It renders as a ScorecardOutput document (JSON) or as text.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from suites import State, TestSuite

OUTPUT_API_VERSION = 'osdk.openshift.io/v1alpha2'
OUTPUT_KIND = 'ScorecardOutput'


@dataclass(frozen=True)
class ScorecardReport:
    """Suites produced by one run, in execution order."""
    suites: tuple[TestSuite, ...] = ()
    log: str = ''
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return all(r.state is State.PASS for s in self.suites for r in s.results)

    def counts(self) -> dict[str, int]:
        totals = {s.value: 0 for s in State}
        for suite in self.suites:
            for result in suite.results:
                totals[result.state.value] += 1
        return totals

    def to_dict(self) -> dict:
        """Render as a ScorecardOutput document with one flat results list."""
        results = []
        for suite in self.suites:
            for result in suite.results:
                test = result.test
                results.append({
                    'name': test.name,
                    'description': test.description,
                    'labels': test.labels,
                    'state': result.state.value,
                    'errors': list(result.errors),
                    'suggestions': list(result.suggestions),
                    'log': suite.log,
                })
        return {
            'kind': OUTPUT_KIND,
            'apiVersion': OUTPUT_API_VERSION,
            'log': self.log,
            'results': results,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def to_text(self) -> str:
        """Human-readable summary grouped by suite."""
        lines = []
        for suite in self.suites:
            lines.append(f"{suite.name}:")
            for result in suite.results:
                lines.append(f"    {result.test.description}: {result.state.value}")
                for error in result.errors:
                    lines.append(f"        error: {error}")
                for suggestion in result.suggestions:
                    lines.append(f"        suggestion: {suggestion}")
            lines.append("")
        counts = self.counts()
        lines.append(
            f"Total: {sum(counts.values())} tests, {counts['pass']} passed, "
            f"{counts['fail']} failed, {counts['error']} errored"
        )
        return '\n'.join(lines)

    def write(self, report_dir: Path) -> Path:
        """Write the JSON document into report_dir.

        The filename carries the start timestamp and overall status.
        """
        report_dir.mkdir(parents=True, exist_ok=True)
        timestamp = (self.started_at or datetime.now()).strftime('%Y%m%d-%H%M%S')
        status = 'passed' if self.success else 'failed'
        path = report_dir / f"{timestamp}.scorecard.{status}.json"
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.to_json())
        return path
