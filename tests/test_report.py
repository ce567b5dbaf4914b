"""Tests for reporting/report.py - ScorecardOutput rendering."""

import json
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from reporting import ScorecardReport
from reporting.report import OUTPUT_API_VERSION
from suites import TestResult, TestSuite
from suites.basic import BasicTestConfig, CheckSpecTest, CheckStatusTest


def make_report():
    config = BasicTestConfig()
    spec_test, status_test = CheckSpecTest(config), CheckStatusTest(config)
    passed = TestResult(test=spec_test)
    failed = TestResult(test=status_test)
    failed.fail('Widget test/w1 has no status block', "Add a 'status' field to your Custom Resource")
    suite = TestSuite(
        name='basic',
        description='Basic',
        tests=[spec_test, status_test],
        results=[passed, failed],
        log='Running for cr: cr.yaml\n',
    )
    return ScorecardReport(suites=(suite,), started_at=datetime(2024, 5, 1, 12, 30, 0))


class TestScorecardReport:
    """Test report aggregation and rendering."""

    def test_counts_and_success(self):
        report = make_report()
        assert report.counts() == {'pass': 1, 'fail': 1, 'error': 0}
        assert not report.success

    def test_empty_report_succeeds(self):
        assert ScorecardReport().success

    def test_to_dict(self):
        data = make_report().to_dict()
        assert data['kind'] == 'ScorecardOutput'
        assert data['apiVersion'] == OUTPUT_API_VERSION
        assert [r['name'] for r in data['results']] == ['checkspectest', 'checkstatustest']
        failed = data['results'][1]
        assert failed['state'] == 'fail'
        assert failed['labels'] == {'necessity': 'required', 'suite': 'basic', 'test': 'checkstatustest'}
        assert failed['suggestions'] == ["Add a 'status' field to your Custom Resource"]
        assert failed['log'] == 'Running for cr: cr.yaml\n'

    def test_to_json_round_trips(self):
        assert json.loads(make_report().to_json())['results'][0]['state'] == 'pass'

    def test_to_text(self):
        text = make_report().to_text()
        assert 'basic:' in text
        assert 'Custom Resource has a Status Block: fail' in text
        assert 'error: Widget test/w1 has no status block' in text
        assert text.endswith('Total: 2 tests, 1 passed, 1 failed, 0 errored')

    def test_write(self, tmp_path):
        path = make_report().write(tmp_path / 'reports')
        assert path.name == '20240501-123000.scorecard.failed.json'
        assert json.loads(path.read_text())['kind'] == 'ScorecardOutput'
