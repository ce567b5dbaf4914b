"""Scorecard report output."""

from reporting.report import ScorecardReport

__all__ = ['ScorecardReport']
