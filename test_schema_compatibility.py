#!/usr/bin/env python3
"""
Schema tests for the exported JSON report. Downstream dashboards read this
file, so its shape must stay stable across releases.
"""

import json

import jsonschema
import pytest

from gitpulse import (
    SCHEMA_VERSION,
    RepositoryStatsAnalyzer,
    export_report,
)

DAY = {
    "type": "object",
    "required": ["date", "count", "lines_added", "lines_removed"],
    "additionalProperties": False,
    "properties": {
        "date": {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}$"},
        "count": {"type": "integer", "minimum": 0},
        "lines_added": {"type": "integer", "minimum": 0},
        "lines_removed": {"type": "integer", "minimum": 0},
    },
}

REPORT_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": [
        "schema_version",
        "generated_at",
        "generator",
        "repository",
        "commits",
        "contributors",
        "failures",
    ],
    "properties": {
        "schema_version": {"type": "string"},
        "generated_at": {"type": "string"},
        "generator": {"type": "string"},
        "repository": {"type": ["string", "null"]},
        "commits": {
            "type": "object",
            "required": ["commits_per_day", "total"],
            "properties": {
                "total": {"type": "integer", "minimum": 0},
                "commits_per_day": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["date", "count"],
                        "additionalProperties": False,
                        "properties": {
                            "date": DAY["properties"]["date"],
                            "count": DAY["properties"]["count"],
                        },
                    },
                },
            },
        },
        "contributors": {
            "type": "array",
            "items": {
                "type": "object",
                "required": [
                    "name",
                    "commit_count",
                    "lines_added",
                    "lines_removed",
                    "commits_per_day",
                ],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "commit_count": {"type": "integer", "minimum": 0},
                    "lines_added": {"type": "integer", "minimum": 0},
                    "lines_removed": {"type": "integer", "minimum": 0},
                    "commits_per_day": {"type": "array", "items": DAY},
                },
            },
        },
        "failures": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "reason"],
                "properties": {
                    "name": {"type": "string"},
                    "reason": {"type": "string"},
                },
            },
        },
        "metrics": {
            "type": "object",
            "required": [
                "contributors_discovered",
                "contributors_succeeded",
                "contributors_failed",
                "max_workers",
                "stage_times",
                "total_time_seconds",
            ],
        },
    },
}


@pytest.fixture
def exported(scripted_runner, repo_dir, tmp_path):
    def export(**runner_overrides):
        analyzer = RepositoryStatsAnalyzer(
            str(repo_dir), runner=scripted_runner(**runner_overrides)
        )
        report = analyzer.run()
        path = tmp_path / "reports" / "report.json"
        written = export_report(
            report, str(path), metrics=analyzer.metrics, repo_path=str(repo_dir)
        )
        assert written == len(path.read_bytes())
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    return export


class TestReportSchema:
    def test_report_matches_schema(self, exported):
        data = exported()
        jsonschema.validate(instance=data, schema=REPORT_SCHEMA)
        assert data["schema_version"] == SCHEMA_VERSION

    def test_report_with_failures_matches_schema(self, exported):
        data = exported(numstats={"Alice": b"", "Bob": b"2024-01-02\n5\t0\tb.txt"})
        jsonschema.validate(instance=data, schema=REPORT_SCHEMA)
        assert [f["name"] for f in data["failures"]] == ["Alice"]
        assert [c["name"] for c in data["contributors"]] == ["Bob"]

    def test_contributor_totals_match_series(self, exported):
        data = exported()
        for contributor in data["contributors"]:
            days = contributor["commits_per_day"]
            assert contributor["commit_count"] == sum(d["count"] for d in days)
            assert contributor["lines_added"] == sum(d["lines_added"] for d in days)
            assert contributor["lines_removed"] == sum(d["lines_removed"] for d in days)
            assert [d["date"] for d in days] == sorted(d["date"] for d in days)

    def test_non_ascii_names_round_trip(self, exported):
        data = exported(
            shortlog="     1\tJosé Núñez\n".encode("utf-8"),
            commit_logs={"José Núñez": b"abc 2024-01-01"},
            numstats={"José Núñez": b"2024-01-01\n1\t0\tf.txt"},
        )
        jsonschema.validate(instance=data, schema=REPORT_SCHEMA)
        assert data["contributors"][0]["name"] == "José Núñez"

    def test_invalid_report_is_rejected(self, exported):
        data = exported()
        data["contributors"][0]["commits_per_day"][0]["date"] = "Jan 1"
        with pytest.raises(jsonschema.ValidationError):
            jsonschema.validate(instance=data, schema=REPORT_SCHEMA)
