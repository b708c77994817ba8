import io

import pytest
import yaml

from sloth.model import SLO, Rule, SLORules
from sloth.storage import (
    GroupedRulesYAMLRepo,
    NoSLORulesError,
    StorageSLO,
    render_rule_groups,
)

HEADER = """
---
# Code generated by Sloth (dev).
# DO NOT EDIT.

"""


def _store(slos):
    out = io.StringIO()
    GroupedRulesYAMLRepo(out).store_slos(slos)
    return out.getvalue()


def test_zero_slos_fails():
    with pytest.raises(ValueError):
        _store([])


def test_zero_rules_generated_fails():
    out = io.StringIO()
    with pytest.raises(NoSLORulesError):
        GroupedRulesYAMLRepo(out).store_slos([StorageSLO()])
    assert out.getvalue() == ""


def test_single_sli_recording_rule():
    slos = [
        StorageSLO(
            slo=SLO(id="test1"),
            rules=SLORules(
                sli_error_rec_rules=[
                    Rule(record="test:record", expr="test-expr", labels={"test-label": "one"})
                ]
            ),
        )
    ]
    assert _store(slos) == HEADER + (
        "groups:\n"
        "- name: sloth-slo-sli-recordings-test1\n"
        "  rules:\n"
        "  - record: test:record\n"
        "    expr: test-expr\n"
        "    labels:\n"
        "      test-label: one\n"
    )


def test_single_metadata_recording_rule():
    slos = [
        StorageSLO(
            slo=SLO(id="test1"),
            rules=SLORules(
                metadata_rec_rules=[
                    Rule(record="test:record", expr="test-expr", labels={"test-label": "one"})
                ]
            ),
        )
    ]
    assert _store(slos) == HEADER + (
        "groups:\n"
        "- name: sloth-slo-meta-recordings-test1\n"
        "  rules:\n"
        "  - record: test:record\n"
        "    expr: test-expr\n"
        "    labels:\n"
        "      test-label: one\n"
    )


def test_single_alert_rule():
    slos = [
        StorageSLO(
            slo=SLO(id="test1"),
            rules=SLORules(
                alert_rules=[
                    Rule(
                        alert="testAlert",
                        expr="test-expr",
                        labels={"test-label": "one"},
                        annotations={"test-annot": "one"},
                    )
                ]
            ),
        )
    ]
    assert _store(slos) == HEADER + (
        "groups:\n"
        "- name: sloth-slo-alerts-test1\n"
        "  rules:\n"
        "  - alert: testAlert\n"
        "    expr: test-expr\n"
        "    labels:\n"
        "      test-label: one\n"
        "    annotations:\n"
        "      test-annot: one\n"
    )


def test_multiple_slos_and_rules():
    slos = [
        StorageSLO(
            slo=SLO(id="testa"),
            rules=SLORules(
                sli_error_rec_rules=[
                    Rule(record="test:record-a1", expr="test-expr-a1", labels={"test-label": "a-1"}),
                    Rule(record="test:record-a2", expr="test-expr-a2", labels={"test-label": "a-2"}),
                ],
                metadata_rec_rules=[
                    Rule(record="test:record-a3", expr="test-expr-a3", labels={"test-label": "a-3"}),
                    Rule(record="test:record-a4", expr="test-expr-a4", labels={"test-label": "a-4"}),
                ],
                alert_rules=[
                    Rule(
                        alert="testAlertA1",
                        expr="test-expr-a1",
                        labels={"test-label": "a-1"},
                        annotations={"test-annot": "a-1"},
                    ),
                    Rule(
                        alert="testAlertA2",
                        expr="test-expr-a2",
                        labels={"test-label": "a-2"},
                        annotations={"test-annot": "a-2"},
                    ),
                ],
            ),
        ),
        StorageSLO(
            slo=SLO(id="testb"),
            rules=SLORules(
                sli_error_rec_rules=[
                    Rule(record="test:record-b1", expr="test-expr-b1", labels={"test-label": "b-1"}),
                ],
                metadata_rec_rules=[
                    Rule(record="test:record-b2", expr="test-expr-b2", labels={"test-label": "b-2"}),
                ],
                alert_rules=[
                    Rule(
                        alert="testAlertB1",
                        expr="test-expr-b1",
                        labels={"test-label": "b-1"},
                        annotations={"test-annot": "b-1"},
                    ),
                ],
            ),
        ),
    ]
    assert _store(slos) == HEADER + (
        "groups:\n"
        "- name: sloth-slo-sli-recordings-testa\n"
        "  rules:\n"
        "  - record: test:record-a1\n"
        "    expr: test-expr-a1\n"
        "    labels:\n"
        "      test-label: a-1\n"
        "  - record: test:record-a2\n"
        "    expr: test-expr-a2\n"
        "    labels:\n"
        "      test-label: a-2\n"
        "- name: sloth-slo-meta-recordings-testa\n"
        "  rules:\n"
        "  - record: test:record-a3\n"
        "    expr: test-expr-a3\n"
        "    labels:\n"
        "      test-label: a-3\n"
        "  - record: test:record-a4\n"
        "    expr: test-expr-a4\n"
        "    labels:\n"
        "      test-label: a-4\n"
        "- name: sloth-slo-alerts-testa\n"
        "  rules:\n"
        "  - alert: testAlertA1\n"
        "    expr: test-expr-a1\n"
        "    labels:\n"
        "      test-label: a-1\n"
        "    annotations:\n"
        "      test-annot: a-1\n"
        "  - alert: testAlertA2\n"
        "    expr: test-expr-a2\n"
        "    labels:\n"
        "      test-label: a-2\n"
        "    annotations:\n"
        "      test-annot: a-2\n"
        "- name: sloth-slo-sli-recordings-testb\n"
        "  rules:\n"
        "  - record: test:record-b1\n"
        "    expr: test-expr-b1\n"
        "    labels:\n"
        "      test-label: b-1\n"
        "- name: sloth-slo-meta-recordings-testb\n"
        "  rules:\n"
        "  - record: test:record-b2\n"
        "    expr: test-expr-b2\n"
        "    labels:\n"
        "      test-label: b-2\n"
        "- name: sloth-slo-alerts-testb\n"
        "  rules:\n"
        "  - alert: testAlertB1\n"
        "    expr: test-expr-b1\n"
        "    labels:\n"
        "      test-label: b-1\n"
        "    annotations:\n"
        "      test-annot: b-1\n"
    )


def test_render_round_trips_multiline_expressions():
    expr = "(rate(my_metric[5m]))\n/\n(rate(total[5m]))\n"
    slos = [
        StorageSLO(
            slo=SLO(id="x"),
            rules=SLORules(
                sli_error_rec_rules=[
                    Rule(record="slo:sli_error:ratio_rate5m", expr=expr, labels={"b": "2", "a": "1"})
                ]
            ),
        )
    ]
    text = render_rule_groups(slos)
    assert "expr: |" in text
    doc = yaml.safe_load(text.split("---", 1)[1])
    rule = doc["groups"][0]["rules"][0]
    assert rule["expr"] == expr
    assert list(rule["labels"]) == ["a", "b"]


def test_render_without_groups_raises_no_rules():
    with pytest.raises(NoSLORulesError, match="0 SLO Prometheus rules generated"):
        render_rule_groups([StorageSLO(slo=SLO(id="a")), StorageSLO(slo=SLO(id="b"))])