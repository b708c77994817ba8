"""Storage of generated SLO rules as grouped Prometheus rule YAML."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, TextIO

import yaml

from sloth.model import SLO, Rule, SLORules
from sloth.recording_rules import Info

_log = logging.getLogger(__name__)

_DISCLAIMER = f"""
---
# Code generated by Sloth ({Info().version}).
# DO NOT EDIT.

"""


class NoSLORulesError(ValueError):
    """Raised when there are no rules at all to store."""

    def __init__(self) -> None:
        super().__init__("0 SLO Prometheus rules generated")


@dataclass
class StorageSLO:
    """An SLO together with the rules generated for it."""

    slo: SLO = field(default_factory=SLO)
    rules: SLORules = field(default_factory=SLORules)


class _RulesDumper(yaml.SafeDumper):
    """YAML dumper that writes multi-line strings as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    style = "|" if "\n" in value else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", value, style=style)


_RulesDumper.add_representer(str, _represent_str)


def _rule_doc(rule: Rule) -> dict[str, Any]:
    doc: dict[str, Any] = {}
    if rule.record:
        doc["record"] = rule.record
    if rule.alert:
        doc["alert"] = rule.alert
    doc["expr"] = rule.expr
    if rule.labels:
        doc["labels"] = {key: rule.labels[key] for key in sorted(rule.labels)}
    if rule.annotations:
        doc["annotations"] = {key: rule.annotations[key] for key in sorted(rule.annotations)}
    return doc


def _groups(slos: Iterable[StorageSLO]) -> list[dict[str, Any]]:
    groups = []
    for item in slos:
        kinds = (
            ("sloth-slo-sli-recordings", item.rules.sli_error_rec_rules),
            ("sloth-slo-meta-recordings", item.rules.metadata_rec_rules),
            ("sloth-slo-alerts", item.rules.alert_rules),
        )
        for prefix, rules in kinds:
            if rules:
                groups.append(
                    {
                        "name": f"{prefix}-{item.slo.id}",
                        "rules": [_rule_doc(rule) for rule in rules],
                    }
                )
    return groups


def render_rule_groups(slos: Sequence[StorageSLO]) -> str:
    """Render the rules of ``slos`` as a Prometheus rules YAML document.

    Every SLO gets up to three groups: SLI recordings, metadata recordings and
    alerts; empty groups are left out.
    """
    if not slos:
        raise ValueError("slo rules required")
    groups = _groups(slos)
    # Having nothing to store is most likely a mistake (typos, too much disabled...).
    if not groups:
        raise NoSLORulesError()
    body = yaml.dump(
        {"groups": groups},
        Dumper=_RulesDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=2**31,
    )
    return _DISCLAIMER + body


class GroupedRulesYAMLRepo:
    """Writes all the SLO rules, grouped, as Prometheus compatible YAML."""

    def __init__(self, writer: TextIO) -> None:
        self.writer = writer

    def store_slos(self, slos: Sequence[StorageSLO]) -> None:
        """Render ``slos`` and write the document to the writer."""
        text = render_rule_groups(slos)
        self.writer.write(text)
        _log.info("Prometheus rules written (groups: %d)", text.count("\n- name: "))