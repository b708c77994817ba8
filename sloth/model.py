"""The SLO model used to generate Prometheus rules, with its validation."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, NamedTuple

from sloth.gotemplate import TemplateError, render_template
from sloth.helpers import (
    SLI_ERROR_METRIC_FMT,
    SLO_ID_LABEL,
    SLO_NAME_LABEL,
    SLO_SERVICE_LABEL,
    duration_to_prom_str,
)
from sloth.promql import is_valid_expr

_NAME_RE = re.compile(r"[A-Za-z0-9][-A-Za-z0-9_.]*[A-Za-z0-9]")
_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_WINDOW_VAR_RE = re.compile(r"\{\{ *\.window *\}\}")
_METRIC_NAME_LABEL = "__name__"
_EXPR_FAKE_DATA = {"window": "1m"}


class _FieldError(NamedTuple):
    namespace: str
    field: str
    tag: str

    def __str__(self) -> str:
        return (
            f"Key: '{self.namespace}' Error:Field validation for "
            f"'{self.field}' failed on the '{self.tag}' tag"
        )


class ValidationError(ValueError):
    """Raised when an SLO group is not valid; holds every failed check."""

    def __init__(self, errors: Iterable[_FieldError]) -> None:
        self.errors = tuple(errors)
        super().__init__("\n".join(str(error) for error in self.errors))


@dataclass
class SLIRaw:
    """An SLI given as a single error ratio query."""

    error_ratio_query: str = ""


@dataclass
class SLIEvents:
    """An SLI given as error and total event queries."""

    error_query: str = ""
    total_query: str = ""


@dataclass
class SLI:
    """The SLI of an SLO; exactly one kind must be set."""

    raw: SLIRaw | None = None
    events: SLIEvents | None = None


@dataclass
class AlertMeta:
    """Settings of one SLO alert."""

    disable: bool = False
    name: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class SLO:
    """A service level objective."""

    id: str = ""
    name: str = ""
    description: str = ""
    service: str = ""
    sli: SLI = field(default_factory=SLI)
    time_window: timedelta = timedelta(0)
    objective: float = 0.0
    labels: dict[str, str] = field(default_factory=dict)
    page_alert_meta: AlertMeta = field(default_factory=AlertMeta)
    ticket_alert_meta: AlertMeta = field(default_factory=AlertMeta)

    def sli_error_metric(self, window: timedelta) -> str:
        """Name of the SLI error recording for ``window``."""
        return SLI_ERROR_METRIC_FMT.format(duration_to_prom_str(window))

    def id_prom_labels(self) -> dict[str, str]:
        """Labels that identify this SLO's metrics and alerts."""
        return {
            SLO_ID_LABEL: self.id,
            SLO_NAME_LABEL: self.name,
            SLO_SERVICE_LABEL: self.service,
        }


@dataclass
class SLOGroup:
    """A set of SLOs handled together."""

    slos: list[SLO] = field(default_factory=list)

    def validate(self) -> None:
        """Check the group, raising ValidationError with every problem found."""
        checker = _Checker()
        checker.group(self)
        if checker.errors:
            raise ValidationError(checker.errors)


@dataclass
class Rule:
    """A Prometheus recording or alerting rule."""

    record: str = ""
    alert: str = ""
    expr: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class SLORules:
    """The Prometheus rules generated for one SLO."""

    sli_error_rec_rules: list[Rule] = field(default_factory=list)
    metadata_rec_rules: list[Rule] = field(default_factory=list)
    alert_rules: list[Rule] = field(default_factory=list)


def _is_prom_expr(expr: str) -> bool:
    try:
        rendered = render_template(expr, _EXPR_FAKE_DATA)
    except TemplateError:
        return False
    return is_valid_expr(rendered)


def _has_template_vars(expr: str) -> bool:
    return _WINDOW_VAR_RE.search(expr) is not None


def _is_name(value: str) -> bool:
    return _NAME_RE.fullmatch(value) is not None


def _is_annotation_key(key: str) -> bool:
    return _LABEL_NAME_RE.fullmatch(key) is not None


def _is_label_key(key: str) -> bool:
    return _is_annotation_key(key) and key != _METRIC_NAME_LABEL


def _is_label_value(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


_Checks = tuple[tuple[str, Callable[[Any], bool]], ...]

_QUERY_CHECKS: _Checks = (
    ("required", bool),
    ("prom_expr", _is_prom_expr),
    ("template_vars", _has_template_vars),
)
_NAME_CHECKS: _Checks = (("required", bool), ("name", _is_name))
_OBJECTIVE_CHECKS: _Checks = (("gt", lambda v: v > 0), ("lte", lambda v: v <= 100))
_LABEL_VALUE_CHECKS: _Checks = (("required", bool), ("prom_label_value", _is_label_value))
_ANNOTATION_VALUE_CHECKS: _Checks = (("required", bool),)


class _Checker:
    def __init__(self) -> None:
        self.errors: list[_FieldError] = []

    def report(self, namespace: str, field_name: str, tag: str) -> None:
        self.errors.append(_FieldError(namespace, field_name, tag))

    def field(self, value: Any, namespace: str, field_name: str, checks: _Checks) -> None:
        for tag, check in checks:
            if not check(value):
                self.report(f"{namespace}.{field_name}", field_name, tag)
                return

    def mapping(
        self,
        values: Mapping[str, str] | None,
        namespace: str,
        field_name: str,
        key_tag: str,
        key_check: Callable[[str], bool],
        value_checks: _Checks,
    ) -> None:
        for key, value in (values or {}).items():
            item = f"{field_name}[{key}]"
            if not key_check(key):
                self.report(f"{namespace}.{item}", item, key_tag)
            self.field(value, namespace, item, value_checks)

    def group(self, group: SLOGroup) -> None:
        ns = "SLOGroup"
        if group.slos is None:
            self.report(f"{ns}.SLOs", "SLOs", "required")
        slos = group.slos or []
        for index, slo in enumerate(slos):
            self.slo(slo, f"{ns}.SLOs[{index}]")

        if not slos:
            self.report(f"{ns}.", "", "slos_required")
        seen: set[str] = set()
        for slo in slos:
            if slo.id in seen:
                self.report(f"{ns}.{slo.id}", slo.id, "slo_repeated")
            seen.add(slo.id)

    def slo(self, slo: SLO, ns: str) -> None:
        self.field(slo.id, ns, "ID", _NAME_CHECKS)
        self.field(slo.name, ns, "Name", _NAME_CHECKS)
        self.field(slo.service, ns, "Service", _NAME_CHECKS)
        self.sli(slo.sli, f"{ns}.SLI")
        self.field(slo.time_window, ns, "TimeWindow", (("required", bool),))
        self.field(slo.objective, ns, "Objective", _OBJECTIVE_CHECKS)
        self.mapping(
            slo.labels, ns, "Labels", "prom_label_key", _is_label_key, _LABEL_VALUE_CHECKS
        )
        self.alert_meta(slo.page_alert_meta, f"{ns}.PageAlertMeta")
        self.alert_meta(slo.ticket_alert_meta, f"{ns}.TicketAlertMeta")

    def sli(self, sli: SLI, ns: str) -> None:
        if sli.raw is not None:
            self.field(sli.raw.error_ratio_query, f"{ns}.Raw", "ErrorRatioQuery", _QUERY_CHECKS)
        if sli.events is not None:
            events_ns = f"{ns}.Events"
            self.field(sli.events.error_query, events_ns, "ErrorQuery", _QUERY_CHECKS)
            self.field(sli.events.total_query, events_ns, "TotalQuery", _QUERY_CHECKS)
            error, total = sli.events.error_query, sli.events.total_query
            if error and total and error == total:
                self.report(f"{events_ns}.", "", "sli_events_queries_different")

        set_kinds = sum(kind is not None for kind in (sli.raw, sli.events))
        for _ in range(set_kinds - 1):
            self.report(f"{ns}.", "", "one_sli_type")
        if set_kinds == 0:
            self.report(f"{ns}.", "", "sli_type_required")

    def alert_meta(self, meta: AlertMeta, ns: str) -> None:
        if not meta.disable and not meta.name:
            self.report(f"{ns}.Name", "Name", "required_if_enabled")
        self.mapping(
            meta.labels, ns, "Labels", "prom_label_key", _is_label_key, _LABEL_VALUE_CHECKS
        )
        self.mapping(
            meta.annotations,
            ns,
            "Annotations",
            "prom_annot_key",
            _is_annotation_key,
            _ANNOTATION_VALUE_CHECKS,
        )