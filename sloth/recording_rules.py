"""Generation of the SLI and metadata Prometheus recording rules of an SLO."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from sloth.alerts import MWMBAlertGroup
from sloth.gotemplate import Template, TemplateError, render_template
from sloth.helpers import (
    SLO_ID_LABEL,
    SLO_MODE_LABEL,
    SLO_NAME_LABEL,
    SLO_OBJECTIVE_LABEL,
    SLO_SERVICE_LABEL,
    SLO_SPEC_LABEL,
    SLO_VERSION_LABEL,
    SLO_WINDOW_LABEL,
    duration_to_prom_str,
    format_go_float,
    labels_to_prom_filter,
    merge_labels,
)
from sloth.model import SLO, Rule

TPL_KEY_WINDOW = "window"

METRIC_SLO_OBJECTIVE_RATIO = "slo:objective:ratio"
METRIC_SLO_ERROR_BUDGET_RATIO = "slo:error_budget:ratio"
METRIC_SLO_TIME_PERIOD_DAYS = "slo:time_period:days"
METRIC_SLO_CURRENT_BURN_RATE_RATIO = "slo:current_burn_rate:ratio"
METRIC_SLO_PERIOD_BURN_RATE_RATIO = "slo:period_burn_rate:ratio"
METRIC_SLO_PERIOD_ERROR_BUDGET_REMAINING_RATIO = "slo:period_error_budget_remaining:ratio"
METRIC_SLO_INFO = "sloth_slo_info"

# Averaging ratios is statistically wrong, so all the short window ratios on the
# period are summed and divided by their count (each full ratio being 1).
_OPTIMIZED_SLI_EXPR_TPL = Template(
    """sum_over_time({{.metric}}{{.filter}}[{{.window}}])
/ ignoring ({{.windowKey}})
count_over_time({{.metric}}{{.filter}}[{{.window}}])
""",
    strict=True,
)

_BURN_RATE_EXPR_TPL = Template(
    """{{ .SLIErrorMetric }}{{ .MetricFilter }}
/ on({{ .SLOIDName }}, {{ .SLOLabelName }}, {{ .SLOServiceName }}) group_left
{{ .ErrorBudgetRatioMetric }}{{ .MetricFilter }}
""",
    strict=True,
)


class RuleGenerationError(ValueError):
    """Raised when a recording rule can't be generated."""


@dataclass(frozen=True)
class Info:
    """Information about the generator that is recorded in the info metric."""

    version: str = "dev"
    mode: str = "unknown"
    spec: str = "unknown"


def _window_rule(slo: SLO, window: timedelta, expr: str) -> Rule:
    return Rule(
        record=slo.sli_error_metric(window),
        expr=expr,
        labels=merge_labels(
            slo.id_prom_labels(),
            {SLO_WINDOW_LABEL: duration_to_prom_str(window)},
            slo.labels,
        ),
    )


def _render_sli_expr(expr_tpl: str, window: timedelta) -> str:
    try:
        return render_template(
            expr_tpl, {TPL_KEY_WINDOW: duration_to_prom_str(window)}, strict=True
        )
    except TemplateError as exc:
        raise RuleGenerationError(f"could not render SLI expression template: {exc}") from exc


def _raw_sli_rule(slo: SLO, window: timedelta) -> Rule:
    assert slo.sli.raw is not None
    expr = _render_sli_expr(f"({slo.sli.raw.error_ratio_query})", window)
    return _window_rule(slo, window, expr)


def _events_sli_rule(slo: SLO, window: timedelta) -> Rule:
    events = slo.sli.events
    assert events is not None
    expr = _render_sli_expr(f"({events.error_query})\n/\n({events.total_query})\n", window)
    return _window_rule(slo, window, expr)


def _sli_rule(slo: SLO, window: timedelta) -> Rule:
    if slo.sli.events is not None:
        return _events_sli_rule(slo, window)
    if slo.sli.raw is not None:
        return _raw_sli_rule(slo, window)
    raise RuleGenerationError("invalid SLI type")


def _optimized_sli_rule(slo: SLO, window: timedelta, short_window: timedelta) -> Rule:
    if window == short_window:
        raise RuleGenerationError(
            "can't optimize using the same shortwindow as the window to optimize"
        )
    try:
        expr = _OPTIMIZED_SLI_EXPR_TPL.render(
            {
                "metric": slo.sli_error_metric(short_window),
                "filter": labels_to_prom_filter(slo.id_prom_labels()),
                "window": duration_to_prom_str(window),
                "windowKey": SLO_WINDOW_LABEL,
            }
        )
    except TemplateError as exc:
        raise RuleGenerationError(f"could not render SLI expression template: {exc}") from exc
    return _window_rule(slo, window, expr)


class SLIRecordingRulesGenerator:
    """Generates the SLI error ratio recording rules of an SLO for every alert window.

    When ``optimized`` is set, the rule for the whole SLO period is computed from
    the shortest page window recording instead of the raw SLI query, trading some
    accuracy for much less Prometheus CPU and memory.
    """

    def __init__(self, optimized: bool = True) -> None:
        self.optimized = optimized

    def _rule(self, slo: SLO, window: timedelta, alerts: MWMBAlertGroup) -> Rule:
        if self.optimized and window == slo.time_window:
            return _optimized_sli_rule(slo, window, alerts.page_quick.short_window)
        return _sli_rule(slo, window)

    def generate(self, slo: SLO, alerts: MWMBAlertGroup) -> list[Rule]:
        """Return one rule per alert window, sorted, followed by the SLO period rule."""
        windows = [*alerts.windows(), slo.time_window]
        rules = []
        for window in windows:
            try:
                rules.append(self._rule(slo, window, alerts))
            except RuleGenerationError as exc:
                raise RuleGenerationError(
                    f"could not create {slo.id!r} SLO rule for window "
                    f"{duration_to_prom_str(window)}: {exc}"
                ) from exc
        return rules


OPTIMIZED_SLI_RECORDING_RULES_GENERATOR = SLIRecordingRulesGenerator(optimized=True)
SLI_RECORDING_RULES_GENERATOR = SLIRecordingRulesGenerator(optimized=False)


def _format_g(value: float) -> str:
    """Format like Go's ``%g``: shortest digits, exponent from 1e+06 upwards."""
    text = format_go_float(value)
    f = float(value)
    if not math.isfinite(f) or f == 0:
        return text
    sign, digits, exponent = Decimal(repr(f)).as_tuple()
    exp = len(digits) + exponent - 1
    if 6 <= exp < 21:
        ds = "".join(map(str, digits)).rstrip("0")
        mantissa = ds[0] + ("." + ds[1:] if len(ds) > 1 else "")
        return ("-" if sign else "") + f"{mantissa}e+{exp:02d}"
    return text


def _format_plain(value: float) -> str:
    """Format a float with the shortest digits and never an exponent."""
    f = float(value)
    if not math.isfinite(f):
        return format_go_float(f)
    text = format(Decimal(repr(f)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _burn_rate_expr(metric: str, metric_filter: str) -> str:
    try:
        return _BURN_RATE_EXPR_TPL.render(
            {
                "SLIErrorMetric": metric,
                "MetricFilter": metric_filter,
                "SLOIDName": SLO_ID_LABEL,
                "SLOLabelName": SLO_NAME_LABEL,
                "SLOServiceName": SLO_SERVICE_LABEL,
                "ErrorBudgetRatioMetric": METRIC_SLO_ERROR_BUDGET_RATIO,
            }
        )
    except TemplateError as exc:
        raise RuleGenerationError(
            f"could not render burn rate metadata recording rule expression: {exc}"
        ) from exc


def generate_metadata_recording_rules(
    info: Info, slo: SLO, alerts: MWMBAlertGroup
) -> list[Rule]:
    """Return the metadata recording rules (objective, budget, burn rates, info) of ``slo``."""
    labels = merge_labels(slo.id_prom_labels(), slo.labels)
    objective_ratio = slo.objective / 100
    slo_filter = labels_to_prom_filter(slo.id_prom_labels())
    period_days = slo.time_window / timedelta(hours=1) / 24

    current_burn_rate = _burn_rate_expr(
        slo.sli_error_metric(alerts.page_quick.short_window), slo_filter
    )
    period_burn_rate = _burn_rate_expr(slo.sli_error_metric(slo.time_window), slo_filter)

    return [
        Rule(
            record=METRIC_SLO_OBJECTIVE_RATIO,
            expr=f"vector({_format_g(objective_ratio)})",
            labels=dict(labels),
        ),
        Rule(
            record=METRIC_SLO_ERROR_BUDGET_RATIO,
            expr=f"vector(1-{_format_g(objective_ratio)})",
            labels=dict(labels),
        ),
        Rule(
            record=METRIC_SLO_TIME_PERIOD_DAYS,
            expr=f"vector({_format_g(period_days)})",
            labels=dict(labels),
        ),
        Rule(
            record=METRIC_SLO_CURRENT_BURN_RATE_RATIO,
            expr=current_burn_rate,
            labels=dict(labels),
        ),
        Rule(
            record=METRIC_SLO_PERIOD_BURN_RATE_RATIO,
            expr=period_burn_rate,
            labels=dict(labels),
        ),
        Rule(
            record=METRIC_SLO_PERIOD_ERROR_BUDGET_REMAINING_RATIO,
            expr=f"1 - {METRIC_SLO_PERIOD_BURN_RATE_RATIO}{slo_filter}",
            labels=dict(labels),
        ),
        Rule(
            record=METRIC_SLO_INFO,
            expr="vector(1)",
            labels=merge_labels(
                labels,
                {
                    SLO_VERSION_LABEL: info.version,
                    SLO_MODE_LABEL: str(info.mode),
                    SLO_SPEC_LABEL: info.spec,
                    SLO_OBJECTIVE_LABEL: _format_plain(slo.objective),
                },
            ),
        ),
    ]