"""Generation of the multiwindow multi-burn-rate Prometheus alert rules of an SLO."""

from __future__ import annotations

from collections.abc import Callable

from sloth.alerts import MWMBAlert, MWMBAlertGroup
from sloth.gotemplate import Template, TemplateError
from sloth.helpers import (
    SLO_NAME_LABEL,
    SLO_SERVICE_LABEL,
    SLO_SEVERITY_LABEL,
    SLO_WINDOW_LABEL,
    labels_to_prom_filter,
    merge_labels,
)
from sloth.model import SLO, AlertMeta, Rule

AlertGenFunc = Callable[[SLO, AlertMeta, MWMBAlert, MWMBAlert], Rule]


class AlertRuleError(ValueError):
    """Raised when an SLO alert rule can't be generated."""


_MWMB_ALERT_TPL = Template(
    """(
    max({{ .QuickShortMetric }}{{ .MetricFilter}} > ({{ .QuickShortBurnFactor }} * {{ .ErrorBudgetRatio }})) without ({{ .WindowLabel }})
    and
    max({{ .QuickLongMetric }}{{ .MetricFilter}} > ({{ .QuickLongBurnFactor }} * {{ .ErrorBudgetRatio }})) without ({{ .WindowLabel }})
)
or
(
    max({{ .SlowShortMetric }}{{ .MetricFilter }} > ({{ .SlowShortBurnFactor }} * {{ .ErrorBudgetRatio }})) without ({{ .WindowLabel }})
    and
    max({{ .SlowQuickMetric }}{{ .MetricFilter }} > ({{ .SlowQuickBurnFactor }} * {{ .ErrorBudgetRatio }})) without ({{ .WindowLabel }})
)
""",
    strict=True,
)


def default_slo_alert_generator(
    slo: SLO, alert_meta: AlertMeta, quick: MWMBAlert, slow: MWMBAlert
) -> Rule:
    """Build the alert rule that fires when either burn-rate pair is exceeded."""
    data = {
        "MetricFilter": labels_to_prom_filter(slo.id_prom_labels()),
        # Quick and slow alerts share the same error budget.
        "ErrorBudgetRatio": quick.error_budget / 100,
        "QuickShortMetric": slo.sli_error_metric(quick.short_window),
        "QuickShortBurnFactor": float(quick.burn_rate_factor),
        "QuickLongMetric": slo.sli_error_metric(quick.long_window),
        "QuickLongBurnFactor": float(quick.burn_rate_factor),
        "SlowShortMetric": slo.sli_error_metric(slow.short_window),
        "SlowShortBurnFactor": float(slow.burn_rate_factor),
        "SlowQuickMetric": slo.sli_error_metric(slow.long_window),
        "SlowQuickBurnFactor": float(slow.burn_rate_factor),
        "WindowLabel": SLO_WINDOW_LABEL,
    }
    try:
        expr = _MWMB_ALERT_TPL.render(data)
    except TemplateError as exc:
        raise AlertRuleError(f"could not render alert expression: {exc}") from exc

    severity = str(quick.severity)
    service = f"{{{{$labels.{SLO_SERVICE_LABEL}}}}}"
    name = f"{{{{$labels.{SLO_NAME_LABEL}}}}}"
    extra_annotations = {
        "title": f"({severity}) {service} {name} SLO error budget burn rate is too fast.",
        "summary": f"{service} {name} SLO error budget burn rate is over expected.",
    }
    # SLO labels are not added here: alerts inherit them from the recording rules.
    extra_labels = {SLO_SEVERITY_LABEL: severity}

    return Rule(
        alert=alert_meta.name,
        expr=expr,
        annotations=merge_labels(extra_annotations, alert_meta.annotations),
        labels=merge_labels(extra_labels, alert_meta.labels),
    )


class SLOAlertRulesGenerator:
    """Generates the page and ticket alert rules of an SLO."""

    def __init__(self, alert_gen_func: AlertGenFunc = default_slo_alert_generator) -> None:
        self.alert_gen_func = alert_gen_func

    def generate(self, slo: SLO, alerts: MWMBAlertGroup) -> list[Rule]:
        """Return the rules of every alert of ``slo`` that is not disabled."""
        kinds = (
            ("page", slo.page_alert_meta, alerts.page_quick, alerts.page_slow),
            ("ticket", slo.ticket_alert_meta, alerts.ticket_quick, alerts.ticket_slow),
        )
        rules = []
        for kind, meta, quick, slow in kinds:
            if meta.disable:
                continue
            try:
                rules.append(self.alert_gen_func(slo, meta, quick, slow))
            except ValueError as exc:
                raise AlertRuleError(f"could not create {kind} alert: {exc}") from exc
        return rules


SLO_ALERT_RULES_GENERATOR = SLOAlertRulesGenerator()