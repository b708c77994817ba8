# sloth

Generate Prometheus recording and alerting rules for service level objectives (SLOs).

`sloth` is a library. It reads SLO specifications and turns them into a validated
model. The specifications can be in its own `prometheus/v1` YAML format or in the
OpenSLO `openslo/v1alpha` format. From that model it builds:

- SLI error-ratio recording rules, one for every multiwindow multi-burn-rate alert window
  and one for the whole SLO period;
- metadata recording rules: objective, error budget, period length, current and period
  burn rates, remaining budget, and an info metric;
- multiwindow multi-burn-rate page and ticket alert rules.

It then writes everything as a Prometheus rule-groups YAML document.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Loading a spec

```python
from datetime import timedelta

from sloth.spec import MemorySLIPluginRepo, YAMLSpecLoader

spec = b"""
version: "prometheus/v1"
service: "myservice"
labels:
  owner: "myteam"
slos:
  - name: "requests-availability"
    objective: 99.9
    sli:
      events:
        error_query: sum(rate(http_requests_total{code=~"5.."}[{{.window}}]))
        total_query: sum(rate(http_requests_total[{{.window}}]))
    alerting:
      name: MyServiceHighErrorRate
      page_alert:
        labels:
          severity: critical
      ticket_alert:
        labels:
          severity: warning
"""

loader = YAMLSpecLoader(MemorySLIPluginRepo({}), timedelta(days=30))
if loader.is_spec_type(spec):
    group = loader.load_spec(spec)   # raises sloth.spec.SpecError on bad input
    group.validate()                 # raises sloth.model.ValidationError
```

The spec has no time window of its own. Every SLO gets the loader's
`window_period`, which defaults to 30 days. SLO ids are built as `<service>-<name>`.
An alert with `disable: true` becomes a disabled `AlertMeta`. Alert labels and
annotations are merged from the common `alerting` section and from the
`page_alert` or `ticket_alert` section.

### OpenSLO

Use `sloth.openslo.OpenSLOSpecLoader(window_period)` to load OpenSLO documents. It has
the same `is_spec_type` and `load_spec` methods and raises `OpenSLOSpecError`.
The loader only accepts ratio objectives whose queries have the `promql` query type.
Each objective becomes its own SLO, named `<name>-<index>`. The good/total ratio is
turned into a raw error-ratio query of the form `1 - (good / total)`.

At most one time window is allowed, and it must be day based. Its `count` becomes the
SLO period. Without a time window, the loader's `window_period` is used. Alerts are
disabled for OpenSLO SLOs.

### Query templates

Queries may use the `{{.window}}` template variable. It is replaced by each rule's
window in Prometheus duration form (`5m`, `1h`, `30d`, ...). `sloth.gotemplate`
supports only a small part of the template language: `{{ .field }}` lookups, string
literals, comments and `{{-`/`-}}` trimming.

## Generating rules

The alert windows and burn-rate factors are not computed by this package. You describe
them yourself with `sloth.alerts`:

```python
from datetime import timedelta

from sloth.alerts import AlertSeverity, MWMBAlert, MWMBAlertGroup

def alert(short, long, factor, severity):
    return MWMBAlert(
        short_window=short,
        long_window=long,
        burn_rate_factor=factor,
        error_budget=0.1,  # percent, i.e. 100 - objective
        severity=severity,
    )

alerts = MWMBAlertGroup(
    page_quick=alert(timedelta(minutes=5), timedelta(hours=1), 14.4, AlertSeverity.PAGE),
    page_slow=alert(timedelta(minutes=30), timedelta(hours=6), 6, AlertSeverity.PAGE),
    ticket_quick=alert(timedelta(hours=2), timedelta(days=1), 3, AlertSeverity.TICKET),
    ticket_slow=alert(timedelta(hours=6), timedelta(days=3), 1, AlertSeverity.TICKET),
)
```

Then, for each SLO:

```python
import sys

from sloth.alert_rules import SLOAlertRulesGenerator
from sloth.model import SLORules
from sloth.recording_rules import (
    Info,
    SLIRecordingRulesGenerator,
    generate_metadata_recording_rules,
)
from sloth.storage import GroupedRulesYAMLRepo, StorageSLO

stored = []
for slo in group.slos:
    rules = SLORules(
        sli_error_rec_rules=SLIRecordingRulesGenerator(optimized=True).generate(slo, alerts),
        metadata_rec_rules=generate_metadata_recording_rules(Info(), slo, alerts),
        alert_rules=SLOAlertRulesGenerator().generate(slo, alerts),
    )
    stored.append(StorageSLO(slo=slo, rules=rules))

GroupedRulesYAMLRepo(sys.stdout).store_slos(stored)
```

### SLI recording rules

`SLIRecordingRulesGenerator` produces one rule per distinct alert window, in ascending
order, followed by the rule for the SLO period.

With `optimized=True`, the period rule is derived from the page-quick short-window
recording (`sum_over_time / count_over_time`). This is cheaper for Prometheus but less
exact. The ready-made instances are
`sloth.recording_rules.OPTIMIZED_SLI_RECORDING_RULES_GENERATOR` and
`SLI_RECORDING_RULES_GENERATOR`.

Rendering errors raise `RuleGenerationError`.

### Metadata recording rules

`generate_metadata_recording_rules` labels the info metric with the `Info`
`version`, `mode` and `spec`. These default to `dev`, `unknown` and `unknown`.

### Alert rules

`SLOAlertRulesGenerator` skips disabled alerts. It accepts any function with the
signature of `default_slo_alert_generator(slo, alert_meta, quick, slow)`. Failures
raise `AlertRuleError`. `sloth.alert_rules.SLO_ALERT_RULES_GENERATOR` is a ready-made
instance.

### Storage

`render_rule_groups(slos)` returns the YAML document as a string.
`GroupedRulesYAMLRepo(writer).store_slos(slos)` writes it to any text stream.

- Each SLO gets up to three groups: `sloth-slo-sli-recordings-<id>`,
  `sloth-slo-meta-recordings-<id>` and `sloth-slo-alerts-<id>`.
- Empty groups are left out.
- An empty list raises `ValueError`.
- If no rules at all are present, `NoSLORulesError` is raised.

## SLI plugins

An SLI can come from a plugin: a callable taking `(meta, labels, options)` and
returning a raw error-ratio query string. Wrap it in `sloth.spec.SLIPlugin(id, func)`
and register it in a `MemorySLIPluginRepo`. Duplicate ids raise `SpecError`.
Refer to it from a spec with:

```yaml
sli:
  plugin:
    id: my_plugin
    options:
      key: value
```

The plugin receives:

- `meta`: the `service`, the `slo` name and the `objective`;
- the spec's top-level labels;
- the options, as strings.

`sloth.availability.build_plugin()` returns an example plugin,
`getting_started_availability`. It measures HTTP availability from
`http_request_duration_seconds_count`, counting `5xx` and `429` responses as errors.

- It requires a `job` option.
- It accepts an optional `filter` option (for example `{env="prod"}`).
- It requires non-empty `owner` and `tier` labels.

## Validation

`SLOGroup.validate()` raises `sloth.model.ValidationError`. Its `errors` attribute
lists every failed check. Validation fails when:

- the group has no SLOs, or SLO ids repeat;
- an id, name or service is missing or is not made of letters, digits, `.`, `_` and `-`
  (starting and ending with a letter or digit);
- the SLI has no type or more than one;
- event queries are equal;
- a query is not valid PromQL (`sloth.promql`) or lacks `{{.window}}`;
- the objective is not in `(0, 100]`;
- label or annotation keys or values are not valid for Prometheus;
- an enabled alert has no name.

## What this package does not do

- It has no command-line tool: it is used from Python code.
- It does not compute alert windows or burn-rate factors from the SLO period; you
  provide the `MWMBAlertGroup`.
- It does not load plugins from files on disk; plugins are Python callables that you
  register.
- It does not talk to Prometheus or Kubernetes; it only produces rule YAML.