from datetime import timedelta

import pytest

from sloth.availability import SLI_PLUGIN_ID, build_plugin, sli_plugin
from sloth.gotemplate import render_template
from sloth.spec import MemorySLIPluginRepo, YAMLSpecLoader

LABELS = {"owner": "myteam", "tier": "2"}


def test_query_without_filter():
    got = sli_plugin({}, LABELS, {"job": "svc"})
    assert got == (
        '\nsum(rate(http_request_duration_seconds_count{ job="svc",code=~"(5..|429)" }[{{.window}}]))'
        '\n/\nsum(rate(http_request_duration_seconds_count{ job="svc" }[{{.window}}]))'
    )


def test_query_with_filter_is_sanitized():
    got = sli_plugin({}, LABELS, {"job": "svc", "filter": '{env="prod",}'})
    assert got.count('{ env="prod",job="svc"') == 2


def test_window_is_left_as_template_var():
    got = sli_plugin({}, LABELS, {"job": "svc"})
    rendered = render_template(got, {"window": "5m"}, strict=True)
    assert rendered.count("[5m]") == 2
    assert "{{" not in rendered


def test_missing_job_fails():
    with pytest.raises(ValueError, match="job options is required"):
        sli_plugin({}, LABELS, {})


@pytest.mark.parametrize("missing", ["owner", "tier"])
def test_required_labels(missing):
    labels = dict(LABELS)
    del labels[missing]
    with pytest.raises(ValueError, match=f'"{missing}" label is required'):
        sli_plugin({}, labels, {"job": "svc"})


def test_empty_label_value_fails():
    with pytest.raises(ValueError, match="invalid labels"):
        sli_plugin({}, {"owner": "", "tier": "1"}, {"job": "svc"})


def test_invalid_filter_fails():
    with pytest.raises(ValueError, match="invalid prometheus filter"):
        sli_plugin({}, LABELS, {"job": "svc", "filter": "garbage"})


def test_build_plugin_used_by_spec_loader():
    plugin = build_plugin()
    assert plugin.id == SLI_PLUGIN_ID
    repo = MemorySLIPluginRepo([plugin])
    loader = YAMLSpecLoader(repo, timedelta(days=30))
    group = loader.load_spec(
        """
version: "prometheus/v1"
service: "myservice"
labels:
  owner: myteam
  tier: "2"
slos:
  - name: requests-availability
    objective: 99.9
    sli:
      plugin:
        id: getting_started_availability
        options:
          job: myservice
    alerting:
      page_alert:
        disable: true
      ticket_alert:
        disable: true
"""
    )
    query = group.slos[0].sli.raw.error_ratio_query
    assert query == sli_plugin({}, LABELS, {"job": "myservice"})
    group.validate()