"""Example SLI plugin: HTTP availability from request status codes."""

from __future__ import annotations

import re
from collections.abc import Mapping

from sloth.gotemplate import Template
from sloth.spec import SLIPlugin

SLI_PLUGIN_VERSION = "prometheus/v1"
SLI_PLUGIN_ID = "getting_started_availability"

_QUERY_TPL = Template(
    """
sum(rate(http_request_duration_seconds_count{ {{.filter}}job="{{.job}}",code=~"(5..|429)" }[{{"{{.window}}"}}]))
/
sum(rate(http_request_duration_seconds_count{ {{.filter}}job="{{.job}}" }[{{"{{.window}}"}}]))"""
)

_FILTER_RE = re.compile(r'([^=]+="[^=,"]+",)+')


def _validate_labels(labels: Mapping[str, str], *required: str) -> None:
    for key in required:
        if not labels.get(key):
            raise ValueError(f'"{key}" label is required')


def sli_plugin(
    meta: Mapping[str, str], labels: Mapping[str, str], options: Mapping[str, str]
) -> str:
    """Return an error ratio query treating 5xx and 429 responses as errors."""
    job = options.get("job")
    if job is None:
        raise ValueError("job options is required")

    try:
        _validate_labels(labels, "owner", "tier")
    except ValueError as exc:
        raise ValueError(f"invalid labels: {exc}") from exc

    query_filter = options.get("filter", "")
    if query_filter:
        query_filter = query_filter.strip("{}").strip(",") + ","
        if not _FILTER_RE.search(query_filter):
            raise ValueError(f"invalid prometheus filter: {query_filter}")

    return _QUERY_TPL.render({"job": job, "filter": query_filter})


def build_plugin() -> SLIPlugin:
    """Return the plugin ready to be registered in a plugin repository."""
    return SLIPlugin(id=SLI_PLUGIN_ID, func=sli_plugin)