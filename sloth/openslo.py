"""Loading of OpenSLO ``openslo/v1alpha`` specs into the SLO model."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

import yaml

from sloth.gotemplate import Template
from sloth.model import SLI, SLO, AlertMeta, SLIRaw, SLOGroup

API_VERSION = "openslo/v1alpha"

_KIND_RE = re.compile(r"^kind: +['\"]?SLO['\"]? *$", re.MULTILINE)
_API_VERSION_RE = re.compile(r"^apiVersion: +['\"]?openslo/v1alpha['\"]? *$", re.MULTILINE)

# OpenSLO ratios use good/total events; turn them into an error ratio.
_ERROR_RATIO_TPL = Template(
    """
  1 - (
    (
      {{ .good }}
    )
    /
    (
      {{ .total }}
    )
  )
"""
)


class OpenSLOSpecError(ValueError):
    """Raised when an OpenSLO spec can't be loaded."""


def _as_text(data: bytes | str) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def _mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise OpenSLOSpecError(f"{where} must be a mapping")
    return value


def _list(value: Any, where: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise OpenSLOSpecError(f"{where} must be a list")
    return value


def _text(value: Any, where: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (Mapping, list)):
        raise OpenSLOSpecError(f"{where} must be a scalar")
    return value if isinstance(value, str) else str(value)


class OpenSLOSpecLoader:
    """Loads ratio based OpenSLO specs; each objective becomes one SLO."""

    def __init__(self, window_period: timedelta = timedelta(days=30)) -> None:
        self.window_period = window_period

    def is_spec_type(self, data: bytes | str) -> bool:
        """Tell whether ``data`` looks like an OpenSLO ``v1alpha`` SLO."""
        text = _as_text(data)
        return bool(_KIND_RE.search(text)) and bool(_API_VERSION_RE.search(text))

    def load_spec(self, data: bytes | str) -> SLOGroup:
        """Parse ``data`` and map it to the SLO model."""
        if not data:
            raise OpenSLOSpecError("spec is required")
        try:
            doc = yaml.safe_load(_as_text(data))
        except yaml.YAMLError as exc:
            raise OpenSLOSpecError(f"could not unmarshal YAML spec correctly: {exc}") from exc
        if doc is None:
            doc = {}
        if not isinstance(doc, Mapping):
            raise OpenSLOSpecError("could not unmarshal YAML spec correctly: not a mapping")

        if doc.get("apiVersion") != API_VERSION:
            raise OpenSLOSpecError(f'invalid spec version, should be "{API_VERSION}"')

        body = _mapping(doc.get("spec"), "spec")
        if not _list(body.get("objectives"), "objectives"):
            raise OpenSLOSpecError("at least one SLO is required")

        try:
            self.validate_time_window(doc)
        except OpenSLOSpecError as exc:
            raise OpenSLOSpecError(f"invalid SLO time windows: {exc}") from exc

        try:
            slos = self.get_slos(doc)
        except OpenSLOSpecError as exc:
            raise OpenSLOSpecError(
                f"could not map to model: could not map SLOs correctly: {exc}"
            ) from exc
        return SLOGroup(slos=slos)

    def validate_time_window(self, spec: Mapping[str, Any]) -> None:
        """Accept no time window or a single day based one."""
        body = _mapping(spec.get("spec"), "spec")
        windows = _list(body.get("timeWindows"), "timeWindows")
        if not windows:
            return
        if len(windows) > 1:
            raise OpenSLOSpecError("only 1 time window is supported")
        window = _mapping(windows[0], "time window")
        if _text(window.get("unit"), "time window unit").lower() != "day":
            raise OpenSLOSpecError("only days based time windows are supported")

    def get_sli(self, objective: Mapping[str, Any]) -> SLI:
        """Map an objective's ratio metrics to a raw error ratio SLI."""
        ratio = objective.get("ratioMetrics")
        if ratio is None:
            raise OpenSLOSpecError("missing ratioMetrics")
        ratio = _mapping(ratio, "ratioMetrics")
        good = _mapping(ratio.get("good"), "good")
        total = _mapping(ratio.get("total"), "total")

        good_source = _text(good.get("source"), "good source")
        total_source = _text(total.get("source"), "total source")
        if good_source not in ("prometheus", "sloth"):
            raise OpenSLOSpecError("prometheus or sloth query ratio 'good' source is required")
        if total_source != "prometheus" and good_source != "sloth":
            raise OpenSLOSpecError("prometheus or sloth query ratio 'total' source is required")

        good_type = _text(good.get("queryType"), "good queryType")
        total_type = _text(total.get("queryType"), "total queryType")
        if good_type != "promql":
            raise OpenSLOSpecError(f"unsupported 'good' indicator query type: {good_type}")
        if total_type != "promql":
            raise OpenSLOSpecError(f"unsupported 'total' indicator query type: {total_type}")

        query = _ERROR_RATIO_TPL.render(
            {
                "good": _text(good.get("query"), "good query"),
                "total": _text(total.get("query"), "total query"),
            }
        )
        return SLI(raw=SLIRaw(error_ratio_query=query))

    def get_slos(self, spec: Mapping[str, Any]) -> list[SLO]:
        """Map every objective of ``spec`` to its own SLO."""
        metadata = _mapping(spec.get("metadata"), "metadata")
        body = _mapping(spec.get("spec"), "spec")
        name = _text(metadata.get("name"), "metadata name")
        service = _text(body.get("service"), "service")
        description = _text(body.get("description"), "description")

        time_window = self.window_period
        windows = _list(body.get("timeWindows"), "timeWindows")
        if windows:
            count = _mapping(windows[0], "time window").get("count") or 0
            if isinstance(count, bool) or not isinstance(count, int):
                raise OpenSLOSpecError("time window count must be an integer")
            time_window = timedelta(days=count)

        slos = []
        for index, raw_objective in enumerate(_list(body.get("objectives"), "objectives")):
            objective = _mapping(raw_objective, "objective")
            try:
                sli = self.get_sli(objective)
            except OpenSLOSpecError as exc:
                raise OpenSLOSpecError(f"could not map SLI: {exc}") from exc

            target = objective.get("target")
            if isinstance(target, bool) or not isinstance(target, (int, float)):
                raise OpenSLOSpecError("objective target is required")

            slos.append(
                SLO(
                    id=f"{service}-{name}-{index}",
                    name=f"{name}-{index}",
                    service=service,
                    description=description,
                    time_window=time_window,
                    sli=sli,
                    # OpenSLO targets are ratios; objectives are percents.
                    objective=float(target) * 100,
                    page_alert_meta=AlertMeta(disable=True),
                    ticket_alert_meta=AlertMeta(disable=True),
                )
            )
        return slos