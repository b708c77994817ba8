"""Loading of ``prometheus/v1`` SLO specs into the SLO model, with SLI plugins."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Protocol, Union

import yaml

from sloth.helpers import merge_labels
from sloth.model import SLI, SLO, AlertMeta, SLIEvents, SLIRaw, SLOGroup

SPEC_VERSION = "prometheus/v1"

PLUGIN_META_SERVICE = "service"
PLUGIN_META_SLO = "slo"
PLUGIN_META_OBJECTIVE = "objective"

_SPEC_TYPE_RE = re.compile(r"^version: +['\"]?prometheus/v1['\"]? *$", re.MULTILINE)

# Boolean spellings accepted by YAML 1.1.
_TRUE = {"y", "Y", "yes", "Yes", "YES", "true", "True", "TRUE", "on", "On", "ON"}
_FALSE = {"n", "N", "no", "No", "NO", "false", "False", "FALSE", "off", "Off", "OFF"}

SLIPluginFunc = Callable[[Mapping[str, str], Mapping[str, str], Mapping[str, str]], str]


class SpecError(ValueError):
    """Raised when a spec can't be loaded or an SLI plugin can't be used."""


@dataclass(frozen=True)
class SLIPlugin:
    """An SLI plugin: a function of (meta, labels, options) returning a raw error ratio query."""

    id: str
    func: SLIPluginFunc


class _SLIPluginRepo(Protocol):
    def get_sli_plugin(self, plugin_id: str) -> SLIPlugin: ...


class MemorySLIPluginRepo:
    """An in-memory registry of SLI plugins indexed by their ID."""

    def __init__(
        self, plugins: Union[Iterable[SLIPlugin], Mapping[str, SLIPlugin], None] = None
    ) -> None:
        self._plugins: dict[str, SLIPlugin] = {}
        if isinstance(plugins, Mapping):
            self._plugins.update(plugins)
        else:
            for plugin in plugins or ():
                self.register(plugin)

    def register(self, plugin: SLIPlugin) -> None:
        """Add a plugin; IDs must be unique."""
        if plugin.id in self._plugins:
            raise SpecError(
                f"2 or more plugins with the same {plugin.id!r} ID have been loaded"
            )
        self._plugins[plugin.id] = plugin

    def get_sli_plugin(self, plugin_id: str) -> SLIPlugin:
        """Return the plugin with ``plugin_id``."""
        try:
            return self._plugins[plugin_id]
        except KeyError:
            raise SpecError(f"plugin {plugin_id!r} missing") from None

    def list_sli_plugins(self) -> dict[str, SLIPlugin]:
        """Return all the registered plugins by ID."""
        return dict(self._plugins)


def _as_text(data: bytes | str) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def _section(value: Any, where: str) -> Mapping[str, Any] | None:
    if value is None or value == "":
        return None
    if not isinstance(value, Mapping):
        raise SpecError(f"{where} must be a mapping")
    return value


def _string(value: Any, where: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise SpecError(f"{where} must be a string")
    return value


def _string_map(value: Any, where: str) -> dict[str, str]:
    section = _section(value, where)
    if section is None:
        return {}
    return {
        _string(key, f"{where} key"): _string(item, f"{where}[{key}]")
        for key, item in section.items()
    }


def _bool(value: Any, where: str) -> bool:
    text = _string(value, where)
    if text == "" or text in _FALSE:
        return False
    if text in _TRUE:
        return True
    raise SpecError(f"{where} must be a boolean, got {text!r}")


def _float(value: Any, where: str) -> float:
    text = _string(value, where)
    if text == "":
        return 0.0
    try:
        return float(text)
    except ValueError:
        raise SpecError(f"{where} must be a number, got {text!r}") from None


def _list(value: Any, where: str) -> list[Any]:
    if value is None or value == "":
        return []
    if not isinstance(value, list):
        raise SpecError(f"{where} must be a list")
    return value


def _alert_meta(alerting: Mapping[str, Any], key: str) -> AlertMeta:
    alert = _section(alerting.get(key), f"alerting {key}") or {}
    if _bool(alert.get("disable"), f"alerting {key} disable"):
        return AlertMeta(disable=True)
    return AlertMeta(
        name=_string(alerting.get("name"), "alerting name"),
        labels=merge_labels(
            _string_map(alerting.get("labels"), "alerting labels"),
            _string_map(alert.get("labels"), f"alerting {key} labels"),
        ),
        annotations=merge_labels(
            _string_map(alerting.get("annotations"), "alerting annotations"),
            _string_map(alert.get("annotations"), f"alerting {key} annotations"),
        ),
    )


class YAMLSpecLoader:
    """Loads ``prometheus/v1`` YAML specs into an SLOGroup."""

    def __init__(
        self,
        plugins_repo: _SLIPluginRepo | None = None,
        window_period: timedelta = timedelta(days=30),
    ) -> None:
        self.plugins_repo = plugins_repo
        self.window_period = window_period

    def is_spec_type(self, data: bytes | str) -> bool:
        """Tell whether ``data`` looks like a ``prometheus/v1`` spec."""
        return _SPEC_TYPE_RE.search(_as_text(data)) is not None

    def load_spec(self, data: bytes | str) -> SLOGroup:
        """Parse ``data`` and map it to the SLO model."""
        if not data:
            raise SpecError("spec is required")
        try:
            doc = yaml.load(_as_text(data), Loader=yaml.BaseLoader)
        except yaml.YAMLError as exc:
            raise SpecError(f"could not unmarshal YAML spec correctly: {exc}") from exc
        if doc is None or doc == "":
            doc = {}
        if not isinstance(doc, Mapping):
            raise SpecError("could not unmarshal YAML spec correctly: not a mapping")

        if doc.get("version") != SPEC_VERSION:
            raise SpecError(f'invalid spec version, should be "{SPEC_VERSION}"')

        try:
            slo_docs = _list(doc.get("slos"), "slos")
        except SpecError as exc:
            raise SpecError(f"could not unmarshal YAML spec correctly: {exc}") from exc
        if not slo_docs:
            raise SpecError("at least one SLO is required")

        try:
            return self._map_spec_to_model(doc, slo_docs)
        except SpecError as exc:
            raise SpecError(f"could not map to model: {exc}") from exc

    def _map_spec_to_model(
        self, doc: Mapping[str, Any], slo_docs: list[Any]
    ) -> SLOGroup:
        service = _string(doc.get("service"), "service")
        labels = _string_map(doc.get("labels"), "labels")
        return SLOGroup(slos=[self._map_slo(service, labels, item) for item in slo_docs])

    def _map_slo(self, service: str, labels: dict[str, str], raw_slo: Any) -> SLO:
        slo_doc = _section(raw_slo, "slo") or {}
        name = _string(slo_doc.get("name"), "slo name")
        objective = _float(slo_doc.get("objective"), "slo objective")

        sli = SLI()
        sli_doc = _section(slo_doc.get("sli"), "sli") or {}
        events = _section(sli_doc.get("events"), "sli events")
        if events is not None:
            sli.events = SLIEvents(
                error_query=_string(events.get("error_query"), "error_query"),
                total_query=_string(events.get("total_query"), "total_query"),
            )
        raw = _section(sli_doc.get("raw"), "sli raw")
        if raw is not None:
            sli.raw = SLIRaw(
                error_ratio_query=_string(raw.get("error_ratio_query"), "error_ratio_query")
            )
        plugin = _section(sli_doc.get("plugin"), "sli plugin")
        if plugin is not None:
            query = self._run_plugin(
                _string(plugin.get("id"), "plugin id"),
                service,
                name,
                objective,
                labels,
                _string_map(plugin.get("options"), "plugin options"),
            )
            sli.raw = SLIRaw(error_ratio_query=query)

        alerting = _section(slo_doc.get("alerting"), "alerting") or {}
        return SLO(
            id=f"{service}-{name}",
            name=name,
            description=_string(slo_doc.get("description"), "slo description"),
            service=service,
            sli=sli,
            time_window=self.window_period,
            objective=objective,
            labels=merge_labels(labels, _string_map(slo_doc.get("labels"), "slo labels")),
            page_alert_meta=_alert_meta(alerting, "page_alert"),
            ticket_alert_meta=_alert_meta(alerting, "ticket_alert"),
        )

    def _run_plugin(
        self,
        plugin_id: str,
        service: str,
        slo_name: str,
        objective: float,
        labels: dict[str, str],
        options: dict[str, str],
    ) -> str:
        if self.plugins_repo is None:
            raise SpecError(f"could not get plugin: plugin {plugin_id!r} missing")
        try:
            plugin = self.plugins_repo.get_sli_plugin(plugin_id)
        except SpecError as exc:
            raise SpecError(f"could not get plugin: {exc}") from exc

        meta = {
            PLUGIN_META_SERVICE: service,
            PLUGIN_META_SLO: slo_name,
            PLUGIN_META_OBJECTIVE: f"{objective:f}",
        }
        try:
            query = plugin.func(meta, dict(labels), options)
        except Exception as exc:
            raise SpecError(f"plugin {plugin_id!r} execution error: {exc}") from exc
        if not isinstance(query, str):
            raise SpecError(f"plugin {plugin_id!r} execution error: query must be a string")
        return query