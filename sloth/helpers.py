"""Label, duration and number formatting shared by the rule generators."""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import timedelta
from decimal import Decimal

SLI_ERROR_METRIC_FMT = "slo:sli_error:ratio_rate{}"

SLO_NAME_LABEL = "sloth_slo"
SLO_ID_LABEL = "sloth_id"
SLO_SERVICE_LABEL = "sloth_service"
SLO_WINDOW_LABEL = "sloth_window"
SLO_SEVERITY_LABEL = "sloth_severity"
SLO_VERSION_LABEL = "sloth_version"
SLO_MODE_LABEL = "sloth_mode"
SLO_SPEC_LABEL = "sloth_spec"
SLO_OBJECTIVE_LABEL = "sloth_objective"

_DURATION_UNITS = (
    ("y", 1000 * 60 * 60 * 24 * 365, True),
    ("w", 1000 * 60 * 60 * 24 * 7, True),
    ("d", 1000 * 60 * 60 * 24, False),
    ("h", 1000 * 60 * 60, False),
    ("m", 1000 * 60, False),
    ("s", 1000, False),
    ("ms", 1, False),
)

_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
}


def merge_labels(*args: Mapping[str, str] | None) -> dict[str, str]:
    """Merge label mappings; later mappings win on key clashes."""
    result: dict[str, str] = {}
    for labels in args:
        if labels:
            result.update(labels)
    return result


def _go_quote(value: str) -> str:
    parts = []
    for ch in value:
        if ch in _ESCAPES:
            parts.append(_ESCAPES[ch])
        elif ch.isprintable():
            parts.append(ch)
        elif ord(ch) < 0x100:
            parts.append(f"\\x{ord(ch):02x}")
        elif ord(ch) < 0x10000:
            parts.append(f"\\u{ord(ch):04x}")
        else:
            parts.append(f"\\U{ord(ch):08x}")
    return '"' + "".join(parts) + '"'


def labels_to_prom_filter(labels: Mapping[str, str]) -> str:
    """Render labels as a sorted Prometheus selector such as ``{a="1", b="2"}``."""
    pairs = (f"{key}={_go_quote(labels[key])}" for key in sorted(labels))
    return "{" + ", ".join(pairs) + "}"


def duration_to_prom_str(window: timedelta) -> str:
    """Format a duration the way Prometheus prints durations (``5m``, ``30d``, ``2w``)."""
    ms = window // timedelta(milliseconds=1)
    if ms == 0:
        return "0s"
    out = []
    for unit, mult, exact in _DURATION_UNITS:
        if exact and ms % mult != 0:
            continue
        count = ms // mult
        if count > 0:
            out.append(f"{count}{unit}")
            ms -= count * mult
    return "".join(out)


def format_go_float(value: float) -> str:
    """Format a float with the shortest round-tripping digits, as Go's ``%v`` does."""
    f = float(value)
    if math.isnan(f):
        return "NaN"
    if math.isinf(f):
        return "+Inf" if f > 0 else "-Inf"
    if f == 0:
        return "-0" if math.copysign(1.0, f) < 0 else "0"
    sign, digits, exponent = Decimal(repr(f)).as_tuple()
    dp = len(digits) + exponent
    ds = "".join(map(str, digits)).rstrip("0")
    nd = len(ds)
    exp = dp - 1
    if exp < -4 or exp >= 21:
        mantissa = ds[0] + ("." + ds[1:] if nd > 1 else "")
        body = f"{mantissa}e{'-' if exp < 0 else '+'}{abs(exp):02d}"
    elif dp <= 0:
        body = "0." + "0" * (-dp) + ds
    elif dp >= nd:
        body = ds + "0" * (dp - nd)
    else:
        body = ds[:dp] + "." + ds[dp:]
    return ("-" if sign else "") + body