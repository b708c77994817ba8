from datetime import timedelta

import pytest

from sloth.alerts import MWMBAlert, MWMBAlertGroup
from sloth.model import SLI, SLO, Rule, SLIEvents, SLIRaw
from sloth.recording_rules import (
    OPTIMIZED_SLI_RECORDING_RULES_GENERATOR,
    SLI_RECORDING_RULES_GENERATOR,
    Info,
    RuleGenerationError,
    SLIRecordingRulesGenerator,
    generate_metadata_recording_rules,
)

MIN = timedelta(minutes=1)
HOUR = timedelta(hours=1)
DAY = timedelta(days=1)

OPT_30D_5M = (
    'sum_over_time(slo:sli_error:ratio_rate5m{sloth_id="test", sloth_service="test-svc", '
    'sloth_slo="test-name"}[30d])\n/ ignoring (sloth_window)\n'
    'count_over_time(slo:sli_error:ratio_rate5m{sloth_id="test", sloth_service="test-svc", '
    'sloth_slo="test-name"}[30d])\n'
)


def alert_group() -> MWMBAlertGroup:
    return MWMBAlertGroup(
        page_quick=MWMBAlert(short_window=5 * MIN, long_window=1 * HOUR),
        page_slow=MWMBAlert(short_window=30 * MIN, long_window=6 * HOUR),
        ticket_quick=MWMBAlert(short_window=2 * HOUR, long_window=1 * DAY),
        ticket_slow=MWMBAlert(short_window=6 * HOUR, long_window=3 * DAY),
    )


def make_slo(sli: SLI) -> SLO:
    return SLO(
        id="test",
        name="test-name",
        service="test-svc",
        time_window=30 * DAY,
        sli=sli,
        labels={"kind": "test"},
    )


def events_sli(error_query: str = 'rate(my_metric[{{.window}}]{error="true"})') -> SLI:
    return SLI(events=SLIEvents(error_query=error_query, total_query="rate(my_metric[{{.window}}])"))


def labels(window: str) -> dict:
    return {
        "kind": "test",
        "sloth_service": "test-svc",
        "sloth_slo": "test-name",
        "sloth_id": "test",
        "sloth_window": window,
    }


def events_rule(window: str) -> Rule:
    return Rule(
        record=f"slo:sli_error:ratio_rate{window}",
        expr=f'(rate(my_metric[{window}]{{error="true"}}))\n/\n(rate(my_metric[{window}]))\n',
        labels=labels(window),
    )


def raw_rule(window: str) -> Rule:
    return Rule(
        record=f"slo:sli_error:ratio_rate{window}",
        expr=f"(rate(my_metric[{window}]))",
        labels=labels(window),
    )


ALERT_WINDOWS = ["5m", "30m", "1h", "2h", "6h", "1d", "3d"]


@pytest.mark.parametrize(
    "error_query",
    [
        'rate(my_metric[{{}.window}}]{error="true"})',
        'rate(my_metric[{{.Window}}]{error="true"})',
    ],
)
def test_invalid_expression_fails(error_query):
    slo = make_slo(events_sli(error_query))
    with pytest.raises(RuleGenerationError):
        OPTIMIZED_SLI_RECORDING_RULES_GENERATOR.generate(slo, alert_group())


def test_events_sli_optimized():
    rules = OPTIMIZED_SLI_RECORDING_RULES_GENERATOR.generate(make_slo(events_sli()), alert_group())
    expected = [events_rule(w) for w in ALERT_WINDOWS]
    expected.append(Rule(record="slo:sli_error:ratio_rate30d", expr=OPT_30D_5M, labels=labels("30d")))
    assert rules == expected


def test_events_sli_not_optimized():
    rules = SLI_RECORDING_RULES_GENERATOR.generate(make_slo(events_sli()), alert_group())
    assert rules == [events_rule(w) for w in ALERT_WINDOWS + ["30d"]]


def test_raw_sli_optimized():
    slo = make_slo(SLI(raw=SLIRaw(error_ratio_query="rate(my_metric[{{.window}}])")))
    rules = SLIRecordingRulesGenerator(optimized=True).generate(slo, alert_group())
    expected = [raw_rule(w) for w in ALERT_WINDOWS]
    expected.append(Rule(record="slo:sli_error:ratio_rate30d", expr=OPT_30D_5M, labels=labels("30d")))
    assert rules == expected


def test_duplicated_windows_appear_once_and_sorted():
    group = MWMBAlertGroup(
        page_quick=MWMBAlert(short_window=3 * HOUR, long_window=2 * HOUR),
        page_slow=MWMBAlert(short_window=3 * HOUR, long_window=1 * HOUR),
        ticket_quick=MWMBAlert(short_window=1 * HOUR, long_window=2 * HOUR),
        ticket_slow=MWMBAlert(short_window=2 * HOUR, long_window=1 * HOUR),
    )
    rules = OPTIMIZED_SLI_RECORDING_RULES_GENERATOR.generate(make_slo(events_sli()), group)
    expected_30d = OPT_30D_5M.replace("ratio_rate5m", "ratio_rate3h")
    assert rules == [
        events_rule("1h"),
        events_rule("2h"),
        events_rule("3h"),
        Rule(record="slo:sli_error:ratio_rate30d", expr=expected_30d, labels=labels("30d")),
    ]


def test_sli_without_type_fails():
    with pytest.raises(RuleGenerationError, match="invalid SLI type"):
        SLI_RECORDING_RULES_GENERATOR.generate(make_slo(SLI()), alert_group())


def test_optimization_with_same_short_window_fails():
    slo = make_slo(events_sli())
    slo.time_window = 5 * MIN
    with pytest.raises(RuleGenerationError, match="can't optimize"):
        OPTIMIZED_SLI_RECORDING_RULES_GENERATOR.generate(slo, alert_group())


def test_metadata_recording_rules():
    info = Info(version="test-ver", mode="test", spec="test/v1")
    slo = SLO(
        id="test",
        name="test-name",
        service="test-svc",
        objective=99.9,
        time_window=30 * DAY,
        labels={"kind": "test"},
    )
    base = {
        "kind": "test",
        "sloth_service": "test-svc",
        "sloth_slo": "test-name",
        "sloth_id": "test",
    }
    flt = '{sloth_id="test", sloth_service="test-svc", sloth_slo="test-name"}'
    rules = generate_metadata_recording_rules(info, slo, alert_group())
    assert rules == [
        Rule(record="slo:objective:ratio", expr="vector(0.9990000000000001)", labels=base),
        Rule(record="slo:error_budget:ratio", expr="vector(1-0.9990000000000001)", labels=base),
        Rule(record="slo:time_period:days", expr="vector(30)", labels=base),
        Rule(
            record="slo:current_burn_rate:ratio",
            expr=(
                f"slo:sli_error:ratio_rate5m{flt}\n"
                "/ on(sloth_id, sloth_slo, sloth_service) group_left\n"
                f"slo:error_budget:ratio{flt}\n"
            ),
            labels=base,
        ),
        Rule(
            record="slo:period_burn_rate:ratio",
            expr=(
                f"slo:sli_error:ratio_rate30d{flt}\n"
                "/ on(sloth_id, sloth_slo, sloth_service) group_left\n"
                f"slo:error_budget:ratio{flt}\n"
            ),
            labels=base,
        ),
        Rule(
            record="slo:period_error_budget_remaining:ratio",
            expr=f"1 - slo:period_burn_rate:ratio{flt}",
            labels=base,
        ),
        Rule(
            record="sloth_slo_info",
            expr="vector(1)",
            labels={
                **base,
                "sloth_version": "test-ver",
                "sloth_mode": "test",
                "sloth_spec": "test/v1",
                "sloth_objective": "99.9",
            },
        ),
    ]


def test_metadata_objective_label_has_no_trailing_zeros():
    slo = SLO(id="a", name="b", service="c", objective=100.0, time_window=28 * DAY)
    rules = generate_metadata_recording_rules(Info(), slo, alert_group())
    assert rules[-1].labels["sloth_objective"] == "100"
    assert rules[2].expr == "vector(28)"
    assert rules[0].expr == "vector(1)"


def test_metadata_rules_do_not_share_label_dicts():
    slo = SLO(id="a", name="b", service="c", objective=99.0, time_window=30 * DAY)
    rules = generate_metadata_recording_rules(Info(), slo, alert_group())
    rules[0].labels["extra"] = "x"
    assert "extra" not in rules[1].labels
    assert len(rules) == 7