from __future__ import annotations

import logging
from datetime import datetime

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from membership_pipeline.parsing.batch import BatchValidator, build_alert, validate_rows
from membership_pipeline.parsing.profiles.action_specs import ActionSpec
from membership_pipeline.parsing.profiles.public_groups import PublicGroup
from membership_pipeline.parsing.types import ErrorCollector

HEADERS = ["Name", "Email", "Subscription"]
GOOD = ["Sailing", "sailing@example.com", "auto"]
BAD = ["", "racing@example.com", "manual"]


class _Recorder:
    def __init__(self) -> None:
        self.sent: list = []

    def send(self, alert) -> None:
        self.sent.append(alert)


class _Broken:
    def send(self, alert) -> None:
        raise RuntimeError("quota exceeded")


def _validator(gateway, now: datetime) -> BatchValidator:
    return BatchValidator(gateway, recipient="ops@example.com", clock=lambda: now)


def test_one_bad_row_of_three(gateway, now: datetime) -> None:
    """Two valid rows come back; one alert carries the bad row's message."""
    rows = [GOOD, BAD, ["Cruising", "cruise@example.com", "auto"]]

    result = _validator(gateway, now).validate_rows(PublicGroup, rows, HEADERS, "DataAccess.getPublicGroups")

    assert [g.name for g in result.records] == ["Sailing", "Cruising"]
    assert result.total == 3
    assert result.errors.row_numbers == [3]
    assert result.alert_sent is True

    assert len(gateway.sent) == 1
    alert = gateway.sent[0]
    assert alert.to == "ops@example.com"
    assert alert.subject == "ALERT: 1 PublicGroup Validation Error"
    assert "1" in alert.subject
    assert result.errors.errors[0] in alert.body
    assert "Row 3: PublicGroup Name is required" in alert.body


def test_alert_body_layout(now: datetime) -> None:
    errors = ErrorCollector()
    for n in (2, 5):
        ActionSpec.decode(["Nope", "s", "b", ""], ["Type", "Subject", "Body", "Offset"], n, errors)

    alert = build_alert(ActionSpec, errors, total=4, context="nightly", recipient="ops@example.com", detected_at=now)

    assert alert.subject == "ALERT: 2 ActionSpec Validation Errors"
    lines = alert.body.splitlines()
    assert lines[0] == f"ActionSpec validation errors detected at {now.isoformat()}"
    assert "Context: nightly" in lines
    assert "Total rows processed: 4" in lines
    assert "Rows skipped due to errors: 2" in lines
    i = lines.index("Errors:")
    assert lines[i + 1].startswith("  Row 2: ActionSpec Type must be one of")
    assert lines[i + 2].startswith("  Row 5: ")
    assert lines[-1] == "Review the ActionSpecs sheet for data quality issues."


def test_duplicate_messages_are_not_deduplicated(gateway, now: datetime) -> None:
    result = _validator(gateway, now).validate_rows(PublicGroup, [BAD, BAD], HEADERS, "ctx")
    assert len(result.errors) == 2
    assert result.errors.row_numbers == [2, 3]
    assert gateway.sent[0].body.count("PublicGroup Name is required") == 2


def test_empty_input_no_alert(gateway, now: datetime) -> None:
    result = _validator(gateway, now).validate_rows(PublicGroup, [], HEADERS, "ctx")
    assert result.records == []
    assert len(result.errors) == 0
    assert gateway.sent == []


def test_all_valid_no_alert(gateway, now: datetime) -> None:
    result = _validator(gateway, now).validate_rows(PublicGroup, [GOOD, GOOD], HEADERS, "ctx")
    assert len(result.records) == 2
    assert gateway.sent == []
    assert result.alert_sent is False


def test_alert_failure_is_logged_not_raised(failing_gateway, now: datetime, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR):
        result = _validator(failing_gateway, now).validate_rows(PublicGroup, [GOOD, BAD], HEADERS, "ctx")

    assert [g.name for g in result.records] == ["Sailing"]
    assert failing_gateway.calls == 1
    assert result.alert_sent is False
    assert "Failed to send validation error alert for ctx" in caplog.text


def test_injected_logger_receives_row_errors(gateway, now: datetime, caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("tests.batch")
    with caplog.at_level(logging.ERROR, logger="tests.batch"):
        BatchValidator(gateway, logger=logger, clock=lambda: now).validate_rows(PublicGroup, [BAD], HEADERS, "ctx")
    assert {r.name for r in caplog.records} == {"tests.batch"}


def test_module_level_validate_rows_uses_default_recipient(gateway) -> None:
    result = validate_rows(PublicGroup, [BAD], HEADERS, "ctx", alerts=gateway)
    assert result.records == []
    assert gateway.sent[0].to == "membership-automation@sc3.club"


## -- properties over arbitrary mixes of good and bad rows

rows_strategy = st.lists(
    st.one_of(
        st.just(GOOD),
        st.just(BAD),
        st.lists(st.one_of(st.none(), st.text(max_size=6), st.integers()), min_size=0, max_size=4),
    ),
    max_size=25,
)


@settings(max_examples=100)
@given(rows=rows_strategy)
def test_every_row_is_either_kept_or_reported(rows: list) -> None:
    gw = _Recorder()
    result = BatchValidator(gw).validate_rows(PublicGroup, rows, HEADERS, "ctx")
    assert len(result.records) + len(result.errors) == len(rows)


@settings(max_examples=100)
@given(rows=rows_strategy)
def test_at_most_one_alert_per_batch(rows: list) -> None:
    gw = _Recorder()
    result = BatchValidator(gw).validate_rows(PublicGroup, rows, HEADERS, "ctx")
    assert len(gw.sent) == (1 if len(result.errors) else 0)


@settings(max_examples=100)
@given(rows=rows_strategy)
def test_alert_failure_does_not_change_the_records(rows: list) -> None:
    ok = BatchValidator(_Recorder()).validate_rows(PublicGroup, rows, HEADERS, "ctx")
    broken = BatchValidator(_Broken()).validate_rows(PublicGroup, rows, HEADERS, "ctx")
    assert broken.records == ok.records
