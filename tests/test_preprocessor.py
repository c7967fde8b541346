"""Tests for rendering statistics and ticket histories into prompt text."""

from sla_core_lib.core.preprocessing.data_preprocessor import (
    NO_HISTORY,
    build_ticket_transcript,
    format_generic_transcript,
    format_red_flags,
    format_risk_applications,
    last_value,
    preprocess_statistics,
)
from sla_core_lib.core.statistics.engine import analyze_workflow_data
from sla_core_lib.models.statistics import RiskApplication, RiskCategory


def test_ticket_transcript_lines(step_factory):
    steps = [
        step_factory(event_timestamp="03/01/2024 10:00", remark_from="Clerk", remark='Marked "urgent"'),
        step_factory(remark_from="Reply from Applicant", remark="Uploaded deed"),
    ]
    transcript = build_ticket_transcript(steps)
    assert transcript.splitlines() == [
        "[03/01/2024 10:00] lifetimeRemarksFrom: \"Clerk\" | lifetimeRemarks: \"Marked 'urgent'\"",
        "[Unknown Date] lifetimeRemarksFrom: \"Reply from Applicant\" | lifetimeRemarks: \"Uploaded deed\"",
    ]
    assert build_ticket_transcript([]) == NO_HISTORY


class TestGenericTranscript:

    def test_tab_separated_columns(self):
        text = "Reply from Applicant\tI uploaded the deed\nPlease submit NOC\tJDA Official"
        assert format_generic_transcript(text) == (
            "Source: Reply from Applicant\nContent: I uploaded the deed\n"
            "\n"
            "Source: JDA Official\nContent: Please submit NOC\n"
        )

    def test_plain_lines_guess_their_source(self):
        text = "Applicant called the office\n\nfile sent upstairs"
        assert format_generic_transcript(text) == (
            "Source: Reply from Applicant\nContent: Applicant called the office\n"
            "\n"
            "Source: Unknown Source\nContent: file sent upstairs\n"
        )

    def test_existing_transcript_is_unchanged(self):
        text = '[x] lifetimeRemarksFrom: "A" | lifetimeRemarks: "B"'
        assert format_generic_transcript(text) == text


def test_risk_rows_are_limited():
    risk = RiskApplication(
        ticket_id="T-1", service_name="Mutation", role="Clerk", zone="2", days_rested=12,
        z_score=3.21, risk_score=16, category=RiskCategory.MEDIUM, remark="x" * 200,
    )
    rendered = format_risk_applications([risk] * 12, limit=10)
    assert len(rendered.splitlines()) == 10
    assert "z=3.21" in rendered
    assert rendered.splitlines()[0].endswith("...")
    assert format_risk_applications([]) == "None"
    assert format_red_flags([]) == "None detected"


def test_statistics_overview_is_bounded(step_factory):
    stats = analyze_workflow_data([step_factory(ticket_id=f"T-{i}", days_rested=i) for i in range(3)])
    overview = preprocess_statistics(stats)
    assert overview.startswith("## OVERVIEW")
    assert "Tickets: 3" in overview

    short = preprocess_statistics(stats, max_chars=120)
    assert len(short) == 120
    assert short.endswith("characters.]")


def test_last_value_skips_blank_and_unknown(step_factory):
    steps = [step_factory(role="Clerk"), step_factory(role="Unknown"), step_factory(role="")]
    assert last_value(steps, "role", "n/a") == "Clerk"
    assert last_value([], "role", "n/a") == "n/a"
