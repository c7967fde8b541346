"""Tests for shaping parsed forensic responses into complete reports."""

import json

from sla_core_lib.core.forensics.adapter import (
    DEFAULT_INSIGHT_SUMMARY,
    DEFAULT_SENTIMENT_SUMMARY,
    FLAT_EMPLOYEE_SUMMARY,
    adapt_forensic_response,
    adapt_simple_response,
    is_empty_analysis,
)

NESTED = {
    "employeeRemarkAnalysis": {
        "summary": "Officer requested documents twice",
        "totalEmployeeRemarks": "2",
        "keyActions": ["Requested NOC", {"text": "Forwarded file"}],
        "responseTimeliness": "Slow",
        "communicationClarity": "High",
        "inactionFlags": [{"observation": "Idle 5 days", "evidence": "No remark 03/01-03/06"}],
    },
    "applicantRemarkAnalysis": {"summary": "Applicant replied late", "totalApplicantRemarks": 1},
    "delayAnalysis": {
        "primaryDelayCategory": "Documentation Issues",
        "primaryCategoryConfidence": "85%",
        "categorySummary": "NOC missing",
        "allApplicableCategories": [{"category": "Process", "confidence": 150, "reasoning": "loops"}],
        "painPoints": "Repeated requests",
        "documentClarityAnalysis": {"documentClarityProvided": True, "documentNames": ["NOC"]},
    },
    "sentimentSummary": "Frustrated",
    "ticketInsightSummary": "Delay driven by missing NOC",
}


class TestNested:

    def test_full_response(self):
        report = adapt_forensic_response("T-1", NESTED)

        assert report.ticket_id == "T-1"
        assert not report.adapted
        employee = report.employee_remark_analysis
        assert employee.total_employee_remarks == 2
        assert employee.key_actions == ["Requested NOC", "Forwarded file"]
        assert employee.inaction_flags[0].observation == "Idle 5 days"
        delay = report.delay_analysis
        assert delay.primary_category_confidence == 0.85
        assert delay.all_applicable_categories[0].confidence == 1.0
        assert delay.pain_points == ["Repeated requests"]
        assert delay.document_clarity_analysis.document_names == ["NOC"]
        assert report.sentiment_summary == "Frustrated"

    def test_missing_sections_take_defaults(self):
        report = adapt_forensic_response("T-1", {"employeeRemarkAnalysis": {"summary": "x"}})
        assert report.adapted
        assert report.applicant_remark_analysis.summary == "No applicant remarks available"
        assert report.delay_analysis.primary_delay_category == "Unknown"
        assert report.delay_analysis.category_summary == "Analysis incomplete"
        assert report.sentiment_summary == DEFAULT_SENTIMENT_SUMMARY
        assert report.ticket_insight_summary == DEFAULT_INSIGHT_SUMMARY

    def test_bad_numbers_degrade_to_zero(self):
        report = adapt_forensic_response("T-1", {
            "employeeRemarkAnalysis": {"totalEmployeeRemarks": "many"},
            "delayAnalysis": {"primaryCategoryConfidence": "high"},
        })
        assert report.employee_remark_analysis.total_employee_remarks == 0
        assert report.delay_analysis.primary_category_confidence == 0.0

    def test_non_finite_numbers_degrade_to_zero(self):
        parsed = json.loads(
            '{"employeeRemarkAnalysis": {"summary": "x", "totalEmployeeRemarks": 1e999},'
            ' "applicantRemarkAnalysis": {"summary": "y", "totalApplicantRemarks": -Infinity},'
            ' "delayAnalysis": {"primaryCategoryConfidence": NaN}}'
        )
        report = adapt_forensic_response("T-1", parsed)
        assert report.employee_remark_analysis.total_employee_remarks == 0
        assert report.applicant_remark_analysis.total_applicant_remarks == 0
        assert report.delay_analysis.primary_category_confidence == 0.0
        assert is_empty_analysis(parsed)


class TestFlat:

    def test_summary_fields_are_mapped(self):
        report = adapt_forensic_response("T-9", {
            "summary": "Clerk sat on the file",
            "rootCause": "Missing NOC",
            "category": "Documentation Issues",
            "sentimentSummary": "Frustrated",
            "applicantAnalysis": "Applicant responsive",
        })

        assert report.adapted
        assert report.employee_remark_analysis.summary == "Clerk sat on the file"
        assert report.applicant_remark_analysis.summary == "Applicant responsive"
        assert report.delay_analysis.primary_delay_category == "Documentation Issues"
        assert report.delay_analysis.category_summary == "Missing NOC"
        assert report.ticket_insight_summary == "Clerk sat on the file"
        assert report.sentiment_summary == "Frustrated"

    def test_delay_only_response(self):
        report = adapt_forensic_response("T-9", {
            "delayAnalysis": {"primaryDelayCategory": "Process Bottlenecks", "primaryCategoryConfidence": 0.9},
        })
        assert report.employee_remark_analysis.summary == FLAT_EMPLOYEE_SUMMARY
        assert report.delay_analysis.primary_delay_category == "Process Bottlenecks"
        assert report.delay_analysis.primary_category_confidence == 0.9
        assert report.ticket_insight_summary == DEFAULT_INSIGHT_SUMMARY


def test_unrecognised_shapes_are_rejected():
    assert adapt_forensic_response("T-1", {"foo": 1}) is None
    assert adapt_forensic_response("T-1", [NESTED]) is None
    assert adapt_forensic_response("T-1", None) is None


class TestEmptyAnalysis:

    def test_empty_shapes(self):
        assert is_empty_analysis({})
        assert is_empty_analysis("text")
        assert is_empty_analysis({"employeeRemarkAnalysis": {"summary": "x", "totalEmployeeRemarks": 0}})
        assert is_empty_analysis({"employeeRemarkAnalysis": {"summary": "", "totalEmployeeRemarks": 3}})

    def test_either_side_with_content(self):
        assert not is_empty_analysis(NESTED)
        assert not is_empty_analysis({
            "applicantRemarkAnalysis": {"summary": "Replied", "totalApplicantRemarks": 1},
        })


def test_simple_response_expands_to_full_report():
    report = adapt_simple_response("PLAYGROUND", {
        "employeeActions": "Asked for NOC",
        "applicantActions": "",
        "delayReason": "Documentation",
        "sentiment": "Negative",
    })

    assert report.adapted
    assert report.employee_remark_analysis.summary == "Asked for NOC"
    assert report.employee_remark_analysis.total_employee_remarks == 1
    assert report.employee_remark_analysis.communication_clarity == "Medium"
    assert report.applicant_remark_analysis.summary == "No applicant actions detected"
    assert report.applicant_remark_analysis.total_applicant_remarks == 0
    assert report.delay_analysis.primary_category_confidence == 0.7
    assert report.delay_analysis.category_summary == "Identified delay reason: Documentation"
    assert report.ticket_insight_summary == "Fallback analysis: Documentation"
    assert report.sentiment_summary == "Negative"


def test_simple_response_rejects_other_shapes():
    assert adapt_simple_response("PLAYGROUND", {"summary": "x"}) is None
    assert adapt_simple_response("PLAYGROUND", None) is None
