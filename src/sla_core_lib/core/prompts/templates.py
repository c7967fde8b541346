"""Prompt templates for the generative stage.

Templates are opaque strings with ``{{variable}}`` placeholders rendered by
interpolate(). Unknown placeholders are left in place.
"""

import re
from typing import Any, Mapping

_PLACEHOLDER_RE = re.compile(r"\{\{(\s*\w+\s*)\}\}")


def interpolate(template: str, variables: Mapping[str, Any]) -> str:
    """Replace {{var}} placeholders with values"""
    def replacer(match):
        key = match.group(1).strip()
        if key not in variables or variables[key] is None:
            return match.group(0)
        return str(variables[key])
    return _PLACEHOLDER_RE.sub(replacer, template)


ANALYST_SYSTEM_PROMPT = (
    "You are a data analyst for a government development authority, specializing in "
    "application processing performance. Only use the data provided. Never invent ticket "
    "IDs. Cite specific metrics."
)

JSON_ONLY_SYSTEM_PROMPT = "You are a forensic data auditor. Output valid JSON only."

ANOMALY_ANALYSIS_PROMPT = """Analyze the SLA performance data for project "{{projectName}}".

CONTEXT:
Total Tickets: {{totalTickets}}
Workflow Steps: {{totalWorkflowSteps}}
Top Performers: {{topPerformers}}
High Risk Apps:
{{highRiskApps}}
Anomaly Count: {{anomalyCount}}
Avg Processing Time: {{avgProcessingTime}} days
Bottleneck Role: {{bottleneckRole}} ({{bottleneckCases}} cases, {{bottleneckAvgDelay}} avg delay)

{{statisticsOverview}}

Answer in two labelled parts:
PATTERNS: the recurring delay patterns, citing roles, zones or tickets.
ROOT CAUSE: the single most critical bottleneck with its exact average delay.
"""

BOTTLENECK_PREDICTION_PROMPT = """Based on the following bottleneck data:
{{bottleneckData}}

Predict the bottleneck most likely to worsen over the next 30 days and explain why using
the maxDelay and avgDelay data points. Start your answer with "PREDICTION:".
"""

RECOMMENDATIONS_PROMPT = """You are an SLA workflow optimization expert.

Current Data Points:
- Anomaly Count: {{anomalyCount}}
- Average Time: {{avgProcessingTime}} days
- Critical Bottleneck: {{bottleneckRole}} ({{bottleneckAvgDelay}} days avg)
- Top Performers: {{topPerformers}}
- Primary Zones: {{primaryZones}}

Provide 3 concrete recommendations, max 10 words each, using action verbs and naming
specific roles or zones.

Format:
1. [Recommendation]
2. [Recommendation]
3. [Recommendation]"""

TABULAR_INSIGHTS_PROMPT = """You are a senior SLA diagnostic auditor. Find the logical reason for delays
and identify internal red flags where employees may be forcefully delaying tickets.

Employee Context:
{{topPerformers}}

Behavioral Red Flags (detected):
{{behavioralRedFlags}}

Zone Context:
{{zonePerformance}}

At-Risk Applications:
{{riskApplications}}

Generate 5 markdown tables. Use EXACTLY these headers to start sections:
## PART_EMPLOYEE, ## PART_ZONE, ## PART_BREACH, ## PART_PRIORITY, ## PART_RED_FLAGS.
The PART_EMPLOYEE table must only list government officials, never applicants.
Translate mixed-language remarks to English. Keep each table to at most 7 rows.
"""

FORENSIC_ANALYSIS_PROMPT = """You are an internal auditor. Analyze the conversation history of one ticket
and classify its delays.

Ticket Context:
- Ticket ID: {{ticketId}}
- Service: {{flowType}} ({{flowTypeParent}})
- Employee Name: {{employeeName}}
- Current Stage: {{stage}}
- Total Delay: {{totalDelay}} days

Conversation History (chronological):
{{conversationHistory}}

Delay categories: Documentation Issues, Communication Gaps, Process Bottlenecks,
Applicant-Side Issues, Employee/System-Side Issues, External Dependencies,
Complexity/Special Cases. Quote the remark that proves each finding. If an officer
repeats the same remark for many days, flag it as a forceful delay.

Output JSON:
{
  "employeeRemarkAnalysis": {"summary": "", "totalEmployeeRemarks": 0, "keyActions": [],
    "responseTimeliness": "", "communicationClarity": "",
    "inactionFlags": [{"observation": "", "evidence": ""}]},
  "applicantRemarkAnalysis": {"summary": "", "totalApplicantRemarks": 0, "keyActions": [],
    "responseTimeliness": "", "sentimentTrend": "", "complianceLevel": ""},
  "delayAnalysis": {"primaryDelayCategory": "", "primaryCategoryConfidence": 0.0,
    "categorySummary": "", "allApplicableCategories": [{"category": "", "confidence": 0.0, "reasoning": ""}],
    "processGaps": [], "painPoints": [],
    "forcefulDelays": [{"reason": "", "confidence": 0.0, "category": "", "evidence": "", "recommendation": ""}]},
  "sentimentSummary": "",
  "ticketInsightSummary": ""
}
Respond ONLY with valid JSON using double quotes for all keys and values.
"""

SIMPLE_REMARK_PROMPT = """You are a forensic auditor. Analyze these remarks briefly.
INPUT:
{{conversationHistory}}

OUTPUT JSON ONLY:
{
  "employeeActions": "Summary of what employee did",
  "applicantActions": "Summary of what applicant did",
  "delayReason": "Choose one: Documentation, Process, Communication, External, Internal",
  "sentiment": "Positive/Neutral/Negative"
}
"""

HIERARCHY_REFINEMENT_PROMPT = """You are an expert government process analyst.
Context:
- Service: {{serviceName}}
- Role: {{role}}
- Days Rested: {{daysRested}}
- Remarks: {{remarks}}

Task:
1. Summarize the remarks into one clear English sentence explaining the status or delay.
2. Describe the employee's handling and the applicant's part in one sentence each.
3. Confirm the delay category: Documentation Issues, Communication Gaps, Process Bottlenecks,
   Applicant-Side Issues, Employee/System-Side Issues, External Dependencies,
   Complexity/Special Cases.

Return JSON:
{"englishSummary": "...", "employeeAnalysis": "...", "applicantAnalysis": "...", "category": "..."}
Use double quotes for all keys and values; use single quotes for measurements (e.g. 50'x80').
"""


# ============================================================
# Metric intelligence
# ============================================================

METRIC_ANOMALY_SYSTEM_PROMPT = (
    "You are a specialized system for SLA monitoring and anomaly detection. You analyze metrics "
    "using statistical methods and provide actionable insights. Always respond in valid JSON. "
    "Be precise with numbers and conservative with severity."
)

METRIC_ANOMALY_PROMPT = """You are an expert SLA monitoring system analyzing metrics for anomalies.

Current Metric Data:
- Metric Name: {{metricName}}
- Current Value: {{currentValue}}
- Timestamp: {{timestamp}}

Historical Context:
- Historical Mean: {{historicalMean}}
- Standard Deviation: {{historicalStdDev}}
- Calculated Z-Score: {{zScore}}
- Sample Size: {{sampleSize}} data points
- Recent Values: [{{recentValues}}]

Decide whether the current value is anomalous from the z-score (|z| >= {{warningThreshold}}
is an anomaly), the recent trend and the business context of SLA metrics.

Output JSON:
{"isAnomaly": true, "severity": "NORMAL | WARNING | CRITICAL", "score": 0,
 "explanation": "why this is or is not anomalous", "confidence": 0.0}

Severity: NORMAL below |z| {{warningThreshold}}, WARNING from {{warningThreshold}},
CRITICAL from {{criticalThreshold}}. Score is 0-100, confidence 0-1.
Respond ONLY with valid JSON.
"""

METRIC_PREDICTION_SYSTEM_PROMPT = (
    "You are a forecasting system for SLA and performance metrics. You combine statistical "
    "analysis with domain knowledge. Always respond in valid JSON. Be conservative with "
    "predictions and honest about uncertainty."
)

METRIC_PREDICTION_PROMPT = """You are an expert time-series forecasting system for SLA metrics.

Historical Data:
- Metric Name: {{metricName}}
- Unit: {{unit}}
- Data Points: {{dataPoints}}
- Recent Values (last {{windowSize}}): [{{recentValues}}]
- Recent Timestamps: [{{recentTimestamps}}]

Statistical Analysis:
- Trend Direction: {{trend}}
- Average Change Per Point: {{averageChange}}
- Current Value: {{currentValue}}
- 7-point Average: {{sevenPointAverage}}

Predict the next {{horizonDays}} daily values. Confidence should fall for longer horizons;
SLA metrics have natural bounds, and day-of-week patterns matter when visible.

Output JSON:
{"predictions": [{"timestamp": "YYYY-MM-DD", "predictedValue": 0.0, "confidence": 0.0}],
 "trend": "INCREASING | DECREASING | STABLE",
 "explanation": "brief rationale",
 "modelUsed": "Statistical trend analysis with LLM reasoning"}
Respond ONLY with valid JSON.
"""

ALERT_SYSTEM_PROMPT = (
    "You are an alert generation system for SLA monitoring. You write clear, actionable alerts "
    "that help operations teams respond quickly. Always respond in valid JSON."
)

ALERT_PROMPT = """You are an SLA alert generation system creating actionable alerts for operations teams.

Alert Context:
- Metric Name: {{metricName}}
- Current Value: {{currentValue}}
- Threshold: {{threshold}}
- Deviation: {{deviation}}%
- Severity: {{severity}}
{{additionalContext}}

Say what happened, why it matters and what to do. Use plain, non-technical language,
keep the message under {{maxLength}} characters and match urgency to severity
(WARNING=MEDIUM, CRITICAL=HIGH).

Output JSON:
{"message": "alert text", "recommendation": "concrete action steps", "urgency": "LOW | MEDIUM | HIGH"}
Respond ONLY with valid JSON.
"""

QUERY_SYSTEM_PROMPT = "You are an expert SLA monitoring assistant. Provide clear, concise answers."

CHATBOT_SYSTEM_PROMPT = """You are an assistant for government SLA (Service Level Agreement) intelligence.

Your role:
- Help officers understand SLA compliance, risks and bottlenecks
- Explain anomalies, processing delays and workflow issues
- Recommend concrete actions that avoid SLA breaches

Style: concise and actionable (2-3 sentences for simple questions), professional,
in the language of the question (Hindi or English). Cite metrics when available.

Rules:
1. Only use data from the "Current Project Context" section below.
2. Never invent ticket IDs, dates or other specifics.
3. Without project data, say: "I don't have specific ticket details loaded. Please select a project or upload CSV data."
4. Refer to tickets only by the exact IDs in the context.
5. For a ticket missing from the context, say: "I don't see that ticket in the current project data."
"""
