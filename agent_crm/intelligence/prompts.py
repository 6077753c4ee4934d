"""Prompt templates for every generative call the engine makes."""

import json
from typing import Any, Dict, List, Optional

from agent_crm.core.config import CompanyProfile
from agent_crm.models import EmailCampaign, Lead, Meeting, SignalKind


SALES_ANALYST_SYSTEM = """You are a sales operations analyst who has reviewed
thousands of sales conversations. You are objective, evidence-based and
clear about uncertainty. When asked for JSON you return only JSON."""

SALES_ASSISTANT_SYSTEM = """You are a professional sales assistant. You write
concise, friendly emails that move the conversation forward without being pushy."""


# ===========================================
# Structured signal prompts
# ===========================================

def meeting_transcript_prompt(transcript: str) -> str:
    return f"""Analyze this sales meeting transcript and provide a JSON response.

Transcript:
{json.dumps(transcript)}

Respond ONLY with valid JSON in this exact format (no other text):
{{
  "confidence": 0.75,
  "sentiment": "positive",
  "concerns": ["budget", "timing"],
  "nextActions": ["send proposal", "schedule followup"],
  "alertManager": {{ "needed": false, "reason": "conversation going well" }}
}}

Your response:"""


def email_signal_prompt(email_content: str) -> str:
    return f"""Analyze this email reply for sales deal signals. Extract:
1. Budget mentions (amount if specified)
2. Timeline mentions (close date if specified)
3. Stage indicators (keywords like "demo scheduled", "proposal sent", "contract sent",
   "pricing discussed", "final approval", "signed agreement", "another vendor", "not interested")
4. Sentiment (positive/negative/neutral)
5. Next action needed

Email content: {email_content}

Return JSON: {{ "budget_amount": number|null, "close_date": string|null, "stage_signal": string|null, "sentiment": string, "next_action": string }}"""


def reply_sentiment_prompt(reply_content: str) -> str:
    return f"""Analyze the sentiment of this email reply and rate it from 0 to 1
(0 = very negative, 0.5 = neutral, 1 = very positive).
Only respond with a number between 0 and 1.

Email: {reply_content}"""


def signal_prompt(kind: SignalKind, text: str) -> str:
    """User prompt for a structured signal of the given kind."""
    if kind == SignalKind.MEETING_TRANSCRIPT:
        return meeting_transcript_prompt(text)
    if kind == SignalKind.EMAIL_REPLY:
        return email_signal_prompt(text)
    return reply_sentiment_prompt(text)


# ===========================================
# Free-text prompts
# ===========================================

def meeting_preparation_prompt(lead: Lead, previous: List[EmailCampaign]) -> str:
    interactions = [
        {
            "subject": campaign.subject,
            "sentAt": campaign.sent_at.isoformat() if campaign.sent_at else None,
            "status": campaign.draft_status,
        }
        for campaign in previous
    ]
    return f"""You are preparing for a sales meeting. Generate 5 key talking points and 3 potential objections with responses.

Lead Context:
- Name: {lead.name or 'Unknown'}
- Company: {lead.company or 'Unknown'}
- Lead Score: {lead.lead_score}
- Status: {lead.status.value}
- Notes: {lead.notes or 'No prior notes'}

Previous Interactions: {json.dumps(interactions)}

Format:
TALKING POINTS:
1. [Point]
2. [Point]
...

POTENTIAL OBJECTIONS:
1. [Objection] -> [Response]
..."""


def live_session_instruction(lead: Lead, meeting: Meeting, alert_threshold: float) -> str:
    return f"""You are an AI sales agent in a meeting with {lead.name or 'the prospect'} from {lead.company or 'their company'}.

Your goal: Close the deal by addressing concerns, highlighting value, and moving toward commitment.

Context:
- Lead Score: {lead.lead_score}
- Status: {lead.status.value}
- Notes: {lead.notes or 'No prior notes'}
- Meeting Notes: {meeting.agent_notes or 'No preparation notes'}

Guidelines:
1. Be professional, friendly, and solution-focused
2. Listen actively and address objections directly
3. Continuously assess sentiment (0-1 scale)
4. If confidence drops below {alert_threshold}, prepare to alert manager
5. Try to identify next steps or commitment

Response format after each exchange:
[CONFIDENCE: 0.X] [SENTIMENT: positive/neutral/negative]
Then your verbal response."""


def meeting_summary_prompt(transcript: str) -> str:
    return f"""Summarize this sales meeting in 3-4 sentences. Include:
- What was discussed
- Any commitments made
- Next steps
- Overall outcome

Transcript:
{transcript}"""


def reply_draft_prompt(lead: Optional[Lead], reply_content: str, profile: CompanyProfile) -> str:
    name = lead.name if lead else None
    company = lead.company if lead else None
    industry = lead.industry if lead else None
    return f"""Draft a friendly, professional email response on behalf of {profile.company} to this lead's reply.

Lead Info:
Name: {name or 'Unknown'}
Company: {company or 'Unknown'}
Industry: {industry or 'Unknown'}

Their Reply:
{reply_content}

Draft a response that:
- Addresses their concerns or questions
- Maintains enthusiasm and professionalism
- Moves the conversation toward scheduling a meeting
- Is concise (max 150 words)

Only provide the email body, no subject line."""


def followup_draft_prompt(
    lead: Lead,
    days_since_contact: int,
    sequence: int,
    previous: Optional[EmailCampaign],
    profile: CompanyProfile
) -> str:
    history = (
        f"Previous email subject: {previous.subject}"
        if previous else "This is the first follow-up"
    )
    return f"""Draft a friendly follow-up email from {profile.company} ({profile.industry}) for a lead who hasn't responded in {days_since_contact} days.
This is follow-up #{sequence}.

Lead Info:
Name: {lead.name or 'Unknown'}
Company: {lead.company or 'Unknown'}
Industry: {lead.industry or 'Unknown'}
Status: {lead.status.value}

{history}

Requirements:
- Be friendly but not pushy
- Reference why we reached out initially
- Provide value (insight about their industry)
- Ask if they're interested or if timing is better later
- Keep it under 120 words
- End with a clear call-to-action

Provide the email in JSON format:
{{
  "subject": "email subject here",
  "body": "email body here"
}}"""


def deal_value_prompt(lead: Lead, default_value: int) -> str:
    return f"""Based on this lead's intent, estimate a realistic deal value in USD. Return only a number.

Intent: {lead.intent or 'Unknown'}
Company: {lead.company or 'Unknown'}
Industry: {lead.industry or 'Unknown'}

If no clear value can be determined, return {default_value} as default."""


def context_block(context: Dict[str, Any]) -> str:
    """Render caller-supplied context as prompt lines."""
    if not context:
        return ""
    lines = [f"- {key}: {value}" for key, value in context.items() if value is not None]
    return "Context:\n" + "\n".join(lines) + "\n\n"
