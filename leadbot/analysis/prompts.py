"""Prompt templates for Claude conversation analysis."""

from typing import Dict, Sequence

KNOWLEDGE_BASE = """# LogiFit
LogiFit helps transport and mining fleets prevent accidents caused by driver fatigue and drowsiness.

Products:
- Fatigue monitoring cameras: in-cab camera that detects micro-sleeps, yawning and distraction, and alerts the driver in real time.
- Smart band for drivers: wearable that tracks sleep quality and flags drivers who start a shift without enough rest.
- LogiFit control center: web dashboard with alerts, driver risk ranking and monthly safety reports.

Sales process:
1. Discovery call with an advisor (20-30 minutes)
2. Personalized demo with the prospect's fleet data
3. Pilot on a few units
4. Formal proposal

Rules:
- Prices depend on fleet size and are quoted after the discovery call. Never invent prices or features.
- If you do not know an answer, offer to check with a specialist.
- If the prospect is frustrated, offer to connect them with a human advisor."""

SYSTEM_PROMPT = f"""You are a friendly, professional sales assistant for LogiFit chatting with prospects on WhatsApp.

{KNOWLEDGE_BASE}

Always answer in Spanish, in at most 3 short paragraphs, in a warm tone suitable for WhatsApp.
When the prospect shows clear buying interest, suggest a call with an advisor."""

CLASSIFIER_SYSTEM_PROMPT = """You classify messages written by sales prospects.
Respond ONLY with what is asked. Never add explanations outside the requested format."""


def build_identity_prompt(message: str) -> str:
    """Build prompt extracting name and company from a greeting reply."""
    return f"""Analyze this message from a prospect and extract their name and company (if mentioned).

Message: "{message}"

Respond ONLY with a JSON object in this exact format:
{{
  "name": "person name or null",
  "company": "company name or null",
  "is_independent": true or false,
  "declined": true if the person refuses to give their name, otherwise false
}}"""


def build_role_prompt(message: str) -> str:
    """Build prompt classifying a prospect's job role."""
    return f"""A prospect at a transport company was asked about their role. Their answer:

"{message}"

Respond ONLY with a JSON object in this exact format:
{{
  "role": "role as stated, short",
  "is_decision_maker": true or false,
  "areas": ["zero or more of: transporte, logistica, seguridad, operaciones, direccion, mantenimiento, recursos_humanos"]
}}

A decision maker owns or manages the budget (owner, CEO, general manager, director, head of a department)."""


def build_interest_prompt(answers: Dict[str, str]) -> str:
    """Build prompt scoring purchase interest from the qualification answers.

    Args:
        answers: Question text to the prospect's answer

    Returns:
        Formatted prompt string
    """
    qa_lines = "\n".join(f"Q: {q}\nA: {a}" for q, a in answers.items())
    return f"""Evaluate the purchase interest of a prospect for a driver fatigue-monitoring solution, based on this conversation:

{qa_lines or "(no answers yet)"}

Respond ONLY with a JSON object in this exact format:
{{
  "high_interest": true or false,
  "interest_score": integer from 1 to 10,
  "should_offer_appointment": true or false,
  "reasoning": "one sentence"
}}"""


def build_choice_prompt(question: str, message: str, choices: Sequence[str]) -> str:
    """Build prompt reducing a free-text reply to one of a closed set of tokens."""
    options = " or ".join(f'"{c}"' for c in choices)
    return f"""{question}

Prospect's reply: "{message}"

Respond with exactly one word: {options}."""


def build_inquiry_prompt(context: Dict[str, str], message: str) -> str:
    """Build prompt answering a prospect's free-form question."""
    known = "\n".join(f"- {k}: {v}" for k, v in context.items() if v)
    return f"""What we know about the prospect:
{known or "- nothing yet"}

Prospect's message: "{message}"

Answer the prospect directly."""
