"""Single-deal verification prompt."""

VERIFICATION_SYSTEM_PROMPT = 'You are an M&A verification assistant. Return only valid JSON.'

VERIFICATION_USER_PROMPT_TEMPLATE = """Verify this M&A deal:
- Acquirer: {acquirer}
- Target: {target}
- Approximate announcement date: {approx_date}

Is this a real M&A deal? If yes, provide:
1. Confirmed deal value in USD
2. Current status (Announced, Pending, Completed, Withdrawn)
3. Exact announcement date
4. Any updated information

Return JSON:
{{
  "verified": true/false,
  "value_usd": number or null,
  "status": "status or null",
  "announced_date": "YYYY-MM-DD or null",
  "synopsis": "brief description"
}}"""


def build_verification_prompt(acquirer: str, target: str, approx_date: str) -> list[dict[str, str]]:
    return [
        {'role': 'system', 'content': VERIFICATION_SYSTEM_PROMPT},
        {
            'role': 'user',
            'content': VERIFICATION_USER_PROMPT_TEMPLATE.format(
                acquirer=acquirer,
                target=target,
                approx_date=approx_date,
            ),
        },
    ]
