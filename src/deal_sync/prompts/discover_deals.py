"""
Regional M&A discovery prompt.

The response is parsed leniently into deal_sync.models.raw.DiscoveryResponse;
citations come back out-of-band on the completion, not in the JSON body.
"""


# =============================================================================
# System Prompt
# =============================================================================

DISCOVERY_SYSTEM_PROMPT = (
    'You are an M&A research assistant. Return only valid JSON without markdown formatting.'
)


# =============================================================================
# User Prompt
# =============================================================================

DISCOVERY_USER_PROMPT_TEMPLATE = """Find M&A (mergers and acquisitions) deals announced in {region} in the last {days_back} days.

Requirements:
- Only include deals with enterprise value over $500 million USD
- Include announced, pending, completed, and rumored deals

For each deal, provide:
1. Acquirer company name
2. Target company name
3. Deal value in USD
4. Status (Announced, Pending, Completed, Rumored)
5. Announcement date (YYYY-MM-DD format)
6. Sector (Technology, Healthcare, Financial Services, Energy, etc.)
7. A brief synopsis (1-2 sentences)
8. Deal rationale, payment structure (cash, stock, mixed) and breakup fee, if reported
9. Website domains of the acquirer and target, if known

Return the data as JSON with this structure:
{{
  "deals": [
    {{
      "acquirer": "Company A",
      "target": "Company B",
      "value_usd": 5000000000,
      "status": "Announced",
      "announced_date": "2025-01-15",
      "sector": "Technology",
      "geography": "{region}",
      "synopsis": "Company A announced acquisition of Company B...",
      "rationale": "Expands Company A's cloud portfolio",
      "payment_structure": "All cash",
      "breakup_fee": "$150 million",
      "acquirer_domain": "companya.com",
      "target_domain": "companyb.com"
    }}
  ]
}}

Only return valid JSON. Do not include any markdown or explanation."""


def build_discovery_prompt(region: str, days_back: int) -> list[dict[str, str]]:
    """
    Build discovery prompt messages for one region.

    Args:
        region: Region name, e.g. "Europe"
        days_back: Lookback window in days

    Returns:
        List of message dicts for chat completion
    """
    return [
        {'role': 'system', 'content': DISCOVERY_SYSTEM_PROMPT},
        {
            'role': 'user',
            'content': DISCOVERY_USER_PROMPT_TEMPLATE.format(region=region, days_back=days_back),
        },
    ]
