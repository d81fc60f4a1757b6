"""
LLM prompts for the deal sync pipeline.

Provides system and user prompts for:
- Regional deal discovery
- Single-deal verification
"""

from .discover_deals import build_discovery_prompt
from .verify_deal import build_verification_prompt

__all__ = ['build_discovery_prompt', 'build_verification_prompt']
