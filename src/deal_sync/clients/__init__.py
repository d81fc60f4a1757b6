"""
External service clients for the deal sync pipeline.
"""

from .edgar_client import EdgarClient
from .logo_client import LogoClient
from .perplexity_client import PerplexityClient
from .postgres_client import PostgresClient

__all__ = [
    'EdgarClient',
    'LogoClient',
    'PerplexityClient',
    'PostgresClient',
]
