"""
Raw record shapes returned by the source and verification collaborators.

These mirror the loosely-typed JSON the upstream services produce. Every
field is optional and validation is lenient: unknown keys are ignored and
values of the wrong type become None instead of raising, so one malformed
record never poisons a whole response. Conversion into the strict
CandidateDeal shape happens in pipeline.coercion.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _number_or_text(value: Any) -> int | float | str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, str)):
        return value
    return None


class _Lenient(BaseModel):
    model_config = ConfigDict(extra='ignore')


class RawSource(_Lenient):
    """Citation attached to a discovered deal."""

    url: str | None = None
    publication: str | None = None

    @field_validator('url', 'publication', mode='before')
    @classmethod
    def _coerce_text(cls, v: Any) -> str | None:
        return _text_or_none(v)


class RawFiling(_Lenient):
    """A deal-shaped record parsed from an SEC EDGAR filing."""

    acquirer: str | None = None
    target: str | None = None
    value_usd: int | float | str | None = None
    announced_date: str | None = None
    source_url: str | None = None
    description: str | None = None
    accession_number: str | None = None
    form_type: str | None = None

    @field_validator(
        'acquirer', 'target', 'announced_date', 'source_url',
        'description', 'accession_number', 'form_type',
        mode='before',
    )
    @classmethod
    def _coerce_text(cls, v: Any) -> str | None:
        return _text_or_none(v)

    @field_validator('value_usd', mode='before')
    @classmethod
    def _coerce_value(cls, v: Any) -> int | float | str | None:
        return _number_or_text(v)


class RawDiscoveredDeal(_Lenient):
    """A deal as returned by the LLM discovery search."""

    acquirer: str | None = None
    target: str | None = None
    value_usd: int | float | str | None = None
    status: str | None = None
    announced_date: str | None = None
    sector: str | None = None
    geography: str | None = None
    synopsis: str | None = None
    rationale: str | None = None
    payment_structure: str | None = None
    breakup_fee: str | None = None
    acquirer_domain: str | None = None
    target_domain: str | None = None
    sources: list[RawSource] = Field(default_factory=list)

    @field_validator(
        'acquirer', 'target', 'status', 'announced_date', 'sector', 'geography',
        'synopsis', 'rationale', 'payment_structure', 'breakup_fee',
        'acquirer_domain', 'target_domain',
        mode='before',
    )
    @classmethod
    def _coerce_text(cls, v: Any) -> str | None:
        return _text_or_none(v)

    @field_validator('value_usd', mode='before')
    @classmethod
    def _coerce_value(cls, v: Any) -> int | float | str | None:
        return _number_or_text(v)

    @field_validator('sources', mode='before')
    @classmethod
    def _coerce_sources(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [s for s in v if isinstance(s, dict)]


class DiscoveryResponse(_Lenient):
    """Deals plus citation URLs from one discovery search."""

    deals: list[RawDiscoveredDeal] = Field(default_factory=list)
    citations: list[str] = Field(default_factory=list)

    @field_validator('deals', mode='before')
    @classmethod
    def _coerce_deals(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [d for d in v if isinstance(d, dict) or isinstance(d, RawDiscoveredDeal)]

    @field_validator('citations', mode='before')
    @classmethod
    def _coerce_citations(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [c for c in v if isinstance(c, str) and c]


class VerificationDetails(_Lenient):
    """Corrected deal facts returned by the verification service."""

    value_usd: int | float | str | None = None
    status: str | None = None
    announced_date: str | None = None
    synopsis: str | None = None

    @field_validator('status', 'announced_date', 'synopsis', mode='before')
    @classmethod
    def _coerce_text(cls, v: Any) -> str | None:
        return _text_or_none(v)

    @field_validator('value_usd', mode='before')
    @classmethod
    def _coerce_value(cls, v: Any) -> int | float | str | None:
        return _number_or_text(v)


class VerificationResponse(_Lenient):
    """Result of an external re-verification call."""

    verified: bool = False
    details: VerificationDetails | None = None
    sources: list[str] = Field(default_factory=list)

    @field_validator('verified', mode='before')
    @classmethod
    def _coerce_verified(cls, v: Any) -> bool:
        return v is True

    @field_validator('details', mode='before')
    @classmethod
    def _coerce_details(cls, v: Any) -> Any:
        if isinstance(v, (dict, VerificationDetails)):
            return v
        return None

    @field_validator('sources', mode='before')
    @classmethod
    def _coerce_sources(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [s for s in v if isinstance(s, str) and s]
