"""
Input Validation - schema checks for extraction input and proxy-country lookup
"""

from typing import Any, List, Mapping, Optional

import httpx
import structlog
from pydantic import AnyUrl, BaseModel, Field, ValidationError, ValidationInfo, field_validator

from parsera.core.exceptions import InvalidInputException
from parsera.extraction.models import Cookie

logger = structlog.get_logger(__name__)

RANDOM_PROXY_COUNTRY = "random"


class AttributeInput(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)


class ExtractionInput(BaseModel):
    """Validated extraction input"""
    url: AnyUrl
    api_key: str = Field(min_length=1)
    attributes: List[AttributeInput] = Field(min_length=1)
    proxy_country: Optional[str] = None
    cookies: Optional[List[Cookie]] = None
    precision_mode: Optional[bool] = None

    @field_validator("proxy_country")
    @classmethod
    def check_proxy_country(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value is None:
            return value
        countries = (info.context or {}).get("proxy_countries")
        if countries is None:
            # enumeration unavailable: any non-empty token is accepted
            if not value:
                raise ValueError("Proxy country must not be empty")
            return value
        allowed = [RANDOM_PROXY_COUNTRY, *countries]
        if value not in allowed:
            raise ValueError(f"Unsupported proxy country '{value}'")
        return value


async def fetch_proxy_countries(
    http_client: httpx.AsyncClient,
    base_url: str
) -> Optional[List[str]]:
    """
    Fetch the proxy-country enumeration

    Returns:
        Country tokens, or None when the endpoint is unavailable
    """
    try:
        response = await http_client.get(f"{base_url.rstrip('/')}/proxy-countries")
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Unexpected proxy countries payload")
        return list(payload.keys())
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Proxy countries unavailable, accepting any proxy country",
                       error=str(e))
        return None


def validate_input(
    data: Mapping[str, Any],
    proxy_countries: Optional[List[str]] = None
) -> ExtractionInput:
    """
    Validate raw extraction input

    Args:
        data: Input mapping (url, api_key, attributes, proxy_country, cookies, precision_mode)
        proxy_countries: Allowed proxy countries, or None to accept any

    Raises:
        InvalidInputException: Listing every problem as ``path: message``
    """
    try:
        return ExtractionInput.model_validate(
            data,
            context={"proxy_countries": proxy_countries}
        )
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise InvalidInputException(
            "Input validation failed:\n" + "\n".join(errors),
            details={"errors": errors}
        ) from e
