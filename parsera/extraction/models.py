"""
Extraction data models - configuration, requests and wire payloads
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from parsera.extraction.deadline import CancellationToken


class RetryPolicy(BaseModel):
    """Exponential backoff policy for one logical extraction"""
    max_retries: int = Field(default=3, ge=0)
    backoff_factor: float = Field(default=2.0, gt=0)
    initial_delay: float = Field(default=1.0, ge=0, description="Seconds before the first retry")

    class Config:
        frozen = True

    def backoff_delay(self, retry_count: int) -> float:
        """Delay before retry number ``retry_count`` (0-indexed)"""
        return self.initial_delay * (self.backoff_factor ** retry_count)


class ClientConfiguration(BaseModel):
    """Immutable configuration owned by one client instance"""
    api_key: str
    base_url: str
    default_proxy_country: str
    timeout: float = Field(gt=0, description="Per-attempt deadline in seconds")
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    retry_on_timeout: bool = False
    min_request_interval: float = Field(default=0.1, ge=0)

    class Config:
        frozen = True

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class Attribute(BaseModel):
    """A named value to extract, described in natural language"""
    name: str
    description: str


class Cookie(BaseModel):
    """Cookie injected into the page request; extra keys are string attributes"""
    __pydantic_extra__: Dict[str, str] = Field(init=False)

    same_site: Literal["None", "Lax", "Strict"] = Field(alias="sameSite")

    class Config:
        extra = "allow"
        populate_by_name = True


class ExtractionRequest(BaseModel):
    """One logical extraction as requested by the caller"""
    url: str
    attributes: List[Attribute]
    proxy_country: Optional[str] = None
    cookies: Optional[List[Cookie]] = None
    precision_mode: bool = False
    cancel_token: Optional[CancellationToken] = Field(default=None, exclude=True)

    class Config:
        arbitrary_types_allowed = True

    @field_validator("attributes", mode="before")
    @classmethod
    def convert_attribute_mapping(cls, value: Any) -> Any:
        """Turn a name -> description mapping into an ordered attribute list"""
        if isinstance(value, dict):
            return [
                {"name": name, "description": description}
                for name, description in value.items()
            ]
        return value


class RequestBody(BaseModel):
    """Wire shape of POST /extract, identical across retries"""
    url: str
    attributes: List[Attribute]
    proxy_country: Optional[str] = None
    cookies: Optional[List[Cookie]] = None
    mode: Optional[Literal["standard", "precision"]] = None

    class Config:
        frozen = True

    @classmethod
    def from_request(cls, request: ExtractionRequest, default_proxy_country: str) -> "RequestBody":
        body: Dict[str, Any] = {
            "url": request.url,
            "attributes": request.attributes,
            "proxy_country": request.proxy_country or default_proxy_country,
        }
        if request.cookies:
            body["cookies"] = request.cookies
        if request.precision_mode:
            body["mode"] = "precision"
        return cls(**body)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ExtractionResponse(BaseModel):
    """Success payload of POST /extract"""
    data: List[Dict[str, Any]] = Field(default_factory=list)
    message: Optional[str] = None

    @field_validator("data", mode="before")
    @classmethod
    def null_data_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ErrorPayload(BaseModel):
    """Error payload returned alongside non-success statuses"""
    message: Optional[str] = None
    code: Optional[str] = None
