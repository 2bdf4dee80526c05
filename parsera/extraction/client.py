"""
Parsera client - resilient extraction of structured data from web pages
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import httpx
import structlog
from pydantic import AnyUrl, TypeAdapter, ValidationError

from parsera.core.config import settings
from parsera.core.exceptions import (
    BadRequestException,
    InvalidConfigurationException,
    InvalidInputException,
    NetworkException,
    NoDataException,
    ParseraException,
    RateLimitException,
    RequestTimeoutException,
    ServerException,
    UnauthorizedException,
)
from parsera.extraction.deadline import TIMEOUT_MESSAGE, CancellationToken, run_with_deadline
from parsera.extraction.events import EventBus, EventHandler, EventKey, EventOptions, EventType
from parsera.extraction.models import (
    Attribute,
    ClientConfiguration,
    Cookie,
    ErrorPayload,
    ExtractionRequest,
    ExtractionResponse,
    RequestBody,
    RetryPolicy,
)
from parsera.extraction.rate_limiter import RateLimiter
from parsera.extraction.retry_handler import RetryHandler
from parsera.extraction.validation import ExtractionInput, fetch_proxy_countries, validate_input

logger = structlog.get_logger(__name__)

MIN_API_KEY_LENGTH = 32
ERROR_PREFIX = "Failed to extract data: "
NO_DATA_MESSAGE = (
    "No data returned from Parsera API. Make sure the website contains the data "
    "and the attribute descriptions are clear."
)

_url_adapter = TypeAdapter(AnyUrl)


class Parsera:
    """
    Client for the Parsera extraction API

    Example:
        async with Parsera(api_key="...") as parsera:
            parsera.on("request:retry", lambda event: print(event.retry_count))
            rows = await parsera.extract(
                url="https://example.com/products",
                attributes={"title": "Product title", "price": "Product price"},
            )
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_proxy_country: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_options: Optional[Union[RetryPolicy, Mapping[str, Any]]] = None,
        retry_on_timeout: Optional[bool] = None,
        min_request_interval: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        api_key = settings.PARSERA_API_KEY if api_key is None else api_key
        self._validate_api_key(api_key)

        try:
            if retry_options is None:
                retry_policy = RetryPolicy(
                    max_retries=settings.PARSERA_MAX_RETRIES,
                    backoff_factor=settings.PARSERA_BACKOFF_FACTOR,
                    initial_delay=settings.PARSERA_INITIAL_DELAY
                )
            elif isinstance(retry_options, RetryPolicy):
                retry_policy = retry_options
            else:
                retry_policy = RetryPolicy(**retry_options)

            self.config = ClientConfiguration(
                api_key=api_key,
                base_url=base_url or settings.PARSERA_BASE_URL,
                default_proxy_country=default_proxy_country or settings.PARSERA_DEFAULT_PROXY_COUNTRY,
                timeout=settings.PARSERA_TIMEOUT if timeout is None else timeout,
                retry_policy=retry_policy,
                retry_on_timeout=(
                    settings.PARSERA_RETRY_ON_TIMEOUT if retry_on_timeout is None else retry_on_timeout
                ),
                min_request_interval=(
                    settings.PARSERA_MIN_REQUEST_INTERVAL
                    if min_request_interval is None else min_request_interval
                )
            )
        except ValidationError as e:
            raise InvalidConfigurationException(
                f"Invalid client configuration: {e}",
                details={"errors": e.errors(include_url=False)}
            ) from e

        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=None)
        self.events = EventBus()
        self.rate_limiter = RateLimiter(self.config.min_request_interval)
        self.retry_handler = RetryHandler(
            self.config.retry_policy,
            self.rate_limiter,
            self.events,
            retry_on_timeout=self.config.retry_on_timeout
        )

        logger.info("Parsera client initialized",
                    base_url=self.config.base_url,
                    timeout=self.config.timeout,
                    max_retries=self.config.retry_policy.max_retries)

    async def __aenter__(self) -> "Parsera":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        """Drain background handlers and close the owned HTTP client"""
        await self.events.drain()
        if self._owns_http_client:
            await self.http_client.aclose()

    @staticmethod
    def _validate_api_key(api_key: Any):
        if not api_key or not isinstance(api_key, str) or len(api_key) < MIN_API_KEY_LENGTH:
            raise InvalidConfigurationException("Invalid API key format")

    @staticmethod
    def _validate_url(url: Any):
        try:
            _url_adapter.validate_python(url)
        except ValidationError as e:
            raise InvalidInputException("Invalid URL format", details={"url": url}) from e

    # Events

    def on(
        self,
        event_type: Union[EventKey, str],
        handler: EventHandler,
        options: Optional[Union[EventOptions, Dict[str, Any]]] = None
    ):
        """Register a handler for an event type"""
        self.events.subscribe(event_type, handler, options)

    def off(self, event_type: Union[EventKey, str], handler: EventHandler):
        """Remove a handler; unknown handlers are ignored"""
        self.events.unsubscribe(event_type, handler)

    def clear(self, event_type: Optional[Union[EventKey, str]] = None):
        """Remove all handlers of one event type, or of every type"""
        self.events.clear(event_type)

    remove_all_listeners = clear

    # Extraction

    async def extract(
        self,
        url: str,
        attributes: Union[Sequence[Union[Attribute, Mapping[str, str]]], Mapping[str, str]],
        *,
        proxy_country: Optional[str] = None,
        cookies: Optional[Sequence[Union[Cookie, Mapping[str, str]]]] = None,
        precision_mode: bool = False,
        cancel_token: Optional[CancellationToken] = None
    ) -> List[Dict[str, Any]]:
        """
        Extract structured data from a web page

        Args:
            url: Page to extract from
            attributes: Attribute list, or a name -> description mapping
            proxy_country: Overrides the client's default proxy country
            cookies: Cookies to send with the page request
            precision_mode: Use the higher-cost precision mode
            cancel_token: Aborts the in-flight attempt and any pending retry

        Returns:
            Extracted records

        Raises:
            InvalidInputException: Malformed URL or request shape, raised as is
            RequestTimeoutException: Attempt deadline exceeded, raised as is
            ParseraException: Any other failure, prefixed with "Failed to extract data: "
        """
        await self.events.emit(EventType.EXTRACT_START, data={
            "url": url,
            "attributes": attributes,
            "proxy_country": proxy_country,
            "cookies": cookies,
            "precision_mode": precision_mode,
            "cancel_token": cancel_token,
        })

        self._validate_url(url)
        request = self._build_request(url, attributes, proxy_country, cookies, precision_mode, cancel_token)
        body = RequestBody.from_request(request, self.config.default_proxy_country)

        try:
            response = await self.retry_handler.execute(
                lambda: self._send_extract(body, cancel_token),
                cancel_token
            )

            if not response.is_success:
                self._raise_for_status(response)

            payload = ExtractionResponse.model_validate(response.json())
            if not payload.data:
                raise NoDataException(payload.message or NO_DATA_MESSAGE)

            await self.events.emit(EventType.EXTRACT_COMPLETE, data=payload)
            logger.info("Extraction completed", url=url, records=len(payload.data))
            return payload.data

        except Exception as e:
            logger.error("Extraction failed",
                         url=url,
                         error=str(e),
                         error_type=type(e).__name__)
            await self.events.emit(EventType.EXTRACT_ERROR, error=e)
            if isinstance(e, RequestTimeoutException):
                raise
            raise self._wrap_error(e) from e

    async def run(self, url: str, attributes, **options) -> List[Dict[str, Any]]:
        """Alias of :meth:`extract`"""
        return await self.extract(url, attributes, **options)

    async def arun(self, url: str, attributes, **options) -> List[Dict[str, Any]]:
        """Alias of :meth:`extract`"""
        return await self.extract(url, attributes, **options)

    def _build_request(
        self,
        url: str,
        attributes,
        proxy_country: Optional[str],
        cookies,
        precision_mode: bool,
        cancel_token: Optional[CancellationToken]
    ) -> ExtractionRequest:
        try:
            return ExtractionRequest(
                url=url,
                attributes=attributes,
                proxy_country=proxy_country,
                cookies=cookies,
                precision_mode=precision_mode,
                cancel_token=cancel_token
            )
        except ValidationError as e:
            raise InvalidInputException(
                f"Invalid extraction request: {e}",
                details={"errors": e.errors(include_url=False)}
            ) from e

    async def _send_extract(
        self,
        body: RequestBody,
        cancel_token: Optional[CancellationToken]
    ) -> httpx.Response:
        return await run_with_deadline(
            lambda: self._post(body),
            self.config.timeout,
            cancel_token
        )

    async def _post(self, body: RequestBody) -> httpx.Response:
        try:
            return await self.http_client.post(
                f"{self.config.base_url}/extract",
                json=body.to_wire(),
                headers={settings.API_KEY_HEADER: self.config.api_key}
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutException(TIMEOUT_MESSAGE) from e
        except httpx.TransportError as e:
            raise NetworkException(
                f"Network error: {str(e) or type(e).__name__}",
                details={"error_type": type(e).__name__}
            ) from e

    def _raise_for_status(self, response: httpx.Response):
        status = response.status_code
        error_data = _parse_error_payload(response)
        details = {"status_code": status}
        if error_data.code:
            details["code"] = error_data.code

        if status == 401:
            raise UnauthorizedException(
                "Invalid Parsera API key. Please check your credentials.", details=details
            )
        if status == 429:
            raise RateLimitException("Rate limit exceeded. Please try again later.", details=details)
        if status == 400:
            raise BadRequestException(
                f"Bad request: {error_data.message or 'Unknown error'}", details=details
            )
        raise ServerException(
            f"Parsera API error: {error_data.message or response.reason_phrase}", details=details
        )

    @staticmethod
    def _wrap_error(error: Exception) -> ParseraException:
        if isinstance(error, ParseraException):
            return error.with_prefix(ERROR_PREFIX)
        return ParseraException(
            f"{ERROR_PREFIX}{str(error) or type(error).__name__}",
            details={"error_type": type(error).__name__}
        )

    # Input validation

    async def get_proxy_countries(self) -> Optional[List[str]]:
        """Supported proxy countries, or None when the lookup is unavailable"""
        return await fetch_proxy_countries(self.http_client, self.config.base_url)

    async def validate_input(self, data: Mapping[str, Any]) -> ExtractionInput:
        """Validate raw input against the schema and the live proxy-country list"""
        return validate_input(data, await self.get_proxy_countries())


def _parse_error_payload(response: httpx.Response) -> ErrorPayload:
    try:
        payload = response.json()
    except ValueError:
        return ErrorPayload()
    if not isinstance(payload, dict):
        return ErrorPayload()
    try:
        return ErrorPayload.model_validate(payload)
    except ValidationError:
        return ErrorPayload()
