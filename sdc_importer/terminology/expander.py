"""
FHIR ValueSet expansion over HTTP.

Calls the `ValueSet/$expand` operation either on the terminology server
declared by a form item or on the context FHIR server.

API Documentation: https://hl7.org/fhir/R4/valueset-operation-expand.html
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sdc_importer.config import settings
from sdc_importer.fhir.valuesets import answers_from_value_set
from sdc_importer.form.models import AnswerOption
from .base import ValueSetExpander, expansion_url

logger = logging.getLogger(__name__)


class ValueSetExpansionError(Exception):
    """The server answered, but not with a usable expansion."""


class FHIRValueSetExpander(ValueSetExpander):
    """
    Expands value sets with httpx.

    Features:
    - Terminology server expansion ({server}/ValueSet/$expand?url=...)
    - Context FHIR server expansion for items without a terminology server
    - Retries on transport errors; HTTP error statuses are final
    """

    def __init__(
        self,
        fhir_server_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
    ):
        """
        Initialize the expander.

        Args:
            fhir_server_url: Base url of the context FHIR server
            timeout: HTTP request timeout in seconds
            retry_attempts: Attempts per request on transport errors
        """
        self.fhir_server_url = fhir_server_url or settings.fhir_server_url
        self.timeout = timeout if timeout is not None else settings.terminology_timeout
        self.retry_attempts = retry_attempts or settings.terminology_retry_attempts
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def expand(
        self, value_set: str, terminology_server: Optional[str] = None
    ) -> List[AnswerOption]:
        if terminology_server:
            url = expansion_url(terminology_server, value_set)
            params = None
        elif self.fhir_server_url:
            url = f"{self.fhir_server_url.rstrip('/')}/ValueSet/$expand"
            params = {"_format": "application/json", "url": value_set}
        else:
            raise ValueSetExpansionError(
                f"No terminology or FHIR server available to expand {value_set}"
            )

        payload = await self._get_json(url, params)
        answers = answers_from_value_set(payload)
        if answers is None:
            raise ValueSetExpansionError(f"ValueSet {value_set} has no usable expansion")
        return answers

    async def _get_json(self, url: str, params: Optional[Dict[str, str]]) -> Dict[str, Any]:
        client = await self._get_client()
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(min=1, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                response = await client.get(url, params=params)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueSetExpansionError(f"Unexpected response from {url}")
        return payload
