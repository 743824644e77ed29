# deepguard/detectors/gateway.py

from functools import lru_cache
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from deepguard.core.cancellation import CancelToken
from deepguard.core.config import Settings, get_settings
from deepguard.core.errors import (
    AuthConfigurationError,
    GatewayError,
    InferenceTimeoutError,
    QuotaExceededError,
    RateLimitError,
)
from deepguard.services.prompt import AnalysisRequest


class InferenceGateway:
    """
    Sends one AnalysisRequest to the hosted chat-completion endpoint and
    returns the model's raw text.

    Holds configuration only; every call opens its own HTTP client, so one
    instance can serve concurrent submissions. Nothing is retried here.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not settings.AI_GATEWAY_API_KEY:
            raise AuthConfigurationError("AI_GATEWAY_API_KEY is not configured")

        self.settings = settings
        self._transport = transport
        self._timeout = httpx.Timeout(settings.REQUEST_TIMEOUT_SECONDS)

    def build_payload(self, request: AnalysisRequest) -> Dict[str, Any]:
        return {
            "model": self.settings.AI_MODEL,
            "messages": [
                {
                    "role": "user",
                    "content": request.content(),
                }
            ],
            "temperature": self.settings.AI_TEMPERATURE,
        }

    async def infer(
        self,
        request: AnalysisRequest,
        cancel_token: Optional[CancelToken] = None,
    ) -> str:
        api_key = self.settings.AI_GATEWAY_API_KEY
        if not api_key:
            raise AuthConfigurationError("AI_GATEWAY_API_KEY is not configured")

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        logger.info(f"Analyzing {len(request.frames)} frames with {self.settings.AI_MODEL}")

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self.settings.AI_GATEWAY_URL,
                    headers=headers,
                    json=self.build_payload(request),
                )
                if response.is_success:
                    data = response.json()
        except httpx.TimeoutException as e:
            raise InferenceTimeoutError(
                f"AI gateway did not answer within {self.settings.REQUEST_TIMEOUT_SECONDS}s",
                details={"reason": str(e)},
            )
        except httpx.HTTPError as e:
            raise GatewayError(f"AI gateway request failed: {e}")
        except ValueError as e:
            raise GatewayError(f"AI gateway returned invalid JSON: {e}", status_code=response.status_code)

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        if not response.is_success:
            body = response.text
            logger.error(f"AI API error: {response.status_code} {body}")

            if response.status_code == 429:
                raise RateLimitError(details={"body": body})
            if response.status_code == 402:
                raise QuotaExceededError(details={"body": body})

            raise GatewayError(
                f"AI API error: {response.status_code} {body}",
                status_code=response.status_code,
                body=body,
            )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise GatewayError(
                "AI gateway response has no choices[0].message.content",
                status_code=response.status_code,
                body=response.text,
            )

        if not isinstance(content, str):
            content = "" if content is None else str(content)

        logger.debug(f"AI Response: {content}")
        return content


@lru_cache()
def get_gateway() -> InferenceGateway:
    """
    Returns a cached gateway built from the process settings.
    """
    return InferenceGateway(get_settings())
