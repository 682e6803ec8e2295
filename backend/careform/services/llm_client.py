import asyncio
import time
from typing import Dict, Any, Optional, List
import httpx
from careform.config import settings
import logging

logger = logging.getLogger(__name__)


class LLMClientError(Exception):
    pass


class LLMTimeoutError(LLMClientError):
    """The model runtime did not answer within the call's timeout."""
    pass


class LLMResponseError(LLMClientError):
    """The model answered, but its output could not be used (bad JSON, schema mismatch)."""
    pass


def is_timeout_error(exc: BaseException) -> bool:
    return isinstance(exc, (LLMTimeoutError, httpx.TimeoutException, asyncio.TimeoutError))


class LLMClient:
    def __init__(self, base_url: Optional[str] = None, model: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the local Ollama client.

        Args:
            base_url: Optional base URL override. Defaults to OLLAMA_BASE_URL.
            model: Optional model name override. Defaults to OLLAMA_MODEL.
            transport: Optional httpx transport (used by tests to stub the runtime).
        """
        self.provider = "ollama"
        self.base_url = (base_url or settings.ollama_base_url).rstrip('/')
        self.model = model or settings.ollama_model
        self._transport = transport

        logger.info(f"LLMClient configured with provider: {self.provider}, base_url: {self.base_url}, model: {self.model}")

    def _get_api_url(self) -> str:
        return f"{self.base_url}/api/generate"

    def _get_tags_url(self) -> str:
        return f"{self.base_url}/api/tags"

    def _build_request_payload(
        self,
        prompt: str,
        images: Optional[List[str]] = None,
        temperature: float = 0.1,
        num_predict: int = 2000,
        stop: Optional[List[str]] = None,
        json_format: bool = False,
    ) -> Dict[str, Any]:
        """Build the /api/generate payload. Images must already be base64 encoded."""
        options: Dict[str, Any] = {
            "temperature": temperature,
            "num_predict": num_predict,
        }
        if stop:
            options["stop"] = stop

        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        if images:
            payload["images"] = images
        if json_format:
            payload["format"] = "json"
        return payload

    def _extract_response_content(self, data: Dict[str, Any]) -> str:
        if not isinstance(data, dict) or "response" not in data:
            raise LLMClientError("Invalid response format from Ollama")
        return data["response"] or ""

    async def generate(
        self,
        prompt: str,
        *,
        images: Optional[List[str]] = None,
        temperature: float = 0.1,
        num_predict: int = 2000,
        stop: Optional[List[str]] = None,
        timeout: float = 60.0,
        json_format: bool = False,
    ) -> str:
        """
        Single completion request against the local runtime (no retries).

        Raises LLMTimeoutError when the call exceeds ``timeout`` and
        LLMClientError for any other transport or protocol failure.
        """
        url = self._get_api_url()
        payload = self._build_request_payload(prompt, images, temperature, num_predict, stop, json_format)
        request_id = id(payload)

        # Prompt content is never logged: it embeds the OCR transcript
        logger.info(
            f"LLM Request: model={self.model}, request_id={request_id}, prompt_length={len(prompt)}, "
            f"images={len(images or [])}, timeout={timeout}s"
        )

        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            logger.warning(f"LLM request timeout after {time.time() - start_time:.1f}s (request_id={request_id})")
            raise LLMTimeoutError(f"LLM request timed out after {timeout}s") from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(f"LLM HTTP error {status_code} (request_id={request_id})")
            if status_code == 404:
                raise LLMClientError(f"Model '{self.model}' not found on {self.provider} server") from e
            raise LLMClientError(f"Ollama request failed: {status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"LLM request failed (request_id={request_id}): {e}")
            raise LLMClientError(f"LLM request failed: {e}") from e
        except ValueError as e:
            raise LLMClientError("Ollama returned a non-JSON body") from e

        response_content = self._extract_response_content(data)
        latency_ms = int((time.time() - start_time) * 1000)
        if not data.get("done", True):
            logger.warning(f"LLM response may be incomplete (done=false). Response length: {len(response_content)} chars")

        logger.info(
            f"LLM Response: model={self.model}, request_id={request_id}, latency_ms={latency_ms}, "
            f"response_length={len(response_content)}"
        )
        return response_content

    async def check_health(self, timeout: Optional[float] = None) -> bool:
        """Liveness probe: True when the runtime answers its model listing endpoint."""
        timeout = settings.llm_health_timeout if timeout is None else timeout
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.get(self._get_tags_url())
                response.raise_for_status()
                return True
        except Exception as e:
            logger.debug(f"{self.provider} health check failed: {e}")
            return False

    async def list_models(self) -> List[str]:
        """Names of the models installed on the runtime; empty on any failure."""
        try:
            async with httpx.AsyncClient(timeout=settings.llm_list_models_timeout, transport=self._transport) as client:
                response = await client.get(self._get_tags_url())
                response.raise_for_status()
                data = response.json()
        except Exception as e:
            logger.warning(f"Listing {self.provider} models failed: {e}")
            return []

        models = data.get("models") or []
        return [model.get("name") for model in models if model.get("name")]

    def is_multimodal_model(self) -> bool:
        """Whether the configured model is known to accept images."""
        model_lower = self.model.lower()
        return any(marker in model_lower for marker in settings.multimodal_model_markers)
