import time
import asyncio
import logging
from typing import Dict, Any, List, Optional

from langchain_ollama import ChatOllama
from langchain_core.messages import HumanMessage, SystemMessage
import httpx

from services.retry import RetryPolicy

logger = logging.getLogger(__name__)


def _is_connection_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return isinstance(exc, (httpx.TransportError, ConnectionError)) or "connect" in message


class OllamaClient:
    """
    LangChain-based Ollama client used as the rewrite service.
    Every call carries a timeout and goes through the shared retry policy.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = 0.3,
        timeout: float = 120.0,
        retry_policy: Optional[RetryPolicy] = None,
        num_ctx: int = 8192,
    ):
        # ChatOllama uses Ollama's native API, not OpenAI-compatible /v1 endpoint
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        elif base_url.endswith("/v1/"):
            base_url = base_url[:-4]

        self.base_url = base_url.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3, base_delay=2.0)

        self.llm = ChatOllama(
            base_url=self.base_url,
            model=model,
            temperature=temperature,
            num_ctx=num_ctx,
            format="json",
        )

    async def _invoke(self, messages: List[Any]) -> Any:
        try:
            return await asyncio.wait_for(
                self.llm.ainvoke(messages),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise TimeoutError(f"Request timed out after {self.timeout}s")
        except Exception as e:
            if _is_connection_error(e):
                logger.warning(
                    f"Connection error - {e} (base_url={self.base_url}, model={self.model})"
                )
                raise ConnectionError(str(e)) from e
            raise

    async def evaluate(self, prompt: str, system: Optional[str] = None) -> Dict[str, Any]:
        """
        Send a prompt and return the response content with metadata.
        """
        start = time.time()

        messages: List[Any] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        response = await self.retry_policy.run(
            self._invoke,
            messages,
            description=f"ollama:{self.model}",
        )

        latency_ms = int((time.time() - start) * 1000)

        return {
            "raw": response,
            "content": response.content,
            "latency_ms": latency_ms,
        }

    async def health_check(self) -> bool:
        """
        Check if the Ollama server is reachable by calling /api/tags.
        """
        url = f"{self.base_url}/api/tags"
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(url)
                if resp.status_code == 200:
                    return True
                logger.error(f"Ollama health check failed: {resp.status_code} {resp.text}")
                return False
        except Exception as e:
            logger.error(f"Ollama health check error: {e} (url={url})")
            return False
