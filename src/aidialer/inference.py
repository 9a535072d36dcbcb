import httpx
import logging

logger = logging.getLogger(__name__)


class InferenceError(Exception):
    """The model could not produce a reply (transport, HTTP or payload error)."""


class InferenceClient:
    """Chat-completions client used to generate the assistant's next line.

    ``complete()`` returns the stripped reply text, which may be empty.  Any
    failure is raised as ``InferenceError``; deciding what to say instead is
    the caller's job.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        if client is not None:
            self._client = client
        else:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                timeout=timeout,
            )

    async def close(self):
        await self._client.aclose()

    async def complete(self, messages: list[dict]) -> str:
        try:
            resp = await self._client.post(
                "/chat/completions",
                json={"model": self.model, "messages": messages},
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            raise InferenceError(
                f"inference returned HTTP {e.response.status_code}: {e.response.text[:500]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise InferenceError(f"inference request failed: {e}") from e

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.warning("Inference response had no message content: %s", str(body)[:300])
            return ""
        return content.strip() if isinstance(content, str) else ""
