"""Claude API vision backend."""

from __future__ import annotations

from . import PROMPT, ExtractionFailure, VisionBackend, encode_image


class ClaudeVisionBackend(VisionBackend):
    """Extract shelf products and prices using Claude's vision capability."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 4096,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def extract(self, image: bytes, mime_type: str = "image/jpeg") -> str:
        if not self._api_key:
            raise ExtractionFailure(
                "ANTHROPIC_API_KEY não configurada. "
                "Verifique o arquivo de configuração ou a variável de ambiente."
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": encode_image(image),
                },
            },
            {"type": "text", "text": PROMPT},
        ]

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        try:
            response = await client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIStatusError as e:
            raise ExtractionFailure(
                f"Anthropic API error: {e.status_code} - {e.message}"
            ) from e
        except anthropic.AnthropicError as e:
            raise ExtractionFailure(f"Anthropic API error: {e}") from e

        texts = [
            block.text for block in response.content
            if getattr(block, "type", "text") == "text"
        ]
        if not texts:
            raise ExtractionFailure("Resposta do Claude sem texto")
        return "".join(texts)
