"""OpenAI chat-completions vision backend."""

from __future__ import annotations

from . import PROMPT, ExtractionFailure, VisionBackend, encode_image


class OpenAIVisionBackend(VisionBackend):
    """Extract shelf products and prices using an OpenAI multimodal model."""

    def __init__(
        self, api_key: str = "", model: str = "gpt-4o", max_tokens: int = 1000
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
                "OPENAI_API_KEY não configurada. "
                "Verifique o arquivo de configuração ou a variável de ambiente."
            )

        try:
            import openai
        except ImportError:
            raise ImportError("openai SDK is required: pip install openai") from None

        data_url = f"data:{mime_type};base64,{encode_image(image)}"
        client = openai.AsyncOpenAI(api_key=self._api_key)
        try:
            response = await client.chat.completions.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": PROMPT},
                            {"type": "image_url", "image_url": {"url": data_url}},
                        ],
                    }
                ],
            )
        except openai.APIStatusError as e:
            raise ExtractionFailure(
                f"OpenAI API error: {e.status_code} - {e.message}"
            ) from e
        except openai.OpenAIError as e:
            raise ExtractionFailure(f"OpenAI API error: {e}") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise ExtractionFailure("Resposta inesperada da OpenAI") from e
        if content is None:
            raise ExtractionFailure("Resposta da OpenAI sem conteúdo")
        return content
