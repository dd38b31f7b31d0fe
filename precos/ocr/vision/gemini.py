"""Gemini API vision backend."""

from __future__ import annotations

from . import PROMPT, ExtractionFailure, VisionBackend


class GeminiVisionBackend(VisionBackend):
    """Extract shelf products and prices using Google Gemini's vision capability."""

    def __init__(self, api_key: str = "", model: str = "gemini-2.0-flash") -> None:
        self._api_key = api_key
        self._model = model

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def extract(self, image: bytes, mime_type: str = "image/jpeg") -> str:
        if not self._api_key:
            raise ExtractionFailure(
                "GEMINI_API_KEY não configurada. "
                "Verifique o arquivo de configuração ou a variável de ambiente."
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model)

        # The SDK takes raw bytes and encodes them itself.
        parts = [{"mime_type": mime_type, "data": image}, PROMPT]
        try:
            response = await model.generate_content_async(parts)
            return response.text
        except ValueError as e:
            # Raised by response.text when the candidate was blocked or empty.
            raise ExtractionFailure(f"Resposta do Gemini sem texto: {e}") from e
        except Exception as e:
            raise ExtractionFailure(f"Gemini API error: {e}") from e
