"""Vision backend base class, shared prompt, and factory."""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import PrecosConfig

# Multiple of 3 so that chunk encodings concatenate without padding.
ENCODE_CHUNK_SIZE = 3 * 8192

PROMPT = """\
Esta imagem é uma foto de prateleira de supermercado ou de um panfleto de ofertas.
Extraia TODOS os produtos visíveis com os seus preços.

Para cada produto informe:
- "name": nome do produto
- "brand": marca
- "ean": código de barras EAN (8 ou 13 dígitos), somente se estiver legível
- "unit": tamanho/unidade da embalagem (ex.: "1kg", "500ml", "6 unidades")
- "retail_price": preço de VAREJO (preço unitário normal), em número
- "wholesale_price": preço de ATACADO (preço para compra em quantidade), em número
- "min_wholesale_qty": quantidade mínima para o preço de atacado, em número inteiro
- "confidence": sua confiança na leitura, de 0 a 1

Regras:
- Separe sempre o preço de varejo do preço de atacado. Se só houver um preço, ele é o de varejo.
- IGNORE textos descritivos que não são o preço de prateleira do produto, como
  "preço por kg", "preço por litro", "R$/100g", parcelamentos e economias ("economize R$ 2,00").
- Se não conseguir identificar algum campo, use null.

Retorne SOMENTE JSON no formato:
{"items": [{"name": "...", "brand": "...", "ean": null, "unit": "...", "retail_price": 0.0,
"wholesale_price": null, "min_wholesale_qty": null, "confidence": 0.0}]}
"""


class ExtractionFailure(Exception):
    """The vision model could not be called or returned no usable text."""


def encode_image(data: bytes, chunk_size: int = ENCODE_CHUNK_SIZE) -> str:
    """Base64-encode *data* chunk by chunk.

    The result is identical to a one-shot encoding as long as *chunk_size*
    is a multiple of 3.
    """
    if chunk_size <= 0 or chunk_size % 3:
        raise ValueError(f"chunk_size must be a positive multiple of 3: {chunk_size}")
    view = memoryview(data)
    parts = [
        base64.b64encode(view[i:i + chunk_size]).decode("ascii")
        for i in range(0, len(view), chunk_size)
    ]
    return "".join(parts)


class VisionBackend(ABC):
    """Abstract base for product/price extraction from one image."""

    @property
    def configured(self) -> bool:
        """Whether the credential needed to call the model is present."""
        return True

    @abstractmethod
    async def extract(self, image: bytes, mime_type: str = "image/jpeg") -> str:
        """Send the image and the extraction prompt; return the raw model text.

        Raises:
            ExtractionFailure: On missing credentials, transport errors or
                non-2xx responses.
        """
        ...


def create_backend(config: PrecosConfig) -> VisionBackend:
    """Create a vision backend based on configuration."""
    backend_name = config.vision.backend

    match backend_name:
        case "openai":
            from .openai import OpenAIVisionBackend

            return OpenAIVisionBackend(
                api_key=config.vision.openai.api_key,
                model=config.vision.openai.model,
                max_tokens=config.vision.openai.max_tokens,
            )
        case "claude":
            from .claude import ClaudeVisionBackend

            return ClaudeVisionBackend(
                api_key=config.vision.claude.api_key,
                model=config.vision.claude.model,
                max_tokens=config.vision.claude.max_tokens,
            )
        case "gemini":
            from .gemini import GeminiVisionBackend

            return GeminiVisionBackend(
                api_key=config.vision.gemini.api_key,
                model=config.vision.gemini.model,
            )
        case _:
            raise ValueError(
                f"Backend de visão desconhecido: {backend_name!r} "
                f"(escolha entre openai / claude / gemini)"
            )
