"""TOML configuration loader for the OCR ingestion pipeline."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]


@dataclass
class OpenAIVisionConfig:
    api_key: str = ""
    model: str = "gpt-4o"
    max_tokens: int = 1000


@dataclass
class ClaudeVisionConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096


@dataclass
class GeminiVisionConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"


@dataclass
class VisionConfig:
    backend: str = "openai"
    openai: OpenAIVisionConfig = field(default_factory=OpenAIVisionConfig)
    claude: ClaudeVisionConfig = field(default_factory=ClaudeVisionConfig)
    gemini: GeminiVisionConfig = field(default_factory=GeminiVisionConfig)


@dataclass
class DatabaseConfig:
    path: str = "~/.config/precos/precos.db"


@dataclass
class StorageConfig:
    root: str = "~/.config/precos/ocr-images"


@dataclass
class ReconcileConfig:
    # Items below this confidence never create catalog products.
    create_min_confidence: float = 0.7


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass
class PrecosConfig:
    vision: VisionConfig = field(default_factory=VisionConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def load_config(path: str | Path | None = None) -> PrecosConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys can be overridden via environment variables.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    vis = raw.get("vision", {})
    dbs = raw.get("database", {})
    sto = raw.get("storage", {})
    rec = raw.get("reconcile", {})
    srv = raw.get("server", {})

    openai_cfg = vis.get("openai", {})
    claude_cfg = vis.get("claude", {})
    gemini_cfg = vis.get("gemini", {})

    # Resolve API keys: config file → environment variable
    openai_api_key = openai_cfg.get("api_key", "") or os.environ.get(
        "OPENAI_API_KEY", ""
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )

    return PrecosConfig(
        vision=VisionConfig(
            backend=vis.get("backend", "openai"),
            openai=OpenAIVisionConfig(
                api_key=openai_api_key,
                model=openai_cfg.get("model", "gpt-4o"),
                max_tokens=openai_cfg.get("max_tokens", 1000),
            ),
            claude=ClaudeVisionConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
                max_tokens=claude_cfg.get("max_tokens", 4096),
            ),
            gemini=GeminiVisionConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-2.0-flash"),
            ),
        ),
        database=DatabaseConfig(
            path=dbs.get("path", "~/.config/precos/precos.db"),
        ),
        storage=StorageConfig(
            root=sto.get("root", "~/.config/precos/ocr-images"),
        ),
        reconcile=ReconcileConfig(
            create_min_confidence=float(rec.get("create_min_confidence", 0.7)),
        ),
        server=ServerConfig(
            host=srv.get("host", "0.0.0.0"),
            port=srv.get("port", 8000),
        ),
    )
