"""Centralized configuration: Pydantic BaseSettings with TOML + dotenv sources.

Settings live in kmirror.toml. Environment variables override the file using
``__`` as the nested delimiter (e.g. ``MIRROR__MAX_HEAP=4G``).

Priority (highest wins): init args > env vars > .env > kmirror.toml

Usage::

    from kmirror.config import get_settings

    s = get_settings()
    print(s.mirror.classpath)
    print(s.radar.namespace)
"""

from __future__ import annotations

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in kmirror.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models; reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


class MirrorConfig(_StrictModel):
    """How the external sync worker is launched."""

    java: str = "java"
    classpath: str = "/usr/local/share/kmirror/mirror-all.jar"
    main_class: str = "mirror.Mirror"
    max_heap: str = "2G"
    heap_dump_on_oom: bool = True
    extra_jvm_flags: list[str] = []
    host: str = "localhost"  # radar port-forwards always listen on loopback
    read_limit: int = 1048576  # 1MB per worker output line

    @field_validator("max_heap")
    @classmethod
    def normalize_heap(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("read_limit")
    @classmethod
    def clamp_read_limit(cls, v: int) -> int:
        return max(1024, v)


class RadarConfig(_StrictModel):
    """Where the per-node radar pods live and which ports they expose."""

    namespace: str = "kube-system"
    label_selector: str = "app=radar"
    api_port: int = 40321
    mirror_port: int = 49172
    port_forward_timeout: float = 30.0
    bind_host: str = "0.0.0.0"


class KubeConfig(_StrictModel):
    kubectl: str = "kubectl"
    context: str | None = None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="kmirror.toml",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    mirror: MirrorConfig = MirrorConfig()
    radar: RadarConfig = RadarConfig()
    kube: KubeConfig = KubeConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > kmirror.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
