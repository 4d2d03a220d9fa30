"""
Configuration management for Orion Studio.

Centralizes all configuration including:
- Which render provider is active and whether simulation is forced
- Provider credentials, base URLs and endpoint overrides
- Default polling policy
- HTTP boundary settings (CORS, logging)

The configuration is read once from the environment and is immutable
afterwards. Adapters never read the environment themselves; they receive
the relevant section at construction time.
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional


SAMPLE_VIDEO_URL = "https://filesamples.com/samples/video/mp4/sample_640x360.mp4"

_VERSION_ID = re.compile(r"^[0-9a-f]{64}$")


class ProviderName(str, Enum):
    """Configurable render backends."""
    SIMULATOR = "simulator"
    EDEN = "eden"
    REPLICATE = "replicate"


class SimulatorMode(str, Enum):
    INSTANT = "instant"  # start() resolves synchronously
    DELAYED = "delayed"  # start() returns a handle, poll() derives progress from elapsed time


class CredentialPolicy(str, Enum):
    """What to do when a real provider is selected but has no credentials."""
    SIMULATE = "simulate"  # fall back to the simulator (safe default)
    FAIL = "fail"          # raise ConfigurationError at startup


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() != "false"


def _enum(enum_cls, value: Optional[str], default):
    try:
        return enum_cls((value or default.value).strip().lower())
    except ValueError:
        return default


def _number(value: Optional[str], default, cast=float):
    try:
        return cast(value) if value not in (None, "") else default
    except ValueError:
        return default


@dataclass(frozen=True)
class SimulatorConfig:
    """Zero-dependency stand-in provider."""
    mode: SimulatorMode = SimulatorMode.INSTANT
    asset_url: str = SAMPLE_VIDEO_URL
    job_max_age_seconds: float = 3600.0


@dataclass(frozen=True)
class EdenConfig:
    """Eden-style asynchronous job API."""
    api_key: str = ""
    api_base: str = "https://api.edenai.run/v2"
    engine: str = "pika"  # the upstream engine Eden routes to
    endpoint_path: str = "video/generation"

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class ReplicateConfig:
    """Replicate-style prediction API."""
    api_key: str = ""
    api_base: str = "https://api.replicate.com/v1"
    model_version: str = "zeroscope-v2-xl"
    endpoint_path: str = "predictions"

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)

    @property
    def uses_version_id(self) -> bool:
        """Replicate's HTTP API wants ``version`` for hash ids, ``model`` otherwise."""
        return bool(_VERSION_ID.match(self.model_version))


@dataclass(frozen=True)
class CopyConfig:
    """Language-model settings for script/caption generation."""
    api_key: str = ""
    api_base: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    temperature: float = 0.7


@dataclass(frozen=True)
class PollingDefaults:
    """Defaults for StatusPoller; callers may override per session."""
    interval_ms: int = 900
    timeout_ms: int = 180_000
    max_consecutive_transport_errors: int = 3


@dataclass(frozen=True)
class ProviderConfig:
    """Main configuration value, passed explicitly to the RenderController."""

    provider: ProviderName = ProviderName.SIMULATOR
    force_simulator: bool = True
    credential_policy: CredentialPolicy = CredentialPolicy.SIMULATE

    simulator: SimulatorConfig = field(default_factory=SimulatorConfig)
    eden: EdenConfig = field(default_factory=EdenConfig)
    replicate: ReplicateConfig = field(default_factory=ReplicateConfig)
    copy: CopyConfig = field(default_factory=CopyConfig)
    polling: PollingDefaults = field(default_factory=PollingDefaults)

    http_timeout_seconds: float = 30.0
    allowed_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProviderConfig":
        """Load configuration from environment variables."""
        env = os.environ if environ is None else environ

        provider = _enum(ProviderName, env.get("RENDER_PROVIDER"), ProviderName.SIMULATOR)

        # USE_SIMULATOR wins; otherwise honour the per-provider switch
        # (USE_EDEN_SIMULATOR, USE_REPLICATE_SIMULATOR). Simulate unless told not to.
        force_raw = env.get("USE_SIMULATOR")
        if force_raw is None and provider != ProviderName.SIMULATOR:
            force_raw = env.get(f"USE_{provider.value.upper()}_SIMULATOR")

        origins = env.get("ALLOWED_ORIGINS", "*")

        return cls(
            provider=provider,
            force_simulator=_flag(force_raw, default=True),
            credential_policy=_enum(
                CredentialPolicy, env.get("MISSING_CREDENTIALS_POLICY"), CredentialPolicy.SIMULATE
            ),
            simulator=SimulatorConfig(
                mode=_enum(SimulatorMode, env.get("SIMULATOR_MODE"), SimulatorMode.INSTANT),
                asset_url=env.get("SIMULATOR_ASSET_URL") or SAMPLE_VIDEO_URL,
            ),
            eden=EdenConfig(
                api_key=env.get("EDEN_API_KEY", ""),
                api_base=env.get("EDEN_BASE") or EdenConfig.api_base,
                engine=(env.get("EDEN_PROVIDER") or EdenConfig.engine).lower(),
                endpoint_path=(env.get("EDEN_ENDPOINT_PATH") or EdenConfig.endpoint_path).strip("/"),
            ),
            replicate=ReplicateConfig(
                api_key=env.get("REPLICATE_API_KEY") or env.get("REPLICATE_API_TOKEN", ""),
                api_base=env.get("REPLICATE_BASE") or ReplicateConfig.api_base,
                model_version=env.get("REPLICATE_MODEL_VERSION") or ReplicateConfig.model_version,
                endpoint_path=(
                    env.get("REPLICATE_ENDPOINT_PATH") or ReplicateConfig.endpoint_path
                ).strip("/"),
            ),
            copy=CopyConfig(
                api_key=env.get("OPENAI_API_KEY", ""),
                api_base=env.get("OPENAI_BASE") or CopyConfig.api_base,
                model=env.get("OPENAI_MODEL") or CopyConfig.model,
            ),
            polling=PollingDefaults(
                interval_ms=_number(env.get("POLL_INTERVAL_MS"), 900, int),
                timeout_ms=_number(env.get("POLL_TIMEOUT_MS"), 180_000, int),
                max_consecutive_transport_errors=_number(
                    env.get("POLL_MAX_TRANSPORT_ERRORS"), 3, int
                ),
            ),
            http_timeout_seconds=_number(env.get("HTTP_TIMEOUT_SECONDS"), 30.0),
            allowed_origins=tuple(o.strip() for o in origins.split(",") if o.strip()) or ("*",),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )

    def has_credentials(self, provider: ProviderName) -> bool:
        if provider == ProviderName.EDEN:
            return self.eden.has_credentials
        if provider == ProviderName.REPLICATE:
            return self.replicate.has_credentials
        return True

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if self.provider != ProviderName.SIMULATOR and not self.force_simulator:
            if not self.has_credentials(self.provider):
                issues.append(
                    f"{self.provider.value} selected but no API key configured "
                    f"(policy: {self.credential_policy.value})"
                )

        if not self.copy.api_key:
            issues.append("OPENAI_API_KEY not configured (needed for copy generation)")

        if self.polling.interval_ms <= 0:
            issues.append("POLL_INTERVAL_MS must be positive")

        return issues

    def env_presence(self) -> dict[str, bool]:
        """Credential presence flags; never the values themselves."""
        return {
            "openaiKeyPresent": bool(self.copy.api_key),
            "edenKeyPresent": self.eden.has_credentials,
            "replicateKeyPresent": self.replicate.has_credentials,
            "simulatorForced": self.force_simulator,
        }


# Global config instance, for entry points only
_config: Optional[ProviderConfig] = None


def get_config() -> ProviderConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ProviderConfig.from_env()
    return _config
