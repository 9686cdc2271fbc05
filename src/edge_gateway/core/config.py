"""
Configuration loading for the edge gateway.

Raw per-provider settings are read once (YAML file or environment) and
turned into a typed, validated provider config only when that provider
is first selected.
"""

import os
import logging
from enum import Enum
from typing import Dict, List, Any, Optional, Mapping, Union
from dataclasses import MISSING, dataclass, field, fields
from pathlib import Path

import yaml

from .errors import GatewayConfigError

logger = logging.getLogger(__name__)


class ProviderType(str, Enum):
    """Provider kinds the gateway can dispatch to."""
    AZURE = "azure"
    AZURE_FOUNDRY = "azure-foundry"
    OPENAI = "openai"
    CLOUDFLARE = "cloudflare"
    VERTEX = "vertex"
    VERTEX_CLAUDE = "vertex-claude"


class _ProviderConfigBase:
    """Shared validation for provider config variants."""

    type: ProviderType
    required: tuple = ()

    def __post_init__(self):
        for name in self.required:
            if not getattr(self, name):
                raise GatewayConfigError(
                    f"{self.type.value}: '{name}' is required",
                    provider=self.type.value,
                )


@dataclass(frozen=True)
class AzureConfig(_ProviderConfigBase):
    """Azure OpenAI deployment."""
    endpoint: str
    api_key: str
    deployment: str
    api_version: str = "2024-02-15-preview"
    type: ProviderType = field(default=ProviderType.AZURE, init=False)
    required = ("endpoint", "api_key", "deployment")


@dataclass(frozen=True)
class AzureFoundryConfig(_ProviderConfigBase):
    """Azure model-catalog endpoint (OpenAI- and Anthropic-style models)."""
    endpoint: str
    api_key: str
    model: str = "gpt-4o"
    type: ProviderType = field(default=ProviderType.AZURE_FOUNDRY, init=False)
    required = ("endpoint", "api_key")


@dataclass(frozen=True)
class OpenAIConfig(_ProviderConfigBase):
    """Plain OpenAI (or any OpenAI-compatible base URL)."""
    api_key: str
    base_url: str = "https://api.openai.com/v1"
    organization: Optional[str] = None
    model: str = "gpt-4o"
    type: ProviderType = field(default=ProviderType.OPENAI, init=False)
    required = ("api_key",)


@dataclass(frozen=True)
class CloudflareConfig(_ProviderConfigBase):
    """Cloudflare Workers AI."""
    account_id: str
    api_token: str
    model: str = "@cf/meta/llama-3.1-8b-instruct"
    type: ProviderType = field(default=ProviderType.CLOUDFLARE, init=False)
    required = ("account_id", "api_token")


@dataclass(frozen=True)
class VertexConfig(_ProviderConfigBase):
    """
    Google Gemini / Vertex AI.

    Either a Gemini API key, or a project id plus service-account JSON,
    must be present.
    """
    project_id: Optional[str] = None
    region: str = "us-central1"
    service_account_json: Optional[str] = None
    gemini_api_key: Optional[str] = None
    model: str = "gemini-2.0-flash"
    type: ProviderType = field(default=ProviderType.VERTEX, init=False)

    def __post_init__(self):
        if self.gemini_api_key:
            return
        if not (self.project_id and self.service_account_json):
            raise GatewayConfigError(
                "vertex: requires gemini_api_key, or project_id with service_account_json",
                provider=self.type.value,
            )

    @property
    def uses_service_account(self) -> bool:
        return bool(self.project_id and self.service_account_json)


@dataclass(frozen=True)
class VertexClaudeConfig(_ProviderConfigBase):
    """Anthropic models served from Vertex AI Model Garden."""
    project_id: str
    service_account_json: str
    region: str = "us-east5"
    model: str = "claude-3-5-sonnet-v2@20241022"
    type: ProviderType = field(default=ProviderType.VERTEX_CLAUDE, init=False)
    required = ("project_id", "service_account_json")


AnyProviderConfig = Union[
    AzureConfig,
    AzureFoundryConfig,
    OpenAIConfig,
    CloudflareConfig,
    VertexConfig,
    VertexClaudeConfig,
]

CONFIG_CLASSES = {
    ProviderType.AZURE: AzureConfig,
    ProviderType.AZURE_FOUNDRY: AzureFoundryConfig,
    ProviderType.OPENAI: OpenAIConfig,
    ProviderType.CLOUDFLARE: CloudflareConfig,
    ProviderType.VERTEX: VertexConfig,
    ProviderType.VERTEX_CLAUDE: VertexClaudeConfig,
}

# provider -> {config field: environment variable}
ENV_VARS: Dict[ProviderType, Dict[str, str]] = {
    ProviderType.AZURE: {
        "endpoint": "AZURE_ENDPOINT",
        "api_key": "AZURE_API_KEY",
        "deployment": "AZURE_DEPLOYMENT",
        "api_version": "AZURE_API_VERSION",
    },
    ProviderType.AZURE_FOUNDRY: {
        "endpoint": "AZURE_FOUNDRY_ENDPOINT",
        "api_key": "AZURE_FOUNDRY_API_KEY",
        "model": "AZURE_FOUNDRY_MODEL",
    },
    ProviderType.OPENAI: {
        "api_key": "OPENAI_API_KEY",
        "base_url": "OPENAI_BASE_URL",
        "organization": "OPENAI_ORGANIZATION",
        "model": "OPENAI_MODEL",
    },
    ProviderType.CLOUDFLARE: {
        "account_id": "CF_ACCOUNT_ID",
        "api_token": "CF_API_TOKEN",
        "model": "CF_MODEL",
    },
    ProviderType.VERTEX: {
        "project_id": "VERTEX_PROJECT_ID",
        "region": "VERTEX_REGION",
        "service_account_json": "VERTEX_SERVICE_ACCOUNT_JSON",
        "gemini_api_key": "GEMINI_API_KEY",
        "model": "VERTEX_MODEL",
    },
    ProviderType.VERTEX_CLAUDE: {
        "project_id": "VERTEX_PROJECT_ID",
        "region": "VERTEX_CLAUDE_REGION",
        "service_account_json": "VERTEX_SERVICE_ACCOUNT_JSON",
        "model": "VERTEX_CLAUDE_MODEL",
    },
}


def parse_provider_type(value: str) -> ProviderType:
    """Parse a provider kind name, raising a config error if unknown."""
    try:
        return ProviderType(value.strip().lower())
    except ValueError:
        raise GatewayConfigError(f"Unknown provider: {value}", provider=value)


def build_provider_config(provider: ProviderType, values: Mapping[str, Any]) -> AnyProviderConfig:
    """
    Build a typed provider config from raw settings.

    Empty values are dropped so that dataclass defaults apply; missing
    required fields raise GatewayConfigError.
    """
    config_class = CONFIG_CLASSES[provider]
    accepted = {f.name for f in fields(config_class) if f.init}
    kwargs = {k: v for k, v in values.items() if k in accepted and v not in (None, "")}
    for f in fields(config_class):
        if f.init and f.name not in kwargs and f.default is MISSING:
            kwargs[f.name] = ""
    return config_class(**kwargs)


@dataclass
class GatewayConfig:
    """Complete gateway configuration."""
    default_provider: ProviderType = ProviderType.OPENAI
    client_api_key: Optional[str] = None
    allowed_origins: List[str] = field(default_factory=list)
    providers: Dict[ProviderType, Dict[str, Any]] = field(default_factory=dict)

    def provider_config(self, provider: ProviderType) -> AnyProviderConfig:
        """Typed config for one provider; validated on every call."""
        return build_provider_config(provider, self.providers.get(provider, {}))


def load_config(config_path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """
    Load gateway configuration.

    Args:
        config_path: Path to a YAML config file. If None, GATEWAY_CONFIG is
            consulted, then the environment is used directly.
        env: Environment mapping (defaults to os.environ)

    Returns:
        Loaded configuration
    """
    env = os.environ if env is None else env
    config_path = config_path or env.get("GATEWAY_CONFIG")

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise GatewayConfigError(f"Config file not found: {config_path}")
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded gateway config from {config_path}")
        return _parse_config(data, env)

    return config_from_env(env)


def _expand(value: Any, env: Mapping[str, str]) -> Any:
    """Expand `${VAR}` string values from the environment."""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        return env.get(value[2:-1], "")
    return value


def _parse_origins(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [o.strip() for o in value if o and o.strip()]


def _parse_config(data: Dict[str, Any], env: Mapping[str, str]) -> GatewayConfig:
    """Parse configuration dictionary."""
    providers: Dict[ProviderType, Dict[str, Any]] = {}
    for name, values in (data.get("providers") or {}).items():
        provider = parse_provider_type(name)
        providers[provider] = {k: _expand(v, env) for k, v in (values or {}).items()}

    return GatewayConfig(
        default_provider=parse_provider_type(_expand(data.get("default_provider"), env) or "openai"),
        client_api_key=_expand(data.get("client_api_key"), env) or None,
        allowed_origins=_parse_origins(_expand(data.get("allowed_origins"), env)),
        providers=providers,
    )


def config_from_env(env: Mapping[str, str]) -> GatewayConfig:
    """Build configuration from environment variables."""
    providers = {
        provider: {name: env.get(var) for name, var in variables.items()}
        for provider, variables in ENV_VARS.items()
    }
    return GatewayConfig(
        default_provider=parse_provider_type(env.get("AI_PROVIDER") or "openai"),
        client_api_key=env.get("CLIENT_API_KEY") or None,
        allowed_origins=_parse_origins(env.get("ALLOWED_ORIGINS")),
        providers=providers,
    )
