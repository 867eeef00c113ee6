"""LLM provider enums and the default competitor roster.

Each roster entry binds one competing agent to a provider endpoint and a model
name, so swapping a competitor's model is a one-line change here.
"""

from enum import StrEnum

from pydantic import BaseModel


class ProviderKind(StrEnum):
    """Supported decision providers (request/response shapes)."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    GEMINI = "gemini"
    GROK = "grok"
    KIMI = "kimi"
    QWEN = "qwen"
    OPENROUTER = "openrouter"


# OpenAI-compatible chat completion endpoints
OPENAI_COMPATIBLE_BASE_URLS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "https://api.openai.com/v1",
    ProviderKind.DEEPSEEK: "https://api.deepseek.com/v1",
    ProviderKind.GROK: "https://api.x.ai/v1",
    ProviderKind.KIMI: "https://api.moonshot.ai/v1",
    ProviderKind.QWEN: "https://dashscope-intl.aliyuncs.com/compatible-mode/v1",
}

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class AnthropicModel(StrEnum):
    CLAUDE_OPUS_4_5 = "claude-opus-4-5-20251101"
    CLAUDE_SONNET_4_5 = "claude-sonnet-4-5"


class OpenAIModel(StrEnum):
    GPT_5_2 = "gpt-5.2"
    GPT_5_MINI = "gpt-5-mini"


class CompetitorModel(StrEnum):
    """Models served through the OpenAI-compatible and Gemini endpoints."""

    DEEPSEEK_CHAT = "deepseek-chat"
    GEMINI_2_0_FLASH = "gemini-2.0-flash-exp"
    GROK_4_1_FAST = "grok-4-1-fast-reasoning"
    KIMI_K2_THINKING = "kimi-k2-thinking"
    QWEN3_MAX = "qwen3-max"


class AgentModelConfig(BaseModel):
    """Static description of one competitor."""

    external_id: str
    display_name: str
    provider: ProviderKind
    model: str
    api_key_env: str
    color: str = "#6b7280"
    max_tokens: int = 4096
    temperature: float = 0.7
    cost_per_1k_calls: float = 0.0
    base_url: str | None = None


DEFAULT_ROSTER: list[AgentModelConfig] = [
    AgentModelConfig(
        external_id="claude",
        display_name="Claude",
        provider=ProviderKind.ANTHROPIC,
        model=AnthropicModel.CLAUDE_OPUS_4_5,
        api_key_env="ANTHROPIC_API_KEY",
        color="#D97706",
        cost_per_1k_calls=27.50,
    ),
    AgentModelConfig(
        external_id="chatgpt",
        display_name="ChatGPT",
        provider=ProviderKind.OPENAI,
        model=OpenAIModel.GPT_5_2,
        api_key_env="OPENAI_API_KEY",
        color="#10A37F",
        cost_per_1k_calls=15.0,
    ),
    AgentModelConfig(
        external_id="deepseek",
        display_name="DeepSeek",
        provider=ProviderKind.DEEPSEEK,
        model=CompetitorModel.DEEPSEEK_CHAT,
        api_key_env="DEEPSEEK_API_KEY",
        color="#4F46E5",
        cost_per_1k_calls=1.68,
    ),
    AgentModelConfig(
        external_id="gemini",
        display_name="Gemini",
        provider=ProviderKind.GEMINI,
        model=CompetitorModel.GEMINI_2_0_FLASH,
        api_key_env="GOOGLE_API_KEY",
        color="#4285F4",
        cost_per_1k_calls=0.50,
    ),
    AgentModelConfig(
        external_id="grok",
        display_name="Grok",
        provider=ProviderKind.GROK,
        model=CompetitorModel.GROK_4_1_FAST,
        api_key_env="XAI_API_KEY",
        color="#000000",
        cost_per_1k_calls=5.0,
    ),
    AgentModelConfig(
        external_id="kimi",
        display_name="Kimi",
        provider=ProviderKind.KIMI,
        model=CompetitorModel.KIMI_K2_THINKING,
        api_key_env="MOONSHOT_API_KEY",
        color="#6366F1",
        cost_per_1k_calls=3.0,
    ),
    AgentModelConfig(
        external_id="qwen",
        display_name="Qwen",
        provider=ProviderKind.QWEN,
        model=CompetitorModel.QWEN3_MAX,
        api_key_env="DASHSCOPE_API_KEY",
        color="#FF6A00",
        cost_per_1k_calls=4.0,
    ),
]

# Average tokens in one trading call, used to scale the per-call price
TOKENS_PER_CALL_ESTIMATE = 2500


def roster_entry(external_id: str) -> AgentModelConfig | None:
    """Find a roster entry by its external id."""
    for entry in DEFAULT_ROSTER:
        if entry.external_id == external_id:
            return entry
    return None


def estimate_cost(cost_per_1k_calls: float, tokens_used: int) -> float:
    """Approximate USD cost of a call from its token count."""
    return (cost_per_1k_calls / 1000) * (tokens_used / TOKENS_PER_CALL_ESTIMATE)
