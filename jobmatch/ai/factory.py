from jobmatch.ai.config import load_ai_config
from jobmatch.ai.errors import CompletionConfigError
from jobmatch.ai.types import CompletionClient

from jobmatch.ai.providers.openai_provider import OpenAIProvider


def get_completion_client() -> CompletionClient:
    cfg = load_ai_config()

    if cfg.provider == "openai":
        if not cfg.api_key:
            raise CompletionConfigError("OPENAI_API_KEY is missing")
        return OpenAIProvider(
            model=cfg.model,
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            timeout_s=cfg.timeout_s,
        )

    raise CompletionConfigError(f"Unsupported AI_PROVIDER='{cfg.provider}'")
