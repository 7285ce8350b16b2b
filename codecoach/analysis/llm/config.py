"""
Model configuration and pricing data for all supported LLM providers.

Prices are per million tokens in USD.
"""
from __future__ import annotations

MODEL_CONFIG = {
    "claude": {
        "max_concurrency": 4,
        "default_model": "claude-haiku-4-5",
        "models": {
            "claude-haiku-4-5": {
                "input_price": 1.0,
                "output_price": 5.0,
            },
            "claude-opus-4-6": {
                "input_price": 5.0,
                "output_price": 25.0,
            },
        }
    },
    "openai": {
        "max_concurrency": 4,
        "default_model": "gpt-4.1-mini",
        "models": {
            "gpt-4.1-mini": {
                "input_price": 0.40,
                "output_price": 1.60,
            },
            "gpt-5.2": {
                "input_price": 1.75,
                "output_price": 14.0,
            },
        }
    },
    "zhipu": {
        "max_concurrency": 3,
        "default_model": "glm-5",
        "models": {
            "glm-5": {
                "input_price": 1.0,
                "output_price": 3.2,
            },
        }
    },
}


def get_model_pricing(provider: str, model: str) -> dict | None:
    """Look up pricing for a specific provider/model combination.

    Returns:
        Dict with 'input_price' and 'output_price', or None if not found.
    """
    provider_config = MODEL_CONFIG.get(provider, {})
    return provider_config.get("models", {}).get(model)


def get_all_models_for_provider(provider: str) -> list[str]:
    """Return all model identifiers for a given provider."""
    provider_config = MODEL_CONFIG.get(provider, {})
    return list(provider_config.get("models", {}).keys())


def get_default_model(provider: str) -> str | None:
    return MODEL_CONFIG.get(provider, {}).get("default_model")


def get_max_concurrency(provider: str) -> int:
    """Return the max concurrency setting for a given provider.

    Defaults to 3 if not configured.
    """
    return MODEL_CONFIG.get(provider, {}).get("max_concurrency", 3)
