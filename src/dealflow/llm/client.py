"""Anthropic client factory and model configuration for reply classification."""

from anthropic import Anthropic

# Haiku for fast/cheap classification of creator replies
CLASSIFIER_MODEL = "claude-haiku-4-5-20250929"

CLASSIFIER_MAX_TOKENS = 1024
TRANSCRIPT_MESSAGE_LIMIT = 10


def get_anthropic_client(api_key: str | None = None) -> Anthropic:
    """Create an Anthropic client.

    Without an explicit *api_key* the Anthropic() constructor reads
    ANTHROPIC_API_KEY from the environment.

    Returns:
        Configured Anthropic client instance.
    """
    if api_key:
        return Anthropic(api_key=api_key)
    return Anthropic()
