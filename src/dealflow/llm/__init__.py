"""LLM integration package for reply classification.

Provides Anthropic client configuration, the structured output contract,
the classification prompt, the Anthropic-backed classifier, and a scripted
classifier for simulated negotiations.
"""

from dealflow.llm.classifier import AnthropicClassifier, ClassifierAdapter
from dealflow.llm.client import CLASSIFIER_MODEL, get_anthropic_client
from dealflow.llm.models import (
    ClassificationFailure,
    ClassifierResult,
    FailureKind,
    ReplyAnalysis,
)
from dealflow.llm.simulated import (
    SCRIPTED_REPLIES,
    ScriptedClassifier,
    ScriptedReply,
    next_scripted_reply,
)

__all__ = [
    "CLASSIFIER_MODEL",
    "SCRIPTED_REPLIES",
    "AnthropicClassifier",
    "ClassificationFailure",
    "ClassifierAdapter",
    "ClassifierResult",
    "FailureKind",
    "ReplyAnalysis",
    "ScriptedClassifier",
    "ScriptedReply",
    "get_anthropic_client",
    "next_scripted_reply",
]
