"""Reply classification using Claude structured outputs.

Turns the recent messages of a conversation plus its baseline offer into an
``Analysis``.  Failures are raised as typed ``ClassifierError`` subclasses so
the orchestrator can hand them to the escalation policy instead of guessing
a default analysis.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

import anthropic
import structlog
from pydantic import ValidationError

from dealflow.domain.errors import ClassifierUnavailableError, UnparseableResponseError
from dealflow.domain.models import Analysis, Message, NegotiationTerms
from dealflow.llm.client import CLASSIFIER_MAX_TOKENS, CLASSIFIER_MODEL
from dealflow.llm.models import ReplyAnalysis
from dealflow.llm.prompts import (
    CLASSIFIER_SYSTEM_PROMPT,
    format_negotiation_context,
    format_transcript,
)
from dealflow.resilience.retry import resilient_api_call

logger = structlog.get_logger()


class ClassifierAdapter(Protocol):
    """Anything that can classify the latest creator reply of a conversation."""

    def classify(self, messages: Sequence[Message], terms: NegotiationTerms) -> Analysis:
        """Return an analysis or raise a ``ClassifierError``."""
        ...


def _is_transient(exc: BaseException) -> bool:
    return isinstance(
        exc,
        (anthropic.APIConnectionError, anthropic.RateLimitError, anthropic.InternalServerError),
    )


class AnthropicClassifier:
    """Classifier backed by ``client.messages.parse()`` with ``ReplyAnalysis`` output.

    Args:
        client: An ``anthropic.Anthropic`` instance (or compatible mock).
        model: The Anthropic model ID to use.  Defaults to ``CLASSIFIER_MODEL``
            (Haiku for speed).
    """

    def __init__(self, client: anthropic.Anthropic, model: str = CLASSIFIER_MODEL) -> None:
        self._client = client
        self._model = model

    @resilient_api_call("anthropic", retry_on=_is_transient)
    def _parse(self, system: str, transcript: str) -> Any:
        return self._client.messages.parse(
            model=self._model,
            max_tokens=CLASSIFIER_MAX_TOKENS,
            system=system,
            messages=[
                {
                    "role": "user",
                    "content": (
                        "Classify the latest creator message in this conversation:\n\n"
                        f"{transcript}"
                    ),
                },
            ],
            output_format=ReplyAnalysis,
        )

    def classify(self, messages: Sequence[Message], terms: NegotiationTerms) -> Analysis:
        """Classify the latest creator reply in *messages*.

        Args:
            messages: Recent ledger messages, oldest first.
            terms: The conversation's baseline offer.

        Returns:
            The parsed ``Analysis``.  Low confidence is returned as-is for the
            escalation policy to judge.

        Raises:
            ClassifierUnavailableError: If the API cannot be reached or errors.
            UnparseableResponseError: If no valid structured output came back.
        """
        system = CLASSIFIER_SYSTEM_PROMPT.format(
            negotiation_context=format_negotiation_context(terms),
        )
        try:
            response = self._parse(system, format_transcript(messages))
        except anthropic.APIError as exc:
            logger.warning("Classifier call failed", error=str(exc))
            raise ClassifierUnavailableError(f"Anthropic API error: {exc}") from exc
        except ValidationError as exc:
            raise UnparseableResponseError(f"Structured output did not validate: {exc}") from exc

        parsed = getattr(response, "parsed_output", None)
        if parsed is None:
            raise UnparseableResponseError("Anthropic structured output returned None")
        if not isinstance(parsed, Analysis):
            try:
                parsed = ReplyAnalysis.model_validate(parsed)
            except ValidationError as exc:
                raise UnparseableResponseError(
                    f"Structured output did not validate: {exc}"
                ) from exc
        return parsed
