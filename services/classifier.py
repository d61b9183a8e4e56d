# FILE: services/classifier.py
"""
Classification boundary.

classify(text, context) -> list[ActionCandidate]; an empty list means
"not understood". How the agent decides is not this module's concern,
only how its failures are classified and retried.
"""

import logging
from asyncio import wait_for, TimeoutError
from typing import Any, List, Optional, Protocol

import httpx
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior

from agents.command_agent import build_prompt, get_command_agent
from config import CLASSIFIER_RETRIES, CLASSIFIER_RETRY_DELAY, CLASSIFIER_TIMEOUT
from core.errors import (
    ClassificationRejected,
    ClassificationTransportError,
    ClassifierUnavailable,
)
from services.retry import RetryPolicy, call_with_retry

logger = logging.getLogger("command_classifier")

# Status codes worth another attempt: throttling and server-side failures
RETRYABLE_STATUS = 429


class CommandClassifier(Protocol):
    async def classify(self, text: str, context: str) -> List[Any]:
        ...


class AgentCommandClassifier:
    """
    Runs the pydantic-ai classification agent and sorts its failures into
    retryable (ClassifierUnavailable) and terminal (ClassificationRejected).
    """

    def __init__(self, agent=None, *, timeout: float = CLASSIFIER_TIMEOUT):
        self._agent = agent
        self.timeout = timeout

    @property
    def agent(self):
        if self._agent is None:
            self._agent = get_command_agent()
        return self._agent

    async def classify(self, text: str, context: str) -> List[Any]:
        prompt = build_prompt(text, context)
        try:
            result = await wait_for(self.agent.run(prompt), timeout=self.timeout)
        except TimeoutError as exc:
            raise ClassifierUnavailable("classification timed out") from exc
        except httpx.TransportError as exc:
            raise ClassifierUnavailable(f"transport error: {exc}") from exc
        except ModelHTTPError as exc:
            if exc.status_code >= 500 or exc.status_code == RETRYABLE_STATUS:
                raise ClassifierUnavailable(f"model HTTP {exc.status_code}") from exc
            logger.error(f"[CLASSIFY] rejected by model: HTTP {exc.status_code}")
            raise ClassificationRejected() from exc
        except UnexpectedModelBehavior as exc:
            logger.error(f"[CLASSIFY] unusable model output: {exc}")
            raise ClassificationRejected() from exc

        actions = list(result.output.actions)
        logger.info(
            f"[CLASSIFY] context={context} candidates={[a.kind for a in actions]}"
        )
        return actions


class RetryingClassifier:
    """Applies a RetryPolicy around another classifier."""

    def __init__(self, inner: CommandClassifier, policy: Optional[RetryPolicy] = None, *, sleep=None):
        self.inner = inner
        self.policy = policy or RetryPolicy(
            retries=CLASSIFIER_RETRIES, delay=CLASSIFIER_RETRY_DELAY
        )
        self._sleep = sleep

    async def classify(self, text: str, context: str) -> List[Any]:
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        try:
            return await call_with_retry(
                self.inner.classify, text, context, policy=self.policy, **kwargs
            )
        except ClassifierUnavailable as exc:
            raise ClassificationTransportError() from exc


def build_default_classifier() -> RetryingClassifier:
    return RetryingClassifier(AgentCommandClassifier())
