"""
Base Agent Contracts for the assessment core.

Every AI-backed task (question generation, answer grading, CV scoring, text
analysis) is an agent with one typed input and one typed output. Agents never
raise for expected failures: they return an AgentResponse whose status says
whether the caller may retry, with the typed error attached.

Design Principles:
    1. Single Responsibility: Each agent does exactly one thing well
    2. Strong Typing: All inputs/outputs are typed dataclasses, not raw strings
    3. Explainability: Every result includes confidence and explanation
    4. Auditability: The reasoning trace of each run travels in metadata

Usage:
    >>> class MyAgent(BaseAgent[MyInput, MyOutput]):
    ...     name = "my_agent"
    ...     description = "Does something specific"
    ...
    ...     def run(self, input_data: MyInput) -> AgentResponse[MyOutput]:
    ...         self._begin_trace()
    ...         return self._success(output, confidence=0.9, explanation="...")
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar
from uuid import uuid4

from ..core.cache import ResponseCache
from ..core.config import Settings, get_settings
from ..core.errors import AssessmentError, TransientUpstreamError
from ..core.llm import GenerativeClient
from ..core.prompts import PromptBuilder
from ..schemas.tasks import GenerationTask
from ..utils.extractor import ResultExtractor

logger = logging.getLogger(__name__)


# =============================================================================
# TYPE VARIABLES
# =============================================================================

InputT = TypeVar("InputT")   # Agent input type
OutputT = TypeVar("OutputT") # Agent output type


# =============================================================================
# ENUMS
# =============================================================================

class AgentStatus(str, Enum):
    """
    Outcome status of an agent's execution.

    Using str, Enum for JSON serialization compatibility.
    """
    SUCCESS = "success"   # Agent completed successfully
    FAILURE = "failure"   # Agent failed, cannot proceed
    RETRY = "retry"       # Agent failed but retry may succeed (transient error)


# =============================================================================
# CORE DATA CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class AgentResponse(Generic[OutputT]):
    """
    Standardized response returned by every agent.

    Attributes:
        agent_name: Identifier of the agent that produced this response
        status: Execution outcome (success/failure/retry)
        output: The actual result data, strongly typed per agent
        confidence_score: Agent's confidence in the output [0.0, 1.0]
            - 1.0 = Fully confident (deterministic result)
            - 0.7+ = High confidence
            - <0.5 = Low confidence (degraded or placeholder output)
        explanation: Human-readable reasoning for the output
        metadata: Diagnostics, including the reasoning trace
        error: The typed error behind a FAILURE or RETRY status
    """
    agent_name: str
    status: AgentStatus
    output: Optional[OutputT] = None
    confidence_score: float = 0.0
    explanation: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[AssessmentError] = None

    def __post_init__(self) -> None:
        """Validate invariants after initialization."""
        if not 0.0 <= self.confidence_score <= 1.0:
            raise ValueError(
                f"confidence_score must be in [0.0, 1.0], got {self.confidence_score}"
            )

    def is_successful(self) -> bool:
        return self.status == AgentStatus.SUCCESS

    def should_retry(self) -> bool:
        return self.status == AgentStatus.RETRY

    def needs_human_review(self, threshold: float = 0.7) -> bool:
        """Check if confidence is below the review threshold."""
        return self.is_successful() and self.confidence_score < threshold

    def unwrap(self) -> OutputT:
        """Return the output, or raise the error that prevented it."""
        if self.is_successful():
            return self.output  # type: ignore[return-value]
        if self.error is not None:
            raise self.error
        raise AssessmentError(self.explanation or f"{self.agent_name} failed")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dictionary."""
        output = self.output
        if hasattr(output, "to_dict"):
            output = output.to_dict()  # type: ignore[union-attr]
        elif isinstance(output, list):
            output = [o.to_dict() if hasattr(o, "to_dict") else o for o in output]
        return {
            "agent_name": self.agent_name,
            "status": self.status.value,
            "output": output,
            "confidence_score": self.confidence_score,
            "explanation": self.explanation,
            "metadata": self.metadata,
            "error": self.error.to_dict() if self.error else None,
        }


# =============================================================================
# BASE AGENT ABSTRACT CLASS
# =============================================================================

class BaseAgent(ABC, Generic[InputT, OutputT]):
    """
    Abstract base class for all agents in the assessment core.

    Class Attributes:
        name: Unique identifier for this agent type (must be overridden)
        description: Human-readable description of agent's responsibility

    Agent instances are shared between threads; the reasoning trace is kept
    per thread and reset at the start of each run.
    """

    name: str = "base_agent"
    description: str = "Base agent - must be overridden"

    def __init__(self, agent_id: Optional[str] = None):
        self.agent_id = agent_id or uuid4().hex[:12]
        self._local = threading.local()

    # -------------------------------------------------------------------------
    # Reasoning trace
    # -------------------------------------------------------------------------

    def _begin_trace(self) -> None:
        self._local.reasoning = []

    @property
    def reasoning_log(self) -> List[str]:
        if not hasattr(self._local, "reasoning"):
            self._local.reasoning = []
        return self._local.reasoning

    def log_reasoning(self, message: str) -> None:
        """Add a step to the reasoning trace for auditability."""
        self.reasoning_log.append(message)
        logger.debug("[%s] %s", self.name, message)

    # -------------------------------------------------------------------------
    # Abstract Method
    # -------------------------------------------------------------------------

    @abstractmethod
    def run(self, input_data: InputT) -> AgentResponse[OutputT]:
        """
        Execute the agent's core logic.

        Should NOT raise for expected failures. Validation and upstream errors
        are returned as AgentResponse with status FAILURE or RETRY.
        """

    # -------------------------------------------------------------------------
    # Helper Methods (for subclasses)
    # -------------------------------------------------------------------------

    def _success(
        self,
        output: OutputT,
        confidence: float,
        explanation: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentResponse[OutputT]:
        return AgentResponse(
            agent_name=self.name,
            status=AgentStatus.SUCCESS,
            output=output,
            confidence_score=confidence,
            explanation=explanation,
            metadata={**(metadata or {}), "reasoning": list(self.reasoning_log)},
        )

    def _failure(
        self,
        error: AssessmentError,
        explanation: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentResponse[OutputT]:
        return AgentResponse(
            agent_name=self.name,
            status=AgentStatus.FAILURE,
            output=None,
            confidence_score=0.0,
            explanation=explanation,
            metadata={
                **(metadata or {}),
                "error": error.message,
                "reasoning": list(self.reasoning_log),
            },
            error=error,
        )

    def _retry(
        self,
        error: AssessmentError,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentResponse[OutputT]:
        return AgentResponse(
            agent_name=self.name,
            status=AgentStatus.RETRY,
            output=None,
            confidence_score=0.0,
            explanation=f"Retry suggested: {error.message}",
            metadata={**(metadata or {}), "reasoning": list(self.reasoning_log)},
            error=error,
        )

    def _from_error(self, error: AssessmentError, action: str) -> AgentResponse[OutputT]:
        """RETRY for transient upstream trouble, FAILURE for everything else."""
        self.log_reasoning(f"{action} failed: {error.message}")
        if isinstance(error, TransientUpstreamError):
            logger.warning("%s: %s failed transiently: %s", self.name, action, error.message)
            return self._retry(error)
        logger.error("%s: %s failed: %s", self.name, action, error.message)
        return self._failure(error, explanation=f"{action} failed: {error.message}")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class GenerativeAgent(BaseAgent[InputT, OutputT]):
    """
    An agent that routes one GenerationTask through the prompt builder, the
    response cache and the generative client, then parses the raw text.

    Collaborators default to fresh instances built from settings; pass shared
    ones so several agents use the same cache.
    """

    def __init__(
        self,
        client: Optional[GenerativeClient] = None,
        cache: Optional[ResponseCache] = None,
        builder: Optional[PromptBuilder] = None,
        extractor: Optional[ResultExtractor] = None,
        settings: Optional[Settings] = None,
        agent_id: Optional[str] = None,
    ):
        super().__init__(agent_id)
        self.settings = settings or get_settings()
        self._client = client
        if cache is None:
            cache = ResponseCache(ttl_seconds=self.settings.cache_ttl_seconds)
        self.cache = cache
        self.builder = builder or PromptBuilder(language=self.settings.RESPONSE_LANGUAGE)
        self.extractor = extractor or ResultExtractor()

    @property
    def client(self) -> GenerativeClient:
        """Lazy initialization of the generative client."""
        if self._client is None:
            self._client = GenerativeClient(settings=self.settings)
        return self._client

    def _generate(self, task: GenerationTask) -> str:
        """Raw generated text for ``task``, served from cache when fresh."""
        prompt = self.builder.build(task)
        params = self.builder.params_for(task.kind)
        system = self.builder.system_prompt(task.kind)
        self.log_reasoning(f"Requesting {task.kind.value} (key {task.cache_key[:12]})")
        return self.cache.get_or_compute(
            task, lambda: self.client.call(prompt, params, system=system)
        )
