"""
Generation task schemas.

A GenerationTask names what is being asked of the generative service and with
which inputs. It is immutable, and its canonical serialization doubles as the
response-cache key.
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union


class TaskKind(str, Enum):
    """Kinds of work routed to the generative service."""
    QUESTION_GEN = "question_gen"
    CV_SCORE = "cv_score"
    ANSWER_GRADE = "answer_grade"
    SENTIMENT = "sentiment"
    PLAGIARISM = "plagiarism"


InputValue = Union[str, int, float, bool, None]


def _normalize(value: InputValue) -> InputValue:
    # Trimmed, case preserved
    if isinstance(value, str):
        return value.strip()
    return value


@dataclass(frozen=True)
class GenerationParams:
    """Sampling parameters sent with every upstream call."""
    max_length: int = 1024
    temperature: float = 0.7
    top_p: float = 0.95

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_length": self.max_length,
            "temperature": self.temperature,
            "top_p": self.top_p,
        }


@dataclass(frozen=True)
class GenerationTask:
    """
    An immutable request for generated text.

    Inputs are stored as an ordered tuple of ``(name, value)`` pairs so the
    task stays hashable. The order is kept for prompt rendering, but the cache
    key is independent of it.
    """
    kind: TaskKind
    inputs: Tuple[Tuple[str, InputValue], ...] = field(default_factory=tuple)

    @classmethod
    def of(
        cls,
        kind: TaskKind,
        inputs: Optional[Mapping[str, InputValue]] = None,
        **named: InputValue,
    ) -> "GenerationTask":
        merged: Dict[str, InputValue] = dict(inputs or {})
        merged.update(named)
        return cls(kind=TaskKind(kind), inputs=tuple(merged.items()))

    def __iter__(self) -> Iterator[Tuple[str, InputValue]]:
        return iter(self.inputs)

    def get(self, name: str, default: InputValue = None) -> InputValue:
        for key, value in self.inputs:
            if key == name:
                return value
        return default

    def as_dict(self) -> Dict[str, InputValue]:
        return dict(self.inputs)

    def canonical(self) -> str:
        """Stable JSON serialization of kind + normalized inputs."""
        normalized = {key: _normalize(value) for key, value in self.inputs}
        return json.dumps(
            {"kind": self.kind.value, "inputs": normalized},
            sort_keys=True,
            ensure_ascii=False,
            separators=(",", ":"),
        )

    @property
    def cache_key(self) -> str:
        return hashlib.sha256(self.canonical().encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "inputs": self.as_dict()}
