"""Immutable per-request state threaded through the generation pipeline."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from app.models.payloads import AnalysisResult, GenerationRequest, GenerationResult, ImageAsset


class Stage(str, enum.Enum):
    RECEIVED = "received"
    VALIDATING = "validating"
    ANALYZING = "analyzing"
    PROMPT_BUILT = "prompt_built"
    GENERATING = "generating"
    PACKAGING = "packaging"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STAGES = frozenset({Stage.DONE, Stage.FAILED})

_ALLOWED_TRANSITIONS: dict[Stage, frozenset[Stage]] = {
    Stage.RECEIVED: frozenset({Stage.VALIDATING}),
    Stage.VALIDATING: frozenset({Stage.ANALYZING, Stage.PROMPT_BUILT}),
    Stage.ANALYZING: frozenset({Stage.PROMPT_BUILT}),
    Stage.PROMPT_BUILT: frozenset({Stage.GENERATING}),
    Stage.GENERATING: frozenset({Stage.PACKAGING}),
    Stage.PACKAGING: frozenset({Stage.DONE}),
    Stage.DONE: frozenset(),
    Stage.FAILED: frozenset(),
}


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class RequestState:
    """Snapshot of one request; every transition returns a new instance."""

    request_id: str = field(default_factory=new_request_id)
    stage: Stage = Stage.RECEIVED
    history: tuple[Stage, ...] = (Stage.RECEIVED,)
    inputs: tuple[ImageAsset, ...] = ()
    analysis: Optional[AnalysisResult] = None
    prompt: Optional[str] = None
    generation: Optional[GenerationRequest] = None
    result: Optional[GenerationResult] = None
    image_urls: tuple[str, ...] = ()
    error: Optional[Exception] = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def advance(self, stage: Stage, **changes: Any) -> "RequestState":
        if stage is Stage.FAILED:
            if self.is_terminal:
                raise ValueError(f"request {self.request_id} already finished in {self.stage.value}")
        elif stage not in _ALLOWED_TRANSITIONS[self.stage]:
            raise ValueError(f"illegal transition {self.stage.value} -> {stage.value}")
        return replace(self, stage=stage, history=self.history + (stage,), **changes)

    def fail(self, error: Exception) -> "RequestState":
        return self.advance(Stage.FAILED, error=error)
