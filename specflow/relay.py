from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pydantic
from pydantic import BaseModel, Field

from .config import AnalysisConfig
from .context_sync import ContextSynchronizer
from .errors import SpecflowError, UpstreamError, ValidationError
from .service import ProviderService

TEXT_FINAL_INSTRUCTIONS = (
    "Provide:\n"
    "1. Summary\n"
    "2. Code Fix\n"
    "3. Potential Risks"
)

STRUCTURED_FINAL_INSTRUCTIONS = (
    "Return a JSON object with: summary, technical_rationale, project_type, "
    "risks (list of strings), files_to_modify (list of objects with fileName, "
    "explanation and the complete new file content in fullCode) and "
    "next_steps (list of strings). fileName must be relative to the project root."
)

ARCHITECT_PLAN_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "summary": {"type": "string"},
        "technical_rationale": {"type": "string"},
        "project_type": {"type": "string"},
        "risks": {"type": "array", "items": {"type": "string"}},
        "files_to_modify": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "fileName": {"type": "string"},
                    "explanation": {"type": "string"},
                    "fullCode": {"type": "string"},
                },
                "required": ["fileName", "explanation", "fullCode"],
            },
        },
        "next_steps": {"type": "array", "items": {"type": "string"}},
    },
    "required": [
        "summary",
        "technical_rationale",
        "project_type",
        "risks",
        "files_to_modify",
        "next_steps",
    ],
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n(.*?)\n?```\s*$", re.DOTALL)


class FileChange(BaseModel):
    fileName: str
    explanation: str = ""
    fullCode: str


class ArchitectPlan(BaseModel):
    summary: str
    technical_rationale: str = ""
    project_type: str = ""
    risks: List[str] = Field(default_factory=list)
    files_to_modify: List[FileChange] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)


@dataclass
class AnalysisResult:
    mode: str
    adapter: str
    adapter_type: str
    answer: Optional[str] = None
    data: Optional[ArchitectPlan] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": True,
            "adapter": self.adapter,
            "adapterType": self.adapter_type,
        }
        if self.data is not None:
            payload["data"] = self.data.model_dump()
        else:
            payload["answer"] = self.answer
        return payload


def build_prompt(context: str, message: str, structured: bool = False) -> str:
    final = STRUCTURED_FINAL_INSTRUCTIONS if structured else TEXT_FINAL_INSTRUCTIONS
    return (
        "CODEBASE CONTEXT:\n"
        f"{context}\n\n"
        "---\n"
        "DEVELOPER REQUEST:\n"
        f"{message.strip()}\n\n"
        "---\n"
        "FINAL INSTRUCTIONS:\n"
        f"{final}\n"
    )


def parse_plan(text: str) -> ArchitectPlan:
    raw = text.strip()
    fenced = _FENCE_RE.match(raw)
    if fenced:
        raw = fenced.group(1)
    try:
        return ArchitectPlan.model_validate_json(raw)
    except pydantic.ValidationError as exc:
        raise UpstreamError(
            f"Model response does not match the plan schema: {exc.error_count()} error(s)"
        ) from exc


class AnalysisRelay:
    def __init__(
        self,
        config: AnalysisConfig,
        synchronizer: ContextSynchronizer,
        service: ProviderService,
    ) -> None:
        self.config = config
        self.synchronizer = synchronizer
        self.service = service

    @property
    def structured(self) -> bool:
        return self.config.response_mode == "structured"

    def analyze(self, message: Optional[str]) -> AnalysisResult:
        if message is None or not str(message).strip():
            raise ValidationError("Message is required")
        # Fails with ContextMissing before any provider is touched.
        context = self.synchronizer.load()
        prompt = build_prompt(context, message, structured=self.structured)
        system = self.config.system_instruction

        try:
            adapter = self.service.resolve_adapter(self.config.adapter)
        except (RuntimeError, ValueError) as exc:
            raise UpstreamError(f"No usable adapter: {exc}") from exc

        try:
            if self.structured:
                text = adapter.complete_json(prompt, ARCHITECT_PLAN_SCHEMA, system=system)
            else:
                text = adapter.complete(prompt, system=system)
        except SpecflowError:
            raise
        except Exception as exc:
            raise UpstreamError(f"{adapter.name} call failed: {exc}") from exc

        if self.structured:
            return AnalysisResult(
                mode="structured",
                adapter=adapter.name,
                adapter_type=adapter.type,
                data=parse_plan(text),
            )
        return AnalysisResult(
            mode="text",
            adapter=adapter.name,
            adapter_type=adapter.type,
            answer=text,
        )
