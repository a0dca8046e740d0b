"""Render observations and evaluations as labelled text for indexing.

Each record becomes a ``header`` of ``[Label]: value`` lines, a free-text
``body`` and a ``metadata`` dict stored alongside every chunk.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.schemas.records import EvaluationRecord, ObservationRecord

EMPTY = "—"


@dataclass(frozen=True)
class NormalizedRecord:
    header: str
    body: str
    metadata: dict[str, Any]

    @property
    def full_text(self) -> str:
        return f"{self.header}\n\n{self.body}"


def normalize_observation(observation: ObservationRecord) -> NormalizedRecord:
    focus = ", ".join(observation.focus_areas)

    header = "\n".join(
        [
            "[Type]: Observation",
            f"[Date]: {observation.date.isoformat()}",
            f"[School]: {observation.school_name or 'Unknown School'}",
            f"[Teacher]: {observation.teacher_name or 'Unknown Teacher'}",
            f"[Observer]: {observation.observer_name or 'Unknown Observer'}",
            f"[Subject]: {observation.subject or EMPTY}",
            f"[Focus Areas]: {focus or EMPTY}",
            f"[Observation Type]: {observation.observation_type}",
        ]
    )

    body = "\n\n".join(["Strengths/Evidence:", observation.enhanced_notes or observation.raw_notes or ""])

    metadata: dict[str, Any] = {
        "type": "observation",
        "id": observation.id,
        "teacher_id": observation.teacher_id,
        "observer_id": observation.observer_id,
        "school_id": observation.school_id,
        "subject": observation.subject,
        "focus_areas": list(observation.focus_areas),
        "date": observation.date.isoformat(),
    }
    return NormalizedRecord(header=header, body=body, metadata=metadata)


def _evaluation_content(content: str | dict[str, Any] | None) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        markdown = content.get("markdown")
        return markdown if isinstance(markdown, str) else ""
    return ""


def normalize_evaluation(evaluation: EvaluationRecord) -> NormalizedRecord:
    header = "\n".join(
        [
            "[Type]: Evaluation",
            f"[Date]: {evaluation.created_at.date().isoformat()}",
            f"[School]: {evaluation.school_name or 'Unknown School'}",
            f"[Teacher]: {evaluation.teacher_name or 'Unknown Teacher'}",
            f"[Evaluator]: {evaluation.evaluator_name or 'Unknown Evaluator'}",
            f"[Eval Type]: {evaluation.type}",
            f"[Status]: {evaluation.status}",
        ]
    )

    sections = [
        f"Summary:\n{evaluation.summary}" if evaluation.summary else "",
        f"Content:\n{_evaluation_content(evaluation.content)}",
        "Recommendations:\n- " + "\n- ".join(evaluation.recommendations) if evaluation.recommendations else "",
        "Next Steps:\n- " + "\n- ".join(evaluation.next_steps) if evaluation.next_steps else "",
    ]
    body = "\n\n".join(section for section in sections if section)

    metadata: dict[str, Any] = {
        "type": "evaluation",
        "id": evaluation.id,
        "teacher_id": evaluation.teacher_id,
        "evaluator_id": evaluation.evaluator_id,
        "school_id": evaluation.school_id,
        "status": evaluation.status,
        "date": evaluation.created_at.date().isoformat(),
        "created_at": evaluation.created_at.isoformat(),
    }
    return NormalizedRecord(header=header, body=body, metadata=metadata)
