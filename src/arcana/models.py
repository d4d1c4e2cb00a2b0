"""Typed records for the two document dialects.

Every field defaults to an empty string or an empty list (enum fields to
their documented default), never ``None``. ``to_dict``/``from_dict`` use the
camelCase keys of the wizard's persisted state so edited data can round-trip
through JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Literal

Dialect = Literal["spec", "memory"]
DIALECTS: tuple[str, ...] = ("spec", "memory")

PRIORITIES = ("High", "Medium", "Low")
FEATURE_STATUSES = ("Planned", "In Progress", "Complete")
HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")
DECISION_STATUSES = ("decided", "pending", "revisit")
ACTION_STATUSES = ("open", "in-progress", "complete")
LESSON_IMPACTS = ("low", "medium", "high")
ONBOARDING_STATUSES = ("in-progress", "completed", "on-hold")


def coerce_choice(value: str, choices: tuple[str, ...], default: str) -> str:
    """Map a free-form token onto one of ``choices``; unknown tokens give ``default``."""
    wanted = _fold(value)
    for choice in choices:
        if _fold(choice) == wanted:
            return choice
    return default


def _fold(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass
class Record:
    """Base for all records: camelCase dict conversion."""

    _children: ClassVar[dict[str, type[Record]]] = {}

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Record):
                value = value.to_dict()
            elif isinstance(value, list):
                value = [v.to_dict() if isinstance(v, Record) else v for v in value]
            out[_camel(f.name)] = value
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Any:
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            key = _camel(f.name)
            if key in data:
                value = data[key]
            elif f.name in data:
                value = data[f.name]
            else:
                continue
            if value is None:
                continue
            child = cls._children.get(f.name)
            if child is not None:
                if isinstance(value, list):
                    value = [child.from_dict(v) for v in value]
                else:
                    value = child.from_dict(value)
            elif isinstance(value, list):
                value = [str(v) for v in value]
            kwargs[f.name] = value
        return cls(**kwargs)


# ── Spec dialect ─────────────────────────────────────────────


@dataclass
class Feature(Record):
    id: str = ""
    name: str = ""
    description: str = ""
    priority: str = "Medium"
    status: str = "Planned"


@dataclass
class APIEndpoint(Record):
    path: str = ""
    method: str = "GET"
    description: str = ""
    parameters: list[str] = field(default_factory=list)
    response: str = ""


@dataclass
class RoadmapPhase(Record):
    name: str = ""
    description: str = ""
    duration: str = ""
    deliverables: list[str] = field(default_factory=list)


@dataclass
class Milestone(Record):
    name: str = ""
    date: str = ""
    description: str = ""
    dependencies: list[str] = field(default_factory=list)


@dataclass
class ProjectOverview(Record):
    name: str = ""
    description: str = ""
    purpose: str = ""
    stakeholders: list[str] = field(default_factory=list)
    timeline: str = ""


@dataclass
class FunctionalRequirements(Record):
    _children: ClassVar[dict[str, type[Record]]] = {"features": Feature}

    user_stories: list[str] = field(default_factory=list)
    features: list[Feature] = field(default_factory=list)
    acceptance_criteria: list[str] = field(default_factory=list)


@dataclass
class TechnicalRequirements(Record):
    architecture: str = ""
    technologies: list[str] = field(default_factory=list)
    infrastructure: str = ""
    dependencies: list[str] = field(default_factory=list)


@dataclass
class APIs(Record):
    _children: ClassVar[dict[str, type[Record]]] = {"endpoints": APIEndpoint}

    endpoints: list[APIEndpoint] = field(default_factory=list)
    authentication: str = ""
    rate_limit: str = ""


@dataclass
class NonFunctionalRequirements(Record):
    performance: str = ""
    security: str = ""
    scalability: str = ""
    availability: str = ""


@dataclass
class Roadmap(Record):
    _children: ClassVar[dict[str, type[Record]]] = {
        "phases": RoadmapPhase,
        "milestones": Milestone,
    }

    phases: list[RoadmapPhase] = field(default_factory=list)
    milestones: list[Milestone] = field(default_factory=list)


@dataclass
class SpecDocumentData(Record):
    _children: ClassVar[dict[str, type[Record]]] = {
        "project_overview": ProjectOverview,
        "functional_requirements": FunctionalRequirements,
        "technical_requirements": TechnicalRequirements,
        "apis": APIs,
        "non_functional_requirements": NonFunctionalRequirements,
        "roadmap": Roadmap,
    }

    project_overview: ProjectOverview = field(default_factory=ProjectOverview)
    functional_requirements: FunctionalRequirements = field(
        default_factory=FunctionalRequirements
    )
    technical_requirements: TechnicalRequirements = field(default_factory=TechnicalRequirements)
    apis: APIs = field(default_factory=APIs)
    non_functional_requirements: NonFunctionalRequirements = field(
        default_factory=NonFunctionalRequirements
    )
    roadmap: Roadmap = field(default_factory=Roadmap)

    @property
    def name(self) -> str:
        return self.project_overview.name


# ── Memory dialect ───────────────────────────────────────────


@dataclass
class DecisionEntry(Record):
    title: str = ""
    description: str = ""
    date: str = ""
    rationale: str = ""
    stakeholders: list[str] = field(default_factory=list)
    impact: str = ""
    alternatives: list[str] = field(default_factory=list)
    status: str = "decided"


@dataclass
class GlossaryEntry(Record):
    term: str = ""
    definition: str = ""
    category: str = ""


@dataclass
class ActionItem(Record):
    description: str = ""
    assignee: str = ""
    due_date: str = ""
    status: str = "open"


@dataclass
class MeetingNote(Record):
    _children: ClassVar[dict[str, type[Record]]] = {"action_items": ActionItem}

    title: str = ""
    date: str = ""
    attendees: list[str] = field(default_factory=list)
    agenda: list[str] = field(default_factory=list)
    notes: str = ""
    action_items: list[ActionItem] = field(default_factory=list)


@dataclass
class LessonEntry(Record):
    title: str = ""
    date: str = ""
    category: str = ""
    situation: str = ""
    lesson: str = ""
    application: str = ""
    impact: str = "medium"


@dataclass
class OnboardingTask(Record):
    task: str = ""
    completed: bool = False


@dataclass
class OnboardingResource(Record):
    title: str = ""
    url: str = ""
    type: str = ""


@dataclass
class OnboardingNote(Record):
    _children: ClassVar[dict[str, type[Record]]] = {
        "onboarding_tasks": OnboardingTask,
        "resources": OnboardingResource,
    }

    id: str = ""
    new_hire_name: str = ""
    role: str = ""
    start_date: str = ""
    mentor: str = ""
    department: str = ""
    status: str = "in-progress"
    onboarding_tasks: list[OnboardingTask] = field(default_factory=list)
    resources: list[OnboardingResource] = field(default_factory=list)
    feedback: str = ""
    completion_date: str = ""
    notes: str = ""


@dataclass
class ProjectInfo(Record):
    name: str = ""
    description: str = ""
    team: list[str] = field(default_factory=list)


@dataclass
class MemoryDocumentData(Record):
    _children: ClassVar[dict[str, type[Record]]] = {
        "project_info": ProjectInfo,
        "decision_log": DecisionEntry,
        "glossary": GlossaryEntry,
        "meeting_notes": MeetingNote,
        "lessons_learned": LessonEntry,
        "onboarding_notes": OnboardingNote,
    }

    project_info: ProjectInfo = field(default_factory=ProjectInfo)
    decision_log: list[DecisionEntry] = field(default_factory=list)
    glossary: list[GlossaryEntry] = field(default_factory=list)
    meeting_notes: list[MeetingNote] = field(default_factory=list)
    lessons_learned: list[LessonEntry] = field(default_factory=list)
    onboarding_notes: list[OnboardingNote] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.project_info.name


DocumentData = SpecDocumentData | MemoryDocumentData


def empty_data(dialect: str) -> DocumentData:
    """Return the all-empty schema for ``dialect``."""
    if dialect == "memory":
        return MemoryDocumentData()
    if dialect == "spec":
        return SpecDocumentData()
    raise ValueError(f"Unknown dialect: {dialect!r}")


def dialect_of(data: DocumentData) -> Dialect:
    return "memory" if isinstance(data, MemoryDocumentData) else "spec"


def data_from_dict(payload: dict[str, Any], dialect: str) -> DocumentData:
    """Build typed document data from a camelCase (or snake_case) mapping."""
    if dialect == "memory":
        return MemoryDocumentData.from_dict(payload)
    if dialect == "spec":
        return SpecDocumentData.from_dict(payload)
    raise ValueError(f"Unknown dialect: {dialect!r}")


def set_name(data: DocumentData, name: str) -> None:
    if isinstance(data, MemoryDocumentData):
        data.project_info.name = name
    else:
        data.project_overview.name = name


def is_empty(value: Any) -> bool:
    """True for values the emitter and merge engine treat as absent."""
    if isinstance(value, Record):
        return all(is_empty(getattr(value, f.name)) for f in fields(value))
    if isinstance(value, bool):
        return False
    return not value
