"""Negotiation data model for ConsensusAI."""
from __future__ import annotations

from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import uuid

MODULE_GENERAL = "general"
MODULE_VENDOR_EVAL = "vendor_eval"
MODULE_ROADMAP_PRD = "roadmap_prd"
MODULE_POLICY_COMPLIANCE = "policy_compliance"
MODULE_PROJECT_PLANNING = "project_planning"

MODULE_KINDS = (
    MODULE_GENERAL,
    MODULE_VENDOR_EVAL,
    MODULE_ROADMAP_PRD,
    MODULE_POLICY_COMPLIANCE,
    MODULE_PROJECT_PLANNING,
)

AGENT_ROLES = ("budget", "timeline", "quality", "risk")
COORDINATOR = "coordinator"
METRIC_FIELDS = AGENT_ROLES

STATUS_IDLE = "idle"
STATUS_ANALYZING = "analyzing"
STATUS_PROPOSING = "proposing"
STATUS_VOTING = "voting"
STATUS_WAITING = "waiting"

ACCEPT = "accept"
REJECT = "reject"
DECISIONS = (ACCEPT, REJECT)

DOCUMENT_TYPES = ("contract", "rfp", "policy", "spec")


def new_id() -> str:
    return str(uuid.uuid4())


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


@dataclass
class ProposalVector:
    """The compromise under negotiation."""
    budget: float
    timeline: float
    quality: float
    risk: float

    def merged(self, partial: Dict[str, Any] | None) -> "ProposalVector":
        """Return a copy with only the numeric fields present in ``partial`` replaced."""
        if not partial:
            return self.copy()
        updates: Dict[str, float] = {}
        for name in METRIC_FIELDS:
            if name not in partial:
                continue
            value = partial[name]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            updates[name] = float(value)
        return replace(self, **updates)

    def copy(self) -> "ProposalVector":
        return replace(self)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProposalVector":
        return cls(**{name: _number(data.get(name), name) for name in METRIC_FIELDS})


@dataclass(frozen=True)
class Constraints:
    budget: float
    timeline: float
    quality_min: float
    risk_max: float

    def __post_init__(self) -> None:
        for name in ("budget", "timeline", "quality_min", "risk_max"):
            object.__setattr__(self, name, _number(getattr(self, name), name))

    def to_dict(self) -> Dict[str, float]:
        return {
            "budget": self.budget,
            "timeline": self.timeline,
            "qualityMin": self.quality_min,
            "riskMax": self.risk_max,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Constraints":
        return cls(
            budget=data.get("budget"),
            timeline=data.get("timeline"),
            quality_min=data.get("qualityMin", data.get("quality_min")),
            risk_max=data.get("riskMax", data.get("risk_max")),
        )


@dataclass(frozen=True)
class Priorities:
    """Relative weight of each dimension, 1 (low) to 10 (high)."""
    budget: float = 5
    timeline: float = 5
    quality: float = 8
    risk: float = 7

    def __post_init__(self) -> None:
        for name in AGENT_ROLES:
            value = _number(getattr(self, name), f"priorities.{name}")
            if not 1 <= value <= 10:
                raise ValueError(f"priorities.{name} must be within [1, 10], got {value}")
            object.__setattr__(self, name, value)

    def weight(self, role: str) -> float:
        return float(getattr(self, role))

    def ordered(self) -> List[Tuple[str, float]]:
        """Dimensions sorted by weight, highest first (stable on ties)."""
        return sorted(((name, self.weight(name)) for name in AGENT_ROLES), key=lambda item: -item[1])

    def to_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in AGENT_ROLES}

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "Priorities":
        data = data or {}
        defaults = cls()
        return cls(**{name: data.get(name, getattr(defaults, name)) for name in AGENT_ROLES})


@dataclass(frozen=True)
class ExtractedFact:
    field: str
    value: float
    original_text: str = ""
    confidence: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "value": self.value,
            "originalText": self.original_text,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedFact":
        name = str(data.get("field", "")).strip().lower()
        if name not in METRIC_FIELDS:
            raise ValueError(f"unknown fact field {name!r}")
        return cls(
            field=name,
            value=_number(data.get("value"), f"{name}.value"),
            original_text=str(data.get("originalText") or data.get("original_text") or data.get("quote") or ""),
            confidence=float(data.get("confidence", 1.0) or 1.0),
        )


@dataclass(frozen=True)
class DecisionDocument:
    name: str
    type: str = "spec"
    extracted_facts: Tuple[ExtractedFact, ...] = ()
    status: str = "ready"
    id: str = field(default_factory=new_id)
    upload_date: str = field(default_factory=lambda: datetime.now().astimezone().isoformat(timespec="seconds"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "uploadDate": self.upload_date,
            "extractedFacts": [fact.to_dict() for fact in self.extracted_facts],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionDocument":
        doc_type = str(data.get("type") or "spec")
        if doc_type not in DOCUMENT_TYPES:
            raise ValueError(f"unknown document type {doc_type!r}")
        kwargs: Dict[str, Any] = {}
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        if data.get("uploadDate"):
            kwargs["upload_date"] = str(data["uploadDate"])
        return cls(
            name=str(data.get("name") or "document"),
            type=doc_type,
            status=str(data.get("status") or "ready"),
            extracted_facts=tuple(ExtractedFact.from_dict(item) for item in data.get("extractedFacts") or []),
            **kwargs,
        )


@dataclass(frozen=True)
class VendorFact:
    field: str
    value: float
    quote: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "value": self.value, "quote": self.quote}


@dataclass(frozen=True)
class VendorProposal:
    vendor_name: str
    metrics: ProposalVector
    extracted_facts: Tuple[VendorFact, ...] = ()
    document_id: str = ""
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vendorName": self.vendor_name,
            "documentId": self.document_id,
            "metrics": self.metrics.to_dict(),
            "extractedFacts": [fact.to_dict() for fact in self.extracted_facts],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VendorProposal":
        facts = []
        for item in data.get("extractedFacts") or []:
            name = str(item.get("field", "")).strip().lower()
            if name not in METRIC_FIELDS:
                raise ValueError(f"unknown fact field {name!r}")
            facts.append(VendorFact(name, _number(item.get("value"), f"{name}.value"), str(item.get("quote") or "")))
        kwargs: Dict[str, Any] = {}
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        return cls(
            vendor_name=str(data.get("vendorName") or data.get("vendor_name") or "Vendor"),
            metrics=ProposalVector.from_dict(data.get("metrics") or {}),
            extracted_facts=tuple(facts),
            document_id=str(data.get("documentId") or ""),
            **kwargs,
        )


@dataclass(frozen=True)
class Scenario:
    """Negotiation context. Never mutated once a session starts."""
    title: str
    description: str
    constraints: Constraints
    priorities: Priorities = field(default_factory=Priorities)
    module: str = MODULE_GENERAL
    documents: Tuple[DecisionDocument, ...] = ()
    vendors: Tuple[VendorProposal, ...] = ()
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        if self.module not in MODULE_KINDS:
            raise ValueError(f"unknown module {self.module!r}; expected one of {', '.join(MODULE_KINDS)}")
        object.__setattr__(self, "documents", tuple(self.documents))
        object.__setattr__(self, "vendors", tuple(self.vendors))

    @property
    def comparison_mode(self) -> bool:
        return self.module == MODULE_VENDOR_EVAL and bool(self.vendors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "module": self.module,
            "documents": [doc.to_dict() for doc in self.documents],
            "vendors": [vendor.to_dict() for vendor in self.vendors],
            "constraints": self.constraints.to_dict(),
            "priorities": self.priorities.to_dict(),
        }


@dataclass(frozen=True)
class Evidence:
    document_id: str = ""
    quote: str = ""
    explanation: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"documentId": self.document_id, "quote": self.quote, "explanation": self.explanation}


@dataclass(frozen=True)
class AgentResponse:
    round: int
    decision: str
    content: str
    evidence: Tuple[Evidence, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.decision == ACCEPT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.round,
            "decision": self.decision,
            "content": self.content,
            "evidence": [item.to_dict() for item in self.evidence],
        }


@dataclass
class AgentState:
    role: str
    name: str
    color: str = ""
    status: str = STATUS_IDLE
    reasoning: List[str] = field(default_factory=list)
    latest_response: Optional[AgentResponse] = None
    id: str = field(default_factory=new_id)

    def record(self, response: AgentResponse) -> None:
        self.latest_response = response
        self.reasoning.append(response.content)
        self.status = STATUS_VOTING if response.accepted else STATUS_PROPOSING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "name": self.name,
            "color": self.color,
            "status": self.status,
            "reasoning": list(self.reasoning),
            "latestResponse": self.latest_response.to_dict() if self.latest_response else None,
        }


@dataclass(frozen=True)
class NegotiationRound:
    round_number: int
    proposals: Tuple[Tuple[str, AgentResponse], ...]
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roundNumber": self.round_number,
            "proposals": [{"agentId": agent_id, "response": resp.to_dict()} for agent_id, resp in self.proposals],
            "summary": self.summary,
        }


@dataclass(frozen=True)
class CoordinatorVerdict:
    summary: str
    converged: bool
    next_proposal: Optional[Dict[str, float]] = None


@dataclass(frozen=True)
class RoundResult:
    round: int
    converged: bool
    summary: str
    conflict_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class VendorRanking:
    rank: int
    vendor: VendorProposal
    score: float
    confidence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "vendor": self.vendor.to_dict(),
            "score": self.score,
            "confidence": self.confidence,
        }
