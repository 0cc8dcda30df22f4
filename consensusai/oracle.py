"""Reasoning oracle: LLM-backed agent evaluation and coordinator synthesis."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import json
import logging
import os
import re

from consensusai.schema import (
    AGENT_ROLES,
    COORDINATOR,
    DECISIONS,
    METRIC_FIELDS,
    AgentResponse,
    CoordinatorVerdict,
    Evidence,
    NegotiationRound,
    ProposalVector,
    Scenario,
)

logger = logging.getLogger(__name__)


class OracleError(Exception):
    """Base class for reasoning oracle failures."""
    pass


class OracleUnavailable(OracleError):
    """Raised when the model backend cannot be reached or returns an error."""
    pass


class MalformedOracleResponse(OracleError):
    """Raised when the model reply does not parse as the expected verdict."""
    pass


PERSONAS = {
    "budget": (
        "Budget Overseer: You care about cost efficiency and staying under the $ budget limit. "
        "You are frugal and prioritize ROI."
    ),
    "timeline": (
        "Timeline Enforcer: You focus on deadlines and schedule feasibility. "
        "You hate delays and prioritize speed."
    ),
    "quality": (
        "QA Sentinel: You focus on technical excellence, feature richness, and reliability. "
        "You hate cutting corners."
    ),
    "risk": (
        "Risk Guardian: You focus on security, compliance, stability, and SLA commitments. "
        "You are cautious and risk-averse."
    ),
    COORDINATOR: (
        "Executive Coordinator: You synthesize all viewpoints and propose compromises to reach consensus."
    ),
}


@dataclass
class AgentEvaluationRequest:
    role: str
    scenario: Scenario
    current_proposal: ProposalVector
    round_history: Sequence[NegotiationRound]
    round: int


@dataclass
class CoordinatorRequest:
    scenario: Scenario
    round: int
    agent_responses: List[Tuple[str, AgentResponse]] = field(default_factory=list)


class ReasoningOracle:
    """Port the consensus engine calls for agent and coordinator judgments.

    Implementations must raise :class:`OracleError` (or any exception) rather
    than return a malformed decision; the engine substitutes its deterministic
    fallback on any raised error.
    """

    def evaluate_agent(self, request: AgentEvaluationRequest) -> AgentResponse:
        raise NotImplementedError

    def synthesize(self, request: CoordinatorRequest) -> CoordinatorVerdict:
        raise NotImplementedError


def parse_json_payload(text: str) -> Dict[str, Any] | None:
    """Extract the first JSON object from a model reply, tolerating markdown fences."""
    if not text:
        return None
    cleaned = re.sub(r"```(?:json)?", "", text).strip()
    try:
        data = json.loads(cleaned)
        return data if isinstance(data, dict) else None
    except ValueError:
        pass
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    try:
        data = json.loads(cleaned[start:end + 1])
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def format_agent_prompt(request: AgentEvaluationRequest) -> str:
    scenario = request.scenario
    c = scenario.constraints
    p = scenario.priorities
    proposal = request.current_proposal
    vendors_blob = ""
    if scenario.comparison_mode:
        lines = [
            f"- {v.vendor_name}: ${v.metrics.budget:g}, {v.metrics.timeline:g}d, "
            f"{v.metrics.quality:g} quality, {v.metrics.risk:g}% risk"
            for v in scenario.vendors
        ]
        vendors_blob = "VENDORS INVOLVED:\n" + "\n".join(lines) + "\n\n"
    history = "\n".join(f"Round {r.round_number}: {r.summary}" for r in request.round_history) or "(none)"
    return (
        f"You are acting as the {request.role.upper()} agent in a multi-agent negotiation system called ConsensusAI.\n\n"
        "CONTEXT:\n"
        f"Project: {scenario.title}\n"
        f"Goal: {scenario.description}\n\n"
        "CONSTRAINTS:\n"
        f"- Budget: ${c.budget:g}\n"
        f"- Timeline: {c.timeline:g} Days\n"
        f"- Quality Min: {c.quality_min:g}/100\n"
        f"- Risk Max: {c.risk_max:g}%\n\n"
        "PRIORITIES (1-10):\n"
        f"- Budget: {p.budget:g}\n"
        f"- Timeline: {p.timeline:g}\n"
        f"- Quality: {p.quality:g}\n"
        f"- Risk: {p.risk:g}\n\n"
        "CURRENT PROPOSAL BEING EVALUATED:\n"
        f"- Budget: ${round(proposal.budget)}\n"
        f"- Timeline: {round(proposal.timeline)} Days\n"
        f"- Quality: {round(proposal.quality)}/100\n"
        f"- Risk: {round(proposal.risk)}%\n\n"
        f"{vendors_blob}"
        "NEGOTIATION HISTORY:\n"
        f"{history}\n\n"
        "YOUR PERSONA:\n"
        f"{PERSONAS[request.role]}\n\n"
        "YOUR TASK:\n"
        "Evaluate the current proposal based on your persona and priorities.\n"
        "Decide whether to 'accept' or 'reject' the proposal.\n"
        "Provide a concise, professional justification (under 50 words).\n"
        "If you reject, explain what needs to change from your perspective.\n\n"
        "Return your response in strictly JSON format:\n"
        '{"decision": "accept" | "reject", "content": "your reasoning here", "evidence": []}\n'
    )


def format_coordinator_prompt(request: CoordinatorRequest) -> str:
    feedback = "\n".join(
        f"- {role}: {response.decision} - {response.content}" for role, response in request.agent_responses
    )
    return (
        "You are the Executive Coordinator for ConsensusAI.\n"
        f"{PERSONAS[COORDINATOR]}\n\n"
        f"SCENARIO: {request.scenario.title}\n\n"
        f"AGENT FEEDBACK FOR ROUND {request.round}:\n"
        f"{feedback}\n\n"
        "YOUR TASK:\n"
        "1. Summarize the state of the negotiation (under 30 words).\n"
        "2. Determine if consensus has been reached (all agents must accept).\n"
        "3. If no consensus, suggest numerical adjustments to the proposal (Budget, Timeline, Quality, Risk) "
        "to appease the objecting agents while staying within the project constraints.\n\n"
        "Return your response in strictly JSON format:\n"
        '{"summary": "your summary here", "converged": true | false, '
        '"nextProposal": {"budget": number, "timeline": number, "quality": number, "risk": number}}\n'
    )


def parse_agent_response(text: str, round_number: int) -> AgentResponse:
    data = parse_json_payload(text)
    if data is None:
        raise MalformedOracleResponse(f"Failed to parse AI response as JSON: {text[:50]!r}")
    decision = str(data.get("decision", "")).strip().lower()
    if decision not in DECISIONS:
        raise MalformedOracleResponse(f"invalid decision {data.get('decision')!r}")
    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        raise MalformedOracleResponse("missing justification content")
    evidence: List[Evidence] = []
    raw_evidence = data.get("evidence")
    for item in raw_evidence if isinstance(raw_evidence, list) else []:
        if isinstance(item, dict):
            evidence.append(Evidence(
                document_id=str(item.get("documentId") or ""),
                quote=str(item.get("quote") or ""),
                explanation=str(item.get("explanation") or ""),
            ))
        elif isinstance(item, str):
            evidence.append(Evidence(quote=item))
    return AgentResponse(round=round_number, decision=decision, content=content.strip(), evidence=tuple(evidence))


def parse_coordinator_verdict(text: str) -> CoordinatorVerdict:
    data = parse_json_payload(text)
    if data is None:
        raise MalformedOracleResponse("Failed to parse AI response as JSON")
    summary = data.get("summary")
    converged = data.get("converged")
    if not isinstance(summary, str):
        raise MalformedOracleResponse("missing summary")
    if not isinstance(converged, bool):
        raise MalformedOracleResponse(f"converged must be a boolean, got {converged!r}")
    next_proposal: Optional[Dict[str, float]] = None
    raw = data.get("nextProposal")
    if isinstance(raw, dict):
        next_proposal = {
            name: float(raw[name])
            for name in METRIC_FIELDS
            if isinstance(raw.get(name), (int, float)) and not isinstance(raw.get(name), bool)
        } or None
    elif raw is not None:
        raise MalformedOracleResponse("nextProposal must be an object")
    return CoordinatorVerdict(summary=summary.strip(), converged=converged, next_proposal=next_proposal)


class LLMOracle(ReasoningOracle):
    """Oracle backed by a text-generation client (Groq or Gemini)."""

    def __init__(self, client: Any, model: str | None = None, timeout: float = 60, temperature: float = 0.2) -> None:
        self.client = client
        self.model = model
        self.timeout = timeout
        self.temperature = temperature

    def _generate(self, prompt: str) -> str:
        result = self.client.generate(
            prompt,
            model=self.model,
            temperature=self.temperature,
            timeout=self.timeout,
            json_mode=True,
        )
        if not result.ok:
            raise OracleUnavailable(result.error or "model call failed")
        return result.text

    def evaluate_agent(self, request: AgentEvaluationRequest) -> AgentResponse:
        if request.role not in AGENT_ROLES:
            raise ValueError(f"unknown agent role {request.role!r}")
        text = self._generate(format_agent_prompt(request))
        return parse_agent_response(text, request.round)

    def synthesize(self, request: CoordinatorRequest) -> CoordinatorVerdict:
        text = self._generate(format_coordinator_prompt(request))
        return parse_coordinator_verdict(text)


def build_client(oracle_config: Dict[str, Any]) -> Any:
    from consensusai.models.gemini import GeminiClient
    from consensusai.models.groq import GroqClient

    provider = str(oracle_config.get("provider") or "groq").lower()
    api_key = oracle_config.get("api_key")
    if not api_key and oracle_config.get("api_key_env"):
        api_key = os.getenv(str(oracle_config["api_key_env"]))
    if provider == "gemini":
        base_url = oracle_config.get("base_url") or "https://generativelanguage.googleapis.com/v1beta"
        return GeminiClient(api_key=api_key, base_url=base_url)
    if provider == "groq":
        base_url = oracle_config.get("base_url") or "https://api.groq.com/openai/v1"
        return GroqClient(api_key=api_key, base_url=base_url)
    raise ValueError(f"unknown oracle provider {provider!r}")


def build_oracle(config: Any) -> LLMOracle:
    """Create the configured oracle from a :class:`consensusai.config.Config`."""
    oracle_config = config.oracle
    return LLMOracle(
        build_client(oracle_config),
        model=oracle_config.get("model") or None,
        timeout=config.oracle_timeout_seconds,
        temperature=float(oracle_config.get("temperature", 0.2)),
    )


