"""Consensus engine: the round-by-round negotiation state machine."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple
import copy
import logging

from consensusai.audit import TranscriptLog
from consensusai.oracle import (
    AgentEvaluationRequest,
    CoordinatorRequest,
    MalformedOracleResponse,
    ReasoningOracle,
)
from consensusai.reports import NOT_STARTED, ReportContext, render_report, round_half_up
from consensusai.schema import (
    ACCEPT,
    AGENT_ROLES,
    COORDINATOR,
    REJECT,
    STATUS_ANALYZING,
    AgentResponse,
    AgentState,
    CoordinatorVerdict,
    NegotiationRound,
    ProposalVector,
    RoundResult,
    Scenario,
    VendorRanking,
)

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_ACTIVE = "active"
STATE_CONVERGED = "converged"

AGENT_PROFILES = (
    ("budget", "Budget Overseer", "success"),
    ("timeline", "Timeline Enforcer", "warning"),
    ("quality", "QA Sentinel", "secondary"),
    ("risk", "Risk Guardian", "danger"),
)

FALLBACK_AGENT_CONTENT = "Direct metric evaluation used as AI fallback."
FALLBACK_CONSENSUS = "Consensus reached via fallback."
VENDOR_CONVERGED = "Vendor selection converged."
DEFAULT_VENDOR_ROUND_CAP = 5

# Dimensions where a smaller value is the better offer.
LOWER_IS_BETTER = {"budget": True, "timeline": True, "quality": False, "risk": True}


class CallerProtocolError(Exception):
    """Raised when the engine is driven outside its call contract."""
    pass


class NegotiationClosedError(CallerProtocolError):
    """Raised when a round is requested after convergence."""
    pass


class RankingsUnavailableError(CallerProtocolError):
    """Raised when vendor rankings are requested before any round ran."""
    pass


def conflict_summary(conflict_count: int) -> str:
    if conflict_count == 0:
        return FALLBACK_CONSENSUS
    return f"Conflict detected ({conflict_count} objections)."


class ConsensusEngine:
    """Drives four role agents and a coordinator toward consensus.

    The engine exclusively owns the proposal vector, the round history and the
    vendor score accumulators. Callers construct it with a scenario and an
    oracle, then call :meth:`evaluate_round` until it reports convergence.
    Rounds must not be invoked concurrently.
    """

    def __init__(
        self,
        scenario: Scenario,
        oracle: ReasoningOracle,
        vendor_round_cap: int = DEFAULT_VENDOR_ROUND_CAP,
        max_workers: int = 4,
        transcript: TranscriptLog | None = None,
    ) -> None:
        if vendor_round_cap < 1:
            raise ValueError("vendor_round_cap must be at least 1")
        self.scenario = scenario
        self.oracle = oracle
        self.vendor_round_cap = vendor_round_cap
        self.max_workers = max(1, max_workers)
        self.transcript = transcript
        self._agents: Tuple[AgentState, ...] = tuple(
            AgentState(role=role, name=name, color=color) for role, name, color in AGENT_PROFILES
        )
        self._round_index = 0
        self._history: List[NegotiationRound] = []
        self._converged = False
        self._last_result: Optional[RoundResult] = None
        self._vendor_scores: Dict[str, Dict[str, float]] = {}

        if scenario.comparison_mode:
            ids = [vendor.id for vendor in scenario.vendors]
            if len(set(ids)) != len(ids):
                raise ValueError("vendor ids must be unique")
            for vendor in scenario.vendors:
                self._vendor_scores[vendor.id] = {
                    "budget": 0.0, "timeline": 0.0, "quality": 0.0, "risk": 0.0, COORDINATOR: 50.0,
                }
            self._proposal = scenario.vendors[0].metrics.copy()
        else:
            c = scenario.constraints
            # Seeded outside the constraints so round 1 always draws objections.
            self._proposal = ProposalVector(
                budget=c.budget * 1.2,
                timeline=c.timeline * 0.8,
                quality=c.quality_min * 0.9,
                risk=c.risk_max * 1.5,
            )
        self._log("session.start", {
            "module": scenario.module,
            "comparison_mode": scenario.comparison_mode,
            "proposal": self._proposal.to_dict(),
        })

    @property
    def agents(self) -> Tuple[AgentState, ...]:
        return self._agents

    @property
    def current_proposal(self) -> ProposalVector:
        return self._proposal.copy()

    @property
    def history(self) -> Tuple[NegotiationRound, ...]:
        return tuple(self._history)

    @property
    def round_index(self) -> int:
        return self._round_index

    @property
    def converged(self) -> bool:
        return self._converged

    @property
    def last_result(self) -> Optional[RoundResult]:
        return self._last_result

    @property
    def status(self) -> str:
        if self._converged:
            return STATE_CONVERGED
        if self._round_index == 0:
            return STATE_IDLE
        return STATE_ACTIVE

    @property
    def vendor_scores(self) -> Dict[str, Dict[str, float]]:
        return copy.deepcopy(self._vendor_scores)

    def evaluate_round(self) -> RoundResult:
        if self._converged:
            raise NegotiationClosedError(
                f"negotiation converged in round {self._round_index}; no further rounds may run"
            )
        self._round_index += 1
        round_number = self._round_index
        proposal = self._proposal.copy()
        history = tuple(self._history)

        for agent in self._agents:
            agent.status = STATUS_ANALYZING
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [
                pool.submit(self._evaluate_agent, agent.role, proposal, history, round_number)
                for agent in self._agents
            ]
            responses = [future.result() for future in futures]

        proposals: List[Tuple[str, AgentResponse]] = []
        for agent, response in zip(self._agents, responses):
            agent.record(response)
            proposals.append((agent.id, response))
        conflict_count = sum(1 for response in responses if response.decision == REJECT)

        agent_responses = [(agent.role, response) for agent, response in zip(self._agents, responses)]
        verdict = self._synthesize(round_number, agent_responses, conflict_count)
        if verdict.next_proposal:
            self._proposal = self._proposal.merged(verdict.next_proposal)

        self._history.append(NegotiationRound(
            round_number=round_number,
            proposals=tuple(proposals),
            summary=verdict.summary,
        ))

        converged = verdict.converged
        summary = verdict.summary
        if self.scenario.comparison_mode:
            self._score_vendors(proposal, agent_responses)
            converged = round_number >= self.vendor_round_cap or verdict.converged or conflict_count == 0
            if converged:
                summary = VENDOR_CONVERGED

        result = RoundResult(round=round_number, converged=converged, summary=summary, conflict_count=conflict_count)
        self._last_result = result
        if converged:
            self._converged = True
        logger.info(f"Round {round_number}: {conflict_count} objection(s), converged={converged}: {summary}")
        self._log("round.complete", {
            **result.to_dict(),
            "proposal": self._proposal.to_dict(),
            "decisions": {role: response.decision for role, response in agent_responses},
        })
        if converged:
            self._log("session.converged", {"round": round_number, "confidence": self.confidence_score()})
        return result

    def _evaluate_agent(
        self,
        role: str,
        proposal: ProposalVector,
        history: Tuple[NegotiationRound, ...],
        round_number: int,
    ) -> AgentResponse:
        request = AgentEvaluationRequest(
            role=role,
            scenario=self.scenario,
            current_proposal=proposal,
            round_history=history,
            round=round_number,
        )
        try:
            response = self.oracle.evaluate_agent(request)
            if not isinstance(response, AgentResponse) or response.decision not in (ACCEPT, REJECT):
                raise MalformedOracleResponse(f"unexpected agent response {response!r}")
            if response.round != round_number:
                response = AgentResponse(round_number, response.decision, response.content, response.evidence)
            return response
        except Exception as exc:
            logger.warning(f"Agent {role} failed, using metric fallback: {exc}")
            decision = ACCEPT if proposal.budget <= self.scenario.constraints.budget else REJECT
            self._log("agent.fallback", {"role": role, "round": round_number, "decision": decision, "error": str(exc)})
            return AgentResponse(round=round_number, decision=decision, content=FALLBACK_AGENT_CONTENT)

    def _synthesize(
        self,
        round_number: int,
        agent_responses: List[Tuple[str, AgentResponse]],
        conflict_count: int,
    ) -> CoordinatorVerdict:
        request = CoordinatorRequest(scenario=self.scenario, round=round_number, agent_responses=agent_responses)
        try:
            verdict = self.oracle.synthesize(request)
            if not isinstance(verdict, CoordinatorVerdict):
                raise MalformedOracleResponse(f"unexpected coordinator verdict {verdict!r}")
            return verdict
        except Exception as exc:
            logger.warning(f"Coordinator failed, using vote-count fallback: {exc}")
            self._log("coordinator.fallback", {"round": round_number, "error": str(exc)})
            return CoordinatorVerdict(summary=conflict_summary(conflict_count), converged=conflict_count == 0)

    def _score_vendors(self, proposal: ProposalVector, agent_responses: List[Tuple[str, AgentResponse]]) -> None:
        """Project each agent's vote onto every vendor along that agent's dimension."""
        priorities = self.scenario.priorities
        for vendor in self.scenario.vendors:
            scores = self._vendor_scores[vendor.id]
            net = 0
            for role, response in agent_responses:
                offered = getattr(vendor.metrics, role)
                current = getattr(proposal, role)
                if LOWER_IS_BETTER[role]:
                    at_least_as_good, no_better = offered <= current, offered >= current
                else:
                    at_least_as_good, no_better = offered >= current, offered <= current
                if response.accepted and at_least_as_good:
                    scores[role] += priorities.weight(role)
                    net += 1
                elif not response.accepted and no_better:
                    scores[role] -= priorities.weight(role)
                    net -= 1
            scores[COORDINATOR] += 2 * net

    def confidence_score(self) -> int:
        if not self._history:
            return 0
        p = self._proposal
        score = 100.0
        score -= 2 * self._round_index
        score -= max(0.0, p.risk - 10)
        score -= max(0.0, 90 - p.quality)
        return max(10, min(100, round_half_up(score)))

    def vendor_rankings(self) -> List[VendorRanking]:
        if not self.scenario.comparison_mode:
            return []
        if not self._history:
            raise RankingsUnavailableError("vendor rankings are only available after the first round")
        confidence = self.confidence_score()
        scored = []
        for vendor in self.scenario.vendors:
            values = self._vendor_scores[vendor.id]
            scored.append((vendor, sum(values[key] for key in (*AGENT_ROLES, COORDINATOR)) / 5))
        # sorted() is stable, so equal scores keep input order.
        scored.sort(key=lambda item: -item[1])
        return [
            VendorRanking(rank=index, vendor=vendor, score=score, confidence=confidence)
            for index, (vendor, score) in enumerate(scored, start=1)
        ]

    def executive_summary(self) -> str:
        if not self._history:
            return NOT_STARTED
        ctx = ReportContext(
            scenario=self.scenario,
            proposal=self._proposal.copy(),
            confidence=self.confidence_score(),
            rounds=self._round_index,
            rankings=self.vendor_rankings(),
        )
        return render_report(ctx)

    def snapshot(self) -> Dict[str, Any]:
        rankings = self.vendor_rankings() if self._history else []
        return {
            "scenario": self.scenario.to_dict(),
            "status": self.status,
            "round": self._round_index,
            "proposal": self._proposal.to_dict(),
            "agents": [agent.to_dict() for agent in self._agents],
            "history": [entry.to_dict() for entry in self._history],
            "confidence": self.confidence_score(),
            "vendorScores": self.vendor_scores,
            "rankings": [entry.to_dict() for entry in rankings],
            "lastResult": self._last_result.to_dict() if self._last_result else None,
        }

    def _log(self, event: str, data: Dict[str, Any]) -> None:
        if not self.transcript:
            return
        try:
            self.transcript.log(event, data)
        except OSError as exc:
            logger.warning(f"Transcript write failed for {event}: {exc}")
