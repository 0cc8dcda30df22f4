"""Executive summary builders, one per decision module."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List
import math

from consensusai.schema import (
    MODULE_GENERAL,
    MODULE_POLICY_COMPLIANCE,
    MODULE_PROJECT_PLANNING,
    MODULE_ROADMAP_PRD,
    MODULE_VENDOR_EVAL,
    ProposalVector,
    Scenario,
    VendorRanking,
)

NOT_STARTED = "Simulation not started."
POLICY_BUDGET_LIMIT = 100000


@dataclass(frozen=True)
class ReportContext:
    """Final engine state a report is rendered from."""
    scenario: Scenario
    proposal: ProposalVector
    confidence: int
    rounds: int
    rankings: List[VendorRanking] = field(default_factory=list)


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up."""
    return int(math.floor(value + 0.5))


def _money(value: float) -> str:
    return f"${round_half_up(value):,}"


def _num(value: float) -> str:
    return f"{value:g}"


def general_summary(ctx: ReportContext) -> str:
    p = ctx.proposal
    c = ctx.scenario.constraints
    return "\n".join([
        "## Executive Decision Summary",
        "**Recommendation:** Proceed with the optimized proposal.",
        f"**Confidence Score:** {ctx.confidence}/100",
        "",
        "### Key Metrics",
        f"- **Final Budget:** {_money(p.budget)} (Cap: {_money(c.budget)})",
        f"- **Timeline:** {round_half_up(p.timeline)} Days",
        f"- **Projected Quality:** {round_half_up(p.quality)}/100",
        f"- **Risk Profile:** {round_half_up(p.risk)}/100",
    ]) + "\n"


def vendor_report(ctx: ReportContext) -> str:
    if not ctx.rankings:
        return general_summary(ctx)
    c = ctx.scenario.constraints
    leader = ctx.rankings[0].vendor
    m = leader.metrics
    top_priority = ctx.scenario.priorities.ordered()[0][0]

    lines = [
        "# Vendor Selection Report",
        "",
        f"## Primary Recommendation: {leader.vendor_name}",
        f"**Consensus Match:** {ctx.confidence}%",
        "**Decision Status:** SELECTED",
        "",
        "### Final Selection Metrics",
        "| Parameter | Value | Status |",
        "| :--- | :--- | :--- |",
        f"| Commercial | {_money(m.budget)} | {'Within Cap' if m.budget <= c.budget else 'Exceeds Cap'} |",
        f"| Delivery | {_num(m.timeline)} Days | {'On Time' if m.timeline <= c.timeline else 'Delayed'} |",
        f"| Quality | {_num(m.quality)}/100 | {'Superior' if m.quality >= c.quality_min else 'Standard'} |",
        f"| Risk | {_num(m.risk)}% | {'Safe' if m.risk <= c.risk_max else 'Exposure Detected'} |",
        "",
        "## Strategic Rationale",
        f"After {ctx.rounds} rounds of agent negotiation, {leader.vendor_name} emerged as the high-consensus candidate.",
        f"The group prioritized the {top_priority} weighting to finalize this decision.",
        "",
        "### Comparative Ranking",
        "| Rank | Vendor | Match Score | Risk profile |",
        "| :--- | :--- | :--- | :--- |",
    ]
    for entry in ctx.rankings:
        if entry.rank == 1:
            profile = "Stable" if entry.vendor.metrics.risk < 15 else "Conditional"
            lines.append(f"| **#1** | **{entry.vendor.vendor_name}** | **{entry.score:.1f}** | **{profile}** |")
        else:
            profile = "High" if entry.vendor.metrics.risk > 20 else "Medium"
            lines.append(f"| #{entry.rank} | {entry.vendor.vendor_name} | {entry.score:.1f} | {profile} |")
    lines += [
        "",
        "## Evidence Matrix",
        "The following extracted clauses from vendor documents served as grounding for this decision:",
        "",
    ]
    if leader.extracted_facts:
        lines += [f'- **{fact.field.upper()}**: "{fact.quote}"' for fact in leader.extracted_facts]
    else:
        lines.append("- No extracted clauses were supplied for this vendor.")
    lines += [
        "",
        "## Final Decision",
        f"**{leader.vendor_name}** is authorized for procurement based on the above technical and commercial audit.",
    ]
    return "\n".join(lines) + "\n"


def compliance_report(ctx: ReportContext) -> str:
    p = ctx.proposal
    return "\n".join([
        "# Policy & Compliance Audit",
        f"## Status: {'COMPLIANT' if p.risk < 15 else 'PROVISIONAL'}",
        "",
        "### Violation Check",
        "- **Regulatory Alignment:** PASS",
        f"- **Internal Policy 4.2:** {'VIOLATION' if p.budget > POLICY_BUDGET_LIMIT else 'PASS'}",
        "- **Data Privacy:** PASS",
        "",
        "## Evidence",
        f"Based on {len(ctx.scenario.documents)} policy documents analyzed.",
    ]) + "\n"


def project_plan(ctx: ReportContext) -> str:
    p = ctx.proposal
    return "\n".join([
        "# Strategic Delivery Plan",
        f"## Timeline Overview: {round_half_up(p.timeline)} Days",
        f"## Budget Cap: {_money(p.budget)}",
        "",
        "### Deliverables",
        f"1. Initiation ({round_half_up(p.timeline * 0.2)}d)",
        f"2. Migration ({round_half_up(p.timeline * 0.5)}d)",
        f"3. Launch ({round_half_up(p.timeline * 0.3)}d)",
    ]) + "\n"


def product_requirements(ctx: ReportContext) -> str:
    p = ctx.proposal
    return "\n".join([
        "# Product Requirements Document (PRD)",
        f"**Title:** {ctx.scenario.title}",
        "**Status:** APPROVED",
        "",
        "## Roadmap & Scope",
        "### In Scope (MVP)",
        "- AI Engine Integration",
        f"- Multi-region Support (Projected Quality: {round_half_up(p.quality)})",
        "",
        "### Success Metrics",
        f"- Delivery Confidence: {ctx.confidence}%",
    ]) + "\n"


REPORT_BUILDERS: Dict[str, Callable[[ReportContext], str]] = {
    MODULE_GENERAL: general_summary,
    MODULE_VENDOR_EVAL: vendor_report,
    MODULE_POLICY_COMPLIANCE: compliance_report,
    MODULE_PROJECT_PLANNING: project_plan,
    MODULE_ROADMAP_PRD: product_requirements,
}


def render_report(ctx: ReportContext) -> str:
    builder = REPORT_BUILDERS.get(ctx.scenario.module, general_summary)
    return builder(ctx)
