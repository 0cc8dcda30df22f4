"""Document and vendor intake: structured facts in, scenarios out."""
from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import json
import logging
import random

import yaml

from consensusai.oracle import parse_json_payload
from consensusai.schema import (
    METRIC_FIELDS,
    MODULE_GENERAL,
    Constraints,
    DecisionDocument,
    ExtractedFact,
    Priorities,
    ProposalVector,
    Scenario,
    VendorFact,
    VendorProposal,
)

logger = logging.getLogger(__name__)

DEFAULT_CONSTRAINTS = {"budget": 50000, "timeline": 30, "qualityMin": 80, "riskMax": 20}

EXTRACTION_PROMPT = (
    "You are an AI Document Auditor.\n"
    "Extract decision-relevant metrics from this document: {name}\n\n"
    "{excerpt}"
    "Return the following metrics in JSON if you can infer them from the context of a typical document of this name:\n"
    "- budget (numerical value)\n"
    "- timeline (number of days)\n"
    "- quality (0-100 score)\n"
    "- risk (0-100 score)\n"
    "- A specific quote justifying each.\n\n"
    'Return format:\n{{"extractedFacts": [{{"field": "budget", "value": 75000, "originalText": "..."}}]}}\n'
)

# (filename keywords, fact) pairs used when no model is reachable.
FALLBACK_FACTS = (
    (("budget", "finance"), ExtractedFact(
        "budget", 75000, "Total authorized expenditure shall not exceed $75,000 USD including expenses.", 0.98)),
    (("schedule", "timeline"), ExtractedFact(
        "timeline", 45, "All deliverables must be completed within 45 calendar days of signature.", 0.92)),
    (("quality", "qa"), ExtractedFact(
        "quality", 90, "Minimum acceptance score for QA audit is 90/100.", 0.88)),
    (("risk", "sla"), ExtractedFact(
        "risk", 10, "Risk tolerance index must stay below 10% for critical path items.", 0.95)),
)
DEFAULT_FACT = ExtractedFact("budget", 50000, "Standard allocation: $50,000", 0.85)


def detect_document_type(filename: str) -> str:
    lower = filename.lower()
    if any(key in lower for key in ("contract", "msa", "agreement")):
        return "contract"
    if any(key in lower for key in ("rfp", "proposal", "bid")):
        return "rfp"
    if any(key in lower for key in ("policy", "compliance", "rule")):
        return "policy"
    return "spec"


def fallback_facts(filename: str) -> List[ExtractedFact]:
    lower = filename.lower()
    facts = [fact for keys, fact in FALLBACK_FACTS if any(key in lower for key in keys)]
    return facts or [DEFAULT_FACT]


def parse_facts(payload: Dict[str, Any] | None) -> List[ExtractedFact]:
    if not payload:
        return []
    facts: List[ExtractedFact] = []
    for item in payload.get("extractedFacts") or []:
        if not isinstance(item, dict):
            continue
        try:
            facts.append(ExtractedFact.from_dict(item))
        except ValueError as exc:
            logger.debug(f"Skipping extracted fact {item!r}: {exc}")
    return facts


class DocumentParser:
    """Turns an uploaded artifact into a DecisionDocument with extracted facts.

    The model backend is optional; any failure falls back to deterministic
    filename-keyed facts so intake never blocks a session.
    """

    def __init__(
        self,
        client: Any = None,
        model: str | None = None,
        timeout: float = 60,
        max_text_chars: int = 2000,
    ) -> None:
        self.client = client
        self.model = model
        self.timeout = timeout
        self.max_text_chars = max_text_chars

    def parse(self, name: str, text: str = "") -> DecisionDocument:
        facts = self._extract(name, text)
        if not facts:
            facts = fallback_facts(name)
        return DecisionDocument(name=name, type=detect_document_type(name), extracted_facts=tuple(facts))

    def parse_file(self, path: Path) -> DecisionDocument:
        try:
            text = path.read_text(encoding="utf-8", errors="ignore")
        except OSError as exc:
            logger.warning(f"Could not read {path}: {exc}")
            text = ""
        return self.parse(path.name, text)

    def _extract(self, name: str, text: str) -> List[ExtractedFact]:
        if self.client is None:
            return []
        excerpt = ""
        if text.strip():
            excerpt = f"Document excerpt:\n{text[:self.max_text_chars]}\n\n"
        prompt = EXTRACTION_PROMPT.format(name=name, excerpt=excerpt)
        result = self.client.generate(prompt, model=self.model, timeout=self.timeout, json_mode=True)
        if not result.ok:
            logger.warning(f"AI parse failed for {name}, falling back: {result.error}")
            return []
        facts = parse_facts(parse_json_payload(result.text))
        if not facts:
            logger.warning(f"AI parse returned no usable facts for {name}, falling back")
        return facts


def build_vendor_proposal(
    document: DecisionDocument,
    vendor_name: str,
    defaults: Optional[Dict[str, float]] = None,
    rng: Optional[random.Random] = None,
) -> VendorProposal:
    """Map a document's facts 1:1 onto a vendor's metrics.

    Metrics with no supporting fact come from ``defaults`` or, failing that,
    a draw from typical vendor ranges.
    """
    rng = rng or random.Random()
    metrics = {
        "budget": float(rng.randint(40000, 79999)),
        "timeline": float(rng.randint(20, 79)),
        "quality": float(rng.randint(65, 94)),
        "risk": float(rng.randint(0, 24)),
    }
    if defaults:
        metrics.update({k: float(v) for k, v in defaults.items() if k in METRIC_FIELDS})
    for fact in document.extracted_facts:
        metrics[fact.field] = fact.value
    return VendorProposal(
        vendor_name=vendor_name,
        document_id=document.id,
        metrics=ProposalVector(**metrics),
        extracted_facts=tuple(VendorFact(f.field, f.value, f.original_text) for f in document.extracted_facts),
    )


def apply_facts_to_constraints(constraints: Constraints, facts: Iterable[ExtractedFact]) -> Constraints:
    mapping = {"budget": "budget", "timeline": "timeline", "quality": "quality_min", "risk": "risk_max"}
    updates = {mapping[fact.field]: fact.value for fact in facts}
    return replace(constraints, **updates) if updates else constraints


def predict_tradeoff(priorities: Priorities) -> Dict[str, str]:
    ordered = priorities.ordered()
    return {"likely_winner": ordered[0][0], "likely_sacrifice": ordered[-1][0]}


def _mapping(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be a mapping, got {type(value).__name__}")
    return value


def _mappings(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    items = data.get(key) or []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise ValueError(f"{key} must be a list of mappings")
    return items


def scenario_from_dict(data: Dict[str, Any]) -> Scenario:
    if not isinstance(data, dict):
        raise ValueError("scenario must be a mapping")
    documents = tuple(DecisionDocument.from_dict(item) for item in _mappings(data, "documents"))
    vendors = tuple(VendorProposal.from_dict(item) for item in _mappings(data, "vendors"))
    ids = [vendor.id for vendor in vendors]
    if len(set(ids)) != len(ids):
        raise ValueError("vendor ids must be unique")
    raw_constraints = dict(DEFAULT_CONSTRAINTS)
    aliases = {"quality_min": "qualityMin", "risk_max": "riskMax"}
    for key, value in _mapping(data, "constraints").items():
        if value not in (None, 0, ""):
            raw_constraints[aliases.get(key, key)] = value
    constraints = Constraints.from_dict(raw_constraints)
    if data.get("applyDocumentFacts", True):
        for document in documents:
            constraints = apply_facts_to_constraints(constraints, document.extracted_facts)
    kwargs: Dict[str, Any] = {}
    if data.get("id"):
        kwargs["id"] = str(data["id"])
    return Scenario(
        title=str(data.get("title") or "Untitled Decision"),
        description=str(data.get("description") or "No description provided"),
        module=str(data.get("module") or MODULE_GENERAL),
        documents=documents,
        vendors=vendors,
        constraints=constraints,
        priorities=Priorities.from_dict(_mapping(data, "priorities")),
        **kwargs,
    )


def load_scenario(path: Path) -> Scenario:
    text = Path(path).read_text(encoding="utf-8")
    if Path(path).suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    return scenario_from_dict(data or {})
