import random
import tempfile
import unittest
from pathlib import Path

from consensusai.intake import (
    DEFAULT_FACT,
    DocumentParser,
    build_vendor_proposal,
    detect_document_type,
    fallback_facts,
    load_scenario,
    predict_tradeoff,
    scenario_from_dict,
)
from consensusai.models.groq import GroqResult
from consensusai.schema import DecisionDocument, ExtractedFact, Priorities


class FakeClient:
    def __init__(self, result):
        self.result = result
        self.prompts = []

    def generate(self, prompt, **kwargs):
        self.prompts.append(prompt)
        return self.result


class DocumentIntakeTests(unittest.TestCase):
    def test_detect_document_type(self):
        self.assertEqual(detect_document_type("Master_MSA_2024.pdf"), "contract")
        self.assertEqual(detect_document_type("hosting-rfp.docx"), "rfp")
        self.assertEqual(detect_document_type("Security Policy.pdf"), "policy")
        self.assertEqual(detect_document_type("notes.txt"), "spec")

    def test_fallback_facts_by_keyword(self):
        facts = fallback_facts("Q3_budget_schedule.pdf")
        self.assertEqual([(f.field, f.value) for f in facts], [("budget", 75000), ("timeline", 45)])
        self.assertEqual(fallback_facts("notes.txt"), [DEFAULT_FACT])

    def test_parser_without_client_uses_fallback(self):
        document = DocumentParser().parse("vendor_sla.pdf")
        self.assertEqual(document.type, "spec")
        self.assertEqual(document.status, "ready")
        self.assertEqual([(f.field, f.value) for f in document.extracted_facts], [("risk", 10)])

    def test_parser_uses_model_facts(self):
        client = FakeClient(GroqResult(text=(
            '{"extractedFacts": ['
            '{"field": "budget", "value": 42000, "originalText": "Fee is $42,000"},'
            '{"field": "color", "value": 3}'
            ']}'
        )))
        parser = DocumentParser(client=client, max_text_chars=10)
        document = parser.parse("contract.pdf", "A" * 50)
        self.assertEqual(document.type, "contract")
        self.assertEqual(len(document.extracted_facts), 1)
        self.assertEqual(document.extracted_facts[0].original_text, "Fee is $42,000")
        self.assertIn("A" * 10 + "\n", client.prompts[0])
        self.assertNotIn("A" * 11, client.prompts[0])

    def test_parser_model_failure_falls_back(self):
        client = FakeClient(GroqResult(ok=False, error="HTTP 500"))
        document = DocumentParser(client=client).parse("finance_plan.xlsx")
        self.assertEqual(document.extracted_facts[0].value, 75000)

    def test_parse_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "qa_plan.md"
            path.write_text("Quality bar")
            document = DocumentParser().parse_file(path)
        self.assertEqual(document.name, "qa_plan.md")
        self.assertEqual(document.extracted_facts[0].field, "quality")


class VendorIntakeTests(unittest.TestCase):
    def test_facts_override_generated_metrics(self):
        document = DecisionDocument("bid.pdf", "rfp", (ExtractedFact("budget", 61000, "Total $61,000"),))
        vendor = build_vendor_proposal(document, "Lumen", rng=random.Random(7))
        self.assertEqual(vendor.vendor_name, "Lumen")
        self.assertEqual(vendor.document_id, document.id)
        self.assertEqual(vendor.metrics.budget, 61000)
        self.assertTrue(20 <= vendor.metrics.timeline < 80)
        self.assertTrue(65 <= vendor.metrics.quality < 95)
        self.assertTrue(0 <= vendor.metrics.risk < 25)
        self.assertEqual(vendor.extracted_facts[0].quote, "Total $61,000")

    def test_defaults_fill_missing_metrics(self):
        document = DecisionDocument("bid.pdf", "rfp")
        vendor = build_vendor_proposal(document, "Lumen", defaults={"risk": 4, "bogus": 1})
        self.assertEqual(vendor.metrics.risk, 4.0)


class ScenarioTests(unittest.TestCase):
    def test_defaults(self):
        scenario = scenario_from_dict({})
        self.assertEqual(scenario.title, "Untitled Decision")
        self.assertEqual(scenario.description, "No description provided")
        self.assertEqual(scenario.module, "general")
        self.assertEqual(scenario.constraints.budget, 50000)
        self.assertEqual(scenario.constraints.quality_min, 80)
        self.assertEqual(scenario.priorities, Priorities())

    def test_aliases_and_zero_values(self):
        scenario = scenario_from_dict({
            "title": "Hosting",
            "constraints": {"budget": 0, "timeline": 40, "quality_min": 85, "riskMax": 12},
        })
        self.assertEqual(scenario.constraints.budget, 50000)
        self.assertEqual(scenario.constraints.timeline, 40)
        self.assertEqual(scenario.constraints.quality_min, 85)
        self.assertEqual(scenario.constraints.risk_max, 12)

    def test_document_facts_tighten_constraints(self):
        data = {
            "documents": [{
                "name": "finance.pdf",
                "type": "contract",
                "extractedFacts": [
                    {"field": "budget", "value": 75000, "originalText": "cap"},
                    {"field": "quality", "value": 92},
                ],
            }],
        }
        scenario = scenario_from_dict(data)
        self.assertEqual(scenario.constraints.budget, 75000)
        self.assertEqual(scenario.constraints.quality_min, 92)

        data["applyDocumentFacts"] = False
        self.assertEqual(scenario_from_dict(data).constraints.budget, 50000)

    def test_vendor_scenario(self):
        scenario = scenario_from_dict({
            "module": "vendor_eval",
            "vendors": [
                {"vendorName": "Alpha", "metrics": {"budget": 1, "timeline": 2, "quality": 3, "risk": 4}},
            ],
        })
        self.assertTrue(scenario.comparison_mode)
        self.assertEqual(scenario.vendors[0].vendor_name, "Alpha")

    def test_invalid_scenarios(self):
        with self.assertRaises(ValueError):
            scenario_from_dict({"module": "astrology"})
        with self.assertRaises(ValueError):
            scenario_from_dict({"priorities": {"risk": 11}})
        with self.assertRaises(ValueError):
            scenario_from_dict(["not", "a", "mapping"])

    def test_malformed_sections(self):
        with self.assertRaisesRegex(ValueError, "constraints must be a mapping"):
            scenario_from_dict({"constraints": [1, 2]})
        with self.assertRaisesRegex(ValueError, "priorities must be a mapping"):
            scenario_from_dict({"priorities": "budget"})
        with self.assertRaisesRegex(ValueError, "vendors must be a list"):
            scenario_from_dict({"vendors": ["Alpha"]})
        vendor = {"id": "dup", "vendorName": "Alpha", "metrics": {"budget": 1}}
        with self.assertRaisesRegex(ValueError, "vendor ids must be unique"):
            scenario_from_dict({"module": "vendor_eval", "vendors": [vendor, dict(vendor, vendorName="Beta")]})

    def test_predict_tradeoff(self):
        self.assertEqual(predict_tradeoff(Priorities()), {"likely_winner": "quality", "likely_sacrifice": "timeline"})

    def test_load_yaml_scenario(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "scenario.yaml"
            path.write_text(
                "title: Payroll\n"
                "module: project_planning\n"
                "constraints:\n"
                "  budget: 30000\n"
                "priorities:\n"
                "  timeline: 9\n"
            )
            scenario = load_scenario(path)
        self.assertEqual(scenario.title, "Payroll")
        self.assertEqual(scenario.module, "project_planning")
        self.assertEqual(scenario.constraints.budget, 30000)
        self.assertEqual(scenario.priorities.timeline, 9)

    def test_bundled_examples_load(self):
        examples = Path(__file__).resolve().parent.parent / "examples"
        vendor = load_scenario(examples / "vendor_scenario.yaml")
        self.assertTrue(vendor.comparison_mode)
        self.assertEqual([v.id for v in vendor.vendors], ["northwind", "harbor", "quarry"])
        self.assertEqual(vendor.vendors[0].extracted_facts[1].field, "risk")
        general = load_scenario(examples / "general_scenario.yaml")
        self.assertFalse(general.comparison_mode)
        self.assertEqual(general.constraints.budget, 100000)


if __name__ == "__main__":
    unittest.main()
