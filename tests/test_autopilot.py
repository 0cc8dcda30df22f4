import threading
import unittest

from consensusai.autopilot import AutoNegotiator
from consensusai.engine import ConsensusEngine
from consensusai.oracle import OracleUnavailable, ReasoningOracle
from consensusai.schema import AgentResponse, Constraints, CoordinatorVerdict, Scenario


class CountdownOracle(ReasoningOracle):
    """Rejects until the coordinator has been asked ``rounds`` times, then converges."""

    def __init__(self, rounds):
        self.rounds = rounds
        self.calls = 0

    def evaluate_agent(self, request):
        return AgentResponse(request.round, "reject", "not yet")

    def synthesize(self, request):
        self.calls += 1
        return CoordinatorVerdict(f"round {request.round}", self.calls >= self.rounds)


class OfflineOracle(ReasoningOracle):
    def evaluate_agent(self, request):
        raise OracleUnavailable("offline")

    def synthesize(self, request):
        raise OracleUnavailable("offline")


def _engine(oracle):
    scenario = Scenario("Ops tooling", "Pick tooling",
                        Constraints(budget=10000, timeline=20, quality_min=80, risk_max=20))
    return ConsensusEngine(scenario, oracle)


class AutoNegotiatorTests(unittest.TestCase):
    def test_runs_until_converged(self):
        engine = _engine(CountdownOracle(3))
        seen = []
        results = AutoNegotiator(engine, on_round=seen.append).run()
        self.assertEqual([r.round for r in results], [1, 2, 3])
        self.assertTrue(results[-1].converged)
        self.assertEqual(seen, results)
        self.assertTrue(engine.converged)

    def test_max_rounds_stops_early(self):
        engine = _engine(OfflineOracle())
        results = AutoNegotiator(engine, max_rounds=2).run()
        self.assertEqual(len(results), 2)
        self.assertFalse(engine.converged)
        self.assertEqual(engine.round_index, 2)

    def test_stop_from_callback(self):
        engine = _engine(OfflineOracle())
        autopilot = AutoNegotiator(engine, interval_seconds=5)
        autopilot.on_round = lambda result: autopilot.stop()
        results = autopilot.run()
        self.assertEqual(len(results), 1)
        self.assertTrue(autopilot.stopped)

    def test_background_thread(self):
        engine = _engine(CountdownOracle(2))
        done = threading.Event()
        autopilot = AutoNegotiator(engine, interval_seconds=0.2, on_round=lambda r: r.converged and done.set())
        autopilot.start()
        with self.assertRaises(RuntimeError):
            autopilot.start()
        self.assertTrue(done.wait(5))
        autopilot.join(5)
        self.assertTrue(engine.converged)
        self.assertEqual(engine.round_index, 2)

    def test_already_converged_runs_nothing(self):
        engine = _engine(CountdownOracle(1))
        engine.evaluate_round()
        self.assertEqual(AutoNegotiator(engine).run(), [])


if __name__ == "__main__":
    unittest.main()
