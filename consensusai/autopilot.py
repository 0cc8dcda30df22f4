"""Periodic automatic round advancement for a consensus engine."""
from __future__ import annotations

from typing import Callable, List, Optional
import logging
import threading

from consensusai.engine import ConsensusEngine
from consensusai.schema import RoundResult

logger = logging.getLogger(__name__)


class AutoNegotiator:
    """Advances an engine one round at a time until it converges.

    Rounds are never overlapped: the next round starts only after the previous
    one returned, then waits ``interval_seconds``. ``stop()`` (from any thread)
    ends the loop at the next wait; the round in flight always completes.
    """

    def __init__(
        self,
        engine: ConsensusEngine,
        interval_seconds: float = 0.0,
        max_rounds: Optional[int] = None,
        on_round: Optional[Callable[[RoundResult], None]] = None,
    ) -> None:
        self.engine = engine
        self.interval_seconds = max(0.0, interval_seconds)
        self.max_rounds = max_rounds
        self.on_round = on_round
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def step(self) -> RoundResult:
        with self._lock:
            return self.engine.evaluate_round()

    def run(self) -> List[RoundResult]:
        results: List[RoundResult] = []
        while not self._stop.is_set() and not self.engine.converged:
            if self.max_rounds is not None and len(results) >= self.max_rounds:
                logger.info(f"Auto-negotiation stopped after {len(results)} rounds without convergence")
                break
            result = self.step()
            results.append(result)
            if self.on_round:
                self.on_round(result)
            if result.converged:
                break
            if self.interval_seconds and self._stop.wait(self.interval_seconds):
                break
        return results

    def start(self) -> threading.Thread:
        if self._thread and self._thread.is_alive():
            raise RuntimeError("auto-negotiation already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> None:
        if self._thread:
            self._thread.join(timeout)
