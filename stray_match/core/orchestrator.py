"""
Matching pipeline entry point.

State Flow:
1. RATE_LIMITED - quota gate, denies with RateLimitExceeded
2. SEARCHING - candidates of the same species around the trigger
3. FILTERING / ANALYZING / PERSISTING / NOTIFYING - per candidate
4. DONE, or ERROR on an unexpected failure

Each candidate runs its own filter -> analyze -> persist -> notify chain on
a bounded thread pool. A failing candidate is logged and reported in the
result; the others carry on.
"""

import time
import uuid
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from stray_match.config.loader import MatchingConfig
from stray_match.logging_config import get_logger
from stray_match.storage.animals import AnimalRepository, SearchTarget
from stray_match.storage.matches import MatchStore
from stray_match.storage.models import AnimalRecord, LostAnimalRecord, Tier

from .analyzer import MatchAnalyzer
from .candidates import CandidateSearch, SearchPath
from .deadline import Deadline
from .errors import MalformedRequest, RateLimitExceeded
from .prefilter import should_skip
from .rate_limiter import RateLimiter, RateLimitResult
from .tasks import BestEffortExecutor

logger = get_logger(__name__)


class PipelineState(Enum):
    RATE_LIMITED = "rate_limited"
    SEARCHING = "searching"
    FILTERING = "filtering"
    ANALYZING = "analyzing"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    DONE = "done"
    ERROR = "error"


class CandidateOutcome(Enum):
    """How one (lost report, sighting) pair ended."""
    SKIPPED_DEADLINE = "skipped_deadline"
    ALREADY_MATCHED = "already_matched"
    SKIPPED_PREFILTER = "skipped_prefilter"
    NO_ANALYSIS = "no_analysis"
    BELOW_THRESHOLD = "below_threshold"
    DUPLICATE = "duplicate"
    ACCEPTED = "accepted"
    FAILED = "failed"


@dataclass(frozen=True)
class MatchRequest:
    """Trigger for one run: exactly one of the two ids is set."""
    lost_animal_id: Optional[str] = None
    sighting_id: Optional[str] = None

    def __post_init__(self):
        if bool(self.lost_animal_id) == bool(self.sighting_id):
            raise MalformedRequest("Provide exactly one of lostAnimalId or sightingId")

    @classmethod
    def from_payload(cls, payload: Any) -> "MatchRequest":
        """Build a request from a ``POST /match`` body.

        Raises:
            MalformedRequest: If the body is not an object, an id is not a
                non-empty string, or not exactly one id is present
        """
        if not isinstance(payload, Mapping):
            raise MalformedRequest("Request body must be a JSON object")

        ids = {}
        for key in ("lostAnimalId", "sightingId"):
            value = payload.get(key)
            if value is None:
                continue
            if not isinstance(value, str) or not value.strip():
                raise MalformedRequest(f"{key} must be a non-empty string")
            ids[key] = value.strip()

        return cls(lost_animal_id=ids.get("lostAnimalId"), sighting_id=ids.get("sightingId"))

    @property
    def trigger(self) -> str:
        if self.sighting_id:
            return f"sighting {self.sighting_id}"
        return f"lost report {self.lost_animal_id}"


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    tier: Tier = Tier.FREE


@dataclass(frozen=True)
class CandidateReport:
    """Per-candidate outcome kept for logs and the CLI."""
    lost_animal_id: str
    sighting_id: str
    outcome: CandidateOutcome
    confidence: Optional[float] = None
    reason: Optional[str] = None


@dataclass
class PipelineResult:
    run_id: str
    request: MatchRequest
    rate_limit: RateLimitResult
    state: PipelineState = PipelineState.SEARCHING
    search_path: Optional[SearchPath] = None
    reports: List[CandidateReport] = field(default_factory=list)

    @property
    def new_matches(self) -> List[CandidateReport]:
        return [report for report in self.reports if report.outcome == CandidateOutcome.ACCEPTED]

    def outcome_counts(self) -> Dict[str, int]:
        return dict(Counter(report.outcome.value for report in self.reports))


Pair = Tuple[LostAnimalRecord, AnimalRecord]


class MatchingOrchestrator:
    """Runs the matching pipeline for one sighting or lost report.

    Example:
        orchestrator = MatchingOrchestrator(limiter, animals, search, analyzer, store, dispatcher, executor)
        result = orchestrator.run(MatchRequest(sighting_id="s1"), AuthenticatedUser("u1"))
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        animals: AnimalRepository,
        search: CandidateSearch,
        analyzer: MatchAnalyzer,
        store: MatchStore,
        dispatcher,
        executor: BestEffortExecutor,
        config: Optional[MatchingConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.rate_limiter = rate_limiter
        self.animals = animals
        self.search = search
        self.analyzer = analyzer
        self.store = store
        self.dispatcher = dispatcher
        self.executor = executor
        self.config = config or MatchingConfig()
        self._clock = clock

    def run(
        self,
        request: MatchRequest,
        user: AuthenticatedUser,
        deadline: Optional[Deadline] = None
    ) -> PipelineResult:
        """Execute one pipeline run.

        Args:
            request: The triggering record
            user: Authenticated caller; analyzer usage is billed to them
            deadline: Overall budget (defaults to ``run_timeout_seconds``)

        Returns:
            PipelineResult in state DONE

        Raises:
            RateLimitExceeded: If the caller is over quota
        """
        run_id = uuid.uuid4().hex[:12]
        deadline = deadline or Deadline(self.config.run_timeout_seconds, clock=self._clock)

        self._transition(run_id, PipelineState.RATE_LIMITED, f"user={user.user_id} tier={user.tier.value}")
        rate_limit = self.rate_limiter.check_and_consume(user.user_id, user.tier)
        if not rate_limit.allowed:
            raise RateLimitExceeded(rate_limit)

        result = PipelineResult(run_id=run_id, request=request, rate_limit=rate_limit)
        try:
            self._transition(run_id, PipelineState.SEARCHING, request.trigger)
            pairs = self._find_pairs(request, result)
            result.reports = self._process_all(run_id, pairs, user, deadline)
        except Exception:
            result.state = PipelineState.ERROR
            logger.exception(f"[{run_id}] Pipeline failed for {request.trigger}")
            raise

        result.state = PipelineState.DONE
        self._transition(
            run_id, PipelineState.DONE,
            f"{len(result.reports)} candidates, {len(result.new_matches)} new matches {result.outcome_counts()}",
        )
        return result

    def _find_pairs(self, request: MatchRequest, result: PipelineResult) -> List[Pair]:
        if request.sighting_id:
            sighting = self.animals.get_sighting(request.sighting_id)
            if sighting is None:
                logger.warning(f"Sighting {request.sighting_id} not found; nothing to match")
                return []
            candidates = self.search.find_candidates(
                sighting.location,
                sighting.animal_type,
                SearchTarget.LOST_REPORTS,
                radius_km=self.config.search_radius_km,
                lookback_days=self.config.lost_report_lookback_days,
            )
            result.search_path = candidates.path
            pairs = [(lost, sighting) for lost in candidates]
        else:
            lost = self.animals.get_lost_animal(request.lost_animal_id)
            if lost is None:
                logger.warning(f"Lost report {request.lost_animal_id} not found; nothing to match")
                return []
            if lost.status != "active":
                logger.info(f"Lost report {lost.id} is {lost.status}; nothing to match")
                return []
            candidates = self.search.find_candidates(
                lost.location,
                lost.animal_type,
                SearchTarget.SIGHTINGS,
                radius_km=self.config.search_radius_km,
                lookback_days=self.config.sighting_lookback_days,
            )
            result.search_path = candidates.path
            pairs = [(lost, sighting) for sighting in candidates]

        if len(pairs) > self.config.max_candidates:
            logger.info(f"Capping {len(pairs)} candidates at {self.config.max_candidates}")
            pairs = pairs[:self.config.max_candidates]
        return pairs

    def _process_all(
        self,
        run_id: str,
        pairs: List[Pair],
        user: AuthenticatedUser,
        deadline: Deadline
    ) -> List[CandidateReport]:
        if not pairs:
            return []
        workers = min(self.config.max_workers, len(pairs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"match-{run_id}") as pool:
            futures = [
                pool.submit(self._process_safely, run_id, lost, sighting, user, deadline)
                for lost, sighting in pairs
            ]
            return [future.result() for future in futures]

    def _process_safely(
        self,
        run_id: str,
        lost: LostAnimalRecord,
        sighting: AnimalRecord,
        user: AuthenticatedUser,
        deadline: Deadline
    ) -> CandidateReport:
        try:
            return self._process(run_id, lost, sighting, user, deadline)
        except Exception as e:
            logger.exception(f"[{run_id}] Candidate {lost.id}/{sighting.id} failed: {e}")
            return CandidateReport(lost.id, sighting.id, CandidateOutcome.FAILED, reason=str(e))

    def _process(
        self,
        run_id: str,
        lost: LostAnimalRecord,
        sighting: AnimalRecord,
        user: AuthenticatedUser,
        deadline: Deadline
    ) -> CandidateReport:
        pair = f"{lost.id}/{sighting.id}"
        if deadline.expired:
            return CandidateReport(lost.id, sighting.id, CandidateOutcome.SKIPPED_DEADLINE)

        # Redelivered triggers stop here, before any model call.
        if self.store.has_match(lost.id, sighting.id):
            return CandidateReport(lost.id, sighting.id, CandidateOutcome.ALREADY_MATCHED)

        self._transition(run_id, PipelineState.FILTERING, pair, level="debug")
        decision = should_skip(lost, sighting)
        if decision.skip:
            return CandidateReport(
                lost.id, sighting.id, CandidateOutcome.SKIPPED_PREFILTER,
                confidence=decision.confidence, reason=decision.reason,
            )

        self._transition(run_id, PipelineState.ANALYZING, pair, level="debug")
        analysis = self.analyzer.analyze(lost, sighting, user.user_id, deadline=deadline)
        if analysis is None:
            return CandidateReport(lost.id, sighting.id, CandidateOutcome.NO_ANALYSIS)

        self._transition(run_id, PipelineState.PERSISTING, f"{pair} confidence={analysis.confidence:.0f}", level="debug")
        accepted = self.store.accept_if_new(lost.id, sighting.id, analysis.confidence, analysis.reason)
        if not accepted.accepted:
            outcome = CandidateOutcome.BELOW_THRESHOLD
        elif not accepted.inserted:
            outcome = CandidateOutcome.DUPLICATE
        else:
            self._transition(run_id, PipelineState.NOTIFYING, pair)
            self.executor.submit(
                f"notify-{pair}",
                self.dispatcher.notify_owner,
                lost,
                sighting,
                analysis.confidence,
            )
            outcome = CandidateOutcome.ACCEPTED

        return CandidateReport(lost.id, sighting.id, outcome, confidence=analysis.confidence, reason=analysis.reason)

    @staticmethod
    def _transition(run_id: str, state: PipelineState, detail: str = "", level: str = "info") -> None:
        getattr(logger, level)(f"[{run_id}] {state.name} {detail}".rstrip())
