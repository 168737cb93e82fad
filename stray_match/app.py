"""
Service wiring.

Builds the pipeline from settings once per process. The CLI and the WSGI
server both go through ``build_services``.
"""

from dataclasses import dataclass
from typing import Any, Optional

from openai import OpenAI

from stray_match.api.handlers import ApiService
from stray_match.config.loader import PipelineConfig
from stray_match.config.settings import Settings
from stray_match.core.analyzer import MatchAnalyzer
from stray_match.core.cache import TTLCache
from stray_match.core.candidates import CandidateSearch
from stray_match.core.describe import AnimalDescriber
from stray_match.core.orchestrator import MatchingOrchestrator
from stray_match.core.rate_limiter import RateLimiter
from stray_match.core.tasks import BestEffortExecutor
from stray_match.notify.dispatcher import NotificationDispatcher
from stray_match.notify.push import create_push_relay
from stray_match.sdk.openai_client import GuardedVisionClient
from stray_match.storage.animals import AnimalRepository
from stray_match.storage.matches import MatchStore
from stray_match.storage.models import UsageEvent
from stray_match.storage.profiles import ProfileRepository
from stray_match.storage.repository import UsageRepository, insert_usage_event

MATCH_FEATURE = "lost_animal_match"
ANALYZE_FEATURE = "analyze_animal"


@dataclass
class Services:
    config: PipelineConfig
    executor: BestEffortExecutor
    rate_limiter: RateLimiter
    orchestrator: MatchingOrchestrator
    describer: AnimalDescriber
    api: ApiService

    def close(self) -> None:
        """Drain pending notifications and usage writes."""
        self.executor.shutdown(wait=True)


def build_services(
    settings: Settings,
    config: Optional[PipelineConfig] = None,
    openai_client: Optional[Any] = None,
    push_session: Optional[Any] = None
) -> Services:
    """Wire every component against ``settings.db_path``.

    Args:
        settings: Deployment settings
        config: Pipeline config (defaults to ``settings.pipeline_config()``)
        openai_client: Preconfigured OpenAI client (defaults to ``OpenAI()``)
        push_session: requests session for the push relay
    """
    config = config or settings.pipeline_config()
    db_path = settings.db_path
    executor = BestEffortExecutor()

    def record_usage(event: UsageEvent) -> None:
        executor.submit("record-usage", insert_usage_event, event, db_path)

    openai_client = openai_client if openai_client is not None else OpenAI()
    match_client = GuardedVisionClient(config.analyzer.model, MATCH_FEATURE, record_usage, client=openai_client)
    analyze_client = GuardedVisionClient(config.analyzer.model, ANALYZE_FEATURE, record_usage, client=openai_client)

    profiles = ProfileRepository(db_path)
    animals = AnimalRepository(db_path)
    rate_limiter = RateLimiter(UsageRepository(db_path), config.rate_limits)
    describer = AnimalDescriber(analyze_client, config.analyzer)

    orchestrator = MatchingOrchestrator(
        rate_limiter=rate_limiter,
        animals=animals,
        search=CandidateSearch(
            animals,
            scan_limit=config.matching.fallback_scan_limit,
            max_results=config.matching.max_candidates,
        ),
        analyzer=MatchAnalyzer(match_client, config.analyzer),
        store=MatchStore(db_path, threshold=config.matching.confidence_threshold),
        dispatcher=NotificationDispatcher(profiles, create_push_relay(config.notifications, session=push_session)),
        executor=executor,
        config=config.matching,
    )
    api = ApiService(profiles, rate_limiter, orchestrator, describer, tier_cache=TTLCache())
    return Services(
        config=config,
        executor=executor,
        rate_limiter=rate_limiter,
        orchestrator=orchestrator,
        describer=describer,
        api=api,
    )
