from __future__ import annotations

import logging
from dataclasses import dataclass

from speechcoach.agents.assessment import AnswerEvaluator
from speechcoach.agents.checkin import CheckInAgent
from speechcoach.agents.picture_choice import PictureChoiceAssembler
from speechcoach.agents.planner import TherapyPlanAgent
from speechcoach.core.event_bus import EventBus
from speechcoach.core.llm_provider import ROLE_CHECKIN, ROLE_GRADER, ROLE_PLANNER, BaseLLMProvider, get_llm_provider
from speechcoach.core.settings import settings
from speechcoach.images.providers import BingImageProvider, ImageSearchProvider, UnsplashImageProvider
from speechcoach.memory.practice_summaries import PracticeSummaryStore
from speechcoach.memory.session_store import SessionStore
from speechcoach.orchestrator.registry import PracticeRegistry
from speechcoach.runtime.run_manager import PlanJobRunner

logger = logging.getLogger(__name__)


@dataclass
class TherapyServices:
    store: SessionStore
    event_bus: EventBus
    runner: PlanJobRunner
    checkin: CheckInAgent
    planner: TherapyPlanAgent
    evaluator: AnswerEvaluator
    pictures: PictureChoiceAssembler
    practice: PracticeRegistry
    summaries: PracticeSummaryStore
    image_providers: list[ImageSearchProvider]


def build_services(
    *,
    checkin_provider: BaseLLMProvider | None = None,
    planner_provider: BaseLLMProvider | None = None,
    grader_provider: BaseLLMProvider | None = None,
    image_providers: list[ImageSearchProvider] | None = None,
    summaries: PracticeSummaryStore | None = None,
    assembler: PictureChoiceAssembler | None = None,
) -> TherapyServices:
    """Wire one application's worth of collaborators. Every argument overrides the configured default."""
    store = SessionStore()
    event_bus = EventBus()
    planner = TherapyPlanAgent(store, planner_provider or get_llm_provider(role=ROLE_PLANNER))
    runner = PlanJobRunner(store, planner, event_bus)
    checkin = CheckInAgent(store, runner, event_bus, checkin_provider or get_llm_provider(role=ROLE_CHECKIN))
    evaluator = AnswerEvaluator(grader_provider or get_llm_provider(role=ROLE_GRADER))
    providers = image_providers if image_providers is not None else [UnsplashImageProvider(), BingImageProvider()]
    summaries = summaries or PracticeSummaryStore(settings.runtime_data_dir)
    practice = PracticeRegistry(store, evaluator, summaries, event_bus)
    logger.info(
        "Services ready | llm_provider=%s | image_providers=%s",
        settings.llm_provider,
        ",".join(p.provider_name for p in providers) or "-",
    )
    return TherapyServices(
        store=store,
        event_bus=event_bus,
        runner=runner,
        checkin=checkin,
        planner=planner,
        evaluator=evaluator,
        pictures=assembler or PictureChoiceAssembler(providers),
        practice=practice,
        summaries=summaries,
        image_providers=providers,
    )
