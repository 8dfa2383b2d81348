"""
Routing Engine Container
Wires storage backends into the routing services
"""
import logging
from dataclasses import dataclass
from typing import Optional

from callflow.core.config import ConfigManager, Settings
from callflow.domain.interfaces.directory_provider import DirectoryProvider
from callflow.domain.interfaces.session_repository import SessionRepository
from callflow.domain.models.ivr_event import DuplicateEventPolicy
from callflow.domain.services.call_analytics import CallAnalyticsService, DEFAULT_STALE_AFTER_SECONDS
from callflow.domain.services.directory_lookup import DirectoryLookup
from callflow.domain.services.flow_resolver import FlowResolver
from callflow.domain.services.ivr_dispatcher import IvrDispatcher
from callflow.domain.services.outcome_classifier import OutcomeClassifier

logger = logging.getLogger(__name__)


@dataclass
class RoutingEngine:
    """Services shared by the webhook endpoints"""
    sessions: SessionRepository
    directory: DirectoryProvider
    dispatcher: IvrDispatcher
    classifier: OutcomeClassifier
    analytics: CallAnalyticsService

    async def close(self) -> None:
        await self.sessions.close()
        await self.directory.close()


def create_engine(
    sessions: SessionRepository,
    directory: DirectoryProvider,
    config: Optional[ConfigManager] = None
) -> RoutingEngine:
    """
    Build the routing services around the given backends.

    Args:
        sessions: Session store
        directory: Flow/extension/department source
        config: YAML configuration (routing and analytics keys)
    """
    config = config or ConfigManager()

    duplicate_policy = DuplicateEventPolicy(
        config.get("routing.duplicate_events", DuplicateEventPolicy.RECORD.value)
    )
    stale_after = config.get_int("analytics.stale_after_seconds", DEFAULT_STALE_AFTER_SECONDS)

    dispatcher = IvrDispatcher(
        sessions=sessions,
        flow_resolver=FlowResolver(directory),
        directory=DirectoryLookup(directory),
        duplicate_policy=duplicate_policy
    )

    logger.info(f"Routing engine ready (duplicate_events={duplicate_policy.value})")

    return RoutingEngine(
        sessions=sessions,
        directory=directory,
        dispatcher=dispatcher,
        classifier=OutcomeClassifier(sessions),
        analytics=CallAnalyticsService(sessions, stale_after_seconds=stale_after),
    )


def build_engine(settings: Settings, config: Optional[ConfigManager] = None) -> RoutingEngine:
    """Create backends from settings and build the engine."""
    from callflow.infrastructure.storage.factory import StorageFactory

    config = config or ConfigManager(env=settings.environment)
    factory = StorageFactory(settings, config)

    return create_engine(
        sessions=factory.create_session_repository(),
        directory=factory.create_directory(),
        config=config
    )
