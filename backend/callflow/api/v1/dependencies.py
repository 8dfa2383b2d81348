"""
API Dependencies
Shared dependencies giving endpoints access to the routing engine
"""
from fastapi import Depends, Request

from callflow.core.container import RoutingEngine
from callflow.domain.services.call_analytics import CallAnalyticsService
from callflow.domain.services.ivr_dispatcher import IvrDispatcher
from callflow.domain.services.outcome_classifier import OutcomeClassifier
from callflow.domain.interfaces.session_repository import SessionRepository


def get_engine(request: Request) -> RoutingEngine:
    """
    Get the routing engine built at startup.

    Raises:
        RuntimeError: If the application lifespan has not run
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise RuntimeError("Routing engine is not initialized. Was the application started?")
    return engine


def get_dispatcher(engine: RoutingEngine = Depends(get_engine)) -> IvrDispatcher:
    return engine.dispatcher


def get_classifier(engine: RoutingEngine = Depends(get_engine)) -> OutcomeClassifier:
    return engine.classifier


def get_sessions(engine: RoutingEngine = Depends(get_engine)) -> SessionRepository:
    return engine.sessions


def get_analytics(engine: RoutingEngine = Depends(get_engine)) -> CallAnalyticsService:
    return engine.analytics
