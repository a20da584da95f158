"""Request dependencies resolving the services built in the app lifespan."""

from fastapi import Request

from saint.config import Settings
from saint.core.scheduler import ExecutionScheduler
from saint.services.store import RecordStore
from saint.streaming import StreamingHub


def get_scheduler(request: Request) -> ExecutionScheduler:
    return request.app.state.scheduler


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_hub(request: Request) -> StreamingHub:
    return request.app.state.hub


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
