"""FastAPI dependencies resolving the per-app services built in main.lifespan."""

from fastapi import Request

from fulbito.etl.static_fixtures import FallbackFixtureSource
from fulbito.matches.service import FixtureService
from fulbito.records.pocketbase import PocketBaseClient, RecordRepository


def get_fixture_service(request: Request) -> FixtureService:
    return request.app.state.fixture_service


def get_provider(request: Request) -> FallbackFixtureSource:
    return request.app.state.fixture_source


def get_repository(request: Request) -> RecordRepository:
    return request.app.state.repository


def get_record_store(request: Request) -> PocketBaseClient:
    return request.app.state.record_store
