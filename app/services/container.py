"""Wiring of the ledger services around one document store."""
from dataclasses import dataclass
from typing import Optional

from app.infrastructure.document_store import DocumentStore, get_document_store
from app.infrastructure.topic_catalog import TopicCatalog, get_topic_catalog
from app.services.assessments import AssessmentService
from app.services.cleanup import CleanupService
from app.services.overview import OverviewService
from app.services.response_store import ResponseStore
from app.services.review import ReviewWorkflow
from app.services.weakness import TopicBasedWeaknessAnalyzer, WeaknessService


@dataclass
class Services:
    store: DocumentStore
    catalog: TopicCatalog
    responses: ResponseStore
    review: ReviewWorkflow
    weakness: WeaknessService
    cleanup: CleanupService
    assessments: AssessmentService
    overview: OverviewService


def build_services(
    store: DocumentStore,
    catalog: Optional[TopicCatalog] = None,
    max_workers: Optional[int] = None,
) -> Services:
    catalog = catalog or get_topic_catalog()
    responses = ResponseStore(store)
    weakness = WeaknessService(store, responses, TopicBasedWeaknessAnalyzer(catalog))
    cleanup = CleanupService(store, drop_snapshot=weakness.drop_snapshot, max_workers=max_workers)
    assessments = AssessmentService(store, cleanup)
    return Services(
        store=store,
        catalog=catalog,
        responses=responses,
        review=ReviewWorkflow(store, responses),
        weakness=weakness,
        cleanup=cleanup,
        assessments=assessments,
        overview=OverviewService(responses, assessments),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    """FastAPI dependency returning the process-wide service container."""
    global _services
    if _services is None:
        _services = build_services(get_document_store())
    return _services


def reset_services() -> None:
    global _services
    _services = None
