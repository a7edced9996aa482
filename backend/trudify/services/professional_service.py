import logging
from dataclasses import dataclass
from typing import Callable, Generic, List, Mapping, Optional, TypeVar

from trudify.models import PaginatedProfessionalsResponse, Professional, ProfessionalDetail
from trudify.services.featured_ranking import FEATURED_LIMIT
from trudify.services.marketplace_db import (
    MarketplaceError,
    MarketplaceValidationError,
    UnexpectedServiceError,
)
from trudify.services.privacy import (
    filter_sensitive_fields,
    filter_sensitive_fields_batch,
    warn_if_sensitive_fields,
)
from trudify.services.professional_repository import ProfessionalRepository
from trudify.services.query_parser import parse_query_params, stringify_query_params, validate_query_params

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueryValidationError(MarketplaceValidationError):
    code = "invalid_query"


@dataclass
class ServiceResult(Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[MarketplaceError] = None

    @classmethod
    def ok(cls, data: T) -> "ServiceResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: MarketplaceError) -> "ServiceResult[T]":
        return cls(success=False, error=error)


def run_guarded(operation: str, fn: Callable[[], T]) -> ServiceResult[T]:
    """Run one service call and convert any raised error into a failed result."""
    try:
        return ServiceResult.ok(fn())
    except MarketplaceError as exc:
        logger.info("%s failed: %s (%s)", operation, exc, exc.code)
        return ServiceResult.fail(exc)
    except Exception as exc:
        logger.exception("%s failed unexpectedly", operation)
        return ServiceResult.fail(UnexpectedServiceError(str(exc) or exc.__class__.__name__))


class ProfessionalService:
    def __init__(self, repository: ProfessionalRepository, *, privacy_self_check: bool = True) -> None:
        self.repository = repository
        self.privacy_self_check = privacy_self_check

    def get_professionals(self, raw_params: Mapping[str, Optional[str]]) -> ServiceResult[PaginatedProfessionalsResponse]:
        return run_guarded("List professionals", lambda: self._get_professionals(raw_params))

    def _get_professionals(self, raw_params: Mapping[str, Optional[str]]) -> PaginatedProfessionalsResponse:
        params = parse_query_params(raw_params)
        errors = validate_query_params(params)
        if errors:
            raise QueryValidationError(f"Invalid query parameters: {', '.join(errors)}")

        logger.debug("Listing professionals: %s", stringify_query_params(params))
        page = self.repository.get_professionals(params)
        response = PaginatedProfessionalsResponse(
            professionals=filter_sensitive_fields_batch(page.professionals),
            featured_professionals=filter_sensitive_fields_batch(page.featured_professionals),
            pagination=page.pagination,
        )
        warn_if_sensitive_fields(response, "professionals listing", enabled=self.privacy_self_check)
        return response

    def get_professional_by_id(self, professional_id: str) -> ServiceResult[Optional[Professional]]:
        def load() -> Optional[Professional]:
            record = self.repository.get_professional_by_id(professional_id)
            if record is None:
                return None
            professional = filter_sensitive_fields(record)
            warn_if_sensitive_fields(professional, "professional detail", enabled=self.privacy_self_check)
            return professional

        return run_guarded("Get professional", load)

    def get_professional_detail(self, professional_id: str) -> ServiceResult[Optional[ProfessionalDetail]]:
        def load() -> Optional[ProfessionalDetail]:
            data = self.repository.get_professional_detail(professional_id)
            if data is None:
                return None
            detail = ProfessionalDetail(
                **filter_sensitive_fields(data.professional).model_dump(),
                completed_tasks=data.completed_tasks,
                reviews=data.reviews,
            )
            warn_if_sensitive_fields(detail, "professional detail", enabled=self.privacy_self_check)
            return detail

        return run_guarded("Get professional detail", load)

    def get_featured_professionals(self, limit: int = FEATURED_LIMIT) -> ServiceResult[List[Professional]]:
        def load() -> List[Professional]:
            featured = self.repository.featured.get_featured_professionals(limit)
            return filter_sensitive_fields_batch(featured)

        return run_guarded("Get featured professionals", load)
