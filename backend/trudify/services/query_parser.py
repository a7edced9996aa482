import re
from dataclasses import dataclass
from typing import List, Mapping, Optional

SORT_OPTIONS = ("featured", "rating", "jobs", "newest")
DEFAULT_SORT = "featured"

MIN_PAGE = 1
MAX_PAGE = 1000
DEFAULT_PAGE = 1
MIN_LIMIT = 1
MAX_LIMIT = 50
DEFAULT_LIMIT = 20
MIN_RATING = 1.0
MAX_RATING = 5.0
MOST_ACTIVE_THRESHOLD = 50
MAX_FILTER_LENGTH = 100

_INT_PREFIX = re.compile(r"^\s*[+-]?\d+")
_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass
class ProfessionalQueryParams:
    category: Optional[str] = None
    city: Optional[str] = None
    neighborhood: Optional[str] = None
    min_rating: Optional[float] = None
    min_jobs: Optional[int] = None
    verified: Optional[bool] = None
    most_active: Optional[bool] = None
    sort_by: str = DEFAULT_SORT
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    parsed_page: int = DEFAULT_PAGE - 1

    @property
    def offset(self) -> int:
        return self.parsed_page * self.limit


def _parse_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    match = _INT_PREFIX.match(str(raw))
    return int(match.group()) if match else None


def _parse_float(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    match = _FLOAT_PREFIX.match(str(raw))
    return float(match.group()) if match else None


def _parse_flag(raw: Optional[str]) -> Optional[bool]:
    if raw in ("true", "1"):
        return True
    return None


def _clean(raw: Optional[str], *, lower: bool = False) -> Optional[str]:
    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None
    return value.lower() if lower else value


def parse_query_params(raw: Mapping[str, Optional[str]]) -> ProfessionalQueryParams:
    """Turn raw query-string values into typed params. Never raises; bad values fall back to defaults."""
    params = ProfessionalQueryParams()

    params.category = _clean(raw.get("category"), lower=True)
    params.city = _clean(raw.get("city"))
    params.neighborhood = _clean(raw.get("neighborhood"))

    rating = _parse_float(raw.get("minRating"))
    if rating is not None and MIN_RATING <= rating <= MAX_RATING:
        params.min_rating = rating

    jobs = _parse_int(raw.get("minJobs"))
    if jobs is not None and jobs >= 0:
        params.min_jobs = jobs

    params.verified = _parse_flag(raw.get("verified"))
    params.most_active = _parse_flag(raw.get("mostActive"))

    sort_by = raw.get("sortBy")
    if sort_by in SORT_OPTIONS:
        params.sort_by = sort_by

    page = _parse_int(raw.get("page") or str(DEFAULT_PAGE))
    if page is None or page < MIN_PAGE:
        page = DEFAULT_PAGE
    params.page = min(page, MAX_PAGE)
    params.parsed_page = params.page - 1

    limit = _parse_int(raw.get("limit") or str(DEFAULT_LIMIT))
    if limit is None or limit < MIN_LIMIT:
        limit = DEFAULT_LIMIT
    params.limit = min(limit, MAX_LIMIT)

    return params


def validate_query_params(params: ProfessionalQueryParams) -> List[str]:
    errors: List[str] = []
    if params.min_rating is not None and not MIN_RATING <= params.min_rating <= MAX_RATING:
        errors.append(f"minRating must be between {MIN_RATING:g} and {MAX_RATING:g}")
    if params.min_jobs is not None and params.min_jobs < 0:
        errors.append("minJobs must be non-negative")
    if not MIN_PAGE <= params.page <= MAX_PAGE:
        errors.append(f"page must be between {MIN_PAGE} and {MAX_PAGE}")
    if not MIN_LIMIT <= params.limit <= MAX_LIMIT:
        errors.append(f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}")
    if params.sort_by not in SORT_OPTIONS:
        errors.append(f"sortBy must be one of: {', '.join(SORT_OPTIONS)}")
    for name in ("category", "city", "neighborhood"):
        value = getattr(params, name)
        if value is not None and len(value) > MAX_FILTER_LENGTH:
            errors.append(f"{name} is too long (max {MAX_FILTER_LENGTH} characters)")
    return errors


def stringify_query_params(params: ProfessionalQueryParams) -> str:
    parts = []
    for name in ("category", "city", "neighborhood", "min_rating", "min_jobs", "verified", "most_active"):
        value = getattr(params, name)
        if value is not None:
            parts.append(f"{name}={value}")
    parts.append(f"sort_by={params.sort_by}")
    parts.append(f"page={params.page}")
    parts.append(f"limit={params.limit}")
    return ", ".join(parts)
