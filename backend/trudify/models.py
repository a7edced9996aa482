from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


TaskStatus = Literal["open", "in_progress", "completed", "cancelled", "expired"]
ApplicationStatus = Literal["pending", "accepted", "rejected", "withdrawn"]
TimingImpact = Literal["low", "medium", "high"]
NotificationType = Literal[
    "task_invitation",
    "application_received",
    "application_accepted",
    "application_rejected",
    "professional_withdrew",
    "task_completed",
]
DeliveryChannel = Literal["in_app", "both"]


class CamelModel(BaseModel):
    """Wire model whose JSON keys are camelCase; snake_case names are accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProfessionalRecord(BaseModel):
    id: str
    slug: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    professional_title: Optional[str] = None
    company_name: Optional[str] = None
    years_experience: Optional[int] = None
    hourly_rate_bgn: Optional[float] = None
    service_categories: list[str] = Field(default_factory=list)
    service_area_cities: list[str] = Field(default_factory=list)
    city: Optional[str] = None
    neighborhood: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    vat_number: Optional[str] = None
    is_phone_verified: bool = False
    is_email_verified: bool = False
    is_vat_verified: bool = False
    tasks_completed: int = 0
    average_rating: Optional[float] = None
    total_reviews: int = 0
    response_time_hours: Optional[float] = None
    is_early_adopter: bool = False
    early_adopter_categories: list[str] = Field(default_factory=list)
    is_top_professional: bool = False
    top_professional_until: Optional[str] = None
    top_professional_tasks_count: int = 0
    is_featured: bool = False
    featured: bool = False
    notification_preferences: Dict[str, Any] = Field(default_factory=dict)
    privacy_settings: Dict[str, Any] = Field(default_factory=dict)
    preferred_contact: Optional[str] = None
    preferred_language: Optional[str] = None
    telegram_id: Optional[int] = None
    last_active_at: Optional[str] = None
    is_banned: bool = False
    ban_reason: Optional[str] = None
    banned_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Professional(BaseModel):
    """Public projection of a professional. Only allow-listed fields exist here."""

    id: str
    slug: Optional[str] = None
    full_name: Optional[str] = None
    professional_title: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    service_categories: list[str] = Field(default_factory=list)
    years_experience: Optional[int] = None
    hourly_rate_bgn: Optional[float] = None
    company_name: Optional[str] = None
    city: Optional[str] = None
    tasks_completed: int = 0
    average_rating: Optional[float] = None
    total_reviews: int = 0
    is_phone_verified: bool = False
    is_email_verified: bool = False
    is_vat_verified: bool = False
    featured: bool = False
    is_early_adopter: bool = False
    early_adopter_categories: list[str] = Field(default_factory=list)
    is_top_professional: bool = False
    top_professional_until: Optional[str] = None
    top_professional_tasks_count: int = 0
    is_featured: bool = False
    created_at: Optional[str] = None


class CompletedTaskItem(BaseModel):
    id: str
    title: str
    category: str
    city: Optional[str] = None
    completed_at: Optional[str] = None
    budget_bgn: float = 0
    complexity: Literal["simple", "standard", "complex"] = "standard"
    client_name: str
    client_avatar_url: Optional[str] = None
    client_verified: bool = False
    client_rating: Optional[int] = None
    testimonial: Optional[str] = None


class ProfessionalReviewItem(BaseModel):
    id: str
    task_title: Optional[str] = None
    rating: int
    comment: str = ""
    quality_rating: Optional[int] = None
    timeliness_rating: Optional[int] = None
    communication_rating: Optional[int] = None
    client_name: str
    client_avatar_url: Optional[str] = None
    created_at: str


class ProfessionalDetail(Professional):
    """Public profile plus completed work and received reviews."""

    completed_tasks: List[CompletedTaskItem] = Field(default_factory=list)
    reviews: List[ProfessionalReviewItem] = Field(default_factory=list)


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool


class PaginatedProfessionalsResponse(CamelModel):
    professionals: List[Professional]
    featured_professionals: List[Professional]
    pagination: Pagination


class FeaturedProfessionalsResponse(BaseModel):
    professionals: List[Professional]


class Task(BaseModel):
    id: str
    title: str
    description: str = ""
    category: str
    subcategory: Optional[str] = None
    city: str
    neighborhood: Optional[str] = None
    budget_min_bgn: Optional[float] = None
    budget_max_bgn: Optional[float] = None
    budget_type: Literal["fixed", "hourly"] = "fixed"
    status: TaskStatus = "open"
    customer_id: str
    selected_professional_id: Optional[str] = None
    applications_count: int = 0
    completion_notes: Optional[str] = None
    completion_photos: list[str] = Field(default_factory=list)
    reviewed_by_customer: bool = False
    created_at: str
    updated_at: str
    completed_at: Optional[str] = None
    completed_by_professional_at: Optional[str] = None
    cancelled_at: Optional[str] = None


class TaskCreateRequest(CamelModel):
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(default="", max_length=5000)
    category: str = Field(min_length=1, max_length=100)
    subcategory: Optional[str] = Field(default=None, max_length=100)
    city: str = Field(min_length=1, max_length=100)
    neighborhood: Optional[str] = Field(default=None, max_length=100)
    budget_min_bgn: Optional[float] = Field(default=None, ge=0)
    budget_max_bgn: Optional[float] = Field(default=None, ge=0)
    budget_type: Literal["fixed", "hourly"] = "fixed"


class ContactInfo(CamelModel):
    method: Literal["phone", "email", "custom"]
    phone: Optional[str] = None
    email: Optional[str] = None
    custom_contact: Optional[str] = None


class Application(BaseModel):
    id: str
    task_id: str
    professional_id: str
    proposed_price_bgn: float
    proposed_timeline: Optional[str] = None
    estimated_duration_hours: Optional[float] = None
    availability_date: Optional[str] = None
    message: Optional[str] = None
    status: ApplicationStatus = "pending"
    rejection_reason: Optional[str] = None
    withdrawal_reason: Optional[str] = None
    shared_contact_info: Optional[ContactInfo] = None
    created_at: str
    updated_at: str
    responded_at: Optional[str] = None
    accepted_at: Optional[str] = None
    withdrawn_at: Optional[str] = None


class ApplicationCreateRequest(CamelModel):
    task_id: str
    proposed_price: float = Field(ge=0, allow_inf_nan=False)
    estimated_duration_hours: Optional[float] = Field(default=None, ge=0)
    timeline: Optional[str] = Field(default=None, max_length=200)
    message: Optional[str] = None
    availability_date: Optional[str] = None


class ApplicationUpdateRequest(CamelModel):
    action: Literal["accept", "reject"]
    contact_info: Optional[ContactInfo] = None
    reason: Optional[str] = Field(default=None, max_length=500)


class ApplicationWithdrawRequest(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = Field(default=None, max_length=2000)


class TaskWithdrawRequest(CamelModel):
    reason: str = Field(default="", max_length=500)
    description: Optional[str] = Field(default=None, max_length=2000)


class MarkCompleteRequest(CamelModel):
    completion_notes: Optional[str] = Field(default=None, max_length=2000)
    completion_photos: list[str] = Field(default_factory=list)


class ApplicationActionResponse(BaseModel):
    success: bool = True
    message: str
    application: Application
    task: Task


class WithdrawalResponse(BaseModel):
    success: bool = True
    message: str
    application: Application
    task: Task
    timing_impact: Optional[TimingImpact] = None


class MarkCompleteResponse(BaseModel):
    success: bool = True
    message: str
    task: Task
    marked_by: Literal["customer", "professional"]


class ProfessionalWithdrawal(BaseModel):
    id: str
    professional_id: str
    task_id: str
    application_id: str
    reason: str
    description: Optional[str] = None
    timing_impact: TimingImpact
    hours_since_acceptance: float
    created_at: str


class Review(BaseModel):
    id: str
    task_id: str
    reviewer_id: str
    reviewee_id: str
    reviewer_type: Literal["customer", "professional"] = "customer"
    rating: int = Field(ge=1, le=5)
    quality_rating: Optional[int] = Field(default=None, ge=1, le=5)
    timeliness_rating: Optional[int] = Field(default=None, ge=1, le=5)
    communication_rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: str = ""
    created_at: str


class ReviewCreateRequest(CamelModel):
    rating: int = Field(ge=1, le=5)
    quality_rating: Optional[int] = Field(default=None, ge=1, le=5)
    timeliness_rating: Optional[int] = Field(default=None, ge=1, le=5)
    communication_rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: str = Field(default="", max_length=2000)


class CanCreateTaskResponse(CamelModel):
    can_create: bool
    block_type: Optional[Literal["soft_block", "hard_block"]] = None
    unreviewed_count: int = 0
    message: Optional[str] = None


class NotificationRecord(BaseModel):
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None
    read: bool = False
    created_at: str


class DeliveryResult(BaseModel):
    success: bool
    skipped: bool = False
    skip_reason: Optional[str] = None
    error: Optional[str] = None
    message_id: Optional[str] = None


class AutoInviteResult(CamelModel):
    invited_count: int = 0
    skipped_count: int = 0
    errors: List[str] = Field(default_factory=list)


class InviteJob(BaseModel):
    id: str
    task_id: str
    status: Literal["pending", "running", "completed", "failed"] = "pending"
    result: Optional[AutoInviteResult] = None
    error: Optional[str] = None
    created_at: str
    finished_at: Optional[str] = None


class ProfessionalInviteRequest(CamelModel):
    task_id: str


class AuthLoginRequest(CamelModel):
    user_id: str
    password: str


class AuthLoginResponse(CamelModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int
    user_id: str


class AuthMeResponse(CamelModel):
    user_id: str
    auth_method: Literal["session", "notification"]


class TaskCreateResponse(CamelModel):
    task: Task
    invite_job: Optional[InviteJob] = None
