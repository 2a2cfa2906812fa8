from .activity import ActivityLog, activity_label
from .errors import (
    CodeGenerationExhaustedError,
    ConflictError,
    DependencyFailureError,
    InvalidTransitionError,
    NotFoundError,
    SupportError,
    ValidationFailure,
)
from .interventions import InterventionFilters, InterventionService
from .models import ActivityType, TicketDraft, TicketPriority
from .pagination import Page, PageRequest
from .public import PublicSupportGateway, PublicTicketRequest
from .services import SupportServices
from .sla import SLASnapshot, SLAStatus, compute_sla
from .state import TicketStateMachine, TicketStatus
from .ticket_types import TicketTypeService
from .tickets import TicketFilters, TicketService

__all__ = [
    "ActivityLog",
    "ActivityType",
    "CodeGenerationExhaustedError",
    "ConflictError",
    "DependencyFailureError",
    "InterventionFilters",
    "InterventionService",
    "InvalidTransitionError",
    "NotFoundError",
    "Page",
    "PageRequest",
    "PublicSupportGateway",
    "PublicTicketRequest",
    "SLASnapshot",
    "SLAStatus",
    "SupportError",
    "SupportServices",
    "TicketDraft",
    "TicketFilters",
    "TicketPriority",
    "TicketService",
    "TicketStateMachine",
    "TicketStatus",
    "TicketTypeService",
    "ValidationFailure",
    "activity_label",
    "compute_sla",
]
