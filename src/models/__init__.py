from src.models.complaint import (
    AssignmentOptions,
    Complaint,
    ComplaintCreate,
    ComplaintPage,
    GeoLocation,
    ImageRef,
    InternalNote,
    StatusChange,
    format_complaint_id,
)
from src.models.enums import (
    ComplaintCategory,
    ComplaintPriority,
    ComplaintStatus,
    UserRole,
)
from src.models.report import (
    ActiveAssignment,
    CategoryCount,
    ComplaintStats,
    DashboardOverview,
    MonthlyReport,
    RecentComplaint,
    ReportComplaintRow,
    ReportPeriod,
    ReportSummary,
    TechnicianDetail,
    TechnicianPerformance,
    TechnicianStats,
)
from src.models.technician import (
    Technician,
    TechnicianCreate,
    TechnicianLocation,
    TechnicianPage,
    TechnicianUpdate,
)

__all__ = [
    "ActiveAssignment",
    "AssignmentOptions",
    "CategoryCount",
    "Complaint",
    "ComplaintCategory",
    "ComplaintCreate",
    "ComplaintPage",
    "ComplaintPriority",
    "ComplaintStats",
    "ComplaintStatus",
    "DashboardOverview",
    "GeoLocation",
    "ImageRef",
    "InternalNote",
    "MonthlyReport",
    "RecentComplaint",
    "ReportComplaintRow",
    "ReportPeriod",
    "ReportSummary",
    "StatusChange",
    "Technician",
    "TechnicianCreate",
    "TechnicianDetail",
    "TechnicianLocation",
    "TechnicianPage",
    "TechnicianPerformance",
    "TechnicianStats",
    "TechnicianUpdate",
    "UserRole",
    "format_complaint_id",
]
