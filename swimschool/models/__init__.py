"""Database models for the swim school coverage engine."""

from swimschool.models.attendance import Attendance, AttendanceStatus
from swimschool.models.away_period import AwayPeriod, AwayPeriodStatus
from swimschool.models.class_cancellation import ClassCancellation
from swimschool.models.class_template import ClassTemplate
from swimschool.models.coverage_audit import CoverageAuditReason, EnrolmentCoverageAudit
from swimschool.models.coverage_sweep_state import SWEEP_STATE_ID, CoverageSweepState
from swimschool.models.enrolment import Enrolment, EnrolmentStatus
from swimschool.models.enrolment_adjustment import (
    EnrolmentAdjustment,
    EnrolmentAdjustmentType,
)
from swimschool.models.enrolment_class_assignment import EnrolmentClassAssignment
from swimschool.models.enrolment_credit_event import CreditEventType, EnrolmentCreditEvent
from swimschool.models.enrolment_plan import BillingType, EnrolmentPlan, EnrolmentType
from swimschool.models.family import Family
from swimschool.models.holiday import Holiday
from swimschool.models.invoice import Invoice, InvoiceStatus
from swimschool.models.invoice_line_item import InvoiceLineItem, InvoiceLineItemKind
from swimschool.models.level import Level
from swimschool.models.makeup import (
    MakeupBooking,
    MakeupBookingStatus,
    MakeupCredit,
    MakeupCreditStatus,
)
from swimschool.models.student import Student

__all__ = [
    "Level",
    "Family",
    "Student",
    "ClassTemplate",
    "EnrolmentPlan",
    "BillingType",
    "EnrolmentType",
    "Enrolment",
    "EnrolmentStatus",
    "EnrolmentClassAssignment",
    "Holiday",
    "ClassCancellation",
    "EnrolmentAdjustment",
    "EnrolmentAdjustmentType",
    "EnrolmentCreditEvent",
    "CreditEventType",
    "Invoice",
    "InvoiceStatus",
    "InvoiceLineItem",
    "InvoiceLineItemKind",
    "Attendance",
    "AttendanceStatus",
    "AwayPeriod",
    "AwayPeriodStatus",
    "MakeupCredit",
    "MakeupCreditStatus",
    "MakeupBooking",
    "MakeupBookingStatus",
    "EnrolmentCoverageAudit",
    "CoverageAuditReason",
    "CoverageSweepState",
    "SWEEP_STATE_ID",
]
