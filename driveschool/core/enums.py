"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """System roles."""

    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class LessonTypeEnum(StrEnum):
    """Kind of lesson offered in a schedule slot."""

    THEORETICAL = "theoretical"
    PRACTICAL = "practical"
    EXAM_PREP = "exam_prep"


class ScheduleStatusEnum(StrEnum):
    """Coarse schedule label; capacity checks never rely on it."""

    AVAILABLE = "available"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class ExamTypeEnum(StrEnum):
    """Exam kinds a student can request."""

    THEORY = "theory"
    PRACTICAL = "practical"
    ROAD_TEST = "road-test"


class ExamRequestStatusEnum(StrEnum):
    """Exam request workflow status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExamReviewActionEnum(StrEnum):
    """Admin decision on a pending exam request."""

    APPROVE = "approve"
    REJECT = "reject"


class ExamResultEnum(StrEnum):
    """Outcome of a taken exam."""

    PASSED = "passed"
    FAILED = "failed"


class NotificationStatusEnum(StrEnum):
    """Notification delivery status."""

    PENDING = "pending"
    SENT = "sent"
    READ = "read"
    FAILED = "failed"


class OutboxStatusEnum(StrEnum):
    """Outbox event status for integration publishing."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
