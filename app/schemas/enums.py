"""Enumerations shared by schemas, services and the lifecycle engine."""

from enum import Enum


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"
    # Legacy value kept for stored records
    RESCHEDULED = "rescheduled"
    CANCELLATION_PENDING = "cancellation_pending"
    RESCHEDULE_PENDING = "reschedule_pending"


TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})

PRE_TERMINAL_STATUSES = frozenset(set(AppointmentStatus) - TERMINAL_STATUSES)

# Statuses counted as an outstanding portal booking
ACTIVE_BOOKING_STATUSES = frozenset(
    {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLATION_PENDING,
        AppointmentStatus.RESCHEDULE_PENDING,
    }
)


class BookingSource(str, Enum):
    """Who created the appointment."""

    STAFF = "staff"
    PATIENT_PORTAL = "patient_portal"


class DoctorType(str, Enum):
    """Clinic specialties."""

    OB_GYNE = "ob-gyne"
    PEDIATRIC = "pediatric"


class PatientType(str, Enum):
    """Patient record type, mirrors the specialty."""

    PEDIATRIC = "pediatric"
    OB_GYNE = "ob-gyne"


class PatientStatus(str, Enum):
    """Patient record lifecycle."""

    NEW = "New"
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class StaffRole(str, Enum):
    """Staff account roles."""

    ADMIN = "admin"
    STAFF = "staff"
    DOCTOR = "doctor"


class ServiceType(str, Enum):
    """Services offered per specialty."""

    # OB-GYNE
    PRENATAL_CHECKUP = "PRENATAL_CHECKUP"
    POSTNATAL_CHECKUP = "POSTNATAL_CHECKUP"
    CHILDBIRTH_CONSULTATION = "CHILDBIRTH_CONSULTATION"
    DILATATION_CURETTAGE = "DILATATION_CURETTAGE"
    FAMILY_PLANNING = "FAMILY_PLANNING"
    PAP_SMEAR = "PAP_SMEAR"
    WOMEN_VACCINATION = "WOMEN_VACCINATION"
    PCOS_CONSULTATION = "PCOS_CONSULTATION"
    STI_CONSULTATION = "STI_CONSULTATION"
    INFERTILITY_CONSULTATION = "INFERTILITY_CONSULTATION"
    MENOPAUSE_CONSULTATION = "MENOPAUSE_CONSULTATION"
    # Pediatric
    NEWBORN_CONSULTATION = "NEWBORN_CONSULTATION"
    WELL_BABY_CHECKUP = "WELL_BABY_CHECKUP"
    WELL_CHILD_CHECKUP = "WELL_CHILD_CHECKUP"
    PEDIATRIC_EVALUATION = "PEDIATRIC_EVALUATION"
    CHILD_VACCINATION = "CHILD_VACCINATION"
    EAR_PIERCING = "EAR_PIERCING"
    PEDIATRIC_REFERRAL = "PEDIATRIC_REFERRAL"


SERVICES_BY_DOCTOR_TYPE: dict[DoctorType, frozenset[ServiceType]] = {
    DoctorType.OB_GYNE: frozenset(
        {
            ServiceType.PRENATAL_CHECKUP,
            ServiceType.POSTNATAL_CHECKUP,
            ServiceType.CHILDBIRTH_CONSULTATION,
            ServiceType.DILATATION_CURETTAGE,
            ServiceType.FAMILY_PLANNING,
            ServiceType.PAP_SMEAR,
            ServiceType.WOMEN_VACCINATION,
            ServiceType.PCOS_CONSULTATION,
            ServiceType.STI_CONSULTATION,
            ServiceType.INFERTILITY_CONSULTATION,
            ServiceType.MENOPAUSE_CONSULTATION,
        }
    ),
    DoctorType.PEDIATRIC: frozenset(
        {
            ServiceType.NEWBORN_CONSULTATION,
            ServiceType.WELL_BABY_CHECKUP,
            ServiceType.WELL_CHILD_CHECKUP,
            ServiceType.PEDIATRIC_EVALUATION,
            ServiceType.CHILD_VACCINATION,
            ServiceType.EAR_PIERCING,
            ServiceType.PEDIATRIC_REFERRAL,
        }
    ),
}
