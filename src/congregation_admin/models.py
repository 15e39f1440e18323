from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

CORE_ROLES = ("admin", "pastor", "team_leader", "member", "guest")
GROUP_CATEGORIES = ("service", "fellowship", "strategy")
GROUP_ROLES = ("leader", "member")
OCCURRENCE_STATUSES = ("draft", "published")
FREQUENCY_TYPES = ("weeks", "months")

STATUS_FILTERS = ("all", "active", "inactive")
GENDER_FILTERS = ("all", "male", "female")
AGE_GROUP_FILTERS = ("all", "0-18", "19-64", "65+")


@dataclass(frozen=True)
class Person:
    """
    A registered person.

    Age is derived from ``birth_date`` (preferred) or ``birth_year``; there is
    deliberately no gender field, see ``dataset.infer_gender``.
    """

    id: str
    first_name: str
    last_name: str
    is_active: bool = True
    core_role: str = "member"
    is_admin: bool = False
    email: Optional[str] = None
    phone: Optional[str] = None
    postal_code: Optional[str] = None
    birth_year: Optional[int] = None
    birth_date: Optional[date] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    family_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Family:
    id: str
    name: str


@dataclass(frozen=True)
class GatheringPattern:
    """
    Recurrence rule for a group's regular meetings.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).
    """

    frequency_type: str
    interval: int
    day_of_week: int
    start_date: date


@dataclass(frozen=True)
class Group:
    id: str
    name: str
    category: str
    description: str = ""
    gathering_pattern: Optional[GatheringPattern] = None


@dataclass(frozen=True)
class GroupMember:
    id: str
    group_id: str
    person_id: str
    role: str = "member"
    service_role_id: Optional[str] = None


@dataclass(frozen=True)
class ServiceRole:
    id: str
    name: str
    description: str = ""
    default_instructions: Tuple[str, ...] = ()
    is_active: bool = True


@dataclass(frozen=True)
class EventOccurrence:
    id: str
    date: date
    title_override: Optional[str] = None
    template_id: Optional[str] = None
    status: str = "draft"


@dataclass(frozen=True)
class Assignment:
    id: str
    occurrence_id: str
    service_role_id: str
    person_id: Optional[str] = None


@dataclass(frozen=True)
class ProgramItem:
    id: str
    occurrence_id: str
    title: str
    order: int
    duration_minutes: int
    person_id: Optional[str] = None
    service_role_id: Optional[str] = None


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    deadline: date
    responsible_id: Optional[str] = None
    occurrence_id: Optional[str] = None


@dataclass(frozen=True)
class DashboardFilters:
    """
    Filters applied before any dashboard aggregate is computed.

    Every field defaults to ``"all"`` which lets everyone through.
    """

    status: str = "all"
    gender: str = "all"
    age_group: str = "all"

    def __post_init__(self) -> None:
        if self.status not in STATUS_FILTERS:
            raise ValueError(f"Unknown status filter: {self.status!r}")
        if self.gender not in GENDER_FILTERS:
            raise ValueError(f"Unknown gender filter: {self.gender!r}")
        if self.age_group not in AGE_GROUP_FILTERS:
            raise ValueError(f"Unknown age group filter: {self.age_group!r}")


@dataclass(frozen=True)
class DemographicGroup:
    label: str
    min_age: int
    max_age: Optional[int]
    women: int
    men: int

    @property
    def total(self) -> int:
        return self.women + self.men


@dataclass(frozen=True)
class MapPoint:
    postal_code: str
    count: int
    x: float
    y: float


@dataclass(frozen=True)
class DashboardStats:
    total: int
    active: int
    in_service: int
    percent_in_service: int
    map_points: Sequence[MapPoint] = field(default_factory=list)
    max_postal_code_count: int = 1
    postal_code_counts: Dict[str, int] = field(default_factory=dict)
    demographic_data: Sequence[DemographicGroup] = field(default_factory=list)
    max_count: int = 1

    @property
    def is_empty(self) -> bool:
        return self.total == 0

    def as_dict(self) -> Dict[str, Any]:
        """
        Convert the nested dataclasses into a JSON-serialisable structure.

        Keys are camelCase so the frontend can consume the payload as-is.
        """

        def _serialize(obj: Any) -> Any:
            if isinstance(obj, MapPoint):
                return {"postalCode": obj.postal_code, "count": obj.count, "x": obj.x, "y": obj.y}
            if isinstance(obj, DemographicGroup):
                return {
                    "label": obj.label,
                    "min": obj.min_age,
                    "max": obj.max_age,
                    "women": obj.women,
                    "men": obj.men,
                    "total": obj.total,
                }
            if isinstance(obj, Iterable) and not isinstance(obj, (str, bytes, dict)):
                return [_serialize(item) for item in obj]
            return obj

        return {
            "totalPersons": self.total,
            "activePersons": self.active,
            "personsInService": self.in_service,
            "percentInService": self.percent_in_service,
            "postalCodeCounts": dict(self.postal_code_counts),
            "mapPoints": _serialize(self.map_points),
            "maxPostalCodeCount": self.max_postal_code_count,
            "demographicData": _serialize(self.demographic_data),
            "maxCount": self.max_count,
            "isEmpty": self.is_empty,
        }
