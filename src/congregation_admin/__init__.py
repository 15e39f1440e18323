"""
Congregation admin backend.

Holds people, families, groups, service roles, event occurrences, assignments
and run-of-show programs in an in-memory store, and derives the member
dashboard statistics and recurring gathering dates from that snapshot.
"""

from .configuration import AppConfig, DemographicsConfig, GeoConfig, StorageConfig, load_config  # noqa: F401
from .dataset import PersonDataset, calculate_age, filter_persons, infer_gender  # noqa: F401
from .models import (  # noqa: F401
    Assignment,
    DashboardFilters,
    DashboardStats,
    DemographicGroup,
    EventOccurrence,
    Family,
    GatheringPattern,
    Group,
    GroupMember,
    MapPoint,
    Person,
    ProgramItem,
    ServiceRole,
    Task,
)
from .program import person_agenda, person_tasks, program_with_times  # noqa: F401
from .recurrence import InvalidGatheringPattern, project_occurrences  # noqa: F401
from .repository import MemberDataRepository, RepositoryConfig, SQLMemberRepository, build_repository_from_env  # noqa: F401
from .service import (  # noqa: F401
    DashboardStatsService,
    DemographicAggregator,
    GeoMapper,
    count_in_service,
    percent_in_service,
)
from .storage import DatabaseStorage, LocalStateStorage, PersistResult, StorageManager  # noqa: F401
from .store import AppState, StateStore, StoreError, reduce  # noqa: F401
