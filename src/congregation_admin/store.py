"""
Application state and the reducer that mutates it.

Every change to the state goes through ``reduce`` with one of the action
types below; the state itself is an immutable snapshot so derived data can be
computed from it without worrying about concurrent edits.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import date
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

from .models import (
    CORE_ROLES,
    GROUP_CATEGORIES,
    Assignment,
    EventOccurrence,
    Family,
    GatheringPattern,
    Group,
    GroupMember,
    Person,
    ProgramItem,
    ServiceRole,
    Task,
)
from .recurrence import project_occurrences, validate_pattern

logger = logging.getLogger(__name__)

ADMIN_ROLES = {"admin", "pastor"}


class StoreError(KeyError):
    pass


@dataclass(frozen=True)
class AppState:
    persons: Tuple[Person, ...] = ()
    families: Tuple[Family, ...] = ()
    groups: Tuple[Group, ...] = ()
    group_members: Tuple[GroupMember, ...] = ()
    service_roles: Tuple[ServiceRole, ...] = ()
    event_occurrences: Tuple[EventOccurrence, ...] = ()
    assignments: Tuple[Assignment, ...] = ()
    program_items: Tuple[ProgramItem, ...] = ()
    tasks: Tuple[Task, ...] = ()

    def person(self, person_id: str) -> Person:
        return _find(self.persons, person_id, "person")

    def group(self, group_id: str) -> Group:
        return _find(self.groups, group_id, "group")

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: [record_to_dict(item) for item in getattr(self, f.name)] for f in fields(self)}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppState":
        return cls(
            persons=tuple(_person_from_dict(item) for item in payload.get("persons", [])),
            families=tuple(Family(**item) for item in payload.get("families", [])),
            groups=tuple(_group_from_dict(item) for item in payload.get("groups", [])),
            group_members=tuple(GroupMember(**item) for item in payload.get("group_members", [])),
            service_roles=tuple(
                ServiceRole(**{**item, "default_instructions": tuple(item.get("default_instructions", ()))})
                for item in payload.get("service_roles", [])
            ),
            event_occurrences=tuple(
                EventOccurrence(**{**item, "date": date.fromisoformat(item["date"])})
                for item in payload.get("event_occurrences", [])
            ),
            assignments=tuple(Assignment(**item) for item in payload.get("assignments", [])),
            program_items=tuple(ProgramItem(**item) for item in payload.get("program_items", [])),
            tasks=tuple(
                Task(**{**item, "deadline": date.fromisoformat(item["deadline"])}) for item in payload.get("tasks", [])
            ),
        )


def _find(items: Sequence[Any], item_id: str, kind: str) -> Any:
    for item in items:
        if item.id == item_id:
            return item
    raise StoreError(f"Unknown {kind}: {item_id}")


def record_to_dict(record: Any) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if isinstance(value, date):
            value = value.isoformat()
        elif isinstance(value, GatheringPattern):
            value = record_to_dict(value)
        elif isinstance(value, tuple):
            value = list(value)
        result[f.name] = value
    return result


def _person_from_dict(item: Dict[str, Any]) -> Person:
    birth_date = item.get("birth_date")
    return Person(**{**item, "birth_date": date.fromisoformat(birth_date) if birth_date else None})


def _group_from_dict(item: Dict[str, Any]) -> Group:
    pattern = item.get("gathering_pattern")
    if pattern:
        pattern = GatheringPattern(**{**pattern, "start_date": date.fromisoformat(pattern["start_date"])})
    return Group(**{**item, "gathering_pattern": pattern})


def new_id() -> str:
    return str(uuid.uuid4())


# ========== Actions ==========

@dataclass(frozen=True)
class AddPerson:
    person: Person


@dataclass(frozen=True)
class UpdatePerson:
    person: Person


@dataclass(frozen=True)
class DeletePerson:
    person_id: str


@dataclass(frozen=True)
class AddFamily:
    family: Family


@dataclass(frozen=True)
class AddGroup:
    group: Group


@dataclass(frozen=True)
class UpdateGroup:
    group_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class DeleteGroup:
    group_id: str


@dataclass(frozen=True)
class SetGatheringPattern:
    group_id: str
    pattern: Optional[GatheringPattern]


@dataclass(frozen=True)
class AddGroupMember:
    group_id: str
    person_id: str
    member_id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class RemoveGroupMember:
    member_id: str


@dataclass(frozen=True)
class ToggleGroupLeader:
    member_id: str


@dataclass(frozen=True)
class SetMemberServiceRole:
    member_id: str
    service_role_id: Optional[str]


@dataclass(frozen=True)
class AddServiceRole:
    role: ServiceRole


@dataclass(frozen=True)
class UpdateServiceRole:
    role_id: str
    name: str
    default_instructions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AddOccurrences:
    occurrences: Tuple[EventOccurrence, ...]


@dataclass(frozen=True)
class SyncGroupCalendar:
    group_id: str
    count: int = 4


@dataclass(frozen=True)
class AddAssignment:
    assignment: Assignment


@dataclass(frozen=True)
class AddProgramItem:
    item: ProgramItem


@dataclass(frozen=True)
class AddTask:
    task: Task


Action = Union[
    AddPerson,
    UpdatePerson,
    DeletePerson,
    AddFamily,
    AddGroup,
    UpdateGroup,
    DeleteGroup,
    SetGatheringPattern,
    AddGroupMember,
    RemoveGroupMember,
    ToggleGroupLeader,
    SetMemberServiceRole,
    AddServiceRole,
    UpdateServiceRole,
    AddOccurrences,
    SyncGroupCalendar,
    AddAssignment,
    AddProgramItem,
    AddTask,
]


# ========== Reducer ==========

def normalize_person(person: Person) -> Person:
    if person.core_role not in CORE_ROLES:
        raise ValueError(f"Unknown core role: {person.core_role!r}")
    if person.core_role in ADMIN_ROLES and not person.is_admin:
        return replace(person, is_admin=True)
    return person


def _replace_by_id(items: Tuple[Any, ...], updated: Any) -> Tuple[Any, ...]:
    _find(items, updated.id, type(updated).__name__.lower())
    return tuple(updated if item.id == updated.id else item for item in items)


def _toggle_leader(state: AppState, member_id: str) -> AppState:
    target = _find(state.group_members, member_id, "group member")
    now_leader = target.role != "leader"
    members = tuple(
        replace(member, role="leader" if now_leader else "member") if member.id == member_id else member
        for member in state.group_members
    )

    def _adjust(person: Person) -> Person:
        if person.id != target.person_id or person.core_role in ADMIN_ROLES:
            return person
        if now_leader:
            return replace(person, core_role="team_leader")
        leads_elsewhere = any(m.person_id == person.id and m.role == "leader" for m in members)
        return replace(person, core_role="team_leader" if leads_elsewhere else "member")

    return replace(state, group_members=members, persons=tuple(_adjust(p) for p in state.persons))


def _sync_calendar(state: AppState, action: SyncGroupCalendar) -> AppState:
    group = state.group(action.group_id)
    if group.gathering_pattern is None:
        raise ValueError(f"Group {group.name!r} has no gathering pattern")
    created = project_occurrences(
        group.gathering_pattern,
        action.count,
        state.event_occurrences,
        title_override=group.name,
    )
    if not created:
        return state
    logger.info("Added %d gatherings for group %s to the calendar", len(created), group.name)
    return replace(state, event_occurrences=state.event_occurrences + tuple(created))


def reduce(state: AppState, action: Action) -> AppState:
    """
    Return the state that results from applying ``action`` to ``state``.

    Raises ``StoreError`` when the action references an unknown id and
    ``ValueError`` when it carries invalid values.
    """

    if isinstance(action, AddPerson):
        return replace(state, persons=state.persons + (normalize_person(action.person),))

    if isinstance(action, UpdatePerson):
        return replace(state, persons=_replace_by_id(state.persons, normalize_person(action.person)))

    if isinstance(action, DeletePerson):
        state.person(action.person_id)
        return replace(
            state,
            persons=tuple(p for p in state.persons if p.id != action.person_id),
            group_members=tuple(m for m in state.group_members if m.person_id != action.person_id),
            assignments=tuple(
                replace(a, person_id=None) if a.person_id == action.person_id else a for a in state.assignments
            ),
            program_items=tuple(
                replace(i, person_id=None) if i.person_id == action.person_id else i for i in state.program_items
            ),
            tasks=tuple(
                replace(t, responsible_id=None) if t.responsible_id == action.person_id else t for t in state.tasks
            ),
        )

    if isinstance(action, AddFamily):
        return replace(state, families=state.families + (action.family,))

    if isinstance(action, AddGroup):
        if not action.group.name.strip():
            raise ValueError("Group name must not be empty")
        if action.group.category not in GROUP_CATEGORIES:
            raise ValueError(f"Unknown group category: {action.group.category!r}")
        return replace(state, groups=state.groups + (action.group,))

    if isinstance(action, UpdateGroup):
        group = state.group(action.group_id)
        changes = {
            key: value
            for key, value in (("name", action.name), ("description", action.description), ("category", action.category))
            if value is not None
        }
        if changes.get("category", group.category) not in GROUP_CATEGORIES:
            raise ValueError(f"Unknown group category: {changes['category']!r}")
        return replace(state, groups=_replace_by_id(state.groups, replace(group, **changes)))

    if isinstance(action, DeleteGroup):
        state.group(action.group_id)
        return replace(
            state,
            groups=tuple(g for g in state.groups if g.id != action.group_id),
            group_members=tuple(m for m in state.group_members if m.group_id != action.group_id),
        )

    if isinstance(action, SetGatheringPattern):
        group = state.group(action.group_id)
        if action.pattern is not None:
            validate_pattern(action.pattern)
        return replace(state, groups=_replace_by_id(state.groups, replace(group, gathering_pattern=action.pattern)))

    if isinstance(action, AddGroupMember):
        state.group(action.group_id)
        state.person(action.person_id)
        if any(m.group_id == action.group_id and m.person_id == action.person_id for m in state.group_members):
            return state
        member = GroupMember(id=action.member_id, group_id=action.group_id, person_id=action.person_id)
        return replace(state, group_members=state.group_members + (member,))

    if isinstance(action, RemoveGroupMember):
        _find(state.group_members, action.member_id, "group member")
        return replace(state, group_members=tuple(m for m in state.group_members if m.id != action.member_id))

    if isinstance(action, ToggleGroupLeader):
        return _toggle_leader(state, action.member_id)

    if isinstance(action, SetMemberServiceRole):
        member = _find(state.group_members, action.member_id, "group member")
        if action.service_role_id is not None:
            _find(state.service_roles, action.service_role_id, "service role")
        updated = replace(member, service_role_id=action.service_role_id)
        return replace(state, group_members=_replace_by_id(state.group_members, updated))

    if isinstance(action, AddServiceRole):
        return replace(state, service_roles=state.service_roles + (action.role,))

    if isinstance(action, UpdateServiceRole):
        role = _find(state.service_roles, action.role_id, "service role")
        instructions = tuple(line.strip() for line in action.default_instructions if line.strip())
        updated = replace(role, name=action.name, default_instructions=instructions)
        return replace(state, service_roles=_replace_by_id(state.service_roles, updated))

    if isinstance(action, AddOccurrences):
        return replace(state, event_occurrences=state.event_occurrences + tuple(action.occurrences))

    if isinstance(action, SyncGroupCalendar):
        return _sync_calendar(state, action)

    if isinstance(action, AddAssignment):
        _find(state.event_occurrences, action.assignment.occurrence_id, "occurrence")
        return replace(state, assignments=state.assignments + (action.assignment,))

    if isinstance(action, AddProgramItem):
        _find(state.event_occurrences, action.item.occurrence_id, "occurrence")
        return replace(state, program_items=state.program_items + (action.item,))

    if isinstance(action, AddTask):
        if not action.task.title.strip():
            raise ValueError("Task title must not be empty")
        if action.task.responsible_id is not None:
            state.person(action.task.responsible_id)
        if action.task.occurrence_id is not None:
            _find(state.event_occurrences, action.task.occurrence_id, "occurrence")
        return replace(state, tasks=state.tasks + (action.task,))

    raise TypeError(f"Unsupported action: {type(action).__name__}")


class StateStore:
    """
    Holds the current ``AppState`` and saves it after every dispatch.

    ``on_change`` receives the new state; the server wires it to
    ``LocalStateStorage.save_state``.
    """

    def __init__(
        self,
        state: Optional[AppState] = None,
        on_change: Optional[Callable[[AppState], None]] = None,
    ) -> None:
        self.state = state or AppState()
        self.on_change = on_change

    def dispatch(self, action: Action) -> AppState:
        new_state = reduce(self.state, action)
        if new_state is not self.state:
            self.state = new_state
            if self.on_change is not None:
                self.on_change(new_state)
        return self.state
