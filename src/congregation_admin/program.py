from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence

from .models import Assignment, EventOccurrence, ProgramItem, ServiceRole, Task
from .store import AppState


@dataclass(frozen=True)
class ScheduledProgramItem:
    item: ProgramItem
    offset_minutes: int
    formatted_time: str


@dataclass(frozen=True)
class AgendaEntry:
    occurrence: EventOccurrence
    assignments: Sequence[Assignment]
    program_items: Sequence[ProgramItem]
    roles: Sequence[ServiceRole]


@dataclass(frozen=True)
class TaskEntry:
    task: Task
    occurrence: Optional[EventOccurrence]


def _parse_base_time(base_time: str) -> int:
    hours, _, minutes = base_time.partition(":")
    return int(hours) * 60 + int(minutes or 0)


def format_time_from_offset(offset_minutes: int, base_time: str = "11:00") -> str:
    total = _parse_base_time(base_time) + offset_minutes
    return f"{(total // 60) % 24:02d}.{total % 60:02d}"


def program_with_times(
    items: Sequence[ProgramItem],
    occurrence_id: str,
    base_time: str = "11:00",
) -> List[ScheduledProgramItem]:
    """
    Run-of-show for one occurrence with computed start times.

    Items are ordered by ``order``. When the first item has order 0 it is a
    prelude that ends exactly at ``base_time``; every other item starts where
    the previous one ended.
    """

    ordered = sorted((item for item in items if item.occurrence_id == occurrence_id), key=lambda item: item.order)
    scheduled: List[ScheduledProgramItem] = []
    offset = 0
    for index, item in enumerate(ordered):
        if index == 0 and item.order == 0:
            start = -item.duration_minutes
        else:
            start = offset
            offset += item.duration_minutes
        scheduled.append(
            ScheduledProgramItem(
                item=item,
                offset_minutes=start,
                formatted_time=format_time_from_offset(start, base_time),
            )
        )
    return scheduled


def person_agenda(
    state: AppState,
    person_id: str,
    today: Optional[date] = None,
    upcoming_only: bool = False,
) -> List[AgendaEntry]:
    """
    Occurrences the person is involved in, by date, with their duties there.
    """

    state.person(person_id)
    occurrences = {occurrence.id: occurrence for occurrence in state.event_occurrences}
    roles = {role.id: role for role in state.service_roles}
    cutoff = today or date.today()

    assignments: Dict[str, List[Assignment]] = {}
    for assignment in state.assignments:
        if assignment.person_id == person_id and assignment.occurrence_id in occurrences:
            assignments.setdefault(assignment.occurrence_id, []).append(assignment)

    program_items: Dict[str, List[ProgramItem]] = {}
    for item in state.program_items:
        if item.person_id == person_id and item.occurrence_id in occurrences:
            program_items.setdefault(item.occurrence_id, []).append(item)

    entries: List[AgendaEntry] = []
    for occurrence_id in set(assignments) | set(program_items):
        occurrence = occurrences[occurrence_id]
        if upcoming_only and occurrence.date < cutoff:
            continue
        own_assignments = assignments.get(occurrence_id, [])
        own_items = program_items.get(occurrence_id, [])
        role_ids = [a.service_role_id for a in own_assignments] + [
            i.service_role_id for i in own_items if i.service_role_id
        ]
        entries.append(
            AgendaEntry(
                occurrence=occurrence,
                assignments=own_assignments,
                program_items=sorted(own_items, key=lambda item: item.order),
                roles=[roles[role_id] for role_id in dict.fromkeys(role_ids) if role_id in roles],
            )
        )

    entries.sort(key=lambda entry: (entry.occurrence.date, entry.occurrence.id))
    return entries


def person_tasks(state: AppState, person_id: str) -> List[TaskEntry]:
    """Tasks the person is responsible for, earliest deadline first."""

    state.person(person_id)
    occurrences = {occurrence.id: occurrence for occurrence in state.event_occurrences}
    own = sorted(
        (task for task in state.tasks if task.responsible_id == person_id),
        key=lambda task: (task.deadline, task.id),
    )
    return [TaskEntry(task=task, occurrence=occurrences.get(task.occurrence_id)) for task in own]
