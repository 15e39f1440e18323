"""FastAPI server exposing the congregation admin store and member dashboard."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .configuration import AppConfig, load_config
from .models import DashboardFilters, Family, GatheringPattern, Group, GroupMember, Person, ServiceRole, Task
from .program import person_agenda, person_tasks, program_with_times
from .repository import MemberDataRepository, build_repository_from_env
from .service import DashboardStatsService
from .storage import PersistResult, StorageManager
from .store import (
    Action,
    AddFamily,
    AddGroup,
    AddGroupMember,
    AddPerson,
    AddServiceRole,
    AddTask,
    DeleteGroup,
    DeletePerson,
    SetGatheringPattern,
    StateStore,
    StoreError,
    SyncGroupCalendar,
    ToggleGroupLeader,
    UpdatePerson,
    new_id,
    record_to_dict,
)


class PersonPayload(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    postal_code: Optional[str] = None
    birth_year: Optional[int] = None
    birth_date: Optional[date] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    is_active: bool = True
    is_admin: bool = False
    core_role: Literal["admin", "pastor", "team_leader", "member", "guest"] = "member"
    family_id: Optional[str] = None

    def to_person(self, person_id: str) -> Person:
        return Person(id=person_id, **self.model_dump(exclude={"id"}))


class PersonRecordPayload(PersonPayload):
    id: str


class GroupPayload(BaseModel):
    name: str = Field(..., min_length=1)
    category: Literal["service", "fellowship", "strategy"]
    description: str = ""


class GroupRecordPayload(GroupPayload):
    id: str


class GroupMemberPayload(BaseModel):
    id: str
    group_id: str
    person_id: str
    role: Literal["leader", "member"] = "member"
    service_role_id: Optional[str] = None


class FiltersPayload(BaseModel):
    status: Literal["all", "active", "inactive"] = "all"
    gender: Literal["all", "male", "female"] = "all"
    age_group: Literal["all", "0-18", "19-64", "65+"] = "all"


class StatsRequest(BaseModel):
    filters: FiltersPayload = Field(default_factory=FiltersPayload)
    persons: Optional[List[PersonRecordPayload]] = None
    group_members: Optional[List[GroupMemberPayload]] = None
    groups: Optional[List[GroupRecordPayload]] = None


class StatsResponse(BaseModel):
    data: Dict[str, Any]
    source: str


class FamilyPayload(BaseModel):
    name: str = Field(..., min_length=1)


class MemberRequest(BaseModel):
    person_id: str


class GatheringPatternPayload(BaseModel):
    frequency_type: Literal["weeks", "months"] = "weeks"
    interval: int = Field(2, ge=1)
    day_of_week: int = Field(0, ge=0, le=6)
    start_date: date


class SyncRequest(BaseModel):
    count: Optional[int] = Field(None, ge=0)


class ServiceRolePayload(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    instructions: str = ""


class TaskPayload(BaseModel):
    title: str = Field(..., min_length=1)
    deadline: date
    responsible_id: Optional[str] = None
    occurrence_id: Optional[str] = None


class PersistedRecordResponse(BaseModel):
    record: Dict[str, Any]
    persistence: Literal["ok", "degraded", "failed"]
    reason: Optional[str] = None


def _persisted(result: PersistResult) -> PersistedRecordResponse:
    return PersistedRecordResponse(
        record=record_to_dict(result.record) if result.record is not None else {},
        persistence=result.status,
        reason=result.reason,
    )


def create_app(
    config: Optional[AppConfig] = None,
    repository: Optional[MemberDataRepository] = None,
    storage_manager: Optional[StorageManager] = None,
) -> FastAPI:
    cfg = config or load_config()
    storage = storage_manager or StorageManager(cfg.storage)
    local_cfg = cfg.storage.local_state
    store = StateStore(
        state=storage.local.load_state() if local_cfg.enable else None,
        on_change=storage.local.save_state if local_cfg.enable else None,
    )
    stats_service = DashboardStatsService(demographics=cfg.demographics, geo=cfg.geo)

    app = FastAPI(title="Congregation Admin API", version="0.1.0")
    app.state.store = store
    app.state.storage = storage

    # Allow cross-origin calls from the admin frontend.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _dispatch(action: Action) -> None:
        try:
            store.dispatch(action)
        except StoreError as exc:
            raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    def _load_snapshot(request: StatsRequest) -> Tuple[Sequence[Person], Sequence[GroupMember], Sequence[Group], str]:
        if request.persons is not None:
            return (
                [payload.to_person(payload.id) for payload in request.persons],
                [GroupMember(**payload.model_dump()) for payload in request.group_members or []],
                [Group(**payload.model_dump()) for payload in request.groups or []],
                "inline",
            )
        if repository is not None:
            persons, members, groups = repository.load()
            return persons, members, groups, "database"
        state = store.state
        return state.persons, state.group_members, state.groups, "store"

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/dashboard/stats", response_model=StatsResponse)
    async def dashboard_stats(request: StatsRequest) -> StatsResponse:
        persons, members, groups, source = _load_snapshot(request)
        filters = DashboardFilters(**request.filters.model_dump())
        stats = stats_service.compute(persons, members, groups, filters)
        return StatsResponse(data=stats.as_dict(), source=source)

    @app.get("/state")
    async def get_state() -> Dict[str, Any]:
        return store.state.as_dict()

    @app.post("/persons", response_model=PersistedRecordResponse, status_code=201)
    async def create_person(payload: PersonPayload) -> PersistedRecordResponse:
        person_id = new_id()
        _dispatch(AddPerson(payload.to_person(person_id)))
        return _persisted(storage.save_person(store.state.person(person_id)))

    @app.put("/persons/{person_id}")
    async def update_person(person_id: str, payload: PersonPayload) -> Dict[str, Any]:
        _dispatch(UpdatePerson(payload.to_person(person_id)))
        return record_to_dict(store.state.person(person_id))

    @app.delete("/persons/{person_id}", status_code=204)
    async def delete_person(person_id: str) -> None:
        _dispatch(DeletePerson(person_id))

    @app.get("/persons/{person_id}/agenda")
    async def agenda(person_id: str, upcoming_only: bool = False) -> List[Dict[str, Any]]:
        try:
            entries = person_agenda(store.state, person_id, upcoming_only=upcoming_only)
        except StoreError as exc:
            raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
        return [
            {
                "occurrence": record_to_dict(entry.occurrence),
                "assignments": [record_to_dict(a) for a in entry.assignments],
                "program_items": [record_to_dict(i) for i in entry.program_items],
                "roles": [role.name for role in entry.roles],
            }
            for entry in entries
        ]

    @app.get("/persons/{person_id}/tasks")
    async def tasks_for_person(person_id: str) -> List[Dict[str, Any]]:
        try:
            entries = person_tasks(store.state, person_id)
        except StoreError as exc:
            raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
        return [
            {
                **record_to_dict(entry.task),
                "occurrence": record_to_dict(entry.occurrence) if entry.occurrence is not None else None,
            }
            for entry in entries
        ]

    @app.post("/tasks", status_code=201)
    async def create_task(payload: TaskPayload) -> Dict[str, Any]:
        task = Task(id=new_id(), **payload.model_dump())
        _dispatch(AddTask(task))
        return record_to_dict(task)

    @app.post("/families", response_model=PersistedRecordResponse, status_code=201)
    async def create_family(payload: FamilyPayload) -> PersistedRecordResponse:
        family = Family(id=new_id(), name=payload.name)
        _dispatch(AddFamily(family))
        return _persisted(storage.save_family(family))

    @app.post("/groups", status_code=201)
    async def create_group(payload: GroupPayload) -> Dict[str, Any]:
        group = Group(id=new_id(), name=payload.name.strip(), category=payload.category, description=payload.description)
        _dispatch(AddGroup(group))
        return record_to_dict(group)

    @app.delete("/groups/{group_id}", status_code=204)
    async def delete_group(group_id: str) -> None:
        _dispatch(DeleteGroup(group_id))

    @app.post("/groups/{group_id}/members", status_code=201)
    async def add_member(group_id: str, payload: MemberRequest) -> Dict[str, Any]:
        _dispatch(AddGroupMember(group_id=group_id, person_id=payload.person_id))
        member = next(
            m for m in store.state.group_members if m.group_id == group_id and m.person_id == payload.person_id
        )
        return record_to_dict(member)

    @app.post("/groups/{group_id}/members/{member_id}/leader")
    async def toggle_leader(group_id: str, member_id: str) -> Dict[str, Any]:
        if not any(m.id == member_id and m.group_id == group_id for m in store.state.group_members):
            raise HTTPException(status_code=404, detail=f"Unknown member {member_id} of group {group_id}")
        _dispatch(ToggleGroupLeader(member_id))
        member = next(m for m in store.state.group_members if m.id == member_id)
        return {"member": record_to_dict(member), "person": record_to_dict(store.state.person(member.person_id))}

    @app.put("/groups/{group_id}/gathering-pattern")
    async def set_gathering_pattern(group_id: str, payload: GatheringPatternPayload) -> Dict[str, Any]:
        _dispatch(SetGatheringPattern(group_id, GatheringPattern(**payload.model_dump())))
        return record_to_dict(store.state.group(group_id))

    @app.post("/groups/{group_id}/sync")
    async def sync_calendar(group_id: str, payload: SyncRequest) -> Dict[str, Any]:
        count = cfg.default_sync_count if payload.count is None else payload.count
        known = {occurrence.id for occurrence in store.state.event_occurrences}
        _dispatch(SyncGroupCalendar(group_id=group_id, count=count))
        created = [o for o in store.state.event_occurrences if o.id not in known]
        return {"added": len(created), "occurrences": [record_to_dict(o) for o in created]}

    @app.post("/service-roles", status_code=201)
    async def create_service_role(payload: ServiceRolePayload) -> Dict[str, Any]:
        instructions = tuple(line.strip() for line in payload.instructions.split("\n") if line.strip())
        role = ServiceRole(id=new_id(), name=payload.name, description=payload.description, default_instructions=instructions)
        _dispatch(AddServiceRole(role))
        return record_to_dict(role)

    @app.get("/occurrences/{occurrence_id}/program")
    async def occurrence_program(occurrence_id: str) -> List[Dict[str, Any]]:
        if not any(o.id == occurrence_id for o in store.state.event_occurrences):
            raise HTTPException(status_code=404, detail=f"Unknown occurrence: {occurrence_id}")
        scheduled = program_with_times(store.state.program_items, occurrence_id, cfg.program_base_time)
        return [{**record_to_dict(entry.item), "time": entry.formatted_time} for entry in scheduled]

    return app


app = create_app(repository=build_repository_from_env())
