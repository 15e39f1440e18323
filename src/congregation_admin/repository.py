from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, Row

from .models import Group, GroupMember, Person

Snapshot = Tuple[Sequence[Person], Sequence[GroupMember], Sequence[Group]]


class MemberDataRepository:
    """
    Interface for loading the data the member dashboard aggregates over.
    """

    def load(self) -> Snapshot:
        raise NotImplementedError


class SQLMemberRepository(MemberDataRepository):
    """
    Load persons, groups and memberships from the relational schema.

    Expected tables:
      - persons(id, first_name, last_name, email, phone, birth_year, birth_date,
        street_address, postal_code, city, is_admin, is_active, core_role, family_id)
      - groups(id, name, category, description)
      - group_members(id, group_id, person_id, role, service_role_id)
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def load(self) -> Snapshot:
        with self.engine.connect() as connection:
            persons = connection.execute(text(
                """
                SELECT id, first_name, last_name, email, phone, birth_year, birth_date,
                       street_address, postal_code, city, is_admin, is_active, core_role, family_id
                FROM persons
                """
            )).fetchall()
            members = connection.execute(text(
                "SELECT id, group_id, person_id, role, service_role_id FROM group_members"
            )).fetchall()
            groups = connection.execute(text(
                "SELECT id, name, category, COALESCE(description, '') AS description FROM groups"
            )).fetchall()
        return (
            tuple(self._row_to_person(row) for row in persons),
            tuple(self._row_to_member(row) for row in members),
            tuple(self._row_to_group(row) for row in groups),
        )

    @staticmethod
    def _row_to_person(row: Row) -> Person:
        birth_date = row.birth_date
        if isinstance(birth_date, str):
            birth_date = date.fromisoformat(birth_date[:10]) if birth_date else None
        return Person(
            id=str(row.id),
            first_name=row.first_name or "",
            last_name=row.last_name or "",
            email=row.email,
            phone=row.phone,
            birth_year=row.birth_year,
            birth_date=birth_date,
            street_address=row.street_address,
            postal_code=row.postal_code,
            city=row.city,
            is_admin=bool(row.is_admin),
            is_active=bool(row.is_active),
            core_role=str(row.core_role or "member"),
            family_id=row.family_id,
        )

    @staticmethod
    def _row_to_member(row: Row) -> GroupMember:
        return GroupMember(
            id=str(row.id),
            group_id=str(row.group_id),
            person_id=str(row.person_id),
            role=str(row.role or "member"),
            service_role_id=row.service_role_id,
        )

    @staticmethod
    def _row_to_group(row: Row) -> Group:
        return Group(id=str(row.id), name=row.name, category=str(row.category), description=row.description)


@dataclass(frozen=True)
class RepositoryConfig:
    database_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        return cls(database_url=os.getenv("CONGREGATION_DASHBOARD_DATABASE_URL"))


def build_repository_from_env(config: Optional[RepositoryConfig] = None) -> Optional[MemberDataRepository]:
    cfg = config or RepositoryConfig.from_env()
    if cfg.database_url:
        engine = create_engine(cfg.database_url)
        return SQLMemberRepository(engine)
    return None
