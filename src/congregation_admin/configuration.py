"""
Configuration for the congregation admin backend.

The demographic name list and the postal code coordinate table are locale data
(they describe a Norwegian coastal town) and are therefore configuration, not
logic. Swap them out through ``AppConfig`` for another congregation.
"""

from __future__ import annotations

import os
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator


# ========== 1. Demographics ==========

class AgeGroup(BaseModel):
    label: str
    min_age: int = Field(ge=0)
    max_age: Optional[int] = None
    """Inclusive upper bound; ``None`` means open-ended."""

    def contains(self, age: int) -> bool:
        if age < self.min_age:
            return False
        return self.max_age is None or age <= self.max_age


DEFAULT_AGE_GROUPS: List[AgeGroup] = [
    AgeGroup(label="60+", min_age=60, max_age=None),
    AgeGroup(label="40-59", min_age=40, max_age=59),
    AgeGroup(label="20-39", min_age=20, max_age=39),
    AgeGroup(label="0-19", min_age=0, max_age=19),
]

DEFAULT_FEMALE_FIRST_NAMES: Tuple[str, ...] = (
    "lise",
    "vigdis",
    "beate",
    "frida",
    "mille",
    "thea",
    "tiril",
)


class DemographicsConfig(BaseModel):
    female_first_names: Tuple[str, ...] = DEFAULT_FEMALE_FIRST_NAMES
    """Lower-case first names always classified as female by the name heuristic"""

    female_suffixes: Tuple[str, ...] = ("a", "e")
    """First-name endings classified as female by the name heuristic"""

    age_groups: List[AgeGroup] = Field(default_factory=lambda: list(DEFAULT_AGE_GROUPS))
    """Buckets used by the demographic pyramid, in presentation order"""

    @model_validator(mode="after")
    def _check_disjoint(self) -> "DemographicsConfig":
        ordered = sorted(self.age_groups, key=lambda group: group.min_age)
        for lower, upper in zip(ordered, ordered[1:]):
            if lower.max_age is None or lower.max_age >= upper.min_age:
                raise ValueError(f"Age groups {lower.label!r} and {upper.label!r} overlap")
        for group in ordered:
            if group.max_age is not None and group.max_age < group.min_age:
                raise ValueError(f"Age group {group.label!r} has max_age below min_age")
        return self


# ========== 2. Geography ==========

class MapCoordinate(BaseModel):
    x: float
    y: float


def _coords(table: Dict[str, Tuple[int, int]]) -> Dict[str, MapCoordinate]:
    return {code: MapCoordinate(x=x, y=y) for code, (x, y) in table.items()}


# Percentage-based plot positions on the Kristiansand/Lillesand area map.
DEFAULT_POSTAL_CODE_COORDINATES: Dict[str, MapCoordinate] = _coords({
    "4600": (45, 40), "4601": (46, 41), "4602": (44, 39), "4603": (47, 42),
    "4604": (43, 38), "4605": (48, 43), "4608": (42, 45), "4609": (41, 46),
    "4610": (50, 50), "4611": (49, 49), "4612": (51, 51), "4613": (48, 48),
    "4614": (52, 52), "4615": (47, 47), "4616": (53, 53), "4617": (46, 46),
    "4618": (54, 54), "4619": (45, 45), "4620": (50, 50), "4621": (45, 55),
    "4622": (40, 50), "4623": (55, 45), "4624": (50, 40), "4625": (50, 60),
    "4626": (35, 50), "4627": (60, 50), "4628": (50, 35), "4629": (50, 65),
    "4630": (48, 52), "4631": (49, 53), "4632": (47, 51), "4633": (50, 54),
    "4634": (46, 50), "4635": (51, 55), "4636": (45, 49), "4637": (52, 56),
    "4638": (44, 48), "4639": (53, 57), "4640": (43, 47), "4641": (42, 46),
    "4642": (41, 45), "4643": (40, 44), "4644": (39, 43), "4645": (38, 42),
    "4660": (35, 60), "4661": (36, 61), "4662": (34, 59), "4663": (37, 62),
    "4664": (33, 58), "4665": (38, 63), "4670": (30, 65), "4671": (31, 66),
    "4672": (29, 64), "4680": (25, 70), "4681": (26, 71), "4682": (24, 69),
    "4683": (27, 72), "4684": (23, 68), "4685": (28, 73), "4686": (22, 67),
    "4687": (29, 74), "4690": (20, 75), "4691": (21, 76), "4692": (19, 74),
    "4693": (22, 77), "4694": (18, 73), "4695": (23, 78), "4696": (17, 72),
    "4697": (24, 79), "4698": (16, 71), "4699": (25, 80),
})


class GeoConfig(BaseModel):
    coordinates: Dict[str, MapCoordinate] = Field(
        default_factory=lambda: dict(DEFAULT_POSTAL_CODE_COORDINATES)
    )
    """Postal code -> plot coordinate. Codes missing here never appear on the map."""


# ========== 3. Storage ==========

class LocalStateConfig(BaseModel):
    enable: bool = True
    path: str = os.path.expanduser("~/.congregation_admin/state.json")
    pending_path: str = os.path.expanduser("~/.congregation_admin/pending.json")


class RemoteDatabaseConfig(BaseModel):
    enable: bool = False
    url: Optional[str] = None
    persons_table: str = "persons"
    families_table: str = "families"


class StorageConfig(BaseModel):
    local_state: LocalStateConfig = Field(default_factory=LocalStateConfig)
    remote_database: RemoteDatabaseConfig = Field(default_factory=RemoteDatabaseConfig)


# ========== 4. Aggregate ==========

class AppConfig(BaseModel):
    """Configuration for the congregation admin backend."""

    demographics: DemographicsConfig = Field(default_factory=DemographicsConfig)
    geo: GeoConfig = Field(default_factory=GeoConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    program_base_time: str = "11:00"
    """Start time of the main program; run-of-show offsets are relative to it"""

    default_sync_count: int = 4
    """How many occurrences a calendar sync projects when the caller does not say"""


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_config(overrides: Optional[dict] = None) -> AppConfig:
    """
    Build an ``AppConfig`` from defaults, ``overrides`` and the environment.

    Environment variables (optionally from a ``.env`` file) win over
    ``overrides`` which win over the defaults.
    """
    load_dotenv()
    cfg = AppConfig(**(overrides or {}))

    local_cfg = cfg.storage.local_state
    cfg.storage.local_state = LocalStateConfig(
        enable=_env_bool("CONGREGATION_LOCAL_STATE_ENABLE", local_cfg.enable),
        path=os.getenv("CONGREGATION_STATE_PATH", local_cfg.path),
        pending_path=os.getenv("CONGREGATION_PENDING_PATH", local_cfg.pending_path),
    )

    remote_cfg = cfg.storage.remote_database
    cfg.storage.remote_database = RemoteDatabaseConfig(
        enable=_env_bool("CONGREGATION_REMOTE_DB_ENABLE", remote_cfg.enable),
        url=os.getenv("CONGREGATION_DATABASE_URL", remote_cfg.url),
        persons_table=os.getenv("CONGREGATION_PERSONS_TABLE", remote_cfg.persons_table),
        families_table=os.getenv("CONGREGATION_FAMILIES_TABLE", remote_cfg.families_table),
    )

    cfg.program_base_time = os.getenv("CONGREGATION_PROGRAM_BASE_TIME", cfg.program_base_time)
    cfg.default_sync_count = _env_int("CONGREGATION_DEFAULT_SYNC_COUNT", cfg.default_sync_count)
    return cfg
