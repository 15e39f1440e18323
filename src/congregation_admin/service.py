from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from .configuration import DemographicsConfig, GeoConfig
from .dataset import PersonDataset
from .models import (
    DashboardFilters,
    DashboardStats,
    DemographicGroup,
    Group,
    GroupMember,
    MapPoint,
    Person,
)

SERVICE_CATEGORY = "service"


def count_postal_codes(persons: Sequence[Person]) -> Dict[str, int]:
    counts: Counter = Counter()
    for person in persons:
        code = (person.postal_code or "").strip()
        if code:
            counts[code] += 1
    return dict(counts)


def count_in_service(
    persons: Sequence[Person],
    group_members: Sequence[GroupMember],
    groups: Sequence[Group],
) -> int:
    """
    Number of distinct persons with at least one membership in a service group.
    """

    person_ids = {person.id for person in persons}
    service_group_ids = {group.id for group in groups if group.category == SERVICE_CATEGORY}
    in_service = {
        member.person_id
        for member in group_members
        if member.group_id in service_group_ids and member.person_id in person_ids
    }
    return len(in_service)


def percent_in_service(in_service: int, total: int) -> int:
    if total == 0:
        return 0
    return int(round(in_service / total * 100))


@dataclass
class GeoMapper:
    """
    Places postal code counts on the fixed area map.

    Postal codes missing from the coordinate table are dropped without error.
    This is a known gap of the map view, not a data problem: those persons are
    still counted in ``postal_code_counts`` and every other statistic.
    """

    config: GeoConfig

    def map_points(self, postal_code_counts: Dict[str, int]) -> List[MapPoint]:
        points: List[MapPoint] = []
        for code in sorted(postal_code_counts):
            count = postal_code_counts[code]
            coordinate = self.config.coordinates.get(code)
            if count <= 0 or coordinate is None:
                continue
            points.append(MapPoint(postal_code=code, count=count, x=coordinate.x, y=coordinate.y))
        return points

    @staticmethod
    def max_count(postal_code_counts: Dict[str, int]) -> int:
        return max([1, *postal_code_counts.values()])


class DemographicAggregator:
    def __init__(self, dataset: PersonDataset) -> None:
        self.dataset = dataset

    def aggregate(self, persons: Sequence[Person]) -> Tuple[List[DemographicGroup], int]:
        """
        Bucket persons by the configured age ranges and split by heuristic gender.

        Returns the buckets in configured order together with the largest
        single count across all buckets and both genders (at least 1).
        """

        age_groups = self.dataset.demographics.age_groups
        women: Counter = Counter()
        men: Counter = Counter()
        for _, age, gender in self.dataset.iter_classified(persons):
            if age is None:
                continue
            for group in age_groups:
                if group.contains(age):
                    (women if gender == "female" else men)[group.label] += 1
                    break

        buckets = [
            DemographicGroup(
                label=group.label,
                min_age=group.min_age,
                max_age=group.max_age,
                women=women[group.label],
                men=men[group.label],
            )
            for group in age_groups
        ]
        max_count = max([1, *(max(bucket.women, bucket.men) for bucket in buckets)])
        return buckets, max_count


class DashboardStatsService:
    """
    Computes the member dashboard statistics from an in-memory snapshot.

    Everything is recomputed on every call; the work is linear in the number
    of persons and memberships.
    """

    def __init__(
        self,
        demographics: Optional[DemographicsConfig] = None,
        geo: Optional[GeoConfig] = None,
        today: Optional[date] = None,
    ) -> None:
        self.demographics = demographics or DemographicsConfig()
        self.geo = GeoMapper(geo or GeoConfig())
        self.today = today

    def compute(
        self,
        persons: Optional[Sequence[Person]],
        group_members: Sequence[GroupMember],
        groups: Sequence[Group],
        filters: Optional[DashboardFilters] = None,
    ) -> DashboardStats:
        dataset = PersonDataset(
            persons=persons or (),
            demographics=self.demographics,
            today=self.today or date.today(),
        )
        filtered = dataset.filter(filters or DashboardFilters())

        total = len(filtered)
        active = sum(1 for person in filtered if person.is_active)
        in_service = count_in_service(filtered, group_members, groups)
        percent = percent_in_service(in_service, total)

        postal_code_counts = count_postal_codes(filtered)
        map_points = self.geo.map_points(postal_code_counts)
        max_postal_code_count = self.geo.max_count(postal_code_counts)

        demographic_data, max_count = DemographicAggregator(dataset).aggregate(filtered)

        return DashboardStats(
            total=total,
            active=active,
            in_service=in_service,
            percent_in_service=percent,
            map_points=map_points,
            max_postal_code_count=max_postal_code_count,
            postal_code_counts=postal_code_counts,
            demographic_data=demographic_data,
            max_count=max_count,
        )
