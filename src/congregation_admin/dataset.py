from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterator, List, Optional, Sequence, Tuple

from .configuration import DemographicsConfig
from .models import DashboardFilters, Person

# Inclusive bounds of the filter-bar age buckets. These differ from the
# demographic pyramid ranges in ``DemographicsConfig.age_groups``.
AGE_FILTER_BOUNDS = {
    "0-18": (0, 18),
    "19-64": (19, 64),
    "65+": (65, None),
}


def calculate_age(person: Person, today: Optional[date] = None) -> Optional[int]:
    """
    Derive the person's age in whole years.

    A full ``birth_date`` gives a calendar-accurate age. A bare ``birth_year``
    gives ``today.year - birth_year`` with no month/day correction. Returns
    ``None`` when neither is known or the birth lies after ``today``.
    """

    today = today or date.today()
    if person.birth_date is not None:
        birth = person.birth_date
        age = today.year - birth.year
        if (today.month, today.day) < (birth.month, birth.day):
            age -= 1
    elif person.birth_year:
        age = today.year - person.birth_year
    else:
        return None
    return age if age >= 0 else None


def infer_gender(person: Person, config: Optional[DemographicsConfig] = None) -> str:
    """
    Guess "female" or "male" from the first name.

    A person is "female" when the lower-cased first name is in the configured
    allow-list or ends in one of the configured suffixes ("a", "e"), otherwise
    "male". This is an explicit, named approximation — it has false
    positives/negatives and is not a demographic data field.
    """

    cfg = config or DemographicsConfig()
    first_name = (person.first_name or "").strip().lower()
    if first_name in cfg.female_first_names:
        return "female"
    if first_name.endswith(tuple(cfg.female_suffixes)):
        return "female"
    return "male"


def matches_age_group(person: Person, age_group: str, today: Optional[date] = None) -> bool:
    if age_group == "all":
        return True
    age = calculate_age(person, today)
    if age is None:
        return False
    low, high = AGE_FILTER_BOUNDS[age_group]
    if age < low:
        return False
    return high is None or age <= high


@dataclass
class PersonDataset:
    """
    A snapshot of persons plus the locale data needed to classify them.

    ``today`` pins the reference date for age calculation so a whole
    dashboard render uses one consistent "now".
    """

    persons: Sequence[Person]
    demographics: DemographicsConfig = field(default_factory=DemographicsConfig)
    today: date = field(default_factory=date.today)

    def __post_init__(self) -> None:
        self.persons = tuple(self.persons or ())

    def filter(self, filters: DashboardFilters) -> List[Person]:
        return [person for person in self.persons if self._matches(person, filters)]

    def age_of(self, person: Person) -> Optional[int]:
        return calculate_age(person, self.today)

    def gender_of(self, person: Person) -> str:
        return infer_gender(person, self.demographics)

    def iter_classified(self, persons: Sequence[Person]) -> Iterator[Tuple[Person, Optional[int], str]]:
        """
        Yield ``(person, age, gender)`` so aggregators classify each person once.
        """

        for person in persons:
            yield person, self.age_of(person), self.gender_of(person)

    def _matches(self, person: Person, filters: DashboardFilters) -> bool:
        if filters.status == "active" and not person.is_active:
            return False
        if filters.status == "inactive" and person.is_active:
            return False
        if filters.gender != "all" and self.gender_of(person) != filters.gender:
            return False
        return matches_age_group(person, filters.age_group, self.today)


def filter_persons(
    persons: Sequence[Person],
    filters: DashboardFilters,
    demographics: Optional[DemographicsConfig] = None,
    today: Optional[date] = None,
) -> List[Person]:
    dataset = PersonDataset(
        persons=persons,
        demographics=demographics or DemographicsConfig(),
        today=today or date.today(),
    )
    return dataset.filter(filters)
