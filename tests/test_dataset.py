import unittest
from datetime import date

from congregation_admin.configuration import DemographicsConfig
from congregation_admin.dataset import PersonDataset, calculate_age, filter_persons, infer_gender
from congregation_admin.models import DashboardFilters, Person


TODAY = date(2026, 6, 15)


def person(pid, first_name, **kwargs):
    return Person(id=pid, first_name=first_name, last_name="Hansen", **kwargs)


class TestAgeHeuristic(unittest.TestCase):
    def test_birth_date_before_birthday_subtracts_a_year(self):
        p = person("1", "Per", birth_date=date(1980, 9, 1))
        self.assertEqual(calculate_age(p, TODAY), 45)

    def test_birth_date_on_birthday_counts_full_year(self):
        p = person("1", "Per", birth_date=date(1980, 6, 15))
        self.assertEqual(calculate_age(p, TODAY), 46)

    def test_birth_year_only_has_no_month_correction(self):
        p = person("1", "Per", birth_year=1980)
        self.assertEqual(calculate_age(p, TODAY), 46)

    def test_birth_date_wins_over_birth_year(self):
        p = person("1", "Per", birth_year=1970, birth_date=date(1980, 12, 31))
        self.assertEqual(calculate_age(p, TODAY), 45)

    def test_unknown_age_is_none(self):
        self.assertIsNone(calculate_age(person("1", "Per"), TODAY))

    def test_birth_after_today_is_undefined(self):
        self.assertIsNone(calculate_age(person("1", "Per", birth_date=date(2026, 12, 1)), TODAY))
        self.assertIsNone(calculate_age(person("1", "Per", birth_year=2027), TODAY))
        self.assertEqual(calculate_age(person("1", "Per", birth_date=date(2026, 1, 1)), TODAY), 0)


class TestGenderHeuristic(unittest.TestCase):
    def test_allow_list_is_case_insensitive(self):
        self.assertEqual(infer_gender(person("1", "TIRIL")), "female")
        self.assertEqual(infer_gender(person("1", "Vigdis")), "female")

    def test_vowel_suffix_counts_as_female(self):
        self.assertEqual(infer_gender(person("1", "Anna")), "female")
        self.assertEqual(infer_gender(person("1", "Marie")), "female")

    def test_known_false_positive_is_kept(self):
        # "Ove" ends in "e"; the heuristic misclassifies it on purpose.
        self.assertEqual(infer_gender(person("1", "Ove")), "female")

    def test_everything_else_is_male(self):
        self.assertEqual(infer_gender(person("1", "Per")), "male")
        self.assertEqual(infer_gender(person("1", "")), "male")

    def test_injected_locale_data(self):
        cfg = DemographicsConfig(female_first_names=("kim",), female_suffixes=())
        self.assertEqual(infer_gender(person("1", "Kim"), cfg), "female")
        self.assertEqual(infer_gender(person("1", "Anna"), cfg), "male")


class TestPersonFilter(unittest.TestCase):
    def setUp(self):
        self.persons = [
            person("child", "Frida", birth_year=2015),
            person("adult", "Per", birth_date=date(1990, 1, 1)),
            person("senior", "Vigdis", birth_year=1950, is_active=False),
            person("unknown", "Ole"),
            person("edge18", "Jon", birth_date=date(2008, 1, 1)),
            person("edge19", "Knut", birth_date=date(2007, 1, 1)),
        ]

    def ids(self, filters):
        return [p.id for p in filter_persons(self.persons, filters, today=TODAY)]

    def test_all_passes_everyone(self):
        self.assertEqual(len(self.ids(DashboardFilters())), len(self.persons))

    def test_status(self):
        self.assertEqual(self.ids(DashboardFilters(status="inactive")), ["senior"])
        self.assertNotIn("senior", self.ids(DashboardFilters(status="active")))

    def test_gender(self):
        self.assertEqual(self.ids(DashboardFilters(gender="female")), ["child", "senior", "unknown"])
        self.assertEqual(self.ids(DashboardFilters(gender="male")), ["adult", "edge18", "edge19"])

    def test_age_group_bounds_are_inclusive(self):
        self.assertEqual(self.ids(DashboardFilters(age_group="0-18")), ["child", "edge18"])
        self.assertEqual(self.ids(DashboardFilters(age_group="19-64")), ["adult", "edge19"])
        self.assertEqual(self.ids(DashboardFilters(age_group="65+")), ["senior"])

    def test_unknown_age_never_matches_a_bucket(self):
        for bucket in ("0-18", "19-64", "65+"):
            self.assertNotIn("unknown", self.ids(DashboardFilters(age_group=bucket)))

    def test_filter_is_idempotent(self):
        for status in ("all", "active", "inactive"):
            for gender in ("all", "male", "female"):
                for age_group in ("all", "0-18", "19-64", "65+"):
                    filters = DashboardFilters(status=status, gender=gender, age_group=age_group)
                    dataset = PersonDataset(self.persons, today=TODAY)
                    once = dataset.filter(filters)
                    twice = PersonDataset(once, today=TODAY).filter(filters)
                    self.assertEqual(once, twice)
                    for p in once:
                        if gender != "all":
                            self.assertEqual(dataset.gender_of(p), gender)

    def test_rejects_unknown_filter_values(self):
        with self.assertRaises(ValueError):
            DashboardFilters(status="archived")
        with self.assertRaises(ValueError):
            DashboardFilters(age_group="30-40")


if __name__ == "__main__":
    unittest.main(verbosity=2)
