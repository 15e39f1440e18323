import json
import tempfile
import unittest
from datetime import date
from pathlib import Path

from sqlalchemy import create_engine, select, text
from sqlalchemy.exc import OperationalError

from congregation_admin.configuration import LocalStateConfig, RemoteDatabaseConfig, StorageConfig
from congregation_admin.models import Family, Group, Person
from congregation_admin.repository import SQLMemberRepository
from congregation_admin.storage import DatabaseStorage, LocalStateStorage, StorageManager
from congregation_admin.store import AppState


class FailingRemote:
    def save_person(self, person):
        raise OperationalError("INSERT INTO persons", {}, Exception("connection refused"))

    def save_family(self, family):
        raise OperationalError("INSERT INTO families", {}, Exception("connection refused"))


class StorageTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.local_cfg = LocalStateConfig(
            path=str(self.tmp / "state.json"),
            pending_path=str(self.tmp / "pending.json"),
        )

    def tearDown(self):
        self._tmp.cleanup()

    def storage_config(self, remote_enabled):
        return StorageConfig(
            local_state=self.local_cfg,
            remote_database=RemoteDatabaseConfig(enable=remote_enabled, url=f"sqlite:///{self.tmp / 'remote.db'}"),
        )


class TestLocalStateStorage(StorageTestCase):
    def test_save_and_load_state(self):
        storage = LocalStateStorage(self.local_cfg)
        state = AppState(
            persons=(Person(id="p", first_name="Thea", last_name="Moe", birth_date=date(2001, 5, 17)),),
            groups=(Group(id="g", name="Barnekor", category="service"),),
        )
        storage.save_state(state)
        self.assertEqual(storage.load_state(), state)

    def test_missing_file_gives_empty_state(self):
        self.assertEqual(LocalStateStorage(self.local_cfg).load_state(), AppState())

    def test_corrupt_file_gives_empty_state(self):
        Path(self.local_cfg.path).write_text("{not json", encoding="utf-8")
        with self.assertLogs("congregation_admin.storage", level="WARNING"):
            self.assertEqual(LocalStateStorage(self.local_cfg).load_state(), AppState())

    def test_unreadable_file_survives_next_save(self):
        original = json.dumps({"state": {"persons": [{"id": "p", "first_name": "Lise", "last_name": "Moe", "nickname": "L"}]}})
        Path(self.local_cfg.path).write_text(original, encoding="utf-8")
        storage = LocalStateStorage(self.local_cfg)
        with self.assertLogs("congregation_admin.storage", level="WARNING"):
            state = storage.load_state()
        self.assertEqual(state, AppState())

        storage.save_state(AppState(persons=(Person(id="q", first_name="Per", last_name="Moe"),)))

        backups = list(Path(self.local_cfg.path).parent.glob("state.corrupt-*.json"))
        self.assertEqual(len(backups), 1)
        self.assertEqual(backups[0].read_text(encoding="utf-8"), original)
        self.assertEqual([p.first_name for p in storage.load_state().persons], ["Per"])


class TestStorageManager(StorageTestCase):
    def setUp(self):
        super().setUp()
        self.person = Person(id="p1", first_name="Frida", last_name="Moe", postal_code="4610")

    def test_remote_disabled_is_ok(self):
        result = StorageManager(self.storage_config(False)).save_person(self.person)
        self.assertEqual(result.status, "ok")
        self.assertIs(result.record, self.person)

    def test_remote_write(self):
        manager = StorageManager(self.storage_config(True))
        self.assertEqual(manager.save_person(self.person).status, "ok")
        self.assertEqual(manager.save_family(Family(id="f1", name="Moe")).status, "ok")

        remote = manager._get_remote()
        with remote.engine.connect() as connection:
            rows = connection.execute(select(remote.persons.c.id, remote.persons.c.postal_code)).fetchall()
        self.assertEqual([tuple(row) for row in rows], [("p1", "4610")])

    def test_remote_failure_degrades_and_queues(self):
        manager = StorageManager(self.storage_config(True), remote=FailingRemote())
        with self.assertLogs("congregation_admin.storage", level="WARNING"):
            result = manager.save_person(self.person)

        self.assertEqual(result.status, "degraded")
        self.assertIs(result.record, self.person)
        self.assertIn("connection refused", result.reason)
        queued = json.loads(Path(self.local_cfg.pending_path).read_text(encoding="utf-8"))
        self.assertEqual(queued[0]["kind"], "person")
        self.assertEqual(queued[0]["record"]["id"], "p1")

    def test_failure_of_local_queue_reports_failed(self):
        blocker = self.tmp / "blocker"
        blocker.write_text("", encoding="utf-8")
        self.local_cfg = LocalStateConfig(path=str(self.tmp / "state.json"), pending_path=str(blocker / "pending.json"))
        manager = StorageManager(self.storage_config(True), remote=FailingRemote())
        with self.assertLogs("congregation_admin.storage", level="WARNING"):
            result = manager.save_family(Family(id="f1", name="Moe"))
        self.assertEqual(result.status, "failed")
        self.assertEqual(result.record, Family(id="f1", name="Moe"))

    def test_flush_pending_replays_queue(self):
        failing = StorageManager(self.storage_config(True), remote=FailingRemote())
        with self.assertLogs("congregation_admin.storage", level="WARNING"):
            failing.save_person(Person(id="p2", first_name="Ole", last_name="Moe", birth_date=date(1990, 1, 2)))
            failing.save_family(Family(id="f2", name="Moe"))

        recovered = StorageManager(self.storage_config(True))
        self.assertEqual(recovered.flush_pending(), 2)
        self.assertEqual(recovered.local.load_pending(), [])
        self.assertEqual(recovered.flush_pending(), 0)


class TestSQLMemberRepository(StorageTestCase):
    def test_load_snapshot(self):
        engine = create_engine(f"sqlite:///{self.tmp / 'members.db'}")
        storage = DatabaseStorage(RemoteDatabaseConfig(), engine=engine)
        storage.save_person(Person(id="p1", first_name="Lise", last_name="Moe", birth_date=date(1985, 3, 4)))
        with engine.begin() as connection:
            connection.execute(text("CREATE TABLE groups (id TEXT, name TEXT, category TEXT, description TEXT)"))
            connection.execute(text(
                "CREATE TABLE group_members (id TEXT, group_id TEXT, person_id TEXT, role TEXT, service_role_id TEXT)"
            ))
            connection.execute(text("INSERT INTO groups VALUES ('g1', 'Lydteam', 'service', NULL)"))
            connection.execute(text("INSERT INTO group_members VALUES ('m1', 'g1', 'p1', 'leader', NULL)"))

        persons, members, groups = SQLMemberRepository(engine).load()

        self.assertEqual(persons[0].birth_date, date(1985, 3, 4))
        self.assertTrue(persons[0].is_active)
        self.assertEqual(members[0].role, "leader")
        self.assertEqual(groups[0], Group(id="g1", name="Lydteam", category="service", description=""))


if __name__ == "__main__":
    unittest.main(verbosity=2)
