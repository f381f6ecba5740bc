"""Tests for the store migrations shipped with fs-db."""

import logging
from pathlib import Path

import pytest

from fs_db.detect import read_version
from fs_db.migrations import (
    MigrationError,
    MigrationExtractFromDb,
    MigrationFromV0,
    MigrationRepairTranscripts,
    MigrationRunner,
    MigrationSessionLayout,
    MutationBatch,
)
from fs_db.migrations.migration_1_0_2_nightly_14_extract_from_db import build_session_meta
from fs_db.migrations.migration_1_0_2_nightly_15_from_v0 import convert_segments
from fs_db.migrations.migration_1_0_4_nightly_2_repair_transcripts import plan_transcript_repairs, repair_transcript
from fs_db.migrations.utils import read_snapshot_table
from fs_db.version import Explicit, Fresh, Inferred, LegacyMarker, Version
from tests.store_helpers import read_json, write_json, write_snapshot


def snapshot_files(store_dir: Path) -> dict[Path, bytes]:
    return {p.relative_to(store_dir): p.read_bytes() for p in store_dir.rglob("*") if p.is_file()}


class TestReadSnapshotTable:
    """Tests for reading the legacy db snapshot."""

    def test_reads_documents_with_doc_id(self, tmp_path: Path) -> None:
        """Test that rows come back with their document id."""
        write_snapshot(tmp_path, {"notes": [{"id": "n1"}, {"id": "n2"}]})
        rows = read_snapshot_table(tmp_path, "notes")
        assert rows == [{"id": "n1", "_doc_id": 1}, {"id": "n2", "_doc_id": 2}]

    def test_missing_snapshot_or_table(self, tmp_path: Path) -> None:
        """Test that absent data reads as no rows."""
        assert read_snapshot_table(tmp_path, "notes") == []
        write_snapshot(tmp_path, {"sessions": [{"id": "s1"}]})
        assert read_snapshot_table(tmp_path, "notes") == []

    def test_malformed_snapshot(self, tmp_path: Path) -> None:
        """Test that an undecodable snapshot is a migration error."""
        (tmp_path / "db.json").write_text("{broken")
        with pytest.raises(MigrationError, match="db.json"):
            read_snapshot_table(tmp_path, "notes")


class TestMigrationSessionLayout:
    """Tests for MigrationSessionLayout."""

    def test_applies_to(self) -> None:
        """Test which stores run the session layout migration."""
        migration = MigrationSessionLayout()
        assert migration.applies_to(Inferred(LegacyMarker.V1_0_2_NIGHTLY_EARLY))
        assert migration.applies_to(Inferred(LegacyMarker.V1_0_2_NIGHTLY_LATE))
        assert migration.applies_to(Explicit(Version.parse("1.0.2-nightly.5")))
        assert not migration.applies_to(Inferred(LegacyMarker.V0_0_84))
        assert not migration.applies_to(Inferred(LegacyMarker.V1_0_1))

    def test_renames_folder_and_transcript(self, tmp_path: Path) -> None:
        """Test that a freely named folder moves to its session id."""
        folder = tmp_path / "sessions" / "Meeting 1"
        write_json(folder / "_meta.json", {"id": "s1"})
        write_json(folder / "_transcript.json", {"words": []})

        MigrationSessionLayout().run(tmp_path)

        assert not folder.exists()
        assert read_json(tmp_path / "sessions" / "s1" / "_meta.json") == {"id": "s1"}
        assert (tmp_path / "sessions" / "s1" / "transcript.json").is_file()
        assert not (tmp_path / "sessions" / "s1" / "_transcript.json").exists()

    def test_folder_already_named_by_id(self, tmp_path: Path) -> None:
        """Test that only the transcript is renamed in a correctly named folder."""
        folder = tmp_path / "sessions" / "s1"
        write_json(folder / "_meta.json", {"id": "s1"})
        write_json(folder / "_transcript.json", {"words": []})

        MigrationSessionLayout().run(tmp_path)

        assert sorted(p.name for p in folder.iterdir()) == ["_meta.json", "transcript.json"]

    def test_keeps_existing_transcript(self, tmp_path: Path) -> None:
        """Test that an existing transcript.json is never replaced."""
        folder = tmp_path / "sessions" / "s1"
        write_json(folder / "_meta.json", {"id": "s1"})
        write_json(folder / "_transcript.json", {"words": ["old"]})
        write_json(folder / "transcript.json", {"words": ["new"]})

        MigrationSessionLayout().run(tmp_path)

        assert read_json(folder / "transcript.json") == {"words": ["new"]}
        assert (folder / "_transcript.json").exists()

    def test_id_collisions(self, tmp_path: Path) -> None:
        """Test that a taken session id leaves the folder where it is."""
        sessions = tmp_path / "sessions"
        write_json(sessions / "A" / "_meta.json", {"id": "s1"})
        write_json(sessions / "B" / "_meta.json", {"id": "s1"})
        write_json(sessions / "B" / "_transcript.json", {"words": []})
        write_json(sessions / "C" / "_meta.json", {"id": "s2"})
        write_json(sessions / "s2" / "_meta.json", {"id": "s2"})

        MigrationSessionLayout().run(tmp_path)

        assert sorted(p.name for p in sessions.iterdir()) == ["B", "C", "s1", "s2"]
        assert (sessions / "B" / "transcript.json").is_file()

    def test_unsafe_ids_are_ignored(self, tmp_path: Path) -> None:
        """Test that ids that are not plain folder names are not used."""
        sessions = tmp_path / "sessions"
        write_json(sessions / "A" / "_meta.json", {"id": "../escape"})
        write_json(sessions / "B" / "_meta.json", {"id": ".hidden"})
        write_json(sessions / "C" / "_meta.json", {"id": 42})

        MigrationSessionLayout().run(tmp_path)

        assert sorted(p.name for p in sessions.iterdir()) == ["A", "B", "C"]
        assert not (tmp_path / "escape").exists()

    def test_idempotent(self, tmp_path: Path) -> None:
        """Test that a second run changes nothing."""
        write_json(tmp_path / "sessions" / "Meeting 1" / "_meta.json", {"id": "s1"})
        write_json(tmp_path / "sessions" / "Meeting 1" / "_transcript.json", {"words": []})
        migration = MigrationSessionLayout()

        migration.run(tmp_path)
        first = snapshot_files(tmp_path)
        migration.run(tmp_path)

        assert snapshot_files(tmp_path) == first

    def test_no_sessions_dir(self, tmp_path: Path) -> None:
        """Test a store without a sessions directory."""
        MigrationSessionLayout().run(tmp_path)
        assert list(tmp_path.iterdir()) == []


class TestMigrationExtractFromDb:
    """Tests for MigrationExtractFromDb."""

    def make_store(self, store_dir: Path) -> None:
        write_snapshot(
            store_dir,
            {
                "sessions": [
                    {
                        "id": "s1",
                        "user_id": "u1",
                        "created_at": "2024-01-01T00:00:00Z",
                        "title": "Kickoff",
                        "event_id": "e1",
                        "participants": ["p1"],
                        "words": [{"text": "hello", "start_ms": 0, "end_ms": 400}],
                        "raw_memo": "# Notes",
                    },
                    {"id": "s2", "title": None},
                    {"id": "../evil", "title": "Nope"},
                ],
                "events": [
                    {"id": "e1", "title": "Kickoff", "ignored": True},
                    {"title": "No id"},
                ],
            },
        )

    def test_applies_to(self) -> None:
        """Test that v0 stores are skipped."""
        migration = MigrationExtractFromDb()
        assert not migration.applies_to(Inferred(LegacyMarker.V0_0_84))
        assert migration.applies_to(Inferred(LegacyMarker.V1_0_1))
        assert migration.applies_to(Inferred(LegacyMarker.V1_0_2_NIGHTLY_LATE))

    def test_build_session_meta(self) -> None:
        """Test _meta.json content built from a snapshot row."""
        meta = build_session_meta({"id": "s1", "title": None, "participants": "bad", "extra": 1})
        assert meta == {"id": "s1", "user_id": "", "title": "", "participants": []}

    def test_extracts_sessions(self, tmp_path: Path) -> None:
        """Test that each session row becomes a folder."""
        self.make_store(tmp_path)

        MigrationExtractFromDb().run(tmp_path)

        s1 = tmp_path / "sessions" / "s1"
        assert read_json(s1 / "_meta.json") == {
            "id": "s1",
            "user_id": "u1",
            "created_at": "2024-01-01T00:00:00Z",
            "title": "Kickoff",
            "event_id": "e1",
            "participants": ["p1"],
        }
        assert read_json(s1 / "transcript.json") == {"words": [{"text": "hello", "start_ms": 0, "end_ms": 400}]}
        assert (s1 / "_memo.md").read_text() == "# Notes"

        s2 = tmp_path / "sessions" / "s2"
        assert sorted(p.name for p in s2.iterdir()) == ["_meta.json"]
        assert sorted(p.name for p in (tmp_path / "sessions").iterdir()) == ["s1", "s2"]

    def test_extracts_events(self, tmp_path: Path) -> None:
        """Test that event rows are keyed by id, or by document id without one."""
        self.make_store(tmp_path)

        MigrationExtractFromDb().run(tmp_path)

        events = read_json(tmp_path / "events.json")
        assert events == {"e1": {"title": "Kickoff", "ignored": True}, "2": {"title": "No id"}}

    def test_existing_files_win(self, tmp_path: Path) -> None:
        """Test that files already on disk are never overwritten."""
        self.make_store(tmp_path)
        write_json(tmp_path / "sessions" / "s1" / "_meta.json", {"id": "s1", "title": "Edited"})
        write_json(tmp_path / "events.json", {"e1": {"title": "Edited"}})

        MigrationExtractFromDb().run(tmp_path)

        assert read_json(tmp_path / "sessions" / "s1" / "_meta.json")["title"] == "Edited"
        assert (tmp_path / "sessions" / "s1" / "transcript.json").is_file()
        events = read_json(tmp_path / "events.json")
        assert events["e1"] == {"title": "Edited"}
        assert events["2"] == {"title": "No id"}

    def test_keeps_snapshot(self, tmp_path: Path) -> None:
        """Test that the snapshot itself is left in place."""
        self.make_store(tmp_path)
        before = (tmp_path / "db.json").read_bytes()

        MigrationExtractFromDb().run(tmp_path)

        assert (tmp_path / "db.json").read_bytes() == before

    def test_idempotent(self, tmp_path: Path) -> None:
        """Test that a second run changes nothing."""
        self.make_store(tmp_path)
        migration = MigrationExtractFromDb()

        migration.run(tmp_path)
        first = snapshot_files(tmp_path)
        migration.run(tmp_path)

        assert snapshot_files(tmp_path) == first

    def test_malformed_events_json_fails(self, tmp_path: Path) -> None:
        """Test that an unreadable events.json is kept and nothing is written."""
        self.make_store(tmp_path)
        (tmp_path / "events.json").write_text("{broken", encoding="utf-8")

        with pytest.raises(MigrationError, match="events.json"):
            MigrationExtractFromDb().run(tmp_path)

        assert (tmp_path / "events.json").read_text(encoding="utf-8") == "{broken"
        assert not (tmp_path / "sessions").exists()

    def test_malformed_snapshot_fails(self, tmp_path: Path) -> None:
        """Test that an unreadable snapshot stops the migration."""
        (tmp_path / "db.json").write_text("[[[")
        with pytest.raises(MigrationError):
            MigrationExtractFromDb().run(tmp_path)
        assert not (tmp_path / "sessions").exists()


class TestMigrationFromV0:
    """Tests for MigrationFromV0."""

    def test_applies_only_to_v0(self) -> None:
        """Test that only v0 stores run the import."""
        migration = MigrationFromV0()
        assert migration.applies_to(Inferred(LegacyMarker.V0_0_84))
        assert not migration.applies_to(Inferred(LegacyMarker.V1_0_1))
        assert not migration.applies_to(Explicit(Version.parse("0.0.84")))
        assert not migration.applies_to(Fresh())

    def test_convert_segments(self) -> None:
        """Test converting second-based segments to millisecond words."""
        words = convert_segments(
            [
                {"text": "Hi", "start": 1.5, "end": 2.25, "speaker": "A"},
                {"text": "there", "start": 3},
                {"text": "skip", "start": None},
                {"text": "bool", "start": True},
                "not a segment",
            ]
        )
        assert words == [
            {"text": "Hi", "start_ms": 1500, "end_ms": 2250, "speaker": "A"},
            {"text": "there", "start_ms": 3000, "end_ms": 3000},
        ]

    def test_convert_segments_without_transcript(self) -> None:
        """Test that notes without segments have no transcript."""
        assert convert_segments(None) is None
        assert convert_segments("text") is None
        assert convert_segments([]) == []

    def test_imports_notes(self, tmp_path: Path) -> None:
        """Test that v0 notes become session folders."""
        write_snapshot(
            tmp_path,
            {
                "notes": [
                    {
                        "id": "n1",
                        "title": "Standup",
                        "created_at": "2023-06-01T09:00:00Z",
                        "content": "- shipped it",
                        "transcript": [{"text": "morning", "start": 0.5, "end": 1.0}],
                    },
                    {"id": "n2", "content": ""},
                    {"title": "No id"},
                ]
            },
        )

        MigrationFromV0().run(tmp_path)

        n1 = tmp_path / "sessions" / "n1"
        assert read_json(n1 / "_meta.json") == {
            "id": "n1",
            "user_id": "",
            "created_at": "2023-06-01T09:00:00Z",
            "title": "Standup",
            "participants": [],
        }
        assert read_json(n1 / "transcript.json") == {"words": [{"text": "morning", "start_ms": 500, "end_ms": 1000}]}
        assert (n1 / "_memo.md").read_text() == "- shipped it"

        n2 = tmp_path / "sessions" / "n2"
        assert sorted(p.name for p in n2.iterdir()) == ["_meta.json"]
        assert sorted(p.name for p in (tmp_path / "sessions").iterdir()) == ["n1", "n2"]

    def test_idempotent(self, tmp_path: Path) -> None:
        """Test that a second run changes nothing."""
        write_snapshot(tmp_path, {"notes": [{"id": "n1", "content": "memo"}]})
        migration = MigrationFromV0()

        migration.run(tmp_path)
        first = snapshot_files(tmp_path)
        migration.run(tmp_path)

        assert snapshot_files(tmp_path) == first


class TestMigrationRepairTranscripts:
    """Tests for MigrationRepairTranscripts."""

    def test_wraps_bare_list(self) -> None:
        """Test that a bare word list is wrapped."""
        assert repair_transcript([{"text": "a", "start_ms": 0, "end_ms": 1}]) == {
            "words": [{"text": "a", "start_ms": 0, "end_ms": 1}]
        }

    def test_drops_and_clamps_and_sorts(self) -> None:
        """Test word cleanup."""
        repaired = repair_transcript(
            {
                "language": "en",
                "words": [
                    {"text": "second", "start_ms": 500, "end_ms": 100},
                    {"text": "  ", "start_ms": 10, "end_ms": 20},
                    {"text": "first", "start_ms": 0, "end_ms": 300},
                    {"text": "no start", "end_ms": 20},
                    {"text": "bool", "start_ms": True},
                    {"text": "no end", "start_ms": 900},
                    "junk",
                ],
            }
        )
        assert repaired == {
            "language": "en",
            "words": [
                {"text": "first", "start_ms": 0, "end_ms": 300},
                {"text": "second", "start_ms": 500, "end_ms": 500},
                {"text": "no end", "start_ms": 900, "end_ms": 900},
            ],
        }

    def test_well_formed_is_unchanged(self) -> None:
        """Test that a clean transcript repairs to itself."""
        document = {"words": [{"text": "a", "start_ms": 0, "end_ms": 5}, {"text": "b", "start_ms": 5, "end_ms": 9}]}
        assert repair_transcript(document) == document

    def test_not_a_transcript(self) -> None:
        """Test that unrelated documents are not repaired."""
        assert repair_transcript({"segments": []}) is None
        assert repair_transcript("words") is None
        assert repair_transcript(None) is None

    def test_rewrites_only_changed_files(self, tmp_path: Path) -> None:
        """Test that clean transcripts are not rewritten."""
        clean = tmp_path / "sessions" / "s1" / "transcript.json"
        broken = tmp_path / "sessions" / "s2" / "transcript.json"
        write_json(clean, {"words": [{"text": "a", "start_ms": 0, "end_ms": 5}]})
        write_json(broken, [{"text": "b", "start_ms": 7, "end_ms": 3}])

        batch = MutationBatch()
        assert plan_transcript_repairs(tmp_path, batch) == 1
        batch.commit()

        assert read_json(broken) == {"words": [{"text": "b", "start_ms": 7, "end_ms": 7}]}

    def test_unrecognized_transcript_is_logged(self, tmp_path: Path, caplog) -> None:
        """Test that unknown transcript shapes are left alone with a warning."""
        path = tmp_path / "sessions" / "s1" / "transcript.json"
        write_json(path, {"segments": []})

        with caplog.at_level(logging.WARNING):
            MigrationRepairTranscripts().run(tmp_path)

        assert read_json(path) == {"segments": []}
        assert "unrecognized transcript" in caplog.text

    def test_idempotent(self, tmp_path: Path) -> None:
        """Test that a second run changes nothing."""
        write_json(tmp_path / "sessions" / "s1" / "transcript.json", [{"text": "b", "start_ms": 7}])
        migration = MigrationRepairTranscripts()

        migration.run(tmp_path)
        first = snapshot_files(tmp_path)
        migration.run(tmp_path)

        assert snapshot_files(tmp_path) == first


class TestFullUpgrade:
    """Upgrading legacy stores with the shipped migrations."""

    def test_v0_store(self, tmp_path: Path) -> None:
        """Test upgrading a v0 store to the latest release."""
        store_dir = tmp_path / "store"
        write_snapshot(
            store_dir,
            {"notes": [{"id": "n1", "title": "Old", "content": "memo", "transcript": [{"text": "x", "start": 1}]}]},
        )

        applied = MigrationRunner(store_dir).run("1.0.7")

        assert [str(m.introduced_in) for m in applied] == ["1.0.2-nightly.15", "1.0.4-nightly.2", "1.0.7-nightly.1"]
        assert read_json(store_dir / "sessions" / "n1" / "_meta.json")["title"] == "Old"
        assert read_version(store_dir) == Version.parse("1.0.7")

    def test_v1_0_1_store(self, tmp_path: Path) -> None:
        """Test upgrading a 1.0.1 store through extraction and events sync."""
        store_dir = tmp_path / "store"
        write_snapshot(
            store_dir,
            {
                "sessions": [{"id": "s1", "title": "Sync", "event_id": "e1", "words": [{"text": "hi", "start_ms": 0}]}],
                "events": [{"id": "e1", "title": "Weekly", "tracking_id_event": "t1", "ignored": True}],
            },
        )

        MigrationRunner(store_dir).run("1.0.7")

        meta = read_json(store_dir / "sessions" / "s1" / "_meta.json")
        assert "event_id" not in meta
        assert meta["event"]["tracking_id"] == "t1"
        assert meta["event"]["title"] == "Weekly"
        assert read_json(store_dir / "sessions" / "s1" / "transcript.json") == {
            "words": [{"text": "hi", "start_ms": 0, "end_ms": 0}]
        }
        assert "ignored" not in read_json(store_dir / "events.json")["e1"]
        assert read_version(store_dir) == Version.parse("1.0.7")

    def test_early_nightly_store(self, tmp_path: Path) -> None:
        """Test that an early nightly store is reorganized before extraction."""
        store_dir = tmp_path / "store"
        write_snapshot(store_dir, {"sessions": [{"id": "s1", "title": "From db", "raw_memo": "memo"}]})
        write_json(store_dir / "sessions" / "Meeting" / "_meta.json", {"id": "s1", "title": "From folder"})
        write_json(store_dir / "sessions" / "Meeting" / "_transcript.json", {"words": []})

        applied = MigrationRunner(store_dir).run("1.0.2")

        assert [str(m.introduced_in) for m in applied] == ["1.0.2-nightly.6", "1.0.2-nightly.14"]
        s1 = store_dir / "sessions" / "s1"
        assert read_json(s1 / "_meta.json")["title"] == "From folder"
        assert (s1 / "transcript.json").is_file()
        assert (s1 / "_memo.md").read_text() == "memo"
        assert read_version(store_dir) == Version.parse("1.0.2")
