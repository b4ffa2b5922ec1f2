import asyncio
import json
import os
import tempfile
import time
import unittest
from pathlib import Path
from unittest.mock import patch

from triagedash.services.sessions import SessionService, is_valid_session_id


class _TranscriptStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.sessions_dir = Path(tmpdir.name)
        self.now = time.time()

    def _write_jsonl(self, relative_path: str, lines: list, mtime: float | None = None) -> Path:
        path = self.sessions_dir / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        rendered = [line if isinstance(line, str) else json.dumps(line) for line in lines]
        path.write_text("\n".join(rendered) + "\n", encoding="utf-8")
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path


def _user(text, ts: str = "2026-02-16T10:00:00Z") -> dict:
    return {"type": "user", "timestamp": ts, "message": {"role": "user", "content": text}}


def _assistant(blocks: list, ts: str) -> dict:
    return {"type": "assistant", "timestamp": ts, "message": {"role": "assistant", "content": blocks}}


class SessionCatalogTests(_TranscriptStoreTestCase):
    def test_lists_newest_first_with_previews(self) -> None:
        self._write_jsonl("older.jsonl", [_user("first task")], mtime=self.now - 300)
        self._write_jsonl("newer.jsonl", [{"type": "system"}, _user("second task")], mtime=self.now - 10)
        self._write_jsonl("quiet.jsonl", [_assistant([{"type": "text", "text": "hi"}], "2026-02-16T10:00:00Z")], mtime=self.now - 100)
        (self.sessions_dir / "notes.txt").write_text("not a transcript", encoding="utf-8")

        summaries = SessionService(self.sessions_dir).list_sessions(max_count=10)

        self.assertEqual([s.id for s in summaries], ["newer", "quiet", "older"])
        self.assertEqual(summaries[0].preview, "second task")
        self.assertEqual(summaries[1].preview, "")
        self.assertEqual(summaries[2].preview, "first task")
        self.assertAlmostEqual(summaries[0].lastModifiedTime.timestamp(), self.now - 10, delta=1)

    def test_triage_only_returns_marked_sessions_newest_first(self) -> None:
        for idx in range(5):
            lines = [_user(f"task {idx}")]
            if idx in (1, 3):
                lines.append(_assistant([{"type": "tool_use", "name": "Skill", "input": {"skill": "Triage-Bugs"}}], "2026-02-16T10:00:01Z"))
            self._write_jsonl(f"s{idx}.jsonl", lines, mtime=self.now - (idx + 1) * 60)

        summaries = SessionService(self.sessions_dir).list_sessions(max_count=20, triage_only=True)

        self.assertEqual([s.id for s in summaries], ["s1", "s3"])
        self.assertEqual(summaries[0].preview, "task 1")

    def test_max_count_limits_results(self) -> None:
        for idx in range(4):
            self._write_jsonl(f"s{idx}.jsonl", [_user(f"task {idx}")], mtime=self.now - idx * 60)

        summaries = SessionService(self.sessions_dir).list_sessions(max_count=2)

        self.assertEqual([s.id for s in summaries], ["s0", "s1"])

    def test_triage_filter_only_scans_three_times_max_candidates(self) -> None:
        for idx in range(7):
            lines = [_user("/triage-bug 1") if idx == 6 else _user(f"task {idx}")]
            self._write_jsonl(f"s{idx}.jsonl", lines, mtime=self.now - idx * 60)

        summaries = SessionService(self.sessions_dir).list_sessions(max_count=2, triage_only=True)

        self.assertEqual(summaries, [])

    def test_preview_skips_user_lines_without_text(self) -> None:
        self._write_jsonl(
            "s.jsonl",
            [
                "{not json",
                {"type": "user", "message": {"content": [{"type": "tool_result", "content": "out"}]}},
                _user("real prompt"),
            ],
        )

        summaries = SessionService(self.sessions_dir).list_sessions()

        self.assertEqual(summaries[0].preview, "real prompt")

    def test_unparseable_lines_do_not_drop_the_session(self) -> None:
        self._write_jsonl(
            "s.jsonl",
            [
                '{"type":"user","n":' + "1" * 5000 + "}",
                "[" * 100000 + "]" * 100000,
                _user("real prompt"),
            ],
        )

        summaries = SessionService(self.sessions_dir).list_sessions(max_count=5)

        self.assertEqual([s.id for s in summaries], ["s"])
        self.assertEqual(summaries[0].preview, "real prompt")

    def test_unreadable_file_is_skipped(self) -> None:
        self._write_jsonl("good.jsonl", [_user("ok")], mtime=self.now - 60)
        self._write_jsonl("bad.jsonl", [_user("broken")], mtime=self.now)
        original = SessionService.scan_session_file

        def _scan(path: Path):
            if path.stem == "bad":
                raise PermissionError("denied")
            return original(path)

        with patch.object(SessionService, "scan_session_file", side_effect=_scan):
            summaries = SessionService(self.sessions_dir).list_sessions()

        self.assertEqual([s.id for s in summaries], ["good"])

    def test_missing_or_unset_directory_yields_no_sessions(self) -> None:
        self.assertEqual(SessionService(self.sessions_dir / "missing").list_sessions(), [])
        self.assertEqual(SessionService(None).list_sessions(), [])
        self.assertIsNone(SessionService(None).active_session_id())
        self.assertEqual(SessionService(None).get_session("abc"), [])


class ActiveSessionTests(_TranscriptStoreTestCase):
    def test_recent_file_is_active(self) -> None:
        mtime = self.now - 3600
        self._write_jsonl("stale.jsonl", [_user("a")], mtime=mtime - 600)
        self._write_jsonl("live.jsonl", [_user("b")], mtime=mtime)

        service = SessionService(self.sessions_dir, clock=lambda: mtime + 4 * 60)

        self.assertEqual(service.active_session_id(), "live")

    def test_file_older_than_window_is_not_active(self) -> None:
        mtime = self.now - 3600
        self._write_jsonl("live.jsonl", [_user("b")], mtime=mtime)

        service = SessionService(self.sessions_dir, clock=lambda: mtime + 6 * 60)

        self.assertIsNone(service.active_session_id())

    def test_empty_directory_has_no_active_session(self) -> None:
        self.assertIsNone(SessionService(self.sessions_dir).active_session_id())


class FullSessionReadTests(_TranscriptStoreTestCase):
    def test_reads_and_sorts_primary_and_subagent_messages(self) -> None:
        self._write_jsonl(
            "abc.jsonl",
            [
                _user("fix bug 42", ts="2026-02-16T10:00:00Z"),
                {"type": "system", "timestamp": "2026-02-16T10:00:01Z", "message": {"content": "hidden"}},
                "not json at all",
                _assistant(
                    [
                        {"type": "thinking", "thinking": "look at parser"},
                        {"type": "tool_use", "name": "Task", "input": {"prompt": "investigate"}},
                    ],
                    ts="2026-02-16T10:00:05Z",
                ),
                _assistant([{"type": "text", "text": "Fixed."}], ts="2026-02-16T10:00:30Z"),
            ],
        )
        self._write_jsonl(
            "abc/subagents/agent-b.jsonl",
            [_assistant([{"type": "text", "text": "sub b"}], ts="2026-02-16T10:00:20Z")],
        )
        self._write_jsonl(
            "abc/subagents/agent-a.jsonl",
            [
                _assistant([{"type": "text", "text": "sub a"}], ts="2026-02-16T10:00:10Z"),
                _user([{"type": "tool_result", "content": "grep output"}], ts="2026-02-16T10:00:20Z"),
            ],
        )

        messages = SessionService(self.sessions_dir).get_session("abc")

        self.assertEqual(
            [(m.kind, m.text or m.toolName) for m in messages],
            [
                ("user", "fix bug 42"),
                ("thinking", "look at parser"),
                ("tool_call", "Task"),
                ("text", "sub a"),
                ("tool_result", "grep output"),
                ("text", "sub b"),
                ("text", "Fixed."),
            ],
        )
        timestamps = [m.timestamp for m in messages]
        self.assertEqual(timestamps, sorted(timestamps))

    def test_unparseable_lines_are_skipped_in_full_read(self) -> None:
        self._write_jsonl(
            "abc.jsonl",
            [
                '{"type":"progress","n":' + "1" * 5000 + "}",
                _user("early", ts="0001-01-01T00:00:00+01:00"),
                _user("main", ts="2026-02-16T10:00:00Z"),
            ],
        )
        self._write_jsonl(
            "abc/subagents/agent-a.jsonl",
            ["[" * 100000 + "]" * 100000, _assistant([{"type": "text", "text": "sub"}], ts="2026-02-16T10:00:01Z")],
        )

        messages = SessionService(self.sessions_dir).get_session("abc")

        self.assertEqual(sorted(m.text for m in messages), ["early", "main", "sub"])

    def test_reads_are_idempotent(self) -> None:
        self._write_jsonl(
            "abc.jsonl",
            [
                _user("one", ts="2026-02-16T10:00:00Z"),
                _assistant([{"type": "text", "text": "two"}], ts="2026-02-16T10:00:01Z"),
            ],
        )
        service = SessionService(self.sessions_dir)

        first = [m.model_dump() for m in service.get_session("abc")]
        second = [m.model_dump() for m in service.get_session("abc")]

        self.assertEqual(first, second)

    def test_failing_subagent_file_does_not_block_siblings(self) -> None:
        self._write_jsonl("abc.jsonl", [_user("main", ts="2026-02-16T10:00:00Z")])
        (self.sessions_dir / "abc" / "subagents" / "agent-a.jsonl").mkdir(parents=True)
        self._write_jsonl(
            "abc/subagents/agent-b.jsonl",
            [_assistant([{"type": "text", "text": "from b"}], ts="2026-02-16T10:00:01Z")],
        )

        with self.assertLogs("triagedash.sessions", level="WARNING") as captured:
            messages = SessionService(self.sessions_dir).get_session("abc")

        self.assertEqual([m.text for m in messages], ["main", "from b"])
        self.assertTrue(any("agent-a.jsonl" in line for line in captured.output))

    def test_missing_or_invalid_session_yields_empty_list(self) -> None:
        service = SessionService(self.sessions_dir)

        self.assertEqual(service.get_session("missing"), [])
        self.assertEqual(service.get_session("../etc/passwd"), [])


class SessionIdValidationTests(unittest.TestCase):
    def test_accepts_plain_stems_and_rejects_paths(self) -> None:
        self.assertTrue(is_valid_session_id("0f8c2a7e-1b2c-4d5e-8f90-123456789abc"))
        self.assertTrue(is_valid_session_id("agent-a1b2"))
        for bad in ("", " abc", "a/b", "a\\b", "..", "x..y"):
            with self.subTest(bad=bad):
                self.assertFalse(is_valid_session_id(bad))


class StreamSessionTests(unittest.IsolatedAsyncioTestCase):
    async def test_invalid_id_ends_immediately(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            service = SessionService(Path(tmp), poll_interval=0.01)
            items = [m async for m in service.stream_session("../x", asyncio.Event())]
        self.assertEqual(items, [])


if __name__ == "__main__":
    unittest.main()
