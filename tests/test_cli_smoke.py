"""CLI smoke tests for stable user-facing behavior."""


from pathlib import Path
import subprocess
import tempfile
import unittest
import json
import sys
import os

from tests._gitfixture import GitFixture


def _run(args: list[str], cwd: Path | str | None = None,
         env: dict[str, str] | None = None
        ) -> subprocess.CompletedProcess[str]:
    base = {k: v for k, v in os.environ.items()
            if not k.startswith("GITCOACH_")}
    return subprocess.run(
        [sys.executable, "-m", "gitcoach", *args],
        check=False,
        capture_output=True,
        text=True,
        cwd=cwd,
        env={**base, **(env or {})},
    )


class CliSmokeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.fx   = GitFixture()
        self.home = {"GITCOACH_HOME": str(self.fx.root / "home")}

    def tearDown(self) -> None:
        self.fx.close()

    def test_help_exits_zero(self) -> None:
        cp = _run(["--help"])
        self.assertEqual(cp.returncode, 0, cp.stderr)
        for command in ("status", "check", "commit", "push", "pull",
                        "checkout", "delete-branch", "branch", "merge",
                        "add", "stash", "unstash", "undo", "abort",
                        "resolve", "stats", "show-config", "ask"):
            self.assertIn(command, cp.stdout)
        self.assertIn("--version", cp.stdout)

    def test_check_json_reports_blocked_commit(self) -> None:
        repo = self.fx.init_repo()
        cp   = _run(["check", "commit", "--json", "--plain"], cwd=repo,
               env=self.home)
        self.assertEqual(cp.returncode, 1, cp.stderr)
        payload = json.loads(cp.stdout)
        self.assertEqual(payload["operation"], "commit")
        self.assertFalse(payload["can_proceed"])
        self.assertEqual([w["code"] for w in payload["warnings"]],
            ["GC_NOTHING_STAGED"])
        self.assertTrue((repo / ".git" / "gitcoach" / "events.jsonl"
            ).exists())

    def test_check_leaves_stats_untouched(self) -> None:
        repo  = self.fx.init_repo()
        stats = self.fx.root / "home" / "stats.json"
        self.fx.add_remote(repo, self.fx.init_bare())
        cp    = _run(["check", "force-push", "--json", "--plain"],
                cwd=repo, env=self.home)
        self.assertEqual(cp.returncode, 0, cp.stderr)
        self.assertEqual(json.loads(cp.stdout)["highest"], "critical")
        self.assertFalse(stats.exists())

    def test_check_json_force_push_is_waived(self) -> None:
        repo = self.fx.init_repo()
        self.fx.add_remote(repo, self.fx.init_bare())
        cp   = _run(["check", "force-push", "--json", "--plain"],
               cwd=repo, env=self.home)
        self.assertEqual(cp.returncode, 0, cp.stderr)
        payload = json.loads(cp.stdout)
        self.assertTrue(payload["can_proceed"])
        self.assertEqual(payload["waived"], ["GC_FORCE_PUSH"])

    def test_check_outside_repository(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            cp = _run(["check", "pull", "--json", "--plain"], cwd=tmp,
                 env=self.home)
        self.assertEqual(cp.returncode, 1)
        payload = json.loads(cp.stdout)
        self.assertEqual(payload["warnings"][0]["code"],
            "GC_NOT_A_REPOSITORY")

    def test_stats_json_reads_counters(self) -> None:
        home = self.fx.root / "home"
        home.mkdir()
        (home / "stats.json").write_text(
            json.dumps({"commits": 2, "assistant_commits": 1,
                        "errors_prevented": 5}), encoding="utf-8")
        cp   = _run(["stats", "--json", "--plain"], env=self.home)
        self.assertEqual(cp.returncode, 0, cp.stderr)
        payload = json.loads(cp.stdout)
        self.assertEqual(payload["errors_prevented"], 5)
        self.assertEqual(payload["assistant_share"], 50)
        self.assertEqual(payload["pushes"], 0)

    def test_add_then_undo_round_trip(self) -> None:
        repo = self.fx.init_repo()
        self.fx.write_file(repo, "a.txt", "a\n")
        cp   = _run(["add", "--plain", "--level", "expert"], cwd=repo,
               env=self.home)
        self.assertEqual(cp.returncode, 0, cp.stderr)
        cp   = _run(["commit", "-m", "add a", "--plain", "--level",
                "expert"], cwd=repo, env=self.home)
        self.assertEqual(cp.returncode, 0, cp.stderr)
        cp   = _run(["undo", "--plain", "--level", "expert"], cwd=repo,
               env=self.home)
        self.assertEqual(cp.returncode, 0, cp.stderr)
        log  = self.fx.run(["log", "--format=%s"], cwd=repo).stdout
        self.assertEqual(log.split(), ["init"])
        staged = self.fx.run(["diff", "--cached", "--name-only"],
                 cwd=repo).stdout
        self.assertEqual(staged.strip(), "a.txt")

    def test_check_merge_needs_target(self) -> None:
        repo = self.fx.init_repo()
        cp   = _run(["check", "merge", "--plain"], cwd=repo,
               env=self.home)
        self.assertEqual(cp.returncode, 1)
        self.assertIn("needs a target branch", cp.stderr + cp.stdout)

    def test_status_json(self) -> None:
        repo = self.fx.init_repo()
        self.fx.write_file(repo, "new.txt", "x\n")
        cp   = _run(["status", "--json", "--plain"], cwd=repo,
               env=self.home)
        self.assertEqual(cp.returncode, 0, cp.stderr)
        payload = json.loads(cp.stdout)
        self.assertEqual(payload["current_branch"], "main")
        self.assertEqual(payload["untracked"], ["new.txt"])

    def test_checkout_needs_target(self) -> None:
        cp = _run(["checkout"])
        self.assertEqual(cp.returncode, 2)
        self.assertIn("target", cp.stderr)

    def test_show_config_reports_sources(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            cp = _run(["show-config", "--level", "expert"], cwd=tmp,
                 env={**self.home, "GITCOACH_REMOTE": "upstream"})
        self.assertEqual(cp.returncode, 0, cp.stderr)
        values = json.loads(cp.stdout)["values"]
        self.assertEqual(values["remote"],
            {"value": "upstream", "source": "env"})
        self.assertEqual(values["experience-level"],
            {"value": "expert", "source": "cli"})


if __name__ == "__main__":
    unittest.main()
