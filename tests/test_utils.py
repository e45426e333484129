"""Unit tests for terminal and path helpers."""


from unittest.mock import patch
from pathlib import Path
import tempfile
import unittest

from gitcoach import _constants as const
from gitcoach import utils


class FindRepoTests(unittest.TestCase):
    def test_walks_up_to_git_dir(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root   = Path(tmp)
            nested = root / "a" / "b"
            nested.mkdir(parents=True)
            (root / ".git").mkdir()
            (nested / "f.txt").write_text("x", encoding="utf-8")
            self.assertEqual(utils.find_repo(str(nested)), str(root))
            self.assertEqual(utils.find_repo(str(nested / "f.txt")),
                str(root))

    def test_log_dir_lives_in_git_dir(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / ".git").mkdir()
            log_dir = utils.get_log_dir(str(root))
            self.assertEqual(log_dir, root / ".git" / "gitcoach")
            self.assertTrue(log_dir.is_dir())


class IntentTests(unittest.TestCase):
    def test_assume_yes_skips_prompt(self) -> None:
        with patch.object(const, "ASSUME_YES", True):
            with patch("builtins.input") as ask:
                self.assertTrue(utils.intent("Proceed?"))
        ask.assert_not_called()

    def test_empty_answer_uses_default(self) -> None:
        with patch.object(const, "ASSUME_YES", False), \
             patch.object(const, "NO_TRANSMISSION", True), \
             patch("builtins.input", return_value=""), \
             patch("builtins.print"):
            self.assertTrue(utils.intent("Proceed?", default=True))
            self.assertFalse(utils.intent("Proceed?", default=False))

    def test_answer_matches_condition(self) -> None:
        with patch.object(const, "ASSUME_YES", False), \
             patch.object(const, "NO_TRANSMISSION", True), \
             patch("builtins.input", return_value="Yes"), \
             patch("builtins.print"):
            self.assertTrue(utils.intent("Proceed?"))


class OutputTests(unittest.TestCase):
    def test_quiet_output_prints_nothing(self) -> None:
        with patch("builtins.print") as printed:
            out = utils.Output(quiet=True)
            out.success("done")
            out.muted("note")
            out.raw("raw")
        printed.assert_not_called()


if __name__ == "__main__":
    unittest.main()
