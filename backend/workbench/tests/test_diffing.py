from django.test import TestCase

from workbench.diffing import make_diff, split_lines


class DiffingTests(TestCase):
    def test_before_and_after_are_line_splits(self):
        diff = make_diff("alpha\nbeta", "alpha\ngamma\ndelta")
        self.assertEqual(diff["before"], ["alpha", "beta"])
        self.assertEqual(diff["after"], ["alpha", "gamma", "delta"])

    def test_identical_inputs_produce_equal_sequences(self):
        text = "one\ntwo\nthree"
        diff = make_diff(text, text)
        self.assertEqual(diff["before"], diff["after"])
        self.assertEqual(len(diff["before"]), 3)
        self.assertEqual(diff["changes"], [])
        self.assertEqual(diff["stats"], {"added": 0, "removed": 0})

    def test_blank_input_yields_empty_sequence(self):
        self.assertEqual(split_lines(""), [])
        self.assertEqual(split_lines(None), [])
        diff = make_diff("", "")
        self.assertEqual(diff["before"], [])
        self.assertEqual(diff["after"], [])

    def test_changes_align_an_insertion(self):
        diff = make_diff("a\nb\nc", "a\nx\nb\nc")
        self.assertEqual(diff["changes"], [{"op": "insert", "before": [1, 1], "after": [1, 2]}])
        self.assertEqual(diff["stats"], {"added": 1, "removed": 0})

    def test_changes_report_replacement(self):
        diff = make_diff("title: old", "title: new")
        self.assertEqual(diff["changes"][0]["op"], "replace")
        self.assertEqual(diff["stats"], {"added": 1, "removed": 1})
