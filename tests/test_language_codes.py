from __future__ import annotations

import unittest

from mdtranslator import language_codes as lc


class LanguageCodeTests(unittest.TestCase):
    def test_codes_are_normalized(self) -> None:
        self.assertEqual(lc.normalize_language_code("zh_cn"), "zh-CN")
        self.assertEqual(lc.normalize_language_code("PT-br"), "pt-BR")
        self.assertEqual(lc.normalize_language_code(" es "), "es")

    def test_unknown_codes_are_rejected(self) -> None:
        for code in ("klingon", "xx-YY", "", None, 42):
            with self.subTest(code=code):
                self.assertFalse(lc.is_valid_language_code(code))
                self.assertIsNone(lc.get_language_name(code))

    def test_prompt_names(self) -> None:
        self.assertEqual(lc.get_language_name("zh-CN"), "Simplified Chinese")
        self.assertEqual(lc.get_language_name("fr"), "French")


if __name__ == "__main__":
    unittest.main()
