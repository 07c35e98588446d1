from __future__ import annotations

import locale
import unittest
from unittest import mock

from scripts import list_notes


class ListNotesCommandTest(unittest.TestCase):
    def test_main_uses_user_collation(self) -> None:
        with mock.patch.object(list_notes.locale, "setlocale") as setlocale, mock.patch.object(
            list_notes, "_run", new=mock.AsyncMock()
        ) as run:
            self.assertEqual(list_notes.main(["key.json", "user-1", "--trust-uid"]), 0)
        setlocale.assert_called_once_with(locale.LC_COLLATE, "")
        run.assert_awaited_once()

    def test_unusable_locale_keeps_default_collation(self) -> None:
        with mock.patch.object(list_notes.locale, "setlocale", side_effect=locale.Error("unsupported")):
            list_notes.configure_collation()


if __name__ == "__main__":
    unittest.main()
