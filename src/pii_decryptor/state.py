"""Per-session state: column encryption flags, the key and pagination."""

import math


class ColumnEncryptionState:
    """
    One "values are ciphertext" flag per column position.

    Toggling by header name flips every column carrying that name, so
    duplicate headers behave as one logical column. Toggling by index only
    touches that column.
    """

    def __init__(self, headers=()):
        self.headers = tuple(headers)
        self._flags = [False] * len(self.headers)

    @classmethod
    def for_headers(cls, headers):
        return cls(headers)

    def __len__(self):
        return len(self._flags)

    def is_encrypted(self, index):
        # Ragged rows can carry cells past the last header; those are never flagged.
        if 0 <= index < len(self._flags):
            return self._flags[index]
        return False

    def is_header_encrypted(self, name):
        indices = self._indices_for(name)
        return any(self._flags[i] for i in indices)

    def toggle(self, header):
        """Flip the flag for a header name or a column index."""
        if isinstance(header, int) and not isinstance(header, bool):
            if not 0 <= header < len(self._flags):
                raise IndexError(f"Column index {header} out of range")
            self._flags[header] = not self._flags[header]
            return self._flags[header]

        indices = self._indices_for(header)
        new_value = not any(self._flags[i] for i in indices)
        for i in indices:
            self._flags[i] = new_value
        return new_value

    def snapshot(self):
        """Independent copy, unaffected by later toggles."""
        copy = ColumnEncryptionState(self.headers)
        copy._flags = list(self._flags)
        return copy

    def flags(self):
        return tuple(self._flags)

    def encrypted_indices(self):
        return [i for i, flag in enumerate(self._flags) if flag]

    def as_dict(self):
        """Header name -> flag."""
        return {name: self._flags[i] for i, name in enumerate(self.headers)}

    def _indices_for(self, name):
        indices = [i for i, h in enumerate(self.headers) if h == name]
        if not indices:
            raise KeyError(f"Unknown column: {name}")
        return indices


class EncryptionKey:
    """The user-supplied key string. Editable only while it is not set."""

    def __init__(self, text=""):
        self._text = text
        self.is_set = False

    @property
    def text(self):
        return self._text

    @text.setter
    def text(self, value):
        if self.is_set:
            raise ValueError("Unset the encryption key before editing it")
        self._text = value

    @property
    def effective(self):
        """Key used for decryption, or None while unset."""
        return self._text if self.is_set else None

    def set(self):
        self.is_set = True

    def unset(self):
        self.is_set = False

    def toggle(self):
        self.is_set = not self.is_set
        return self.is_set


class PaginationState:
    """1-indexed current page over a fixed page size."""

    def __init__(self, rows_per_page=10, page_window=1):
        if rows_per_page < 1:
            raise ValueError("rows_per_page must be at least 1")
        self.rows_per_page = rows_per_page
        self.page_window = page_window
        self.current_page = 1

    def reset(self):
        self.current_page = 1

    def total_pages(self, row_count):
        return math.ceil(row_count / self.rows_per_page)

    def go_to(self, page, row_count):
        last = max(self.total_pages(row_count), 1)
        self.current_page = min(max(page, 1), last)
        return self.current_page

    def next(self, row_count):
        return self.go_to(self.current_page + 1, row_count)

    def previous(self, row_count):
        return self.go_to(self.current_page - 1, row_count)

    def entry_range(self, row_count):
        """(first, last, total) entry numbers shown on the current page, 1-based."""
        if row_count == 0:
            return 0, 0, 0
        start = (self.current_page - 1) * self.rows_per_page
        end = min(start + self.rows_per_page, row_count)
        return start + 1, end, row_count

    def visible_page_numbers(self, row_count):
        """
        Page buttons to show: first, last and a window around the current page.

        A None entry marks a gap between two non-consecutive page numbers.
        """
        total = self.total_pages(row_count)
        current = self.current_page
        visible = [
            n
            for n in range(1, total + 1)
            if n in (1, total) or current - self.page_window <= n <= current + self.page_window
        ]

        result = []
        for i, n in enumerate(visible):
            if i > 0 and n - visible[i - 1] > 1:
                result.append(None)
            result.append(n)
        return result
