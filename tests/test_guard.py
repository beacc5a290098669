"""Tests for pre-write validation."""

import pytest

from kbindex.errors import (
    DocumentTooLargeError,
    DuplicateTitleError,
    EmptyTitleError,
    InvalidTitleError,
    StoreFullError,
    TitleTooLongError,
    TooManyItemsError,
    ValidationError,
)
from kbindex.guard import SizedEntry, WriteLimits, validate_write


LIMITS = WriteLimits(max_title_length=100, max_item_size=500, max_total_size=1000)


class TestInsert:

    def test_returns_new_total(self):
        entries = [SizedEntry("A", 100), SizedEntry("B", 200)]
        assert validate_write("C", 50, entries, LIMITS) == 350

    def test_empty_title(self):
        with pytest.raises(EmptyTitleError, match="Title cannot be empty"):
            validate_write("   ", 10, [], LIMITS)

    def test_title_too_long(self):
        with pytest.raises(TitleTooLongError) as exc:
            validate_write("x" * 101, 10, [], LIMITS)
        assert exc.value.length == 101

    def test_title_at_limit_is_fine(self):
        assert validate_write("x" * 100, 10, [], LIMITS) == 10

    def test_title_without_usable_characters(self):
        with pytest.raises(InvalidTitleError, match="empty key"):
            validate_write("!!!", 10, [], LIMITS)

    def test_document_too_large(self):
        with pytest.raises(DocumentTooLargeError, match="501 chars"):
            validate_write("Doc", 501, [], LIMITS)

    def test_store_full(self):
        entries = [SizedEntry("A", 500), SizedEntry("B", 400)]
        with pytest.raises(StoreFullError) as exc:
            validate_write("C", 200, entries, LIMITS)
        assert exc.value.current_size == 900
        assert "Remove some documents first" in str(exc.value)

    def test_exactly_full_is_allowed(self):
        entries = [SizedEntry("A", 500), SizedEntry("B", 400)]
        assert validate_write("C", 100, entries, LIMITS) == 1000

    def test_duplicate_case_insensitive(self):
        with pytest.raises(DuplicateTitleError, match="already exists"):
            validate_write("onboarding", 10, [SizedEntry("Onboarding", 5)], LIMITS)

    def test_duplicate_after_sanitizing(self):
        # Both map to the same storage key
        with pytest.raises(DuplicateTitleError):
            validate_write("Q1 Plan!", 10, [SizedEntry("Q1 Plan", 5)], LIMITS)

    def test_all_errors_are_validation_errors(self):
        with pytest.raises(ValidationError):
            validate_write("", 10, [], LIMITS)


class TestOrdering:

    def test_empty_before_size(self):
        with pytest.raises(EmptyTitleError):
            validate_write("", 10_000, [], LIMITS)

    def test_length_before_size(self):
        with pytest.raises(TitleTooLongError):
            validate_write("x" * 200, 10_000, [], LIMITS)

    def test_size_before_duplicate(self):
        with pytest.raises(DocumentTooLargeError):
            validate_write("A", 10_000, [SizedEntry("A", 1)], LIMITS)

    def test_store_full_before_duplicate(self):
        entries = [SizedEntry("A", 500), SizedEntry("B", 450)]
        with pytest.raises(StoreFullError):
            validate_write("A", 100, entries, LIMITS)


class TestUpdate:

    def test_update_uses_size_delta(self):
        entries = [SizedEntry("A", 500), SizedEntry("B", 400)]
        # 900 - 400 + 450 = 950
        assert validate_write("B", 450, entries, LIMITS, replacing="B") == 950

    def test_update_overflow_message(self):
        entries = [SizedEntry("A", 600), SizedEntry("B", 400)]
        with pytest.raises(StoreFullError, match="would exceed limit") as exc:
            validate_write("B", 450, entries, LIMITS, replacing="B")
        assert exc.value.updating
        assert exc.value.new_total == 1050

    def test_update_overflow_by_one(self):
        entries = [SizedEntry("A", 500), SizedEntry("B", 400)]
        limits = WriteLimits(max_title_length=100, max_item_size=500, max_total_size=999)
        with pytest.raises(StoreFullError, match="would exceed limit"):
            validate_write("B", 500, entries, limits, replacing="B")

    def test_replaced_entry_is_not_a_duplicate(self):
        entries = [SizedEntry("Plan", 10)]
        assert validate_write("plan", 20, entries, LIMITS, replacing="Plan") == 20

    def test_rename_onto_other_entry_is_duplicate(self):
        entries = [SizedEntry("Plan", 10), SizedEntry("Other", 10)]
        with pytest.raises(DuplicateTitleError):
            validate_write("Other", 10, entries, LIMITS, replacing="Plan")


class TestItemCount:

    LIMITS = WriteLimits(
        max_title_length=100, max_item_size=5000, max_items=2,
        title_label="Name", item_label="Description",
        entity="initiative", entity_plural="initiatives", store_name="Initiatives",
    )

    def test_too_many_items(self):
        entries = [SizedEntry("A", 1), SizedEntry("B", 1)]
        with pytest.raises(TooManyItemsError, match=r"Too many initiatives \(max 2\)"):
            validate_write("C", 1, entries, self.LIMITS)

    def test_count_not_checked_on_update(self):
        entries = [SizedEntry("A", 1), SizedEntry("B", 1)]
        assert validate_write("A2", 1, entries, self.LIMITS, replacing="A") == 2

    def test_labels_in_messages(self):
        with pytest.raises(EmptyTitleError, match="Name cannot be empty"):
            validate_write("", 1, [], self.LIMITS)
        with pytest.raises(DuplicateTitleError, match='An initiative named "a" already exists'):
            validate_write("a", 1, [SizedEntry("A", 1)], self.LIMITS)
