"""Tests for the ObjectPermission and RecordPermission bit layouts."""
from __future__ import annotations

import pytest

from aumos_record_security.permissions.bitmask import (
    OBJECT_OPERATIONS,
    RECORD_OPERATIONS,
    ObjectPermission,
    RecordPermission,
)


class TestObjectPermission:
    def test_bit_positions(self) -> None:
        assert ObjectPermission.CREATE == 1
        assert ObjectPermission.READ == 2
        assert ObjectPermission.UPDATE == 4
        assert ObjectPermission.DELETE == 8
        assert ObjectPermission.VIEW_ALL == 16
        assert ObjectPermission.MODIFY_ALL == 32

    def test_operations_in_bit_order(self) -> None:
        assert OBJECT_OPERATIONS == (
            "create",
            "read",
            "update",
            "delete",
            "view_all",
            "modify_all",
        )

    def test_grants_set_bit(self) -> None:
        mask = ObjectPermission.READ | ObjectPermission.CREATE
        assert ObjectPermission.grants(mask, "read") is True
        assert ObjectPermission.grants(mask, "delete") is False

    def test_unknown_operation_never_granted(self) -> None:
        assert ObjectPermission.grants(0b111111, "approve") is False

    @pytest.mark.parametrize("operation", ["create", "view_all", "modify_all"])
    def test_for_operation_round_trip(self, operation: str) -> None:
        flag = ObjectPermission.for_operation(operation)
        assert flag is not None
        assert flag.name.lower() == operation


class TestRecordPermission:
    def test_bit_positions(self) -> None:
        assert RecordPermission.READ == 1
        assert RecordPermission.UPDATE == 2
        assert RecordPermission.DELETE == 4

    def test_operations(self) -> None:
        assert RECORD_OPERATIONS == ("read", "update", "delete")

    def test_create_has_no_record_bit(self) -> None:
        assert RecordPermission.for_operation("create") is None
        assert RecordPermission.grants(0b111, "create") is False
