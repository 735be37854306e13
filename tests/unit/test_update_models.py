"""Unit tests for partial update request models."""

import pytest
from pydantic import ValidationError

from plantvision.domain.task import TaskPriority
from plantvision.domain.update_models import EquipmentUpdate, ProfileUpdate, TaskUpdate


@pytest.mark.unit
class TestPartialUpdates:
    """Tests for explicit nulls and omitted fields in update bodies."""

    @pytest.mark.parametrize(
        ("model", "body"),
        [
            (TaskUpdate, {"title": None}),
            (TaskUpdate, {"priority": None}),
            (TaskUpdate, {"assignedTo": None}),
            (EquipmentUpdate, {"status": None}),
            (EquipmentUpdate, {"specifications": None}),
            (ProfileUpdate, {"firstName": None}),
            (ProfileUpdate, {"lastName": None}),
            (ProfileUpdate, {"preferences": None}),
        ],
    )
    def test_null_for_required_column_rejected(self, model, body):
        with pytest.raises(ValidationError, match="may not be null") as exc_info:
            model.model_validate(body)

        assert exc_info.value.errors()[0]["loc"] == tuple(body)

    def test_nullable_columns_can_be_cleared(self):
        update = TaskUpdate.model_validate({"dueDate": None, "description": None})

        assert update.changes() == {"due_date": None, "description": None}

    def test_omitted_fields_are_not_changes(self):
        update = TaskUpdate.model_validate({"priority": "high"})

        assert update.changes() == {"priority": TaskPriority.HIGH}

    def test_empty_body_rejected(self):
        with pytest.raises(ValidationError, match="At least one field must be provided"):
            ProfileUpdate.model_validate({})
