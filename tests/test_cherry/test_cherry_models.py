"""Unit tests for cherry models (tinyapp.cherry.models).

Tests cover:
- CherryRequest defaults, camelCase input, validation
- CherrySpec size/commands validation, immutability, camelCase output
- CherryBuildResult response shape
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from tinyapp.cherry.models import CherryBuildResult, CherryRequest, CherrySpec


class TestCherryRequest:
    @pytest.mark.unit
    def test_defaults(self):
        request = CherryRequest(description="  A habit tracker  ")
        assert request.description == "A habit tracker"
        assert request.category == "productivity"
        assert request.stack == "go-gin"
        assert not (request.include_database or request.include_sync or request.include_auth)

    @pytest.mark.unit
    def test_camel_case_input(self):
        request = CherryRequest.model_validate(
            {
                "description": "Notes",
                "category": "Creative",
                "stack": "static",
                "includeDatabase": True,
                "includeAuth": True,
            }
        )
        assert request.category == "creative"
        assert request.stack == "static-html"
        assert request.include_database and request.include_auth

    @pytest.mark.unit
    @pytest.mark.parametrize("description", ["", "   "])
    def test_blank_description(self, description):
        with pytest.raises(ValidationError, match="Description is required"):
            CherryRequest(description=description)

    @pytest.mark.unit
    def test_unknown_stack(self):
        with pytest.raises(ValidationError, match="Unknown stack 'cobol'"):
            CherryRequest(description="Ledger", stack="cobol")


class TestCherrySpec:
    @pytest.mark.unit
    def test_camel_case_output(self, cherry_spec: CherrySpec):
        data = cherry_spec.to_response()
        assert data["id"] == "cherry-1700000000000-abc123xyz"
        assert data["includeDatabase"] is True
        assert "technicalDetails" in data
        assert "createdAt" in data
        assert data["commands"][-1] == "tinyapp build --project track-daily-water"

    @pytest.mark.unit
    def test_frozen(self, cherry_spec: CherrySpec):
        with pytest.raises(ValidationError):
            cherry_spec.name = "Changed"

    @pytest.mark.unit
    @pytest.mark.parametrize("size", ["14MB", "large", "3 GB", ""])
    def test_bad_size(self, cherry_spec_data, size):
        with pytest.raises(ValidationError, match="Size must look like"):
            CherrySpec.model_validate({**cherry_spec_data, "size": size})

    @pytest.mark.unit
    def test_commands_required(self, cherry_spec_data):
        with pytest.raises(ValidationError, match="at least one command"):
            CherrySpec.model_validate({**cherry_spec_data, "commands": []})


class TestCherryBuildResult:
    @pytest.mark.unit
    def test_response(self):
        result = CherryBuildResult(
            cherry_id="cherry-1-000000000",
            download_url="/api/download/cherry-1-000000000",
            build_steps=[{"step": 1, "status": "completed"}],
        )
        assert result.to_response() == {
            "success": True,
            "cherryId": "cherry-1-000000000",
            "downloadUrl": "/api/download/cherry-1-000000000",
            "buildSteps": [{"step": 1, "status": "completed"}],
        }
