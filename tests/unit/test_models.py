"""Unit tests for deployment models."""

import pytest
from pydantic import ValidationError

from modelnest.models.deployment import (
    DeploymentDetails,
    DeploymentInitRequest,
    DeploymentRecord,
    image_tag_for,
)


class TestDeploymentPayload:
    """Tests for DeploymentPayload."""

    def test_image_tag(self, payload):
        assert payload.image_tag == "alice/resnet50:latest"

    def test_image_tag_normalizes_model_name(self, payload_factory):
        payload = payload_factory(model_identifier="  My Model V2 ")
        assert payload.image_tag == "alice/my-model-v2:latest"

    def test_credential_hidden_in_repr(self, payload):
        assert "tok123" not in repr(payload)
        assert "tok123" not in str(payload.model_dump())
        assert payload.registry_credential.get_secret_value() == "tok123"

    def test_payload_is_immutable(self, payload):
        with pytest.raises(ValidationError):
            payload.model_identifier = "other"

    def test_staged_files(self, payload):
        assert payload.staged_files() == {
            "Dockerfile": "FROM scratch",
            "app.py": "print('serving')",
            "requirements.txt": "fastapi==0.110.0",
        }


class TestDeploymentRecord:
    """Tests for DeploymentRecord."""

    def test_from_payload(self, payload):
        record = DeploymentRecord.from_payload(payload)

        assert record.user_id == "user-1"
        assert record.model_name == "resnet50"
        assert record.source_platform == "Hugging Face"
        assert record.deployed_image_tag == "alice/resnet50:latest"
        assert record.category == "vision"
        assert record.description == "Image classification"
        assert record.image_url == "https://example.com/resnet.png"
        assert record.deployed_at is not None

    def test_model_name_falls_back_to_identifier(self, payload_factory):
        payload = payload_factory(deployment_details=DeploymentDetails())
        record = DeploymentRecord.from_payload(payload)
        assert record.model_name == "resnet50"

    def test_serializes_camel_case(self, payload):
        data = DeploymentRecord.from_payload(payload).model_dump(by_alias=True)
        assert data["deployedImageTag"] == "alice/resnet50:latest"
        assert "userId" in data
        assert "sourcePlatform" in data


class TestDeploymentInitRequest:
    """Tests for DeploymentInitRequest."""

    @pytest.fixture
    def body(self) -> dict:
        return {
            "modelIdentifier": "resnet50",
            "registryUsername": "alice",
            "registryCredential": "tok12345",
            "dockerfile": "FROM python:3.11-slim",
            "pythonCode": "print('hi')",
            "requirementsTxt": "fastapi",
        }

    def test_accepts_camel_case(self, body):
        request = DeploymentInitRequest.model_validate(body)
        assert request.registry_username == "alice"
        assert request.python_code == "print('hi')"

    def test_accepts_docker_field_names(self, body):
        body["dockerUsername"] = body.pop("registryUsername")
        body["dockerPassword"] = body.pop("registryCredential")

        request = DeploymentInitRequest.model_validate(body)

        assert request.registry_username == "alice"
        assert request.registry_credential.get_secret_value() == "tok12345"

    def test_rejects_short_credential(self, body):
        body["registryCredential"] = "short"
        with pytest.raises(ValidationError):
            DeploymentInitRequest.model_validate(body)

    def test_rejects_short_username(self, body):
        body["registryUsername"] = "al"
        with pytest.raises(ValidationError):
            DeploymentInitRequest.model_validate(body)

    def test_rejects_placeholder_dockerfile(self, body):
        body["dockerfile"] = "# Failed to generate code. Please run step 3."
        with pytest.raises(ValidationError):
            DeploymentInitRequest.model_validate(body)


def test_image_tag_for():
    assert image_tag_for("bob", "BERT Base") == "bob/bert-base:latest"
