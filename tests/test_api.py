"""API tests for the generation, knowledge and product endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from madison.api.generate.schemas import ImageGenerationResponse
from madison.main import app
from madison.models.knowledge import KnowledgeFragment
from madison.services.product_import import ImportResult
from madison.utils.errors import GenerationFailedError, OrganizationNotFoundError, UpgradeRequiredError
from madison.utils.local_tokens import create_local_token

from conftest import ORG_ID, USER_ID

client = TestClient(app)


@pytest.fixture
def auth_headers():
    token = create_local_token(USER_ID, "editor@brand.test", ORG_ID)
    return {"Authorization": f"Bearer {token}"}


class TestRouteEndpoint:
    """Routing preview needs no provider but does need a token."""

    def test_route_preview(self, auth_headers):
        """The preview returns the squad for a brief."""
        response = client.post(
            "/v1/generate/route",
            json={"brief": "Write an urgent limited-time launch announcement"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["copy_squad"] == "THE_DISRUPTORS"
        assert data["awareness_stage"] == "solution_aware"
        assert data["scores"]["THE_DISRUPTORS"] == 3

    def test_route_preview_requires_token(self):
        """Without a bearer token the preview is refused."""
        response = client.post("/v1/generate/route", json={"brief": "launch now"})
        assert response.status_code == 401


class TestAuth:
    """Generation endpoints require a bearer token."""

    def test_missing_token_is_unauthorized(self):
        """No Authorization header means 401."""
        response = client.post("/v1/generate/copy", json={"brief": "A caption"})
        assert response.status_code == 401

    def test_invalid_token_is_unauthorized(self):
        """A token signed with another secret is rejected."""
        response = client.post(
            "/v1/generate/copy",
            json={"brief": "A caption"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401


class TestErrorMapping:
    """Pipeline errors become one structured error body."""

    def test_upgrade_required_is_402(self, auth_headers):
        """Video on an entry tier asks for an upgrade."""
        with patch(
            "madison.api.generate.router.generate_video",
            new=AsyncMock(side_effect=UpgradeRequiredError("video", "essentials")),
        ):
            response = client.post(
                "/v1/generate/video",
                json={"image_url": "https://cdn.test/a.png", "prompt": "slow push in"},
                headers=auth_headers,
            )
        assert response.status_code == 402
        body = response.json()
        assert body["success"] is False
        assert body["error_type"] == "UpgradeRequiredError"
        assert "essentials" in body["error"]

    def test_exhausted_providers_are_502(self, auth_headers):
        """Every provider failing is reported once, as a bad gateway."""
        with patch(
            "madison.api.generate.router.generate_copy",
            new=AsyncMock(side_effect=GenerationFailedError("Text generation failed: gemini: HTTP 500")),
        ):
            response = client.post("/v1/generate/copy", json={"brief": "A caption"}, headers=auth_headers)
        assert response.status_code == 502
        assert response.json()["error_type"] == "GenerationFailedError"

    def test_bad_parent_is_400(self, auth_headers):
        """A ValueError from the pipeline is a client error."""
        with patch(
            "madison.api.generate.router.generate_image",
            new=AsyncMock(side_effect=ValueError("Parent generation x not found")),
        ):
            response = client.post("/v1/generate/image", json={"prompt": "darker"}, headers=auth_headers)
        assert response.status_code == 400

    def test_unresolved_organization_is_400(self, auth_headers):
        """A request no organization can be resolved for is a client error."""
        with patch(
            "madison.api.generate.router.generate_image",
            new=AsyncMock(side_effect=OrganizationNotFoundError("Could not resolve an organization")),
        ):
            response = client.post("/v1/generate/image", json={"prompt": "a candle"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error_type"] == "OrganizationNotFoundError"

    def test_tier_restriction_is_reported_in_message(self, auth_headers):
        """A downgraded image still succeeds and says so."""
        result = ImageGenerationResponse(
            image_url="https://cdn.test/new.png",
            generation_id="gen-1",
            provider="gemini",
            model="gemini-image",
            final_prompt="a candle",
            library_category="other",
            resolution="1k",
            tier_restricted=True,
            restrictions=["4k resolution is not available on the 'essentials' tier"],
        )
        with patch("madison.api.generate.router.generate_image", new=AsyncMock(return_value=result)):
            response = client.post(
                "/v1/generate/image",
                json={"prompt": "a candle", "freepik_model": "mystic", "resolution": "4k"},
                headers=auth_headers,
            )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Image generated with tier restrictions applied"
        assert body["data"]["tier_restricted"] is True


class TestKnowledgeEndpoint:
    """Versioned knowledge writes."""

    def test_unknown_type_is_rejected(self, auth_headers):
        """Only the fixed types and category_ types are accepted."""
        response = client.post(
            f"/v1/knowledge/{ORG_ID}/mood_board",
            json={"content": {"a": 1}},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_new_version_is_returned(self, auth_headers):
        """The stored version number is echoed back."""
        fragment = KnowledgeFragment.model_validate({
            "organization_id": ORG_ID,
            "knowledge_type": "category_home_fragrance",
            "content": {"avoid": "notes"},
            "version": 2,
        })
        with patch("madison.api.knowledge.router.supersede_knowledge", new=AsyncMock(return_value=fragment)):
            response = client.post(
                f"/v1/knowledge/{ORG_ID}/category_home_fragrance",
                json={"content": {"avoid": "notes"}},
                headers=auth_headers,
            )
        assert response.status_code == 200
        assert response.json()["data"]["version"] == 2


class TestProductImportEndpoint:
    """CSV upload."""

    def test_csv_upload(self, auth_headers):
        """The file is decoded and the import summary returned."""
        importer = AsyncMock(return_value=ImportResult(inserted=1, updated=0, failed=0))
        with patch("madison.api.products.router.import_products_csv", new=importer):
            response = client.post(
                f"/v1/products/{ORG_ID}/import",
                files={"file": ("products.csv", "\ufeffhandle,name\noudh,Oudh\n".encode("utf-8"), "text/csv")},
                headers=auth_headers,
            )
        assert response.status_code == 200
        assert response.json()["data"]["inserted"] == 1
        organization_id, text = importer.await_args.args
        assert organization_id == ORG_ID
        assert text.startswith("handle,name")
