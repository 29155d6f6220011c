"""Unit tests for reference image classification and materialization."""

import asyncio
import base64

import httpx
import pytest

from madison.services.reference_images import (
    PREVIOUS_ITERATION_LABEL,
    ReferenceImage,
    ReferenceRole,
    categorize,
    classify_reference,
    inject_parent_reference,
    materialize,
    reference_directives,
    reference_summary,
)


PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"

# Slowest first, so completion order is the reverse of role order
DELAYS = {"product.png": 0.05, "background.png": 0.02, "style.png": 0.0}


async def _image_handler(request: httpx.Request) -> httpx.Response:
    name = request.url.path.rsplit("/", 1)[-1]
    if name == "missing.png":
        return httpx.Response(404)
    if name == "page.html":
        return httpx.Response(200, content=b"<html></html>", headers={"content-type": "text/html"})
    await asyncio.sleep(DELAYS.get(name, 0.0))
    return httpx.Response(200, content=PNG_BYTES + name.encode(), headers={"content-type": "image/jpeg"})


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(_image_handler))


class TestClassification:
    """Label keywords decide the role."""

    def test_mixed_labels_split_into_roles(self):
        """A lighting reference is style; product photos and unlabeled images are product."""
        categorized = categorize([
            ReferenceImage(url="a", label="lighting ref"),
            ReferenceImage(url="b", label="product photo"),
            ReferenceImage(url="c"),
        ])
        assert [image.url for image in categorized.style] == ["a"]
        assert [image.url for image in categorized.product] == ["b", "c"]
        assert categorized.background == []

    @pytest.mark.parametrize(
        "label, role",
        [
            ("Background plate", ReferenceRole.BACKGROUND),
            ("beach scene", ReferenceRole.BACKGROUND),
            ("style board", ReferenceRole.STYLE),
            ("main subject", ReferenceRole.PRODUCT),
            ("something else", ReferenceRole.PRODUCT),
            (None, ReferenceRole.PRODUCT),
        ],
    )
    def test_classify_reference(self, label, role):
        """Unmatched labels default to product."""
        assert classify_reference(label) == role

    def test_images_without_url_are_dropped(self):
        """An empty URL never reaches a bucket."""
        assert len(categorize([ReferenceImage(url="", label="product")])) == 0

    def test_parent_image_is_injected_first(self):
        """The previous iteration leads and is not duplicated."""
        images = inject_parent_reference(
            [ReferenceImage(url="https://cdn.test/parent.png"), ReferenceImage(url="https://cdn.test/other.png")],
            "https://cdn.test/parent.png",
        )
        assert [image.url for image in images] == ["https://cdn.test/parent.png", "https://cdn.test/other.png"]
        assert images[0].label == PREVIOUS_ITERATION_LABEL
        assert images[0].role == ReferenceRole.PRODUCT


class TestMaterialize:
    """Concurrent download with deterministic output order."""

    @pytest.mark.asyncio
    async def test_output_follows_role_order_not_completion_order(self):
        """Product, then background, then style, however the downloads finish."""
        categorized = categorize([
            ReferenceImage(url="https://cdn.test/style.png", label="style"),
            ReferenceImage(url="https://cdn.test/background.png", label="background"),
            ReferenceImage(url="https://cdn.test/product.png", label="product"),
        ])
        async with _client() as client:
            materialized = await materialize(categorized, client=client)

        assert [reference.role for reference in materialized] == [
            ReferenceRole.PRODUCT,
            ReferenceRole.BACKGROUND,
            ReferenceRole.STYLE,
        ]
        assert base64.b64decode(materialized[0].data).endswith(b"product.png")
        assert materialized[0].mime_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_failed_downloads_are_skipped(self):
        """A 404 or a non-image response drops that reference only."""
        categorized = categorize([
            ReferenceImage(url="https://cdn.test/missing.png", label="product"),
            ReferenceImage(url="https://cdn.test/page.html", label="style"),
            ReferenceImage(url="https://cdn.test/background.png", label="background"),
        ])
        async with _client() as client:
            materialized = await materialize(categorized, client=client)

        assert [reference.url for reference in materialized] == ["https://cdn.test/background.png"]

    @pytest.mark.asyncio
    async def test_data_urls_are_decoded_without_fetching(self):
        """Inline base64 images pass through with their declared mime type."""
        payload = base64.b64encode(PNG_BYTES).decode("ascii")
        categorized = categorize([ReferenceImage(url=f"data:image/webp;base64,{payload}")])
        async with _client() as client:
            materialized = await materialize(categorized, client=client)

        assert materialized[0].mime_type == "image/webp"
        assert materialized[0].data == payload
        assert materialized[0].content == PNG_BYTES

    @pytest.mark.asyncio
    async def test_no_references_needs_no_client(self):
        """An empty set returns immediately."""
        assert await materialize(categorize([])) == []


class TestDirectives:
    """Prompt lines and persistence summary."""

    @pytest.mark.asyncio
    async def test_directives_number_images_in_payload_order(self):
        """Image numbers match the attachment order."""
        categorized = categorize([
            ReferenceImage(url="https://cdn.test/style.png", label="style"),
            ReferenceImage(url="https://cdn.test/product.png", label="product shot"),
        ])
        async with _client() as client:
            materialized = await materialize(categorized, client=client)

        text = reference_directives(materialized)[0]
        assert "Image 1 (product, product shot)" in text
        assert "Image 2 (style, style)" in text

    def test_summary_skips_inline_images(self):
        """Data URLs are not persisted."""
        summary = reference_summary([
            ReferenceImage(url="https://cdn.test/a.png", label="scene"),
            ReferenceImage(url="data:image/png;base64,AAAA"),
        ])
        assert summary == [
            {"url": "https://cdn.test/a.png", "label": "scene", "description": None, "role": "background"},
        ]
