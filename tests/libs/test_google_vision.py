"""Tests for Vision-backed file content extraction."""

from unittest.mock import AsyncMock, patch

import pytest
from google.cloud import vision

from libs.google.vision import ExtractionResult, FileAnalysisError, FileContentExtractor


def image_response(text="", labels=(), adult=vision.Likelihood.VERY_UNLIKELY, error=""):
    annotation = vision.AnnotateImageResponse(
        text_annotations=[vision.EntityAnnotation(description=text)] if text else [],
        label_annotations=[vision.EntityAnnotation(description=label) for label in labels],
        image_properties_annotation=vision.ImageProperties(
            dominant_colors=vision.DominantColorsAnnotation(
                colors=[vision.ColorInfo(color={"red": 255, "green": 0, "blue": 0}, score=0.9)]
            )
        ),
        safe_search_annotation=vision.SafeSearchAnnotation(adult=adult),
        error={"message": error},
    )
    return vision.BatchAnnotateImagesResponse(responses=[annotation])


def pdf_response(*pages):
    return vision.BatchAnnotateFilesResponse(
        responses=[
            vision.AnnotateFileResponse(
                responses=[
                    vision.AnnotateImageResponse(full_text_annotation=vision.TextAnnotation(text=page))
                    for page in pages
                ]
            )
        ]
    )


@pytest.fixture
def vision_client():
    return AsyncMock()


class TestImageExtraction:

    @pytest.mark.asyncio
    async def test_text_and_labels(self, vision_client):
        vision_client.batch_annotate_images.return_value = image_response(
            text="  Transfer failed\n", labels=["Screenshot", "Font"]
        )
        extractor = FileContentExtractor(client=vision_client)

        result = await extractor.extract(b"png-bytes", "image/png")

        assert result.kind == "image"
        assert result.text == "Transfer failed"
        assert result.labels == ["Screenshot", "Font"]
        assert result.dominant_colors == ["rgb(255, 0, 0)"]
        assert result.flagged == []
        assert result.fragment == "Image contains text: 'Transfer failed'. Labeled as Screenshot, Font."
        request = vision_client.batch_annotate_images.await_args.kwargs["requests"][0]
        assert request.image.content == b"png-bytes"
        assert len(request.features) == 4

    @pytest.mark.asyncio
    async def test_flagged_image(self, vision_client):
        vision_client.batch_annotate_images.return_value = image_response(adult=vision.Likelihood.LIKELY)

        result = await FileContentExtractor(client=vision_client).extract(b"jpeg", "image/jpeg")

        assert result.flagged == ["adult"]
        assert result.fragment == "Image contains no readable text. Flagged as potentially sensitive: adult."

    @pytest.mark.asyncio
    async def test_service_error(self, vision_client):
        vision_client.batch_annotate_images.side_effect = RuntimeError("permission denied")

        with pytest.raises(FileAnalysisError):
            await FileContentExtractor(client=vision_client).extract(b"jpeg", "image/jpeg")

    @pytest.mark.asyncio
    async def test_annotation_error(self, vision_client):
        vision_client.batch_annotate_images.return_value = image_response(error="Bad image data.")

        with pytest.raises(FileAnalysisError, match="Bad image data"):
            await FileContentExtractor(client=vision_client).extract(b"jpeg", "image/jpeg")


class TestPdfExtraction:

    @pytest.mark.asyncio
    async def test_joins_page_text(self, vision_client):
        vision_client.batch_annotate_files.return_value = pdf_response("Statement of account\n", "", "Page 3")

        result = await FileContentExtractor(client=vision_client).extract(b"%PDF-1.7", "application/pdf")

        assert result.text == "Statement of account\nPage 3"
        assert result.fragment == "PDF document contains text: 'Statement of account\nPage 3'."
        request = vision_client.batch_annotate_files.await_args.kwargs["requests"][0]
        assert request.input_config.mime_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_pdf_without_text(self, vision_client):
        vision_client.batch_annotate_files.return_value = pdf_response("")

        result = await FileContentExtractor(client=vision_client).extract(b"%PDF-1.7", "application/pdf")

        assert result.fragment == "PDF document contains no readable text."


@pytest.mark.asyncio
async def test_unsupported_mime_type(vision_client):
    with pytest.raises(ValueError):
        await FileContentExtractor(client=vision_client).extract(b"GIF89a", "image/gif")


def test_fragment_without_labels():
    assert ExtractionResult(kind="image", text="PIN").fragment == "Image contains text: 'PIN'."


class TestClose:

    @pytest.mark.asyncio
    async def test_closes_opened_channel(self, vision_client):
        extractor = FileContentExtractor(client=vision_client)

        await extractor.aclose()

        vision_client.transport.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_without_client_opens_nothing(self):
        with patch("libs.google.vision.vision.ImageAnnotatorAsyncClient") as mock_client:
            await FileContentExtractor().aclose()

        mock_client.assert_not_called()
