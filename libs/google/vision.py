"""
File content extraction with Google Cloud Vision.

Turns an uploaded image or PDF into a short text fragment describing its
content, which the query normalizer folds into the user's question.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

import structlog
from google.cloud import vision

logger = structlog.get_logger(__name__)

IMAGE_MIME_TYPES = frozenset({"image/jpeg", "image/png"})
PDF_MIME_TYPE = "application/pdf"

_FLAGGED_LIKELIHOODS = {vision.Likelihood.LIKELY, vision.Likelihood.VERY_LIKELY}
_SAFE_SEARCH_CATEGORIES = ("adult", "spoof", "medical", "violence", "racy")

_IMAGE_FEATURES = [
    vision.Feature(type_=vision.Feature.Type.TEXT_DETECTION),
    vision.Feature(type_=vision.Feature.Type.LABEL_DETECTION),
    vision.Feature(type_=vision.Feature.Type.IMAGE_PROPERTIES),
    vision.Feature(type_=vision.Feature.Type.SAFE_SEARCH_DETECTION),
]


class FileAnalysisError(Exception):
    """The Vision service failed or reported an error for the file."""


@dataclass
class ExtractionResult:
    """What Vision found in a file, plus the fragment built from it."""

    kind: str
    text: str = ""
    labels: List[str] = field(default_factory=list)
    dominant_colors: List[str] = field(default_factory=list)
    flagged: List[str] = field(default_factory=list)

    @property
    def fragment(self) -> str:
        if self.kind == "pdf":
            if self.text:
                return f"PDF document contains text: '{self.text}'."
            return "PDF document contains no readable text."

        parts = []
        if self.text:
            parts.append(f"Image contains text: '{self.text}'.")
        else:
            parts.append("Image contains no readable text.")
        if self.labels:
            parts.append(f"Labeled as {', '.join(self.labels)}.")
        if self.flagged:
            parts.append(f"Flagged as potentially sensitive: {', '.join(self.flagged)}.")
        return " ".join(parts)


class FileContentExtractor:
    """
    Vision-backed extractor for JPEG, PNG and PDF uploads.

    The annotator client is created on first use. Nothing is retried.
    """

    def __init__(self, client: Optional[Any] = None):
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = vision.ImageAnnotatorAsyncClient()
        return self._client

    async def aclose(self) -> None:
        """Close the annotator channel, if one was opened."""
        if self._client is not None:
            await self._client.transport.close()
            self._client = None

    async def extract(self, data: bytes, mime_type: str) -> ExtractionResult:
        """
        Analyze one file.

        Raises:
            ValueError: If the MIME type is not supported
            FileAnalysisError: If the Vision call fails
        """
        if mime_type in IMAGE_MIME_TYPES:
            return await self._extract_image(data)
        if mime_type == PDF_MIME_TYPE:
            return await self._extract_pdf(data)
        raise ValueError(f"Unsupported MIME type: {mime_type}")

    async def _extract_image(self, data: bytes) -> ExtractionResult:
        request = vision.AnnotateImageRequest(
            image=vision.Image(content=data),
            features=_IMAGE_FEATURES,
        )
        try:
            response = await self.client.batch_annotate_images(requests=[request])
        except Exception as e:
            logger.error("Vision image annotation failed", error=str(e))
            raise FileAnalysisError(str(e)) from e

        annotation = response.responses[0]
        if annotation.error.message:
            raise FileAnalysisError(annotation.error.message)

        text = annotation.text_annotations[0].description.strip() if annotation.text_annotations else ""
        labels = [label.description for label in annotation.label_annotations]
        colors = [
            f"rgb({int(c.color.red)}, {int(c.color.green)}, {int(c.color.blue)})"
            for c in annotation.image_properties_annotation.dominant_colors.colors[:3]
        ]
        safe_search = annotation.safe_search_annotation
        flagged = [
            category for category in _SAFE_SEARCH_CATEGORIES
            if getattr(safe_search, category) in _FLAGGED_LIKELIHOODS
        ]

        logger.info(
            "Image analyzed",
            text_length=len(text),
            labels=labels[:10],
            dominant_colors=colors,
            flagged=flagged,
        )
        return ExtractionResult(kind="image", text=text, labels=labels, dominant_colors=colors, flagged=flagged)

    async def _extract_pdf(self, data: bytes) -> ExtractionResult:
        # Without explicit pages Vision reads the first five.
        request = vision.AnnotateFileRequest(
            input_config=vision.InputConfig(content=data, mime_type=PDF_MIME_TYPE),
            features=[vision.Feature(type_=vision.Feature.Type.DOCUMENT_TEXT_DETECTION)],
        )
        try:
            response = await self.client.batch_annotate_files(requests=[request])
        except Exception as e:
            logger.error("Vision PDF annotation failed", error=str(e))
            raise FileAnalysisError(str(e)) from e

        file_response = response.responses[0]
        if file_response.error.message:
            raise FileAnalysisError(file_response.error.message)

        pages = []
        for page in file_response.responses:
            if page.error.message:
                raise FileAnalysisError(page.error.message)
            if page.full_text_annotation.text.strip():
                pages.append(page.full_text_annotation.text.strip())
        text = "\n".join(pages)

        logger.info("PDF analyzed", pages=len(file_response.responses), text_length=len(text))
        return ExtractionResult(kind="pdf", text=text)
