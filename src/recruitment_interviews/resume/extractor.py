"""
Resume download and text extraction.

Fetches an uploaded resume from object storage and extracts its plain
text. PDF, DOCX and plain-text resumes are supported.
"""

import asyncio
import io
import logging
import zipfile
from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from urllib.parse import urlparse

import httpx
from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from recruitment_interviews.config import get_settings
from recruitment_interviews.errors import UpstreamServiceError

logger = logging.getLogger(__name__)

MAX_PDF_PAGES = 50


def _extract_pdf(content: bytes) -> str:
    reader = PdfReader(io.BytesIO(content))
    if reader.is_encrypted:
        raise ValueError("Encrypted PDF resumes are not supported")
    if len(reader.pages) > MAX_PDF_PAGES:
        raise ValueError(f"PDF resume exceeds {MAX_PDF_PAGES} pages")
    pages = [(page.extract_text() or "").strip() for page in reader.pages]
    return "\n\n".join(page for page in pages if page)


def _extract_docx(content: bytes) -> str:
    document = Document(io.BytesIO(content))
    paragraphs = [para.text for para in document.paragraphs if para.text.strip()]
    return "\n".join(paragraphs)


def _extract_txt(content: bytes) -> str:
    return content.decode("utf-8", errors="replace")


def detect_format(resume_link: str, content_type: str = "") -> str:
    """
    Work out the resume format from its path or content type.

    Args:
        resume_link: Storage path or URL of the resume.
        content_type: Content-Type header of the download, if any.

    Returns:
        One of "pdf", "docx" or "txt".

    Raises:
        ValueError: If the format is not supported.
    """
    suffix = PurePosixPath(urlparse(resume_link).path).suffix.lower()
    if suffix in (".pdf", ".docx", ".txt"):
        return suffix[1:]

    content_type = content_type.split(";")[0].strip().lower()
    by_content_type = {
        "application/pdf": "pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
        "text/plain": "txt",
    }
    if content_type in by_content_type:
        return by_content_type[content_type]
    raise ValueError(f"Unsupported resume format: {suffix or content_type or 'unknown'}")


def extract_text(content: bytes, resume_format: str) -> str:
    """
    Extract plain text from resume bytes.

    Args:
        content: Raw file content.
        resume_format: "pdf", "docx" or "txt".

    Returns:
        Extracted text, stripped.
    """
    extractors = {"pdf": _extract_pdf, "docx": _extract_docx, "txt": _extract_txt}
    return extractors[resume_format](content).strip()


class ResumeExtractor(ABC):
    """Abstract base class for resume text sources."""

    @abstractmethod
    async def extract(self, resume_link: str) -> str:
        """
        Download a resume and return its text.

        Raises:
            UpstreamServiceError: If the resume cannot be fetched or parsed,
                or contains no text.
        """
        ...

    async def close(self) -> None:
        """Release extractor resources."""
        return None


class HttpResumeExtractor(ResumeExtractor):
    """Downloads resumes over HTTP from object storage and parses them."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the extractor.

        Args:
            base_url: Object storage base URL (uses config if not provided).
            timeout: Download timeout in seconds (uses config if not provided).
            transport: Optional httpx transport, e.g. for tests.
        """
        settings = get_settings()
        self._base_url = base_url or settings.resume_storage_base_url
        self._timeout = timeout or settings.resume_download_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def extract(self, resume_link: str) -> str:
        client = await self._get_client()
        try:
            response = await client.get(resume_link)
        except httpx.HTTPError as e:
            raise UpstreamServiceError(
                f"Failed to download resume {resume_link}: {e}",
                business_message="Failed to fetch candidate resume",
            ) from e
        if response.status_code != httpx.codes.OK:
            raise UpstreamServiceError(
                f"Resume download returned HTTP {response.status_code} for {resume_link}",
                business_message="Failed to fetch candidate resume",
            )

        try:
            resume_format = detect_format(resume_link, response.headers.get("content-type", ""))
            loop = asyncio.get_running_loop()
            text = await loop.run_in_executor(
                None,
                lambda: extract_text(response.content, resume_format),
            )
        except (ValueError, PyPdfError, PackageNotFoundError, zipfile.BadZipFile) as e:
            raise UpstreamServiceError(
                f"Failed to parse resume {resume_link}: {e}",
                business_message="Failed to parse candidate resume",
            ) from e
        except Exception as e:
            # Malformed documents can fail deep inside pypdf or python-docx
            logger.warning(f"Unexpected parser failure for resume {resume_link}: {e!r}")
            raise UpstreamServiceError(
                f"Failed to parse resume {resume_link}: {e}",
                business_message="Failed to parse candidate resume",
            ) from e

        if not text:
            raise UpstreamServiceError(
                f"No text could be extracted from resume {resume_link}",
                business_message="Failed to parse candidate resume",
            )
        logger.info(f"Extracted {len(text)} chars of resume text from {resume_link}")
        return text
