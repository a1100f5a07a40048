"""PDF text extraction for uploaded study material"""

import io
import logging
from enum import Enum

from pypdf import PasswordType, PdfReader
from pypdf.errors import FileNotDecryptedError, PdfReadError, PdfStreamError

logger = logging.getLogger(__name__)


class ExtractionErrorKind(str, Enum):
    CORRUPTED = "corrupted"
    PASSWORD_PROTECTED = "password_protected"
    UNREADABLE = "unreadable"


# Guidance shown to whoever uploaded the file
EXTRACTION_GUIDANCE = {
    ExtractionErrorKind.CORRUPTED: (
        "PDF is corrupted or has invalid structure. "
        "Please try uploading a different version of this file."
    ),
    ExtractionErrorKind.PASSWORD_PROTECTED: (
        "PDF is password protected. Please remove the password and try again."
    ),
    ExtractionErrorKind.UNREADABLE: (
        "No readable text content found in PDF. The file might be image-based or corrupted."
    ),
}


class ExtractionError(Exception):
    """A PDF could not be turned into text"""

    def __init__(self, kind: ExtractionErrorKind, details: str = ""):
        super().__init__(EXTRACTION_GUIDANCE[kind])
        self.kind = kind
        self.details = details

    @property
    def guidance(self) -> str:
        return EXTRACTION_GUIDANCE[self.kind]


class PDFLoader:
    """Extracts plain text from PDF bytes, reading at most ``max_pages`` pages"""

    def extract_text(self, file_bytes: bytes, max_pages: int = 80) -> str:
        try:
            reader = PdfReader(io.BytesIO(file_bytes))
        except PdfReadError as e:
            raise ExtractionError(ExtractionErrorKind.CORRUPTED, str(e)) from e

        if reader.is_encrypted:
            try:
                unlocked = reader.decrypt("")
            except Exception as e:
                raise ExtractionError(ExtractionErrorKind.PASSWORD_PROTECTED, str(e)) from e
            if unlocked == PasswordType.NOT_DECRYPTED:
                raise ExtractionError(ExtractionErrorKind.PASSWORD_PROTECTED, "Password protected PDF")

        parts = []
        try:
            total_pages = len(reader.pages)
            for page in reader.pages[:max_pages]:
                text = page.extract_text()
                if text:
                    parts.append(text)
        except FileNotDecryptedError as e:
            raise ExtractionError(ExtractionErrorKind.PASSWORD_PROTECTED, str(e)) from e
        except (PdfReadError, PdfStreamError) as e:
            raise ExtractionError(ExtractionErrorKind.CORRUPTED, str(e)) from e

        text = "\n".join(parts)
        if not text.strip():
            raise ExtractionError(ExtractionErrorKind.UNREADABLE, "Empty text content")

        if total_pages > max_pages:
            logger.warning(f"Read {max_pages} of {total_pages} pages (page limit)")
        logger.info(f"✓ Extracted {len(text)} characters from {min(total_pages, max_pages)} pages")
        return text
