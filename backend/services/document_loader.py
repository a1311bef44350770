"""Document loading service: text extraction from uploads and files."""
import logging
import os
from dataclasses import dataclass
from typing import List, Optional
import fitz  # PyMuPDF

from models.document import PDF, FILE

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".txt", ".md")


@dataclass
class LoadedDocument:
    """Extracted text of one source document."""
    name: str
    text: str
    doc_type: str


class DocumentLoader:
    """Extracts plain text from PDF and text documents."""

    @staticmethod
    def is_pdf(filename: str, content_type: Optional[str] = None) -> bool:
        return content_type == "application/pdf" or filename.lower().endswith(".pdf")

    def extract_text(self, filename: str, data: bytes, content_type: Optional[str] = None) -> LoadedDocument:
        """
        Extract text from an uploaded file.

        Args:
            filename: Original file name
            data: Raw file contents
            content_type: MIME type reported by the client, if any

        Returns:
            LoadedDocument with the extracted text
        """
        if self.is_pdf(filename, content_type):
            return LoadedDocument(name=filename, text=self._pdf_text(data, filename), doc_type=PDF)
        return LoadedDocument(name=filename, text=data.decode("utf-8", errors="replace"), doc_type=FILE)

    def load_directory(self, docs_directory: str) -> List[LoadedDocument]:
        """
        Load every supported file from a directory.

        Unreadable files are logged and skipped.
        """
        documents = []

        if not os.path.isdir(docs_directory):
            logger.error(f"Documents directory not found: {docs_directory}")
            return documents

        filenames = sorted(
            f for f in os.listdir(docs_directory) if f.lower().endswith(SUPPORTED_EXTENSIONS)
        )
        logger.info(f"Found {len(filenames)} documents in {docs_directory}")

        for filename in filenames:
            filepath = os.path.join(docs_directory, filename)
            try:
                with open(filepath, "rb") as f:
                    documents.append(self.extract_text(filename, f.read()))
                logger.info(f"Loaded {filename}")
            except Exception as e:
                logger.error(f"Error loading {filename}: {str(e)}", exc_info=True)
                continue

        return documents

    def _pdf_text(self, data: bytes, filename: str) -> str:
        """Concatenate the text of every page of a PDF."""
        try:
            with fitz.open(stream=data, filetype="pdf") as pdf_document:
                pages = [page.get_text() for page in pdf_document]
        except Exception as e:
            logger.error(f"Failed to load PDF {filename}: {str(e)}")
            raise ValueError(f"Could not read PDF {filename}: {str(e)}") from e

        logger.debug(f"Extracted {len(pages)} pages from {filename}")
        return "\n".join(pages)
