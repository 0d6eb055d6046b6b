"""
Document Processor for extracting raw text from supported file formats.
"""

import logging
import json
from typing import Dict, Any, Iterator, Optional
from pathlib import Path

import pypdf

from ..errors import ConfigError
from ..rag.models import Document

logger = logging.getLogger(__name__)


class DocumentProcessor:
    """Loads files into Documents for the ingestion pipeline."""

    DEFAULT_FORMATS = ["pdf", "json", "md", "txt"]

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.supported_formats = self.config.get("supported_formats", self.DEFAULT_FORMATS)

    def is_supported(self, file_path: Path) -> bool:
        return file_path.suffix.lower()[1:] in self.supported_formats

    def iter_files(self, path: Path) -> Iterator[Path]:
        """Yield supported files: the path itself, or every match below a directory."""
        path = Path(path)
        if path.is_file():
            if not self.is_supported(path):
                raise ConfigError(f"Unsupported file format: {path.suffix}")
            yield path
            return

        if not path.exists():
            raise ConfigError(f"Path {path} does not exist")

        for file_path in sorted(path.rglob("*")):
            if file_path.is_file() and self.is_supported(file_path):
                yield file_path

    def load(self, file_path: Path) -> Document:
        """
        Load a file into a Document.

        Args:
            file_path: Path to the file to load

        Returns:
            Document whose source_id is the file path
        """
        file_path = Path(file_path)
        file_extension = file_path.suffix.lower()

        if file_extension == ".pdf":
            text = self._extract_pdf_content(file_path)
        elif file_extension == ".json":
            text = self._extract_json_content(file_path)
        elif file_extension in (".md", ".txt"):
            text = self._extract_text_content(file_path)
        else:
            raise ConfigError(f"Unsupported file format: {file_extension}")

        logger.debug(f"Loaded {len(text)} characters from {file_path}")
        return Document(
            text=text,
            source_id=str(file_path),
            metadata={"file_name": file_path.name, "file_extension": file_extension}
        )

    def _extract_pdf_content(self, file_path: Path) -> str:
        """Extract text content from PDF file."""
        with open(file_path, 'rb') as file:
            pdf_reader = pypdf.PdfReader(file)
            return "\n".join((page.extract_text() or "") for page in pdf_reader.pages)

    def _extract_json_content(self, file_path: Path) -> str:
        """Extract content from JSON file."""
        with open(file_path, 'r', encoding='utf-8') as file:
            data = json.load(file)
            # Convert JSON to readable text
            return json.dumps(data, indent=2)

    def _extract_text_content(self, file_path: Path) -> str:
        """Extract content from text or Markdown file."""
        with open(file_path, 'r', encoding='utf-8') as file:
            return file.read()
