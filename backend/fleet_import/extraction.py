"""Route uploaded files to the matching extractor by extension."""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, Iterable, List

from .csv_parser import parse_csv_file
from .models import CandidateRecord, ExtractionResult, SourceFile
from .pdf_parser import parse_pdf_work_orders

logger = logging.getLogger(__name__)

Extractor = Callable[[SourceFile], ExtractionResult]

EXTRACTORS: Dict[str, Extractor] = {
    ".csv": parse_csv_file,
    ".pdf": parse_pdf_work_orders,
}


def extractor_for(file_name: str) -> Extractor | None:
    return EXTRACTORS.get(os.path.splitext(file_name)[1].lower())


def extract_files(files: Iterable[SourceFile]) -> ExtractionResult:
    """Extract every supported file in order, concatenating records and errors.

    Files with any other extension are skipped without a warning.
    """
    records: List[CandidateRecord] = []
    errors: List[str] = []
    for file in files:
        extractor = extractor_for(file.name)
        if extractor is None:
            logger.debug("Ignoring unsupported file %s", file.name)
            continue
        result = extractor(file)
        records.extend(result.records)
        errors.extend(result.errors)
    return ExtractionResult(records, errors)


__all__ = ["EXTRACTORS", "extractor_for", "extract_files"]
