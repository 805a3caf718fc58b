#!/usr/bin/env python3
"""
Upload CLI — single-document and batch upload of bank statements, receipts
and invoices.

Usage
-----
Single document (company / period auto-detected from filename):
    python -m scripts.upload --file data/uploads/murphy_web_services_2024_03.pdf --user ops@cadgroup.ph

Single document (explicit metadata):
    python -m scripts.upload --file statement.pdf --user ops@cadgroup.ph \
        --company murphy_web_services --year 2024 --month 3

Batch — upload every PDF/image in a directory:
    python -m scripts.upload --dir data/uploads/ --user ops@cadgroup.ph

Filenames follow ``<company>_<YYYY>_<MM>[_anything].<ext>``, e.g.
``murphy_web_services_2024_03_bpi.pdf``.

Store without analysing (process later via POST /documents/reprocess):
    python -m scripts.upload --dir data/uploads/ --user ops@cadgroup.ph --no-process
"""

import argparse
import asyncio
import glob
import logging
import mimetypes
import os
import re
import sys
import time

# Ensure repo root is on the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bookkeeping import config                           # noqa: E402
from bookkeeping.analysis import engine                  # noqa: E402
from bookkeeping.database import init_db                 # noqa: E402
from bookkeeping.exceptions import BookkeepingError      # noqa: E402
from bookkeeping.models import DocumentType, ProcessingStatus  # noqa: E402
from bookkeeping.pipeline.orchestrator import upload_document  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-7s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("upload")

_FILENAME_RE = re.compile(r"^(?P<company>[a-z0-9_]+?)_(?P<year>\d{4})_(?P<month>\d{1,2})(?:_.*)?$", re.I)
_EXTENSIONS = ("*.pdf", "*.png", "*.jpg", "*.jpeg", "*.webp")


def infer_metadata_from_path(path: str) -> dict:
    """``murphy_web_services_2024_03_bpi.pdf`` → company / year / month."""
    stem = os.path.splitext(os.path.basename(path))[0]
    m = _FILENAME_RE.match(stem)
    if not m:
        return {}
    month = int(m.group("month"))
    if not 1 <= month <= 12:
        return {}
    return {"company": m.group("company").lower(), "year": int(m.group("year")), "month": month}


async def _upload_one(path: str, args: argparse.Namespace) -> bool:
    """Upload a single file. Returns True unless the upload or analysis failed."""
    basename = os.path.basename(path)
    inferred = infer_metadata_from_path(path)
    company = args.company or inferred.get("company")
    year = args.year or inferred.get("year")
    month = args.month or inferred.get("month")

    if not (company and year and month):
        logger.error("No company/period for %s — use --company/--year/--month or rename the file", basename)
        return False

    with open(path, "rb") as f:
        data = f.read()

    t0 = time.time()
    logger.info("▶ Uploading %s (%s %d-%02d)", basename, company, year, month)
    try:
        doc = await upload_document(
            data,
            filename=basename,
            company=company,
            month=month,
            year=year,
            uploaded_by=args.user,
            document_type=args.doc_type,
            content_type=mimetypes.guess_type(basename)[0] or "application/octet-stream",
            storage_type=args.storage,
            process=not args.no_process,
        )
    except BookkeepingError as e:
        logger.error("✗ %s — %s", basename, e.message)
        return False

    elapsed = time.time() - t0
    if doc.processing_status == ProcessingStatus.FAILED:
        logger.error("✗ %s → %s  |  %s  [%.1fs]", basename, doc.id, doc.error_message, elapsed)
        return False

    txn_count = len(doc.analysis_result.transactions) if doc.analysis_result else 0
    logger.info(
        "✓ %s → %s  |  %s, %d line items  [%.1fs]",
        basename, doc.id, doc.processing_status.value, txn_count, elapsed,
    )
    return True


async def run(args: argparse.Namespace):
    if not engine.is_configured():
        logger.warning("OPENAI_API_KEY is not set — documents will be stored without analysis.")

    init_db()

    paths: list[str] = []
    if args.file:
        paths.append(args.file)
    elif args.dir:
        for ext in _EXTENSIONS:
            paths.extend(glob.glob(os.path.join(args.dir, ext)))
        paths.sort()
        if not paths:
            logger.error("No documents found in %s", args.dir)
            sys.exit(1)
        logger.info("Found %d documents in %s", len(paths), args.dir)

    successes = 0
    failures = 0
    for path in paths:
        if await _upload_one(path, args):
            successes += 1
        else:
            failures += 1

    logger.info("━" * 60)
    logger.info("Done: %d succeeded, %d failed, %d total", successes, failures, len(paths))

    if failures:
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(
        description="Upload accounting documents into the bookkeeping pipeline.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", type=str, help="Path to a single document")
    source.add_argument("--dir", type=str, help="Directory of documents for batch upload")

    parser.add_argument("--user", type=str, required=True, help="Uploader identity recorded on each document")
    parser.add_argument("--company", type=str, help="Company slug (auto-detected from filename)")
    parser.add_argument("--year", type=int, help="Fiscal year (auto-detected from filename)")
    parser.add_argument("--month", type=int, help="Month 1-12 (auto-detected from filename)")
    parser.add_argument(
        "--doc-type", type=str, default=DocumentType.BANK_STATEMENT.value,
        choices=[t.value for t in DocumentType], help="Document type",
    )
    parser.add_argument(
        "--storage", type=str, default=config.STORAGE_BACKEND,
        choices=["internal", "external"], help="Blob backend for the uploaded bytes",
    )
    parser.add_argument("--no-process", action="store_true", help="Store only; skip analysis")

    args = parser.parse_args()
    if args.month is not None and not 1 <= args.month <= 12:
        parser.error("--month must be between 1 and 12")

    asyncio.run(run(args))


if __name__ == "__main__":
    main()
