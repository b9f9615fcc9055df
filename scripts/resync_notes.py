#!/usr/bin/env python3
"""
Resync Notes Script

Re-renders every stored note and replaces its knowledge-base document,
one note at a time. Run after pointing the app at a new knowledge base.

Usage:
    $ TODONOTE_GLM_API_KEY=<id>.<secret> python scripts/resync_notes.py
    $ python scripts/resync_notes.py --knowledge-base kb-123
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

# Required for direct script execution without package installation
sys.path.append(os.path.join(os.path.dirname(__file__), "../src"))

from todonote.core.config import Settings
from todonote.core.logging import setup_logging
from todonote.services.container import build_services

logger = logging.getLogger("todonote.scripts.resync")


async def main(knowledge_base_id: str | None) -> int:
    """
    Sync every note sequentially.

    Returns:
        Process exit code: 0 if every upload succeeded, 1 otherwise.
    """
    overrides = {"KNOWLEDGE_BASE_ID": knowledge_base_id} if knowledge_base_id else {}
    services = build_services(Settings(**overrides))

    if services.client is None or services.knowledge_base_id() is None:
        logger.error("API key and knowledge base id are required for a resync")
        return 1

    notes = services.store.load_all()
    logger.info("Resyncing %d notes into %s", len(notes), services.knowledge_base_id())

    failures = 0
    try:
        for note in notes:
            report = await services.coordinator.sync_note(note)
            if report.uploaded_document_id:
                logger.info("%s -> %s", note.id, report.uploaded_document_id)
            else:
                failures += 1
                logger.warning(
                    "%s not uploaded: %s",
                    note.id,
                    report.render_error or report.upload_error,
                )
    finally:
        await services.aclose()

    logger.info("Done: %d synced, %d failed", len(notes) - failures, failures)
    return 1 if failures else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--knowledge-base", help="Override the target knowledge base id"
    )
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(main(args.knowledge_base)))
