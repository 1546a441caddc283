"""
NoteKeeper Backend: Seed Fixture Loader
=========================================

What:  Optional sample data applied at startup.
How:   A JSON fixture is parsed into `SeedFixture` and applied through
       NoteService, so seeded notes get real tags and obey the same quotas
       as notes created over HTTP.

Fixture Format:
    {
        "notes": [
            {
                "summary": "Running grocery list",
                "details": "Milk, Eggs, Oranges",
                "attachments": ["MilkAndEggs.png", "Oranges.png"]
            }
        ],
        "content_types": {".png": "image/png"}
    }

`content_types` is optional and defaults to png, jpeg and pdf.

Attachment names are resolved against the attachments directory; files that
do not exist are skipped. Notes whose summary already exists are skipped, so
restarting the server does not duplicate the sample data.
"""

import logging
from pathlib import Path
from typing import AsyncIterator, Dict, List, Union

import aiofiles
import aiofiles.os
from pydantic import BaseModel, Field

from notekeeper.exceptions import NoteKeeperError, QuotaExceededError
from notekeeper.services.note_service import NoteService

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".pdf": "application/pdf",
}


class SeedNote(BaseModel):
    summary: str
    details: str
    attachments: List[str] = Field(default_factory=list)


class SeedFixture(BaseModel):
    notes: List[SeedNote] = Field(default_factory=list)
    # Lower-case file extension → content type for seeded attachments
    content_types: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CONTENT_TYPES))


class SeedReport(BaseModel):
    notes_created: int = 0
    notes_skipped: int = 0
    attachments_uploaded: int = 0
    attachments_missing: int = 0
    stopped_by_quota: bool = False


def guess_content_type(filename: str, content_types: Dict[str, str]) -> str:
    return content_types.get(Path(filename).suffix.lower(), "application/octet-stream")


async def load_seed_fixture(path: Union[str, Path]) -> SeedFixture:
    """Read and validate a fixture file. Raises OSError or pydantic.ValidationError."""
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        raw = await f.read()
    return SeedFixture.model_validate_json(raw)


async def _read_file(path: Path, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


async def seed_database(
    service: NoteService,
    fixture: SeedFixture,
    attachments_dir: Union[str, Path],
) -> SeedReport:
    """
    Apply a fixture through the coordinator.

    Stops at the first note quota rejection. An attachment quota rejection
    only ends uploads for that note.
    """
    report = SeedReport()
    attachments_root = Path(attachments_dir)

    for seed_note in fixture.notes:
        if await service.repository.summary_exists(seed_note.summary):
            report.notes_skipped += 1
            continue

        try:
            note = await service.create_note(seed_note.summary, seed_note.details)
        except QuotaExceededError as e:
            logger.warning("Seeding stopped: %s", e.message)
            report.stopped_by_quota = True
            break
        report.notes_created += 1

        for filename in seed_note.attachments:
            file_path = attachments_root / filename
            if not await aiofiles.os.path.isfile(file_path):
                logger.warning("Seed attachment %s not found, skipping", file_path)
                report.attachments_missing += 1
                continue
            try:
                await service.upload_attachment(
                    note.id,
                    filename,
                    _read_file(file_path),
                    guess_content_type(filename, fixture.content_types),
                )
            except QuotaExceededError as e:
                logger.warning("Seed attachments for '%s' stopped: %s", seed_note.summary, e.message)
                break
            report.attachments_uploaded += 1

    logger.info(
        "Seeding complete: %d created, %d skipped, %d attachments uploaded",
        report.notes_created,
        report.notes_skipped,
        report.attachments_uploaded,
    )
    return report


async def run_seed(
    service: NoteService,
    seed_file: Union[str, Path],
    attachments_dir: Union[str, Path],
) -> None:
    """Startup entry point: never raises, logs why seeding did not happen."""
    try:
        fixture = await load_seed_fixture(seed_file)
    except (OSError, ValueError) as e:
        logger.error("Could not load seed fixture %s: %s", seed_file, str(e))
        return

    try:
        await seed_database(service, fixture, attachments_dir)
    except NoteKeeperError as e:
        logger.error("Seeding failed: %s | Context: %s", e.message, e.context)
    except Exception as e:
        logger.error("Unexpected error while seeding: %s", str(e), exc_info=True)
