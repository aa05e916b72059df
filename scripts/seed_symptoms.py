"""Seed the symptom catalog from a JSON dataset.

Usage:
    python scripts/seed_symptoms.py [path/to/symptoms.json]

Each dataset entry looks like ``{"symptom": str, "follow_up_questions":
{category: [question, ...]}}``.
"""

from pathlib import Path
from typing import List
from cardio_intake.config.database import Database
from cardio_intake.models.symptom import Symptom
from cardio_intake.services.patient_service import get_patient_service
import asyncio
import json
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_DATASET = Path(__file__).resolve().parent.parent / "data" / "symptoms.json"


def load_dataset(path: Path) -> List[Symptom]:
    """Read dataset entries into catalog symptoms."""
    with open(path, encoding="utf-8") as f:
        entries = json.load(f)
    return [
        Symptom(
            name=entry.get("symptom") or entry["name"],
            follow_up_questions=entry.get("follow_up_questions") or {},
        )
        for entry in entries
    ]


async def main(path: Path) -> None:
    if not path.exists():
        logger.error(f"❌ Dataset file not found: {path}")
        sys.exit(1)

    symptoms = load_dataset(path)
    logger.info(f"📊 Found {len(symptoms)} symptoms in dataset")

    await Database.connect_db()
    try:
        service = get_patient_service()
        await service.seed_symptoms(symptoms)

        catalog = await service.list_symptom_catalog()
        logger.info(f"✅ Verification: {len(catalog)} symptoms loaded in database")
        for index, symptom in enumerate(catalog[:5], start=1):
            logger.info(f"  {index}. {symptom.name}")
        if len(catalog) > 5:
            logger.info(f"  ... and {len(catalog) - 5} more")
    finally:
        await Database.close_db()


if __name__ == "__main__":
    dataset = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_DATASET
    asyncio.run(main(dataset))
