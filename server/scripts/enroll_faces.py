import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from faceverify import config
from faceverify.errors import DimensionMismatch, FaceVerifyError
from faceverify.logging_config import configure_logging
from faceverify.models import MatchOutcome
from faceverify.services.face_service import FaceRecognitionProvider
from faceverify.services.face_store import SupabaseFaceStore
from faceverify.services.matcher import evaluate
from faceverify.supabase_client import create_supabase_client

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png"}

logger = logging.getLogger("enroll_faces")


def enroll_directory(directory: Path, provider, store, threshold: float, dry_run: bool = False) -> int:
    """Append one descriptor per photo, skipping faces the store already knows."""
    known = store.list_all()
    added = 0

    for image_path in sorted(directory.iterdir()):
        if image_path.suffix.lower() not in IMAGE_SUFFIXES:
            continue

        try:
            embedding = provider.detect(image_path.read_bytes())
        except FaceVerifyError as exc:
            logger.warning("Skipped %s: %s", image_path.name, exc.detail)
            continue
        if embedding is None:
            logger.info("Skipped %s: no face found", image_path.name)
            continue

        try:
            outcome = evaluate(embedding, known, threshold)
        except DimensionMismatch as exc:
            # Every later photo would hit the same stored row.
            logger.error("Stopped at %s: %s", image_path.name, exc.detail)
            break
        if outcome is MatchOutcome.MATCHED:
            logger.info("Skipped %s: already enrolled", image_path.name)
            continue

        if not dry_run:
            store.append(embedding)
        known.append(embedding)
        added += 1
        logger.info("Enrolled %s", image_path.name)

    return added


def main() -> None:
    parser = argparse.ArgumentParser(description="Add face descriptors from a folder of photos.")
    parser.add_argument("directory", type=Path, help="folder of .jpg/.jpeg/.png photos")
    parser.add_argument("--threshold", type=float, default=config.MATCH_THRESHOLD)
    parser.add_argument("--dry-run", action="store_true", help="detect and match without inserting")
    args = parser.parse_args()

    configure_logging(config.LOG_LEVEL)
    if not args.directory.is_dir():
        raise SystemExit(f"Folder not found: {args.directory}")

    provider = FaceRecognitionProvider(config.FACE_DETECTION_MODEL)
    store = SupabaseFaceStore(create_supabase_client(), table=config.FACES_TABLE)
    added = enroll_directory(args.directory, provider, store, args.threshold, dry_run=args.dry_run)
    logger.info("Done: %d new face(s)%s", added, " (dry run)" if args.dry_run else "")


if __name__ == "__main__":
    main()
