import argparse
import asyncio
import mimetypes
from collections.abc import Iterable, Sequence
from pathlib import Path

from photomatch.config.settings import Settings
from photomatch.database.connection import close_pool, create_schema, init_pool
from photomatch.faces.exceptions import FaceRecognitionError
from photomatch.logging.logger import Log
from photomatch.media.models import SourceFile
from photomatch.retry.exceptions import RetryExhaustedError
from photomatch.service.exceptions import ServiceError
from photomatch.service.photo_service import PhotoService, build_service
from photomatch.storage.exceptions import StorageError
from photomatch.upload.progress import ProgressSnapshot, ProgressTracker, format_eta, format_rate


def load_source_files(paths: Iterable[Path]) -> list[SourceFile]:
    """Read files (directories are expanded recursively) into SourceFile objects."""
    files: list[SourceFile] = []
    for path in paths:
        candidates = sorted(p for p in path.rglob("*") if p.is_file()) if path.is_dir() else [path]
        for candidate in candidates:
            content_type, _ = mimetypes.guess_type(candidate.name)
            files.append(
                SourceFile(
                    name=candidate.name,
                    data=candidate.read_bytes(),
                    content_type=content_type or "",
                )
            )
    return files


def _log_progress(snapshot: ProgressSnapshot) -> None:
    stage = snapshot.stage(snapshot.current_stage)
    Log.debug(
        f"{snapshot.current_stage.value}: {stage.current}/{stage.total} "
        f"{format_rate(stage.bytes_per_second)} eta {format_eta(stage.eta_seconds)}"
    )


async def _upload(service: PhotoService, args: argparse.Namespace) -> int:
    files = load_source_files(Path(p) for p in args.paths)
    report = await service.upload_event_photos(
        args.event_id,
        args.uploader,
        files,
        ProgressTracker(listener=_log_progress),
    )
    batch = report.batch
    print(
        f"submitted={batch.submitted} stored={len(batch.stored)} "
        f"duplicates={len(batch.duplicates)} invalid={len(batch.invalid)} "
        f"failed={len(batch.failed)} indexed={len(report.indexing.successful)}"
    )
    for result in batch.invalid + batch.failed:
        print(f"  {result.outcome.value}: {result.name} ({result.reason})")
    nothing_processed = not batch.stored and not batch.duplicates
    return 1 if nothing_processed else 0


async def _find(service: PhotoService, args: argparse.Namespace) -> int:
    (selfie,) = load_source_files([Path(args.selfie)])
    matches = await service.find_my_photos(args.event_id, args.user_id, selfie)
    for match in matches:
        print(f"{match.similarity:6.2f}  {match.image_key}")
    print(f"{len(matches)} matching images")
    return 0


async def _reindex(service: PhotoService, args: argparse.Namespace) -> int:
    result = await service.reindex_event(args.event_id)
    print(
        f"total={result.total_images} successful={len(result.successful)} "
        f"already_indexed={len(result.already_indexed)} failed={len(result.failed)}"
    )
    for failure in result.failed:
        print(f"  failed: {failure.image_key} ({failure.error})")
    return 1 if result.total_images and not result.successful else 0


async def _delete_faces(service: PhotoService, args: argparse.Namespace) -> int:
    await service.remove_faces(args.event_id, list(args.face_ids))
    return 0


COMMANDS = {
    "upload": _upload,
    "find": _find,
    "reindex": _reindex,
    "delete-faces": _delete_faces,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="photomatch", description="Event photo upload and face search")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="create database tables")

    upload = commands.add_parser("upload", help="upload photos to an event and index their faces")
    upload.add_argument("event_id")
    upload.add_argument("uploader", help="email of the uploading user")
    upload.add_argument("paths", nargs="+", help="files or directories")

    find = commands.add_parser("find", help="find event photos matching a selfie")
    find.add_argument("user_id")
    find.add_argument("event_id")
    find.add_argument("selfie")

    reindex = commands.add_parser("reindex", help="index every stored image of an event")
    reindex.add_argument("event_id")

    delete = commands.add_parser("delete-faces", help="remove faces from an event collection")
    delete.add_argument("event_id")
    delete.add_argument("face_ids", nargs="+")
    return parser


def run(args: argparse.Namespace, settings: Settings) -> int:
    if args.command == "init-db":
        create_schema()
        Log.info("Database schema created")
        return 0

    service = build_service(settings)
    try:
        return asyncio.run(COMMANDS[args.command](service, args))
    except (ServiceError, FaceRecognitionError, StorageError, RetryExhaustedError) as exc:
        Log.error(f"{args.command} failed: {exc}")
        return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point: parse args -> initialize pool -> run the command."""
    args = build_parser().parse_args(argv)
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        return run(args, settings)
    finally:
        close_pool()


if __name__ == "__main__":
    raise SystemExit(main())
