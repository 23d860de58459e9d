from __future__ import annotations
from typing import Callable, Dict, Iterable, List, Optional
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from .core import check_bucket_region, count_objects, get_s3_client, iter_pages
from .errors import (
    BucketUnavailable,
    FilesystemFailure,
    ListingFailure,
    RegionMismatch,
    TransferFailure,
    get_logger,
)
from .models import BucketDescriptor, BucketResult, BucketStatus, Credential, ObjectEntry
from .progress import ProgressAccumulator, ProgressListener
from .tree import KeyTree
from .utils import ensure_dir, human_bytes, safe_local_path

log = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024

ResultListener = Callable[[BucketResult], None]


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        log.warning("could not remove partial file %s: %s", path, e)


def stream_object(
    s3_client,
    bucket: str,
    key: str,
    dst_path: str | Path,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """
    Stream one object to dst_path chunk by chunk and return the bytes written.
    A failed transfer never leaves a partial file behind.
    """
    dst = Path(dst_path)
    try:
        ensure_dir(dst.parent)
    except OSError as e:
        raise FilesystemFailure(f"cannot create {dst.parent}: {e}") from e

    try:
        resp = s3_client.get_object(Bucket=bucket, Key=key)
    except (BotoCoreError, ClientError) as e:
        raise TransferFailure(str(e)) from e

    body = resp["Body"]
    written = 0
    try:
        try:
            f = open(dst, "wb")
        except OSError as e:
            raise FilesystemFailure(f"cannot open {dst}: {e}") from e
        try:
            with f:
                for chunk in body.iter_chunks(chunk_size):
                    try:
                        f.write(chunk)
                    except OSError as e:
                        raise FilesystemFailure(f"cannot write {dst}: {e}") from e
                    written += len(chunk)
        except FilesystemFailure:
            _discard(dst)
            raise
        except (BotoCoreError, ClientError) as e:
            _discard(dst)
            raise TransferFailure(f"stream interrupted after {written} bytes: {e}") from e
        except Exception as e:
            # socket/ssl/urllib3 errors botocore did not wrap
            _discard(dst)
            raise TransferFailure(f"stream interrupted after {written} bytes: {e!r}") from e
    finally:
        body.close()
    return written


def mirror_entry(s3_client, bucket: str, entry: ObjectEntry, bucket_root: Path,
                 chunk_size: int = CHUNK_SIZE) -> tuple[Path, int]:
    """Materialize one listing entry under bucket_root; returns (local path, bytes)."""
    dst = safe_local_path(bucket_root, entry.key)
    if entry.is_directory:
        try:
            ensure_dir(dst)
        except OSError as e:
            raise FilesystemFailure(f"cannot create {dst}: {e}") from e
        return dst, 0
    nbytes = stream_object(s3_client, bucket, entry.key, dst, chunk_size=chunk_size)
    log.debug("%s/%s -> %s (%d bytes)", bucket, entry.key, dst, nbytes)
    return dst, nbytes


def mirror_bucket(
    s3_client,
    bucket: BucketDescriptor,
    dst_root: str | Path,
    progress: bool = False,
    on_progress: Optional[ProgressListener] = None,
    page_size: Optional[int] = None,
    chunk_size: int = CHUNK_SIZE,
) -> BucketResult:
    """
    Back up one bucket into dst_root/<bucket>.

    Region check, then a counting pass, then a second listing pass that builds
    the key tree and downloads every object in listing order.
    """
    name = bucket.name
    log.info("Downloading bucket: %s", name)

    try:
        check_bucket_region(s3_client, name, bucket.region)
    except RegionMismatch as e:
        log.warning("Skipping bucket %s as it's not in the specified region (%s).", name, bucket.region)
        return BucketResult(bucket=name, region=bucket.region, status=BucketStatus.SKIPPED_WRONG_REGION, error=str(e))
    except BucketUnavailable as e:
        log.error("%s", e)
        return BucketResult(bucket=name, region=bucket.region, status=BucketStatus.SKIPPED_UNAVAILABLE, error=str(e))

    try:
        total_objects, total_bytes = count_objects(s3_client, name, page_size=page_size)
    except ListingFailure as e:
        return BucketResult(bucket=name, region=bucket.region, status=BucketStatus.ABORTED, error=str(e))
    log.info("%s: %d objects, %s", name, total_objects, human_bytes(total_bytes))

    bucket_root = Path(dst_root) / name
    try:
        ensure_dir(bucket_root)
    except OSError as e:
        log.error("cannot create %s: %s", bucket_root, e)
        return BucketResult(bucket=name, region=bucket.region, status=BucketStatus.ABORTED, error=str(e))

    tree = KeyTree()
    tracker = ProgressAccumulator(bucket=name, listener=on_progress, bar=progress)
    downloaded: List[tuple[str, str]] = []
    errors: List[str] = []
    tracker.start(total_objects, total_bytes)

    try:
        for page in iter_pages(s3_client, name, page_size=page_size):
            for entry in page.entries:
                tree.add(entry.key)
                nbytes = 0
                try:
                    path, nbytes = mirror_entry(s3_client, name, entry, bucket_root, chunk_size=chunk_size)
                    downloaded.append((entry.key, str(path)))
                except TransferFailure as e:
                    log.error("%s/%s: %s", name, entry.key, e)
                    errors.append(f"{entry.key}: {e}")
                tracker.advance(1, nbytes)
    except ListingFailure as e:
        tracker.close()
        return BucketResult(
            bucket=name,
            region=bucket.region,
            status=BucketStatus.ABORTED,
            progress=tracker.snapshot(),
            tree=tree.sorted_paths(),
            downloaded=downloaded,
            errors=errors,
            error=str(e),
        )

    tracker.finish()
    status = BucketStatus.COMPLETED_WITH_ERRORS if errors else BucketStatus.COMPLETED
    log.info("%s: %s, %d downloaded, %d errors", name, status.value, len(downloaded), len(errors))
    return BucketResult(
        bucket=name,
        region=bucket.region,
        status=status,
        progress=tracker.snapshot(),
        tree=tree.sorted_paths(),
        downloaded=downloaded,
        errors=errors,
    )


def mirror_buckets(
    credential: Credential,
    selected: Iterable[str],
    dst_root: str | Path,
    buckets: Iterable[BucketDescriptor],
    client_factory: Callable[..., object] = get_s3_client,
    progress: bool = False,
    on_progress: Optional[ProgressListener] = None,
    on_result: Optional[ResultListener] = None,
    client_kwargs: Optional[Dict] = None,
    page_size: Optional[int] = None,
) -> List[BucketResult]:
    """
    Back up the selected buckets one after another.

    A fresh client is built per bucket in that bucket's region. One bad bucket
    never stops the run; every bucket yields a BucketResult.
    """
    by_name: Dict[str, BucketDescriptor] = {b.name: b for b in buckets}
    results: List[BucketResult] = []

    for name in selected:
        descriptor = by_name.get(name)
        if descriptor is None:
            log.error("bucket %s is not in the account listing", name)
            result = BucketResult(
                bucket=name,
                region=None,
                status=BucketStatus.SKIPPED_UNAVAILABLE,
                error=f"bucket {name} is not in the account listing",
            )
        else:
            client = client_factory(credential, region_name=descriptor.region, **(client_kwargs or {}))
            result = mirror_bucket(
                client,
                descriptor,
                dst_root,
                progress=progress,
                on_progress=on_progress,
                page_size=page_size,
            )
        results.append(result)
        if on_result:
            on_result(result)

    return results
