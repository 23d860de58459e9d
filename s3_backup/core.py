from __future__ import annotations
from typing import Any, Dict, Iterator, List, Optional, Tuple
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import BucketUnavailable, ListingFailure, RegionMismatch, get_logger, log_and_reraise
from .models import BucketDescriptor, Credential, ListingPage, entry_from_listing

log = get_logger(__name__)

CONNECT_TIMEOUT = 5
READ_TIMEOUT = 5
MAX_ATTEMPTS = 3

_REDIRECT_CODES = {"PermanentRedirect", "301"}


def get_s3_client(
    credential: Optional[Credential] = None,
    region_name: Optional[str] = None,
    retries_max_attempts: int = MAX_ATTEMPTS,
    retries_mode: str = "standard",
    connect_timeout: int = CONNECT_TIMEOUT,
    read_timeout: int = READ_TIMEOUT,
):
    """
    Create a boto3 S3 client bound to one credential set and one region.

    ``retries_max_attempts`` counts the initial request, so the default of 3
    means one call plus two retries of transient failures.
    """
    credential = credential or Credential()
    cfg = Config(
        retries={"total_max_attempts": retries_max_attempts, "mode": retries_mode},
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
    )
    region = region_name or credential.region
    if credential.profile:
        session = boto3.Session(profile_name=credential.profile, region_name=region)
    else:
        session = boto3.Session(
            aws_access_key_id=credential.access_key_id,
            aws_secret_access_key=credential.secret_access_key,
            region_name=region,
        )
    return session.client("s3", config=cfg)


def list_buckets(s3_client, default_region: str) -> List[BucketDescriptor]:
    """
    Return the account-wide bucket listing.

    Buckets carry the region reported by the API when present, otherwise the
    account's configured region.
    """
    buckets: List[BucketDescriptor] = []
    params: Dict[str, Any] = {}
    while True:
        resp = s3_client.list_buckets(**params)
        for b in resp.get("Buckets", []) or []:
            buckets.append(BucketDescriptor(name=b["Name"], region=b.get("BucketRegion") or default_region))
        token = resp.get("ContinuationToken")
        if not token:
            return buckets
        params["ContinuationToken"] = token


def _is_redirect(e: ClientError) -> bool:
    status = (e.response.get("ResponseMetadata") or {}).get("HTTPStatusCode")
    code = str((e.response.get("Error") or {}).get("Code", ""))
    return status == 301 or code in _REDIRECT_CODES


def check_bucket_region(s3_client, bucket: str, region: Optional[str] = None) -> None:
    """
    Check the bucket with a one-key listing.
    Raise RegionMismatch when the bucket lives in another region, BucketUnavailable
    on any other failure.

    botocore follows S3's 301 redirects on its own, so a successful reply is
    still checked against the ``x-amz-bucket-region`` header. The 301 error
    only surfaces when botocore cannot work out the bucket's region.
    """
    expected = region or s3_client.meta.region_name
    try:
        resp = s3_client.list_objects_v2(Bucket=bucket, MaxKeys=1)
    except ClientError as e:
        if _is_redirect(e):
            raise RegionMismatch(bucket, expected) from e
        raise BucketUnavailable(f"error checking bucket {bucket}: {e}") from e
    except BotoCoreError as e:
        raise BucketUnavailable(f"error checking bucket {bucket}: {e}") from e
    headers = (resp.get("ResponseMetadata") or {}).get("HTTPHeaders") or {}
    actual = headers.get("x-amz-bucket-region")
    if actual and expected and actual != expected:
        log.debug("%s: answered from %s, expected %s", bucket, actual, expected)
        raise RegionMismatch(bucket, expected)


@log_and_reraise(ListingFailure)
def fetch_page(s3_client, bucket: str, continuation_token: Optional[str] = None,
               page_size: Optional[int] = None) -> Dict[str, Any]:
    params: Dict[str, Any] = {"Bucket": bucket}
    if page_size:
        params["MaxKeys"] = page_size
    if continuation_token:
        params["ContinuationToken"] = continuation_token
    return s3_client.list_objects_v2(**params)


def iter_pages(s3_client, bucket: str, page_size: Optional[int] = None) -> Iterator[ListingPage]:
    """
    Yield listing pages in order, feeding each page's continuation token into
    the next request. Stops on the first non-truncated page.
    """
    token: Optional[str] = None
    number = 1
    while True:
        resp = fetch_page(s3_client, bucket, continuation_token=token, page_size=page_size)
        page = ListingPage(
            number=number,
            entries=[entry_from_listing(obj) for obj in resp.get("Contents", []) or []],
            is_truncated=bool(resp.get("IsTruncated")),
            continuation_token=resp.get("NextContinuationToken"),
        )
        log.debug("%s: page %d with %d objects", bucket, number, len(page.entries))
        yield page
        if not page.is_truncated or not page.continuation_token:
            return
        token = page.continuation_token
        number += 1


def count_objects(s3_client, bucket: str, page_size: Optional[int] = None) -> Tuple[int, int]:
    """First pass: total object count and total byte size of the bucket."""
    total_objects = 0
    total_bytes = 0
    for page in iter_pages(s3_client, bucket, page_size=page_size):
        total_objects += len(page.entries)
        total_bytes += sum(e.size for e in page.entries)
    return total_objects, total_bytes
