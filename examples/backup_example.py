from __future__ import annotations
from s3_backup.core import get_s3_client, list_buckets
from s3_backup.download import mirror_buckets
from s3_backup.models import Credential

if __name__ == "__main__":
    cred = Credential(region="us-east-1")
    account = list_buckets(get_s3_client(cred), cred.region)
    results = mirror_buckets(
        cred,
        selected=["my-bucket"],
        dst_root="s3_buckets",
        buckets=account,
        progress=True,
    )
    for r in results:
        print(r.bucket, r.status.value, "Downloaded:", len(r.downloaded), "Errors:", len(r.errors))
