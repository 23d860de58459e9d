# cli.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

import typer

from .core import get_s3_client, list_buckets
from .download import mirror_buckets
from .errors import setup_logging
from .models import DEFAULT_REGION, BucketResult, BucketStatus, Credential
from .tree import render_tree
from .utils import ensure_dir, human_bytes, read_yaml

app = typer.Typer(add_completion=False, help="S3 bucket backup CLI")

log = logging.getLogger("s3_backup.cli")

# ---------------- Settings kept in Typer context ----------------
@dataclass
class Settings:
    verbose: bool = False
    aws_profile: Optional[str] = None
    aws_region: Optional[str] = None

DEFAULT_CONFIG = "config/config.yaml"
DEFAULT_DESTINATION = "./s3_buckets"

_STATUS_COLORS = {
    BucketStatus.COMPLETED: typer.colors.GREEN,
    BucketStatus.COMPLETED_WITH_ERRORS: typer.colors.YELLOW,
    BucketStatus.SKIPPED_WRONG_REGION: typer.colors.YELLOW,
    BucketStatus.SKIPPED_UNAVAILABLE: typer.colors.RED,
    BucketStatus.ABORTED: typer.colors.RED,
}

# ---------------- Helpers ----------------
def _load_cfg(config_path: Optional[str]) -> dict:
    """
    Load YAML config if present, otherwise return {}.
    Never crash on missing/empty config.
    """
    path = config_path or DEFAULT_CONFIG
    try:
        cfg = read_yaml(path)
    except FileNotFoundError:
        return {}
    if not cfg:
        return {}
    return cfg

def _first(*values):
    for v in values:
        if v:
            return v
    return None

def _credential_from_cfg(
    cfg: dict,
    settings: Settings,
    access_key_id: Optional[str] = None,
    secret_access_key: Optional[str] = None,
) -> Credential:
    """
    Resolve credentials and the account region with priority:
    CLI flags -> ENV -> YAML -> defaults.
    """
    aws = (cfg.get("aws") or {}) if cfg else {}
    env = os.environ
    return Credential(
        access_key_id=_first(access_key_id, env.get("AWS_ACCESS_KEY_ID"), aws.get("access_key_id")),
        secret_access_key=_first(secret_access_key, env.get("AWS_SECRET_ACCESS_KEY"), aws.get("secret_access_key")),
        region=_first(
            settings.aws_region,
            env.get("AWS_REGION"),
            env.get("AWS_DEFAULT_REGION"),
            aws.get("region"),
        ) or DEFAULT_REGION,
        profile=_first(settings.aws_profile, env.get("AWS_PROFILE"), aws.get("profile")),
    )

def _client_kwargs(cfg: dict) -> dict:
    aws = (cfg.get("aws") or {}) if cfg else {}
    keys = ("retries_max_attempts", "retries_mode", "connect_timeout", "read_timeout")
    return {k: aws[k] for k in keys if aws.get(k) is not None}

def _report(result: BucketResult, show_tree: bool) -> None:
    color = _STATUS_COLORS.get(result.status, typer.colors.WHITE)
    if result.status is BucketStatus.SKIPPED_WRONG_REGION:
        typer.secho(
            f"Skipping bucket {result.bucket} as it's not in the specified region ({result.region}).",
            fg=color,
        )
        return
    if result.progress is not None:
        p = result.progress
        typer.secho(
            f"{result.bucket}: {result.status.value} "
            f"({p.downloaded_objects}/{p.total_objects} objects, {human_bytes(p.downloaded_bytes)})",
            fg=color,
        )
    else:
        typer.secho(f"{result.bucket}: {result.status.value}: {result.error}", fg=color)
    if show_tree and result.tree:
        typer.secho("\nBucket structure:", fg=typer.colors.GREEN)
        for line in render_tree(result.tree, root=result.bucket):
            typer.secho(line, fg=typer.colors.YELLOW)

# ---------------- Root options (global) ----------------
@app.callback()
def _root(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
    profile: Optional[str] = typer.Option(None, "--profile", help="AWS profile name"),
    region: Optional[str] = typer.Option(None, "--region", help="AWS region (e.g. us-east-1)"),
):
    """
    Set up global Settings and logging once.
    """
    level = logging.DEBUG if verbose else logging.INFO
    setup_logging(level=level)

    ctx.obj = Settings(
        verbose=verbose,
        aws_profile=profile,
        aws_region=region,
    )

# ---------------- BUCKETS ----------------
@app.command("buckets")
def cmd_buckets(
    ctx: typer.Context,
    access_key_id: Optional[str] = typer.Option(None, "--access-key-id", help="AWS access key id"),
    secret_access_key: Optional[str] = typer.Option(None, "--secret-access-key", help="AWS secret access key"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """List the account's buckets with their region."""
    cfg = _load_cfg(config)
    credential = _credential_from_cfg(cfg, ctx.obj, access_key_id, secret_access_key)
    try:
        buckets = list_buckets(get_s3_client(credential, **_client_kwargs(cfg)), credential.region)
    except Exception as e:
        log.error("Error listing S3 buckets: %s", e)
        raise typer.Exit(code=1)
    if not buckets:
        typer.secho(f"No S3 buckets found in region {credential.region}.", fg=typer.colors.YELLOW)
        return
    for b in buckets:
        typer.echo(f"{b.name}\t{b.region}")

# ---------------- BACKUP ----------------
@app.command("backup")
def cmd_backup(
    ctx: typer.Context,
    names: Optional[List[str]] = typer.Argument(None, help="Buckets to back up"),
    all_buckets: bool = typer.Option(False, "--all", help="Back up every bucket in the account"),
    to: Optional[str] = typer.Option(None, "--to", help="Local destination directory"),
    progress: bool = typer.Option(True, "--progress/--no-progress", help="Show progress bar"),
    show_tree: bool = typer.Option(True, "--tree/--no-tree", help="Print each bucket's structure"),
    show_errors: bool = typer.Option(False, "--show-errors/--no-show-errors", help="Print failed keys"),
    access_key_id: Optional[str] = typer.Option(None, "--access-key-id", help="AWS access key id"),
    secret_access_key: Optional[str] = typer.Option(None, "--secret-access-key", help="AWS secret access key"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Download every object of the selected buckets into <to>/<bucket>/."""
    cfg = _load_cfg(config)
    bcfg = (cfg.get("backup") or {}) if cfg else {}

    # resolve values: CLI flag -> YAML
    dst = to or bcfg.get("to", DEFAULT_DESTINATION)
    progress_val = bcfg.get("progress", progress)
    tree_val = bcfg.get("tree", show_tree)
    all_val = all_buckets or bool(bcfg.get("all", False))
    wanted = list(names or []) or list(bcfg.get("buckets") or [])

    credential = _credential_from_cfg(cfg, ctx.obj, access_key_id, secret_access_key)
    client_kwargs = _client_kwargs(cfg)

    typer.secho(f"Listing buckets in region: {credential.region}", fg=typer.colors.CYAN)
    try:
        account = list_buckets(get_s3_client(credential, **client_kwargs), credential.region)
    except Exception as e:
        log.error("Error listing S3 buckets: %s", e)
        raise typer.Exit(code=1)
    if not account:
        typer.secho(f"No S3 buckets found in region {credential.region}.", fg=typer.colors.YELLOW)
        return

    known = {b.name for b in account}
    if all_val:
        selected = [b.name for b in account]
    else:
        if not wanted:
            raise typer.BadParameter("Name at least one bucket, pass --all, or set backup.buckets in config.yaml")
        unknown = [n for n in wanted if n not in known]
        if unknown:
            raise typer.BadParameter(f"Unknown bucket(s): {', '.join(unknown)}")
        selected = wanted

    typer.echo("\nSelected S3 Buckets:")
    for n in selected:
        typer.echo(f"- {n}")

    ensure_dir(dst)

    def _on_result(result: BucketResult) -> None:
        _report(result, tree_val)
        if show_errors:
            for e in result.errors:
                typer.echo(f"[ERROR] {e}")

    results = mirror_buckets(
        credential,
        selected,
        dst,
        account,
        client_factory=get_s3_client,
        progress=progress_val,
        on_result=_on_result,
        client_kwargs=client_kwargs,
    )

    for r in results:
        log.info(
            "Bucket=%s Status=%s Downloaded=%d Errors=%d Dest=%s",
            r.bucket, r.status.value, len(r.downloaded), len(r.errors), dst,
        )

    failed = [r for r in results if not r.ok]
    if failed:
        typer.secho(f"{len(failed)} of {len(results)} bucket(s) had errors.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.secho("All buckets downloaded successfully.", fg=typer.colors.GREEN)
