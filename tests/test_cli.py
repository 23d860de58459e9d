from __future__ import annotations

import logging

import pytest
import yaml
from botocore.exceptions import ProfileNotFound
from typer.testing import CliRunner

from fakes import FakeClientFactory, FakeS3Client
from s3_backup import cli
from s3_backup.models import BucketResult, BucketStatus, Credential, ProgressState

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (
        "AWS_ACCESS_KEY_ID",
        "AWS_SECRET_ACCESS_KEY",
        "AWS_PROFILE",
        "AWS_REGION",
        "AWS_DEFAULT_REGION",
    ):
        monkeypatch.delenv(var, raising=False)
    # keep the default config/config.yaml lookup away from the repo
    monkeypatch.setattr(cli, "DEFAULT_CONFIG", "does-not-exist.yaml")
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake(monkeypatch):
    s3 = FakeS3Client(
        objects={
            "photos": [("2024/a.jpg", b"aaa"), ("2024/", b""), ("readme.txt", b"hi")],
            "logs": [("app.log", b"log")],
        }
    )
    factory = FakeClientFactory(s3)
    monkeypatch.setattr(cli, "get_s3_client", factory)
    return factory


def test_buckets_lists_names_and_regions(fake):
    result = runner.invoke(cli.app, ["--region", "eu-west-1", "buckets"])
    assert result.exit_code == 0, result.output
    assert "photos\teu-west-1" in result.output
    assert "logs\teu-west-1" in result.output


def test_backup_named_bucket(fake, tmp_path):
    dest = tmp_path / "out"
    result = runner.invoke(cli.app, ["backup", "photos", "--to", str(dest), "--no-progress"])

    assert result.exit_code == 0, result.output
    assert (dest / "photos" / "2024" / "a.jpg").read_bytes() == b"aaa"
    assert (dest / "photos" / "readme.txt").read_bytes() == b"hi"
    assert not (dest / "logs").exists()
    assert "Bucket structure:" in result.output
    assert "└── readme.txt" in result.output
    assert "All buckets downloaded successfully." in result.output


def test_backup_all(fake, tmp_path):
    result = runner.invoke(cli.app, ["backup", "--all", "--to", str(tmp_path), "--no-progress", "--no-tree"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "photos").is_dir()
    assert (tmp_path / "logs" / "app.log").exists()
    assert "Bucket structure:" not in result.output


def test_unknown_bucket_rejected(fake, tmp_path):
    result = runner.invoke(cli.app, ["backup", "nope", "--to", str(tmp_path)])
    assert result.exit_code == 2
    assert not any(tmp_path.iterdir())


def test_no_selection_rejected(fake, tmp_path):
    result = runner.invoke(cli.app, ["backup", "--to", str(tmp_path)])
    assert result.exit_code == 2


def test_failed_bucket_sets_exit_code(fake, tmp_path):
    fake.client.list_failures = {"logs": {1}}
    result = runner.invoke(cli.app, ["backup", "photos", "logs", "--to", str(tmp_path), "--no-progress"])
    assert result.exit_code == 1
    assert "logs: aborted" in result.output
    assert (tmp_path / "photos" / "readme.txt").exists()


def test_wrong_region_skip_is_not_a_failure(fake, tmp_path):
    fake.client.redirect_buckets = {"logs"}
    result = runner.invoke(cli.app, ["backup", "--all", "--to", str(tmp_path), "--no-progress"])
    assert result.exit_code == 0, result.output
    assert "Skipping bucket logs" in result.output


def test_show_errors_prints_failed_keys(fake, tmp_path):
    fake.client.stream_failures = {("photos", "readme.txt"): 0}
    result = runner.invoke(
        cli.app, ["backup", "photos", "--to", str(tmp_path), "--no-progress", "--show-errors"]
    )
    assert result.exit_code == 1
    assert "[ERROR] readme.txt:" in result.output


def test_config_file_supplies_selection_and_credentials(fake, tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(
            {
                "aws": {"access_key_id": "YAMLKEY", "secret_access_key": "yamlsecret", "region": "ap-south-1",
                        "connect_timeout": 9},
                "backup": {"to": str(tmp_path / "yaml-dest"), "buckets": ["logs"], "progress": False},
            }
        )
    )
    result = runner.invoke(cli.app, ["backup", "-c", str(cfg)])

    assert result.exit_code == 0, result.output
    assert (tmp_path / "yaml-dest" / "logs" / "app.log").exists()
    cred, region = fake.calls[-1]
    assert cred == Credential(access_key_id="YAMLKEY", secret_access_key="yamlsecret", region="ap-south-1")
    assert region == "ap-south-1"


def test_credential_precedence_flags_env_yaml(monkeypatch):
    cfg = {"aws": {"access_key_id": "YAML", "secret_access_key": "yaml", "region": "yaml-region", "profile": "p"}}
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "ENV")
    monkeypatch.setenv("AWS_REGION", "env-region")

    cred = cli._credential_from_cfg(cfg, cli.Settings(aws_region="flag-region"), access_key_id="FLAG")
    assert cred.access_key_id == "FLAG"
    assert cred.secret_access_key == "yaml"
    assert cred.region == "flag-region"
    assert cred.profile == "p"

    cred = cli._credential_from_cfg(cfg, cli.Settings())
    assert cred.access_key_id == "ENV"
    assert cred.region == "env-region"


def test_region_defaults_to_us_east_1():
    assert cli._credential_from_cfg({}, cli.Settings()).region == "us-east-1"


def test_client_kwargs_from_yaml():
    cfg = {"aws": {"retries_max_attempts": 5, "read_timeout": 30, "region": "x"}}
    assert cli._client_kwargs(cfg) == {"retries_max_attempts": 5, "read_timeout": 30}


def test_listing_error_exits_1(monkeypatch, tmp_path):
    class Broken:
        def list_buckets(self, **kwargs):
            raise RuntimeError("no network")

    monkeypatch.setattr(cli, "get_s3_client", lambda *a, **kw: Broken())
    result = runner.invoke(cli.app, ["backup", "--all", "--to", str(tmp_path)])
    assert result.exit_code == 1


def test_buckets_with_unknown_profile_exits_1(monkeypatch):
    def no_profile(*args, **kwargs):
        raise ProfileNotFound(profile="nope")

    monkeypatch.setattr(cli, "get_s3_client", no_profile)
    result = runner.invoke(cli.app, ["--profile", "nope", "buckets"])

    assert result.exit_code == 1
    assert not isinstance(result.exception, ProfileNotFound)


def test_report_counts_against_counting_pass(capsys):
    result = BucketResult(
        bucket="b",
        region="us-east-1",
        status=BucketStatus.COMPLETED,
        progress=ProgressState(bucket="b", total_objects=1, total_bytes=1, downloaded_objects=1, downloaded_bytes=1),
        downloaded=[("a", "/tmp/b/a"), ("c", "/tmp/b/c")],
    )
    cli._report(result, show_tree=False)

    out = capsys.readouterr().out
    assert "1/1 objects" in out
    assert "2/1" not in out


def test_backup_of_grown_bucket_never_reports_past_total(monkeypatch, tmp_path):
    s3 = FakeS3Client(objects={"b": [("a", b"1")]})
    original = s3.list_objects_v2

    def grow_after_first_pass(**kwargs):
        resp = original(**kwargs)
        if kwargs.get("MaxKeys") != 1 and ("c", b"3") not in s3.objects["b"]:
            s3.objects["b"].append(("c", b"3"))
        return resp

    s3.list_objects_v2 = grow_after_first_pass
    monkeypatch.setattr(cli, "get_s3_client", FakeClientFactory(s3))
    result = runner.invoke(cli.app, ["backup", "b", "--to", str(tmp_path), "--no-progress", "--no-tree"])

    assert result.exit_code == 0, result.output
    assert "1/1 objects" in result.output
    assert (tmp_path / "b" / "c").read_bytes() == b"3"
