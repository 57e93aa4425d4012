from __future__ import annotations

import copy
import json
import stat
from pathlib import Path

import pytest


MINIMAL_TEMPLATE = {
    "AWSTemplateFormatVersion": "2010-09-09",
    "Description": "Artifact bucket",
    "Parameters": {
        "Env": {"Type": "String", "AllowedValues": ["dev", "prod"], "Default": "dev"},
    },
    "Resources": {
        "Bucket": {
            "Type": "AWS::S3::Bucket",
            "Properties": {
                "BucketName": {"Fn::Sub": "artifacts-${Env}"},
                "VersioningConfiguration": {"Status": "Enabled"},
                "Tags": [{"Key": "team", "Value": "platform"}],
            },
        },
    },
    "Outputs": {
        "BucketArn": {"Value": {"Fn::GetAtt": ["Bucket", "Arn"]}},
    },
}


class FakePkl:
    """A shell script standing in for the `pkl` binary."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.path = directory / "pkl"
        self._args_file = directory / "pkl-args.txt"
        self._stdout_file = directory / "pkl-stdout.txt"
        self._stderr_file = directory / "pkl-stderr.txt"

    def configure(
        self, *, stdout: str | bytes = "", stderr: str | bytes = "", exit_code: int = 0, sleep: float = 0
    ) -> "FakePkl":
        for target, content in ((self._stdout_file, stdout), (self._stderr_file, stderr)):
            target.write_bytes(content if isinstance(content, bytes) else content.encode("utf-8"))
        self._args_file.unlink(missing_ok=True)
        script = "\n".join(
            [
                "#!/bin/sh",
                f"printf '%s\\n' \"$@\" > '{self._args_file}'",
                f"exec sleep {sleep}" if sleep else ":",
                f"cat '{self._stdout_file}'",
                f"cat '{self._stderr_file}' >&2",
                f"exit {exit_code}",
                "",
            ]
        )
        self.path.write_text(script, encoding="utf-8")
        self.path.chmod(self.path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return self

    def returns(self, document) -> "FakePkl":
        return self.configure(stdout=json.dumps(document, indent=2))

    @property
    def called(self) -> bool:
        return self._args_file.exists()

    @property
    def args(self) -> list[str]:
        return self._args_file.read_text(encoding="utf-8").splitlines()


@pytest.fixture(autouse=True)
def _no_pkl_bin_env(monkeypatch):
    monkeypatch.delenv("PKL_BIN", raising=False)


@pytest.fixture
def fake_pkl(tmp_path):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    return FakePkl(bin_dir).returns(MINIMAL_TEMPLATE)


@pytest.fixture
def pkl_source(tmp_path):
    src_dir = tmp_path / "infra"
    src_dir.mkdir()
    path = src_dir / "main.pkl"
    path.write_text('amends "package://example.com/cfn@1.0.0#/template.pkl"\n', encoding="utf-8")
    return path


@pytest.fixture
def minimal_template():
    return copy.deepcopy(MINIMAL_TEMPLATE)
