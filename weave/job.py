from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern

from .constants import BASE_NAME, DEFAULT_WORKING_DIR
from .errors import JobConfigError
from .listing import FileListing, compile_patterns, matches_any


_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


@dataclass
class S3Config:
    """Upload target for final artifacts.

    Attributes:
        bucket: S3 bucket name
        prefix: Key prefix prepended to each artifact's file name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO and friends)
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str
    prefix: str = ""
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None


@dataclass
class Configuration:
    name: str
    filters: List[Pattern[str]] = field(default_factory=list)


@dataclass
class JobConfig:
    source: str
    working_dir: str
    ignore: List[Pattern[str]] = field(default_factory=list)
    configurations: List[Configuration] = field(default_factory=list)
    key_file: Optional[str] = None
    s3: Optional[S3Config] = None


@dataclass
class Selection:
    """Relative paths split between the base archive and each configuration."""
    base: List[str] = field(default_factory=list)
    configurations: Dict[str, List[str]] = field(default_factory=dict)


def _patterns(raw: Any, what: str) -> List[Pattern[str]]:
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(p, str) for p in raw):
        raise JobConfigError(f"'{what}' must be a list of regular expressions")
    try:
        return compile_patterns(raw)
    except re.error as exc:
        raise JobConfigError(f"Invalid regular expression in '{what}': {exc}") from exc


def _resolve(base_dir: str, p: str) -> str:
    return os.path.normpath(os.path.join(base_dir, os.path.expanduser(p)))


def parse_job(doc: Dict[str, Any], base_dir: str) -> JobConfig:
    """Validate a decoded job document; relative paths are taken from ``base_dir``."""
    if not isinstance(doc, dict):
        raise JobConfigError("Job file must contain a JSON object")
    src = doc.get("src")
    if not isinstance(src, str) or not src:
        raise JobConfigError("Job file is missing 'src'")
    job = JobConfig(
        source=_resolve(base_dir, src),
        working_dir=_resolve(base_dir, doc.get("working_dir") or DEFAULT_WORKING_DIR),
        ignore=_patterns(doc.get("ignore"), "ignore"),
    )
    if job.working_dir == job.source:
        raise JobConfigError("'working_dir' must differ from 'src'")

    seen = set()
    for raw in doc.get("configurations") or []:
        if not isinstance(raw, dict):
            raise JobConfigError("Each configuration must be an object")
        name = raw.get("name")
        if not isinstance(name, str) or not _NAME_RE.match(name):
            raise JobConfigError(f"Invalid configuration name: {name!r}")
        if name == BASE_NAME or name in seen:
            raise JobConfigError(f"Duplicate or reserved configuration name: {name}")
        seen.add(name)
        job.configurations.append(Configuration(name=name, filters=_patterns(raw.get("filters"), f"{name}.filters")))

    enc = doc.get("encrypt")
    if enc is not None:
        if not isinstance(enc, dict) or not isinstance(enc.get("key_file"), str):
            raise JobConfigError("'encrypt' must be an object with a 'key_file'")
        job.key_file = _resolve(base_dir, enc["key_file"])

    s3 = doc.get("s3")
    if s3 is not None:
        if not isinstance(s3, dict) or not isinstance(s3.get("bucket"), str):
            raise JobConfigError("'s3' must be an object with a 'bucket'")
        try:
            job.s3 = S3Config(**s3)
        except TypeError as exc:
            raise JobConfigError(f"Unknown key in 's3': {exc}") from exc
    return job


def load_job(path: str) -> JobConfig:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            doc = json.load(fh)
    except OSError as exc:
        raise JobConfigError(f"Unable to read job file ({exc.strerror})", path) from exc
    except ValueError as exc:
        raise JobConfigError(f"Job file is not valid JSON ({exc})", path) from exc
    return parse_job(doc, os.path.dirname(os.path.abspath(path)))


def select_files(listing: FileListing, configurations: List[Configuration]) -> Selection:
    """Assign each listed file to the configurations whose filters match it, else to the base."""
    sel = Selection(configurations={c.name: [] for c in configurations})
    for rel in listing.paths:
        owners = [c.name for c in configurations if matches_any(rel, c.filters)]
        if not owners:
            sel.base.append(rel)
        for name in owners:
            sel.configurations[name].append(rel)
    return sel
