from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .builder import build_archive
from .compress import compress_archive
from .constants import BASE_NAME, ENCRYPTED_SUFFIX, GZIP_SUFFIX, TAR_SUFFIX
from .encryption import encrypt_file
from .errors import WeaveError
from .job import JobConfig, select_files
from .listing import list_files, working_stem
from .pathutil import norm_path
from .remote import upload_artifacts
from .result import Issue, Outcome
from .splice import splice_archive
from .writer import ArchiveIndex


# (stage, done, total): stage is "base" or a configuration name
StageProgressFn = Callable[[str, int, int], None]


@dataclass
class JobReport:
    artifacts: Dict[str, str] = field(default_factory=dict)
    built: List[str] = field(default_factory=list)
    up_to_date: List[str] = field(default_factory=list)
    indexes: Dict[str, ArchiveIndex] = field(default_factory=dict)
    uploaded: List[str] = field(default_factory=list)


def _remove(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class _Job:
    """One packaging run; every failure is fatal for the whole run."""

    def __init__(self, job: JobConfig, progress: Optional[StageProgressFn]):
        self.job = job
        self.progress = progress
        self.warnings: List[Issue] = []
        self.report = JobReport()

    def _stage_progress(self, stage: str):
        if self.progress is None:
            return None
        return lambda done, total: self.progress(stage, done, total)

    def _take(self, outcome: Outcome):
        self.warnings.extend(outcome.warnings)
        return outcome.unwrap()

    def final_path(self, stem: str, name: str) -> str:
        path = os.path.join(self.job.working_dir, f"{stem}-{name}{TAR_SUFFIX}{GZIP_SUFFIX}")
        if self.job.key_file:
            path += ENCRYPTED_SUFFIX
        return path

    def finish(self, tar_path: str) -> str:
        """Compress (and encrypt) an archive, dropping each intermediate once its successor exists."""
        gz_path = self._take(compress_archive(tar_path, tar_path + GZIP_SUFFIX))
        _remove(tar_path)
        if not self.job.key_file:
            return gz_path
        enc_path = encrypt_file(gz_path, self.job.key_file)
        _remove(gz_path)
        return enc_path

    def run(self) -> JobReport:
        job = self.job
        ignore = list(job.ignore)
        inside = os.path.relpath(job.working_dir, job.source)
        if inside != os.pardir and not inside.startswith(os.pardir + os.sep):
            # working files never feed back into the listing
            ignore.append(re.compile("^" + re.escape(norm_path(inside)) + "/"))
        listing = list_files(job.source, ignore)
        selection = select_files(listing, job.configurations)
        stem = working_stem(listing)
        os.makedirs(job.working_dir, exist_ok=True)

        names = [BASE_NAME] + [c.name for c in job.configurations]
        pending = []
        for name in names:
            final = self.final_path(stem, name)
            self.report.artifacts[name] = final
            if os.path.exists(final):
                self.report.up_to_date.append(name)
            else:
                pending.append(name)
        if not pending:
            return self.report

        base_tar = os.path.join(job.working_dir, f"{stem}-{BASE_NAME}{TAR_SUFFIX}")
        base_index = self._take(
            build_archive(job.source, selection.base, base_tar, progress=self._stage_progress(BASE_NAME))
        )
        self.report.indexes[BASE_NAME] = base_index

        for conf in job.configurations:
            if conf.name not in pending:
                continue
            conf_tar = os.path.join(job.working_dir, f"{stem}-{conf.name}{TAR_SUFFIX}")
            index = self._take(
                splice_archive(
                    base_index,
                    base_tar,
                    job.source,
                    selection.configurations[conf.name],
                    conf_tar,
                    progress=self._stage_progress(conf.name),
                )
            )
            self.report.indexes[conf.name] = index
            self.finish(conf_tar)
            self.report.built.append(conf.name)

        if BASE_NAME in pending:
            self.finish(base_tar)
            self.report.built.insert(0, BASE_NAME)
        else:
            _remove(base_tar)

        if job.s3 is not None:
            new = [self.report.artifacts[name] for name in self.report.built]
            self.report.uploaded = upload_artifacts(job.s3, new)
        return self.report


def run_job(job: JobConfig, *, progress: Optional[StageProgressFn] = None) -> Outcome[JobReport]:
    """Build the base archive and one spliced archive per configuration, then compress/encrypt/upload.

    Artifacts whose final file already exists (same input size and newest
    mtime) are reported as up to date and not rebuilt.
    """
    runner = _Job(job, progress)
    try:
        report = runner.run()
    except WeaveError as exc:
        return Outcome.failure(exc, runner.warnings)
    except OSError as exc:
        return Outcome.failure(WeaveError(f"Packaging failed ({exc})", job.working_dir), runner.warnings)
    return Outcome.success(report, runner.warnings)
