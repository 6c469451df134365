from __future__ import annotations

import os
import sys
import argparse
import tarfile

from typing import List, Optional

from weave.builder import build_archive
from weave.compress import compress_archive
from weave.constants import GZIP_SUFFIX
from weave.errors import WeaveError
from weave.extract import extract_artifact
from weave.job import load_job
from weave.listing import list_files
from weave.pipeline import run_job
from weave.reader import read_index
from weave.remote import download_artifact, save_etag
from weave.result import Outcome
from weave.splice import splice_archive
from weave.writer import ArchiveIndex


def _print_warnings(outcome: Outcome) -> None:
    for issue in outcome.warnings:
        print(f"Warning: {issue}", file=sys.stderr)


def _report_failure(outcome: Outcome) -> bool:
    """Print warnings and the error (if any) of an outcome; True when it succeeded."""
    _print_warnings(outcome)
    if outcome.ok:
        return True
    print(f"Error: {outcome.error}", file=sys.stderr)
    return False


def _print_index(index: ArchiveIndex) -> None:
    print(f"Archive: {index.path}")
    for e in index:
        print(f"{e.start:>10}\t{e.length:>10}\t{e.name}")


def _progress(label: str):
    def _show(done: int, total: int) -> None:
        print(f"\r {label} {done} / {total}", end="", flush=True)
        if done == total:
            print()
    return _show


def cmd_build(job_file: str, *, quiet: bool = False, verbose: bool = False) -> bool:
    """Run a packaging job: base archive, one spliced archive per configuration,
    then compression, optional encryption and optional upload.

    Args:
        job_file: Path to the JSON job file.
        quiet: Suppress per-file progress.
        verbose: Print the entry layout of every archive built.
    """
    job = load_job(job_file)
    progress = None
    if not quiet:
        def progress(stage: str, done: int, total: int) -> None:
            print(f"\r Archiving {stage}: {done} / {total}", end="", flush=True)
            if done == total:
                print()

    outcome = run_job(job, progress=progress)
    if not _report_failure(outcome):
        return False
    report = outcome.value
    if verbose:
        for index in report.indexes.values():
            _print_index(index)
    for name, path in report.artifacts.items():
        state = "built" if name in report.built else "up to date"
        print(f"{name:>16}: {path} ({state})")
    for key in report.uploaded:
        print(f"  uploaded: s3://{job.s3.bucket}/{key}")
    return True


def cmd_pack(output: str, root: str, *, verbose: bool = False) -> bool:
    """Archive every file under ``root`` into a new tar at ``output``.

    Args:
        output: Destination .tar path.
        root: Directory to archive; entry names are relative to it.
        verbose: Print entry offsets once written.
    """
    listing = list_files(root)
    outcome = build_archive(listing.root, listing.paths, output, progress=_progress("Archiving"))
    if not _report_failure(outcome):
        return False
    if verbose:
        _print_index(outcome.value)
    print(f"Wrote {len(outcome.value)} entr{'y' if len(outcome.value) == 1 else 'ies'} to {output}")
    return True


def cmd_splice(base: str, output: str, root: str, paths: List[str], *, verbose: bool = False) -> bool:
    """Copy ``base`` to ``output`` and append ``paths`` after its last entry.

    Args:
        base: Existing tar archive (left untouched).
        output: Destination .tar path.
        root: Directory stripped from the new entry names.
        paths: Files to append, absolute or relative to ``root``.
        verbose: Print entry offsets once written.
    """
    base_index = read_index(base)
    outcome = splice_archive(base_index, base, root, paths, output, progress=_progress("Splicing"))
    if not _report_failure(outcome):
        return False
    if verbose:
        _print_index(outcome.value)
    print(f"Spliced {len(paths)} new entr{'y' if len(paths) == 1 else 'ies'} onto {base} -> {output}")
    return True


def cmd_compress(archive: str, output: Optional[str] = None) -> bool:
    """Gzip ``archive`` into ``output`` (default: ``archive + '.gz'``)."""
    outcome = compress_archive(archive, output or archive + GZIP_SUFFIX)
    if not _report_failure(outcome):
        return False
    print(f"Compressed to {outcome.value}")
    return True


def cmd_list(archive: str) -> bool:
    """List tar entries with header offset and total length."""
    _print_index(read_index(archive))
    return True


def cmd_extract(artifact: str, *, outdir: str = ".", key_file: Optional[str] = None) -> bool:
    """Decrypt/decompress/untar an artifact into ``outdir``."""
    names = extract_artifact(artifact, outdir, key_file=key_file)
    print(f"Extracted {len(names)} file(s) into {outdir}")
    return True


def cmd_fetch(url: str, outdir: str, *, key_file: Optional[str] = None) -> bool:
    """Download an artifact unless unchanged since the last fetch, then extract it.

    The server's ETag is remembered in ``outdir`` only after a successful extract.
    """
    info = download_artifact(url, outdir)
    if info is None:
        print("Object not modified, finishing up.")
        return True
    try:
        cmd_extract(info.file_path, outdir=outdir, key_file=key_file)
    finally:
        os.remove(info.file_path)
    save_etag(outdir, info.etag)
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="weave",
        description="Package a directory into a shared base archive plus spliced per-configuration archives",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_build = sub.add_parser("build", help="Run a packaging job file")
    ap_build.add_argument("job", help="JSON job file")
    ap_build.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    ap_build.add_argument("--verbose", help="print entry offsets of every archive", action="store_true")

    ap_pack = sub.add_parser("pack", help="Archive a directory into a new tar")
    ap_pack.add_argument("output", help="Output .tar path")
    ap_pack.add_argument("root", help="Directory to archive")
    ap_pack.add_argument("--verbose", help="print entry offsets", action="store_true")

    ap_splice = sub.add_parser("splice", help="Extend a copy of an existing tar with more files")
    ap_splice.add_argument("base", help="Existing .tar archive")
    ap_splice.add_argument("output", help="Output .tar path")
    ap_splice.add_argument("root", help="Directory stripped from new entry names")
    ap_splice.add_argument("paths", nargs="*", help="Files to append (absolute or relative to root)")
    ap_splice.add_argument("--verbose", help="print entry offsets", action="store_true")

    ap_compress = sub.add_parser("compress", help="Gzip an archive")
    ap_compress.add_argument("archive", help="Archive path")
    ap_compress.add_argument("output", nargs="?", help="Output path (default: ARCHIVE.gz)")

    ap_list = sub.add_parser("list", help="List archive entries with byte offsets")
    ap_list.add_argument("archive", help="Archive path")

    ap_extract = sub.add_parser("extract", help="Unpack a .tar, .tar.gz or .tar.gz.enc artifact")
    ap_extract.add_argument("artifact", help="Artifact path")
    ap_extract.add_argument("--outdir", default=".", help="Output directory")
    ap_extract.add_argument("--key-file", help="Key file for encrypted artifacts")

    ap_fetch = sub.add_parser("fetch", help="Download (if changed) and unpack an artifact")
    ap_fetch.add_argument("url", help="Artifact URL")
    ap_fetch.add_argument("outdir", help="Output directory (also holds the cached ETag)")
    ap_fetch.add_argument("--key-file", help="Key file for encrypted artifacts")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "build":
            ok = cmd_build(args.job, quiet=args.quiet, verbose=args.verbose)
        elif args.cmd == "pack":
            ok = cmd_pack(args.output, args.root, verbose=args.verbose)
        elif args.cmd == "splice":
            ok = cmd_splice(args.base, args.output, args.root, args.paths, verbose=args.verbose)
        elif args.cmd == "compress":
            ok = cmd_compress(args.archive, args.output)
        elif args.cmd == "list":
            ok = cmd_list(args.archive)
        elif args.cmd == "extract":
            ok = cmd_extract(args.artifact, outdir=args.outdir, key_file=args.key_file)
        elif args.cmd == "fetch":
            ok = cmd_fetch(args.url, args.outdir, key_file=args.key_file)
        else:
            raise RuntimeError("Unknown command")
    except WeaveError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (OSError, RuntimeError, tarfile.TarError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
