from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import fields
from pathlib import Path
from typing import Optional

from . import __version__
from .config import CallerConfig
from .pipeline import run_pipeline
from .plotting import plot_dp_hist, plot_variant_type_counts
from .prefilter import analysis_bed_path, prefilter_bed
from .regions import ExclusionTree, iter_family_regions
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json
from .validation import check_bam_index, check_fasta_index, check_files_exist

_DEFAULTS = CallerConfig()


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    sys.stderr.write(f"{err.__class__.__name__}: {err}\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _config_from_args(args: argparse.Namespace) -> CallerConfig:
    """Map parsed flags onto CallerConfig; fields without a flag keep their defaults."""
    values = {}
    for f in fields(CallerConfig):
        if hasattr(args, f.name):
            values[f.name] = getattr(args, f.name)
    return CallerConfig(**values).validate()


def _add_prefilter_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-b",
        "--bed",
        required=True,
        type=_path_exists,
        help="Read families BED (chrom, start, end, family ID[, score, strand, W reads, C reads]).",
    )
    p.add_argument(
        "-e",
        "--exclude",
        action="append",
        default=[],
        type=_path_exists,
        help="BED of regions to exclude (repeatable), e.g. low-mappability regions.",
    )
    p.add_argument(
        "-a",
        "--min-total-depth",
        dest="min_total_depth",
        type=int,
        default=_DEFAULTS.min_total_depth,
        help="Minimum combined Watson + Crick depth.",
    )
    p.add_argument(
        "-s",
        "--min-stranded-depth",
        dest="min_stranded_depth",
        type=int,
        default=_DEFAULTS.min_stranded_depth,
        help="Minimum depth on each strand.",
    )
    p.add_argument(
        "--max-overlapping-families",
        dest="max_overlapping_families",
        type=int,
        default=_DEFAULTS.max_overlapping_families,
        help="Skip clusters of more overlapping read families than this (-1: no limit).",
    )
    p.add_argument("--outdir", default=None, help="Directory for the analysis BED, logs and report.")
    p.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mcscall",
        description=(
            "mcscall: duplex (Watson/Crick) consensus variant calling over barcoded read families."
        ),
    )
    p.add_argument("--version", action="version", version=f"mcscall {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # call
    # -----------------
    c = sub.add_parser(
        "call",
        help="Call variants supported by both strands of each read family.",
    )
    c.add_argument("-i", "--bam", required=True, type=_path_exists, help="Input BAM (sorted, indexed).")
    c.add_argument("-r", "--ref", required=True, type=_path_exists, help="Reference FASTA (faidx-indexed).")
    c.add_argument("-o", "--out", default="-", help="Output VCF (default: stdout).")
    _add_prefilter_args(c)
    c.add_argument(
        "--ignore-ends",
        dest="end_pad",
        type=int,
        default=_DEFAULTS.end_pad,
        help="Number of bases to ignore at each end of every read.",
    )
    c.add_argument(
        "--min-mapq",
        dest="min_mapq",
        type=int,
        default=_DEFAULTS.min_mapq,
        help="Minimum mapping quality.",
    )
    c.add_argument(
        "--min-af",
        dest="min_af",
        type=float,
        default=_DEFAULTS.min_af,
        help="Minimum allele fraction required on each strand.",
    )
    c.add_argument(
        "--min-base-quality",
        dest="min_base_quality",
        type=int,
        default=_DEFAULTS.min_base_quality,
        help="Bases below this quality are masked to N.",
    )
    c.add_argument(
        "--base-qual-penalty",
        dest="base_qual_penalty",
        type=float,
        default=_DEFAULTS.base_qual_penalty,
        help="Weight of a masked base in the strand depth (0-1).",
    )
    c.add_argument(
        "--allow-supplementary",
        dest="allow_supplementary",
        action="store_true",
        help="Keep reads with supplementary alignments (SA tag).",
    )
    c.add_argument(
        "-t",
        "--threads",
        type=int,
        default=_DEFAULTS.threads,
        help="Number of worker processes.",
    )
    c.add_argument("--debug-log", default=None, help="Write a per-family debug trace to this file.")
    c.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")

    # -----------------
    # prefilter
    # -----------------
    pf = sub.add_parser(
        "prefilter",
        help="Write the analysis BED (read families worth calling) and stop.",
    )
    _add_prefilter_args(pf)

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, duplex BAM, families BED and exclusion BED for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    return p


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def _load_exclusion(paths: list[str]) -> Optional[ExclusionTree]:
    if not paths:
        logging.getLogger("mcscall").warning(
            "No exclusion BED given (-e); consider masking low-mappability regions."
        )
        return None
    return ExclusionTree.from_bed_files(paths)


def cmd_prefilter(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve() if args.outdir else None
    log_path = _log_path(outdir, "prefilter.log") if outdir is not None and not args.dry_run else None
    _setup_logging(args.verbose, logfile=log_path)

    try:
        config = _config_from_args(args)
        out_bed = analysis_bed_path(args.bed, outdir)
        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"  analysis BED -> {out_bed}")
            return 0

        if outdir is not None:
            ensure_outdir(outdir)
        exclusion = _load_exclusion(args.exclude)
        counts = prefilter_bed(args.bed, out_bed, config=config, exclusion=exclusion)
        if outdir is not None:
            write_json(outdir / "prefilter.json", counts)
        print(str(out_bed))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_call(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve() if args.outdir else None
    log_path = _log_path(outdir, "call.log") if outdir is not None and not args.dry_run else None
    _setup_logging(args.verbose, logfile=log_path)

    logger = logging.getLogger("mcscall")
    logger.info("mcscall %s", __version__)

    try:
        config = _config_from_args(args)
        check_files_exist([args.bam, args.ref, args.bed, *args.exclude])
        check_bam_index(args.bam)
        check_fasta_index(args.ref)

        out_bed = analysis_bed_path(args.bed, outdir)
        to_stdout = str(args.out) in ("-", "stdout")

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Workers: {config.threads}")
            print("Planned outputs:")
            print(f"  analysis BED -> {out_bed}")
            print(f"  VCF -> {'stdout' if to_stdout else args.out}")
            if outdir is not None:
                print(f"  report.html -> {outdir / 'report.html'}")
                print(f"  summary.json -> {outdir / 'summary.json'}")
            return 0

        if outdir is not None:
            ensure_outdir(outdir)

        exclusion = _load_exclusion(args.exclude)
        prefilter_counts = prefilter_bed(args.bed, out_bed, config=config, exclusion=exclusion)

        run = run_pipeline(
            bam_path=args.bam,
            ref_fa=args.ref,
            regions=iter_family_regions(out_bed),
            out_vcf=args.out,
            config=config,
            exclusion=exclusion,
            debug_log=args.debug_log,
            total=prefilter_counts["families_kept"],
            progress=not bool(args.no_progress),
        )
        run["prefilter"] = prefilter_counts
        run["families_bed"] = str(args.bed)
        run["analysis_bed"] = str(out_bed)

        if outdir is None:
            if not to_stdout:
                print(str(args.out))
            return 0

        write_json(outdir / "summary.json", run)

        plots_dir = outdir / "plots"
        plots_dir.mkdir(parents=True, exist_ok=True)
        types_png = plots_dir / "variant_types.png"
        dp_png = plots_dir / "dp_hist.png"
        plot_variant_type_counts(counts=run["counts"], out_png=types_png)
        plot_dp_hist(dp_hist=run["dp_hist"], out_png=dp_png)

        report_path = render_report(
            outdir=outdir,
            version=__version__,
            run=run,
            plots={
                "variant_types": str(Path("plots") / types_png.name),
                "dp_hist": str(Path("plots") / dp_png.name),
            },
            prefilter_counts=prefilter_counts,
            families_bed=str(args.bed),
            analysis_bed=str(out_bed),
        )
        logger.info("Report written: %s", report_path)
        if not to_stdout:
            print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "call":
        return cmd_call(args)
    if args.cmd == "prefilter":
        return cmd_prefilter(args)
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
