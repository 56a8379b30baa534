# src/boltzmann_brain/cli.py
from __future__ import annotations
from dataclasses import replace
from typing import Any, Optional, Sequence
import argparse
import json
import sys

from boltzmann_brain import console as log
from boltzmann_brain.config import SamplerConfig
from boltzmann_brain.errors import BoltzmannError
from boltzmann_brain.pipeline import BoltzmannPipeline, PipelineConfig
from boltzmann_brain.system.serialize import system_from_dict
from boltzmann_brain.tuning.io import tuning_problem, write_tuning
from boltzmann_brain.tuning.tuned import Mode

__all__ = ["build_parser", "main"]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="boltzmann_brain",
        description="Tune combinatorial systems and sample Boltzmann structures.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-i", "--input", type=str, default=None, help="System document (JSON). Defaults to stdin.")
    common.add_argument("-o", "--output", type=str, default=None, help="Output file. Defaults to stdout.")
    common.add_argument("-t", "--tuning-file", type=str, default=None, help="Use precomputed tuning data (JSON or CSV).")
    common.add_argument("--save-tuning", type=str, default=None, help="Also write the tuning data used (JSON or CSV).")
    common.add_argument("-w", "--werror", action="store_true", help="Treat warnings as errors.")
    common.add_argument("-f", "--force", action="store_true", help="Continue with ill-founded systems.")
    common.add_argument("--quiet", action="store_true", help="Only print warnings and errors.")

    sub.add_parser("tune", parents=[common], help="Write the regular-mode tuned system.")
    sub.add_parser("spec", parents=[common], help="Write the tuning problem for an external numeric solver.")

    s = sub.add_parser("sample", parents=[common], help="Write sampled structures as JSON.")
    s.add_argument("-n", "--samples", type=int, default=None, help="Overrides @samples.")
    s.add_argument("--lower-bound", type=int, default=None, help="Overrides @lowerBound.")
    s.add_argument("--upper-bound", type=int, default=None, help="Overrides @upperBound.")
    s.add_argument("--seed", type=int, default=None, help="Overrides @seed.")
    s.add_argument("--workers", type=int, default=None, help="Sample on this many threads.")
    s.add_argument("--max-attempts", type=int, default=None, help="Give up after this many rejected attempts per structure.")
    return p


def _read_system(path: Optional[str]):
    if path is None:
        doc = json.load(sys.stdin)
    else:
        with open(path, "r", encoding="utf-8") as fh:
            doc = json.load(fh)
    return system_from_dict(doc)


def _write(doc: Any, path: Optional[str]) -> None:
    if path is None:
        json.dump(doc, sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(doc, fh, indent=2)
            fh.write("\n")


def _run(args: argparse.Namespace) -> None:
    system = _read_system(args.input)
    cfg = PipelineConfig(
        allow_unsafe=args.force,
        werror=args.werror,
        tuning_file=args.tuning_file,
        workers=getattr(args, "workers", None),
        max_attempts=getattr(args, "max_attempts", None),
    )
    pipe = BoltzmannPipeline(system, config=cfg)

    if args.command == "spec":
        _write(tuning_problem(pipe.check), args.output)
        if args.save_tuning:
            log.warn("--save-tuning has no effect on the spec command.")
        return
    if args.command == "tune":
        tuned = pipe.tune(Mode.REGULAR)
        _write(tuned.to_dict(), args.output)
    else:
        sc = SamplerConfig.from_annotations(system)
        overrides = {
            "samples": args.samples,
            "lower_bound": args.lower_bound,
            "upper_bound": args.upper_bound,
            "seed": args.seed,
        }
        sc = replace(sc, **{k: v for k, v in overrides.items() if v is not None})
        structures = pipe.sample(sc)
        tuned = pipe.tuned[Mode.CUMULATIVE]
        _write([s.to_flat() for s in structures], args.output)

    if args.save_tuning:
        path = write_tuning(tuned, args.save_tuning)
        log.info(f"Tuning data written to {path}.")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    log.set_quiet(args.quiet)
    try:
        _run(args)
    except (BoltzmannError, ValueError, OSError) as e:
        log.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
