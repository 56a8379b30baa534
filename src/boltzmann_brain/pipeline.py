# src/boltzmann_brain/pipeline.py
from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from boltzmann_brain import console as log
from boltzmann_brain.config import SamplerConfig, TuningConfig
from boltzmann_brain.errors import WarningsAsErrors
from boltzmann_brain.sampler.engine import Sampler
from boltzmann_brain.sampler.structure import Structure
from boltzmann_brain.system.checker import CheckResult, Diagnostic, SystemType, check
from boltzmann_brain.system.model import System
from boltzmann_brain.tuning.oracle import select_oracle
from boltzmann_brain.tuning.tuned import Mode, TunedSystem

__all__ = ["PipelineConfig", "BoltzmannPipeline", "enforce_warnings"]


@dataclass
class PipelineConfig:
    # Checker policy
    allow_unsafe: bool = False        # accept ill-founded systems (classified ill-formed)
    werror: bool = False              # treat checker warnings as errors

    # Tuning
    tuning_file: Optional[str] = None

    # Sampling
    workers: Optional[int] = None
    max_attempts: Optional[int] = None

    # UI
    verbose: bool = True
    ui: str = "spinner"               # "bars" or "spinner"
    persist_ui: bool = False


def enforce_warnings(result: CheckResult, treat_warnings_as_errors: bool) -> List[Diagnostic]:
    """
    Caller policy on a checker report.

    Returns the warnings unchanged, or raises :class:`WarningsAsErrors` when
    there are any and ``treat_warnings_as_errors`` is set.
    """
    warnings = list(result.warnings)
    if warnings and treat_warnings_as_errors:
        raise WarningsAsErrors(warnings)
    return warnings


def _make_progress(ui: str, persist: bool) -> Progress:
    columns = [SpinnerColumn(), TextColumn("[bold blue]{task.description}")]
    if ui == "bars":
        columns += [BarColumn(), TimeElapsedColumn()]
    return Progress(*columns, transient=not persist, console=log.console)


class BoltzmannPipeline:
    """
    High-level orchestrator: check → tune → sample.

    On instantiation:
      • Runs the well-foundedness checker (strict unless ``allow_unsafe``)
      • Reports its diagnostics and applies the warnings policy

    Then call ``tune()``, ``sample()`` or ``backend_context()``.
    """

    def __init__(self, system: System, *, config: Optional[PipelineConfig] = None):
        self.system = system
        self.cfg = config or PipelineConfig()

        # ----- checker at init -----
        self.check: CheckResult = check(system, allow_unsafe=self.cfg.allow_unsafe)
        for d in self.check.errors:
            log.error(d.message)
        if self.check.system_type is SystemType.ILL_FORMED:
            log.warn("Continuing with an ill-founded system; sampling it may not terminate.")
        self.warnings = enforce_warnings(self.check, self.cfg.werror)
        for d in self.warnings:
            log.warn(d.message)
        self._info(f"System of {len(system.user_types())} type(s) classified as {self.check.system_type.value}.")

        # Storage for later stage outputs; `tuned` holds the latest tuning per mode
        self.tuned: Dict[Mode, TunedSystem] = {}
        self._tunings: Dict[Tuple[Mode, TuningConfig], TunedSystem] = {}
        self.logs: List[str] = []

    @property
    def system_type(self) -> SystemType:
        return self.check.system_type

    def _info(self, msg: str) -> None:
        if self.cfg.verbose:
            log.info(msg)

    # ------------------------------------------------
    # Tuning
    # ------------------------------------------------

    def tune(self, mode: Union[Mode, str] = Mode.REGULAR, config: Optional[TuningConfig] = None) -> TunedSystem:
        """Tune with the oracle chosen by ``tuning_file`` (cached per mode and config)."""
        mode = Mode(mode)
        config = config or TuningConfig.from_annotations(self.system)
        key = (mode, config)
        if key in self._tunings:
            self.tuned[mode] = self._tunings[key]
            return self._tunings[key]
        oracle = select_oracle(self.cfg.tuning_file)

        if self.cfg.verbose and not log.is_quiet():
            with _make_progress(self.cfg.ui, self.cfg.persist_ui) as progress:
                t = progress.add_task(f"Tuning ({mode.value})...", total=None)
                tuned = oracle.tune(self.check, mode, config)
                progress.update(t, description=f"Tuned at z = {tuned.parameter:.6g}")
                progress.stop_task(t)
        else:
            tuned = oracle.tune(self.check, mode, config)

        msg = f"Singularity ρ = {tuned.singularity:.12g}, tuning parameter z = {tuned.parameter:.12g}."
        self.logs.append(msg)
        self._info(msg)
        self._tunings[key] = tuned
        self.tuned[mode] = tuned
        return tuned

    def tuning_config_for(self, config: SamplerConfig) -> TuningConfig:
        """
        Cumulative tuning matching a sampling request.

        The expected size of the sampled type is put at the window midpoint,
        unless an ``expectedSize`` annotation already lies inside the window.
        """
        base = TuningConfig.from_annotations(self.system)
        lo, hi = config.window
        target = base.expected_size
        if "expectedSize" not in self.system.annotations or not (lo <= target <= hi):
            target = (lo + hi) / 2.0
        return replace(base, expected_size=max(target, 1.0), target=config.generate or self.system.initial)

    # ------------------------------------------------
    # Sampling
    # ------------------------------------------------

    def sample(self, config: Optional[SamplerConfig] = None) -> List[Structure]:
        """
        Draw ``config.samples`` structures (default: from the annotations)
        from a cumulative tuning aimed at ``config``'s window.
        """
        if config is None:
            if "samples" not in self.system.annotations:
                log.hint("No @samples annotation; drawing a single structure.")
            config = SamplerConfig.from_annotations(self.system)
        tuned = self.tune(Mode.CUMULATIVE, self.tuning_config_for(config))
        start = config.generate or self.system.initial
        lo, hi = config.window
        sampler = Sampler(tuned)

        if self.cfg.verbose and not log.is_quiet():
            with _make_progress(self.cfg.ui, self.cfg.persist_ui) as progress:
                t = progress.add_task(f"Sampling {config.samples} structure(s) of {start} in [{lo}, {hi}]...", total=None)
                out = sampler.sample_many(
                    start, lo, hi, config.samples,
                    seed=config.seed, workers=self.cfg.workers, max_attempts=self.cfg.max_attempts,
                )
                progress.update(t, description=f"Sampled {len(out)} structure(s)")
                progress.stop_task(t)
        else:
            out = sampler.sample_many(
                start, lo, hi, config.samples,
                seed=config.seed, workers=self.cfg.workers, max_attempts=self.cfg.max_attempts,
            )
        return out

    # ------------------------------------------------
    # Backend hand-off
    # ------------------------------------------------

    def backend_context(self, mode: Union[Mode, str] = Mode.REGULAR) -> Dict[str, Any]:
        """What a code-generation backend consumes."""
        sc = SamplerConfig.from_annotations(self.system)
        return {
            "tuned": self.tune(mode),
            "system_type": self.system_type,
            "module": sc.module,
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }

    def summarize_results(self) -> str:
        lines: List[str] = []
        lines.append("========================================")
        lines.append("Boltzmann Brain Summary")
        lines.append("========================================")
        lines.append(f"System type: {self.system_type.value}")
        lines.append(f"Types: {', '.join(t.name for t in self.system.user_types())}")
        lines.append("")
        lines.append("Diagnostics:")
        if self.check.diagnostics:
            for d in self.check.diagnostics:
                lines.append(f" - {d}")
        else:
            lines.append(" - (none)")
        lines.append("")
        if not self.tuned:
            lines.append("Not tuned yet.")
        else:
            for mode, ts in self.tuned.items():
                lines.append(f"{mode.value}: ρ = {ts.singularity:.12g}, z = {ts.parameter:.12g}")
        return "\n".join(lines)
