"""Run configuration loaded from YAML."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from xray_scoring.core.errors import ConfigurationError
from xray_scoring.scoring.run import DEFAULT_HISTOGRAMS, HistogramSpec, RunStatistics


_DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")


@dataclass
class RunConfig:
    """Launcher-level settings for a scoring run."""

    file_stem: str = "XRay"
    output_directory: Path = Path(".")
    sensitive_volume: str = "Detector"
    histograms: Tuple[HistogramSpec, ...] = field(default_factory=lambda: DEFAULT_HISTOGRAMS)
    n_workers: Optional[int] = None
    verbose: bool = True

    def __post_init__(self) -> None:
        self.output_directory = Path(self.output_directory)
        if not self.file_stem:
            raise ConfigurationError("output.file_stem must not be empty")
        if self.n_workers is not None and self.n_workers < 1:
            raise ConfigurationError(f"run.n_workers must be >= 1 or null, got {self.n_workers}")
        # Two histograms, unique names, valid binning
        RunStatistics(self.histograms)
        self.histograms = tuple(HistogramSpec(*spec) for spec in self.histograms)


def _load_yaml_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    with open(path, "r", encoding="utf-8") as stream:
        return yaml.safe_load(stream) or {}


def _parse_histograms(entries) -> Tuple[HistogramSpec, ...]:
    specs = []
    for entry in entries:
        try:
            specs.append(HistogramSpec(
                name=str(entry["name"]),
                title=str(entry.get("title", entry["name"])),
                n_bins=int(entry["bins"]),
                low=float(entry["low_keV"]),
                high=float(entry["high_keV"]),
            ))
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid histogram entry {entry!r}: {exc}") from exc
    return tuple(specs)


def _parse_config(config: Dict[str, Any]) -> RunConfig:
    output_cfg = config.get("output", {}) or {}
    scoring_cfg = config.get("scoring", {}) or {}
    run_cfg = config.get("run", {}) or {}

    histograms = scoring_cfg.get("histograms")
    n_workers = run_cfg.get("n_workers")

    return RunConfig(
        file_stem=str(output_cfg.get("file_stem", "XRay")),
        output_directory=Path(output_cfg.get("directory", ".")),
        sensitive_volume=str(scoring_cfg.get("sensitive_volume", "Detector")),
        histograms=_parse_histograms(histograms) if histograms else DEFAULT_HISTOGRAMS,
        n_workers=int(n_workers) if n_workers is not None else None,
        verbose=bool(run_cfg.get("verbose", True)),
    )


def load_config(config_path: Optional[Path] = None) -> RunConfig:
    """Load a run configuration, defaulting to the bundled config.yaml."""
    return _parse_config(_load_yaml_config(config_path))
