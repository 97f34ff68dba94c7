"""
Configuration for the Repli-seq windowed read-density pipeline.

Thresholds, window geometry and fraction definitions are collected in a
single dataclass that is passed explicitly into every pipeline stage.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional


# Repli-seq fractions in cell-cycle order and their weighted-average weights.
# G2 carries no weight, so only the first five fractions enter the score.
DEFAULT_FRACTIONS = ['G1', 'S1', 'S2', 'S3', 'S4', 'G2']
DEFAULT_WEIGHTS = [0.917, 0.750, 0.583, 0.417, 0.250]

DEFAULT_CHROMOSOMES = [f'chr{i}' for i in range(1, 23)] + ['chrX', 'chrY', 'chrM']
DEFAULT_EXCLUDE_CHROMOSOMES = ['chrM', 'chrY']


@dataclass
class PipelineConfig:
    """
    Parameters of the windowed read-density pipeline.

    Attributes:
        high_threshold: Reads per fine window above which the window is bad
            (checked independently in every sample)
        low_threshold: Reads-per-million at or below which a coarse window is
            considered empty in a fraction
        window_width: Width of the counting windows (bp)
        window_spacing: Step between consecutive counting windows (bp)
        bad_window_width: Width of the bad-region detection windows (bp)
        bad_window_spacing: Step between bad-region detection windows (bp)
        output_width: Width of the windows carrying the composite score (bp)
        chromosome_set: Chromosomes analysed, in output order
        exclude_chromosomes: Chromosomes left out of library sizes
        fractions: Fraction sample names, in weight order
        weights: Weighted-average weights for the leading fractions
        library_size_source: Fraction -> sample whose library size
            normalizes it. Fractions not listed use their own library.
        min_mapq: Minimum mapping quality of retained alignments

    Example:
        >>> config = PipelineConfig(high_threshold=50, low_threshold=0.5)
        >>> config.score_fractions
        ['G1', 'S1', 'S2', 'S3', 'S4']
    """
    high_threshold: int = 100
    low_threshold: float = 0.0
    window_width: int = 50000
    window_spacing: int = 1000
    bad_window_width: int = 150
    bad_window_spacing: int = 150
    output_width: int = 1000
    chromosome_set: List[str] = field(default_factory=lambda: list(DEFAULT_CHROMOSOMES))
    exclude_chromosomes: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_CHROMOSOMES))
    fractions: List[str] = field(default_factory=lambda: list(DEFAULT_FRACTIONS))
    weights: List[float] = field(default_factory=lambda: list(DEFAULT_WEIGHTS))
    library_size_source: Dict[str, str] = field(default_factory=dict)
    min_mapq: int = 0

    def __post_init__(self):
        """Validate thresholds, window geometry and fraction/weight consistency."""
        for name in ('window_width', 'window_spacing', 'bad_window_width',
                     'bad_window_spacing', 'output_width'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")

        if self.high_threshold < 0:
            raise ValueError(f"high_threshold must be >= 0, got {self.high_threshold}")
        if self.low_threshold < 0:
            raise ValueError(f"low_threshold must be >= 0, got {self.low_threshold}")

        if not self.chromosome_set:
            raise ValueError("chromosome_set must not be empty")
        if len(set(self.chromosome_set)) != len(self.chromosome_set):
            raise ValueError("chromosome_set contains duplicate chromosomes")

        if not self.fractions:
            raise ValueError("At least one fraction is required")
        if len(set(self.fractions)) != len(self.fractions):
            raise ValueError("fractions contains duplicate names")
        if not self.weights:
            raise ValueError("At least one weight is required")
        if len(self.weights) > len(self.fractions):
            raise ValueError(
                f"{len(self.weights)} weights given for only "
                f"{len(self.fractions)} fractions"
            )

        unknown = [
            name for pair in self.library_size_source.items() for name in pair
            if name not in self.fractions
        ]
        if unknown:
            raise ValueError(
                f"library_size_source refers to unknown fractions: {', '.join(unknown)}"
            )

    @property
    def score_fractions(self) -> List[str]:
        """Fractions that carry a weight in the composite score."""
        return self.fractions[:len(self.weights)]

    def library_sample(self, fraction: str) -> str:
        """Sample whose library size normalizes the given fraction."""
        return self.library_size_source.get(fraction, fraction)

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> 'PipelineConfig':
        """
        Build a PipelineConfig from a workflow configuration dictionary.

        Keys that are not pipeline parameters (paths, output flags) are
        ignored, so the full workflow config can be passed as is.

        Args:
            config: Configuration dictionary (e.g. loaded from YAML)

        Returns:
            PipelineConfig with defaults for missing keys
        """
        config = config or {}
        names = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in config.items() if k in names and v is not None}
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}
