"""
Utility modules for Repli-seq and RNA-seq analysis.

This package provides reusable functions organized by functionality:
- config: Pipeline thresholds, window geometry and fraction weights
- genome: Chromosome sizes, genome windows, interval resizing
- intervals: Overlap index, self-overlap removal, track value lookup
- reads: BAM loading, bad-region filtering, window counts, library sizes
- normalization: RPM, fraction percentages, timing score, TMM, CPM
- tracks: bedGraph / bigWig reading and writing
- annotation: GTF parsing and gene symbol lookup
- expression: RSEM count matrix assembly and spike-in handling
"""

# Import key functions from each module for convenient access
from .config import (
    PipelineConfig,
    DEFAULT_FRACTIONS,
    DEFAULT_WEIGHTS,
    DEFAULT_CHROMOSOMES,
    DEFAULT_EXCLUDE_CHROMOSOMES,
)

from .genome import (
    load_chromsizes,
    make_windows,
    resize_centered,
)

from .intervals import (
    INTERVAL_COLUMNS,
    IntervalIndex,
    sort_intervals,
    drop_self_overlaps,
    restrict_to_overlaps,
    values_at,
)

from .reads import (
    load_bam_reads,
    count_reads_in_windows,
    detect_bad_regions,
    filter_reads,
    library_size,
    assemble_count_matrix,
)

from .normalization import (
    reads_per_million,
    row_percentages,
    low_count_mask,
    composite_score,
    LibraryNormalizer,
    TMMNormalizer,
    EdgeRNormalizer,
    DEFAULT_NORMALIZER,
    get_normalizer,
    spike_in_norm_factors,
    cpm,
    log_cpm,
)

from .tracks import (
    TRACK_COLUMNS,
    read_track,
    read_tracks,
    write_track,
    write_bedgraph,
    write_bigwig,
)

from .annotation import (
    GTF_ATTRIBUTES,
    extract_attributes,
    parse_gtf,
    gene_annotation,
)

from .expression import (
    DEFAULT_SPIKE_IN_PREFIX,
    load_expected_counts,
    assemble_expression_matrix,
    annotate_gene_ids,
    split_spike_ins,
)

__all__ = [
    # Configuration
    'PipelineConfig',
    'DEFAULT_FRACTIONS',
    'DEFAULT_WEIGHTS',
    'DEFAULT_CHROMOSOMES',
    'DEFAULT_EXCLUDE_CHROMOSOMES',

    # Genome
    'load_chromsizes',
    'make_windows',
    'resize_centered',

    # Intervals
    'INTERVAL_COLUMNS',
    'IntervalIndex',
    'sort_intervals',
    'drop_self_overlaps',
    'restrict_to_overlaps',
    'values_at',

    # Reads
    'load_bam_reads',
    'count_reads_in_windows',
    'detect_bad_regions',
    'filter_reads',
    'library_size',
    'assemble_count_matrix',

    # Normalization
    'reads_per_million',
    'row_percentages',
    'low_count_mask',
    'composite_score',
    'LibraryNormalizer',
    'TMMNormalizer',
    'EdgeRNormalizer',
    'DEFAULT_NORMALIZER',
    'get_normalizer',
    'spike_in_norm_factors',
    'cpm',
    'log_cpm',

    # Tracks
    'TRACK_COLUMNS',
    'read_track',
    'read_tracks',
    'write_track',
    'write_bedgraph',
    'write_bigwig',

    # Annotation
    'GTF_ATTRIBUTES',
    'extract_attributes',
    'parse_gtf',
    'gene_annotation',

    # Expression
    'DEFAULT_SPIKE_IN_PREFIX',
    'load_expected_counts',
    'assemble_expression_matrix',
    'annotate_gene_ids',
    'split_spike_ins',
]
