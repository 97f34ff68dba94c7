"""
Repli-seq Replication Timing Workflow

This module turns aligned reads of sorted cell-cycle fractions into a
replication timing track:

1. Detect bad regions (fine windows with excessive reads in any sample)
2. Remove reads overlapping bad regions
3. Count reads in sliding coarse windows
4. Normalize counts to reads per million
5. Convert to per-window percentages across fractions
6. Drop windows that are low in every fraction
7. Compute the weighted-average timing score
8. Resize windows around their midpoint and drop self-overlapping ones
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Tuple

import pandas as pd
from tqdm import tqdm

from repliseq_analysis.utils import (
    PipelineConfig,
    load_chromsizes,
    make_windows,
    resize_centered,
    load_bam_reads,
    detect_bad_regions,
    filter_reads,
    library_size,
    count_reads_in_windows,
    assemble_count_matrix,
    reads_per_million,
    row_percentages,
    low_count_mask,
    composite_score,
    drop_self_overlaps,
    sort_intervals,
    write_bedgraph,
    write_bigwig,
)

logger = logging.getLogger(__name__)


def compute_timing_track(
    reads_by_sample: Dict[str, pd.DataFrame],
    chromsizes: pd.Series,
    pipeline_config: PipelineConfig
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Compute a replication timing track from per-fraction read intervals.

    Args:
        reads_by_sample: Fraction name -> read intervals (chrom, start, end).
            Every fraction of the config must be present.
        chromsizes: Chromosome lengths, in output order
        pipeline_config: Thresholds, window geometry and fractions

    Returns:
        Tuple of:
            - track: Non-overlapping scored intervals (chrom, start, end, score)
            - window_signal: Per-window counts, RPM, percentages, score and
              low-count flag for every coarse window
            - bad_regions: Excluded fine windows

    Example:
        >>> config = PipelineConfig(fractions=['E', 'L'], weights=[1.0],
        ...                         window_width=50000, window_spacing=1000)
        >>> track, signal, bad = compute_timing_track(
        ...     {'E': early_reads, 'L': late_reads}, chromsizes, config)
    """
    fractions = pipeline_config.fractions
    missing = [f for f in fractions if f not in reads_by_sample]
    if missing:
        raise ValueError(f"No reads given for fractions: {', '.join(missing)}")
    extra = [s for s in reads_by_sample if s not in fractions]
    if extra:
        logger.warning(f"Samples used for bad-region detection only: {', '.join(extra)}")

    # Step 1: bad regions
    logger.info("Step 1/5: Detecting bad regions...")
    fine_windows = make_windows(
        chromsizes,
        width=pipeline_config.bad_window_width,
        spacing=pipeline_config.bad_window_spacing
    )
    bad_regions = detect_bad_regions(reads_by_sample, fine_windows, pipeline_config.high_threshold)

    # Step 2: filter reads before counting, library sizes depend on it
    logger.info("Step 2/5: Filtering reads in bad regions...")
    filtered = {}
    lib_sizes = {}
    for sample, reads in reads_by_sample.items():
        filtered[sample] = filter_reads(reads, bad_regions)
        lib_sizes[sample] = library_size(filtered[sample], pipeline_config.exclude_chromosomes)
        logger.info(
            f"{sample}: kept {len(filtered[sample])}/{len(reads)} reads, "
            f"library size {lib_sizes[sample]}"
        )

    # Step 3: windowed counts
    logger.info("Step 3/5: Counting reads in windows...")
    windows = make_windows(
        chromsizes,
        width=pipeline_config.window_width,
        spacing=pipeline_config.window_spacing
    )
    counts = assemble_count_matrix(
        windows,
        {f: count_reads_in_windows(filtered[f], windows) for f in fractions}
    )

    # Step 4: normalization and scoring
    logger.info("Step 4/5: Normalizing and scoring windows...")
    fraction_lib_sizes = {f: lib_sizes[pipeline_config.library_sample(f)] for f in fractions}
    for f in fractions:
        if pipeline_config.library_sample(f) != f:
            logger.info(f"{f} normalized by library size of {pipeline_config.library_sample(f)}")

    rpm = reads_per_million(counts[fractions], fraction_lib_sizes)
    pct = row_percentages(rpm, fractions)
    is_low = low_count_mask(rpm, fractions, pipeline_config.low_threshold)
    score = composite_score(pct, fractions, pipeline_config.weights)

    window_signal = (
        windows.set_index('window_id')
        .join(counts.add_suffix('_count'))
        .join(rpm.add_suffix('_rpm'))
        .join(pct)
        .join(score)
    )
    window_signal['low_count'] = is_low
    logger.info(
        f"{int(is_low.sum())} of {len(window_signal)} windows at or below "
        f"{pipeline_config.low_threshold} RPM in every fraction"
    )

    # Step 5: output intervals
    logger.info("Step 5/5: Building output track...")
    retained = window_signal.loc[~is_low, ['chrom', 'start', 'end', 'score']]
    track = resize_centered(retained, pipeline_config.output_width, chromsizes)
    track = drop_self_overlaps(track)
    track = sort_intervals(track, chromosome_order=list(chromsizes.index))

    logger.info(f"Timing track has {len(track)} windows")
    return track, window_signal, bad_regions


def run_repliseq_workflow(config: Dict) -> Tuple[pd.DataFrame, Dict]:
    """
    Run the Repli-seq workflow from BAM files to a timing track.

    Args:
        config: Configuration dictionary with keys:
            - bam_files: Fraction name -> BAM path (required)
            - output_dir: Output directory (required)
            - sample_name: Prefix of output files (default: 'repliseq')
            - chromsizes_path: chrom.sizes file (default: first BAM header)
            - write_bigwig: Also write a bigWig track (default: True)
            - save_intermediate: Write per-window signal and bad regions
              (default: False)
            - Any PipelineConfig field (high_threshold, low_threshold,
              window_width, window_spacing, fractions, weights, ...)

    Returns:
        Tuple of:
            - track: DataFrame with chrom, start, end, score
            - metadata: Run summary (also saved as JSON)

    Example:
        >>> config = {
        ...     'bam_files': {'G1': 'G1.bam', 'S1': 'S1.bam', 'S2': 'S2.bam',
        ...                   'S3': 'S3.bam', 'S4': 'S4.bam', 'G2': 'G2.bam'},
        ...     'chromsizes_path': 'hg38.chrom.sizes',
        ...     'high_threshold': 100,
        ...     'low_threshold': 0.5,
        ...     'output_dir': './results/repliseq',
        ... }
        >>> track, metadata = run_repliseq_workflow(config)
    """
    _validate_repliseq_config(config)
    pipeline_config = PipelineConfig.from_dict(config)

    output_dir = Path(config['output_dir'])
    sample_name = config.get('sample_name', 'repliseq')

    logger.info("Loading reference and reads...")
    chromsizes, reads_by_sample = _prepare_repliseq_data(config, pipeline_config)

    track, window_signal, bad_regions = compute_timing_track(
        reads_by_sample, chromsizes, pipeline_config
    )

    output_dir.mkdir(parents=True, exist_ok=True)
    outputs = {
        'bedgraph': str(write_bedgraph(track, output_dir / f"{sample_name}_timing.bedGraph"))
    }
    if config.get('write_bigwig', True):
        outputs['bigwig'] = str(write_bigwig(track, chromsizes, output_dir / f"{sample_name}_timing.bw"))

    if config.get('save_intermediate', False):
        signal_file = output_dir / f"{sample_name}_window_signal.tsv"
        window_signal.to_csv(signal_file, sep='\t')
        bad_file = output_dir / f"{sample_name}_bad_regions.bed"
        bad_regions[['chrom', 'start', 'end', 'n_samples']].to_csv(
            bad_file, sep='\t', header=False, index=False
        )
        outputs['window_signal'] = str(signal_file)
        outputs['bad_regions'] = str(bad_file)
        logger.info(f"Saved intermediate tables to {output_dir}")

    metadata = {
        'timestamp': datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        'sample_name': sample_name,
        'n_bad_regions': int(len(bad_regions)),
        'n_windows': int(len(window_signal)),
        'n_low_count_windows': int(window_signal['low_count'].sum()),
        'n_track_windows': int(len(track)),
        'mean_score': float(track['score'].mean()) if len(track) else None,
        'outputs': outputs,
        'pipeline_config': pipeline_config.to_dict(),
    }
    _save_metadata(metadata, output_dir / f"{sample_name}_metadata.json")

    logger.info(f"Repli-seq complete. {len(track)} windows written to {output_dir}")
    return track, metadata


def _validate_repliseq_config(config: Dict) -> None:
    """Validate required configuration parameters."""
    for key in ['bam_files', 'output_dir']:
        if key not in config:
            raise ValueError(f"Missing required config key: {key}")

    if not isinstance(config['bam_files'], dict) or not config['bam_files']:
        raise ValueError("bam_files must map fraction names to BAM paths")

    for sample, path in config['bam_files'].items():
        if not Path(path).exists():
            raise FileNotFoundError(f"BAM file for {sample} not found: {path}")


def _prepare_repliseq_data(
    config: Dict,
    pipeline_config: PipelineConfig
) -> Tuple[pd.Series, Dict[str, pd.DataFrame]]:
    """
    Load chromosome sizes and reads of every sample.

    Returns:
        Tuple of (chromsizes, reads_by_sample)
    """
    bam_files = config['bam_files']
    chromsizes = load_chromsizes(
        chromsizes_path=config.get('chromsizes_path'),
        bam_path=None if config.get('chromsizes_path') else next(iter(bam_files.values())),
        chromosome_set=pipeline_config.chromosome_set
    )
    logger.info(f"Reference: {len(chromsizes)} chromosomes, {int(chromsizes.sum())} bp")

    reads_by_sample = {}
    for sample, path in tqdm(bam_files.items(), desc="Loading BAM files"):
        reads_by_sample[sample] = load_bam_reads(
            path,
            chromosomes=list(chromsizes.index),
            min_mapq=pipeline_config.min_mapq
        )
    return chromsizes, reads_by_sample


def _save_metadata(metadata: Dict, metadata_file: Path) -> None:
    with open(metadata_file, 'w') as f:
        json.dump(metadata, f, indent=2, default=str)
    logger.info(f"Saved metadata to {metadata_file}")
