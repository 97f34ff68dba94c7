"""
Cross-Track Merge Workflow

Builds the master table of a study from finalized timing tracks: the
windows present (by overlap) in every track, with one score column per
track.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Tuple

import pandas as pd

from repliseq_analysis.utils import (
    INTERVAL_COLUMNS,
    read_tracks,
    restrict_to_overlaps,
    sort_intervals,
    values_at,
)

logger = logging.getLogger(__name__)


def merge_tracks(tracks: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    """
    Intersect scored tracks and tabulate their values.

    Coordinates start from the first track and are restricted, track by
    track, to those overlapping at least one interval of the next track.
    Each track's score at a surviving coordinate is the score of its first
    overlapping interval.

    Args:
        tracks: Track name -> DataFrame with chrom, start, end, score

    Returns:
        Master table with chrom, start, end and one column per track name

    Example:
        >>> a = pd.DataFrame({'chrom': ['chr1'] * 2, 'start': [0, 1000], 'end': [1000, 2000], 'score': [1.0, 2.0]})
        >>> b = pd.DataFrame({'chrom': ['chr1'], 'start': [1000], 'end': [2000], 'score': [5.0]})
        >>> merge_tracks({'a': a, 'b': b}).values.tolist()
        [['chr1', 1000, 2000, 2.0, 5.0]]
    """
    if not tracks:
        raise ValueError("No tracks to merge")

    names = list(tracks)
    coords = sort_intervals(tracks[names[0]][INTERVAL_COLUMNS]).drop_duplicates()

    for name in names[1:]:
        before = len(coords)
        coords = restrict_to_overlaps(coords, tracks[name])
        logger.info(f"{name}: {len(coords)} of {before} windows shared")

    master = coords.reset_index(drop=True)
    for name in names:
        master[name] = values_at(master, tracks[name], value_column='score').to_numpy()

    return master


def run_track_merge_workflow(config: Dict) -> Tuple[pd.DataFrame, Dict]:
    """
    Run the cross-track merge from track files to a master table.

    Args:
        config: Configuration dictionary with keys:
            - tracks: Track name -> bedGraph/bigWig path (required, >= 2)
            - output_dir: Output directory (required)
            - output_name: Output file stem (default: 'master_table')
            - save_pickle: Also save the table as a pickle (default: False)

    Returns:
        Tuple of:
            - master: Master table DataFrame
            - metadata: Run summary (also saved as JSON)
    """
    _validate_merge_config(config)

    output_dir = Path(config['output_dir'])
    output_name = config.get('output_name', 'master_table')

    logger.info("Step 1/2: Loading tracks...")
    tracks = read_tracks(config['tracks'])
    for name, track in tracks.items():
        logger.info(f"  {name}: {len(track)} windows")

    logger.info("Step 2/2: Intersecting tracks...")
    master = merge_tracks(tracks)

    output_dir.mkdir(parents=True, exist_ok=True)
    table_file = output_dir / f"{output_name}.tsv"
    master.to_csv(table_file, sep='\t', index=False)
    outputs = {'table': str(table_file)}

    if config.get('save_pickle', False):
        pickle_file = output_dir / f"{output_name}.pkl"
        master.to_pickle(pickle_file)
        outputs['pickle'] = str(pickle_file)

    metadata = {
        'timestamp': datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        'tracks': {name: str(path) for name, path in config['tracks'].items()},
        'track_sizes': {name: int(len(track)) for name, track in tracks.items()},
        'n_windows': int(len(master)),
        'outputs': outputs,
    }
    with open(output_dir / f"{output_name}_metadata.json", 'w') as f:
        json.dump(metadata, f, indent=2, default=str)

    logger.info(f"Merge complete. {len(master)} shared windows saved to {table_file}")
    return master, metadata


def _validate_merge_config(config: Dict) -> None:
    """Validate required configuration parameters."""
    for key in ['tracks', 'output_dir']:
        if key not in config:
            raise ValueError(f"Missing required config key: {key}")

    if not isinstance(config['tracks'], dict) or len(config['tracks']) < 2:
        raise ValueError("tracks must map at least two track names to files")
