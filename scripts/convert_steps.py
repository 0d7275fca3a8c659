"""
Convert recorded step streams from CSV to binary NumPy format.

CSV columns (one header row):
    event_id, volume_id, total_energy [keV], creator_process (code, -1 = primary)

StepArray.load() picks up the .npy file automatically when present, which
avoids parsing text once per worker.
"""

import argparse
import time
from pathlib import Path

import numpy as np

from xray_scoring.core.step import StepArray


def convert_csv_to_npy(data_dir='data/steps'):
    """Convert all .csv step files in data_dir to .npy format."""
    data_path = Path(data_dir)

    if not data_path.exists():
        print(f"Error: {data_path} does not exist")
        return

    csv_files = sorted(data_path.glob('*.csv'))

    if not csv_files:
        print(f"No .csv files found in {data_path}")
        return

    print(f"Found {len(csv_files)} step files")
    print(f"Converting CSV → binary NumPy format...\n")

    for csv_file in csv_files:
        print(f"Processing: {csv_file.name}")

        start = time.time()
        steps = StepArray.load(csv_file)
        time_csv = time.time() - start
        print(f"  CSV load: {time_csv*1000:.1f}ms ({steps.n_steps} steps, {steps.n_events} events)")

        npy_file = steps.save(csv_file)

        start = time.time()
        loaded = StepArray.load(npy_file)
        time_binary = time.time() - start
        print(f"  Binary load: {time_binary*1000:.1f}ms")

        if not np.array_equal(steps.steps, loaded.steps):
            raise RuntimeError(f"Round trip mismatch for {csv_file.name}")

        print(f"  ✓ Saved: {npy_file.name}\n")

    print(f"Files converted: {len(csv_files)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('data_dir', nargs='?', default='data/steps',
                        help='Directory holding .csv step files')
    args = parser.parse_args()
    convert_csv_to_npy(args.data_dir)
