#!/usr/bin/env python3
"""
Profile the scoring paths to identify bottlenecks.
"""
import time
import cProfile
import pstats
from io import StringIO

from xray_scoring.core.geometry import DetectorGeometry
from xray_scoring.transport.engine import ScoringEngine
from xray_fluorescence_demo import generate_steps


def profile_serial_callbacks(n_events: int = 5000):
    """Profile the per-step callback path in detail."""
    print("\n" + "="*70)
    print("PROFILING SERIAL CALLBACK SCORING")
    print("="*70)

    geometry = DetectorGeometry()
    steps = generate_steps(geometry, n_events=n_events)
    engine = ScoringEngine(geometry, persist=False)

    # Warm up numba kernels
    engine.run_batch(steps, verbose=False)

    profiler = cProfile.Profile()
    profiler.enable()
    start = time.time()
    engine.run(steps, verbose=False)
    elapsed = time.time() - start
    profiler.disable()

    print(f"   Time: {elapsed:.3f}s ({n_events/elapsed:.0f} events/sec)")

    print("\n   Top function calls:")
    s = StringIO()
    ps = pstats.Stats(profiler, stream=s).sort_stats('cumulative')
    ps.print_stats(20)
    print(s.getvalue())


def compare_paths(n_events: int = 50000, n_workers: int = 4):
    """Compare serial, parallel and batch scoring on the same stream."""
    print("\n" + "="*70)
    print(f"COMPARING SCORING PATHS ({n_events} events)")
    print("="*70)

    geometry = DetectorGeometry()
    steps = generate_steps(geometry, n_events=n_events)
    engine = ScoringEngine(geometry, persist=False)
    engine.run_batch(steps, verbose=False)

    timings = {}
    for label, run in (('serial', lambda: engine.run(steps, verbose=False)),
                       ('parallel', lambda: engine.run_parallel(steps, n_workers=n_workers,
                                                                verbose=False)),
                       ('batch', lambda: engine.run_batch(steps, verbose=False))):
        start = time.time()
        run()
        timings[label] = time.time() - start
        print(f"   {label:<8s}: {timings[label]:.3f}s")

    print(f"\n   Parallel speedup: {timings['serial']/timings['parallel']:.2f}x")
    print(f"   Batch speedup: {timings['serial']/timings['batch']:.2f}x")


if __name__ == '__main__':
    profile_serial_callbacks()
    compare_paths()
