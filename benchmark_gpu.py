#!/usr/bin/env python3
"""
Benchmark the marking launch on every available backend.

Compares:
1. Sequential reference sieve (numpy slices, one thread)
2. CPU worker pool over shared memory
3. CUDA kernel (if a GPU is available)

Every result is checked against the sequential sieve.
"""

import argparse
import time

import numpy as np
import pandas as pd

from gpu_sieve.capability import check_gpu
from gpu_sieve.errors import SieveError
from gpu_sieve.gpu_backend import HAS_GPU, CudaDevice
from gpu_sieve.parallel_backend import CpuDevice
from gpu_sieve.reference import classic_flags
from gpu_sieve.sieve import sieve


def benchmark(N_values, workers=None, repeats: int = 3) -> pd.DataFrame:
    """Time each backend for each N. Returns one row per (N, backend)."""
    devices = [('cpu', CpuDevice(workers))]
    if HAS_GPU:
        devices.append(('cuda', CudaDevice()))

    rows = []
    for N in N_values:
        print(f"N = {N:,}")

        t0 = time.time()
        expected = classic_flags(N)
        t_ref = time.time() - t0
        rows.append({'N': N, 'backend': 'reference', 'seconds': t_ref,
                     'primes': int(np.sum(expected == 0)), 'ok': True})
        print(f"  reference: {t_ref:.3f}s")

        for name, device in devices:
            times = []
            ok = True
            try:
                for _ in range(repeats):
                    t0 = time.time()
                    flags = sieve(N, device=device)
                    times.append(time.time() - t0)
                    ok = ok and np.array_equal(flags, expected)
            except SieveError as e:
                print(f"  {name}: FAILED ({e})")
                continue

            best = min(times)
            rows.append({'N': N, 'backend': name, 'seconds': best,
                         'primes': int(np.sum(flags == 0)), 'ok': ok})
            status = "OK" if ok else "MISMATCH!"
            print(f"  {name}: {best:.3f}s  {status}")

    return pd.DataFrame(rows)


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Benchmark sieve backends')
    parser.add_argument('--N', type=float, nargs='+', default=[1e5, 1e6, 1e7],
                        help='Bounds to sieve')
    parser.add_argument('--workers', type=int, default=None,
                        help='CPU worker processes')
    parser.add_argument('--repeats', type=int, default=3)
    args = parser.parse_args()

    print("=" * 60)
    print("Sieve Benchmark")
    print("=" * 60)
    if HAS_GPU:
        check_gpu(CudaDevice())
    else:
        print("GPU not available, benchmarking CPU only")
    print()

    df = benchmark([int(n) for n in args.N], args.workers, args.repeats)

    print()
    print("=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(df.to_string(index=False))
