#!/usr/bin/env python3
"""
Print every prime below N, computed by one parallel sieve launch.

Usage:
    python run_sieve.py                  # N=102 (default)
    python run_sieve.py --N 1e6          # N=10^6
    python run_sieve.py --backend cpu    # force the CPU worker pool
    python run_sieve.py --info           # describe the device and exit
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

from gpu_sieve.capability import check_gpu
from gpu_sieve.config import SieveConfig, load_config, parse_bound
from gpu_sieve.errors import InvalidArgumentError, SieveError
from gpu_sieve.gpu_backend import CudaDevice
from gpu_sieve.parallel_backend import CpuDevice
from gpu_sieve.sieve import default_device, generate_primes_below


def make_device(config: SieveConfig):
    """Device handle for the configured backend."""
    if config.backend == 'cuda':
        return CudaDevice(config.device_id)
    if config.backend == 'cpu':
        return CpuDevice(config.workers)
    return default_device(config.verbose)


def save_primes(primes, path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame({'prime': primes}).to_csv(path, index=False)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Parallel Sieve of Eratosthenes')
    parser.add_argument('--N', type=str, default=None,
                        help='Exclusive upper bound (default: 102)')
    parser.add_argument('--backend', choices=['auto', 'cuda', 'cpu'], default=None,
                        help='Device backend (default: auto)')
    parser.add_argument('--workers', type=int, default=None,
                        help='CPU worker processes (default: CPU count)')
    parser.add_argument('--device-id', type=int, default=None,
                        help='CUDA device number (default: 0)')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to YAML config file')
    parser.add_argument('--output', type=str, default=None,
                        help='Also write primes to this CSV file')
    parser.add_argument('--info', action='store_true',
                        help='Describe the device and exit')
    parser.add_argument('--verbose', action='store_true', default=None,
                        help='Print progress')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args.config) if args.config else SieveConfig()
        config = config.override(
            N=parse_bound(args.N) if args.N is not None else None,
            backend=args.backend,
            workers=args.workers,
            device_id=args.device_id,
            output=args.output,
            verbose=args.verbose,
        )
        device = make_device(config)

        if args.info:
            return 0 if check_gpu(device) else 1

        primes = generate_primes_below(config.N, device=device, verbose=config.verbose)
    except InvalidArgumentError as e:
        print(f"ERROR: invalid argument: {e}", file=sys.stderr)
        return 2
    except SieveError as e:
        print(f"ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    print(' '.join(str(p) for p in primes))

    if config.output:
        save_primes(primes, Path(config.output))
        if config.verbose:
            print(f"    Saved {len(primes):,} primes to {config.output}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
