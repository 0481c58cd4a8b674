"""
Run configuration.

Values come from an optional YAML file (see config/default.yaml) and are
overridden by command-line flags.
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional

import yaml

from .errors import InvalidArgumentError

BACKENDS = ('auto', 'cuda', 'cpu')


@dataclass
class SieveConfig:
    """Settings for one run of the sieve driver."""
    N: int = 102
    backend: str = 'auto'
    workers: Optional[int] = None
    device_id: int = 0
    verbose: bool = False
    output: Optional[str] = None

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise InvalidArgumentError(
                f"backend must be one of {', '.join(BACKENDS)}, got {self.backend!r}"
            )
        if self.workers is not None and self.workers < 1:
            raise InvalidArgumentError(f"workers must be positive, got {self.workers}")

    def override(self, **values) -> 'SieveConfig':
        """Copy with every value that is not None replaced."""
        return replace(self, **{k: v for k, v in values.items() if v is not None})


def load_config(path) -> SieveConfig:
    """
    Load a SieveConfig from a YAML file.

    Missing keys keep their defaults. Unknown keys are rejected.
    """
    with open(Path(path)) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise InvalidArgumentError(f"{path}: expected a mapping at top level")

    known = {field.name for field in fields(SieveConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise InvalidArgumentError(f"{path}: unknown keys {', '.join(unknown)}")

    if isinstance(data.get('N'), (str, float)):
        data['N'] = parse_bound(data['N'])
    return SieveConfig(**data)


def parse_bound(value) -> int:
    """Parse N, accepting scientific notation like 1e6. Fractions are rejected."""
    try:
        number = float(value)
        bound = int(number)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidArgumentError(f"N must be a number, got {value!r}") from e
    if number != bound:
        raise InvalidArgumentError(f"N must be a whole number, got {value!r}")
    return bound
