"""
Typed, range-validated parameter records for each segmentation algorithm.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import ClassVar

from loguru import logger

from ..errors import ParameterError


class Algorithm(Enum):
    """The closed set of segmentation algorithms."""

    OTSU_2D = ('otsu_2d', '2D Otsu')
    TRICLASS = ('triclass', 'Iterative Triclass')

    def __init__(self, key, display_name):
        self.key = key
        self.display_name = display_name

    @property
    def params_type(self):
        return _PARAMS_TYPES[self]

    @classmethod
    def from_name(cls, name):
        """Look up an algorithm by member, key ('triclass') or display name ('Iterative Triclass')."""
        if isinstance(name, cls):
            return name
        wanted = str(name).strip().lower()
        for algorithm in cls:
            if wanted in (algorithm.key, algorithm.display_name.lower(), algorithm.name.lower()):
                return algorithm
        raise ValueError(f"Unknown algorithm '{name}', expected one of {[a.key for a in cls]}")


def _param(default, kind, low=None, high=None, choices=None, allow_zero=False):
    return field(
        default=default,
        metadata={'kind': kind, 'low': low, 'high': high, 'choices': choices, 'allow_zero': allow_zero},
    )


def _check(name, value, rule):
    kind = rule['kind']
    if kind is bool:
        if not isinstance(value, bool):
            raise ParameterError(name, f"expected bool, got {type(value).__name__}")
        return value
    if kind is str:
        if not isinstance(value, str):
            raise ParameterError(name, f"expected str, got {type(value).__name__}")
        if rule['choices'] and value not in rule['choices']:
            raise ParameterError(name, f"must be one of {list(rule['choices'])}, got '{value}'")
        return value

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ParameterError(name, f"expected {kind.__name__}, got {type(value).__name__}")
    if kind is int:
        if not isinstance(value, int):
            raise ParameterError(name, f"expected int, got {type(value).__name__}")
    else:
        value = float(value)

    if rule['allow_zero'] and value == 0:
        return value
    low, high = rule['low'], rule['high']
    if (low is not None and value < low) or (high is not None and value > high):
        allowed = f"0 (auto) or {low}-{high}" if rule['allow_zero'] else f"{low}-{high}"
        raise ParameterError(name, f"must be {allowed}, got {value}")
    return value


class _ParameterSet:
    """Shared validation and dictionary conversion for the parameter records."""

    algorithm: ClassVar[Algorithm]
    aliases: ClassVar[dict] = {}

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Check the type and range of every field, raising ParameterError on the first bad one."""
        for record_field in fields(self):
            value = _check(record_field.name, getattr(self, record_field.name), record_field.metadata)
            object.__setattr__(self, record_field.name, value)

    @classmethod
    def from_dict(cls, config=None):
        """
        Build a validated record from a configuration dictionary.

        Args:
            config (dict, optional): Parameter values. The ``enable`` key used by
                configuration files is ignored and alias keys are accepted.

        Returns:
            A validated parameter record; missing keys take their defaults.

        Raises:
            ParameterError: On unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (config or {}).items():
            if key == 'enable':
                continue
            name = cls.aliases.get(key, key)
            if name not in known:
                raise ParameterError(key, f"unknown parameter for {cls.algorithm.display_name}")
            values[name] = value
        return cls(**values)

    def to_dict(self):
        return asdict(self)

    def replace(self, **changes):
        """Return a validated copy with some fields changed."""
        return replace(self, **changes)


@dataclass(frozen=True)
class Otsu2DParams(_ParameterSet):
    """Parameters of the 2D joint-histogram Otsu segmenter."""

    algorithm: ClassVar[Algorithm] = Algorithm.OTSU_2D
    aliases: ClassVar[dict] = {'smoothing_strength': 'smoothing_sigma'}

    window_size: int = _param(7, int, 3, 21)
    histogram_bins: int = _param(0, int, 8, 256, allow_zero=True)
    pixel_weight_factor: float = _param(0.5, float, 0.0, 1.0)
    smoothing_sigma: float = _param(1.0, float, 0.0, 5.0)
    neighbourhood_metric: str = _param('mean', str, choices=('mean', 'median', 'gaussian'))
    quality: str = _param('fast', str, choices=('fast', 'best'))
    use_log_histogram: bool = _param(False, bool)
    normalize_histogram: bool = _param(False, bool)
    gaussian_preprocessing: bool = _param(True, bool)
    noise_robustness: bool = _param(True, bool)
    use_clahe: bool = _param(False, bool)
    clahe_clip_limit: float = _param(3.0, float, 1.0, 8.0)
    clahe_tile_size: int = _param(8, int, 4, 16)
    guided_filtering: bool = _param(False, bool)
    guided_radius: int = _param(4, int, 1, 8)
    guided_epsilon: float = _param(0.05, float, 0.001, 0.5)
    result_cleanup: bool = _param(False, bool)

    def __post_init__(self):
        window = self.window_size
        if isinstance(window, int) and not isinstance(window, bool) and window % 2 == 0:
            logger.debug(f"window_size {window} is even, using {window + 1}")
            object.__setattr__(self, 'window_size', window + 1)
        super().__post_init__()


@dataclass(frozen=True)
class TriclassParams(_ParameterSet):
    """Parameters of the iterative triclass segmenter."""

    algorithm: ClassVar[Algorithm] = Algorithm.TRICLASS
    aliases: ClassVar[dict] = {
        'convergence_epsilon': 'convergence_precision',
        'lower_upper_gap_factor': 'class_separation',
    }

    initial_threshold_method: str = _param('otsu', str, choices=('otsu', 'mean', 'median', 'triangle'))
    histogram_bins: int = _param(0, int, 8, 256, allow_zero=True)
    max_iterations: int = _param(8, int, 3, 20)
    convergence_precision: float = _param(1.0, float, 0.1, 10.0)
    minimum_tbd_fraction: float = _param(0.01, float, 0.001, 0.2)
    class_separation: float = _param(0.5, float, 0.0, 1.0)
    preprocessing: bool = _param(True, bool)
    guided_filtering: bool = _param(True, bool)
    guided_radius: int = _param(6, int, 1, 8)
    guided_epsilon: float = _param(0.15, float, 0.001, 0.5)
    noise_robustness: bool = _param(True, bool)
    result_cleanup: bool = _param(True, bool)


_PARAMS_TYPES = {
    Algorithm.OTSU_2D: Otsu2DParams,
    Algorithm.TRICLASS: TriclassParams,
}
