"""Host CPU-load and memory utilization sampler"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Union
import psutil
from metrics.definitions import CPU_USAGE_PERCENT, MEMORY_USAGE_PERCENT
from metrics.models import MetricValue, MetricType
from logging_config import get_logger


logger = get_logger(__name__)

Percent = Union[int, float]


def round_percent(value: float, precision: int) -> Percent:
    """Clamp to [0, 100] and round half-up to ``precision`` decimal places.

    Precision 0 yields an ``int`` so the reading is exported as an integer.
    """
    value = min(max(value, 0.0), 100.0)
    quantum = Decimal(1).scaleb(-precision)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if precision == 0 else float(rounded)


class HostSampler:
    """Instantaneous CPU-load and memory readings from the operating system.

    Both readings use the same precision policy. When the OS facility is
    unavailable the reading is 0 and a warning is logged.
    """

    def __init__(self, precision: int = 0):
        if precision not in (0, 2):
            raise ValueError("precision must be 0 or 2")
        self.precision = precision

    def sample_cpu_percent(self) -> Percent:
        """1-minute load average per logical core, as a percentage"""
        try:
            load_1m = psutil.getloadavg()[0]
            cores = psutil.cpu_count(logical=True)
            if not cores:
                raise OSError("logical core count unavailable")
        except (OSError, AttributeError, psutil.Error) as e:
            logger.warning("CPU load sampling failed", error=str(e), event_type="sampling_error")
            return round_percent(0.0, self.precision)

        return round_percent(load_1m / cores * 100, self.precision)

    def sample_memory_percent(self) -> Percent:
        """Share of physical memory not free, as a percentage"""
        try:
            memory = psutil.virtual_memory()
            total = memory.total
            free = memory.free
            if not total:
                raise OSError("total memory unavailable")
        except (OSError, AttributeError, psutil.Error) as e:
            logger.warning("Memory sampling failed", error=str(e), event_type="sampling_error")
            return round_percent(0.0, self.precision)

        return round_percent((total - free) / total * 100, self.precision)

    def collect(self) -> List[MetricValue]:
        """Both readings as gauge values"""
        return [
            MetricValue(
                name=CPU_USAGE_PERCENT,
                value=self.sample_cpu_percent(),
                labels={},
                help_text="Load average per logical core",
                metric_type=MetricType.GAUGE,
                unit="%"
            ),
            MetricValue(
                name=MEMORY_USAGE_PERCENT,
                value=self.sample_memory_percent(),
                labels={},
                help_text="Share of physical memory in use",
                metric_type=MetricType.GAUGE,
                unit="%"
            ),
        ]
