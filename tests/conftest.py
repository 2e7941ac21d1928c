import sys
from datetime import date, timedelta
from pathlib import Path

# Headless matplotlib backend before anything imports pyplot.
import matplotlib

matplotlib.use("Agg")

import pytest

# Modules live at the repository root
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def make_window():
    """Factory for a window of `days` consecutive day cells starting at `start`."""
    from calendar_models import VisibleWindow
    from date_utils import iter_days
    from window import build_month_groups

    def _make(start: date, days: int) -> VisibleWindow:
        d = iter_days(start, start + timedelta(days=days - 1))
        return VisibleWindow(
            granularity="month",
            reference_date=start,
            days=tuple(d),
            month_groups=tuple(build_month_groups(d)),
        )

    return _make


@pytest.fixture
def five_days(make_window):
    """1-5 January 2025, columns 0..4."""
    return make_window(date(2025, 1, 1), 5)
