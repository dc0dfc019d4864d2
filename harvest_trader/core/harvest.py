"""
Harvest Schedule

Builds the daily inventory inflow for a commodity from its harvest windows.

Windows are inclusive day-of-year ranges on a 365-day calendar, laid out every
year, so the schedule repeats per harvest year. Inside any window each calendar day
receives `harvest_volume / total_window_days` tons; outside all windows it
receives nothing.

The backtest steps once per price row (trading day). A trading day is
credited with the calendar inflow of every day since the previous trading
day, so weekends and holidays do not lose harvest volume.
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Union

import numpy as np
import pandas as pd

from ..exceptions import ConfigurationError

DAYS_PER_YEAR = 365

# Non-leap reference year used to turn month ranges into day-of-year ranges
_REFERENCE_YEAR = 2001


@dataclass(frozen=True)
class HarvestWindow:
    """Inclusive day-of-year range [start_day, end_day] (1-365)"""
    start_day: int
    end_day: int

    def __post_init__(self):
        for value in (self.start_day, self.end_day):
            if not 1 <= value <= DAYS_PER_YEAR:
                raise ConfigurationError(
                    f"Harvest window day {value} outside 1..{DAYS_PER_YEAR}")
        if self.length <= 0:
            raise ConfigurationError(
                f"Harvest window ({self.start_day}, {self.end_day}) has length {self.length}; "
                f"split windows crossing the year end into two windows")

    @property
    def length(self) -> int:
        return self.end_day - self.start_day + 1

    def overlaps(self, other: 'HarvestWindow') -> bool:
        return self.start_day <= other.end_day and other.start_day <= self.end_day

    @classmethod
    def from_months(cls, start_month: int, end_month: int) -> List['HarvestWindow']:
        """
        Convert a month range like (5, 9) into day-of-year windows.

        (5, 9) -> May 1 .. Sep 30 -> [HarvestWindow(121, 273)], 153 days.
        Ranges crossing the year end, e.g. (10, 2), become two windows.
        """
        for month in (start_month, end_month):
            if not 1 <= month <= 12:
                raise ConfigurationError(f"Invalid harvest month: {month}")

        start_day = pd.Timestamp(year=_REFERENCE_YEAR, month=start_month, day=1).dayofyear
        end_of_month = pd.Timestamp(year=_REFERENCE_YEAR, month=end_month, day=1) + pd.offsets.MonthEnd(0)
        end_day = end_of_month.dayofyear

        if start_month <= end_month:
            return [cls(start_day, end_day)]
        return [cls(start_day, DAYS_PER_YEAR), cls(1, end_day)]


WindowEntry = Union[HarvestWindow, Sequence[int]]


def normalize_windows(harvest_windows: Iterable[WindowEntry]) -> List[HarvestWindow]:
    """
    Accept HarvestWindow objects or (start_month, end_month) tuples.

    Raises:
        ConfigurationError: no windows, malformed windows or overlaps
    """
    if harvest_windows is None:
        raise ConfigurationError("harvest_windows is required")

    windows = []
    for entry in harvest_windows:
        if isinstance(entry, HarvestWindow):
            windows.append(entry)
        else:
            try:
                start_month, end_month = entry
            except (TypeError, ValueError):
                raise ConfigurationError(f"Malformed harvest window: {entry!r}") from None
            windows.extend(HarvestWindow.from_months(int(start_month), int(end_month)))

    if not windows:
        raise ConfigurationError("At least one harvest window is required")

    for i, first in enumerate(windows):
        for second in windows[i + 1:]:
            if first.overlaps(second):
                raise ConfigurationError(f"Overlapping harvest windows: {first} and {second}")

    return sorted(windows, key=lambda w: w.start_day)


def no_leap_day_of_year(dates: pd.DatetimeIndex) -> np.ndarray:
    """
    Day of year on a 365-day calendar.

    In leap years every day from March on is shifted back by one, so month
    boundaries keep their day numbers and Dec 31 is always day 365. Feb 29
    shares day 60 with Mar 1.
    """
    dates = pd.DatetimeIndex(dates)
    shift = (dates.is_leap_year & (dates.month > 2)).astype(int)
    return dates.dayofyear.to_numpy() - shift


def build_calendar_increments(harvest_windows, harvest_volume, start, end) -> pd.DataFrame:
    """
    Calendar-day harvest schedule between `start` and `end` (inclusive).

    Returns:
        DataFrame indexed by date with columns:
            - increment: tons harvested that calendar day
            - in_window: day falls inside a harvest window
            - season_start: first day of a contiguous harvest season
            - harvest_year: calendar year the season started in (None outside)
    """
    windows = normalize_windows(harvest_windows)
    if harvest_volume < 0:
        raise ConfigurationError(f"harvest_volume must be >= 0, got {harvest_volume}")

    start = pd.Timestamp(start).normalize()
    end = pd.Timestamp(end).normalize()

    # Look back a full year so a season already running at `start` keeps
    # its real start date and harvest year
    calendar = pd.date_range(start - pd.Timedelta(days=DAYS_PER_YEAR + 1), end, freq='D')

    day_of_year = no_leap_day_of_year(calendar)
    in_window = np.zeros(len(calendar), dtype=bool)
    for window in windows:
        in_window |= (day_of_year >= window.start_day) & (day_of_year <= window.end_day)

    previous_in_window = np.concatenate([[False], in_window[:-1]])
    season_start = in_window & ~previous_in_window

    total_days = sum(w.length for w in windows)
    increment = np.where(in_window, harvest_volume / total_days, 0.0)

    start_years = pd.Series(np.where(season_start, calendar.year, np.nan), index=calendar).ffill()
    harvest_year = [int(y) if flag and not np.isnan(y) else None
                    for flag, y in zip(in_window, start_years.values)]

    frame = pd.DataFrame({
        'increment': increment,
        'in_window': in_window,
        'season_start': season_start,
        'harvest_year': harvest_year
    }, index=calendar)

    return frame.loc[start:end]


class HarvestSchedule:
    """
    Inflow credited on each simulation day.

    Built once per backtest from the simulation dates; read-only afterwards.
    """

    def __init__(self, frame: pd.DataFrame, windows: List[HarvestWindow], harvest_volume: float):
        self._frame = frame
        self.windows = windows
        self.harvest_volume = harvest_volume
        self.daily_increment = harvest_volume / sum(w.length for w in windows)

        self._inflows = frame['harvest_added'].to_numpy(dtype=float)
        self._inflows.flags.writeable = False
        self._window_starts = frame['is_window_start'].to_numpy(dtype=bool)
        self._in_window = frame['is_harvest_window'].to_numpy(dtype=bool)

    @classmethod
    def build(cls, dates, harvest_windows, harvest_volume) -> 'HarvestSchedule':
        """
        Args:
            dates: simulation dates (one per price row), strictly increasing
            harvest_windows: HarvestWindow objects or (start_month, end_month) tuples
            harvest_volume: tons harvested per year
        """
        dates = pd.DatetimeIndex(pd.to_datetime(dates)).normalize()
        if len(dates) == 0:
            raise ConfigurationError("Cannot build a harvest schedule without dates")
        if not dates.is_monotonic_increasing or dates.has_duplicates:
            raise ConfigurationError("Simulation dates must be strictly increasing")

        windows = normalize_windows(harvest_windows)
        calendar = build_calendar_increments(windows, harvest_volume, dates[0], dates[-1])

        # Each calendar day is credited on the first simulation day on or after it
        owner = np.searchsorted(dates.values, calendar.index.values, side='left')
        grouped = calendar.assign(day=owner).groupby('day')

        frame = pd.DataFrame({
            'date': dates,
            'harvest_added': grouped['increment'].sum().reindex(range(len(dates)), fill_value=0.0).values,
            'is_harvest_window': grouped['in_window'].any().reindex(range(len(dates)), fill_value=False).values,
            'is_window_start': grouped['season_start'].any().reindex(range(len(dates)), fill_value=False).values,
            'harvest_year': grouped['harvest_year'].last().reindex(range(len(dates))).values
        })
        frame['harvest_year'] = pd.Series(
            [int(y) if y is not None and not pd.isna(y) else None for y in frame['harvest_year']],
            dtype=object)

        return cls(frame, windows, harvest_volume)

    def __len__(self):
        return len(self._frame)

    @property
    def inflows(self) -> np.ndarray:
        return self._inflows

    @property
    def total_inflow(self) -> float:
        return float(self._inflows.sum())

    def inflow(self, day: int) -> float:
        return float(self._inflows[day])

    def is_window_start(self, day: int) -> bool:
        return bool(self._window_starts[day])

    def is_harvest_window(self, day: int) -> bool:
        return bool(self._in_window[day])

    def harvest_year(self, day: int):
        return self._frame.at[day, 'harvest_year']

    def future_inflows(self, day: int, n_days: int) -> np.ndarray:
        """Inflows for days day+1 .. day+n_days, zero-padded past the end"""
        upcoming = self._inflows[day + 1:day + 1 + n_days]
        return np.pad(upcoming, (0, n_days - len(upcoming)))

    def to_frame(self) -> pd.DataFrame:
        return self._frame.copy()
