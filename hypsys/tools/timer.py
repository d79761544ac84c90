import time
from typing import Dict, Iterable, Set

import numpy as np
import pandas as pd


class Timer:
    """
    Accumulates wall-clock time spent in named categories.
    """

    def __init__(self, cats: Iterable[str] = ("main",)):
        """
        Args:
            cats: Iterable of category names to initialize.
        """
        self.cats: Set[str] = set()
        self.lap_time: Dict[str, float] = {}
        self.cum_time: Dict[str, float] = {}
        self.n_calls: Dict[str, int] = {}
        self._start_time: Dict[str, float] = {}

        for cat in cats:
            self.add_cat(cat)

    def add_cat(self, cat: str):
        if cat in self.cats:
            raise ValueError(f"Category '{cat}' already exists.")
        self.cats.add(cat)
        self.lap_time[cat] = np.nan
        self.cum_time[cat] = 0.0
        self.n_calls[cat] = 0

    def _check_cat_existence(self, cat: str):
        if cat not in self.cats:
            raise ValueError(f"Category '{cat}' not found in timer categories.")

    def is_running(self, cat: str) -> bool:
        return cat in self._start_time

    def start(self, cat: str):
        self._check_cat_existence(cat)
        if self.is_running(cat):
            raise RuntimeError(
                f"Cannot start '{cat}' timer since it is already in progress."
            )
        self._start_time[cat] = time.perf_counter()
        self.n_calls[cat] += 1

    def stop(self, cat: str):
        self._check_cat_existence(cat)
        if not self.is_running(cat):
            raise RuntimeError(
                f"Cannot stop '{cat}' timer since it is not in progress."
            )
        lap = time.perf_counter() - self._start_time.pop(cat)
        self.lap_time[cat] = lap
        self.cum_time[cat] += lap

    def stop_all(self):
        for cat in list(self._start_time):
            self.stop(cat)

    def to_dataframe(self) -> pd.DataFrame:
        """
        Returns a table of calls and cumulative time per category, sorted by name.
        """
        cats = sorted(self.cats)
        return pd.DataFrame(
            {
                "Routine": cats,
                "# of calls": [self.n_calls[cat] for cat in cats],
                "Total time (s)": [self.cum_time[cat] for cat in cats],
            }
        )

    def report(self, total_time_spec: str = ".2f") -> str:
        df = self.to_dataframe()
        totals = df["Total time (s)"].map(lambda x: f"{x:{total_time_spec}}")
        w1 = max(len("Routine"), int(df["Routine"].str.len().max()))
        out = f"{'Routine':<{w1}}  {'# of calls':>10}  {'Total time (s)':>14}\n"
        out += f"{'-' * w1}  {'-' * 10}  {'-' * 14}\n"
        for name, calls, total in zip(df["Routine"], df["# of calls"], totals):
            out += f"{name:<{w1}}  {calls:>10}  {total:>14}\n"
        return out

    def __contains__(self, cat: str) -> bool:
        return cat in self.cats


class MethodTimer:
    """
    Decorator for timing methods of a class holding a `timer` attribute.
    """

    def __init__(self, cat: str):
        self.cat = cat

    def __call__(self, method):
        def wrapped(instance, *args, **kwargs):
            instance.timer.start(self.cat)
            try:
                return method(instance, *args, **kwargs)
            finally:
                instance.timer.stop(self.cat)

        wrapped.__name__ = method.__name__
        wrapped.__doc__ = method.__doc__
        return wrapped
