"""Shared progress bar utility for lmmscan."""

import sys
from collections.abc import Iterable, Iterator

import progressbar


def progress_iterator(iterable: Iterable, total: int, desc: str = "") -> Iterator:
    """Wrap iterator with progressbar2 progress display.

    Writes to stdout so the bar interleaves with loguru console output.
    The bar is finalized in a try/finally block so that early breaks or
    exceptions from the caller don't leave terminal output corrupted.

    Args:
        iterable: Iterable to wrap.
        total: Total number of items.
        desc: Optional description prefix.

    Yields:
        Items from the wrapped iterable.
    """
    widgets = [
        f"{desc}: " if desc else "",
        progressbar.Counter(),
        f"/{total} ",
        progressbar.Percentage(),
        " ",
        progressbar.Bar(),
        " ",
        progressbar.Timer(),
        " ",
        progressbar.ETA(),
    ]
    bar = progressbar.ProgressBar(max_value=total, widgets=widgets, fd=sys.stdout)
    bar.start()
    try:
        for i, item in enumerate(iterable):
            yield item
            bar.update(i + 1)
    finally:
        bar.finish()


def maybe_progress(
    iterable: Iterable, total: int, desc: str = "", show: bool = False
) -> Iterable:
    """Wrap in progress_iterator() when ``show`` is set and total > 1."""
    if show and total > 1:
        return progress_iterator(iterable, total=total, desc=desc)
    return iterable
