#!/usr/bin/env python3
"""
Copyright (c) 2025, Josh Walker

Redistribution and use in source and binary forms, with or without
modification, are permitted provided that the following conditions are met:

1. Redistributions of source code must retain the above copyright notice, this
   list of conditions and the following disclaimer.

2. Redistributions in binary form must reproduce the above copyright notice,
   this list of conditions and the following disclaimer in the documentation
   and/or other materials provided with the distribution.

THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE
DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE
FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL
DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR
SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY,
OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE
OF THIS SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.

Multi-part String Similarity

This module scores two ordered sequences (strings, token lists, any indexable
collection of comparable elements) by repeatedly extracting the best local
alignment between them. Each extracted alignment contributes its score plus a
fixed per-part adjustment, and the elements it used in both sequences are
removed from further consideration. Sequences that share several separated
blocks (reordered or duplicated regions) therefore score higher than with a
single Smith-Waterman alignment.

Only the parts of the score table that border an extracted alignment are
recomputed between extractions.
"""

import logging
import math
import numbers
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

_INT64 = np.iinfo(np.int64)


@dataclass(frozen=True)
class ScoringConfig:
    """
    Scoring parameters for multi-part similarity.

    All fields are required; the algorithm never assumes defaults.

    Attributes:
        match_value: Score for aligning two equal elements
        mismatch_value: Score for aligning two different elements
        space_value: Score for a gap in either sequence (linear gap model)
        part_value: Adjustment added once per extracted alignment, usually <= 0.
                    A negative value penalizes fragmentation and limits the
                    number of extracted parts.
        min_len: Minimum number of elements an alignment must span in each
                 sequence to be accepted
    """
    match_value: float
    mismatch_value: float
    space_value: float
    part_value: float
    min_len: int

    def __post_init__(self):
        """Validate value types and reject configurations that cannot terminate."""
        for field_name in ('match_value', 'mismatch_value', 'space_value', 'part_value', 'min_len'):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise ValueError(f"Scoring value '{field_name}' must be a number, got: {value!r}")
            if isinstance(value, numbers.Integral) and not _INT64.min <= value <= _INT64.max:
                raise ValueError(f"Scoring value '{field_name}' is outside the int64 range, got: {value!r}")
            if not math.isfinite(value):
                raise ValueError(f"Scoring value '{field_name}' must be finite, got: {value!r}")
        if not isinstance(self.min_len, numbers.Integral):
            raise ValueError(f"min_len must be an integer, got: {self.min_len!r}")
        if self.min_len < 0:
            raise ValueError(f"min_len cannot be negative, got: {self.min_len}")
        if self.min_len == 0 and self.part_value >= 0:
            raise ValueError(
                f"Contradictory configuration: min_len=0 requires a negative part_value "
                f"to bound the number of extracted alignments, got part_value={self.part_value}"
            )

    @property
    def dtype(self):
        """Storage type for score tables: int64 for integral scoring, float64 otherwise."""
        values = (self.match_value, self.mismatch_value, self.space_value, self.part_value)
        if all(isinstance(v, numbers.Integral) for v in values):
            return np.int64
        return np.float64


@dataclass(frozen=True)
class LocalAlignment:
    """One alignment accepted by the extraction loop.

    Coordinates are half-open ranges into the two input sequences.

    Fields:
        seq1_start, seq1_end: Range of the first sequence covered by the alignment
        seq2_start, seq2_end: Range of the second sequence covered by the alignment
        score: Local alignment score (value of the best cell)
        score_increment: Contribution to the total, score + part_value
    """
    seq1_start: int
    seq1_end: int
    seq2_start: int
    seq2_end: int
    score: float
    score_increment: float

    @property
    def seq1_length(self):
        return self.seq1_end - self.seq1_start

    @property
    def seq2_length(self):
        return self.seq2_end - self.seq2_start


@dataclass(frozen=True)
class SimilarityResult:
    """Result of a multi-part similarity comparison.

    Fields:
        score: Sum of the score increments of all accepted alignments (>= 0)
        alignments: Accepted alignments in extraction order
        seq1_coverage: Fraction of seq1 covered by accepted alignments (0.0-1.0)
        seq2_coverage: Fraction of seq2 covered by accepted alignments (0.0-1.0)
    """
    score: float
    alignments: tuple
    seq1_coverage: float
    seq2_coverage: float


# Unit scoring: +1 per match, -1 per mismatch or gap, no per-part adjustment
UNIT_SCORING = ScoringConfig(
    match_value=1,
    mismatch_value=-1,
    space_value=-1,
    part_value=0,
    min_len=1
)


def _clamp_range(lower, upper, begin, end):
    """Clamp [begin, end) into [lower, upper); an inverted range collapses to zero length."""
    begin = min(max(begin, lower), upper)
    end = min(max(end, begin), upper)
    return begin, end


class ScoreWindow:
    """
    Rectangular region of the score table with its own storage.

    A window covers rows [row_begin, row_end) of the first sequence and
    columns [col_begin, col_end) of the second, and is addressed with absolute
    coordinates. Cells on the first row and first column treat their missing
    neighbours as zero, whatever surrounded the region the window was cut
    from, so every window can be refilled on its own.

    Sub-windows copy their values; no two windows share storage.

    Examples:
        >>> full = ScoreWindow.full(4, 5, np.int64)
        >>> part = ScoreWindow.sub(full, 1, 3, 2, 5)
        >>> part.shape
        (2, 3)
    """
    __slots__ = ('row_begin', 'row_end', 'col_begin', 'col_end', '_data')

    def __init__(self, row_begin, row_end, col_begin, col_end, data):
        if row_begin > row_end or col_begin > col_end:
            raise ValueError(
                f"Invalid window bounds: rows [{row_begin}, {row_end}), cols [{col_begin}, {col_end})"
            )
        if data.shape != (row_end - row_begin, col_end - col_begin):
            raise ValueError(f"Window storage shape {data.shape} does not match its bounds")
        self.row_begin = row_begin
        self.row_end = row_end
        self.col_begin = col_begin
        self.col_end = col_end
        self._data = data

    @classmethod
    def full(cls, rows, cols, dtype=np.int64):
        """Zero-filled window covering the whole rows x cols table."""
        return cls(0, rows, 0, cols, np.zeros((rows, cols), dtype=dtype))

    @classmethod
    def sub(cls, parent, row_begin, row_end, col_begin, col_end):
        """
        Independent copy of part of another window.

        Bounds are clamped to the parent, so raw split points can be passed
        directly; a range that ends before it begins yields an empty window.
        """
        row_begin, row_end = _clamp_range(parent.row_begin, parent.row_end, row_begin, row_end)
        col_begin, col_end = _clamp_range(parent.col_begin, parent.col_end, col_begin, col_end)
        data = parent._data[row_begin - parent.row_begin:row_end - parent.row_begin,
                            col_begin - parent.col_begin:col_end - parent.col_begin].copy()
        return cls(row_begin, row_end, col_begin, col_end, data)

    def __repr__(self):
        return (f"ScoreWindow(rows=[{self.row_begin}, {self.row_end}), "
                f"cols=[{self.col_begin}, {self.col_end}))")

    @property
    def row_span(self):
        return self.row_end - self.row_begin

    @property
    def col_span(self):
        return self.col_end - self.col_begin

    @property
    def shape(self):
        return self._data.shape

    @property
    def area(self):
        return self.row_span * self.col_span

    @property
    def values(self):
        """Read-only view of the scores, indexed relative to the window's corner."""
        view = self._data.view()
        view.flags.writeable = False
        return view

    def is_empty(self):
        return self.area == 0

    def contains(self, i, j):
        return self.row_begin <= i < self.row_end and self.col_begin <= j < self.col_end

    def _offset(self, i, j):
        if not self.contains(i, j):
            raise IndexError(f"Cell ({i}, {j}) is outside {self!r}")
        return i - self.row_begin, j - self.col_begin

    def at(self, i, j):
        return self._data[self._offset(i, j)].item()

    def set(self, i, j, value):
        self._data[self._offset(i, j)] = value

    def max_value(self):
        if self.is_empty():
            raise ValueError(f"Cannot take the maximum of empty {self!r}")
        return self._data.max().item()

    def argmax(self):
        """
        Absolute coordinate of a maximal cell.

        Ties resolve to the first maximal cell in row-major order, which
        decides the extracted alignment when several cells share the best score.
        """
        if self.is_empty():
            raise ValueError(f"Cannot locate the maximum of empty {self!r}")
        di, dj = np.unravel_index(np.argmax(self._data), self._data.shape)
        return self.row_begin + int(di), self.col_begin + int(dj)


def _match_value(scoring, a, b, i, j):
    return scoring.match_value if a[i] == b[j] else scoring.mismatch_value


def compute_cell(scoring, a, b, window, i, j):
    """
    Local alignment score of cell (i, j) from its upper, left and upper-left neighbours.

    Neighbours outside the window count as zero, and the result never drops
    below zero.
    """
    upper = 0 if i == window.row_begin else window.at(i - 1, j)
    left = 0 if j == window.col_begin else window.at(i, j - 1)
    upper_left = 0 if (i == window.row_begin or j == window.col_begin) else window.at(i - 1, j - 1)

    return max(
        0,
        upper_left + _match_value(scoring, a, b, i, j),
        left + scoring.space_value,
        upper + scoring.space_value
    )


def fill_window(scoring, a, b, window):
    """Compute every cell of the window in row-major order."""
    for i in range(window.row_begin, window.row_end):
        for j in range(window.col_begin, window.col_end):
            window.set(i, j, compute_cell(scoring, a, b, window, i, j))


def update_window(scoring, a, b, window):
    """
    Refill a window that lost neighbours when an alignment was removed.

    The whole window is recomputed against its own edges.

    Returns:
        int: Number of cells whose value changed
    """
    changed = 0
    for i in range(window.row_begin, window.row_end):
        for j in range(window.col_begin, window.col_end):
            new_value = compute_cell(scoring, a, b, window, i, j)
            if new_value != window.at(i, j):
                window.set(i, j, new_value)
                changed += 1
    return changed


def find_alignment(scoring, a, b, window):
    """
    Extract the best local alignment of a filled window.

    Starts at the window's maximal cell and walks back along the recurrence,
    preferring the diagonal predecessor, then the one above, then the one to
    the left. The walk ends at a cell whose value no predecessor reproduces,
    or when it reaches a zero cell.

    Args:
        scoring (ScoringConfig): Scoring used to fill the window
        a, b: The two sequences
        window (ScoreWindow): Filled window to search

    Returns:
        ScoreWindow: Independent copy of the alignment's bounding box, with the
            maximal cell in its bottom-right corner. Empty when the window's
            best score is zero. An empty input window is returned unchanged.
    """
    if window.is_empty():
        return window

    i, j = window.argmax()
    row_begin = row_end = i + 1
    col_begin = col_end = j + 1

    value = window.at(i, j)
    while value > 0:
        row_begin = i
        col_begin = j

        if (i > window.row_begin and j > window.col_begin
                and value == window.at(i - 1, j - 1) + _match_value(scoring, a, b, i, j)):
            i -= 1
            j -= 1
        elif i > window.row_begin and value == window.at(i - 1, j) + scoring.space_value:
            i -= 1
        elif j > window.col_begin and value == window.at(i, j - 1) + scoring.space_value:
            j -= 1
        else:
            break  # alignment starts here, on the window edge or after a zero-floored cell
        value = window.at(i, j)

    return ScoreWindow.sub(window, row_begin, row_end, col_begin, col_end)


def choose_alignment(scoring, a, b, windows):
    """Trace the best alignment of the first window holding the highest score."""
    best = max(windows, key=ScoreWindow.max_value)
    return find_alignment(scoring, a, b, best)


def _append_if_not_empty(windows, window):
    if not window.is_empty():
        windows.append(window)


def remove_alignment(windows, alignment):
    """
    Remove an alignment's rows and columns from a set of candidate windows.

    Every element of either sequence may belong to at most one alignment, so
    the alignment's whole row band and column band are cut out of each
    window, not only its rectangle.

    Args:
        windows (list): Candidate ScoreWindows
        alignment (ScoreWindow): Alignment returned by find_alignment

    Returns:
        tuple: (unaffected, affected) lists of non-empty windows. Unaffected
            windows keep valid scores; affected windows must be refilled with
            update_window because cells they depended on were removed.
    """
    unaffected = []
    affected = []

    for window in windows:
        rows_intersect = not (window.row_end <= alignment.row_begin or alignment.row_end <= window.row_begin)
        cols_intersect = not (window.col_end <= alignment.col_begin or alignment.col_end <= window.col_begin)

        if rows_intersect and cols_intersect:
            # The upper-left corner never depended on removed cells
            _append_if_not_empty(unaffected, ScoreWindow.sub(
                window, window.row_begin, alignment.row_begin, window.col_begin, alignment.col_begin))
            _append_if_not_empty(affected, ScoreWindow.sub(
                window, window.row_begin, alignment.row_begin, alignment.col_end, window.col_end))
            _append_if_not_empty(affected, ScoreWindow.sub(
                window, alignment.row_end, window.row_end, window.col_begin, alignment.col_begin))
            _append_if_not_empty(affected, ScoreWindow.sub(
                window, alignment.row_end, window.row_end, alignment.col_end, window.col_end))
        elif rows_intersect:
            _append_if_not_empty(affected, ScoreWindow.sub(
                window, window.row_begin, alignment.row_begin, window.col_begin, window.col_end))
            _append_if_not_empty(affected, ScoreWindow.sub(
                window, alignment.row_end, window.row_end, window.col_begin, window.col_end))
        elif cols_intersect:
            _append_if_not_empty(affected, ScoreWindow.sub(
                window, window.row_begin, window.row_end, window.col_begin, alignment.col_begin))
            _append_if_not_empty(affected, ScoreWindow.sub(
                window, window.row_begin, window.row_end, alignment.col_end, window.col_end))
        else:
            unaffected.append(window)

    return unaffected, affected


def _iter_alignments(seq1, seq2, scoring):
    """Run the extraction loop, yielding each accepted LocalAlignment."""
    if not isinstance(scoring, ScoringConfig):
        raise TypeError(f"scoring must be a ScoringConfig, got: {type(scoring).__name__}")

    table = ScoreWindow.full(len(seq1), len(seq2), scoring.dtype)
    fill_window(scoring, seq1, seq2, table)
    windows = [] if table.is_empty() else [table]

    total = 0
    while windows:
        alignment = choose_alignment(scoring, seq1, seq2, windows)

        if (alignment.is_empty()
                or alignment.row_span < scoring.min_len
                or alignment.col_span < scoring.min_len):
            logger.debug("Stopping: best remaining alignment %r is shorter than min_len=%d",
                         alignment, scoring.min_len)
            break

        score = alignment.at(alignment.row_end - 1, alignment.col_end - 1)
        score_increment = score + scoring.part_value
        if score_increment <= 0:
            logger.debug("Stopping: alignment score %s does not outweigh part_value %s",
                         score, scoring.part_value)
            break

        total += score_increment
        logger.debug("Accepted %r: score=%s, increment=%s, total=%s",
                     alignment, score, score_increment, total)
        yield LocalAlignment(
            seq1_start=alignment.row_begin,
            seq1_end=alignment.row_end,
            seq2_start=alignment.col_begin,
            seq2_end=alignment.col_end,
            score=score,
            score_increment=score_increment
        )

        unaffected, affected = remove_alignment(windows, alignment)
        changed = sum(update_window(scoring, seq1, seq2, window) for window in affected)
        logger.debug("Partitioned into %d unaffected and %d affected windows (%d cells changed)",
                     len(unaffected), len(affected), changed)
        windows = unaffected + affected


def find_alignments(seq1, seq2, scoring):
    """
    List the local alignments that make up the similarity score.

    Args:
        seq1, seq2: Sequences to compare (any indexable sequences with ==)
        scoring (ScoringConfig): Scoring parameters

    Returns:
        list: LocalAlignment objects in extraction order (best first). The
            alignments are disjoint in both sequences.
    """
    return list(_iter_alignments(seq1, seq2, scoring))


def similarity(seq1, seq2, scoring):
    """
    Multi-part similarity score of two sequences.

    Repeatedly takes the best local alignment among the remaining parts of the
    score table, adds its score plus scoring.part_value to the total, and
    removes the elements it used. Stops when the best alignment is shorter
    than scoring.min_len in either sequence or no longer adds a positive
    increment.

    Args:
        seq1, seq2: Sequences to compare (strings, lists of tokens, ...)
        scoring (ScoringConfig): Scoring parameters

    Returns:
        Total score (int for integral scoring), 0 if no alignment qualifies

    Example:
        >>> similarity("ABCDXYZ", "XYZABCD", UNIT_SCORING)
        7
    """
    return sum(alignment.score_increment for alignment in _iter_alignments(seq1, seq2, scoring))


def compare(seq1, seq2, scoring):
    """
    Compare two sequences and report the score with the alignments behind it.

    Args:
        seq1, seq2: Sequences to compare
        scoring (ScoringConfig): Scoring parameters

    Returns:
        SimilarityResult: Dataclass containing:
            - score: Same value as similarity()
            - alignments (tuple): Accepted LocalAlignment objects
            - seq1_coverage (float): Fraction of seq1 inside an alignment
            - seq2_coverage (float): Fraction of seq2 inside an alignment
    """
    alignments = tuple(_iter_alignments(seq1, seq2, scoring))
    score = sum(alignment.score_increment for alignment in alignments)

    seq1_covered = sum(alignment.seq1_length for alignment in alignments)
    seq2_covered = sum(alignment.seq2_length for alignment in alignments)

    return SimilarityResult(
        score=score,
        alignments=alignments,
        seq1_coverage=seq1_covered / len(seq1) if len(seq1) > 0 else 0.0,
        seq2_coverage=seq2_covered / len(seq2) if len(seq2) > 0 else 0.0
    )
