# Copyright (c) 2025  Feklin Dmitry (FeklinDN@gmail.com)
import argparse
import json
import logging
import numbers
import re
import sys
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import List, Dict, Any, Tuple, Optional, Sequence, Mapping

import numpy as np

logger = logging.getLogger("sequence_detector")

# ===================================================================
# 1. CONFIGURATION
# ===================================================================
EPSILON = 1e-4                  # absolute tolerance for "equal" floats
MAX_DIFFERENCE_LEVELS = 5
MAX_POLYNOMIAL_DEGREE = 4
MIN_POLYNOMIAL_LENGTH = 4
EXACT_CONFIDENCE = 1.0
POLYNOMIAL_CONFIDENCE = 0.9
DEFAULT_PREDICTION_COUNT = 5
RECENT_HISTORY_SIZE = 10
STREAK_LENGTH = 3

NO_PATTERN_MESSAGE = "no recognizable pattern"

# ===================================================================
# 2. RESULT TYPES
# ===================================================================
class PatternKind(str, Enum):
    """Tagged variant of a detection result."""
    ARITHMETIC = "arithmetic"
    GEOMETRIC = "geometric"
    POLYNOMIAL = "polynomial"
    UNKNOWN = "unknown"
    INVALID = "invalid"


class InvalidSequenceError(ValueError):
    """Raised by the validator for input that cannot be analysed."""


# Python attribute / parameter names -> serialized record names
_WIRE_NAMES = {
    "error_message": "errorMessage",
    "first_term": "firstTerm",
    "difference_table": "differenceTable",
    "extended_sequence": "extendedSequence",
}


def _wire(name: str) -> str:
    return _WIRE_NAMES.get(name, name)


@dataclass(frozen=True)
class DetectionResult:
    """
    Outcome of one analysis. Exactly one of (prediction, parameters) or
    error_message is populated.
    """
    success: bool
    kind: PatternKind
    prediction: Optional[float] = None
    parameters: Optional[Mapping[str, Any]] = None
    confidence: Optional[float] = None
    error_message: Optional[str] = None
    pattern: Optional[str] = None
    formula: Optional[str] = None
    sequence: Tuple[float, ...] = ()

    def __post_init__(self):
        # read-only view over a private copy, never shared between results
        if self.parameters is not None:
            object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "kind": self.kind.value}
        if self.prediction is not None:
            data["prediction"] = self.prediction
        if self.parameters is not None:
            data["parameters"] = {_wire(k): _plain(v) for k, v in self.parameters.items()}
        for name in ("confidence", "error_message", "pattern", "formula"):
            value = getattr(self, name)
            if value is not None:
                data[_wire(name)] = value
        data["sequence"] = list(self.sequence)
        return data


@dataclass(frozen=True)
class MultiStepResult(DetectionResult):
    """The first analysis of a sequence plus the predictions derived from it."""
    predictions: Tuple[float, ...] = ()
    extended_sequence: Tuple[float, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["predictions"] = list(self.predictions)
        data[_wire("extended_sequence")] = list(self.extended_sequence)
        return data


def _plain(value: Any) -> Any:
    """Converts tuples (difference tables) into JSON-friendly lists."""
    if isinstance(value, (tuple, list)):
        return [_plain(v) for v in value]
    return value


def _fmt(value: float) -> str:
    return f"{value:g}"


def _invalid(message: str) -> DetectionResult:
    return DetectionResult(success=False, kind=PatternKind.INVALID, error_message=message)

# ===================================================================
# 3. VALIDATOR
# ===================================================================
def validate_sequence(sequence: Any) -> np.ndarray:
    """
    Checks the shape and contents of a candidate sequence and returns it as a
    float64 array.

    Raises:
        InvalidSequenceError: the input is not a list/tuple/1-D array, has fewer
            than 2 elements, or holds a non-numeric or non-finite element.
    """
    if isinstance(sequence, np.ndarray):
        if sequence.ndim != 1:
            raise InvalidSequenceError("Sequence must be a one-dimensional list of numbers")
    elif not isinstance(sequence, (list, tuple)):
        raise InvalidSequenceError("Sequence must be a list of numbers")

    if len(sequence) < 2:
        raise InvalidSequenceError("Sequence must contain at least 2 elements")

    # bool is an int subclass but never a sequence term
    for item in sequence:
        if isinstance(item, (bool, np.bool_)) or not isinstance(item, numbers.Real):
            raise InvalidSequenceError("All elements must be valid numbers")

    try:
        seq = np.array([float(item) for item in sequence], dtype=np.float64)
    except OverflowError:
        raise InvalidSequenceError("All elements must be finite numbers")
    if not np.all(np.isfinite(seq)):
        raise InvalidSequenceError("All elements must be finite numbers")
    return seq

# ===================================================================
# 4. ARITHMETIC PROGRESSION
# ===================================================================
def _is_constant(values: np.ndarray, tolerance: float) -> Tuple[bool, float]:
    """Every value lies within `tolerance` of the mean (not of its neighbour)."""
    mean = float(np.mean(values))
    return bool(np.all(np.abs(values - mean) <= tolerance)), mean


def detect_arithmetic(seq: np.ndarray, tolerance: float = EPSILON) -> Optional[DetectionResult]:
    """Constant difference between neighbours. Two points always qualify."""
    with np.errstate(over="ignore", invalid="ignore"):
        diffs = np.diff(seq)
        is_constant, difference = _is_constant(diffs, tolerance)
        if not is_constant:
            return None
        prediction = float(seq[-1] + difference)
    if not np.isfinite(prediction):
        return None

    first = float(seq[0])
    return DetectionResult(
        success=True,
        kind=PatternKind.ARITHMETIC,
        prediction=prediction,
        parameters={"difference": difference, "first_term": first},
        confidence=EXACT_CONFIDENCE,
        pattern="Arithmetic Progression",
        formula=f"a(n) = {_fmt(first)} + {_fmt(difference)} * (n - 1)",
        sequence=tuple(seq.tolist()),
    )

# ===================================================================
# 5. GEOMETRIC PROGRESSION
# ===================================================================
def detect_geometric(seq: np.ndarray, tolerance: float = EPSILON) -> Optional[DetectionResult]:
    """
    Constant ratio between neighbours. A zero term makes the ratio undefined,
    so the detector declines without dividing. A near-zero mean ratio is
    rejected as well.
    """
    if np.any(seq == 0):
        return None

    with np.errstate(over="ignore", invalid="ignore", under="ignore"):
        ratios = seq[1:] / seq[:-1]
        is_constant, ratio = _is_constant(ratios, tolerance)
        if not is_constant or abs(ratio) <= tolerance:
            return None
        prediction = float(seq[-1] * ratio)
    if not np.isfinite(prediction):
        return None

    first = float(seq[0])
    return DetectionResult(
        success=True,
        kind=PatternKind.GEOMETRIC,
        prediction=prediction,
        parameters={"ratio": ratio, "first_term": first},
        confidence=EXACT_CONFIDENCE,
        pattern="Geometric Progression",
        formula=f"a(n) = {_fmt(first)} * {_fmt(ratio)}^(n - 1)",
        sequence=tuple(seq.tolist()),
    )

# ===================================================================
# 6. DIFFERENCE ENGINE (POLYNOMIAL SEQUENCES)
# ===================================================================
def difference_levels(seq: np.ndarray, tolerance: float = EPSILON,
                      max_levels: int = MAX_DIFFERENCE_LEVELS) -> Tuple[List[np.ndarray], Optional[int]]:
    """
    Builds successive difference levels of a sequence.

    Level 0 is the sequence itself, level k+1 is the consecutive difference of
    level k. Building stops at the first constant level, after `max_levels`
    levels, or once a level is down to a single value.

    Returns:
        (levels, degree) where degree is the index of the first constant level,
        or None if no level became constant.
    """
    levels = [seq]
    current = seq
    with np.errstate(over="ignore", invalid="ignore"):
        for depth in range(1, max_levels + 1):
            if len(current) < 2:
                break
            current = np.diff(current)
            levels.append(current)
            # A lone value is trivially "constant" and says nothing about the degree
            if len(current) >= 2 and _is_constant(current, tolerance)[0]:
                logger.debug("Difference level %d is constant", depth)
                return levels, depth
    return levels, None


def extend_difference_table(levels: Sequence[np.ndarray]) -> List[np.ndarray]:
    """
    Extends every level by one value, from the deepest (constant) level back
    to level 0. The deepest level repeats its last value; each shallower level
    adds the value just appended one level below to its own last value.
    The new last value of level 0 is the prediction.
    """
    deepest = levels[-1]
    extended = [np.append(deepest, deepest[-1])]
    for level in reversed(levels[:-1]):
        extended.append(np.append(level, level[-1] + extended[-1][-1]))
    extended.reverse()
    return extended


def detect_polynomial(seq: np.ndarray, tolerance: float = EPSILON) -> Optional[DetectionResult]:
    """Method of finite differences, degree 1 to MAX_POLYNOMIAL_DEGREE."""
    if len(seq) < MIN_POLYNOMIAL_LENGTH:
        return None

    levels, degree = difference_levels(seq, tolerance)
    if degree is None or degree > MAX_POLYNOMIAL_DEGREE:
        logger.debug("No constant difference level up to degree %d", MAX_POLYNOMIAL_DEGREE)
        return None

    with np.errstate(over="ignore", invalid="ignore"):
        table = extend_difference_table(levels)
    prediction = float(table[0][-1])
    if not np.isfinite(prediction):
        return None

    return DetectionResult(
        success=True,
        kind=PatternKind.POLYNOMIAL,
        prediction=prediction,
        parameters={
            "degree": degree,
            "difference_table": tuple(tuple(level.tolist()) for level in table),
        },
        confidence=POLYNOMIAL_CONFIDENCE,
        pattern=f"Polynomial Sequence (Degree {degree})",
        formula=f"Polynomial of degree {degree}",
        sequence=tuple(seq.tolist()),
    )

# ===================================================================
# MAIN FUNCTION
# ===================================================================
DETECTORS = (
    ("arithmetic", detect_arithmetic),
    ("geometric", detect_geometric),
    ("polynomial", detect_polynomial),
)


def analyze(sequence: Any, tolerance: float = EPSILON) -> DetectionResult:
    """
    Classifies a sequence and predicts its next term.

    The detectors are tried from the most specific to the most general and
    the first match wins, so a constant sequence is arithmetic (difference 0)
    and never geometric (ratio 1) or polynomial. Invalid input and the absence
    of a pattern are returned as unsuccessful results, never raised.
    """
    try:
        seq = validate_sequence(sequence)
    except InvalidSequenceError as e:
        logger.debug("Rejected input: %s", e)
        return _invalid(str(e))

    for name, detector in DETECTORS:
        result = detector(seq, tolerance)
        if result is not None:
            logger.debug("%s detector matched %s", name, seq.tolist())
            return result
        logger.debug("%s detector declined", name)

    return DetectionResult(
        success=False,
        kind=PatternKind.UNKNOWN,
        error_message=NO_PATTERN_MESSAGE,
        sequence=tuple(seq.tolist()),
    )

# ===================================================================
# MULTI-STEP PREDICTION
# ===================================================================
def predict_multiple(sequence: Any, count: int = DEFAULT_PREDICTION_COUNT,
                     tolerance: float = EPSILON) -> MultiStepResult:
    """
    Predicts `count` further terms by re-running the full analysis on the
    sequence extended with each new prediction.

    The pattern is re-derived at every step, so a later step may be won by a
    different detector than the first. The loop stops at the first failed
    analysis and returns the predictions gathered so far; the success/kind of
    the result always describe the first analysis.
    """
    if isinstance(count, bool) or not isinstance(count, numbers.Integral) or count < 0:
        return MultiStepResult(
            success=False,
            kind=PatternKind.INVALID,
            error_message="Prediction count must be a non-negative integer",
        )

    first = analyze(sequence, tolerance)
    predictions: List[float] = []
    working = list(first.sequence)

    result = first
    for step in range(int(count)):
        if step > 0:
            result = analyze(working, tolerance)
        if not result.success:
            logger.debug("Stopped after %d of %d predictions", step, count)
            break
        predictions.append(result.prediction)
        working.append(result.prediction)

    return MultiStepResult(
        success=first.success,
        kind=first.kind,
        prediction=first.prediction,
        parameters=first.parameters,
        confidence=first.confidence,
        error_message=first.error_message,
        pattern=first.pattern,
        formula=first.formula,
        sequence=first.sequence,
        predictions=tuple(predictions),
        extended_sequence=tuple(working),
    )

# ===================================================================
# ANALYSIS HISTORY
# ===================================================================
@dataclass(frozen=True)
class HistoryEntry:
    entry_id: str
    timestamp: str
    result: DetectionResult

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.entry_id, "timestamp": self.timestamp, "result": self.result.to_dict()}


class AnalysisHistory:
    """
    In-memory log of analysis results with derived statistics.

    Lives only as long as the process. Recording is serialized with a lock so
    several callers can share one history; the detection functions themselves
    need no synchronization.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[HistoryEntry] = []

    @staticmethod
    def _new_id() -> str:
        return f"mem_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

    def record(self, result: DetectionResult) -> HistoryEntry:
        entry = HistoryEntry(
            entry_id=self._new_id(),
            timestamp=datetime.now().isoformat(),
            result=result,
        )
        with self._lock:
            self._entries.append(entry)
        logger.debug("Recorded %s result as %s", result.kind.value, entry.entry_id)
        return entry

    def entries(self) -> List[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def by_kind(self, kind) -> List[HistoryEntry]:
        kind = PatternKind(kind)
        return [e for e in self.entries() if e.result.kind == kind]

    def recent(self, count: int = RECENT_HISTORY_SIZE) -> List[HistoryEntry]:
        """Newest first."""
        if count <= 0:
            return []
        return list(reversed(self.entries()[-count:]))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        entries = self.entries()
        total = len(entries)
        by_kind: Dict[str, int] = {}
        total_confidence = 0.0
        successes = 0
        for entry in entries:
            kind = entry.result.kind.value
            by_kind[kind] = by_kind.get(kind, 0) + 1
            total_confidence += entry.result.confidence or 0.0
            successes += int(entry.result.success)
        return {
            "total_processed": total,
            "by_kind": by_kind,
            "average_confidence": total_confidence / total if total else 0.0,
            "success_rate": successes / total if total else 0.0,
        }

    def summarize(self) -> Dict[str, Any]:
        """Distribution of kinds, sequence lengths, and streaks among recent entries."""
        summary: Dict[str, Any] = {
            "most_common_kind": None,
            "average_sequence_length": 0.0,
            "sequence_length_range": {"min": None, "max": None},
            "kind_distribution": {},
            "trends": [],
        }
        entries = self.entries()
        if not entries:
            return summary

        lengths = np.array([len(e.result.sequence) for e in entries])
        summary["average_sequence_length"] = float(np.mean(lengths))
        summary["sequence_length_range"] = {"min": int(lengths.min()), "max": int(lengths.max())}

        by_kind = self.stats()["by_kind"]
        max_count = 0
        for kind, count in by_kind.items():
            summary["kind_distribution"][kind] = {
                "count": count,
                "percentage": f"{count / len(entries) * 100:.2f}%",
            }
            if count > max_count:
                max_count = count
                summary["most_common_kind"] = kind

        summary["trends"] = identify_trends([e.result.kind.value for e in self.recent()])
        return summary

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("History cleared")

    def export(self) -> str:
        return json.dumps({
            "memories": [e.to_dict() for e in self.entries()],
            "stats": self.stats(),
            "exportDate": datetime.now().isoformat(),
        }, indent=2)


def identify_trends(kinds: List[str], min_streak: int = STREAK_LENGTH) -> List[str]:
    """Reports runs of at least `min_streak` identical kinds (newest first)."""
    trends: List[str] = []
    if len(kinds) < min_streak:
        return trends

    current, run = kinds[0], 1
    for kind in kinds[1:]:
        if kind == current:
            run += 1
            continue
        if run >= min_streak:
            trends.append(f"Streak of {run} {current} sequences")
        current, run = kind, 1
    if run >= min_streak:
        trends.append(f"Current streak of {run} {current} sequences")
    return trends

# ===================================================================
# Output function
# ===================================================================
def pretty_print_report(title: str, data: Dict[str, Any]):
    def format_value(value):
        if isinstance(value, bool): return str(value)
        if isinstance(value, float): return f"{value:.4f}"
        if value is None: return "None"
        return str(value)

    def _print_recursive(data, indent_level=0):
        indent = '    ' * indent_level
        for key, value in data.items():
            if isinstance(value, dict) and value:
                print(f"{indent}{key}:")
                _print_recursive(value, indent_level + 1)
            elif isinstance(value, list):
                if value and isinstance(value[0], list):
                    print(f"{indent}{key}:")
                    for i, row in enumerate(value):
                        print(f"{indent}    [{i}] [{', '.join(format_value(v) for v in row)}]")
                elif len(value) > 10:
                    print(f"{indent}{key}: [{', '.join(map(format_value, value[:5]))}, ..., {format_value(value[-1])}] ({len(value)} items)")
                else:
                    print(f"{indent}{key}: [{', '.join(map(format_value, value))}]")
            else:
                print(f"{indent}{key}: {format_value(value)}")

    print(f"\n{'=' * 60}\n{title.center(60)}\n{'=' * 60}")
    _print_recursive(data)

# ===================================================================
# COMMAND LINE
# ===================================================================
def parse_numbers(tokens: Sequence[str]) -> List[float]:
    """Accepts '1 2 3', '1,2,3' or any mix of commas and whitespace."""
    numbers_out = []
    for token in tokens:
        for part in re.split(r"[,\s]+", token.strip()):
            if not part:
                continue
            try:
                numbers_out.append(float(part))
            except ValueError:
                raise ValueError(f"Invalid number: {part!r}")
    return numbers_out


def _report(result: DetectionResult, as_json: bool, title: str):
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        pretty_print_report(title, result.to_dict())


def _interactive(history: AnalysisHistory, as_json: bool) -> int:
    menu = (
        "\nChoose an option:\n"
        "1. Analyze a sequence\n"
        "2. Predict multiple terms\n"
        "3. View statistics\n"
        "4. View recent history\n"
        "5. Exit\n"
    )
    while True:
        print(menu)
        try:
            choice = input("Enter your choice (1-5): ").strip()
        except EOFError:
            return 0

        if choice in ("1", "2"):
            try:
                sequence = parse_numbers([input("Enter a sequence of numbers (comma-separated): ")])
                count = DEFAULT_PREDICTION_COUNT
                if choice == "2":
                    raw = input(f"How many terms to predict? (default {DEFAULT_PREDICTION_COUNT}): ").strip()
                    count = int(raw) if raw else DEFAULT_PREDICTION_COUNT
            except EOFError:
                return 0
            except ValueError as e:
                print(f"Invalid input: {e}")
                continue
            result = analyze(sequence) if choice == "1" else predict_multiple(sequence, count)
            history.record(result)
            _report(result, as_json, "Sequence analysis")
        elif choice == "3":
            pretty_print_report("Statistics", {**history.stats(), **history.summarize()})
        elif choice == "4":
            entries = history.recent()
            if not entries:
                print("No analyses recorded yet.")
            for i, entry in enumerate(entries, 1):
                r = entry.result
                line = f"{i}. [{', '.join(map(_fmt, r.sequence))}] {r.kind.value}"
                if r.prediction is not None:
                    line += f" -> {_fmt(r.prediction)}"
                print(f"{line}  ({entry.timestamp})")
        elif choice == "5":
            return 0
        else:
            print("Invalid choice. Please enter 1-5.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sequence-detector",
        description="Detect arithmetic, geometric and polynomial sequences and predict their continuation.",
    )
    parser.add_argument("--json", action="store_true", help="print results as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    analyze_parser = subparsers.add_parser("analyze", help="Classify a sequence and predict the next term")
    analyze_parser.add_argument("numbers", nargs="+", help="sequence terms, space or comma separated")

    predict_parser = subparsers.add_parser("predict", help="Predict several further terms")
    predict_parser.add_argument("numbers", nargs="+", help="sequence terms, space or comma separated")
    predict_parser.add_argument("--count", "-n", type=int, default=DEFAULT_PREDICTION_COUNT,
                                help=f"number of terms to predict (default {DEFAULT_PREDICTION_COUNT})")

    subparsers.add_parser("interactive", help="Menu-driven session with history and statistics")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 2
    if args.command == "interactive":
        return _interactive(AnalysisHistory(), args.json)

    try:
        sequence = parse_numbers(args.numbers)
    except ValueError as e:
        parser.error(str(e))

    if args.command == "analyze":
        result = analyze(sequence)
        _report(result, args.json, "Sequence analysis")
    else:
        if args.count < 0:
            parser.error("--count must be a non-negative integer")
        result = predict_multiple(sequence, args.count)
        _report(result, args.json, f"Prediction of {args.count} terms")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
