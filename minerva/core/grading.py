"""
Grading policy: letter-grade breakpoints and the pass threshold.
"""

from typing import List, Tuple

# (minimum percentage, letter), evaluated top-down, first match wins.
GRADE_BREAKPOINTS: List[Tuple[float, str]] = [
    (95.0, "A+"),
    (90.0, "A"),
    (85.0, "A-"),
    (80.0, "B+"),
    (75.0, "B"),
    (70.0, "B-"),
    (65.0, "C+"),
    (60.0, "C"),
    (55.0, "C-"),
    (50.0, "D+"),
    (45.0, "D"),
    (0.0, "F"),
]

PASS_THRESHOLD_PERCENT = 60.0

GRADE_LETTERS = tuple(letter for _, letter in GRADE_BREAKPOINTS)


def grade_letter_for(percentage: float) -> str:
    """Map a percentage in [0, 100] to its letter grade."""
    for minimum, letter in GRADE_BREAKPOINTS:
        if percentage >= minimum:
            return letter
    return "F"


def is_passing(percentage: float) -> bool:
    return percentage >= PASS_THRESHOLD_PERCENT
