"""
Minerva: university enrollment and grading backend.

Manages courses, exams, exam submissions and enrollments, and decides
course completion from a student's graded exam submissions.
"""

__version__ = "1.0.0"
__author__ = "Minerva Development Team"
__description__ = "University enrollment and grading backend"
