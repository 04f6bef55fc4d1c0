"""
seed.py
───────
Populate the SQLite database with the demo course catalogue and build a
question bank for every course.

Courses whose bank already meets the minimum are left alone; a partial bank
is discarded and regenerated.  Safe to re-run.

    python -m course_exam.seed
    python -m course_exam.seed --regenerate      # rebuild every bank
"""

from __future__ import annotations

import argparse
import logging
import sys

from rich import box
from rich.console import Console
from rich.table import Table

from course_exam import database
from course_exam.config import get_settings
from course_exam.exceptions import InsufficientQuestionBankError
from course_exam.generator import QuestionGenerator

console = Console()

# slug → (title, lesson titles)
DEMO_COURSES: dict[str, tuple[str, list[str]]] = {
    "html-css-beginners": (
        "Complete HTML & CSS for Beginners",
        ["HTML Basics - Structure of a Web Page",
         "CSS Fundamentals - Styling Your Website",
         "Responsive Web Design"],
    ),
    "javascript-beginners": (
        "JavaScript for Complete Beginners",
        ["JavaScript Basics - Variables and Data Types",
         "Functions and Control Flow",
         "DOM Manipulation"],
    ),
    "react-complete-course": (
        "React.js Complete Course",
        ["Introduction to React",
         "React Hooks and State Management",
         "Building a Complete React App"],
    ),
    "python-masterclass": (
        "Python Programming Masterclass",
        ["Python Basics - Getting Started",
         "Object-Oriented Programming in Python",
         "Python Web Development with Django"],
    ),
    "flutter-mobile-development": (
        "Flutter Mobile App Development",
        ["Flutter Basics and Setup",
         "Building User Interfaces in Flutter",
         "Flutter App with Firebase Backend"],
    ),
    "data-science-python": (
        "Data Science with Python",
        ["Data Analysis with Pandas",
         "Data Visualization with Matplotlib",
         "Machine Learning Fundamentals"],
    ),
}


def seed_catalogue() -> dict[str, str]:
    """Create demo courses and their lessons; return slug → course id."""
    ids: dict[str, str] = {}
    for slug, (title, lessons) in DEMO_COURSES.items():
        existing = database.get_course_by_slug(slug)
        course_id = database.upsert_course(slug, title)
        if existing is None:
            for position, lesson in enumerate(lessons):
                database.add_lesson(course_id, lesson, position=position)
        ids[slug] = course_id
    return ids


def seed_question_banks(course_ids: dict[str, str], regenerate: bool = False) -> Table:
    generator = QuestionGenerator()
    minimum = generator.settings.exam.min_bank_size

    table = Table(title="Question banks", box=box.SIMPLE_HEAVY)
    table.add_column("Course", style="bold")
    table.add_column("Before", justify="right")
    table.add_column("After", justify="right")
    table.add_column("Status")

    for slug, course_id in course_ids.items():
        before = database.count_questions(course_id)
        try:
            if regenerate:
                bank = generator.regenerate_question_bank(course_id)
                status = f"[green]regenerated ({generator.source.name})[/green]"
            elif before >= minimum:
                bank = database.get_questions(course_id)
                status = "[dim]skipped (already complete)[/dim]"
            else:
                bank = generator.ensure_question_bank(course_id)
                status = f"[green]generated ({generator.source.name})[/green]"
            after = len(bank)
        except InsufficientQuestionBankError as exc:
            after = database.count_questions(course_id)
            status = f"[red]{exc.message}[/red]"
        table.add_row(slug, str(before), str(after), status)
    return table


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed demo courses and exam question banks.")
    parser.add_argument("--regenerate", action="store_true",
                        help="replace every bank, even complete ones")
    parser.add_argument("-v", "--verbose", action="store_true", help="show debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    settings = get_settings()
    status = Table(box=box.SIMPLE, show_header=False)
    for component, state in settings.status_summary().items():
        status.add_row(component, state)
    console.rule("[bold cyan]Course exam seeding[/bold cyan]")
    console.print(status)

    try:
        database.init_db()
        course_ids = seed_catalogue()
        console.print(seed_question_banks(course_ids, regenerate=args.regenerate))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        return 130

    console.print(f"[bold green]✓[/bold green] {len(course_ids)} courses seeded.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
