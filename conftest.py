# conftest.py
"""Collect the ivp_engine usage guide as doctests.

Every Python block in ``docs/*.md`` runs through sybil, each document inside
its own scratch directory so that output files written by ``solve_ivp``
never land in the repository.
"""

from os import chdir
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any

from sybil import Sybil
from sybil.parsers.markdown import PythonCodeBlockParser, SkipParser


def _run_in_scratch_directory(namespace: dict[str, Any]) -> None:  # noqa: ARG001
    """Change into a fresh temporary directory before a document runs."""
    directory = Path(TemporaryDirectory().name)
    directory.mkdir(parents=True, exist_ok=True)
    chdir(directory)


pytest_collect_file = Sybil(
    parsers=[
        PythonCodeBlockParser(),
        SkipParser(),
    ],
    path=str(Path(__file__).parent / "docs"),
    pattern="**/*.md",
    setup=_run_in_scratch_directory,
).pytest()
