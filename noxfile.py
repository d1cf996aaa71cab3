"""Nox sessions for the vgmusic quality gates."""

from __future__ import annotations

import nox

nox.options.sessions = ["lint", "typecheck", "tests"]

SOURCES = ("src", "tests", "noxfile.py")


@nox.session
def lint(session: nox.Session) -> None:
    """Check lint and formatting without touching files."""
    session.install("ruff")
    session.run("ruff", "check", *SOURCES)
    session.run("ruff", "format", "--check", *SOURCES)


@nox.session(name="lint-fix")
def lint_fix(session: nox.Session) -> None:
    session.install("ruff")
    session.run("ruff", "check", "--fix", *SOURCES)
    session.run("ruff", "format", *SOURCES)


@nox.session
def typecheck(session: nox.Session) -> None:
    """Type-check the package with its runtime dependencies installed."""
    session.install("mypy")
    session.install("-e", ".")
    session.run("mypy", "src/vgmusic")


@nox.session
def tests(session: nox.Session) -> None:
    session.install("-e", ".[test]")
    session.run("pytest", *session.posargs)


@nox.session(name="cli-smoke")
def cli_smoke(session: nox.Session) -> None:
    """Make sure the console script installs and parses its arguments."""
    session.install("-e", ".")
    session.run("vgmusic", "--version")
    session.run("vgmusic", "--help", silent=True)
