"""
teamsync - synchronized workforce data-store core.

Keeps live mirrors of a remote document store (employees, teams, accounts,
planning, bonuses, trainings, audit log, settings) and applies the
relational cascades and account invariants that the store itself cannot
enforce.
"""

__version__ = "0.1.0"
