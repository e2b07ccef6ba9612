"""formforge -- scaffolds layered WinForms solutions.

Resolves a handful of enumerated choices (runtime, database, UI toolkit,
architecture pattern, project topology) into a frozen configuration, plans
the solution from it and generates the tree transactionally.
"""

__version__ = "0.1.0"
