"""Task board: state machine, dependency resolution, conflicts and batching.

The board is a single-writer store.  Every CLI invocation opens one
``BoardRepository``, applies one logical operation and closes it again; there
is no long-lived coordinator process.  Concurrency between agent sessions is
handled at the application level: ``claim`` fails fast on a conflicting
claimant instead of overwriting it, and session assignment refuses tasks whose
affected files overlap with work already held by that session.
"""
