"""Task-execution pipeline: fetch a task, run it locally, report the outcome.

One poll yields at most one task envelope. The envelope is dispatched on its
type code to a handler (database query or exec), rows are mapped to
transport-safe text and the result is posted back. Every failure inside an
iteration becomes an error report; the poller keeps its schedule.
"""
