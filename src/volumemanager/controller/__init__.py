"""
Reconciliation engine and the control loop driving it.

- scheduler.py: period suffix generation
- reconciler.py: target set computation and diffing
- executor.py: best-effort action execution
- loop.py: session, reload and sleep handling
"""
