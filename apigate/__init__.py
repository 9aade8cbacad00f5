"""
apigate: Semantic API compatibility checks for Python libraries.

apigate extracts the public symbol surface of two revisions of a library,
diffs them, and classifies every change as compatible or breaking:
- Detect removed modules, functions, classes and constants
- Catch signature changes that break existing callers
- Gate releases on the result (exit status 3 on incompatible changes)

Usage:
    from apigate.core import diff
    from apigate.core.snapshot import SnapshotBuilder

    builder = SnapshotBuilder()
    base, target = builder.build_pair(Path("v1"), Path("v2"), "v1", "v2")
    for change in diff(base, target):
        print(change)
"""

__version__ = "0.1.0"
