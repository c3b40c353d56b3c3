"""buildarea - bring a cloned build workspace forward to a job's change level.

The package reconciles a workspace cloned from a prior build against the
branch and change level a new job must build at, advancing the ledger for
byte-identical files and discarding stale copies of everything else.
"""

__version__ = "0.4.0"
