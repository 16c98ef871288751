"""Identity reconciler: links partial email/phone fingerprints to one person."""

__version__ = "0.1.0"
