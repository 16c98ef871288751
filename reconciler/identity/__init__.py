"""Identity resolution package.

Links partial (email, phone number) fingerprints to known people.  Each call
runs one pass through match → cluster → elect → merge → idempotency check →
create → refetch → format, inside a single unit of work.
"""
