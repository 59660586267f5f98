"""
Org Migrator

A template-driven ETL engine that copies selected records and their
dependencies from a source Salesforce org into a target org.

Supports:
- JSON migration templates with ordered, dependent ETL steps
- Placeholder resolution against the target org schema
- Pre-flight validation with dependency, integrity and picklist checks
- External-id upserts with lookup caching across steps
- Per-record retries, partial success and run-level status reporting
"""

__version__ = "0.1.0"
