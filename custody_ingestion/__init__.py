"""
custody_ingestion -- bulk CSV import of users, assets and deployments.

Architecture:
    custody_ingestion/ is a top-level package above the kernel.  Nothing in
    custody_kernel imports from it.  Every imported row is created through
    CustodyOrchestrator, so imports obey the same uniqueness, ledger and
    audit rules as interactive creation.
"""
