"""
Training/serving consistency checks.

Modules
-------
validator : run_sync_checks() — compares the training declaration, the
            serving runtime's compiled-in constants, the live encoder tables
            and an exported artifact; one SyncCheck per comparison.
reporter  : ASCII table and JSON export of a SyncReport.
"""
