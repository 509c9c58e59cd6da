"""
card_batch -- Chunked execution of daily posting runs.

Drives TransactionInput records through the card_kernel validation chain,
posting engine and rejection sink in committed chunks, with chunk-level
retry for transient storage failures, a skip budget for per-record system
errors, cooperative cancellation and restart of aborted runs.

Architecture:
    card_batch/ is a top-level package.  Nothing in card_kernel imports
    from card_batch (except db.engine.create_tables, which registers the
    run table).
"""
