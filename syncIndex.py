#!/usr/bin/env python
"""Sync Sanity documents to the search index.

Usage:
    python syncIndex.py reindex                      # Index every published document
    python syncIndex.py reindex --replace-all        # Swap each index's contents
    python syncIndex.py reindex --type post          # Only one document type
    python syncIndex.py sync --payload webhook.json  # Apply a stored webhook body
    python syncIndex.py stats                        # Index statistics
"""

from core.indexer import main

if __name__ == "__main__":
    main()
