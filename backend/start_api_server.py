#!/usr/bin/env python3
"""Start the ingestion API under uvicorn."""

import os
import sys

import uvicorn

if __name__ == '__main__':
    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', '5000'))
    reload = '--reload' in sys.argv[1:]

    uvicorn.run(
        'tabular_ingest.main:create_app',
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )
