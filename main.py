#!/usr/bin/env python3
"""
Project Downloader - Main Entry Point

Materializes git repositories and uploaded archives onto local disk
for downstream analysis and classifies their primary language.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from downloader.cli import main

if __name__ == "__main__":
    main()
