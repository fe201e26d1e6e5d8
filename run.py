#!/usr/bin/env python3
"""
Runner script for the image transcoder.
This makes it easy to run the tool with uv: uv run python run.py <args>
"""

from image_transcoder.cli import main

if __name__ == "__main__":
    main()
