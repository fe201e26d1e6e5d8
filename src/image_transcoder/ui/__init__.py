"""
Terminal reporting for the command line.
"""

from .rich_ui import RichTranscodeUI

__all__ = ["RichTranscodeUI"]
