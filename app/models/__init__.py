"""
数据模型包
"""

from .transcript import TvTranscript

__all__ = [
    "TvTranscript",
]
