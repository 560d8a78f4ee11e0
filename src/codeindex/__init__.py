"""
codeindex - semantic indexing and retrieval for project source trees.
"""

__version__ = "1.0.0"
