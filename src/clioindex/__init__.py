"""
ClioIndex - local document indexing and hybrid retrieval engine.
"""

__version__ = "0.3.0"
