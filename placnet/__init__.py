"""
PlacNet - chromatin interaction annotation

Annotates PLAC-seq/HiChIP loops with genes and binding peaks and builds
Factor-Distal-Promoter-Gene interaction graphs.
"""

__version__ = "0.1.0"
