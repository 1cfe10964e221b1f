"""
Merge core: segmentation, alignment, diff, patch and three-way merge.
"""
